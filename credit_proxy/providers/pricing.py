"""
LLM pricing data for cost calculation.
Prices are in cents per 1M tokens.

The table is static and loaded at import time. Unknown models are priced
with the default model's entry so metering never fails on a lookup.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PricingEntry:
    """Input/output price for a model, in cents per 1M tokens."""
    input_price_per_1m: int
    output_price_per_1m: int


DEFAULT_MODEL = "claude-opus-4-20250514"

MODEL_PRICING = {
    # Anthropic
    "claude-opus-4-20250514": PricingEntry(1500, 7500),
    "claude-sonnet-4-20250514": PricingEntry(300, 1500),
    # OpenAI
    "gpt-5.2": PricingEntry(250, 1000),
    "gpt-4.1": PricingEntry(200, 800),
    # Google
    "gemini-2.5-pro": PricingEntry(125, 500),
    # xAI
    "grok-3": PricingEntry(300, 1500),
    # DeepSeek
    "deepseek-chat": PricingEntry(27, 110),
}


def get_pricing(model: Optional[str]) -> PricingEntry:
    """Get pricing for a model, falling back to the default model's pricing."""
    if model and model in MODEL_PRICING:
        return MODEL_PRICING[model]
    return MODEL_PRICING[DEFAULT_MODEL]


def calculate_cost(model: Optional[str], input_tokens: int, output_tokens: int) -> int:
    """
    Calculate cost in cents for a request.

    Rounds up so a metered call is never billed below its real cost.

    Args:
        model: The model name (unknown models use the default model's pricing)
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens

    Returns:
        Cost in cents (integer)
    """
    pricing = get_pricing(model)

    # Prices are per 1M tokens; integer ceiling division keeps the result exact
    scaled_cost = (
        input_tokens * pricing.input_price_per_1m
        + output_tokens * pricing.output_price_per_1m
    )
    return max(-(-scaled_cost // 1_000_000), 0)
