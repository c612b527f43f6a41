"""Tests for pricing calculation."""
import math

import pytest
from credit_proxy.providers.pricing import (
    DEFAULT_MODEL,
    MODEL_PRICING,
    PricingEntry,
    calculate_cost,
    get_pricing,
)


class TestPricingCalculation:
    """Test cost calculation for different models."""

    def test_claude_opus_pricing(self):
        """Claude Opus 4 pricing is calculated correctly."""
        # $15/1M input, $75/1M output
        cost = calculate_cost("claude-opus-4-20250514", 1_000_000, 1_000_000)
        # 1500 cents input + 7500 cents output = 9000 cents
        assert cost == 9000

    def test_claude_sonnet_pricing(self):
        """Claude Sonnet 4 pricing is calculated correctly."""
        cost = calculate_cost("claude-sonnet-4-20250514", 1_000_000, 1_000_000)
        assert cost == 1800

    def test_gpt_pricing(self):
        """GPT-4.1 pricing is calculated correctly."""
        cost = calculate_cost("gpt-4.1", 2_000_000, 500_000)
        # 400 cents input + 400 cents output
        assert cost == 800

    def test_deepseek_pricing(self):
        """DeepSeek pricing is calculated correctly."""
        cost = calculate_cost("deepseek-chat", 1_000_000, 1_000_000)
        assert cost == 137

    def test_small_request_rounds_up(self):
        """Fractions of a cent are always rounded up."""
        # ceil(100/1e6*1500 + 50/1e6*7500) = ceil(0.15 + 0.375) = 1
        assert calculate_cost("claude-opus-4-20250514", 100, 50) == 1

    def test_single_token_is_billed(self):
        """Even one token costs at least a cent."""
        assert calculate_cost("deepseek-chat", 1, 0) == 1

    def test_exact_cents_not_rounded_up(self):
        """Whole-cent costs are not bumped to the next cent."""
        # 200k input tokens at 1500 cents/1M = exactly 300 cents
        assert calculate_cost("claude-opus-4-20250514", 200_000, 0) == 300

    def test_zero_tokens_zero_cost(self):
        """Zero tokens results in zero cost."""
        assert calculate_cost("gpt-4.1", 0, 0) == 0

    def test_unknown_model_uses_default(self):
        """Unknown models are priced like the default model."""
        unknown = calculate_cost("unknown-model-xyz", 12_345, 6_789)
        default = calculate_cost(DEFAULT_MODEL, 12_345, 6_789)
        assert unknown == default

    def test_missing_model_uses_default(self):
        """A missing model name uses the default model's pricing."""
        assert calculate_cost(None, 1_000_000, 0) == 1500

    @pytest.mark.parametrize("model", sorted(MODEL_PRICING))
    @pytest.mark.parametrize("tokens_in,tokens_out", [(1, 1), (999, 1), (123_456, 7_890), (3_000_000, 250_000)])
    def test_matches_ceiling_formula(self, model, tokens_in, tokens_out):
        """Cost is the ceiling of the per-million formula."""
        pricing = MODEL_PRICING[model]
        expected = math.ceil(
            tokens_in / 1e6 * pricing.input_price_per_1m
            + tokens_out / 1e6 * pricing.output_price_per_1m
        )
        assert calculate_cost(model, tokens_in, tokens_out) == expected


class TestPricingData:
    """Test that pricing data is complete."""

    def test_default_model_has_pricing(self):
        """The fallback model exists in the table."""
        assert DEFAULT_MODEL in MODEL_PRICING

    def test_every_provider_family_has_a_model(self):
        """Each supported provider has at least one priced model."""
        for model in ["claude-opus-4-20250514", "gpt-4.1", "gemini-2.5-pro", "grok-3", "deepseek-chat"]:
            assert model in MODEL_PRICING

    def test_pricing_has_input_and_output(self):
        """All pricing entries have integer input and output prices."""
        for model, pricing in MODEL_PRICING.items():
            assert isinstance(pricing, PricingEntry)
            assert isinstance(pricing.input_price_per_1m, int)
            assert isinstance(pricing.output_price_per_1m, int)
            assert pricing.input_price_per_1m >= 0
            assert pricing.output_price_per_1m >= 0

    def test_get_pricing_fallback(self):
        """get_pricing never fails for unknown models."""
        assert get_pricing("not-a-model") == MODEL_PRICING[DEFAULT_MODEL]
