"""
Token usage extraction from provider responses.

Each provider family has its own response model. `parse_usage` raises
UsageParseError when the payload is not JSON or lacks the family's usage
block; `extract_usage` is the lenient entry point that degrades to zero.
"""

import json
import logging
from dataclasses import dataclass
from typing import Annotated, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from credit_proxy.providers.registry import ProviderIdentity

logger = logging.getLogger(__name__)

# JSON integers only; strings, floats and booleans are rejected
TokenCount = Annotated[int, Field(strict=True, ge=0)]


class UsageParseError(Exception):
    """Usage could not be read from a provider response."""
    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider} usage not parsed: {reason}")


@dataclass(frozen=True)
class TokenUsage:
    tokens_in: int = 0
    tokens_out: int = 0

    @property
    def is_empty(self) -> bool:
        return self.tokens_in == 0 and self.tokens_out == 0


# Anthropic messages API
class AnthropicUsage(BaseModel):
    input_tokens: Optional[TokenCount] = None
    output_tokens: Optional[TokenCount] = None


class AnthropicResponse(BaseModel):
    usage: AnthropicUsage

    def to_usage(self) -> TokenUsage:
        return TokenUsage(self.usage.input_tokens or 0, self.usage.output_tokens or 0)


# OpenAI chat completions (also served by xAI and DeepSeek)
class OpenAIUsage(BaseModel):
    prompt_tokens: Optional[TokenCount] = None
    completion_tokens: Optional[TokenCount] = None


class OpenAIResponse(BaseModel):
    usage: OpenAIUsage

    def to_usage(self) -> TokenUsage:
        return TokenUsage(self.usage.prompt_tokens or 0, self.usage.completion_tokens or 0)


# Gemini generateContent
class GoogleUsageMetadata(BaseModel):
    promptTokenCount: Optional[TokenCount] = None
    candidatesTokenCount: Optional[TokenCount] = None


class GoogleResponse(BaseModel):
    usageMetadata: GoogleUsageMetadata

    def to_usage(self) -> TokenUsage:
        meta = self.usageMetadata
        return TokenUsage(meta.promptTokenCount or 0, meta.candidatesTokenCount or 0)


RESPONSE_MODELS = {
    ProviderIdentity.ANTHROPIC: AnthropicResponse,
    ProviderIdentity.OPENAI: OpenAIResponse,
    ProviderIdentity.XAI: OpenAIResponse,
    ProviderIdentity.DEEPSEEK: OpenAIResponse,
    ProviderIdentity.GOOGLE: GoogleResponse,
}


def parse_usage(provider: ProviderIdentity, body: Union[bytes, str]) -> TokenUsage:
    """Parse token usage from a response body, raising UsageParseError on failure."""
    name = getattr(provider, "value", str(provider))
    response_model = RESPONSE_MODELS.get(provider)
    if response_model is None:
        raise UsageParseError(name, "unknown provider")

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise UsageParseError(name, f"invalid JSON: {e}")

    if not isinstance(data, dict):
        raise UsageParseError(name, f"expected object, got {type(data).__name__}")

    try:
        return response_model.model_validate(data).to_usage()
    except ValidationError as e:
        raise UsageParseError(name, f"{e.error_count()} invalid or missing field(s)")


def extract_usage(provider: ProviderIdentity, body: Union[bytes, str]) -> tuple[int, int]:
    """Extract (tokens_in, tokens_out) from a response body, returning (0, 0) on any failure."""
    try:
        usage = parse_usage(provider, body)
    except UsageParseError as e:
        logger.warning(f"No usage read: {e}", extra={"provider": e.provider})
        return 0, 0
    return usage.tokens_in, usage.tokens_out
