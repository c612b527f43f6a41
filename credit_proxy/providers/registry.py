"""
Provider identities and upstream base URLs.

Classification never fails: an ambiguous path is billed under the
configured default provider rather than refused.
"""

from enum import Enum
from typing import Optional


class ProviderIdentity(str, Enum):
    """Upstream AI APIs the proxy can forward to."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    XAI = "xai"
    DEEPSEEK = "deepseek"


# Real upstream API endpoints
PROVIDER_URLS = {
    ProviderIdentity.ANTHROPIC: "https://api.anthropic.com",
    ProviderIdentity.OPENAI: "https://api.openai.com",
    ProviderIdentity.GOOGLE: "https://generativelanguage.googleapis.com",
    ProviderIdentity.XAI: "https://api.x.ai",
    ProviderIdentity.DEEPSEEK: "https://api.deepseek.com",
}

# Path markers checked in order, first match wins
PATH_MARKERS = (
    ("/v1/messages", ProviderIdentity.ANTHROPIC),
    ("/v1/chat/completions", ProviderIdentity.OPENAI),
    ("generateContent", ProviderIdentity.GOOGLE),
)


def to_identity(value: Optional[str]) -> ProviderIdentity:
    """Coerce a provider name to an identity, defaulting to anthropic."""
    if isinstance(value, ProviderIdentity):
        return value
    try:
        return ProviderIdentity((value or "").strip().lower())
    except ValueError:
        return ProviderIdentity.ANTHROPIC


def classify_provider(path: str, default_provider: Optional[str] = None) -> ProviderIdentity:
    """Determine the provider from the request path."""
    for marker, identity in PATH_MARKERS:
        if marker in path:
            return identity
    return to_identity(default_provider)


def resolve_upstream(identity) -> str:
    """Get the upstream base URL, falling back to anthropic for unknown identities."""
    try:
        identity = ProviderIdentity(identity)
    except ValueError:
        return PROVIDER_URLS[ProviderIdentity.ANTHROPIC]
    return PROVIDER_URLS[identity]
