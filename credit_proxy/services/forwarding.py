"""
Forwarding engine - relays a fully buffered request to the provider upstream.

Transport failures (DNS, refused connection, TLS, timeout) raise
ForwardError instead of producing a synthetic HTTP status; the gateway
decides what the client sees.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlsplit

import httpx

from credit_proxy.config import Settings
from credit_proxy.providers.registry import ProviderIdentity, resolve_upstream

logger = logging.getLogger(__name__)

# Provider-specific timeouts (seconds)
PROVIDER_TIMEOUTS = {
    ProviderIdentity.ANTHROPIC: 180.0,  # Claude can be slower for complex tasks
    ProviderIdentity.OPENAI: 120.0,
    ProviderIdentity.GOOGLE: 120.0,
    ProviderIdentity.XAI: 120.0,
    ProviderIdentity.DEEPSEEK: 120.0,
}
DEFAULT_TIMEOUT = 120.0

# Recomputed by the HTTP client from the buffered body, or negotiated by it
SKIP_REQUEST_HEADERS = ("host", "content-length", "transfer-encoding", "connection", "accept-encoding")


class ForwardError(Exception):
    """The upstream could not be reached or did not complete a response."""
    def __init__(self, provider: str, reason: str, detail: str = ""):
        self.provider = provider
        self.reason = reason
        self.detail = detail
        super().__init__(f"{provider} {reason}: {detail}" if detail else f"{provider} {reason}")


@dataclass
class UpstreamResponse:
    status_code: int
    # Multi-valued headers (e.g. set-cookie) are kept as separate pairs
    headers: list[tuple[str, str]]
    body: bytes

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class ForwardingEngine:
    """Sends requests to the provider's fixed upstream host."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def timeout_for(self, provider: ProviderIdentity) -> float:
        if self.settings.upstream_timeout is not None:
            return self.settings.upstream_timeout
        return PROVIDER_TIMEOUTS.get(provider, DEFAULT_TIMEOUT)

    @staticmethod
    def build_url(provider: ProviderIdentity, path: str) -> str:
        """Concatenate the provider base URL with the original path and query."""
        return resolve_upstream(provider) + path

    @staticmethod
    def build_headers(headers: Iterable[tuple[str, str]], upstream_url: str) -> list[tuple[str, str]]:
        """Copy request headers, rewriting host to the upstream host."""
        forwarded = [
            (key, value) for key, value in headers
            if key.lower() not in SKIP_REQUEST_HEADERS
        ]
        forwarded.append(("host", urlsplit(upstream_url).netloc))
        return forwarded

    async def forward(
        self,
        provider: ProviderIdentity,
        method: str,
        path: str,
        headers: Iterable[tuple[str, str]],
        body: bytes,
    ) -> UpstreamResponse:
        """Forward a request and wait for the complete upstream response."""
        target_url = self.build_url(provider, path)
        timeout = self.timeout_for(provider)
        start_time = time.time()

        try:
            response = await self.client.request(
                method,
                target_url,
                headers=self.build_headers(headers, target_url),
                content=body,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise ForwardError(provider.value, "timeout", f"no response after {timeout}s") from e
        except httpx.HTTPError as e:
            raise ForwardError(provider.value, "connection_error", f"{type(e).__name__}: {e}") from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"{method} {provider.value} {urlsplit(target_url).path} -> {response.status_code} ({latency_ms}ms)",
            extra={"provider": provider.value, "status_code": response.status_code, "latency_ms": latency_ms},
        )

        return UpstreamResponse(
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            body=response.content,
        )
