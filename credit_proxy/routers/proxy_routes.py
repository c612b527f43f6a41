"""
Proxy routes for metered LLM provider requests.

Each request goes through:
- Provider classification from the path
- Credit check (blocked requests get a provider-shaped 429)
- Forwarding to the provider upstream
- Usage extraction and logging for 2xx responses
- Relay of the upstream response
"""

import logging
import uuid
from typing import Iterable

from fastapi import APIRouter, Request, Response

from credit_proxy.config import Settings
from credit_proxy.providers.errors import credit_exceeded_response, proxy_error_response
from credit_proxy.providers.registry import ProviderIdentity, classify_provider
from credit_proxy.providers.usage import extract_usage
from credit_proxy.services.credit_ledger import CreditLedger
from credit_proxy.services.forwarding import ForwardError, ForwardingEngine, UpstreamResponse

router = APIRouter()
logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# The body is sent whole and already decoded by the HTTP client
SKIP_RESPONSE_HEADERS = ("transfer-encoding", "content-encoding", "content-length")


def generate_request_id() -> str:
    """Generate a unique request ID for log correlation."""
    return str(uuid.uuid4())


def relay_response(upstream: UpstreamResponse) -> Response:
    """Build the client response from the upstream status, headers and body."""
    response = Response(content=upstream.body, status_code=upstream.status_code)
    response.raw_headers.extend(
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in upstream.headers
        if key.lower() not in SKIP_RESPONSE_HEADERS
    )
    return response


class GatewayController:
    """Runs the per-request admission, forwarding and metering sequence."""

    def __init__(self, settings: Settings, ledger: CreditLedger, forwarder: ForwardingEngine):
        self.settings = settings
        self.ledger = ledger
        self.forwarder = forwarder

    async def handle(
        self,
        method: str,
        path: str,
        headers: Iterable[tuple[str, str]],
        body: bytes,
    ) -> Response:
        request_id = generate_request_id()
        user_id = self.settings.user_id
        provider = classify_provider(path, self.settings.default_provider)

        try:
            # Check credit before forwarding
            credit = await self.ledger.check_credit(user_id)
            if credit.exceeded:
                logger.info(
                    f"Credit exceeded for user {user_id} - blocking request",
                    extra={"request_id": request_id, "provider": provider.value, "user_id": user_id},
                )
                return credit_exceeded_response(provider, self.settings.exceeded_message)

            try:
                upstream = await self.forwarder.forward(provider, method, path, headers, body)
            except ForwardError as e:
                logger.error(
                    f"Proxy error forwarding to {provider.value}: {e}",
                    extra={"request_id": request_id, "provider": provider.value, "reason": e.reason},
                )
                return proxy_error_response()

            # Extract and log usage from successful responses only
            if upstream.is_success:
                tokens_in, tokens_out = extract_usage(provider, upstream.body)
                if tokens_in or tokens_out:
                    outcome = await self.ledger.log_usage(
                        self.settings.deployment_id,
                        tokens_in,
                        tokens_out,
                        self.settings.default_model,
                        user_id=user_id,
                    )
                    logger.info(
                        f"Logged: {tokens_in}in/{tokens_out}out = {outcome.cost_cents}c "
                        f"| remaining: {credit.remaining_cents - outcome.cost_cents}c",
                        extra={
                            "request_id": request_id,
                            "provider": provider.value,
                            "user_id": user_id,
                            "record_logged": outcome.record_logged,
                            "balance_updated": outcome.balance_updated,
                        },
                    )

            return relay_response(upstream)

        except Exception:
            logger.exception(
                f"Unexpected error proxying to {provider.value}",
                extra={"request_id": request_id, "provider": provider.value},
            )
            return proxy_error_response()


def request_target(request: Request) -> str:
    """Original path and query string, undecoded."""
    raw_path = request.scope.get("raw_path")
    # Some servers include the query in raw_path
    path = raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else request.url.path
    query = request.scope.get("query_string", b"")
    if query:
        path = f"{path}?{query.decode('latin-1')}"
    return path


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_request(path: str, request: Request) -> Response:
    """
    Metered pass-through to the provider the path belongs to.

    The full body is buffered first; the upstream call and usage
    extraction both need complete payloads.
    """
    body = await request.body()
    gateway: GatewayController = request.app.state.gateway
    return await gateway.handle(
        request.method,
        request_target(request),
        request.headers.items(),
        body,
    )
