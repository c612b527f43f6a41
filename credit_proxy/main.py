import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from credit_proxy import __version__
from credit_proxy.config import Settings
from credit_proxy.providers.errors import proxy_error_response
from credit_proxy.routers import proxy_routes
from credit_proxy.routers.proxy_routes import PROXY_METHODS, GatewayController
from credit_proxy.services.credit_ledger import CreditLedger
from credit_proxy.services.forwarding import DEFAULT_TIMEOUT, ForwardingEngine
from credit_proxy.services.store_client import BalanceStoreClient

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store_http: Optional[httpx.AsyncClient] = None,
    upstream_http: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the proxy application.

    Components are wired here once and shared by every request. HTTP
    clients can be injected (tests pass clients on mock transports).
    """
    settings = settings or Settings.from_env()
    store_http = store_http or httpx.AsyncClient(timeout=settings.store_timeout)
    upstream_http = upstream_http or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    ledger = CreditLedger(settings, BalanceStoreClient(settings, store_http))
    forwarder = ForwardingEngine(settings, upstream_http)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Credit proxy running on http://{settings.host}:{settings.port}")
        logger.info(
            f"User: {settings.user_id}, Instance: {settings.deployment_id}, Model: {settings.default_model}"
        )

        yield

        logger.info("Credit proxy shutting down")
        await store_http.aclose()
        await upstream_http.aclose()

    app = FastAPI(
        title="Credit Proxy",
        description="Metering reverse proxy enforcing a monthly AI credit cap",
        version=__version__,
        lifespan=lifespan,
        # Every path except /health belongs to the upstream providers
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.gateway = GatewayController(settings, ledger, forwarder)

    # Any method; registered before the catch-all so it never reaches the gateway
    @app.api_route("/health", methods=PROXY_METHODS)
    async def health_check():
        return PlainTextResponse("ok")

    app.include_router(proxy_routes.router, tags=["proxy"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error: {type(exc).__name__}: {exc}")
        return proxy_error_response()

    return app
