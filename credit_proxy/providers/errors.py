"""
Error bodies returned by the proxy itself.

Quota errors mimic the requesting provider's own rate-limit error so the
calling SDK handles them like any other 429.
"""

from fastapi.responses import JSONResponse

from credit_proxy.providers.registry import ProviderIdentity

PROXY_ERROR_BODY = {"error": {"message": "Credit proxy error", "type": "proxy_error"}}


def credit_exceeded_body(provider: ProviderIdentity, message: str) -> dict:
    """Build a quota-exceeded error body shaped like the provider's errors."""
    if provider == ProviderIdentity.ANTHROPIC:
        return {
            "type": "error",
            "error": {
                "type": "rate_limit_error",
                "message": message,
            },
        }
    return {
        "error": {
            "message": message,
            "type": "rate_limit_error",
            "code": "credit_exceeded",
        }
    }


def credit_exceeded_response(provider: ProviderIdentity, message: str) -> JSONResponse:
    return JSONResponse(status_code=429, content=credit_exceeded_body(provider, message))


def proxy_error_response() -> JSONResponse:
    return JSONResponse(status_code=502, content=PROXY_ERROR_BODY)
