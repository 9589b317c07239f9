import logging

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from launchpad.api.deps import bearer_token
from launchpad.errors import ErrorKind, ServiceError, error_envelope
from launchpad.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

V1_PREFIX = "/api/v1"
PUBLIC_PREFIXES = (
    "/api/v1/federation/health",
    "/api/v1/federation/info",
    "/api/v1/federation/directories",
    "/api/v1/federation/instances",
    "/api/v1/auth/token",
)
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-API-Key",
    "Access-Control-Max-Age": "86400",
}


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


def _error(kind: ErrorKind, message: str, extra_headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=kind.status_code,
        content=error_envelope(kind, message),
        headers={**CORS_HEADERS, **(extra_headers or {})},
    )


async def v1_gate(request: Request, call_next) -> Response:
    """Authenticate and rate limit every /api/v1 request, then stamp CORS and quota headers."""
    path = request.url.path
    if not path.startswith(V1_PREFIX):
        return await call_next(request)

    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)

    limiter: RateLimiter = request.app.state.rate_limiter
    auth_service = request.app.state.auth_service

    try:
        if path.startswith(PUBLIC_PREFIXES):
            request.state.auth = None
            result = await limiter.check(client_key(request), "public")
        else:
            token = bearer_token(request)
            api_key = request.headers.get("x-api-key")
            if token:
                auth = auth_service.verify_bearer(token)
            elif api_key:
                auth = auth_service.verify_api_key(api_key)
            else:
                return _error(ErrorKind.UNAUTHORIZED, "Authentication required")
            request.state.auth = auth
            result = await limiter.check(auth.rate_limit_key, auth.tier)
    except ServiceError as exc:
        return _error(exc.kind, exc.message)
    except Exception:
        logger.exception("[v1] gate failure | path=%s", path)
        return _error(ErrorKind.INTERNAL_ERROR, "Internal server error")

    quota_headers = RateLimiter.headers(result)
    if not result.allowed:
        return _error(ErrorKind.RATE_LIMITED, "Rate limit exceeded", quota_headers)

    request.state.rate_limit = result
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("[v1] unhandled error | path=%s", path)
        return _error(ErrorKind.INTERNAL_ERROR, "Internal server error", quota_headers)

    response.headers.update({**quota_headers, **CORS_HEADERS})
    return response
