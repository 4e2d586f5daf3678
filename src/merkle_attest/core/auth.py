"""
Merkle Attest - API Key Authentication Middleware

Requests that build or change commitments, or spend prover time, need the
X-API-Key header when API_AUTH_ENABLED is set. Lookups, proof and receipt
verification, and health endpoints stay open.
"""

import secrets
from collections.abc import Callable

import structlog
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from merkle_attest.core.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)

API_KEY_HEADER = "X-API-Key"

PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Write-method paths that only check data and never mutate state
OPEN_POST_PATHS = frozenset({
    "/api/v1/commitments/verify",
    "/api/v1/attestations/verify",
})


class APIKeyAuthMiddleware(BaseHTTPMiddleware):
    """Reject protected requests that lack a valid API key."""

    def __init__(self, app, settings: Settings | None = None) -> None:
        super().__init__(app)
        self._settings = settings or default_settings

    async def dispatch(self, request: Request, call_next: Callable):
        if not self._requires_key(request):
            return await call_next(request)

        provided_key = request.headers.get(API_KEY_HEADER)
        client = request.client.host if request.client else "unknown"

        if not provided_key:
            logger.warning(
                "Missing API key on protected endpoint",
                path=request.url.path,
                method=request.method,
                client=client,
            )
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": f"Missing {API_KEY_HEADER} header"},
            )

        if not secrets.compare_digest(provided_key, self._settings.API_KEY):
            logger.warning(
                "Invalid API key",
                path=request.url.path,
                method=request.method,
                client=client,
            )
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid API key"},
            )

        return await call_next(request)

    def _requires_key(self, request: Request) -> bool:
        if not self._settings.API_AUTH_ENABLED or not self._settings.API_KEY:
            return False
        if request.method not in PROTECTED_METHODS:
            return False
        return request.url.path not in OPEN_POST_PATHS
