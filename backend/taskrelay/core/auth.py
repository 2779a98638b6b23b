from __future__ import annotations

import hmac

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

API_KEY_HEADER = "X-API-Key"
USER_EMAIL_HEADER = "X-User-Email"
_API_PREFIX = "/api/v1"
# Blob downloads are fetched by <img> tags which cannot send custom headers.
_ANONYMOUS_DOWNLOAD_PREFIX = "/api/v1/files/"
_BEARER = "bearer"


def _header(request: Request, name: str) -> str | None:
    value = request.headers.get(name, "").strip()
    return value or None


def presented_api_key(request: Request) -> str | None:
    """Key from ``X-API-Key``, falling back to an ``Authorization: Bearer`` token."""
    direct = _header(request, API_KEY_HEADER)
    if direct is not None:
        return direct
    authorization = _header(request, "Authorization")
    if authorization is None:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != _BEARER:
        return None
    return token.strip() or None


def extract_user_email(request: Request) -> str | None:
    """Email of the acting user as asserted by the caller, or None if absent or blank."""
    return _header(request, USER_EMAIL_HEADER)


def _needs_api_key(request: Request) -> bool:
    if request.method == "OPTIONS" or not request.url.path.startswith(_API_PREFIX):
        return False
    is_download = request.method in ("GET", "HEAD") and request.url.path.startswith(
        _ANONYMOUS_DOWNLOAD_PREFIX
    )
    return not is_download


class LocalApiKeyMiddleware(BaseHTTPMiddleware):
    """Gate ``/api/v1`` behind a shared key when one is configured.

    Without a key every request passes, which is how local development runs.
    """

    def __init__(self, app: ASGIApp, *, api_key: str | None) -> None:
        super().__init__(app)
        self._expected = (api_key or "").strip().encode() or None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self._expected is None or not _needs_api_key(request):
            return await call_next(request)

        presented = presented_api_key(request)
        if presented is not None and hmac.compare_digest(presented.encode(), self._expected):
            return await call_next(request)

        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={
                "error": {
                    "code": "UNAUTHORIZED",
                    "message": "Missing or invalid API key.",
                    "issues": [],
                }
            },
        )
