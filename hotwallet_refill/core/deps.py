import json
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from hotwallet_refill.context import RefillContext
from hotwallet_refill.core.security import AuthError, verify_request_token

bearer = HTTPBearer(auto_error=False)


def get_context(request: Request) -> RefillContext:
    return request.app.state.refill_context


async def get_refill_claims(request: Request, ctx: RefillContext = Depends(get_context)) -> dict:
    """Refill request fields from the POST body.

    With auth enabled the body is a raw RS256 JWT whose claims are the
    request; otherwise it is plain JSON.
    """
    settings = ctx.settings
    body = (await request.body()).decode("utf-8", errors="replace").strip()

    if not settings.AUTH_ENABLED:
        if not body:
            return {}
        try:
            data = json.loads(body)
        except ValueError:
            raise AuthError("INVALID_REQUEST_FORMAT", "Request body must be a JSON object", status_code=400)
        if not isinstance(data, dict):
            raise AuthError("INVALID_REQUEST_FORMAT", "Request body must be a JSON object", status_code=400)
        return data

    return verify_request_token(body, settings.AUTH_PUBLIC_KEY, settings.JWT_MAX_LIFETIME_SECONDS)


async def require_bearer(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ctx: RefillContext = Depends(get_context),
) -> Optional[dict]:
    settings = ctx.settings
    if not settings.AUTH_ENABLED:
        return None
    if not settings.AUTH_PUBLIC_KEY:
        raise AuthError("AUTH_CONFIG_ERROR", "Authentication not properly configured", status_code=500)
    if credentials is None:
        # HTTPBearer returns None both for a missing header and for another scheme
        if not request.headers.get("Authorization"):
            raise AuthError("MISSING_AUTHORIZATION_HEADER", "Authorization header is required")
        raise AuthError(
            "INVALID_AUTHORIZATION_FORMAT",
            "Invalid Authorization header format. Expected: Bearer <token>",
        )
    return verify_request_token(credentials.credentials, settings.AUTH_PUBLIC_KEY, settings.JWT_MAX_LIFETIME_SECONDS)
