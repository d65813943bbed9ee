import logging
import time
from jose import ExpiredSignatureError, JWTError, jwt

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


class AuthError(Exception):
    def __init__(self, code: str, message: str, status_code: int = 401, data: dict = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.data = data


def verify_request_token(token: str, public_key: str, max_lifetime: int) -> dict:
    """Verify an RS256 request token and return its claims.

    Tokens issued with a validity window longer than ``max_lifetime`` seconds
    are refused before the signature is checked.
    """
    if not public_key:
        raise AuthError("AUTH_CONFIG_ERROR", "Authentication not properly configured", status_code=500)
    token = (token or "").strip()
    if not token:
        raise AuthError("INVALID_REQUEST_FORMAT", "Invalid request format - JWT body required")

    try:
        unverified = jwt.get_unverified_claims(token)
    except JWTError:
        raise AuthError("INVALID_TOKEN", "Invalid JWT token")

    exp, iat = unverified.get("exp"), unverified.get("iat")
    if exp is not None and iat is not None:
        lifetime = int(exp) - int(iat)
        if lifetime > max_lifetime:
            logger.error(f"JWT lifetime exceeds maximum allowed: {lifetime}s > {max_lifetime}s")
            raise AuthError(
                "JWT_LIFETIME_EXCEEDED",
                f"JWT lifetime exceeds maximum allowed duration of {max_lifetime} seconds",
                data={"jwtLifetime": lifetime, "maxAllowedLifetime": max_lifetime},
            )
    else:
        logger.warning("JWT is missing exp or iat, lifetime not checked")

    try:
        claims = jwt.decode(token, public_key, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("TOKEN_EXPIRED", "JWT token has expired")
    except JWTError as e:
        logger.error(f"Authentication failed: {e}")
        raise AuthError("INVALID_TOKEN", "Invalid JWT token")
    logger.info(f"Request authenticated for: {claims.get('refill_request_id')}")
    return claims


def sign_response(payload: dict, private_key: str, lifetime: int) -> str:
    now = int(time.time())
    return jwt.encode({**payload, "iat": now, "exp": now + lifetime}, private_key, algorithm=ALGORITHM)
