"""Token helpers for the JWTs issued by the identity provider."""

from datetime import datetime, timedelta, timezone

from jose import jwt

from app.core.config import get_settings

settings = get_settings()


# ── JWT ───────────────────────────────────────────────────────

def create_jwt(
    subject: str,
    company_id: str,
    platform_admin: bool = False,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a token for an account. Used by company bootstrap and tests."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    payload = {
        "sub": subject,
        "cid": company_id,
        "exp": expire,
    }
    if platform_admin:
        payload["pla"] = True
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
