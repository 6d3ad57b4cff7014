from datetime import datetime, timezone

from jose import jwt

from app.core.config import settings

ALGO = "HS256"

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def decode_token(token: str) -> dict:
    # Access tokens come from the identity provider; we only verify them.
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    return jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=[ALGO],
        audience=settings.AUTH_JWT_AUDIENCE,
        options=options,
    )
