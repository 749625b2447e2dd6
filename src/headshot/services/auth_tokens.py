"""Bearer access tokens.

Login and sign-up live outside this service; it only needs to issue and
verify the signed access tokens whose ``sub`` claim carries the user id.
"""

from datetime import timedelta

from jose import JWTError, jwt

from headshot.core.config import Settings
from headshot.core.timezone import utcnow


def create_access_token(user_id: int, settings: Settings) -> str:
    expires_at = utcnow() + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {"sub": str(user_id), "type": "access", "exp": expires_at}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> int | None:
    """Return the user id carried by a valid access token, else None."""
    if not settings.jwt_secret:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        sub = payload.get("sub")
        if sub is None or payload.get("type") not in {None, "access"}:
            return None
        return int(sub) if not isinstance(sub, int) else sub
    except (JWTError, ValueError):
        return None
