import asyncio
from typing import Any, Optional

from fastapi import Cookie, Depends, Header
from jose import JWTError
from jose.jwt import decode

from api.bootstrap import Services, get_services
from api.config import Settings
from api.errors import AuthenticationError, NotFoundError
from api.models import User
from api.utils.logger import configure_logging

logger = configure_logging()

SESSION_COOKIE = "__session"


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_token(token: str, settings: Settings) -> dict[str, Any]:
    """Decode and verify a session JWT; raises AuthenticationError on any problem."""
    options = {"verify_aud": settings.auth_jwt_audience is not None}
    try:
        claims = decode(
            token,
            settings.auth_jwt_secret,
            algorithms=settings.auth_jwt_algorithms,
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError as e:
        logger.warning("event=token_rejected error=%s", e)
        raise AuthenticationError("Invalid token") from e
    if not claims.get("sub"):
        raise AuthenticationError("Invalid token")
    return claims


async def get_current_user(
    authorization: Optional[str] = Header(None),
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE),
    services: Services = Depends(get_services),
) -> User:
    token = _bearer_token(authorization) or session_token
    if not token:
        raise AuthenticationError("Missing token")

    claims = verify_token(token, services.settings)
    user = await asyncio.to_thread(services.users.get_by_external_id, claims["sub"])
    if user is None:
        raise NotFoundError("User", claims["sub"])
    return user
