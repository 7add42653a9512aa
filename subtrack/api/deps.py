from typing import Annotated, Callable
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from subtrack.core.config import settings
from subtrack.core.errors import AuthenticationError, PermissionDeniedError
from subtrack.db.session import get_session
from subtrack.models.user import User, UserRole
from subtrack.services.access import AccessService, Actor
from subtrack.utils.security import TokenType, decode_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_v1_str}/auth/login", auto_error=False)


def get_db() -> Session:
    yield from get_session()


def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    session: Annotated[Session, Depends(get_db)],
) -> User:
    if not token:
        raise AuthenticationError("Missing authorization header")
    try:
        claims = decode_token(token, TokenType.ACCESS)
    except ValueError as exc:
        raise AuthenticationError("Invalid token") from exc

    user = session.get(User, claims.sub)
    if not user:
        raise AuthenticationError("User not found")

    return user


def get_current_active_user(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if not current_user.is_active:
        raise PermissionDeniedError("User inactive")
    return current_user


def get_current_actor(
    current_user: Annotated[User, Depends(get_current_active_user)],
    session: Annotated[Session, Depends(get_db)],
) -> Actor:
    return AccessService(session).actor_for(current_user)


def require_roles(*roles: UserRole) -> Callable[[Actor], Actor]:
    allowed = set(roles)

    def dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role == UserRole.ADMIN:
            return actor
        if actor.role not in allowed:
            raise PermissionDeniedError("Insufficient permissions")
        return actor

    return dependency
