from sqlmodel import Session, func, select

from subtrack.core.errors import AuthenticationError
from subtrack.models.base import utcnow
from subtrack.models.user import User
from subtrack.schemas.auth import ROLE_HOME, LoginRequest, RefreshRequest, Token
from subtrack.utils.security import (
    TokenType,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def authenticate(self, payload: LoginRequest) -> tuple[User, Token]:
        statement = select(User).where(func.lower(User.email) == payload.username.strip().lower())
        user = self.session.exec(statement).first()

        # Same message for unknown, inactive and wrong-password logins.
        if not user or not user.is_active:
            raise AuthenticationError("Invalid credentials")

        if not verify_password(payload.password, user.password_hash):
            raise AuthenticationError("Invalid credentials")

        user.last_login_at = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)

        return user, self._build_tokens(user)

    def refresh(self, payload: RefreshRequest) -> Token:
        try:
            claims = decode_token(payload.refresh_token, TokenType.REFRESH)
        except ValueError as exc:
            raise AuthenticationError(str(exc)) from exc

        user = self.session.get(User, claims.sub)
        if not user or not user.is_active:
            raise AuthenticationError("Invalid token")

        # The role is re-read so a role change takes effect on the next refresh.
        return self._build_tokens(user)

    def _build_tokens(self, user: User) -> Token:
        return Token(
            access_token=create_access_token(user.id, user.role),
            refresh_token=create_refresh_token(user.id, user.role),
            user_id=user.id,
            role=user.role,
            home_path=ROLE_HOME.get(user.role, "/"),
        )
