from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import UUID, uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from subtrack.core.config import settings
from subtrack.models.user import UserRole
from subtrack.schemas.auth import TokenPayload


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def create_token(user_id: UUID, role: UserRole | None, token_type: TokenType) -> str:
    """Sign a token for ``user_id``. The role claim lets clients route by role."""
    if token_type == TokenType.ACCESS:
        minutes = settings.access_token_expire_minutes
    else:
        minutes = settings.refresh_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    claims = {
        "sub": str(user_id),
        "exp": expire,
        "token_type": token_type.value,
        "role": role.value if role else None,
        "jti": str(uuid4()),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(user_id: UUID, role: UserRole | None = None) -> str:
    return create_token(user_id, role, TokenType.ACCESS)


def create_refresh_token(user_id: UUID, role: UserRole | None = None) -> str:
    return create_token(user_id, role, TokenType.REFRESH)


def decode_token(token: str, expected: TokenType | None = None) -> TokenPayload:
    """Verify ``token`` and return its claims.

    Raises ``ValueError`` for a bad signature, an expired token, malformed
    claims, or a token of the wrong type.
    """
    try:
        raw = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        payload = TokenPayload.model_validate(raw)
    except (JWTError, ValidationError) as exc:
        raise ValueError("Invalid token") from exc
    if expected is not None and payload.token_type != expected:
        raise ValueError("Invalid token type")
    return payload


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)
