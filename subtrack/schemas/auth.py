from uuid import UUID

from pydantic import BaseModel, EmailStr

from subtrack.models.user import UserRole

# Landing area per role; clients use it to pick the dashboard after login.
ROLE_HOME = {
    UserRole.ADMIN: "/admin",
    UserRole.FINANCE: "/finance",
    UserRole.POC: "/poc",
    UserRole.HOD: "/hod",
}


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user_id: UUID
    role: UserRole | None = None
    home_path: str = "/"


class TokenPayload(BaseModel):
    sub: UUID
    token_type: str
    exp: int
    role: UserRole | None = None


class LoginRequest(BaseModel):
    username: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str
