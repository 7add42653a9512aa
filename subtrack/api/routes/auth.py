from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from subtrack.api.deps import get_current_active_user, get_db
from subtrack.core.errors import AuthenticationError
from subtrack.models.user import User
from subtrack.schemas.auth import LoginRequest, RefreshRequest, Token
from subtrack.schemas.user import UserRead, UserScope
from subtrack.services.access import AccessService
from subtrack.services.audit import AuditService
from subtrack.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def _services(session: Session) -> tuple[AuthService, AuditService]:
    return AuthService(session), AuditService(session)


@router.post("/login", response_model=Token)
def login(
    payload: LoginRequest,
    request: Request,
    session: Session = Depends(get_db),
) -> Token:
    auth_service, audit_service = _services(session)
    client_host = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    try:
        user, token = auth_service.authenticate(payload)
    except AuthenticationError:
        audit_service.record_auth(None, "login", client_host, user_agent, success=False, email=payload.username)
        raise
    audit_service.record_auth(user.id, "login", client_host, user_agent, success=True, email=user.email)
    return token


@router.post("/refresh", response_model=Token)
def refresh(payload: RefreshRequest, session: Session = Depends(get_db)) -> Token:
    auth_service, _ = _services(session)
    return auth_service.refresh(payload)


@router.get("/me", response_model=UserRead)
def get_me(current_user: User = Depends(get_current_active_user)) -> UserRead:
    return UserRead.model_validate(current_user)


@router.get("/me/scope", response_model=UserScope)
def get_my_scope(
    current_user: User = Depends(get_current_active_user),
    session: Session = Depends(get_db),
) -> UserScope:
    actor = AccessService(session).actor_for(current_user)
    return UserScope(
        user_id=actor.user_id,
        role=actor.role,
        department_ids=sorted(actor.department_ids, key=str),
    )
