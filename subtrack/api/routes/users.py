from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from subtrack.api.deps import get_current_actor, get_db, require_roles
from subtrack.models.user import UserRole
from subtrack.schemas.common import ActionResult, BulkResult, BulkToggleRequest, Page, Pagination
from subtrack.schemas.user import RoleAssignment, UserCreate, UserRead, UserUpdate
from subtrack.services.access import Actor
from subtrack.services.bulk import bulk_warning
from subtrack.services.user import UserService

router = APIRouter(prefix="/users", tags=["users"])


def _ok(user) -> ActionResult[UserRead]:
    return ActionResult[UserRead](success=True, data=UserRead.model_validate(user))


@router.get("", response_model=Page[UserRead])
def list_users(
    search: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Page[UserRead]:
    items, total = UserService(session).list_users(search, role, is_active, pagination)
    return Page[UserRead](items=[UserRead.model_validate(item) for item in items], total_count=total)


@router.post("", response_model=ActionResult[UserRead], status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[UserRead]:
    return _ok(UserService(session).create_user(actor, payload))


@router.post("/bulk-toggle", response_model=ActionResult[BulkResult])
def bulk_toggle_users(
    payload: BulkToggleRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[BulkResult]:
    result = UserService(session).bulk_toggle_active(actor, payload.ids, payload.is_active)
    return ActionResult[BulkResult](
        success=result.failed == 0,
        data=result,
        warning=bulk_warning(result, "user(s)"),
    )


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> UserRead:
    return UserRead.model_validate(UserService(session).get_user(user_id))


@router.patch("/{user_id}", response_model=ActionResult[UserRead])
def update_user(
    user_id: UUID,
    payload: UserUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[UserRead]:
    return _ok(UserService(session).update_user(actor, user_id, payload))


@router.put("/{user_id}/role", response_model=ActionResult[UserRead])
def assign_role(
    user_id: UUID,
    payload: RoleAssignment,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[UserRead]:
    return _ok(UserService(session).assign_role(actor, user_id, payload.role))


@router.post("/{user_id}/toggle", response_model=ActionResult[UserRead])
def toggle_user(
    user_id: UUID,
    is_active: bool,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[UserRead]:
    return _ok(UserService(session).toggle_active(actor, user_id, is_active))


@router.delete("/{user_id}", response_model=ActionResult[None])
def delete_user(
    user_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    UserService(session).delete_user(actor, user_id)
    return ActionResult[None](success=True)
