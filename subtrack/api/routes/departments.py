from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from subtrack.api.deps import get_current_actor, get_db, require_roles
from subtrack.models.user import UserRole
from subtrack.schemas.common import ActionResult, BulkResult, BulkToggleRequest, Page, Pagination
from subtrack.schemas.organization import (
    DepartmentAssignment,
    DepartmentCreate,
    DepartmentRead,
    DepartmentUpdate,
)
from subtrack.schemas.user import UserRead
from subtrack.services.access import Actor
from subtrack.services.bulk import bulk_warning
from subtrack.services.organization import OrganizationService

router = APIRouter(prefix="/departments", tags=["departments"])


def _service(session: Session) -> OrganizationService:
    return OrganizationService(session)


def _ok(department) -> ActionResult[DepartmentRead]:
    return ActionResult[DepartmentRead](success=True, data=DepartmentRead.model_validate(department))


@router.get("", response_model=Page[DepartmentRead])
def list_departments(
    search: str | None = None,
    is_active: bool | None = None,
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Page[DepartmentRead]:
    items, total = _service(session).list_departments(search, is_active, pagination)
    return Page[DepartmentRead](items=[DepartmentRead.model_validate(item) for item in items], total_count=total)


@router.post("", response_model=ActionResult[DepartmentRead], status_code=status.HTTP_201_CREATED)
def create_department(
    payload: DepartmentCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[DepartmentRead]:
    return _ok(_service(session).create_department(actor, payload))


@router.post("/bulk-toggle", response_model=ActionResult[BulkResult])
def bulk_toggle_departments(
    payload: BulkToggleRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[BulkResult]:
    result = _service(session).bulk_toggle_departments(actor, payload.ids, payload.is_active)
    return ActionResult[BulkResult](
        success=result.failed == 0,
        data=result,
        warning=bulk_warning(result, "department(s)"),
    )


@router.post("/poc-access", response_model=ActionResult[None], status_code=status.HTTP_201_CREATED)
def grant_poc_access(
    payload: DepartmentAssignment,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).grant_poc_access(actor, payload.user_id, payload.department_id)
    return ActionResult[None](success=True)


@router.delete("/{department_id}/poc-access/{user_id}", response_model=ActionResult[None])
def revoke_poc_access(
    department_id: UUID,
    user_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).revoke_poc_access(actor, user_id, department_id)
    return ActionResult[None](success=True)


@router.post("/hod-assignments", response_model=ActionResult[None], status_code=status.HTTP_201_CREATED)
def assign_hod(
    payload: DepartmentAssignment,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).assign_hod(actor, payload.user_id, payload.department_id)
    return ActionResult[None](success=True)


@router.delete("/{department_id}/hod-assignments/{user_id}", response_model=ActionResult[None])
def remove_hod(
    department_id: UUID,
    user_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).remove_hod(actor, user_id, department_id)
    return ActionResult[None](success=True)


@router.get("/{department_id}/members", response_model=dict[str, list[UserRead]])
def list_department_members(
    department_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> dict[str, list[UserRead]]:
    members = _service(session).list_department_members(department_id)
    return {key: [UserRead.model_validate(user) for user in users] for key, users in members.items()}


@router.get("/{department_id}", response_model=DepartmentRead)
def get_department(
    department_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> DepartmentRead:
    return DepartmentRead.model_validate(_service(session).get_department(department_id))


@router.patch("/{department_id}", response_model=ActionResult[DepartmentRead])
def update_department(
    department_id: UUID,
    payload: DepartmentUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[DepartmentRead]:
    return _ok(_service(session).update_department(actor, department_id, payload))


@router.post("/{department_id}/toggle", response_model=ActionResult[DepartmentRead])
def toggle_department(
    department_id: UUID,
    is_active: bool,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[DepartmentRead]:
    return _ok(_service(session).toggle_department(actor, department_id, is_active))


@router.delete("/{department_id}", response_model=ActionResult[None])
def delete_department(
    department_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).delete_department(actor, department_id)
    return ActionResult[None](success=True)
