from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from subtrack.api.deps import get_current_actor, get_db
from subtrack.schemas.common import ActionResult, BulkResult, BulkToggleRequest, Page, Pagination
from subtrack.schemas.organization import LocationCreate, LocationRead, LocationUpdate
from subtrack.services.access import Actor
from subtrack.services.bulk import bulk_warning
from subtrack.services.organization import OrganizationService

router = APIRouter(prefix="/locations", tags=["locations"])


def _service(session: Session) -> OrganizationService:
    return OrganizationService(session)


def _ok(location) -> ActionResult[LocationRead]:
    return ActionResult[LocationRead](success=True, data=LocationRead.model_validate(location))


@router.get("", response_model=Page[LocationRead])
def list_locations(
    search: str | None = None,
    is_active: bool | None = None,
    pagination: Pagination = Depends(),
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Page[LocationRead]:
    items, total = _service(session).list_locations(search, is_active, pagination)
    return Page[LocationRead](items=[LocationRead.model_validate(item) for item in items], total_count=total)


@router.post("", response_model=ActionResult[LocationRead], status_code=status.HTTP_201_CREATED)
def create_location(
    payload: LocationCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[LocationRead]:
    return _ok(_service(session).create_location(actor, payload))


@router.post("/bulk-toggle", response_model=ActionResult[BulkResult])
def bulk_toggle_locations(
    payload: BulkToggleRequest,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[BulkResult]:
    result = _service(session).bulk_toggle_locations(actor, payload.ids, payload.is_active)
    return ActionResult[BulkResult](
        success=result.failed == 0,
        data=result,
        warning=bulk_warning(result, "location(s)"),
    )


@router.get("/{location_id}", response_model=LocationRead)
def get_location(
    location_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> LocationRead:
    return LocationRead.model_validate(_service(session).get_location(location_id))


@router.patch("/{location_id}", response_model=ActionResult[LocationRead])
def update_location(
    location_id: UUID,
    payload: LocationUpdate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[LocationRead]:
    return _ok(_service(session).update_location(actor, location_id, payload))


@router.post("/{location_id}/toggle", response_model=ActionResult[LocationRead])
def toggle_location(
    location_id: UUID,
    is_active: bool,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[LocationRead]:
    return _ok(_service(session).toggle_location(actor, location_id, is_active))


@router.delete("/{location_id}", response_model=ActionResult[None])
def delete_location(
    location_id: UUID,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[None]:
    _service(session).delete_location(actor, location_id)
    return ActionResult[None](success=True)
