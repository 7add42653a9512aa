from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from subtrack.api.deps import get_current_actor, get_db
from subtrack.schemas.common import ActionResult
from subtrack.schemas.organization import MasterDataCreate, MasterDataRead
from subtrack.services.access import Actor
from subtrack.services.organization import OrganizationService

router = APIRouter(tags=["master-data"])


@router.get("/vendors", response_model=list[MasterDataRead])
def list_vendors(
    include_inactive: bool = False,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[MasterDataRead]:
    return [MasterDataRead.model_validate(item) for item in OrganizationService(session).list_vendors(include_inactive)]


@router.post("/vendors", response_model=ActionResult[MasterDataRead], status_code=status.HTTP_201_CREATED)
def create_vendor(
    payload: MasterDataCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[MasterDataRead]:
    vendor = OrganizationService(session).create_vendor(actor, payload.name)
    return ActionResult[MasterDataRead](success=True, data=MasterDataRead.model_validate(vendor))


@router.get("/products", response_model=list[MasterDataRead])
def list_products(
    include_inactive: bool = False,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[MasterDataRead]:
    return [MasterDataRead.model_validate(item) for item in OrganizationService(session).list_products(include_inactive)]


@router.post("/products", response_model=ActionResult[MasterDataRead], status_code=status.HTTP_201_CREATED)
def create_product(
    payload: MasterDataCreate,
    session: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ActionResult[MasterDataRead]:
    product = OrganizationService(session).create_product(actor, payload.name)
    return ActionResult[MasterDataRead](success=True, data=MasterDataRead.model_validate(product))
