from fastapi import APIRouter, Depends, Query, Response
from sqlmodel import Session

from subtrack.api.deps import get_db, require_roles
from subtrack.models.base import today
from subtrack.models.user import UserRole
from subtrack.schemas.reporting import AdminAnalytics
from subtrack.services.access import Actor
from subtrack.services.reporting import ReportingService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/analytics", response_model=AdminAnalytics)
def get_analytics(
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> AdminAnalytics:
    return ReportingService(session).analytics(actor)


@router.get("/export")
def export_csv(
    export_type: str = Query("users", alias="type"),
    session: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> Response:
    filename, content = ReportingService(session).export_csv(actor, export_type, today())
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=content, media_type="text/csv; charset=utf-8", headers=headers)
