from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ats.database import get_db
from ats.dependencies import get_services, require_admin
from ats.schemas.audit import AuditFilters, AuditPage
from ats.services.container import Services

router = APIRouter(
    prefix="/audit",
    tags=["audit"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=AuditPage)
async def query_audit(
    actor_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    status: str | None = None,
    severity: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    filters = AuditFilters(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        status=status,
        severity=severity,
        start=start,
        end=end,
    )
    return services.audit.query(db, filters, page, limit)


@router.get("/{resource_type}/{resource_id}", response_model=AuditPage)
async def resource_history(
    resource_type: str,
    resource_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    return services.audit.resource_history(db, resource_type, resource_id, page, limit)
