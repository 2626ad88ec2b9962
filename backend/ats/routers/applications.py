from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ats.database import get_db
from ats.dependencies import get_request_metadata, get_services, require_admin, require_principal
from ats.schemas.application import ApplicationListResponse, ApplicationResponse, FlagsUpdate
from ats.services.container import Services
from ats.services.identity_service import Principal, RequestMetadata

router = APIRouter(tags=["applications"])


@router.get("/jobs/{job_id}/applications", response_model=ApplicationListResponse, dependencies=[Depends(require_admin)])
async def list_job_applications(
    job_id: str,
    stage: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    apps, total = services.intake.list_applications(db, job_id, stage, page, per_page)
    return ApplicationListResponse(applications=apps, total=total, page=page, per_page=per_page)


@router.get("/applications", response_model=ApplicationListResponse, dependencies=[Depends(require_admin)])
async def list_applications(
    job_id: str | None = None,
    stage: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    apps, total = services.intake.list_applications(db, job_id, stage, page, per_page)
    return ApplicationListResponse(applications=apps, total=total, page=page, per_page=per_page)


# Declared before /applications/{application_id} so "mine" is not taken as an id.
@router.get("/applications/mine", response_model=list[ApplicationResponse])
async def list_my_applications(
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    principal: Principal = Depends(require_principal),
):
    return services.intake.list_my_applications(db, principal)


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    requester: Principal = Depends(require_principal),
):
    return services.intake.get_application(db, application_id, requester)


@router.patch("/applications/{application_id}/flags", response_model=ApplicationResponse)
async def update_flags(
    application_id: str,
    req: FlagsUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    return services.intake.set_flags(db, application_id, req, actor, metadata)
