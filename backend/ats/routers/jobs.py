from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ats.database import get_db
from ats.dependencies import get_request_metadata, get_services, require_admin
from ats.models.application import Application
from ats.models.job import Job
from ats.routers.fields import field_to_response
from ats.schemas.job import (
    JobCreate,
    JobDetailResponse,
    JobListResponse,
    JobResponse,
    JobStatusResponse,
    JobStatusUpdate,
    JobUpdate,
)
from ats.services.container import Services
from ats.services.identity_service import Principal, RequestMetadata
from ats.services.job_service import JobCatalog

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    dependencies=[Depends(require_admin)],
)


def _job_to_response(job: Job, db: Session) -> JobResponse:
    application_count = db.query(func.count(Application.id)).filter(Application.job_id == job.id).scalar()
    return JobResponse(
        id=job.id,
        title=job.title,
        description=job.description,
        deadline=job.deadline,
        status=job.status,
        has_schema=job.has_schema,
        is_visible=JobCatalog.is_visible(job),
        field_count=len(job.fields),
        application_count=application_count,
        created_by=job.created_by,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    req: JobCreate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    job = services.jobs.create_job(db, req, actor, metadata)
    return _job_to_response(job, db)


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: str | None = None,
    has_schema: bool | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    jobs, total = services.jobs.list_jobs(db, status, has_schema, page, per_page)
    return JobListResponse(
        jobs=[_job_to_response(j, db) for j in jobs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_job(job_id: str, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    job = services.jobs.get_job(db, job_id)
    fields = services.schema.get_schema(db, job_id)
    return JobDetailResponse(
        **_job_to_response(job, db).model_dump(),
        fields=[field_to_response(f) for f in fields],
    )


@router.patch("/{job_id}", response_model=JobResponse)
async def update_job(
    job_id: str,
    req: JobUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    job = services.jobs.update_job(db, job_id, req, actor, metadata)
    return _job_to_response(job, db)


@router.patch("/{job_id}/status", response_model=JobStatusResponse)
async def set_job_status(
    job_id: str,
    req: JobStatusUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    job, previous = services.jobs.set_status(db, job_id, req.status, actor, metadata)
    return JobStatusResponse(
        id=job.id,
        previous_status=previous,
        status=job.status,
        has_schema=job.has_schema,
        deadline=job.deadline,
        updated_at=job.updated_at,
    )
