import json

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from ats.constants import CONTACT_FIELDS
from ats.database import get_db
from ats.dependencies import get_principal, get_request_metadata, get_services
from ats.errors import ValidationError
from ats.routers.fields import field_to_response
from ats.schemas.application import SubmitRequest, SubmitResponse
from ats.schemas.job import PublicJobDetail, PublicJobSummary
from ats.services.container import Services
from ats.services.identity_service import Principal, RequestMetadata
from ats.services.intake_service import Attachment
from ats.services.job_service import short_description

router = APIRouter(prefix="/public", tags=["public"])


@router.get("/jobs", response_model=list[PublicJobSummary])
async def list_public_jobs(db: Session = Depends(get_db), services: Services = Depends(get_services)):
    return [
        PublicJobSummary(
            id=j.id,
            title=j.title,
            short_description=short_description(j.description),
            deadline=j.deadline,
        )
        for j in services.jobs.list_visible_jobs(db)
    ]


@router.get("/jobs/{job_id}", response_model=PublicJobDetail)
async def get_public_job(job_id: str, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    job = services.jobs.get_visible_job(db, job_id)
    return PublicJobDetail(
        id=job.id,
        title=job.title,
        description=job.description,
        deadline=job.deadline,
        fields=[field_to_response(f) for f in services.schema.get_schema(db, job.id)],
    )


@router.post("/jobs/{job_id}/apply", response_model=SubmitResponse, status_code=201)
async def apply(
    job_id: str,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    principal: Principal | None = Depends(get_principal),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    """Submit an application as JSON, or as multipart form data with an optional ``cv`` file.

    Multipart submissions carry the contact details as plain form fields and
    the answers as a JSON-encoded ``answers`` field.
    """
    attachment = None
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        raw = {"applicant": {k: form.get(k) or "" for k in CONTACT_FIELDS}}
        try:
            raw["answers"] = json.loads(form.get("answers") or "[]")
        except json.JSONDecodeError:
            raise ValidationError("answers must be a JSON list", context={"fields": {"answers": "invalid JSON"}})
        upload = form.get("cv")
        if isinstance(upload, UploadFile) and upload.filename:
            attachment = await _read_upload(upload, services)
    else:
        try:
            raw = await request.json()
        except json.JSONDecodeError:
            raise ValidationError("Request body must be JSON", context={"fields": {"body": "invalid JSON"}})

    try:
        req = SubmitRequest.model_validate(raw)
    except SchemaValidationError as exc:
        problems = {".".join(str(p) for p in e["loc"]): e["msg"] for e in exc.errors()}
        raise ValidationError("Invalid application", context={"fields": problems})

    return services.intake.submit(
        db,
        job_id,
        req.applicant,
        req.answers,
        attachment=attachment,
        principal=principal,
        metadata=metadata,
    )


async def _read_upload(upload: UploadFile, services: Services) -> Attachment:
    content_type = upload.content_type or "application/octet-stream"
    if content_type not in services.config.allowed_upload_types:
        raise ValidationError(
            f"Unsupported file type {content_type}",
            context={"fields": {"cv": "must be a PDF or Word document"}},
        )

    max_bytes = services.config.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await upload.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise HTTPException(status_code=413, detail=f"File too large (max {max_bytes} bytes)")
        chunks.append(chunk)

    content = b"".join(chunks)
    if not content:
        raise ValidationError("Empty file", context={"fields": {"cv": "file is empty"}})
    return Attachment(data=content, filename=upload.filename, content_type=content_type)
