from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ats.database import get_db
from ats.dependencies import get_request_metadata, get_services, require_admin
from ats.models.form_field import FormField
from ats.schemas.field import FieldCreate, FieldResponse, FieldUpdate, ReorderRequest, SchemaResponse
from ats.services.container import Services
from ats.services.identity_service import Principal, RequestMetadata

router = APIRouter(prefix="/jobs/{job_id}/fields", tags=["fields"])


def field_to_response(field: FormField) -> FieldResponse:
    return FieldResponse(
        id=field.id,
        job_id=field.job_id,
        type=field.field_type,
        question=field.question,
        options=field.options or [],
        required=field.required,
        order=field.display_order,
    )


def _schema_response(job_id: str, fields: list[FormField]) -> SchemaResponse:
    return SchemaResponse(
        job_id=job_id,
        has_schema=len(fields) > 0,
        total_fields=len(fields),
        fields=[field_to_response(f) for f in fields],
    )


@router.post("", response_model=FieldResponse, status_code=201)
async def add_field(
    job_id: str,
    req: FieldCreate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    field_id = services.schema.add_field(db, job_id, req, actor, metadata)
    field = db.query(FormField).filter(FormField.id == field_id).first()
    return field_to_response(field)


@router.get("", response_model=SchemaResponse)
async def get_schema(job_id: str, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    return _schema_response(job_id, services.schema.get_schema(db, job_id))


@router.patch("/reorder", response_model=SchemaResponse)
async def reorder_fields(
    job_id: str,
    req: ReorderRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    services.schema.reorder_fields(db, job_id, req.fields, actor, metadata)
    return _schema_response(job_id, services.schema.get_schema(db, job_id))


@router.patch("/{field_id}", response_model=FieldResponse)
async def update_field(
    job_id: str,
    field_id: str,
    req: FieldUpdate,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    field = services.schema.update_field(db, job_id, field_id, req, actor, metadata)
    return field_to_response(field)


@router.delete("/{field_id}")
async def delete_field(
    job_id: str,
    field_id: str,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    remaining = services.schema.delete_field(db, job_id, field_id, actor, metadata)
    return {"message": "Field deleted", "remaining_fields": remaining, "has_schema": remaining > 0}
