import logging
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from ats.constants import CHOICE_FIELD_TYPES, FIELD_TYPES
from ats.errors import NotFound, ValidationError
from ats.models.form_field import FormField
from ats.models.job import Job
from ats.schemas.field import FieldCreate, FieldOrder, FieldUpdate
from ats.services.audit_service import AuditTrail
from ats.services.identity_service import Principal, RequestMetadata
from ats.utils.timeutil import now_iso

logger = logging.getLogger("ats.schema")


def validate_field(field_type: str, question: str, options: list[str]) -> dict[str, str]:
    """Return a map of field name to problem; empty when the definition is valid."""
    problems = {}
    if field_type not in FIELD_TYPES:
        problems["type"] = f"Unknown field type '{field_type}'"
    if not question or not question.strip():
        problems["question"] = "Question is required"
    if field_type in CHOICE_FIELD_TYPES and not [o for o in options if o.strip()]:
        problems["options"] = f"Field type '{field_type}' needs at least one option"
    return problems


class FormSchemaRegistry:
    """Ordered field definitions that make up each job's application form.

    Fields sort by ``display_order``; equal orders fall back to insertion
    order (``seq``). Duplicate orders are allowed.
    """

    def __init__(self, audit: AuditTrail):
        self.audit = audit

    def get_schema(self, db: Session, job_id: str) -> list[FormField]:
        self._get_job(db, job_id)
        return (
            db.query(FormField)
            .filter(FormField.job_id == job_id)
            .order_by(FormField.display_order.asc(), FormField.seq.asc())
            .all()
        )

    def add_field(self, db: Session, job_id: str, data: FieldCreate, actor: Principal, metadata: RequestMetadata | None = None) -> str:
        job = self._get_job(db, job_id)
        options = [o.strip() for o in data.options if o.strip()]
        problems = validate_field(data.type, data.question, options)
        if problems:
            raise ValidationError("Invalid field definition", context={"fields": problems})

        seq = (db.query(func.max(FormField.seq)).filter(FormField.job_id == job.id).scalar() or 0) + 1
        field = FormField(
            id=str(uuid.uuid4()),
            job_id=job.id,
            field_type=data.type,
            question=data.question.strip(),
            options=options,
            required=data.required,
            display_order=data.order,
            seq=seq,
            created_at=now_iso(),
        )
        db.add(field)
        job.updated_at = now_iso()
        db.commit()

        self.audit.record({
            "actor_id": actor.id,
            "action": "FIELD_ADDED",
            "resource_type": "JobField",
            "resource_id": field.id,
            "details": {"job_id": job.id, "type": field.field_type, "question": field.question},
        }, metadata)
        return field.id

    def reorder_fields(self, db: Session, job_id: str, orders: list[FieldOrder], actor: Principal, metadata: RequestMetadata | None = None) -> int:
        job = self._get_job(db, job_id)
        by_id = {f.id: f for f in db.query(FormField).filter(FormField.job_id == job.id).all()}

        updated = 0
        for item in orders:
            field = by_id.get(item.field_id)
            if field is None:
                continue
            field.display_order = item.order
            updated += 1
        if updated:
            job.updated_at = now_iso()
        db.commit()

        self.audit.record({
            "actor_id": actor.id,
            "action": "FIELDS_REORDERED",
            "resource_type": "Job",
            "resource_id": job.id,
            "details": {"requested": len(orders), "updated": updated},
        }, metadata)
        return updated

    def update_field(self, db: Session, job_id: str, field_id: str, changes: FieldUpdate, actor: Principal, metadata: RequestMetadata | None = None) -> FormField:
        field = self._get_field(db, job_id, field_id)
        data = changes.model_dump(exclude_unset=True, exclude_none=True)

        field_type = data.get("type", field.field_type)
        question = data.get("question", field.question)
        options = data.get("options", field.options or [])
        options = [o.strip() for o in options if o.strip()]
        problems = validate_field(field_type, question, options)
        if problems:
            raise ValidationError("Invalid field definition", context={"fields": problems})

        field.field_type = field_type
        field.question = question.strip()
        field.options = options
        if "required" in data:
            field.required = data["required"]
        if "order" in data:
            field.display_order = data["order"]
        field.job.updated_at = now_iso()
        db.commit()
        db.refresh(field)

        self.audit.record({
            "actor_id": actor.id,
            "action": "FIELD_UPDATED",
            "resource_type": "JobField",
            "resource_id": field.id,
            "details": {"job_id": job_id, "changes": sorted(data)},
        }, metadata)
        return field

    def delete_field(self, db: Session, job_id: str, field_id: str, actor: Principal, metadata: RequestMetadata | None = None) -> int:
        """Remove a field definition and return how many fields remain.

        Answers already given to the field are kept; they show up as orphaned
        when the application is read.
        """
        field = self._get_field(db, job_id, field_id)
        question = field.question
        job = field.job
        db.delete(field)
        job.updated_at = now_iso()
        db.commit()

        remaining = db.query(func.count(FormField.id)).filter(FormField.job_id == job_id).scalar()
        if remaining == 0 and job.status == "active":
            logger.warning("Job %s is active with an empty form", job_id)

        self.audit.record({
            "actor_id": actor.id,
            "action": "FIELD_DELETED",
            "resource_type": "JobField",
            "resource_id": field_id,
            "details": {"job_id": job_id, "question": question, "remaining": remaining},
            "severity": "medium",
        }, metadata)
        return remaining

    def _get_job(self, db: Session, job_id: str) -> Job:
        job = db.query(Job).filter(Job.id == job_id).first()
        if not job:
            raise NotFound("Job not found", context={"job_id": job_id})
        return job

    def _get_field(self, db: Session, job_id: str, field_id: str) -> FormField:
        self._get_job(db, job_id)
        field = (
            db.query(FormField)
            .filter(FormField.id == field_id, FormField.job_id == job_id)
            .first()
        )
        if not field:
            raise NotFound("Field not found", context={"job_id": job_id, "field_id": field_id})
        return field
