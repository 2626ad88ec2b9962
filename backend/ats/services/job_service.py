import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from ats.constants import JOB_STATUSES
from ats.errors import InvalidOperation, NotFound, ValidationError
from ats.models.form_field import FormField
from ats.models.job import Job
from ats.schemas.job import JobCreate, JobUpdate
from ats.services.audit_service import AuditTrail
from ats.services.identity_service import Principal, RequestMetadata
from ats.utils.timeutil import now_iso, to_iso, utcnow

logger = logging.getLogger("ats.jobs")

SHORT_DESCRIPTION_LENGTH = 100


def short_description(text: str) -> str:
    if len(text) <= SHORT_DESCRIPTION_LENGTH:
        return text
    return text[:SHORT_DESCRIPTION_LENGTH].rstrip() + "..."


class JobCatalog:
    def __init__(self, audit: AuditTrail):
        self.audit = audit

    def get_job(self, db: Session, job_id: str) -> Job:
        job = db.query(Job).filter(Job.id == job_id).first()
        if not job:
            raise NotFound("Job not found", context={"job_id": job_id})
        return job

    @staticmethod
    def is_visible(job: Job, now: datetime | None = None) -> bool:
        return job.status == "active" and not job.is_past_deadline(now)

    def create_job(self, db: Session, data: JobCreate, actor: Principal, metadata: RequestMetadata | None = None) -> Job:
        problems = {}
        if not data.title.strip():
            problems["title"] = "Title is required"
        if not data.description.strip():
            problems["description"] = "Description is required"
        deadline = self._check_deadline(data.deadline, problems)
        if problems:
            raise ValidationError("Invalid job", context={"fields": problems})

        now = now_iso()
        job = Job(
            id=str(uuid.uuid4()),
            title=data.title.strip(),
            description=data.description.strip(),
            deadline=deadline,
            status="draft",
            created_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        logger.info("Job %s created by %s", job.id, actor.id)

        self.audit.record({
            "actor_id": actor.id,
            "action": "JOB_CREATED",
            "resource_type": "Job",
            "resource_id": job.id,
            "details": {"title": job.title, "deadline": job.deadline},
        }, metadata)
        return job

    def update_job(self, db: Session, job_id: str, data: JobUpdate, actor: Principal, metadata: RequestMetadata | None = None) -> Job:
        job = self.get_job(db, job_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        problems = {}
        for key in ("title", "description"):
            if key in changes:
                changes[key] = changes[key].strip()
                if not changes[key]:
                    problems[key] = f"{key.capitalize()} cannot be blank"
        if "deadline" in changes:
            changes["deadline"] = self._check_deadline(changes["deadline"], problems)
        if problems:
            raise ValidationError("Invalid job update", context={"fields": problems})

        for key, value in changes.items():
            setattr(job, key, value)
        job.updated_at = now_iso()
        db.commit()
        db.refresh(job)

        self.audit.record({
            "actor_id": actor.id,
            "action": "JOB_UPDATED",
            "resource_type": "Job",
            "resource_id": job.id,
            "details": {"changes": sorted(changes)},
        }, metadata)
        return job

    def set_status(self, db: Session, job_id: str, status: str, actor: Principal, metadata: RequestMetadata | None = None) -> tuple[Job, str]:
        """Publish, close or reopen a job. Returns the job and its previous status."""
        if status not in JOB_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'",
                context={"fields": {"status": f"must be one of {', '.join(JOB_STATUSES)}"}},
            )
        job = self.get_job(db, job_id)
        previous = job.status
        if previous == status:
            raise InvalidOperation(f"Job is already {status}", code="no-op", context={"status": status})
        if status == "draft":
            raise InvalidOperation("A job cannot return to draft", context={"status": previous})
        if status == "active" and not job.has_schema:
            raise InvalidOperation(
                "Add at least one form field before publishing",
                code="schema-empty",
                context={"job_id": job.id},
            )

        job.status = status
        job.updated_at = now_iso()
        db.commit()
        db.refresh(job)
        logger.info("Job %s: %s -> %s", job.id, previous, status)

        if status == "closed":
            action = "JOB_CLOSED"
        elif previous == "closed":
            action = "JOB_REOPENED"
        else:
            action = "JOB_PUBLISHED"
        self.audit.record({
            "actor_id": actor.id,
            "action": action,
            "resource_type": "Job",
            "resource_id": job.id,
            "details": {"title": job.title, "from": previous, "to": status},
            "severity": "medium",
        }, metadata)
        return job, previous

    def list_jobs(
        self,
        db: Session,
        status: str | None = None,
        has_schema: bool | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[Job], int]:
        query = db.query(Job)
        if status:
            query = query.filter(Job.status == status)
        if has_schema is not None:
            with_fields = select(FormField.job_id).distinct()
            if has_schema:
                query = query.filter(Job.id.in_(with_fields))
            else:
                query = query.filter(Job.id.not_in(with_fields))

        total = query.count()
        jobs = query.order_by(Job.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return jobs, total

    def list_visible_jobs(self, db: Session) -> list[Job]:
        now = utcnow()
        jobs = (
            db.query(Job)
            .filter(Job.status == "active", Job.deadline >= to_iso(now))
            .order_by(Job.deadline.asc())
            .all()
        )
        return [j for j in jobs if self.is_visible(j, now)]

    def get_visible_job(self, db: Session, job_id: str) -> Job:
        job = self.get_job(db, job_id)
        if not self.is_visible(job):
            raise NotFound("Job not found", context={"job_id": job_id})
        return job

    @staticmethod
    def _check_deadline(deadline: datetime, problems: dict) -> str:
        value = to_iso(deadline)
        if value <= to_iso(utcnow()):
            problems["deadline"] = "Deadline must be in the future"
        return value
