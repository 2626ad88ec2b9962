import logging
import math
import re
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ats.constants import CONTACT_FIELDS, INITIAL_STAGE, PIPELINE_STAGES
from ats.errors import Forbidden, Internal, InvalidOperation, NotFound, ValidationError
from ats.models.application import Answer, Application, StageHistory
from ats.models.form_field import FormField
from ats.schemas.application import (
    AnswerIn,
    AnswerOut,
    ApplicantInfo,
    ApplicationResponse,
    FlagsUpdate,
    SubmitResponse,
)
from ats.services.audit_service import AuditTrail
from ats.services.blob_service import BlobStore
from ats.services.dispatcher import TaskDispatcher
from ats.services.form_schema_service import FormSchemaRegistry
from ats.services.identity_service import Principal, RequestMetadata
from ats.services.job_service import JobCatalog
from ats.services.notification_service import NotificationService
from ats.utils.timeutil import now_iso

logger = logging.getLogger("ats.intake")

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
TIME_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}")


@dataclass
class Attachment:
    data: bytes
    filename: str
    content_type: str


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, list):
        return not any(isinstance(v, str) and v.strip() for v in value)
    return not str(value).strip()


def check_answer(field: FormField, value) -> str | None:
    """Check one answer against its field type. Returns a problem or None."""
    if field.field_type == "multi_choice":
        if not isinstance(value, list):
            return "expects a list of options"
        unknown = [v for v in value if v not in field.options]
        if unknown:
            return f"unknown options: {', '.join(unknown)}"
        return None

    if isinstance(value, list):
        return "expects a single value"
    if field.is_choice:
        if value not in field.options:
            return f"'{value}' is not one of the options"
    elif field.field_type == "rating":
        try:
            number = float(value)
        except ValueError:
            return "expects a number"
        if not math.isfinite(number):
            return "expects a finite number"
    elif field.field_type == "date":
        if not _parses(value, DATE_PATTERN, "%Y-%m-%d"):
            return "expects a date as YYYY-MM-DD"
    elif field.field_type == "time":
        if not _parses(value, TIME_PATTERN, "%H:%M"):
            return "expects a time as HH:MM"
    return None


def _parses(value: str, pattern: re.Pattern, fmt: str) -> bool:
    # strptime alone accepts unpadded parts such as 2024-1-5.
    if not pattern.fullmatch(value):
        return False
    try:
        datetime.strptime(value, fmt)
    except ValueError:
        return False
    return True


def application_to_response(app: Application, fields: list[FormField]) -> ApplicationResponse:
    questions = {f.id: f.question for f in fields}
    return ApplicationResponse(
        id=app.id,
        job_id=app.job_id,
        job_title=app.job.title if app.job else None,
        applicant_id=app.applicant_id,
        name=app.name,
        email=app.email,
        phone=app.phone,
        country=app.country,
        city=app.city,
        stage=app.stage,
        stage_entered_at=app.stage_entered_at,
        is_saved=app.is_saved,
        is_invited=app.is_invited,
        is_accepted=app.is_accepted,
        attachment_url=app.attachment_url,
        answers=[
            AnswerOut(
                field_id=a.field_id,
                value=a.value,
                question=questions.get(a.field_id),
                orphaned=a.field_id not in questions,
            )
            for a in app.answers
        ],
        created_at=app.created_at,
        updated_at=app.updated_at,
    )


class ApplicationIntake:
    """Validates submissions against a job's form and creates applications.

    An application is created together with its answers and its seed
    ``applied`` history entry in one transaction. The attachment upload,
    the confirmation mail and the audit entry are side effects: their
    failures are logged and never change the outcome of ``submit``.
    """

    def __init__(
        self,
        jobs: JobCatalog,
        schema: FormSchemaRegistry,
        blobs: BlobStore,
        notifier: NotificationService,
        dispatcher: TaskDispatcher,
        audit: AuditTrail,
    ):
        self.jobs = jobs
        self.schema = schema
        self.blobs = blobs
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.audit = audit

    def submit(
        self,
        db: Session,
        job_id: str,
        applicant: ApplicantInfo,
        answers: list[AnswerIn],
        attachment: Attachment | None = None,
        principal: Principal | None = None,
        metadata: RequestMetadata | None = None,
    ) -> SubmitResponse:
        job = self.jobs.get_job(db, job_id)
        if not self.jobs.is_visible(job):
            raise InvalidOperation(
                "This job is not accepting applications",
                code="not-accepting",
                context={"job_id": job.id, "status": job.status, "deadline": job.deadline},
            )

        contact = {k: (getattr(applicant, k) or "").strip() for k in CONTACT_FIELDS}
        contact["email"] = contact["email"].lower()
        missing_contact = [k for k in CONTACT_FIELDS if not contact[k]]
        if missing_contact:
            raise ValidationError(
                f"Missing applicant details: {', '.join(missing_contact)}",
                context={"missing": missing_contact},
            )

        if self._find_existing(db, job.id, contact["email"]):
            raise InvalidOperation(
                "You have already applied for this job",
                code="duplicate",
                context={"job_id": job.id, "email": contact["email"]},
            )

        fields = self.schema.get_schema(db, job.id)
        values = self._check_answers(fields, answers, attachment is not None)

        attachment_url = None
        new_blob = False
        if attachment is not None:
            attachment_url, new_blob = self._store_attachment(attachment)
            file_field = next((f for f in fields if f.field_type == "file"), None)
            if attachment_url and file_field is not None:
                values[file_field.id] = attachment_url

        now = now_iso()
        app = Application(
            id=str(uuid.uuid4()),
            job_id=job.id,
            applicant_id=principal.id if principal else contact["email"],
            stage=INITIAL_STAGE,
            stage_entered_at=now,
            is_saved=False,
            is_invited=False,
            is_accepted=False,
            attachment_url=attachment_url,
            created_at=now,
            updated_at=now,
            **contact,
        )
        app.answers = [
            Answer(id=str(uuid.uuid4()), field_id=field_id, value=value)
            for field_id, value in values.items()
        ]
        app.history = [
            StageHistory(
                id=str(uuid.uuid4()),
                seq=1,
                stage=INITIAL_STAGE,
                changed_by=app.applicant_id,
                notes="Application submitted",
                changed_at=now,
            )
        ]
        db.add(app)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if new_blob:
                self._discard_attachment(attachment)
            raise InvalidOperation(
                "You have already applied for this job",
                code="duplicate",
                context={"job_id": job.id, "email": contact["email"]},
            )
        except SQLAlchemyError as exc:
            db.rollback()
            if new_blob:
                self._discard_attachment(attachment)
            logger.exception("Could not persist application for job %s", job.id)
            raise Internal("Could not save the application") from exc
        logger.info("Application %s submitted for job %s", app.id, job.id)

        self.dispatcher.submit(
            self.notifier.notify_application_received,
            app.email,
            app.name,
            job.title,
            tasks=metadata.tasks if metadata is not None else None,
        )
        self.audit.record({
            "actor_id": app.applicant_id,
            "action": "APPLICATION_SUBMITTED",
            "resource_type": "Application",
            "resource_id": app.id,
            "details": {
                "job_id": job.id,
                "job_title": job.title,
                "applicant_name": app.name,
                "has_attachment": attachment_url is not None,
            },
        }, metadata)

        return SubmitResponse(application_id=app.id, stage=app.stage, attachment_url=attachment_url)

    def get_application(self, db: Session, application_id: str, requester: Principal) -> ApplicationResponse:
        app = self._get(db, application_id)
        if not (requester.is_admin or requester.id == app.applicant_id):
            raise Forbidden("You cannot view this application", context={"application_id": application_id})
        fields = self.schema.get_schema(db, app.job_id)
        return application_to_response(app, fields)

    def list_applications(
        self,
        db: Session,
        job_id: str | None = None,
        stage: str | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[ApplicationResponse], int]:
        """Newest first, optionally narrowed to one job and one stage."""
        if stage and stage not in PIPELINE_STAGES:
            raise ValidationError(
                f"Unknown stage '{stage}'",
                context={"fields": {"stage": f"must be one of {', '.join(PIPELINE_STAGES)}"}},
            )
        query = db.query(Application)
        if job_id:
            self.jobs.get_job(db, job_id)
            query = query.filter(Application.job_id == job_id)
        if stage:
            query = query.filter(Application.stage == stage)
        total = query.count()
        apps = (
            query.order_by(Application.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return self._to_responses(db, apps), total

    def list_my_applications(self, db: Session, principal: Principal) -> list[ApplicationResponse]:
        apps = (
            db.query(Application)
            .filter(Application.applicant_id == principal.id)
            .order_by(Application.created_at.desc())
            .all()
        )
        return self._to_responses(db, apps)

    def set_flags(self, db: Session, application_id: str, changes: FlagsUpdate, actor: Principal, metadata: RequestMetadata | None = None) -> ApplicationResponse:
        app = self._get(db, application_id)
        data = changes.model_dump(exclude_unset=True, exclude_none=True)
        if not data:
            raise ValidationError("No flags to update", context={"fields": {"flags": "provide at least one flag"}})

        for key, value in data.items():
            setattr(app, key, value)
        app.updated_at = now_iso()
        try:
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            raise Internal("Application was modified concurrently, try again", code="conflict") from exc
        db.refresh(app)

        self.audit.record({
            "actor_id": actor.id,
            "action": "APPLICATION_UPDATED",
            "resource_type": "Application",
            "resource_id": app.id,
            "details": {"flags": data},
        }, metadata)
        return application_to_response(app, self.schema.get_schema(db, app.job_id))

    def _get(self, db: Session, application_id: str) -> Application:
        app = db.query(Application).filter(Application.id == application_id).first()
        if not app:
            raise NotFound("Application not found", context={"application_id": application_id})
        return app

    @staticmethod
    def _find_existing(db: Session, job_id: str, email: str) -> Application | None:
        return (
            db.query(Application)
            .filter(Application.job_id == job_id, Application.email == email)
            .first()
        )

    @staticmethod
    def _check_answers(fields: list[FormField], answers: list[AnswerIn], has_attachment: bool) -> dict:
        by_id = {f.id: f for f in fields}
        values = {}
        unknown = []
        for answer in answers:
            if answer.field_id not in by_id:
                unknown.append(answer.field_id)
                continue
            if is_blank(answer.value):
                continue
            value = answer.value
            if isinstance(value, list):
                value = [v.strip() for v in value if v.strip()]
            else:
                value = value.strip()
            values[answer.field_id] = value
        if unknown:
            raise ValidationError(
                "Answers reference fields that are not on this form",
                context={"unknown_fields": unknown},
            )

        first_file = next((f for f in fields if f.field_type == "file"), None)
        missing = [
            f.question
            for f in fields
            if f.required
            and f.id not in values
            and not (has_attachment and first_file is not None and f.id == first_file.id)
        ]
        if missing:
            raise ValidationError(
                f"Missing required answers: {', '.join(missing)}",
                context={"missing": missing},
            )

        problems = {}
        for field_id, value in values.items():
            problem = check_answer(by_id[field_id], value)
            if problem:
                problems[by_id[field_id].question] = problem
        if problems:
            raise ValidationError("Some answers are invalid", context={"fields": problems})
        return values

    def _to_responses(self, db: Session, apps: list[Application]) -> list[ApplicationResponse]:
        schemas = {}
        responses = []
        for app in apps:
            if app.job_id not in schemas:
                schemas[app.job_id] = self.schema.get_schema(db, app.job_id)
            responses.append(application_to_response(app, schemas[app.job_id]))
        return responses

    def _store_attachment(self, attachment: Attachment) -> tuple[str | None, bool]:
        """Store the upload. Returns its URL and whether this call created the blob."""
        try:
            existed = self.blobs.contains(attachment.data, attachment.filename)
            url = self.blobs.store(attachment.data, attachment.content_type, attachment.filename)
        except Exception:
            logger.exception("Could not store attachment %s; continuing without it", attachment.filename)
            return None, False
        return url, not existed

    def _discard_attachment(self, attachment: Attachment):
        # Identical uploads share one blob; only blobs this submission created are removed.
        try:
            self.blobs.remove(attachment.data, attachment.filename)
        except OSError:
            logger.exception("Could not remove unreferenced blob for %s", attachment.filename)
