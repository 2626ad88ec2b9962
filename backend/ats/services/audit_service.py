import logging
import math
import uuid
from typing import Any, Iterable

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session, sessionmaker

from ats.models.audit import AuditEntry
from ats.schemas.audit import (
    AuditEntryCreate,
    AuditEntryResponse,
    AuditFilters,
    AuditPage,
    Pagination,
)
from ats.services.dispatcher import TaskDispatcher
from ats.services.identity_service import RequestMetadata
from ats.utils.timeutil import now_iso, to_iso

logger = logging.getLogger("ats.audit")


def entry_to_response(entry: AuditEntry) -> AuditEntryResponse:
    return AuditEntryResponse(
        id=entry.id,
        actor_id=entry.actor_id,
        action=entry.action,
        resource_type=entry.resource_type,
        resource_id=entry.resource_id,
        details=entry.details or {},
        status=entry.status,
        severity=entry.severity,
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        created_at=entry.created_at,
    )


class AuditTrail:
    """Immutable log of mutating actions.

    ``record`` never raises and never waits for the database: it validates the
    entry, then hands the insert to the dispatcher, which runs it after the
    response when the request supplied background tasks. Callers invoke it only
    after their own mutation has committed, so the order between a mutation
    and its audit entry is best effort. Entries older than the retention
    window are purged by the store itself.
    """

    def __init__(self, session_factory: sessionmaker, dispatcher: TaskDispatcher):
        self._session_factory = session_factory
        self._dispatcher = dispatcher

    def record(self, entry: AuditEntryCreate | dict[str, Any], metadata: RequestMetadata | None = None) -> bool:
        try:
            validated = self._validate(entry, metadata)
        except SchemaValidationError as exc:
            logger.warning("Dropping malformed audit entry %r: %s", entry, exc.errors(include_url=False))
            return False
        tasks = metadata.tasks if metadata is not None else None
        return self._dispatcher.submit(self.write, validated, tasks=tasks)

    def record_many(self, entries: Iterable[AuditEntryCreate | dict[str, Any]], metadata: RequestMetadata | None = None) -> int:
        accepted = []
        for entry in entries:
            try:
                accepted.append(self._validate(entry, metadata))
            except SchemaValidationError as exc:
                logger.warning("Dropping malformed audit entry %r: %s", entry, exc.errors(include_url=False))
        if not accepted:
            return 0
        tasks = metadata.tasks if metadata is not None else None
        self._dispatcher.submit(self.write_many, accepted, tasks=tasks)
        return len(accepted)

    def write(self, entry: AuditEntryCreate) -> str | None:
        ids = self.write_many([entry])
        return ids[0] if ids else None

    def write_many(self, entries: list[AuditEntryCreate]) -> list[str]:
        db = self._session_factory()
        try:
            rows = [self._to_row(e) for e in entries]
            ids = [r.id for r in rows]
            db.add_all(rows)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to persist %d audit entries", len(entries))
            return []
        finally:
            db.close()
        for e in entries:
            logger.info("[audit] %s by %s on %s %s", e.action, e.actor_id, e.resource_type, e.resource_id or "")
        return ids

    def query(self, db: Session, filters: AuditFilters | None = None, page: int = 1, limit: int = 50) -> AuditPage:
        filters = filters or AuditFilters()
        q = db.query(AuditEntry)

        if filters.actor_id:
            q = q.filter(AuditEntry.actor_id == filters.actor_id)
        if filters.action:
            q = q.filter(AuditEntry.action == filters.action)
        if filters.resource_type:
            q = q.filter(AuditEntry.resource_type == filters.resource_type)
        if filters.resource_id:
            q = q.filter(AuditEntry.resource_id == filters.resource_id)
        if filters.status:
            q = q.filter(AuditEntry.status == filters.status)
        if filters.severity:
            q = q.filter(AuditEntry.severity == filters.severity)
        # Timestamps are fixed-width UTC strings, so string bounds are time bounds.
        if filters.start:
            q = q.filter(AuditEntry.created_at >= to_iso(filters.start))
        if filters.end:
            q = q.filter(AuditEntry.created_at <= to_iso(filters.end))

        total = q.count()
        rows = (
            q.order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return AuditPage(
            entries=[entry_to_response(r) for r in rows],
            pagination=Pagination(
                total=total,
                page=page,
                pages=math.ceil(total / limit) if limit else 0,
                limit=limit,
            ),
        )

    def resource_history(self, db: Session, resource_type: str, resource_id: str, page: int = 1, limit: int = 50) -> AuditPage:
        return self.query(db, AuditFilters(resource_type=resource_type, resource_id=resource_id), page, limit)

    def _validate(self, entry, metadata: RequestMetadata | None) -> AuditEntryCreate:
        if isinstance(entry, AuditEntryCreate):
            validated = entry
        else:
            validated = AuditEntryCreate.model_validate(entry)
        if metadata is not None:
            validated = validated.model_copy(update={
                "ip_address": validated.ip_address or metadata.ip_address,
                "user_agent": validated.user_agent or metadata.user_agent,
            })
        return validated

    @staticmethod
    def _to_row(entry: AuditEntryCreate) -> AuditEntry:
        return AuditEntry(
            id=str(uuid.uuid4()),
            actor_id=entry.actor_id,
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            details=entry.details,
            status=entry.status,
            severity=entry.severity,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=now_iso(),
        )
