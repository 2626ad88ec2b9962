from sqlalchemy.orm import Session, joinedload

from ats.constants import PIPELINE_STAGES
from ats.errors import NotFound
from ats.models.application import Application
from ats.models.job import Job
from ats.schemas.pipeline import KanbanCard, KanbanColumn, KanbanResponse
from ats.utils.timeutil import utcnow, whole_days_since


class KanbanProjector:
    """Groups applications into one column per pipeline stage, computed on every call."""

    def project(self, db: Session, job_id: str | None = None) -> KanbanResponse:
        query = db.query(Application).options(joinedload(Application.job))
        if job_id:
            if not db.query(Job.id).filter(Job.id == job_id).first():
                raise NotFound("Job not found", context={"job_id": job_id})
            query = query.filter(Application.job_id == job_id)
        apps = query.order_by(Application.stage_entered_at.asc()).all()

        now = utcnow()
        columns = {stage: [] for stage in PIPELINE_STAGES}
        for app in apps:
            columns[app.stage].append(
                KanbanCard(
                    id=app.id,
                    job_id=app.job_id,
                    job_title=app.job.title,
                    name=app.name,
                    email=app.email,
                    stage=app.stage,
                    time_in_stage=whole_days_since(app.stage_entered_at, now),
                    is_saved=app.is_saved,
                    is_invited=app.is_invited,
                    is_accepted=app.is_accepted,
                )
            )

        return KanbanResponse(
            job_id=job_id,
            total=len(apps),
            columns=[
                KanbanColumn(stage=stage, count=len(cards), applications=cards)
                for stage, cards in columns.items()
            ],
        )
