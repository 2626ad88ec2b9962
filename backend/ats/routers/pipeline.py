from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ats.database import get_db
from ats.dependencies import get_request_metadata, get_services, require_admin, require_principal
from ats.schemas.pipeline import (
    KanbanResponse,
    MoveStageRequest,
    MoveStageResponse,
    PipelineStatsResponse,
    StageHistoryResponse,
)
from ats.services.container import Services
from ats.services.identity_service import Principal, RequestMetadata

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


@router.patch("/applications/{application_id}/move-stage", response_model=MoveStageResponse)
async def move_stage(
    application_id: str,
    req: MoveStageRequest,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    actor: Principal = Depends(require_admin),
    metadata: RequestMetadata = Depends(get_request_metadata),
):
    return services.pipeline.move_stage(db, application_id, req.stage, actor, req.notes, metadata)


@router.get("/applications/{application_id}/stage-history", response_model=StageHistoryResponse)
async def stage_history(
    application_id: str,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
    requester: Principal = Depends(require_principal),
):
    return services.pipeline.get_stage_history(db, application_id, requester)


@router.get("/kanban", response_model=KanbanResponse, dependencies=[Depends(require_admin)])
async def kanban(
    job_id: str | None = None,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    return services.pipeline.get_kanban(db, job_id)


@router.get("/jobs/{job_id}/stats", response_model=PipelineStatsResponse, dependencies=[Depends(require_admin)])
async def pipeline_stats(job_id: str, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    return services.pipeline.get_pipeline_stats(db, job_id)
