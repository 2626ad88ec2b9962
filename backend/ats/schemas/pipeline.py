from pydantic import BaseModel


class MoveStageRequest(BaseModel):
    stage: str
    notes: str | None = None


class MoveStageResponse(BaseModel):
    application_id: str
    previous_stage: str
    stage: str
    stage_entered_at: str
    changed_by: str
    history_length: int


class HistoryEntryResponse(BaseModel):
    seq: int
    stage: str
    changed_by: str
    notes: str | None
    changed_at: str


class StageHistoryResponse(BaseModel):
    application_id: str
    current_stage: str
    history: list[HistoryEntryResponse]


class KanbanCard(BaseModel):
    id: str
    job_id: str
    job_title: str
    name: str
    email: str
    stage: str
    time_in_stage: int  # whole days since the current stage was entered
    is_saved: bool
    is_invited: bool
    is_accepted: bool


class KanbanColumn(BaseModel):
    stage: str
    count: int
    applications: list[KanbanCard]


class KanbanResponse(BaseModel):
    job_id: str | None
    total: int
    columns: list[KanbanColumn]


class StageStat(BaseModel):
    stage: str
    count: int
    average_days_in_stage: float


class PipelineStatsResponse(BaseModel):
    job_id: str
    job_title: str
    total_applications: int
    breakdown: list[StageStat]
    note: str
