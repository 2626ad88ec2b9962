from datetime import datetime

from pydantic import BaseModel

from ats.schemas.field import FieldResponse


class JobCreate(BaseModel):
    title: str
    description: str
    deadline: datetime


class JobUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    deadline: datetime | None = None


class JobStatusUpdate(BaseModel):
    status: str


class JobResponse(BaseModel):
    id: str
    title: str
    description: str
    deadline: str
    status: str
    has_schema: bool
    is_visible: bool
    field_count: int = 0
    application_count: int = 0
    created_by: str
    created_at: str
    updated_at: str


class JobDetailResponse(JobResponse):
    fields: list[FieldResponse] = []


class JobStatusResponse(BaseModel):
    id: str
    previous_status: str
    status: str
    has_schema: bool
    deadline: str
    updated_at: str


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int
    page: int
    per_page: int


class PublicJobSummary(BaseModel):
    id: str
    title: str
    short_description: str
    deadline: str


class PublicJobDetail(BaseModel):
    id: str
    title: str
    description: str
    deadline: str
    fields: list[FieldResponse]
