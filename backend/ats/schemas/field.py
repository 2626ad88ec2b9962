from pydantic import BaseModel


class FieldCreate(BaseModel):
    type: str
    question: str
    options: list[str] = []
    required: bool = False
    order: int = 1


class FieldUpdate(BaseModel):
    type: str | None = None
    question: str | None = None
    options: list[str] | None = None
    required: bool | None = None
    order: int | None = None


class FieldOrder(BaseModel):
    field_id: str
    order: int


class ReorderRequest(BaseModel):
    fields: list[FieldOrder]


class FieldResponse(BaseModel):
    id: str
    job_id: str
    type: str
    question: str
    options: list[str]
    required: bool
    order: int


class SchemaResponse(BaseModel):
    job_id: str
    has_schema: bool
    total_fields: int
    fields: list[FieldResponse]
