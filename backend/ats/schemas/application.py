from pydantic import BaseModel, field_validator

# An answer is either a single text value or, for multi-select fields, a list.
AnswerValue = str | list[str]


class ApplicantInfo(BaseModel):
    # Blank values are accepted here so intake can report every missing
    # contact field at once.
    name: str = ""
    email: str = ""
    phone: str = ""
    country: str = ""
    city: str = ""


class AnswerIn(BaseModel):
    field_id: str
    value: AnswerValue

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_scalar(cls, v):
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v


class SubmitRequest(BaseModel):
    applicant: ApplicantInfo
    answers: list[AnswerIn] = []


class SubmitResponse(BaseModel):
    application_id: str
    stage: str
    attachment_url: str | None = None


class AnswerOut(BaseModel):
    field_id: str
    value: AnswerValue
    question: str | None = None
    orphaned: bool = False


class ApplicationResponse(BaseModel):
    id: str
    job_id: str
    job_title: str | None = None
    applicant_id: str
    name: str
    email: str
    phone: str
    country: str
    city: str
    stage: str
    stage_entered_at: str
    is_saved: bool
    is_invited: bool
    is_accepted: bool
    attachment_url: str | None
    answers: list[AnswerOut] = []
    created_at: str
    updated_at: str


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationResponse]
    total: int
    page: int
    per_page: int


class FlagsUpdate(BaseModel):
    is_saved: bool | None = None
    is_invited: bool | None = None
    is_accepted: bool | None = None
