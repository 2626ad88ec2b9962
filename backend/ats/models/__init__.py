from ats.models.job import Job
from ats.models.form_field import FormField
from ats.models.application import Application, Answer, StageHistory
from ats.models.audit import AuditEntry

__all__ = ["Job", "FormField", "Application", "Answer", "StageHistory", "AuditEntry"]
