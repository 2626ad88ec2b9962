from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ats.constants import CHOICE_FIELD_TYPES
from ats.database import Base


class FormField(Base):
    __tablename__ = "form_fields"

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    field_type = Column(Text, nullable=False)
    question = Column(Text, nullable=False)
    options = Column(JSON, nullable=False, default=list)
    required = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=1)
    seq = Column(Integer, nullable=False)
    created_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="fields")

    @property
    def is_choice(self) -> bool:
        return self.field_type in CHOICE_FIELD_TYPES
