from datetime import datetime

from sqlalchemy import Column, Text
from sqlalchemy.orm import relationship

from ats.database import Base
from ats.utils.timeutil import parse_iso, utcnow


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    deadline = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="draft")
    created_by = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    fields = relationship(
        "FormField",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="[FormField.display_order, FormField.seq]",
    )
    applications = relationship("Application", back_populates="job")

    @property
    def has_schema(self) -> bool:
        return len(self.fields) > 0

    def is_past_deadline(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > parse_iso(self.deadline)
