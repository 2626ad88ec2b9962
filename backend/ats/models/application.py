from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ats.database import Base


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (UniqueConstraint("job_id", "email"),)

    id = Column(Text, primary_key=True)
    job_id = Column(Text, ForeignKey("jobs.id"), nullable=False)
    applicant_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    country = Column(Text, nullable=False)
    city = Column(Text, nullable=False)
    stage = Column(Text, nullable=False, default="applied")
    stage_entered_at = Column(Text, nullable=False)
    is_saved = Column(Boolean, nullable=False, default=False)
    is_invited = Column(Boolean, nullable=False, default=False)
    is_accepted = Column(Boolean, nullable=False, default=False)
    attachment_url = Column(Text)
    version = Column(Integer, nullable=False)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    job = relationship("Job", back_populates="applications")
    answers = relationship("Answer", back_populates="application", cascade="all, delete-orphan")
    history = relationship(
        "StageHistory",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="StageHistory.seq",
    )

    # Every UPDATE is guarded by "WHERE version = <loaded>"; a stale write
    # raises StaleDataError on flush.
    __mapper_args__ = {"version_id_col": version}


class Answer(Base):
    __tablename__ = "answers"

    id = Column(Text, primary_key=True)
    application_id = Column(Text, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    # Not a foreign key: a deleted field leaves its answers behind.
    field_id = Column(Text, nullable=False)
    value = Column(JSON, nullable=False)

    application = relationship("Application", back_populates="answers")


class StageHistory(Base):
    __tablename__ = "stage_history"
    __table_args__ = (UniqueConstraint("application_id", "seq"),)

    id = Column(Text, primary_key=True)
    application_id = Column(Text, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    seq = Column(Integer, nullable=False)
    stage = Column(Text, nullable=False)
    changed_by = Column(Text, nullable=False)
    notes = Column(Text)
    changed_at = Column(Text, nullable=False)

    application = relationship("Application", back_populates="history")
