from sqlalchemy import JSON, Column, Text
from ats.database import Base


class AuditEntry(Base):
    __tablename__ = "audit_entries"

    id = Column(Text, primary_key=True)
    actor_id = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    resource_type = Column(Text, nullable=False)
    resource_id = Column(Text)
    details = Column(JSON, nullable=False, default=dict)
    status = Column(Text, nullable=False, default="success")
    severity = Column(Text, nullable=False, default="low")
    ip_address = Column(Text)
    user_agent = Column(Text)
    created_at = Column(Text, nullable=False)
