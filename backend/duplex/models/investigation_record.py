# backend/duplex/models/investigation_record.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from duplex.db.base_class import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvestigationRecordRow(Base):
    __tablename__ = "investigations"

    # one row per user; marking again overwrites the previous row
    user_id = Column(String, primary_key=True, index=True)
    status = Column(String, nullable=False, index=True)

    ticket_id = Column(String, nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    marked_at = Column(DateTime(timezone=True), nullable=True)
    suppress_until = Column(DateTime(timezone=True), nullable=True, index=True)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
