# backend/duplex/schemas/investigation.py
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from duplex.schemas.auth_event import to_utc


class InvestigationStatus(str, Enum):
    NONE = "none"
    OPEN = "open"
    INVESTIGATED = "investigated"


class InvestigationRecord(BaseModel):
    """
    Persisted suppression state for one user. Nothing computed during a
    run (scores, findings) is ever stored here.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    status: InvestigationStatus = InvestigationStatus.NONE
    ticket_id: Optional[str] = None
    opened_at: Optional[datetime] = None
    marked_at: Optional[datetime] = None
    suppress_until: Optional[datetime] = None

    @field_validator("opened_at", "marked_at", "suppress_until")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v) if v is not None else None

    def is_suppressing(self, as_of: datetime) -> bool:
        """True while the 24h window is running; expires at suppress_until."""
        if self.status != InvestigationStatus.INVESTIGATED:
            return False
        if self.suppress_until is None:
            return False
        return to_utc(as_of) < self.suppress_until

    def effective_status(self, as_of: datetime) -> InvestigationStatus:
        if self.status == InvestigationStatus.INVESTIGATED and not self.is_suppressing(as_of):
            return InvestigationStatus.NONE
        return self.status
