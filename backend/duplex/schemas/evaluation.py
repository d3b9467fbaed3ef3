# backend/duplex/schemas/evaluation.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from duplex.schemas.auth_event import to_utc
from duplex.schemas.findings import UserVerdict


class EvaluationWindow(BaseModel):
    """
    Bounded slice of 2FA activity to evaluate. The window end is also the
    evaluation time: account age and suppression are judged as of `end`.
    """
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return to_utc(v)

    @model_validator(mode="after")
    def _ordered(self) -> "EvaluationWindow":
        if self.end < self.start:
            raise ValueError("window end must not be before window start")
        return self

    @property
    def as_of(self) -> datetime:
        return self.end

    def contains(self, ts: datetime) -> bool:
        return self.start <= to_utc(ts) <= self.end


class UserEvaluationError(BaseModel):
    user_id: str
    stage: str  # fetch | suppression | detection
    error_type: str
    error: str


class EvaluationWarning(BaseModel):
    user_id: str
    code: str  # e.g. "concurrent_mark_conflict"
    message: str


class EvaluationReport(BaseModel):
    """
    Everything one run produced. `verdicts` is the ranked, already
    suppression-filtered output handed to the ticketing layer.
    """
    window: EvaluationWindow
    verdicts: List[UserVerdict] = Field(default_factory=list)
    errors: List[UserEvaluationError] = Field(default_factory=list)
    warnings: List[EvaluationWarning] = Field(default_factory=list)

    users_seen: int = 0
    users_excluded: int = 0
    users_suppressed: int = 0
    malformed_events: int = 0

    @property
    def partial_failure(self) -> bool:
        return bool(self.errors)

    def error_for(self, user_id: str) -> Optional[UserEvaluationError]:
        for err in self.errors:
            if err.user_id == user_id:
                return err
        return None
