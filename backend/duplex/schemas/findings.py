# backend/duplex/schemas/findings.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from duplex.schemas.auth_event import AuthEvent


class FindingKind(str, Enum):
    FRAUD_REPORT = "fraud_report"
    FAILURE_WITHOUT_RECOVERY = "failure_without_recovery"
    IMPOSSIBLE_TRAVEL = "impossible_travel"
    DMP_FAILURE = "dmp_failure"


class Finding(BaseModel):
    """
    A single detected anomaly, e.g.
    - "fraud reported from 1.2.3.4"
    - "4000 km in 60 minutes"
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    kind: FindingKind
    weight: int
    evidence: Tuple[AuthEvent, ...]
    detected_at: datetime
    description: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def earliest_timestamp(self) -> datetime:
        return min(e.timestamp for e in self.evidence)


class UserVerdict(BaseModel):
    """
    Per-user output of the scoring engine. Recomputed every run.
    """
    user_id: str
    score: int
    risk_level: str  # low/medium/high/critical
    rank: int
    findings: List[Finding]

    @property
    def has_fraud_report(self) -> bool:
        return any(f.kind == FindingKind.FRAUD_REPORT for f in self.findings)
