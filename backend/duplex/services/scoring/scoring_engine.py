# backend/duplex/services/scoring/scoring_engine.py
import logging
from datetime import datetime
from typing import Dict, List, Mapping, Sequence, Tuple

from duplex.schemas.findings import Finding, FindingKind, UserVerdict
from duplex.services.scoring.risk_utils import severity_from_score

logger = logging.getLogger(__name__)

# Order findings are listed in when they share a timestamp
_KIND_ORDER = {
    FindingKind.FRAUD_REPORT: 0,
    FindingKind.IMPOSSIBLE_TRAVEL: 1,
    FindingKind.DMP_FAILURE: 2,
    FindingKind.FAILURE_WITHOUT_RECOVERY: 3,
}


def compute_score(findings: Sequence[Finding]) -> int:
    return sum(f.weight for f in findings)


def _has_fraud(findings: Sequence[Finding]) -> bool:
    return any(f.kind == FindingKind.FRAUD_REPORT for f in findings)


def _finding_key(f: Finding) -> tuple:
    return (
        f.earliest_timestamp,
        _KIND_ORDER[f.kind],
        tuple(e.sequence for e in f.evidence),
    )


class ScoringEngine:
    """
    Turns per-user findings into a ranked list of verdicts.

    Sort key, most significant first:
      1. priority class: users with a fraud report before everyone else
      2. score, descending
      3. earliest contributing event, ascending
      4. user id, so the order is total

    The fraud class is a separate key rather than a large weight, so
    retuning weights can never move a non-fraud user above a fraud user.
    """

    @staticmethod
    def _rank_key(user_id: str, score: int, findings: Sequence[Finding]) -> Tuple:
        has_fraud = _has_fraud(findings)
        earliest: datetime = min(f.earliest_timestamp for f in findings)
        return (0 if has_fraud else 1, -score, earliest, user_id)

    def rank(self, findings_by_user: Mapping[str, Sequence[Finding]]) -> List[UserVerdict]:
        """
        Must only be called once every user's detection has finished:
        a user's rank depends on everyone else's score.
        """
        scored: List[Tuple[Tuple, str, int, List[Finding]]] = []

        for user_id, findings in findings_by_user.items():
            if not findings:
                continue
            ordered = sorted(findings, key=_finding_key)
            score = compute_score(ordered)
            scored.append((self._rank_key(user_id, score, ordered), user_id, score, ordered))

        scored.sort(key=lambda item: item[0])

        verdicts: List[UserVerdict] = []
        for position, (_key, user_id, score, ordered) in enumerate(scored, start=1):
            verdicts.append(
                UserVerdict(
                    user_id=user_id,
                    score=score,
                    risk_level=severity_from_score(score, _has_fraud(ordered)),
                    rank=position,
                    findings=ordered,
                )
            )

        logger.info("Ranked %d flagged users", len(verdicts))
        return verdicts

    @staticmethod
    def rerank(verdicts: Sequence[UserVerdict]) -> List[UserVerdict]:
        """Renumber ranks 1..n after users were removed from a ranked list."""
        return [
            v if v.rank == i else v.model_copy(update={"rank": i})
            for i, v in enumerate(verdicts, start=1)
        ]


def group_by_user(findings: Sequence[Finding]) -> Dict[str, List[Finding]]:
    grouped: Dict[str, List[Finding]] = {}
    for f in findings:
        grouped.setdefault(f.user_id, []).append(f)
    return grouped


scoring_engine = ScoringEngine()
