from duplex.core.config import settings


def severity_from_score(score: int, has_fraud_report: bool = False) -> str:
    """
    Analyst-facing label for a verdict. Thresholds follow the detector
    weights: a fraud report is always critical, repeated impossible travel
    is high, a single impossible-travel leg is medium.
    """
    if has_fraud_report or score >= settings.WEIGHT_FRAUD_REPORT:
        return "critical"
    if score >= 2 * settings.WEIGHT_IMPOSSIBLE_TRAVEL:
        return "high"
    if score >= settings.WEIGHT_IMPOSSIBLE_TRAVEL:
        return "medium"
    return "low"
