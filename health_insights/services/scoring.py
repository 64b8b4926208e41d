"""Composite health score."""

from collections.abc import Iterable, Mapping
from typing import Any

from health_insights.domain.models import (
    CareGap,
    CareGapStatus,
    InsightSeverity,
    Interpretation,
    Severity,
)

BASE_SCORE = 100
DUE_GAP_PENALTY = 10
SATISFIED_GAP_BONUS = 5
CONCERNING_VALUE_PENALTY = 5


def score(
    care_gaps: Iterable[CareGap | Mapping[str, Any]],
    interpretations: Iterable[Interpretation | Mapping[str, Any]],
) -> int:
    """
    Score overall health on a 0-100 scale.

    Starts at 100, loses 10 per due care gap and 5 per warning or critical
    interpretation, gains 5 per satisfied care gap, then clamps. The result
    does not depend on input order.
    """
    total = BASE_SCORE
    for gap in care_gaps:
        status = _field(gap, "status")
        if status == CareGapStatus.DUE:
            total -= DUE_GAP_PENALTY
        elif status == CareGapStatus.SATISFIED:
            total += SATISFIED_GAP_BONUS

    for interpretation in interpretations:
        if _field(interpretation, "severity") in (Severity.WARNING, Severity.CRITICAL):
            total -= CONCERNING_VALUE_PENALTY

    return max(0, min(100, total))


def score_band(health_score: int) -> InsightSeverity:
    if health_score >= 80:
        return InsightSeverity.POSITIVE
    if health_score >= 60:
        return InsightSeverity.INFO
    return InsightSeverity.WARNING


def _field(item: Any, name: str) -> Any:
    # str-valued enums compare equal to their raw string values
    if isinstance(item, Mapping):
        value = item.get(name)
        return value.lower() if isinstance(value, str) else value
    return getattr(item, name, None)
