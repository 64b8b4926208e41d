"""
Ranking of outstanding care gaps into a short list of priority actions.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from health_insights.domain.clock import coerce_now, days_between
from health_insights.domain.models import (
    CareGap,
    CareGapPriority,
    CareGapStatus,
    PriorityAction,
    Urgency,
)
from health_insights.services.normalizer import normalize_care_gap

# Horizon assumed for due gaps that carry no due date
DEFAULT_DAYS_UNTIL_DUE = 30
HIGH_URGENCY_WINDOW_DAYS = 14
DEFAULT_PRIORITY_LIMIT = 3

URGENCY_RANK: MappingProxyType[Urgency, int] = MappingProxyType(
    {Urgency.CRITICAL: 0, Urgency.HIGH: 1, Urgency.MEDIUM: 2}
)


def urgency_for(days_until_due: int, priority: CareGapPriority | str) -> Urgency:
    if days_until_due < 0:
        return Urgency.CRITICAL
    if days_until_due <= HIGH_URGENCY_WINDOW_DAYS:
        return Urgency.HIGH
    if CareGapPriority(priority) is CareGapPriority.HIGH:
        return Urgency.HIGH
    return Urgency.MEDIUM


def describe_due(days_until_due: int) -> str:
    if days_until_due < 0:
        return f"Overdue by {-days_until_due} days"
    if days_until_due == 0:
        return "Due today"
    return f"Due in {days_until_due} days"


def prioritize(
    care_gaps: Iterable[CareGap | Mapping[str, Any]],
    now: datetime,
    limit: int | None = DEFAULT_PRIORITY_LIMIT,
) -> list[PriorityAction]:
    """
    Turn due care gaps into ranked priority actions.

    Args:
        care_gaps: CareGap models or raw care gap mappings; malformed ones are skipped
        now: evaluation time; overdue/upcoming is measured against it
        limit: maximum number of actions returned, None for all

    Returns:
        Actions ordered by urgency (critical first), then by days until due.
        Ties keep their input order.

    Raises:
        TypeError: if ``now`` is not a datetime
        ValueError: if ``limit`` is negative
    """
    now = coerce_now(now)
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")

    actions: list[PriorityAction] = []
    for raw in care_gaps:
        gap = normalize_care_gap(raw)
        if gap is None or gap.status is not CareGapStatus.DUE:
            continue

        if gap.due_date is None:
            days_until_due = DEFAULT_DAYS_UNTIL_DUE
        else:
            days_until_due = days_between(gap.due_date, now)

        actions.append(
            PriorityAction(
                source_id=gap.id,
                urgency=urgency_for(days_until_due, gap.priority),
                description=describe_due(days_until_due),
                days_until_due=days_until_due,
                title=gap.title,
                recommended_action=gap.recommended_action,
                category=gap.category,
            )
        )

    actions.sort(key=lambda action: (URGENCY_RANK[action.urgency], action.days_until_due))
    return actions if limit is None else actions[:limit]
