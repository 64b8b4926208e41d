"""
Insight aggregation: turns scores, trends and priorities into short textual findings.

The rule set is fixed and deterministic. Given the same inputs (and the
same ``now``), the same insights come back in the same order.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from health_insights.domain.clock import coerce_now, subtract_months
from health_insights.domain.models import (
    ClinicalObservation,
    Condition,
    Insight,
    InsightSeverity,
    PriorityAction,
    TrendResult,
    Urgency,
)
from health_insights.domain.reference_ranges import (
    HBA1C_CODES,
    SYSTOLIC_BP_CODES,
    ConditionFamily,
    matches_condition,
)
from health_insights.services.normalizer import active_condition_names
from health_insights.services.scoring import score_band

SEVERITY_ORDER = {
    InsightSeverity.WARNING: 0,
    InsightSeverity.INFO: 1,
    InsightSeverity.POSITIVE: 2,
}

BP_CONTROLLED_BELOW = 130
BP_ABOVE_TARGET_FROM = 140
BP_RECENT_READINGS = 3
HBA1C_TESTING_INTERVAL_MONTHS = 3

UKPDS_CITATION = "UK Prospective Diabetes Study (UKPDS)"
SPRINT_CITATION = "SPRINT Trial (2015)"
ADA_CITATION = "American Diabetes Association Standards of Care"

_OVERALL_INSIGHTS = {
    InsightSeverity.POSITIVE: (
        "Overall Health: Good",
        "Your health score of {score} reflects well-managed care. Keep up your current routine.",
    ),
    InsightSeverity.INFO: (
        "Overall Health: Fair",
        "Your health score of {score} shows a few areas that could use attention.",
    ),
    InsightSeverity.WARNING: (
        "Overall Health: Needs Attention",
        "Your health score of {score} indicates several open care items or out-of-range results.",
    ),
}


def aggregate(
    trend_results: Iterable[TrendResult],
    priorities: Iterable[PriorityAction],
    conditions: Iterable[Condition | str],
    health_score: int,
    *,
    observations: Iterable[ClinicalObservation] = (),
    now: datetime | None = None,
) -> list[Insight]:
    """
    Derive insights, most severe first.

    Always includes exactly one overall-status insight. The HbA1c testing
    reminder needs both ``observations`` and ``now``; without ``now`` it is
    never produced.
    """
    trend_results = list(trend_results)
    condition_names = active_condition_names(conditions)
    has_diabetes = matches_condition(ConditionFamily.DIABETES, condition_names)
    has_hypertension = matches_condition(ConditionFamily.HYPERTENSION, condition_names)

    insights = [_overall_insight(health_score)]

    overdue = [action for action in priorities if action.urgency is Urgency.CRITICAL]
    if overdue:
        insights.append(
            Insight(
                title="Overdue Care",
                description=(
                    f"You have {len(overdue)} overdue care item{'s' if len(overdue) > 1 else ''}, "
                    f"starting with {overdue[0].title or overdue[0].source_id}."
                ),
                severity=InsightSeverity.WARNING,
            )
        )

    if has_diabetes:
        hba1c_trend = _first_trend(trend_results, HBA1C_CODES)
        if hba1c_trend is not None:
            insights.extend(_hba1c_trend_insights(hba1c_trend))
        if now is not None and not _has_recent_hba1c(observations, coerce_now(now)):
            insights.append(
                Insight(
                    title="HbA1c Test Due",
                    description=(
                        "No HbA1c test in the last 3 months. Testing every 3 months is "
                        "recommended for patients with diabetes."
                    ),
                    severity=InsightSeverity.INFO,
                    citation=ADA_CITATION,
                )
            )

    if has_hypertension:
        bp_trend = _first_trend(trend_results, SYSTOLIC_BP_CODES)
        if bp_trend is not None:
            insights.extend(_blood_pressure_insights(bp_trend))

    # sorted() is stable, so the overall insight leads its severity group
    return sorted(insights, key=lambda insight: SEVERITY_ORDER[insight.severity])


def _overall_insight(health_score: int) -> Insight:
    band = score_band(health_score)
    title, template = _OVERALL_INSIGHTS[band]
    return Insight(title=title, description=template.format(score=health_score), severity=band)


def _first_trend(trend_results: Sequence[TrendResult], codes: frozenset[str]) -> TrendResult | None:
    return next((trend for trend in trend_results if trend.code in codes), None)


def _hba1c_trend_insights(trend: TrendResult) -> list[Insight]:
    delta = trend.short_term_delta
    if trend.short_term_status == "improving":
        return [
            Insight(
                title="HbA1c Improving",
                description=(
                    f"Your HbA1c decreased by {abs(delta):.1f}%. Each 1% reduction is associated "
                    "with 37% lower risk of microvascular complications."
                ),
                severity=InsightSeverity.POSITIVE,
                citation=UKPDS_CITATION,
            )
        ]
    if trend.short_term_status == "concerning":
        return [
            Insight(
                title="HbA1c Rising",
                description=(
                    f"Your HbA1c increased by {delta:.1f}%. Consider discussing medication "
                    "adjustments or lifestyle changes with your provider."
                ),
                severity=InsightSeverity.WARNING,
            )
        ]
    return []


def _blood_pressure_insights(trend: TrendResult) -> list[Insight]:
    recent = [point.value for point in trend.ordered_values[-BP_RECENT_READINGS:]]
    recent_mean = sum(recent) / len(recent)
    if recent_mean < BP_CONTROLLED_BELOW:
        return [
            Insight(
                title="Blood Pressure Well Controlled",
                description=(
                    "Your recent BP readings are in the controlled range. Maintaining <130 "
                    "systolic reduces cardiovascular event risk by 25%."
                ),
                severity=InsightSeverity.POSITIVE,
                citation=SPRINT_CITATION,
            )
        ]
    if recent_mean >= BP_ABOVE_TARGET_FROM:
        return [
            Insight(
                title="Blood Pressure Above Target",
                description=(
                    f"Your recent BP average is {recent_mean:.0f} mmHg, above 140. This "
                    "increases 10-year cardiovascular disease risk significantly."
                ),
                severity=InsightSeverity.WARNING,
            )
        ]
    return []


def _has_recent_hba1c(observations: Iterable[ClinicalObservation], now: datetime) -> bool:
    cutoff = subtract_months(now, HBA1C_TESTING_INTERVAL_MONTHS)
    return any(
        observation.code in HBA1C_CODES
        and observation.timestamp is not None
        and observation.timestamp > cutoff
        for observation in observations
    )
