"""
Per-biomarker trend analysis over chronologically ordered observations.

Two separate classifications are produced for every code:

- ``direction``: long-run movement from the first to the last reading,
  using a +/-10% band around the first value
- ``short_term_status``: clinical reading of the last two points, using the
  biomarker's polarity and absolute threshold from the reference table

They answer different questions and are never derived from one another.
"""

from collections.abc import Iterable
from statistics import fmean

from health_insights.domain.models import (
    ClinicalObservation,
    ShortTermStatus,
    TrendDirection,
    TrendPoint,
    TrendResult,
)
from health_insights.domain.reference_ranges import Polarity, lookup

INCREASE_FACTOR = 1.1
DECREASE_FACTOR = 0.9


def analyze_trends(observations: Iterable[ClinicalObservation]) -> list[TrendResult]:
    """
    Build one TrendResult per code that has at least two dated numeric readings.

    Readings missing a value, a timestamp or a code are ignored. Readings that
    share a timestamp keep their input order.
    """
    grouped: dict[str, list[ClinicalObservation]] = {}
    for observation in observations:
        if not observation.code or observation.value is None or observation.timestamp is None:
            continue
        grouped.setdefault(observation.code, []).append(observation)

    results: list[TrendResult] = []
    for code, readings in grouped.items():
        if len(readings) < 2:
            continue
        readings.sort(key=lambda reading: reading.timestamp)
        results.append(_build_trend(code, readings))
    return results


def _build_trend(code: str, readings: list[ClinicalObservation]) -> TrendResult:
    points = [TrendPoint(date=reading.timestamp, value=reading.value) for reading in readings]
    values = [point.value for point in points]
    previous, latest = values[-2], values[-1]

    reference = lookup(code)
    name = reference.name if reference else next((r.name for r in readings if r.name), code)
    unit = reference.unit if reference else next((r.unit for r in readings if r.unit), "")
    short_term_status, short_term_delta = classify_short_run(code, previous, latest)

    return TrendResult(
        code=code,
        name=name,
        unit=unit,
        ordered_values=points,
        direction=_direction(values[0], latest),
        min=min(values),
        max=max(values),
        mean=fmean(values),
        short_term_delta=short_term_delta,
        short_term_status=short_term_status,
        reference_low=reference.low if reference else readings[-1].reference_low,
        reference_high=reference.high if reference else readings[-1].reference_high,
        research_note=reference.research_note if reference else None,
    )


def _direction(first: float, last: float) -> TrendDirection:
    if last > first * INCREASE_FACTOR:
        return "increasing"
    if last < first * DECREASE_FACTOR:
        return "decreasing"
    return "stable"


def classify_short_run(code: str, previous: float, latest: float) -> tuple[ShortTermStatus, float]:
    """
    Classify the change between the last two readings of ``code``.

    Returns the status and the raw delta. Codes without a known polarity are
    "unknown"; changes within the metric's threshold are "stable".
    """
    delta = latest - previous
    reference = lookup(code)
    if reference is None or reference.polarity is None or reference.short_term_threshold is None:
        return "unknown", delta

    threshold = reference.short_term_threshold
    if reference.polarity is Polarity.HIGHER_IS_BETTER:
        delta_for_health = -delta
    else:
        delta_for_health = delta

    if delta_for_health < -threshold:
        return "improving", delta
    if delta_for_health > threshold:
        return "concerning", delta
    return "stable", delta
