"""
Clinically-contextualized interpretation of biomarker values.
"""

from collections.abc import Iterable

from health_insights.domain.models import ClinicalObservation, Condition, Interpretation, Severity
from health_insights.domain.reference_ranges import (
    Band,
    ReferenceRange,
    lookup,
    matches_condition,
)
from health_insights.services.normalizer import active_condition_names


def interpret(
    code: str, value: float, active_conditions: Iterable[Condition | str] = ()
) -> Interpretation:
    """
    Interpret ``value`` for the biomarker ``code``.

    Contextual rules are tried most specific first: a condition-specific rule
    applies only when the patient has a matching active condition, the
    condition-less rule applies to everyone else. Values below the table's
    low bound skip the rules and get the generic below-range reading.

    Unknown codes yield a neutral interpretation with empty text.
    """
    reference = lookup(code)
    if reference is None:
        return Interpretation(code=code, value=value)

    names = active_condition_names(active_conditions)
    band = _contextual_band(reference, value, names)
    if band is None:
        text, severity = _range_check(value, reference.low, reference.high)
    else:
        text, severity = band.text, band.severity

    return Interpretation(
        text=text,
        severity=severity,
        code=code,
        name=reference.name,
        unit=reference.unit,
        value=value,
    )


def _contextual_band(
    reference: ReferenceRange, value: float, condition_names: list[str]
) -> Band | None:
    if not reference.rules or value < reference.low:
        return None
    for rule in reference.rules:
        if rule.condition is not None and not matches_condition(rule.condition, condition_names):
            continue
        for band in rule.bands:
            if band.upper is None or value <= band.upper:
                return band
    return None


def _range_check(value: float, low: float | None, high: float | None) -> tuple[str, Severity]:
    if low is not None and value < low:
        return "Below normal range", Severity.WARNING
    if high is not None and value > high:
        return "Above normal range", Severity.WARNING
    return "Within normal range", Severity.NORMAL


def interpret_observation(
    observation: ClinicalObservation, active_conditions: Iterable[Condition | str] = ()
) -> Interpretation:
    """Interpret a normalized observation, falling back to its own reference range."""
    if observation.value is None:
        return Interpretation(code=observation.code, name=observation.name, unit=observation.unit)

    if lookup(observation.code) is not None:
        return interpret(observation.code, observation.value, active_conditions)

    if observation.reference_low is None and observation.reference_high is None:
        return Interpretation(
            code=observation.code,
            name=observation.name,
            unit=observation.unit,
            value=observation.value,
        )

    _, severity = _range_check(
        observation.value, observation.reference_low, observation.reference_high
    )
    return Interpretation(
        text="Abnormal value" if severity != Severity.NORMAL else "Within normal range",
        severity=severity,
        code=observation.code,
        name=observation.name,
        unit=observation.unit,
        value=observation.value,
    )


def latest_interpretations(
    observations: Iterable[ClinicalObservation],
    active_conditions: Iterable[Condition | str] = (),
) -> list[Interpretation]:
    """
    Interpret the most recent dated value of every known biomarker.

    Output order follows the first appearance of each code.
    """
    latest: dict[str, ClinicalObservation] = {}
    for observation in observations:
        if observation.value is None or observation.timestamp is None:
            continue
        if lookup(observation.code) is None:
            continue
        current = latest.get(observation.code)
        if current is None or observation.timestamp >= current.timestamp:
            latest[observation.code] = observation

    # Materialize once; generators would be consumed by the first interpret call
    conditions = list(active_conditions)
    return [interpret_observation(observation, conditions) for observation in latest.values()]
