"""
Reference ranges and contextual interpretation rules for known biomarkers.

The table is built once at import time and exposed through a read-only
mapping of frozen dataclasses, so concurrent readers never need a lock.

Key concepts:
- Band: an inclusive upper bound with the text and severity for values up to it
- ContextualRule: ordered bands that apply when the patient has (or lacks) a
  matching active condition
- Polarity: whether a falling value is good (lower is better) or bad
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from health_insights.domain.models import Severity


class Polarity(str, Enum):
    LOWER_IS_BETTER = "lower_is_better"
    HIGHER_IS_BETTER = "higher_is_better"


class ConditionFamily(str, Enum):
    """Groups of condition names that switch a biomarker to disease-specific targets."""

    DIABETES = "diabetes"
    HYPERTENSION = "hypertension"
    CARDIOVASCULAR = "cardiovascular"


# Case-insensitive substrings matched against active condition display names
CONDITION_KEYWORDS: MappingProxyType[ConditionFamily, tuple[str, ...]] = MappingProxyType(
    {
        ConditionFamily.DIABETES: ("diabet",),
        ConditionFamily.HYPERTENSION: ("hypertens",),
        ConditionFamily.CARDIOVASCULAR: ("heart", "cardiac", "coronary", "cardiovascular"),
    }
)


@dataclass(frozen=True)
class Band:
    upper: float | None  # inclusive; None means unbounded
    text: str
    severity: Severity


@dataclass(frozen=True)
class ContextualRule:
    """
    Bands applied when ``condition`` is active (or, for ``condition=None``, to
    any patient not matched by a more specific rule).
    """

    condition: ConditionFamily | None
    bands: tuple[Band, ...]


@dataclass(frozen=True)
class ReferenceRange:
    name: str
    low: float
    high: float
    unit: str
    polarity: Polarity | None = None
    short_term_threshold: float | None = None
    rules: tuple[ContextualRule, ...] = ()
    research_note: str | None = None


_HBA1C = ReferenceRange(
    name="HbA1c",
    low=4.0,
    high=5.7,
    unit="%",
    polarity=Polarity.LOWER_IS_BETTER,
    short_term_threshold=0.5,
    rules=(
        ContextualRule(
            condition=ConditionFamily.DIABETES,
            bands=(
                Band(7.0, "Diabetic, well controlled", Severity.NORMAL),
                Band(8.0, "Diabetic, moderate control needed", Severity.WARNING),
                Band(None, "Diabetic, needs better control", Severity.CRITICAL),
            ),
        ),
        ContextualRule(
            condition=None,
            bands=(
                Band(5.7, "Normal range", Severity.NORMAL),
                Band(6.5, "Prediabetes range (5.7-6.4%)", Severity.WARNING),
                Band(None, "Diabetes range", Severity.CRITICAL),
            ),
        ),
    ),
    research_note=(
        "Each 1% reduction in HbA1c is associated with 37% reduced risk of "
        "microvascular complications (UKPDS study)."
    ),
)

_SYSTOLIC_BP = ReferenceRange(
    name="Blood Pressure (Systolic)",
    low=90,
    high=140,
    unit="mmHg",
    polarity=Polarity.LOWER_IS_BETTER,
    short_term_threshold=5.0,
    rules=(
        ContextualRule(
            condition=ConditionFamily.HYPERTENSION,
            bands=(
                Band(130, "Hypertension, controlled", Severity.NORMAL),
                Band(140, "Hypertension, above target", Severity.WARNING),
                Band(None, "Hypertension, uncontrolled", Severity.CRITICAL),
            ),
        ),
        ContextualRule(
            condition=None,
            bands=(
                Band(120, "Normal", Severity.NORMAL),
                Band(130, "Elevated", Severity.NORMAL),
                Band(140, "High BP Stage 1", Severity.WARNING),
                Band(None, "High BP Stage 2", Severity.CRITICAL),
            ),
        ),
    ),
    research_note=(
        "SPRINT trial showed intensive BP control (<120) reduced cardiovascular "
        "events by 25% in high-risk patients."
    ),
)

_DIASTOLIC_BP = ReferenceRange(name="Blood Pressure (Diastolic)", low=60, high=90, unit="mmHg")

_TOTAL_CHOLESTEROL = ReferenceRange(
    name="Total Cholesterol",
    low=0,
    high=200,
    unit="mg/dL",
    polarity=Polarity.LOWER_IS_BETTER,
    short_term_threshold=5.0,
    research_note=(
        "For every 40 mg/dL reduction in LDL, cardiovascular risk decreases by "
        "~22% (Cholesterol Treatment Trialists)."
    ),
)

_LDL = ReferenceRange(
    name="LDL Cholesterol",
    low=0,
    high=100,
    unit="mg/dL",
    polarity=Polarity.LOWER_IS_BETTER,
    short_term_threshold=5.0,
    rules=(
        ContextualRule(
            condition=ConditionFamily.CARDIOVASCULAR,
            bands=(
                Band(70, "At goal for high-risk patients", Severity.NORMAL),
                Band(
                    None,
                    "Above target for patients with cardiovascular disease",
                    Severity.WARNING,
                ),
            ),
        ),
        ContextualRule(
            condition=None,
            bands=(
                Band(100, "Optimal LDL level", Severity.NORMAL),
                Band(130, "Near optimal", Severity.WARNING),
                Band(160, "Borderline high", Severity.WARNING),
                Band(None, "High LDL", Severity.CRITICAL),
            ),
        ),
    ),
)

_HDL = ReferenceRange(
    name="HDL Cholesterol",
    low=40,
    high=999,
    unit="mg/dL",
    polarity=Polarity.HIGHER_IS_BETTER,
    short_term_threshold=5.0,
)

_BODY_WEIGHT = ReferenceRange(name="Body Weight", low=0, high=999, unit="lbs")


REFERENCE_RANGES: MappingProxyType[str, ReferenceRange] = MappingProxyType(
    {
        # HbA1c
        "33747-0": _HBA1C,
        "4548-4": _HBA1C,
        "4549-2": _HBA1C,
        "17856-6": _HBA1C,
        # Blood pressure
        "85354-9": _SYSTOLIC_BP,
        "8480-6": _SYSTOLIC_BP,
        "8462-4": _DIASTOLIC_BP,
        # Lipid panel
        "2093-3": _TOTAL_CHOLESTEROL,
        "2089-1": _LDL,
        "2085-9": _HDL,
        # Vitals
        "29463-7": _BODY_WEIGHT,
    }
)

HBA1C_CODES = frozenset(code for code, ref in REFERENCE_RANGES.items() if ref is _HBA1C)
SYSTOLIC_BP_CODES = frozenset(code for code, ref in REFERENCE_RANGES.items() if ref is _SYSTOLIC_BP)


def lookup(code: str) -> ReferenceRange | None:
    return REFERENCE_RANGES.get(code)


def matches_condition(family: ConditionFamily, condition_names: Iterable[str]) -> bool:
    """True when any condition name contains one of the family keywords, ignoring case."""
    keywords = CONDITION_KEYWORDS[family]
    return any(keyword in name.lower() for name in condition_names for keyword in keywords)
