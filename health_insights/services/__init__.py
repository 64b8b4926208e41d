"""
Analysis services for the application.

This package contains the pure analysis functions (normalization,
interpretation, trends, care gap prioritization, scoring, insights), the
quality-measure evaluator, the engine that chains them, and an in-memory
record store.
"""

from .care_gap_rules import evaluate_care_gaps
from .care_gaps import URGENCY_RANK, prioritize, urgency_for
from .engine import HealthInsightsEngine, analyze_snapshot
from .insights import aggregate
from .interpreter import interpret, interpret_observation, latest_interpretations
from .normalizer import (
    active_condition_names,
    normalize,
    normalize_allergy,
    normalize_care_gap,
    normalize_condition,
    normalize_immunization,
    normalize_many,
    normalize_medication,
    normalize_patient,
)
from .record_store import InMemoryRecordStore, RecordSource, Result
from .scoring import score, score_band
from .trends import analyze_trends, classify_short_run

__all__ = [
    "normalize",
    "normalize_condition",
    "normalize_care_gap",
    "normalize_patient",
    "normalize_immunization",
    "normalize_medication",
    "normalize_allergy",
    "normalize_many",
    "active_condition_names",
    "interpret",
    "interpret_observation",
    "latest_interpretations",
    "analyze_trends",
    "classify_short_run",
    "prioritize",
    "urgency_for",
    "URGENCY_RANK",
    "score",
    "score_band",
    "aggregate",
    "evaluate_care_gaps",
    "HealthInsightsEngine",
    "analyze_snapshot",
    "Result",
    "RecordSource",
    "InMemoryRecordStore",
]
