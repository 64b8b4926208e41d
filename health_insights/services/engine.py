"""
Snapshot analysis: the single entry point that chains every analysis step.

Pipeline:
1. Normalize raw records once (dropped records are counted per kind)
2. Use the snapshot's care gaps, or evaluate quality measures when it has none
3. Interpret the latest value of each known biomarker
4. Analyze trends
5. Prioritize due care gaps
6. Score and aggregate insights

Every step is a pure function of the snapshot and ``now``. This module is
the only one that logs; the functions it calls stay silent.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import structlog

from health_insights.config import EngineConfig
from health_insights.domain.clock import coerce_now
from health_insights.domain.models import CareGap, ClinicalSnapshot, HealthSummary
from health_insights.services.care_gap_rules import evaluate_care_gaps
from health_insights.services.care_gaps import prioritize
from health_insights.services.insights import aggregate
from health_insights.services.interpreter import latest_interpretations
from health_insights.services.normalizer import (
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
from health_insights.services.scoring import score, score_band
from health_insights.services.trends import analyze_trends

logger = structlog.get_logger(__name__)


class HealthInsightsEngine:
    """
    Runs the full analysis pipeline with one fixed configuration.

    Holds no per-patient state, so one instance can serve any number of
    snapshots, concurrently if needed.
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.logger = logger.bind(component="health_insights_engine")

    def analyze(
        self, snapshot: ClinicalSnapshot | Mapping[str, Any], now: datetime
    ) -> HealthSummary:
        """
        Analyze one patient snapshot as of ``now``.

        Raises:
            TypeError: if ``now`` is not a datetime
            pydantic.ValidationError: if ``snapshot`` is a mapping that is not
                shaped like a ClinicalSnapshot
        """
        now = coerce_now(now)
        if not isinstance(snapshot, ClinicalSnapshot):
            snapshot = ClinicalSnapshot.model_validate(snapshot)

        self.logger.info(
            "snapshot_analysis_started",
            observations_count=len(snapshot.observations),
            conditions_count=len(snapshot.conditions),
            care_gaps_count=len(snapshot.care_gaps),
        )

        patient = normalize_patient(snapshot.patient) if snapshot.patient is not None else None
        conditions, dropped_conditions = normalize_many(snapshot.conditions, normalize_condition)
        observations, dropped_observations = normalize_many(snapshot.observations, normalize)
        medications, dropped_medications = normalize_many(
            snapshot.medications, normalize_medication
        )
        allergies, dropped_allergies = normalize_many(snapshot.allergies, normalize_allergy)
        immunizations, dropped_immunizations = normalize_many(
            snapshot.immunizations, normalize_immunization
        )
        supplied_gaps, dropped_care_gaps = normalize_many(snapshot.care_gaps, normalize_care_gap)

        dropped_records = {
            kind: count
            for kind, count in (
                ("conditions", dropped_conditions),
                ("observations", dropped_observations),
                ("medications", dropped_medications),
                ("allergies", dropped_allergies),
                ("immunizations", dropped_immunizations),
                ("care_gaps", dropped_care_gaps),
            )
            if count
        }
        if dropped_records:
            self.logger.warning("records_dropped", **dropped_records)

        care_gaps: list[CareGap] = supplied_gaps
        if not snapshot.care_gaps and self.config.evaluate_care_gaps:
            care_gaps = evaluate_care_gaps(patient, conditions, observations, immunizations, now)

        active_conditions = active_condition_names(conditions)
        interpretations = latest_interpretations(observations, active_conditions)
        trends = analyze_trends(observations)
        all_actions = prioritize(care_gaps, now, limit=None)
        limit = self.config.priority_action_limit
        priority_actions = all_actions if limit is None else all_actions[:limit]
        health_score = score(care_gaps, interpretations)
        # Overdue counts cover every due action, not only the truncated list
        insights = aggregate(
            trends,
            all_actions,
            active_conditions,
            health_score,
            observations=observations,
            now=now,
        )

        summary = HealthSummary(
            generated_at=now,
            health_score=health_score,
            score_band=score_band(health_score),
            interpretations=interpretations,
            trends=trends,
            priority_actions=priority_actions,
            insights=insights,
            care_gaps=care_gaps,
            active_conditions=active_conditions,
            medication_count=len(medications),
            allergy_count=len(allergies),
            dropped_records=dropped_records,
        )

        self.logger.info(
            "snapshot_analysis_completed",
            health_score=health_score,
            trends_count=len(trends),
            priority_actions_count=len(priority_actions),
            insights_count=len(insights),
        )
        return summary


def analyze_snapshot(
    snapshot: ClinicalSnapshot | Mapping[str, Any],
    now: datetime,
    config: EngineConfig | None = None,
) -> HealthSummary:
    """Analyze one snapshot with a throwaway engine."""
    return HealthInsightsEngine(config).analyze(snapshot, now)
