"""
Tests for biomarker interpretation in `health_insights/services/interpreter.py`.
"""

from datetime import UTC, datetime

import pytest

from health_insights.domain.models import ClinicalObservation, ClinicalStatus, Condition, Severity
from health_insights.domain.reference_ranges import REFERENCE_RANGES
from health_insights.services.interpreter import (
    interpret,
    interpret_observation,
    latest_interpretations,
)

JANUARY = datetime(2024, 1, 1, tzinfo=UTC)
JUNE = datetime(2024, 6, 1, tzinfo=UTC)


class TestContextualRules:
    @pytest.mark.parametrize(
        ("value", "text", "severity"),
        [
            (6.4, "Diabetic, well controlled", Severity.NORMAL),
            (7.0, "Diabetic, well controlled", Severity.NORMAL),
            (7.5, "Diabetic, moderate control needed", Severity.WARNING),
            (8.0, "Diabetic, moderate control needed", Severity.WARNING),
            (9.1, "Diabetic, needs better control", Severity.CRITICAL),
        ],
    )
    def test_hba1c_with_diabetes(self, value: float, text: str, severity: Severity) -> None:
        interpretation = interpret("4548-4", value, ["Type 2 Diabetes Mellitus"])

        assert interpretation.text == text
        assert interpretation.severity is severity

    @pytest.mark.parametrize(
        ("value", "text", "severity"),
        [
            (5.2, "Normal range", Severity.NORMAL),
            (5.7, "Normal range", Severity.NORMAL),
            (6.0, "Prediabetes range (5.7-6.4%)", Severity.WARNING),
            (7.1, "Diabetes range", Severity.CRITICAL),
        ],
    )
    def test_hba1c_without_diabetes(self, value: float, text: str, severity: Severity) -> None:
        interpretation = interpret("33747-0", value, [])

        assert interpretation.text == text
        assert interpretation.severity is severity

    @pytest.mark.parametrize(
        ("value", "text", "severity"),
        [
            (118, "Normal", Severity.NORMAL),
            (125, "Elevated", Severity.NORMAL),
            (135, "High BP Stage 1", Severity.WARNING),
            (150, "High BP Stage 2", Severity.CRITICAL),
        ],
    )
    def test_systolic_without_hypertension(
        self, value: float, text: str, severity: Severity
    ) -> None:
        interpretation = interpret("8480-6", value)

        assert interpretation.text == text
        assert interpretation.severity is severity

    @pytest.mark.parametrize(
        ("value", "text", "severity"),
        [
            (128, "Hypertension, controlled", Severity.NORMAL),
            (130, "Hypertension, controlled", Severity.NORMAL),
            (138, "Hypertension, above target", Severity.WARNING),
            (155, "Hypertension, uncontrolled", Severity.CRITICAL),
        ],
    )
    def test_systolic_with_hypertension(self, value: float, text: str, severity: Severity) -> None:
        interpretation = interpret("85354-9", value, ["Essential hypertension"])

        assert interpretation.text == text
        assert interpretation.severity is severity

    def test_ldl_with_cardiovascular_disease(self) -> None:
        conditions = ["Coronary artery disease"]

        assert interpret("2089-1", 65, conditions).text == "At goal for high-risk patients"
        above = interpret("2089-1", 95, conditions)
        assert above.text == "Above target for patients with cardiovascular disease"
        assert above.severity is Severity.WARNING

    @pytest.mark.parametrize(
        ("value", "text", "severity"),
        [
            (90, "Optimal LDL level", Severity.NORMAL),
            (120, "Near optimal", Severity.WARNING),
            (150, "Borderline high", Severity.WARNING),
            (190, "High LDL", Severity.CRITICAL),
        ],
    )
    def test_ldl_without_cardiovascular_disease(
        self, value: float, text: str, severity: Severity
    ) -> None:
        interpretation = interpret("2089-1", value)

        assert interpretation.text == text
        assert interpretation.severity is severity

    def test_condition_matching_ignores_case(self) -> None:
        assert interpret("4548-4", 6.8, ["DIABETES"]).text == "Diabetic, well controlled"

    def test_inactive_condition_models_do_not_switch_rules(self) -> None:
        resolved = Condition(
            id="c1", display_name="Diabetes", clinical_status=ClinicalStatus.RESOLVED
        )

        assert interpret("4548-4", 6.8, [resolved]).text == "Diabetes range"

    def test_active_condition_models_switch_rules(self) -> None:
        active = Condition(id="c1", display_name="Diabetes", clinical_status=ClinicalStatus.ACTIVE)

        assert interpret("4548-4", 6.8, [active]).text == "Diabetic, well controlled"


class TestRangeChecks:
    def test_below_table_low_uses_generic_check(self) -> None:
        interpretation = interpret("4548-4", 3.2, ["diabetes"])

        assert interpretation.text == "Below normal range"
        assert interpretation.severity is Severity.WARNING

    def test_plain_range_codes(self) -> None:
        assert interpret("8462-4", 95).text == "Above normal range"
        assert interpret("8462-4", 75).text == "Within normal range"
        assert interpret("2085-9", 35).text == "Below normal range"

    def test_unknown_code_is_neutral(self) -> None:
        interpretation = interpret("0000-0", 42)

        assert interpretation.text == ""
        assert interpretation.severity is Severity.NORMAL

    def test_interpretation_carries_table_metadata(self) -> None:
        interpretation = interpret("2093-3", 180)

        assert interpretation.name == "Total Cholesterol"
        assert interpretation.unit == "mg/dL"
        assert interpretation.value == 180

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            REFERENCE_RANGES["new"] = REFERENCE_RANGES["4548-4"]  # type: ignore[index]


class TestInterpretObservation:
    def test_record_reference_range_for_unknown_code(self) -> None:
        observation = ClinicalObservation(
            code="2951-2", value=150, reference_low=135, reference_high=145
        )

        interpretation = interpret_observation(observation)

        assert interpretation.text == "Abnormal value"
        assert interpretation.severity is Severity.WARNING

    def test_unknown_code_without_range_is_neutral(self) -> None:
        interpretation = interpret_observation(ClinicalObservation(code="2951-2", value=150))

        assert interpretation.text == ""
        assert interpretation.severity is Severity.NORMAL

    def test_missing_value_is_neutral(self) -> None:
        interpretation = interpret_observation(ClinicalObservation(code="4548-4"))

        assert interpretation.severity is Severity.NORMAL
        assert interpretation.value is None


class TestLatestInterpretations:
    def test_uses_most_recent_reading_per_code(self) -> None:
        observations = [
            ClinicalObservation(code="4548-4", value=8.5, timestamp=JANUARY),
            ClinicalObservation(code="8480-6", value=150, timestamp=JANUARY),
            ClinicalObservation(code="4548-4", value=6.9, timestamp=JUNE),
            ClinicalObservation(code="4548-4", value=9.9),
            ClinicalObservation(code="9999-9", value=1, timestamp=JUNE),
        ]

        interpretations = latest_interpretations(observations, ["diabetes"])

        assert [i.code for i in interpretations] == ["4548-4", "8480-6"]
        assert interpretations[0].value == 6.9
        assert interpretations[0].text == "Diabetic, well controlled"

    def test_accepts_condition_generator(self) -> None:
        observations = [
            ClinicalObservation(code="4548-4", value=6.9, timestamp=JUNE),
            ClinicalObservation(code="8480-6", value=128, timestamp=JUNE),
        ]

        interpretations = latest_interpretations(
            observations, (name for name in ["diabetes", "hypertension"])
        )

        assert [i.text for i in interpretations] == [
            "Diabetic, well controlled",
            "Hypertension, controlled",
        ]
