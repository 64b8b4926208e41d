"""
Tests for record normalization in `health_insights/services/normalizer.py`.

Covers:
- FHIR-shaped and flat observation records
- Missing and malformed data degrading to defaults or None, never raising
- Care gap validation (malformed gaps dropped, unknown priority defaulted)
- Sibling normalizers for conditions, patients, immunizations, medications, allergies
"""

from datetime import UTC, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from health_insights.domain.models import CareGapPriority, CareGapStatus, ClinicalStatus
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


def _fhir_observation(**overrides: object) -> dict:
    record = {
        "resourceType": "Observation",
        "id": "obs-1",
        "code": {
            "coding": [
                {"system": "http://loinc.org", "code": "4548-4", "display": "Hemoglobin A1c"}
            ]
        },
        "valueQuantity": {"value": 7.2, "unit": "%"},
        "effectiveDateTime": "2024-03-01T09:30:00Z",
    }
    record.update(overrides)
    return record


class TestNormalizeFhirObservation:
    def test_extracts_code_value_unit_and_timestamp(self) -> None:
        observation = normalize(_fhir_observation())

        assert observation is not None
        assert observation.code == "4548-4"
        assert observation.value == 7.2
        assert observation.unit == "%"
        assert observation.timestamp == datetime(2024, 3, 1, 9, 30, tzinfo=UTC)
        assert observation.name == "Hemoglobin A1c"
        assert observation.id == "obs-1"

    def test_first_coding_with_a_code_wins(self) -> None:
        record = _fhir_observation(
            code={"coding": [{"display": "no code here"}, {"code": "8480-6"}], "text": "Systolic"}
        )

        observation = normalize(record)

        assert observation is not None
        assert observation.code == "8480-6"
        assert observation.name == "Systolic"

    def test_bare_numeric_value_quantity(self) -> None:
        observation = normalize(_fhir_observation(valueQuantity=130))

        assert observation is not None
        assert observation.value == 130.0
        assert observation.unit == ""

    def test_numeric_value_string(self) -> None:
        record = _fhir_observation(valueString="6.1")
        del record["valueQuantity"]

        observation = normalize(record)

        assert observation is not None
        assert observation.value == 6.1

    def test_zero_is_a_valid_value(self) -> None:
        observation = normalize(_fhir_observation(valueQuantity={"value": 0, "unit": "%"}))

        assert observation is not None
        assert observation.value == 0.0

    def test_issued_used_when_effective_missing(self) -> None:
        record = _fhir_observation(issued="2024-05-05")
        del record["effectiveDateTime"]

        observation = normalize(record)

        assert observation is not None
        assert observation.timestamp == datetime(2024, 5, 5, tzinfo=UTC)

    def test_missing_timestamp_stays_none(self) -> None:
        record = _fhir_observation()
        del record["effectiveDateTime"]

        observation = normalize(record)

        assert observation is not None
        assert observation.timestamp is None

    def test_unparseable_timestamp_becomes_none(self) -> None:
        observation = normalize(_fhir_observation(effectiveDateTime="last tuesday"))

        assert observation is not None
        assert observation.timestamp is None

    def test_reference_range_is_read(self) -> None:
        record = _fhir_observation(
            referenceRange=[{"low": {"value": 3.5}, "high": {"value": 5.0}}]
        )

        observation = normalize(record)

        assert observation is not None
        assert observation.reference_low == 3.5
        assert observation.reference_high == 5.0

    def test_code_without_value_is_kept(self) -> None:
        record = _fhir_observation()
        del record["valueQuantity"]

        observation = normalize(record)

        assert observation is not None
        assert observation.value is None

    def test_boolean_value_is_not_numeric(self) -> None:
        observation = normalize(_fhir_observation(valueQuantity={"value": True}))

        assert observation is not None
        assert observation.value is None

    def test_no_code_and_no_value_is_dropped(self) -> None:
        assert normalize({"resourceType": "Observation", "status": "final"}) is None

    def test_structurally_broken_record_is_dropped(self) -> None:
        record = _fhir_observation(code={"coding": "not-a-list"}, valueQuantity=None)

        assert normalize(record) is None


class TestNormalizeFlatObservation:
    def test_flat_record(self) -> None:
        observation = normalize(
            {"code": "33747-0", "value": 8.2, "unit": "%", "date": "2024-01-01", "name": "HbA1c"}
        )

        assert observation is not None
        assert observation.code == "33747-0"
        assert observation.value == 8.2
        assert observation.timestamp == datetime(2024, 1, 1, tzinfo=UTC)
        assert observation.name == "HbA1c"

    def test_flat_reference_bounds(self) -> None:
        observation = normalize(
            {"code": "x", "value": "4", "referenceLow": 1, "referenceHigh": "3"}
        )

        assert observation is not None
        assert observation.value == 4.0
        assert observation.reference_low == 1.0
        assert observation.reference_high == 3.0

    def test_missing_unit_defaults_to_empty(self) -> None:
        observation = normalize({"code": "x", "value": 1})

        assert observation is not None
        assert observation.unit == ""

    def test_value_without_code_is_kept(self) -> None:
        observation = normalize({"value": 12})

        assert observation is not None
        assert observation.code == ""

    @pytest.mark.parametrize("raw", [None, 42, "text", [], {"unit": "mg/dL"}])
    def test_unusable_input_returns_none(self, raw: object) -> None:
        assert normalize(raw) is None

    @given(
        st.dictionaries(
            st.sampled_from(["code", "value", "unit", "date", "timestamp", "referenceLow", "name"]),
            st.one_of(
                st.none(),
                st.booleans(),
                st.integers(),
                st.floats(allow_nan=True, allow_infinity=True),
                st.text(max_size=20),
                st.lists(st.integers(), max_size=3),
            ),
        )
    )
    def test_never_raises_on_arbitrary_flat_records(self, raw: dict) -> None:
        """Property-based test: irregular data degrades, it never raises."""
        observation = normalize(raw)

        if observation is not None:
            assert observation.code or observation.value is not None


class TestNormalizeCareGap:
    def test_valid_gap(self) -> None:
        gap = normalize_care_gap(
            {
                "id": "gap-1",
                "title": "Colonoscopy",
                "status": "due",
                "priority": "high",
                "dueDate": "2024-06-01",
                "recommendedAction": "Schedule it",
            }
        )

        assert gap is not None
        assert gap.status is CareGapStatus.DUE
        assert gap.priority is CareGapPriority.HIGH
        assert gap.due_date == datetime(2024, 6, 1, tzinfo=UTC)
        assert gap.recommended_action == "Schedule it"

    def test_missing_priority_defaults_to_low(self) -> None:
        gap = normalize_care_gap({"id": "g", "title": "T", "status": "satisfied"})

        assert gap is not None
        assert gap.priority is CareGapPriority.LOW

    def test_unknown_priority_defaults_to_low(self) -> None:
        gap = normalize_care_gap({"id": "g", "title": "T", "status": "due", "priority": "urgent"})

        assert gap is not None
        assert gap.priority is CareGapPriority.LOW

    @pytest.mark.parametrize(
        "raw",
        [
            {"title": "T", "status": "due"},
            {"id": "", "title": "T", "status": "due"},
            {"id": "g", "title": "   ", "status": "due"},
            {"id": "g", "title": "T", "status": "pending"},
            {"id": "g", "title": "T"},
            "not a mapping",
        ],
    )
    def test_malformed_gaps_are_dropped(self, raw: object) -> None:
        assert normalize_care_gap(raw) is None


class TestSiblingNormalizers:
    def test_fhir_condition(self) -> None:
        condition = normalize_condition(
            {
                "resourceType": "Condition",
                "id": "c1",
                "code": {"coding": [{"code": "44054006", "display": "Type 2 diabetes mellitus"}]},
                "clinicalStatus": {"coding": [{"code": "active"}]},
                "recordedDate": "2019-01-01",
            }
        )

        assert condition is not None
        assert condition.is_active
        assert condition.display_name == "Type 2 diabetes mellitus"
        assert condition.codes == ("44054006",)
        assert condition.onset_or_recorded_date == datetime(2019, 1, 1, tzinfo=UTC)

    def test_bare_string_clinical_status(self) -> None:
        condition = normalize_condition(
            {
                "resourceType": "Condition",
                "id": "c1",
                "code": {"text": "Asthma"},
                "clinicalStatus": "resolved",
            }
        )

        assert condition is not None
        assert condition.clinical_status is ClinicalStatus.RESOLVED

    def test_flat_condition_with_unknown_status(self) -> None:
        condition = normalize_condition({"name": "Hypertension", "clinicalStatus": "weird"})

        assert condition is not None
        assert condition.display_name == "Hypertension"
        assert condition.clinical_status is ClinicalStatus.UNKNOWN

    def test_empty_condition_is_dropped(self) -> None:
        assert normalize_condition({}) is None

    def test_patient(self) -> None:
        patient = normalize_patient({"id": "p1", "birthDate": "1970-05-20", "gender": "Female"})

        assert patient is not None
        assert patient.birth_date == datetime(1970, 5, 20, tzinfo=UTC)
        assert patient.gender == "female"

    def test_immunization(self) -> None:
        immunization = normalize_immunization(
            {
                "id": "imm-1",
                "vaccineCode": {
                    "coding": [{"system": "http://hl7.org/fhir/sid/cvx", "code": "158"}]
                },
                "occurrenceDateTime": "2024-10-01",
                "status": "completed",
            }
        )

        assert immunization is not None
        assert immunization.vaccine_codes == ("158",)
        assert immunization.occurrence_date == datetime(2024, 10, 1, tzinfo=UTC)

    def test_medication_and_allergy(self) -> None:
        medication = normalize_medication(
            {"id": "m1", "status": "active", "medicationCodeableConcept": {"text": "Metformin"}}
        )
        allergy = normalize_allergy(
            {
                "id": "a1",
                "code": {"text": "Penicillin"},
                "criticality": "high",
                "clinicalStatus": "active",
            }
        )

        assert medication is not None
        assert medication.display_name == "Metformin"
        assert allergy is not None
        assert allergy.substance == "Penicillin"
        assert allergy.clinical_status == "active"


class TestHelpers:
    def test_normalize_many_counts_drops(self) -> None:
        kept, dropped = normalize_many(
            [{"code": "a", "value": 1}, {}, None, {"code": "b"}], normalize
        )

        assert [observation.code for observation in kept] == ["a", "b"]
        assert dropped == 2

    def test_active_condition_names(self) -> None:
        conditions = [
            normalize_condition({"name": "Diabetes", "clinicalStatus": "active"}),
            normalize_condition({"name": "Old fracture", "clinicalStatus": "resolved"}),
            "Hypertension",
        ]

        assert active_condition_names(conditions) == ["Diabetes", "Hypertension"]
