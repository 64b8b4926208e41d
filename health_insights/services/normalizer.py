"""
Resource normalization: raw clinical records in, typed domain models out.

Every function here follows the same contract:
- Never raises for data irregularities; unusable records come back as None
- Missing fields are defaulted, never guessed (a missing date stays None,
  it is not replaced by "now")
- FHIR-shaped records are validated once through the lenient models in
  ``health_insights.domain.fhir``; flat records are read directly
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from pydantic import ValidationError

from health_insights.domain.clock import parse_timestamp
from health_insights.domain.fhir import (
    FhirAllergyIntolerance,
    FhirCondition,
    FhirImmunization,
    FhirMedicationRequest,
    FhirObservation,
    FhirPatient,
    _lenient_float,
)
from health_insights.domain.models import (
    Allergy,
    CareGap,
    CareGapPriority,
    CareGapStatus,
    ClinicalObservation,
    ClinicalStatus,
    Condition,
    Immunization,
    Medication,
    Patient,
)

ModelT = TypeVar("ModelT")


def normalize(raw: Any) -> ClinicalObservation | None:
    """
    Extract code, numeric value, unit and timestamp from an observation-like record.

    Returns None only when the record carries neither a code nor a numeric
    value. A code without a value is kept (it is still displayable) and a
    value without a code is kept with an empty code.
    """
    if not isinstance(raw, Mapping):
        return None
    if _is_flat_record(raw):
        return _normalize_flat_observation(raw)

    try:
        record = FhirObservation.model_validate(raw)
    except ValidationError:
        return None

    code = record.code.primary_code if record.code else None
    value = record.numeric_value
    if not code and value is None:
        return None

    reference_low = reference_high = None
    if record.reference_range:
        first_range = record.reference_range[0]
        reference_low = first_range.low.value if first_range.low else None
        reference_high = first_range.high.value if first_range.high else None

    unit = ""
    if record.value_quantity is not None and record.value_quantity.unit:
        unit = record.value_quantity.unit

    return ClinicalObservation(
        code=code or "",
        value=value,
        unit=unit,
        timestamp=record.timestamp,
        reference_low=reference_low,
        reference_high=reference_high,
        name=record.code.display_text if record.code else "",
        id=record.id,
    )


def _is_flat_record(raw: Mapping[str, Any]) -> bool:
    return "resourceType" not in raw and not isinstance(raw.get("code"), Mapping)


def _normalize_flat_observation(raw: Mapping[str, Any]) -> ClinicalObservation | None:
    code = _text(raw.get("code"))
    value = _lenient_float(raw.get("value"))
    if not code and value is None:
        return None

    timestamp = None
    for key in ("timestamp", "date", "effectiveDateTime", "issued"):
        timestamp = parse_timestamp(raw.get(key))
        if timestamp is not None:
            break

    return ClinicalObservation(
        code=code,
        value=value,
        unit=_text(raw.get("unit")),
        timestamp=timestamp,
        reference_low=_lenient_float(raw.get("referenceLow", raw.get("reference_low"))),
        reference_high=_lenient_float(raw.get("referenceHigh", raw.get("reference_high"))),
        name=_text(raw.get("name")),
        id=_text(raw.get("id")) or None,
    )


_CLINICAL_STATUSES = {status.value: status for status in ClinicalStatus}


def normalize_condition(raw: Any) -> Condition | None:
    """Normalize a condition; records with neither an id nor a name are dropped."""
    if not isinstance(raw, Mapping):
        return None

    if _is_flat_record(raw):
        display_name = _text(raw.get("displayName", raw.get("display_name", raw.get("name"))))
        status_text = _text(raw.get("clinicalStatus", raw.get("clinical_status"))).lower()
        onset = parse_timestamp(raw.get("onsetOrRecordedDate", raw.get("onset_or_recorded_date")))
        code = _text(raw.get("code"))
        codes: tuple[str, ...] = (code,) if code else ()
        condition_id = _text(raw.get("id"))
    else:
        try:
            record = FhirCondition.model_validate(raw)
        except ValidationError:
            return None
        display_name = record.code.display_text if record.code else ""
        status_code = record.clinical_status.primary_code if record.clinical_status else None
        status_text = (status_code or "").lower()
        onset = record.onset_date_time or record.recorded_date
        codes = record.code.codes if record.code else ()
        condition_id = record.id or ""

    if not condition_id and not display_name:
        return None

    return Condition(
        id=condition_id,
        display_name=display_name,
        clinical_status=_CLINICAL_STATUSES.get(status_text, ClinicalStatus.UNKNOWN),
        onset_or_recorded_date=onset,
        codes=codes,
    )


_CARE_GAP_STATUSES = {status.value: status for status in CareGapStatus}
_CARE_GAP_PRIORITIES = {priority.value: priority for priority in CareGapPriority}


def normalize_care_gap(raw: Any) -> CareGap | None:
    """
    Normalize a care gap record.

    Gaps without an id or title, or with an unrecognized status, are malformed
    and dropped. An unrecognized or missing priority falls back to "low".
    """
    if isinstance(raw, CareGap):
        return raw if raw.id.strip() and raw.title.strip() else None
    if not isinstance(raw, Mapping):
        return None

    gap_id = _text(raw.get("id")).strip()
    title = _text(raw.get("title")).strip()
    status = _CARE_GAP_STATUSES.get(_text(raw.get("status")).lower())
    if not gap_id or not title or status is None:
        return None

    priority = _CARE_GAP_PRIORITIES.get(_text(raw.get("priority")).lower(), CareGapPriority.LOW)
    return CareGap(
        id=gap_id,
        title=title,
        category=_text(raw.get("category")) or "preventive",
        status=status,
        priority=priority,
        due_date=parse_timestamp(raw.get("dueDate", raw.get("due_date"))),
        last_performed_date=parse_timestamp(
            raw.get("lastPerformedDate", raw.get("last_performed_date"))
        ),
        recommended_action=_text(raw.get("recommendedAction", raw.get("recommended_action"))),
        description=_text(raw.get("description")),
        measure_id=_text(raw.get("measureId", raw.get("measure_id"))),
        reason=_text(raw.get("reason")) or None,
    )


def normalize_patient(raw: Any) -> Patient | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        record = FhirPatient.model_validate(raw)
    except ValidationError:
        return None
    return Patient(
        id=record.id or "",
        birth_date=record.birth_date,
        gender=record.gender.lower() if record.gender else None,
    )


def normalize_immunization(raw: Any) -> Immunization | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        record = FhirImmunization.model_validate(raw)
    except ValidationError:
        return None
    codes = record.vaccine_code.codes if record.vaccine_code else ()
    if not record.id and not codes:
        return None
    return Immunization(
        id=record.id or "",
        display_name=record.vaccine_code.display_text if record.vaccine_code else "",
        vaccine_codes=codes,
        status=record.status or "",
        occurrence_date=record.occurrence_date_time,
    )


def normalize_medication(raw: Any) -> Medication | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        record = FhirMedicationRequest.model_validate(raw)
    except ValidationError:
        return None
    concept = record.medication_codeable_concept
    display_name = concept.display_text if concept else ""
    if not record.id and not display_name:
        return None
    return Medication(
        id=record.id or "",
        display_name=display_name,
        status=record.status or "",
        authored_on=record.authored_on,
    )


def normalize_allergy(raw: Any) -> Allergy | None:
    if not isinstance(raw, Mapping):
        return None
    try:
        record = FhirAllergyIntolerance.model_validate(raw)
    except ValidationError:
        return None
    substance = record.code.display_text if record.code else ""
    if not record.id and not substance:
        return None
    status_code = record.clinical_status.primary_code if record.clinical_status else None
    return Allergy(
        id=record.id or "",
        substance=substance,
        criticality=record.criticality,
        clinical_status=status_code or "",
    )


def normalize_many(
    records: Iterable[Any], normalizer: Callable[[Any], ModelT | None]
) -> tuple[list[ModelT], int]:
    """Apply ``normalizer`` to every record; return the kept models and the dropped count."""
    kept: list[ModelT] = []
    dropped = 0
    for raw in records:
        model = normalizer(raw)
        if model is None:
            dropped += 1
        else:
            kept.append(model)
    return kept, dropped


def active_condition_names(conditions: Iterable[Condition | str]) -> list[str]:
    """
    Display names of active conditions.

    Plain strings are taken to be the names of active conditions already.
    """
    names: list[str] = []
    for condition in conditions:
        if isinstance(condition, str):
            if condition:
                names.append(condition)
        elif condition.is_active and condition.display_name:
            names.append(condition.display_name)
    return names


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return ""
