"""
Lenient models of the FHIR-like records the engine receives.

Upstream records are deeply nested and sparsely populated. Rather than probing
them with chained ``.get()`` calls at every call site, each raw record is
validated once into one of these models:

- Every field is optional and unknown fields are ignored
- Numeric and date fields degrade to None instead of failing validation
- Coded concepts expose the handful of derived values the engine needs

Only structurally broken records (e.g. ``coding`` that is not a list) fail
validation; the normalizer treats those as missing data.
"""

import math
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from health_insights.domain.clock import parse_timestamp


def _lenient_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _lenient_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return None


LenientFloat = Annotated[float | None, BeforeValidator(_lenient_float)]
LenientText = Annotated[str | None, BeforeValidator(_lenient_text)]
LenientTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]


class FhirElement(BaseModel):
    """Base for all lenient FHIR models: camelCase aliases, extras ignored."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FhirCoding(FhirElement):
    system: LenientText = None
    code: LenientText = None
    display: LenientText = None


class FhirCodeableConcept(FhirElement):
    coding: list[FhirCoding] = Field(default_factory=list)
    text: LenientText = None

    @field_validator("coding", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @computed_field(return_type=str | None)
    def primary_code(self) -> str | None:
        """First coding that actually carries a code."""
        for coding in self.coding:
            if coding.code:
                return coding.code
        return None

    @computed_field(return_type=str)
    def display_text(self) -> str:
        if self.text:
            return self.text
        for coding in self.coding:
            if coding.display:
                return coding.display
        return ""

    @computed_field(return_type=tuple[str, ...])
    def codes(self) -> tuple[str, ...]:
        return tuple(coding.code for coding in self.coding if coding.code)


def _text_to_concept(value: Any) -> Any:
    # Older feeds send clinicalStatus as a bare code string
    if isinstance(value, str):
        return {"coding": [{"code": value}]}
    return value


StatusConcept = Annotated[FhirCodeableConcept | None, BeforeValidator(_text_to_concept)]


class FhirQuantity(FhirElement):
    value: LenientFloat = None
    unit: LenientText = None


def _bare_number_to_quantity(value: Any) -> Any:
    # Some sources put the number directly in valueQuantity
    if isinstance(value, int | float | str) and not isinstance(value, bool):
        return {"value": value}
    return value


class FhirReferenceRange(FhirElement):
    low: FhirQuantity | None = None
    high: FhirQuantity | None = None
    text: LenientText = None


class FhirObservation(FhirElement):
    id: LenientText = None
    code: FhirCodeableConcept | None = None
    value_quantity: Annotated[FhirQuantity | None, BeforeValidator(_bare_number_to_quantity)] = None
    value_string: LenientText = None
    reference_range: list[FhirReferenceRange] = Field(default_factory=list)
    status: LenientText = None
    effective_date_time: LenientTimestamp = None
    issued: LenientTimestamp = None

    @field_validator("reference_range", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @computed_field(return_type=float | None)
    def numeric_value(self) -> float | None:
        if self.value_quantity is not None and self.value_quantity.value is not None:
            return self.value_quantity.value
        if self.value_string is not None:
            return _lenient_float(self.value_string)
        return None

    @computed_field(return_type=datetime | None)
    def timestamp(self) -> datetime | None:
        return self.effective_date_time or self.issued


class FhirCondition(FhirElement):
    id: LenientText = None
    code: FhirCodeableConcept | None = None
    clinical_status: StatusConcept = None
    onset_date_time: LenientTimestamp = None
    recorded_date: LenientTimestamp = None


class FhirPatient(FhirElement):
    id: LenientText = None
    birth_date: LenientTimestamp = None
    gender: LenientText = None


class FhirImmunization(FhirElement):
    id: LenientText = None
    vaccine_code: FhirCodeableConcept | None = None
    status: LenientText = None
    occurrence_date_time: LenientTimestamp = None


class FhirMedicationRequest(FhirElement):
    id: LenientText = None
    medication_codeable_concept: FhirCodeableConcept | None = None
    status: LenientText = None
    authored_on: LenientTimestamp = None


class FhirAllergyIntolerance(FhirElement):
    id: LenientText = None
    code: FhirCodeableConcept | None = None
    clinical_status: StatusConcept = None
    criticality: LenientText = None
