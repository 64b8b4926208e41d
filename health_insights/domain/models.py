"""
Domain models for clinical health insights.

These models represent the core clinical concepts and are framework-agnostic.
They use Pydantic for validation and JSON serialization; all of them are
immutable so that one analysis call can never alter another's inputs.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from health_insights.domain.clock import as_utc

# Naive datetimes are read as UTC; aware ones are converted to UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class ClinicalStatus(str, Enum):
    """Clinical status of a condition, collapsed to the values the engine uses."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    RESOLVED = "resolved"
    REMISSION = "remission"
    UNKNOWN = "unknown"


class CareGapStatus(str, Enum):
    DUE = "due"
    SATISFIED = "satisfied"
    NOT_APPLICABLE = "not_applicable"


class CareGapPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(str, Enum):
    """Severity band of a single biomarker interpretation."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class InsightSeverity(str, Enum):
    POSITIVE = "positive"
    WARNING = "warning"
    INFO = "info"


class Urgency(str, Enum):
    """Urgency tiers used to rank outstanding care actions."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


TrendDirection = Literal["increasing", "decreasing", "stable"]
ShortTermStatus = Literal["improving", "concerning", "stable", "unknown"]


class ClinicalObservation(BaseModel):
    """A single lab or vital reading extracted from a raw observation record."""

    model_config = ConfigDict(frozen=True)

    code: str
    value: float | None = None
    unit: str = ""
    timestamp: UtcDatetime | None = None
    reference_low: float | None = None
    reference_high: float | None = None
    name: str = ""
    id: str | None = None


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    display_name: str = ""
    clinical_status: ClinicalStatus = ClinicalStatus.UNKNOWN
    onset_or_recorded_date: UtcDatetime | None = None
    codes: tuple[str, ...] = Field(default=(), description="Every coding code on the record")

    @property
    def is_active(self) -> bool:
        return self.clinical_status == ClinicalStatus.ACTIVE


class CareGap(BaseModel):
    """
    An outstanding (or satisfied) preventive or chronic-care measure.

    The status is owned by the record-keeping system; the engine reads it but
    never changes it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    category: str = "preventive"
    status: CareGapStatus
    priority: CareGapPriority = CareGapPriority.LOW
    due_date: UtcDatetime | None = None
    last_performed_date: UtcDatetime | None = None
    recommended_action: str = ""
    description: str = ""
    measure_id: str = ""
    reason: str | None = None


class Patient(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    birth_date: UtcDatetime | None = None
    gender: str | None = None


class Immunization(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    display_name: str = ""
    vaccine_codes: tuple[str, ...] = ()
    status: str = ""
    occurrence_date: UtcDatetime | None = None


class Medication(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    display_name: str = ""
    status: str = ""
    authored_on: UtcDatetime | None = None


class Allergy(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    substance: str = ""
    criticality: str | None = None
    clinical_status: str = ""


class Interpretation(BaseModel):
    """Human-readable reading of one biomarker value and its severity band."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    severity: Severity = Severity.NORMAL
    code: str = ""
    name: str = ""
    unit: str = ""
    value: float | None = None

    @property
    def is_concerning(self) -> bool:
        return self.severity in (Severity.WARNING, Severity.CRITICAL)


class TrendPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: UtcDatetime
    value: float


class TrendResult(BaseModel):
    """
    Chronological summary of one biomarker.

    Only produced for codes with at least two dated numeric readings; the
    absence of a result means "insufficient data", not "flat".
    """

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    unit: str = ""
    ordered_values: list[TrendPoint] = Field(min_length=2)
    direction: TrendDirection
    min: float
    max: float
    mean: float

    # Last-two-points classification, independent of the long-run direction
    short_term_delta: float
    short_term_status: ShortTermStatus

    reference_low: float | None = None
    reference_high: float | None = None
    research_note: str | None = None


class PriorityAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    urgency: Urgency
    description: str
    days_until_due: int | None
    title: str = ""
    recommended_action: str = ""
    category: str = ""


class Insight(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    severity: InsightSeverity
    citation: str | None = None


class ClinicalSnapshot(BaseModel):
    """
    Loosely-typed clinical records as resolved by an external storage/API layer.

    Records stay raw mappings here; the normalizer turns them into the typed
    models above exactly once per analysis.
    """

    model_config = ConfigDict(frozen=True)

    patient: dict[str, Any] | None = None
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    observations: list[dict[str, Any]] = Field(default_factory=list)
    medications: list[dict[str, Any]] = Field(default_factory=list)
    allergies: list[dict[str, Any]] = Field(default_factory=list)
    immunizations: list[dict[str, Any]] = Field(default_factory=list)
    care_gaps: list[dict[str, Any]] = Field(default_factory=list)


class HealthSummary(BaseModel):
    """Complete decision-support output for one snapshot at one point in time."""

    generated_at: UtcDatetime
    health_score: int = Field(ge=0, le=100)
    score_band: InsightSeverity
    interpretations: list[Interpretation]
    trends: list[TrendResult]
    priority_actions: list[PriorityAction]
    insights: list[Insight]
    care_gaps: list[CareGap]
    active_conditions: list[str]
    medication_count: int = Field(ge=0)
    allergy_count: int = Field(ge=0)
    dropped_records: dict[str, int] = Field(
        default_factory=dict, description="Raw records skipped during normalization, per kind"
    )
