"""
HEDIS-style quality measure evaluation.

Derives care gaps from a patient's normalized record when the caller has no
precomputed gaps. Each ``_evaluate_*`` function handles one measure family
and returns zero or more CareGap records; ``evaluate_care_gaps`` runs them
all in a fixed order.

Measures implemented:
- Colorectal cancer screening (HEDIS COL)
- Comprehensive diabetes care (HEDIS CDC): HbA1c testing and control, eye
  exam, nephropathy monitoring
- Breast cancer screening (HEDIS BCS)
- General preventive care: blood pressure, cholesterol, annual flu vaccine
- Hypertension monitoring

Dates are compared against the injected ``now``; due gaps are due on ``now``.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from health_insights.domain.clock import coerce_now, subtract_months, whole_years_between
from health_insights.domain.models import (
    CareGap,
    CareGapPriority,
    CareGapStatus,
    ClinicalObservation,
    ClinicalStatus,
    Condition,
    Immunization,
    Patient,
)
from health_insights.domain.reference_ranges import HBA1C_CODES, ConditionFamily, matches_condition

# LOINC
BLOOD_PRESSURE_CODES = frozenset({"85354-9", "8480-6", "8462-4"})
CHOLESTEROL_CODES = frozenset({"2093-3", "18262-6", "2085-9", "2089-1"})
HBA1C_TEST_CODES = HBA1C_CODES
EYE_EXAM_CODES = frozenset({"32451-7", "29246-0"})
NEPHROPATHY_CODES = frozenset({"13705-9", "32294-1", "31208-2"})
FOBT_CODES = frozenset({"2335-8", "27401-3", "12503-9", "14563-1", "14564-9", "14565-6"})
COLONOSCOPY_CODES = frozenset({"18500-9"})
SIGMOIDOSCOPY_CODES = frozenset({"18501-7"})
COLORECTAL_SCREENING_CODES = FOBT_CODES | COLONOSCOPY_CODES | SIGMOIDOSCOPY_CODES
MAMMOGRAM_CODES = frozenset({"24606-6", "24605-8", "26346-7", "26347-5", "26348-3", "26349-1"})

# SNOMED CT / ICD-10
DIABETES_CODES = frozenset({"44054006", "73211009", "46635009", "237627000"})
DIABETES_ICD_PREFIXES = ("E10", "E11")
HYPERTENSION_CODES = frozenset({"38341003", "59621000"})
HYPERTENSION_ICD_PREFIXES = ("I10",)
CARDIOVASCULAR_RISK_CODES = frozenset({"44054006", "73211009", "38341003", "22298006"})
CARDIOVASCULAR_RISK_ICD_PREFIXES = ("E11", "I10", "Z87")
COLORECTAL_CANCER_CODES = frozenset({"93761005", "109355002", "363406005"})
BILATERAL_MASTECTOMY_CODES = frozenset({"429400009", "137739009"})

# CVX
FLU_VACCINE_CODES = frozenset(
    {"88", "141", "150", "155", "158", "161", "166", "171", "185", "186", "197"}
)

POOR_GLYCEMIC_CONTROL_ABOVE = 9.0

_EXCLUDED_STATUSES = (ClinicalStatus.INACTIVE, ClinicalStatus.RESOLVED)


@dataclass(frozen=True)
class _PatientContext:
    patient: Patient
    conditions: tuple[Condition, ...]
    observations: tuple[ClinicalObservation, ...]
    immunizations: tuple[Immunization, ...]
    now: datetime

    @property
    def age(self) -> int | None:
        if self.patient.birth_date is None:
            return None
        return whole_years_between(self.now, self.patient.birth_date)

    def has_condition(
        self,
        codes: frozenset[str],
        prefixes: tuple[str, ...] = (),
        family: ConditionFamily | None = None,
    ) -> bool:
        for condition in self.conditions:
            if condition.clinical_status in _EXCLUDED_STATUSES:
                continue
            if any(code in codes or code.startswith(prefixes) for code in condition.codes):
                return True
            if family is not None and matches_condition(family, [condition.display_name]):
                return True
        return False

    def has_recent(self, codes: frozenset[str], since: datetime) -> bool:
        return any(
            observation.timestamp > since
            for observation in self.observations
            if observation.code in codes and observation.timestamp is not None
        )

    def latest(self, codes: frozenset[str]) -> ClinicalObservation | None:
        dated = [
            observation
            for observation in self.observations
            if observation.code in codes and observation.timestamp is not None
        ]
        return max(dated, key=lambda observation: observation.timestamp, default=None)

    def last_date(self, codes: frozenset[str]) -> datetime | None:
        observation = self.latest(codes)
        return observation.timestamp if observation else None

    def months_ago(self, months: int) -> datetime:
        return subtract_months(self.now, months)


def evaluate_care_gaps(
    patient: Patient | None,
    conditions: Iterable[Condition],
    observations: Iterable[ClinicalObservation],
    immunizations: Iterable[Immunization],
    now: datetime,
) -> list[CareGap]:
    """
    Evaluate every supported quality measure for one patient.

    A missing patient or birth date skips the age-gated measures; measures
    that only depend on conditions (diabetes, hypertension) still run.
    """
    context = _PatientContext(
        patient=patient or Patient(),
        conditions=tuple(conditions),
        observations=tuple(observations),
        immunizations=tuple(immunizations),
        now=coerce_now(now),
    )

    care_gaps: list[CareGap] = []
    care_gaps.extend(_evaluate_colorectal_screening(context))
    care_gaps.extend(_evaluate_diabetes_care(context))
    care_gaps.extend(_evaluate_breast_cancer_screening(context))
    care_gaps.extend(_evaluate_general_preventive_care(context))
    care_gaps.extend(_evaluate_hypertension_monitoring(context))
    return care_gaps


def time_since_message(last_date: datetime, now: datetime) -> str:
    """Friendly description of how long ago a screening happened."""
    years = whole_years_between(now, last_date)
    months = _whole_months_between(now, last_date)
    if years >= 2:
        return f"It's been over {years} years since your last screening"
    if years >= 1:
        return "It's been about 1 year since your last screening"
    if months >= 6:
        return f"It's been {months} months since your last screening"
    if months >= 1:
        return f"Your last screening was {months} month{'s' if months > 1 else ''} ago"
    return "Your screening is recent"


def _whole_months_between(later: datetime, earlier: datetime) -> int:
    months = (later.year - earlier.year) * 12 + later.month - earlier.month
    if later.day < earlier.day:
        months -= 1
    return months


def _due(
    context: _PatientContext,
    *,
    gap_id: str,
    title: str,
    description: str,
    recommended_action: str,
    measure_id: str,
    category: str,
    priority: CareGapPriority,
) -> CareGap:
    return CareGap(
        id=gap_id,
        title=title,
        category=category,
        status=CareGapStatus.DUE,
        priority=priority,
        due_date=context.now,
        recommended_action=recommended_action,
        description=description,
        measure_id=measure_id,
    )


def _evaluate_colorectal_screening(context: _PatientContext) -> list[CareGap]:
    age = context.age
    if age is None:
        return []

    common = {
        "id": "col-1",
        "title": "Colorectal Cancer Screening",
        "measure_id": "HEDIS-COL",
        "category": "preventive",
    }
    if age < 45 or age > 75:
        return [
            CareGap(
                **common,
                status=CareGapStatus.NOT_APPLICABLE,
                description=(
                    "Colorectal cancer screening typically begins at age 45."
                    if age < 45
                    else "Screening may not be recommended after age 75, "
                    "discuss with your provider."
                ),
                recommended_action=(
                    "No action needed at this time based on your age."
                    if age < 45
                    else "Discuss continued screening benefits with your healthcare provider."
                ),
                reason=(
                    f"Patient age ({age}) is outside the recommended screening range "
                    "of 45-75 years."
                ),
            )
        ]

    if context.has_condition(COLORECTAL_CANCER_CODES):
        return [
            CareGap(
                **common,
                status=CareGapStatus.NOT_APPLICABLE,
                description="Colorectal cancer screening is not applicable due to patient history.",
                recommended_action="No screening needed due to prior colorectal cancer diagnosis.",
                reason="Patient has history of colorectal cancer.",
            )
        ]

    screened = (
        context.has_recent(FOBT_CODES, context.months_ago(12))
        or context.has_recent(COLONOSCOPY_CODES, context.months_ago(120))
        or context.has_recent(SIGMOIDOSCOPY_CODES, context.months_ago(60))
    )
    last_screening = context.last_date(COLORECTAL_SCREENING_CODES)
    if screened:
        return [
            CareGap(
                **common,
                status=CareGapStatus.SATISFIED,
                description="Colorectal cancer screening is up to date.",
                recommended_action="Continue routine screening per guidelines.",
                last_performed_date=last_screening,
            )
        ]

    time_message = (
        time_since_message(last_screening, context.now)
        if last_screening
        else "We don't see any record of previous colorectal screening"
    )
    return [
        _due(
            context,
            gap_id="col-1",
            title="Colorectal Cancer Screening",
            description=(
                f"{time_message}. Regular screening helps detect problems early when "
                "they're most treatable."
            ),
            recommended_action=(
                "Consider scheduling a colonoscopy (every 10 years) or completing an annual "
                "stool test (FIT/FOBT)."
                if age >= 50
                else "As you're now 45+, it's time to start colorectal cancer screening. "
                "Discuss options with your provider."
            ),
            measure_id="HEDIS-COL",
            category="preventive",
            priority=CareGapPriority.HIGH,
        )
    ]


def _evaluate_diabetes_care(context: _PatientContext) -> list[CareGap]:
    if not context.has_condition(DIABETES_CODES, DIABETES_ICD_PREFIXES, ConditionFamily.DIABETES):
        return [
            CareGap(
                id="cdc-1",
                title="Diabetes Care",
                category="chronic",
                status=CareGapStatus.NOT_APPLICABLE,
                description="Diabetes management measures are not applicable.",
                recommended_action="No action needed as patient does not have diabetes diagnosis.",
                measure_id="HEDIS-CDC",
                reason="Patient does not have diabetes.",
            )
        ]

    care_gaps: list[CareGap] = []
    one_year_ago = context.months_ago(12)

    if not context.has_recent(HBA1C_TEST_CODES, one_year_ago):
        last_test = context.last_date(HBA1C_TEST_CODES)
        time_message = (
            time_since_message(last_test, context.now)
            if last_test
            else "We don't see any recent HbA1c results"
        )
        care_gaps.append(
            _due(
                context,
                gap_id="cdc-1",
                title="HbA1c Test Due",
                description=(
                    f"{time_message}. Regular HbA1c testing helps monitor your diabetes "
                    "management over time."
                ),
                recommended_action=(
                    "Schedule an HbA1c lab test with your healthcare provider. This simple blood "
                    "test shows your average blood sugar over the past 2-3 months."
                ),
                measure_id="HEDIS-CDC-HbA1c",
                category="chronic",
                priority=CareGapPriority.HIGH,
            )
        )
    else:
        latest = context.latest(HBA1C_TEST_CODES)
        latest_value = latest.value if latest is not None else None
        if latest_value is not None and latest_value > POOR_GLYCEMIC_CONTROL_ABOVE:
            care_gaps.append(
                CareGap(
                    id="cdc-2",
                    title="Poor Glycemic Control",
                    category="chronic",
                    status=CareGapStatus.DUE,
                    priority=CareGapPriority.HIGH,
                    last_performed_date=latest.timestamp,
                    description=(
                        f"HbA1c value of {latest_value:g}% indicates poor glycemic control."
                    ),
                    recommended_action="Review medication regimen and consider adjustments.",
                    measure_id="HEDIS-CDC-HbA1c-Control",
                )
            )

    if not context.has_recent(EYE_EXAM_CODES, one_year_ago):
        last_exam = context.last_date(EYE_EXAM_CODES)
        time_message = (
            time_since_message(last_exam, context.now) + " for a diabetic eye exam"
            if last_exam
            else "We don't see any record of a recent diabetic eye exam"
        )
        care_gaps.append(
            _due(
                context,
                gap_id="cdc-3",
                title="Diabetic Eye Exam",
                description=(
                    f"{time_message}. Annual eye exams help detect diabetic eye disease early, "
                    "when treatment is most effective."
                ),
                recommended_action=(
                    "Schedule an appointment with an eye care professional for a comprehensive "
                    "dilated eye exam. This is important even if your vision seems fine."
                ),
                measure_id="HEDIS-CDC-EyeExam",
                category="chronic",
                priority=CareGapPriority.MEDIUM,
            )
        )

    if not context.has_recent(NEPHROPATHY_CODES, one_year_ago):
        care_gaps.append(
            _due(
                context,
                gap_id="cdc-4",
                title="Nephropathy Monitoring",
                description="Annual nephropathy monitoring is recommended for diabetic patients.",
                recommended_action="Schedule urine microalbumin test.",
                measure_id="HEDIS-CDC-Nephropathy",
                category="chronic",
                priority=CareGapPriority.MEDIUM,
            )
        )

    return care_gaps


def _evaluate_breast_cancer_screening(context: _PatientContext) -> list[CareGap]:
    common = {
        "id": "bcs-1",
        "title": "Breast Cancer Screening",
        "measure_id": "HEDIS-BCS",
        "category": "preventive",
    }
    age = context.age
    if age is None or context.patient.gender != "female":
        return [
            CareGap(
                **common,
                status=CareGapStatus.NOT_APPLICABLE,
                description="Breast cancer screening is recommended for women aged 50-74.",
                recommended_action="No action needed at this time.",
                reason=(
                    "Patient gender does not match screening criteria."
                    if context.patient.gender != "female"
                    else "Patient age is outside recommended screening range."
                ),
            )
        ]

    if age < 50 or age > 74:
        return [
            CareGap(
                **common,
                status=CareGapStatus.NOT_APPLICABLE,
                description="Breast cancer screening is recommended for women aged 50-74.",
                recommended_action="No action needed at this time based on patient age.",
                reason=(
                    f"Patient age ({age}) is outside the recommended screening range "
                    "of 50-74 years."
                ),
            )
        ]

    if context.has_condition(BILATERAL_MASTECTOMY_CODES):
        return [
            CareGap(
                **common,
                status=CareGapStatus.NOT_APPLICABLE,
                description="Breast cancer screening is not applicable due to patient history.",
                recommended_action="No mammogram needed due to history of bilateral mastectomy.",
                reason="Patient has history of bilateral mastectomy.",
            )
        ]

    if context.has_recent(MAMMOGRAM_CODES, context.months_ago(27)):
        return [
            CareGap(
                **common,
                status=CareGapStatus.SATISFIED,
                description="Breast cancer screening is up to date.",
                recommended_action="Continue routine mammography screening every 2 years.",
                last_performed_date=context.last_date(MAMMOGRAM_CODES),
            )
        ]

    return [
        _due(
            context,
            gap_id="bcs-1",
            title="Breast Cancer Screening",
            description="Breast cancer screening mammogram is recommended.",
            recommended_action="Schedule mammogram.",
            measure_id="HEDIS-BCS",
            category="preventive",
            priority=CareGapPriority.HIGH,
        )
    ]


def _evaluate_general_preventive_care(context: _PatientContext) -> list[CareGap]:
    age = context.age
    if age is None:
        return []

    care_gaps: list[CareGap] = []

    if age >= 18 and not context.has_recent(BLOOD_PRESSURE_CODES, context.months_ago(24)):
        last_reading = context.last_date(BLOOD_PRESSURE_CODES)
        time_message = (
            time_since_message(last_reading, context.now) + " for a blood pressure check"
            if last_reading
            else "We don't see any recent blood pressure readings"
        )
        care_gaps.append(
            _due(
                context,
                gap_id="bp-1",
                title="Blood Pressure Check",
                description=(
                    f"{time_message}. Regular blood pressure monitoring helps detect "
                    "hypertension early."
                ),
                recommended_action=(
                    "Schedule a blood pressure check with your healthcare provider. This can "
                    "often be done during routine visits or at many pharmacies."
                ),
                measure_id="BP-Monitor",
                category="preventive",
                priority=CareGapPriority.MEDIUM,
            )
        )

    at_cardiovascular_risk = context.has_condition(
        CARDIOVASCULAR_RISK_CODES, CARDIOVASCULAR_RISK_ICD_PREFIXES
    )
    should_screen_cholesterol = age >= 40 or (age >= 20 and at_cardiovascular_risk)
    recent_cholesterol = context.has_recent(CHOLESTEROL_CODES, context.months_ago(60))
    if should_screen_cholesterol and not recent_cholesterol:
        last_test = context.last_date(CHOLESTEROL_CODES)
        time_message = (
            time_since_message(last_test, context.now) + " for cholesterol screening"
            if last_test
            else "We don't see any recent cholesterol test results"
        )
        care_gaps.append(
            _due(
                context,
                gap_id="chol-1",
                title="Cholesterol Screening",
                description=(
                    f"{time_message}. Regular cholesterol testing helps assess your heart "
                    "disease risk."
                ),
                recommended_action=(
                    "Schedule a cholesterol panel (lipid test) with your healthcare provider. "
                    "This simple blood test should be done every 4-6 years."
                ),
                measure_id="Cholesterol-Screen",
                category="preventive",
                priority=CareGapPriority.MEDIUM,
            )
        )

    if age >= 6 and not _has_current_flu_vaccine(context):
        care_gaps.append(
            _due(
                context,
                gap_id="flu-1",
                title="Annual Flu Vaccine",
                description=(
                    "Annual influenza vaccination is recommended for everyone 6 months and older."
                ),
                recommended_action=(
                    "Schedule your annual flu vaccine. It's especially important during flu "
                    "season (fall/winter)."
                ),
                measure_id="Flu-Vaccine",
                category="preventive",
                priority=CareGapPriority.MEDIUM,
            )
        )

    return care_gaps


def _has_current_flu_vaccine(context: _PatientContext) -> bool:
    return any(
        immunization.occurrence_date is not None
        and immunization.occurrence_date.year >= context.now.year
        and FLU_VACCINE_CODES.intersection(immunization.vaccine_codes)
        for immunization in context.immunizations
    )


def _evaluate_hypertension_monitoring(context: _PatientContext) -> list[CareGap]:
    if not context.has_condition(
        HYPERTENSION_CODES, HYPERTENSION_ICD_PREFIXES, ConditionFamily.HYPERTENSION
    ):
        return []
    if context.has_recent(BLOOD_PRESSURE_CODES, context.months_ago(6)):
        return []

    last_reading = context.last_date(BLOOD_PRESSURE_CODES)
    time_message = (
        time_since_message(last_reading, context.now) + " for blood pressure monitoring"
        if last_reading
        else "We don't see recent blood pressure readings"
    )
    return [
        _due(
            context,
            gap_id="htn-1",
            title="Blood Pressure Monitoring",
            description=(
                f"{time_message}. With hypertension, regular monitoring helps ensure your "
                "treatment is working effectively."
            ),
            recommended_action=(
                "Schedule a blood pressure check with your healthcare provider. Consider "
                "monitoring at home between visits."
            ),
            measure_id="HTN-Monitor",
            category="chronic",
            priority=CareGapPriority.HIGH,
        )
    ]
