"""
End-to-end demo of the health insights pipeline.

This script:
1. Loads configuration and configures logging
2. Stores two sample patients in the in-memory record store
3. Analyzes each snapshot as of the current time
4. Renders scores, interpretations, trends, priority actions and insights

Run with: uv run python run_demo.py
"""

from datetime import UTC, datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from health_insights.config import configure_logging, get_config, print_config_summary
from health_insights.domain.models import HealthSummary, InsightSeverity, Severity, Urgency
from health_insights.services import HealthInsightsEngine, InMemoryRecordStore

console = Console()

SEVERITY_STYLES = {
    Severity.NORMAL: "green",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "red",
}
INSIGHT_STYLES = {
    InsightSeverity.POSITIVE: "green",
    InsightSeverity.INFO: "cyan",
    InsightSeverity.WARNING: "yellow",
}
URGENCY_STYLES = {
    Urgency.CRITICAL: "red",
    Urgency.HIGH: "yellow",
    Urgency.MEDIUM: "white",
}


def _coding(system: str, code: str, display: str) -> dict:
    return {"coding": [{"system": system, "code": code, "display": display}], "text": display}


def _observation(obs_id: str, code: str, display: str, value: float, unit: str, when: str) -> dict:
    return {
        "resourceType": "Observation",
        "id": obs_id,
        "status": "final",
        "code": _coding("http://loinc.org", code, display),
        "valueQuantity": {"value": value, "unit": unit},
        "effectiveDateTime": when,
    }


DIABETIC_PATIENT = {
    "patient": {
        "resourceType": "Patient",
        "id": "patient-1",
        "birthDate": "1968-04-12",
        "gender": "female",
    },
    "conditions": [
        {
            "resourceType": "Condition",
            "id": "cond-1",
            "code": _coding("http://snomed.info/sct", "44054006", "Type 2 diabetes mellitus"),
            "clinicalStatus": {"coding": [{"code": "active"}]},
            "onsetDateTime": "2015-06-01",
        },
        {
            "resourceType": "Condition",
            "id": "cond-2",
            "code": _coding("http://snomed.info/sct", "38341003", "Essential hypertension"),
            "clinicalStatus": {"coding": [{"code": "active"}]},
            "onsetDateTime": "2017-02-15",
        },
    ],
    "observations": [
        _observation("obs-1", "4548-4", "Hemoglobin A1c", 8.4, "%", "2024-01-10"),
        _observation("obs-2", "4548-4", "Hemoglobin A1c", 7.6, "%", "2024-04-18"),
        _observation("obs-3", "4548-4", "Hemoglobin A1c", 6.9, "%", "2024-08-22"),
        _observation("obs-4", "8480-6", "Systolic blood pressure", 142, "mmHg", "2024-02-03"),
        _observation("obs-5", "8480-6", "Systolic blood pressure", 134, "mmHg", "2024-05-11"),
        _observation("obs-6", "8480-6", "Systolic blood pressure", 126, "mmHg", "2024-09-07"),
        _observation("obs-7", "2089-1", "LDL Cholesterol", 118, "mg/dL", "2024-08-22"),
        # Missing value and code: dropped during normalization
        {"resourceType": "Observation", "id": "obs-bad", "status": "final"},
    ],
    "medications": [
        {
            "resourceType": "MedicationRequest",
            "id": "med-1",
            "status": "active",
            "medicationCodeableConcept": {"text": "Metformin 500 mg"},
        },
        {
            "resourceType": "MedicationRequest",
            "id": "med-2",
            "status": "active",
            "medicationCodeableConcept": {"text": "Lisinopril 10 mg"},
        },
    ],
    "allergies": [
        {
            "resourceType": "AllergyIntolerance",
            "id": "alg-1",
            "code": {"text": "Penicillin"},
            "criticality": "high",
        }
    ],
    "immunizations": [],
    "care_gaps": [],
}

HEALTHY_PATIENT = {
    "patient": {"id": "patient-2", "birthDate": "1995-09-30", "gender": "male"},
    "observations": [
        {"code": "2085-9", "value": 52, "unit": "mg/dL", "date": "2024-03-01"},
        {"code": "2085-9", "value": 61, "unit": "mg/dL", "date": "2024-09-01"},
        {"code": "29463-7", "value": 172, "unit": "lbs", "date": "2024-09-01"},
    ],
    "care_gaps": [
        {
            "id": "gap-1",
            "title": "Annual Physical",
            "status": "satisfied",
            "priority": "low",
            "lastPerformedDate": "2024-06-01",
        },
        {
            "id": "gap-2",
            "title": "Dental Cleaning",
            "status": "due",
            "priority": "medium",
            "dueDate": "2030-01-01",
            "recommendedAction": "Book a cleaning with your dentist.",
        },
    ],
}


def render_summary(patient_id: str, summary: HealthSummary) -> None:
    style = INSIGHT_STYLES[summary.score_band]
    console.print(
        Panel(
            f"Health score: [bold]{summary.health_score}[/bold]/100\n"
            f"Active conditions: {', '.join(summary.active_conditions) or 'none'}\n"
            f"Medications: {summary.medication_count}   Allergies: {summary.allergy_count}\n"
            f"Dropped records: {summary.dropped_records or 'none'}",
            title=f"🩺 {patient_id}",
            style=style,
        )
    )

    if summary.interpretations:
        table = Table(title="Latest Results")
        table.add_column("Biomarker", style="cyan")
        table.add_column("Value", style="white")
        table.add_column("Interpretation")
        for interpretation in summary.interpretations:
            table.add_row(
                interpretation.name or interpretation.code,
                f"{interpretation.value:g} {interpretation.unit}",
                f"[{SEVERITY_STYLES[interpretation.severity]}]{interpretation.text}[/]",
            )
        console.print(table)

    if summary.trends:
        table = Table(title="Trends")
        table.add_column("Biomarker", style="cyan")
        table.add_column("Readings")
        table.add_column("Direction")
        table.add_column("Last change")
        table.add_column("Range")
        for trend in summary.trends:
            table.add_row(
                trend.name,
                str(len(trend.ordered_values)),
                trend.direction,
                f"{trend.short_term_delta:+.1f} ({trend.short_term_status})",
                f"{trend.min:g} to {trend.max:g}, mean {trend.mean:.1f}",
            )
        console.print(table)
        for trend in summary.trends:
            if trend.research_note:
                console.print(f"[dim]📚 {trend.name}: {trend.research_note}[/dim]")

    if summary.priority_actions:
        table = Table(title="Priority Actions")
        table.add_column("Urgency")
        table.add_column("Care gap", style="cyan")
        table.add_column("When")
        for action in summary.priority_actions:
            table.add_row(
                f"[{URGENCY_STYLES[action.urgency]}]{action.urgency.value.upper()}[/]",
                action.title,
                action.description,
            )
        console.print(table)

    for insight in summary.insights:
        citation = f"\n[dim]{insight.citation}[/dim]" if insight.citation else ""
        console.print(
            Panel(
                f"{insight.description}{citation}",
                title=insight.title,
                style=INSIGHT_STYLES[insight.severity],
            )
        )


def main() -> None:
    config = get_config()
    configure_logging(config.logging)
    print_config_summary()

    store = InMemoryRecordStore()
    store.add("patient-1", DIABETIC_PATIENT)
    store.add("patient-2", HEALTHY_PATIENT)

    engine = HealthInsightsEngine(config.engine)
    now = datetime.now(UTC)

    for patient_id in [*store.patient_ids(), "patient-unknown"]:
        result = store.get_snapshot(patient_id)
        if result.is_err():
            console.print(f"❌ No records for {result.unwrap_err()}", style="red")
            continue
        render_summary(patient_id, engine.analyze(result.unwrap(), now))


if __name__ == "__main__":
    main()
