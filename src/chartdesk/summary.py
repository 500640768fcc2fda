"""Clinical summary text and insights for the AI-summary section.

Built only from demographics, history, medications, doctor's notes and
alerts. Charges, payments and payment methods are never read here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from chartdesk.core.utils import ensure_aware
from chartdesk.models import PatientRecord

DEFAULT_INSIGHTS = (
    "Patient appears to be managing conditions well",
    "Continue current treatment plan",
)


@dataclass(frozen=True)
class AISummary:
    text: str
    insights: tuple[str, ...]

    def to_dict(self) -> dict:
        return {"text": self.text, "insights": list(self.insights)}


def age_on(date_of_birth: date, today: date) -> int:
    had_birthday = (today.month, today.day) >= (date_of_birth.month, date_of_birth.day)
    return today.year - date_of_birth.year - (0 if had_birthday else 1)


def generate_summary(record: PatientRecord, now: datetime) -> AISummary:
    """Summarize the patient's clinical picture as of ``now``."""
    patient = record.patient
    today = ensure_aware(now).date()
    notes = sorted(record.doctors_notes, key=lambda n: n.created_date, reverse=True)[:2]
    action_required = sum(1 for a in record.alerts if a.action_required)

    if patient.date_of_birth is not None:
        who = f"a {age_on(patient.date_of_birth, today)}-year-old"
    else:
        who = "a"
    gender = f" {patient.gender.lower()}" if patient.gender else ""
    history = ", ".join(patient.medical_history) or "no significant conditions"
    parts = [f"{patient.full_name} is {who}{gender} patient with a medical history of {history}."]

    if patient.allergies:
        parts.append(f"Known allergies include {', '.join(patient.allergies)}.")
    if notes and notes[0].summary:
        parts.append(f"Most recent visit focused on {notes[0].summary.rstrip('.').lower()}.")
    if action_required:
        noun = "alert" if action_required == 1 else "alerts"
        parts.append(f"There are {action_required} active {noun} requiring attention.")

    insights = []
    if "Diabetes" in patient.family_history:
        insights.append("Monitor blood glucose levels due to family history of diabetes")
    if "Asthma" in patient.medical_history:
        insights.append("Ensure asthma action plan is up to date")
    if any("allergy" in n.content.lower() for n in notes):
        insights.append("Recent allergy concerns - monitor treatment effectiveness")
    if any(m.active for m in patient.medications):
        insights.append("Review current medications for effectiveness and interactions")

    return AISummary(text=" ".join(parts), insights=tuple(insights) or DEFAULT_INSIGHTS)
