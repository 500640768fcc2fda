"""Shared test fixtures for chartdesk tests."""

import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from chartdesk.db import ChartdeskDB
from chartdesk.models import (
    OUTSTANDING_BALANCE,
    Alert,
    Charge,
    DoctorNote,
    Event,
    EventStatus,
    Medication,
    Memo,
    Patient,
    PatientRecord,
    PaymentMethod,
    PersonRef,
    PlannedPayment,
    Tag,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

FIXTURES_DIR = os.path.join(os.path.dirname(__file__), "fixtures")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database with schema initialized."""
    db_path = str(tmp_path / "test.db")
    db = ChartdeskDB(db_path)
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def sample_yaml_path():
    return os.path.join(FIXTURES_DIR, "sample_patient.yaml")


@pytest.fixture
def visa():
    return PaymentMethod(
        id="pm_visa",
        patient_id="pt_sarah",
        type="CARD",
        description="Primary Card",
        is_default=True,
        brand="Visa",
        last4="4242",
        exp_month=12,
        exp_year=2028,
    )


@pytest.fixture
def bank():
    return PaymentMethod(
        id="pm_bank",
        patient_id="pt_sarah",
        type="BANK_ACCOUNT",
        description="Checking",
        bank_name="Chase Bank",
        account_number_last4="9876",
    )


@pytest.fixture
def patient():
    return Patient(
        id="pt_sarah",
        first_name="Sarah",
        last_name="Johnson",
        email="sarah.johnson@example.com",
        gender="FEMALE",
        date_of_birth=date(1985, 7, 15),
        allergies=("Penicillin", "Peanuts"),
        family_history=("Diabetes", "Hypertension"),
        medical_history=("Asthma", "Seasonal allergies"),
        medications=(
            Medication(id="md_albuterol", patient_id="pt_sarah", name="Albuterol", active=True),
        ),
    )


@pytest.fixture
def sample_record(patient, visa, bank):
    """Sarah Johnson's record as seen at NOW.

    Three charges owe money (50 on a payment plan, 85 unpaid, 120 with a
    future scheduled auto-payment of 60); one follow-up appointment falls
    inside the 7-day window; one doctor's note is from the last 24 hours.
    """
    ref = patient.ref()
    return PatientRecord(
        patient=patient,
        payment_methods=(visa, bank),
        charges=(
            Charge(
                id="ch_consult",
                total=Decimal("250.00"),
                total_outstanding=Decimal("50.00"),
                description="Initial Consultation",
                created_date=datetime(2026, 6, 15, 9, 30, tzinfo=timezone.utc),
                patient=ref,
                planned_payments=(
                    PlannedPayment(
                        id="pln_1",
                        amount=Decimal("50.00"),
                        payment_date=datetime(2026, 11, 15, tzinfo=timezone.utc),
                        status="SCHEDULED",
                    ),
                ),
                comment="Patient requested payment plan for remaining balance",
            ),
            Charge(
                id="ch_followup",
                total=Decimal("175.00"),
                total_outstanding=Decimal("0.00"),
                description="Follow-up Appointment",
                created_date=datetime(2026, 8, 20, 14, 0, tzinfo=timezone.utc),
                patient=ref,
            ),
            Charge(
                id="ch_renewal",
                total=Decimal("85.00"),
                total_outstanding=Decimal("85.00"),
                description="Prescription Renewal",
                created_date=datetime(2026, 10, 1, 10, 0, tzinfo=timezone.utc),
                patient=ref,
            ),
            Charge(
                id="ch_lab",
                total=Decimal("120.00"),
                total_outstanding=Decimal("120.00"),
                description="Lab Panel",
                created_date=datetime(2026, 10, 10, 8, 0, tzinfo=timezone.utc),
                patient=ref,
                scheduled_payment_date=datetime(2026, 10, 25, 9, 0, tzinfo=timezone.utc),
                scheduled_payment_amount=Decimal("60.00"),
                scheduled_payment_method=visa,
                auto_pay_enabled=True,
            ),
        ),
        events=(
            Event(
                id="evt_followup",
                title="Allergy Follow-up",
                start=datetime(2026, 10, 20, 15, 0, tzinfo=timezone.utc),
                end=datetime(2026, 10, 20, 15, 30, tzinfo=timezone.utc),
                status=EventStatus.CONFIRMED,
            ),
            Event(
                id="evt_physical",
                title="Annual Physical",
                start=datetime(2026, 11, 20, 11, 0, tzinfo=timezone.utc),
                end=datetime(2026, 11, 20, 12, 0, tzinfo=timezone.utc),
                status=EventStatus.RESCHEDULED,
            ),
            Event(
                id="evt_past",
                title="Initial Consultation",
                start=datetime(2026, 9, 1, 9, 0, tzinfo=timezone.utc),
                end=datetime(2026, 9, 1, 10, 0, tzinfo=timezone.utc),
                status=EventStatus.COMPLETED,
            ),
            Event(
                id="evt_cancelled",
                title="Lab Work",
                start=datetime(2026, 10, 22, 8, 0, tzinfo=timezone.utc),
                end=datetime(2026, 10, 22, 8, 30, tzinfo=timezone.utc),
                status=EventStatus.CANCELLED,
            ),
        ),
        doctors_notes=(
            DoctorNote(
                id="note_recent",
                created_date=NOW - timedelta(hours=3),
                summary="Seasonal allergy flare-up",
                content="Patient reports increased allergy symptoms despite medication.",
                patient=ref,
            ),
            DoctorNote(
                id="note_old",
                created_date=datetime(2026, 9, 1, 10, 0, tzinfo=timezone.utc),
                summary="Initial consultation",
                content="Comprehensive evaluation.",
                patient=ref,
            ),
        ),
        memos=(
            Memo(
                id="memo_existing",
                note="Patient prefers morning appointments.",
                created_date=datetime(2026, 9, 1, 10, 30, tzinfo=timezone.utc),
                patient=ref,
                creator=PersonRef(id="usr_davis", first_name="Robert", last_name="Davis"),
            ),
        ),
        alerts=(
            Alert(
                id="alrt_form",
                type="FORM_SUBMITTED",
                created_date=datetime(2026, 10, 2, 11, 15, tzinfo=timezone.utc),
                action_required=True,
                data={"name": "Allergy Questionnaire"},
                tags=(Tag(id="tag_forms", name="Forms"),),
            ),
            Alert(
                id="alrt_message",
                type="MESSAGE_RECEIVED",
                created_date=datetime(2026, 10, 18, 14, 30, tzinfo=timezone.utc),
                action_required=False,
                data={"message": "Thanks for the follow-up."},
            ),
            Alert(
                id="alrt_balance",
                type=OUTSTANDING_BALANCE,
                created_date=datetime(2026, 10, 5, 12, 0, tzinfo=timezone.utc),
                action_required=True,
                data={
                    "totalOutstanding": 135.0,
                    "charges": [
                        {"id": "ch_consult", "description": "Initial Consultation", "amount": 50.0},
                        {"id": "ch_renewal", "description": "Prescription Renewal", "amount": 85.0},
                    ],
                },
            ),
        ),
    )
