"""Entity model for a patient record and its billing, scheduling and audit data.

Every entity is a frozen dataclass and every nested collection is a tuple, so
a PatientRecord can only change by building a new one (dataclasses.replace).
Unchanged subtrees are shared between the old and the new record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

OUTSTANDING_BALANCE = "OUTSTANDING_BALANCE"


class ChargeStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class EventStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    RESCHEDULED = "RESCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentMedium(str, Enum):
    CARD = "CARD"
    SCHEDULED_AUTO_PAY = "SCHEDULED_AUTO_PAY"


TERMINAL_EVENT_STATUSES = frozenset({EventStatus.CANCELLED, EventStatus.COMPLETED})
ACTIVE_EVENT_STATUSES = frozenset({EventStatus.CONFIRMED, EventStatus.RESCHEDULED})


def derive_charge_status(total: Decimal, total_outstanding: Decimal) -> ChargeStatus:
    """Status is a pure function of the outstanding balance relative to the total."""
    if total_outstanding <= 0:
        return ChargeStatus.PAID
    if total_outstanding < total:
        return ChargeStatus.PARTIALLY_PAID
    return ChargeStatus.UNPAID


@dataclass(frozen=True)
class PersonRef:
    """A lightweight reference to a patient or staff member."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Provider:
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    title: str = ""  # e.g. "MD, Internal Medicine"
    department: str = ""
    phone: str = ""


@dataclass(frozen=True)
class Tag:
    id: str
    name: str


@dataclass(frozen=True)
class Measurement:
    id: str
    patient_id: str = ""
    type: str = ""  # weight, height, blood_pressure, ...
    value: Any = None  # number or text such as "120/80"
    unit: str = ""
    date: datetime | None = None


@dataclass(frozen=True)
class Medication:
    id: str
    patient_id: str = ""
    name: str = ""
    dosage: str = ""
    frequency: str = ""
    start_date: date | None = None
    end_date: date | None = None
    active: bool = True


@dataclass(frozen=True)
class Patient:
    """Patient demographics and clinical history."""

    id: str
    first_name: str = ""
    last_name: str = ""
    phone_number: str = ""
    email: str = ""
    address: str = ""
    address_line_two: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    address_valid: bool = False
    guardian_name: str = ""
    guardian_phone_number: str = ""
    marital_status: str = ""
    gender: str = ""
    employment_status: str = ""
    date_of_birth: date | None = None
    allergies: tuple[str, ...] = ()
    family_history: tuple[str, ...] = ()
    medical_history: tuple[str, ...] = ()
    prescriptions: tuple[str, ...] = ()
    goal_weight: Decimal | None = None
    is_onboarding_complete: bool = False
    created_date: datetime | None = None
    firebase_uid: str = ""
    measurements: tuple[Measurement, ...] = ()
    medications: tuple[Medication, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def ref(self) -> PersonRef:
        return PersonRef(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            phone_number=self.phone_number,
        )


@dataclass(frozen=True)
class PaymentMethod:
    """A stored card or bank account."""

    id: str
    patient_id: str = ""
    type: str = ""  # CARD, BANK_ACCOUNT
    description: str = ""
    is_default: bool = False
    brand: str = ""
    last4: str = ""
    exp_month: int | None = None
    exp_year: int | None = None
    account_holder_type: str = ""
    account_number_last4: str = ""
    bank_name: str = ""
    routing_number: str = ""

    @property
    def label(self) -> str:
        if self.last4:
            return f"{self.brand or 'Card'} ****{self.last4}".strip()
        if self.account_number_last4:
            return f"{self.bank_name or 'Account'} ****{self.account_number_last4}"
        return self.description or self.id


@dataclass(frozen=True)
class Payment:
    """A settled payment; immutable once appended to a charge."""

    id: str
    amount: Decimal
    created_date: datetime
    payment_medium: PaymentMedium = PaymentMedium.CARD
    payment_method: PaymentMethod | None = None  # snapshot, not a live reference
    refunds: tuple[Any, ...] = ()

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError(f"Payment {self.id}: amount must be >= 0, got {self.amount}")


@dataclass(frozen=True)
class PlannedPayment:
    """One installment of a payment plan."""

    id: str
    amount: Decimal
    payment_date: datetime
    status: str = ""


@dataclass(frozen=True)
class Adjustment:
    id: str
    charge_id: str = ""
    amount: Decimal = Decimal("0")
    type: str = ""
    description: str = ""
    created_date: datetime | None = None


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str = ""
    description: str = ""
    price: Decimal = Decimal("0")
    active: bool = True
    created_date: datetime | None = None
    category: str = ""


@dataclass(frozen=True)
class ChargeItem:
    item_id: str
    charge_id: str = ""
    quantity: int = 1
    item: CatalogItem | None = None


@dataclass(frozen=True)
class Charge:
    """A billable line item with an outstanding balance and payment history.

    ``status`` is derived from the balance and cannot be set. The scheduled
    payment date, amount and method are either all present or all absent.
    """

    id: str
    total: Decimal
    total_outstanding: Decimal
    description: str = ""
    created_date: datetime | None = None
    patient: PersonRef | None = None
    creator: PersonRef | None = None
    adjustments: tuple[Adjustment, ...] = ()
    payments: tuple[Payment, ...] = ()
    planned_payments: tuple[PlannedPayment, ...] = ()
    comment: str = ""
    items: tuple[ChargeItem, ...] = ()
    location_id: str = ""
    location_name: str = ""
    scheduled_payment_date: datetime | None = None
    scheduled_payment_amount: Decimal | None = None
    scheduled_payment_method: PaymentMethod | None = None
    auto_pay_enabled: bool = False

    def __post_init__(self):
        if self.total < 0:
            raise ValueError(f"Charge {self.id}: total must be >= 0, got {self.total}")
        if not 0 <= self.total_outstanding <= self.total:
            raise ValueError(
                f"Charge {self.id}: total_outstanding {self.total_outstanding} "
                f"outside [0, {self.total}]"
            )
        scheduling = (
            self.scheduled_payment_date,
            self.scheduled_payment_amount,
            self.scheduled_payment_method,
        )
        present = sum(v is not None for v in scheduling)
        if present not in (0, len(scheduling)):
            raise ValueError(f"Charge {self.id}: scheduled payment fields are partially set")
        if present == 0 and self.auto_pay_enabled:
            raise ValueError(f"Charge {self.id}: auto-pay enabled without a scheduled payment")

    @property
    def status(self) -> ChargeStatus:
        return derive_charge_status(self.total, self.total_outstanding)

    @property
    def has_scheduled_payment(self) -> bool:
        return self.scheduled_payment_date is not None

    @property
    def amount_paid(self) -> Decimal:
        return self.total - self.total_outstanding


@dataclass(frozen=True)
class Alert:
    """A notification attached to the patient, e.g. an outstanding balance."""

    id: str
    type: str
    created_date: datetime
    action_required: bool = False
    data: dict = field(default_factory=dict, compare=False)
    tags: tuple[Tag, ...] = ()
    assigned_provider: Provider | None = None
    resolving_provider: Provider | None = None
    resolved_date: datetime | None = None
    occurrences: int = field(default=1, metadata={"aliases": ("occurances",)})
    patient: PersonRef | None = None

    def referenced_charge_ids(self) -> tuple[str, ...]:
        """Charge ids listed in an OUTSTANDING_BALANCE alert payload."""
        if self.type != OUTSTANDING_BALANCE:
            return ()
        charges = self.data.get("charges") or []
        return tuple(c["id"] for c in charges if isinstance(c, dict) and c.get("id"))


@dataclass(frozen=True)
class Location:
    id: str = ""
    name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""
    is_virtual: bool = False
    meeting_link: str = ""


@dataclass(frozen=True)
class Attendee:
    user: PersonRef
    invite_status: str = ""


@dataclass(frozen=True)
class AppointmentDetails:
    id: str = ""
    event_id: str = ""
    patient_id: str = ""
    provider_id: str = ""
    reason: str = ""
    confirmation_status: str = ""
    confirmation_date: datetime | None = None
    checked_in_date: datetime | None = None
    appointment_type: str = ""


@dataclass(frozen=True)
class Event:
    """A calendar event; appointments carry AppointmentDetails."""

    id: str
    start: datetime
    end: datetime
    status: EventStatus = EventStatus.CONFIRMED
    title: str = ""
    type: str = ""
    organizer: PersonRef | None = None
    meeting_link: str = ""
    attendees: tuple[Attendee, ...] = ()
    location: Location | None = None
    form_completed: bool = False
    appointment: AppointmentDetails | None = None

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(f"Event {self.id}: end precedes start")

    @property
    def duration(self):
        return self.end - self.start


@dataclass(frozen=True)
class DoctorNote:
    id: str
    created_date: datetime
    content: str = ""
    summary: str = ""
    event_id: str = ""
    parent_note_id: str = ""
    note_transcript_id: str = ""
    duration: int | None = None
    version: int = 1
    current_version: int = 1
    ai_generated: bool = False
    patient: PersonRef | None = None
    provider_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class Memo:
    """Append-only, human-readable audit note."""

    id: str
    note: str
    created_date: datetime
    updated_date: datetime | None = None
    patient: PersonRef | None = None
    creator: PersonRef | None = None


@dataclass(frozen=True)
class PatientRecord:
    """Aggregate root: everything the dashboard shows about one patient.

    Memos are ordered most recent first.
    """

    patient: Patient
    charges: tuple[Charge, ...] = ()
    events: tuple[Event, ...] = ()
    doctors_notes: tuple[DoctorNote, ...] = ()
    memos: tuple[Memo, ...] = ()
    alerts: tuple[Alert, ...] = ()
    payment_methods: tuple[PaymentMethod, ...] = ()

    def charge(self, charge_id: str) -> Charge | None:
        return next((c for c in self.charges if c.id == charge_id), None)

    def event(self, event_id: str) -> Event | None:
        return next((e for e in self.events if e.id == event_id), None)

    def payment_method(self, method_id: str) -> PaymentMethod | None:
        return next((m for m in self.payment_methods if m.id == method_id), None)

    @property
    def default_payment_method(self) -> PaymentMethod | None:
        return next((m for m in self.payment_methods if m.is_default), None)

    def counts(self) -> dict[str, int]:
        """Return item counts per collection."""
        return {
            "charges": len(self.charges),
            "events": len(self.events),
            "doctors_notes": len(self.doctors_notes),
            "memos": len(self.memos),
            "alerts": len(self.alerts),
            "payment_methods": len(self.payment_methods),
        }
