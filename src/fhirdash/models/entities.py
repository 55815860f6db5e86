"""Normalized clinical entities used by the dashboard.

Every entity is a flat pydantic model with snake_case attributes and
camelCase aliases, so ``model_dump(by_alias=True)`` produces the JSON shape
the dashboard renders. All fields carry defaults: the mock store accepts
partial payloads, and completeness is checked separately through
``missing_required_fields()``.

Links between entities are by id only. ``patient_name`` and
``provider_name`` are display copies taken when the record is created or
transformed; they are not refreshed when the referenced entity changes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Gender = Literal["male", "female", "other", "unknown"]
AppointmentStatus = Literal["scheduled", "confirmed", "completed", "cancelled", "no-show"]
LabValueStatus = Literal["normal", "abnormal", "critical"]
LabStatus = Literal["pending", "completed", "reviewed"]
MedicationStatus = Literal["active", "discontinued", "completed"]
EligibilityStatus = Literal["active", "inactive", "pending", "expired"]
TransactionType = Literal["charge", "payment", "adjustment"]
TransactionStatus = Literal["pending", "processed", "denied"]
BillingCodeStatus = Literal["active", "inactive"]

TERMINAL_APPOINTMENT_STATUSES: frozenset[str] = frozenset({"cancelled", "completed", "no-show"})


class Entity(BaseModel):
    """Base for all dashboard entities."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # Fields that must be non-empty for a record to be considered valid
    REQUIRED_FIELDS: ClassVar[tuple[str, ...]] = ()
    # Collection name inside the mock store
    COLLECTION: ClassVar[str] = ""

    id: str = ""

    def missing_required_fields(self) -> list[str]:
        """Return the names of required fields that are empty."""
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]


# =============================================================================
# Patients & providers
# =============================================================================


class Patient(Entity):
    REQUIRED_FIELDS = ("first_name", "last_name", "date_of_birth", "gender")
    COLLECTION = "patients"

    first_name: str = ""
    last_name: str = ""
    date_of_birth: str = ""
    gender: Gender = "unknown"
    phone: str = ""
    email: str = ""
    address: str = ""
    emergency_contact: str = ""
    emergency_phone: str = ""
    # Informational lists, distinct from the Medication entity
    allergies: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    last_visit: str = ""
    next_appointment: str | None = None
    insurance_provider: str = ""
    insurance_id: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Provider(Entity):
    REQUIRED_FIELDS = ("name",)
    COLLECTION = "providers"

    name: str = ""
    first_name: str = ""
    last_name: str = ""
    specialty: str = ""
    qualification: str = ""
    department: str = ""
    email: str | None = None
    phone: str | None = None
    active: bool = True
    # Lowercase English weekday -> ordered "HH:MM" slot starts
    availability: dict[str, list[str]] = Field(default_factory=dict)


# =============================================================================
# Scheduling
# =============================================================================


class Appointment(Entity):
    REQUIRED_FIELDS = ("patient_id", "provider_id", "date", "time")
    COLLECTION = "appointments"

    patient_id: str = ""
    patient_name: str = ""
    provider_id: str = ""
    provider_name: str = ""
    date: str = ""
    time: str = ""
    duration: int = Field(default=30, gt=0)
    type: str = ""
    status: AppointmentStatus = "scheduled"
    reason: str = ""
    notes: str | None = None
    location: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Cancelled, completed and no-show appointments can no longer change."""
        return self.status in TERMINAL_APPOINTMENT_STATUSES


# =============================================================================
# Clinical
# =============================================================================


class ClinicalNote(Entity):
    REQUIRED_FIELDS = ("patient_id", "provider_id", "date", "type")
    COLLECTION = "clinical_notes"

    patient_id: str = ""
    patient_name: str = ""
    provider_id: str = ""
    provider_name: str = ""
    date: str = ""
    type: str = ""
    chief_complaint: str = ""
    history_of_present_illness: str = ""
    physical_exam: str = ""
    assessment: str = ""
    plan: str = ""
    follow_up: str | None = None


class VitalSigns(Entity):
    REQUIRED_FIELDS = ("patient_id", "date")
    COLLECTION = "vitals"

    patient_id: str = ""
    patient_name: str = ""
    date: str = ""
    time: str = ""
    temperature: float = 0
    blood_pressure_systolic: float = 0
    blood_pressure_diastolic: float = 0
    heart_rate: float = 0
    respiratory_rate: float = 0
    oxygen_saturation: float = 0
    weight: float | None = None  # kg
    height: float | None = None  # cm
    bmi: float | None = None
    pain: int | None = Field(default=None, ge=0, le=10)
    notes: str | None = None


def compute_bmi(weight_kg: float | None, height_cm: float | None) -> float | None:
    """Body-mass index from weight in kg and height in cm, or None."""
    if not weight_kg or not height_cm:
        return None
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


class LabValue(BaseModel):
    """A single analyte line within a lab result."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = ""
    value: str = ""
    unit: str = ""
    reference_range: str = ""
    status: LabValueStatus = "normal"


class LabResult(Entity):
    REQUIRED_FIELDS = ("patient_id", "test_name")
    COLLECTION = "lab_results"

    patient_id: str = ""
    patient_name: str = ""
    order_date: str = ""
    result_date: str = ""
    test_name: str = ""
    category: str = ""
    results: list[LabValue] = Field(default_factory=list)
    provider_id: str = ""
    provider_name: str = ""
    status: LabStatus = "pending"
    notes: str | None = None


class Medication(Entity):
    REQUIRED_FIELDS = ("patient_id", "medication_name", "dosage")
    COLLECTION = "medications"

    patient_id: str = ""
    patient_name: str = ""
    medication_name: str = ""
    dosage: str = ""
    frequency: str = ""
    route: str = ""
    start_date: str = ""
    end_date: str | None = None
    prescribed_by: str = ""
    indication: str = ""
    status: MedicationStatus = "active"
    notes: str | None = None


# =============================================================================
# Billing & administration
# =============================================================================


class Benefit(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    service: str = ""
    covered: bool = False
    copay: float | None = None
    coinsurance: float | None = None
    notes: str | None = None


class InsuranceEligibility(Entity):
    REQUIRED_FIELDS = ("patient_id", "insurance_provider", "policy_number")
    COLLECTION = "insurance"

    patient_id: str = ""
    patient_name: str = ""
    insurance_provider: str = ""
    policy_number: str = ""
    group_number: str | None = None
    eligibility_status: EligibilityStatus = "pending"
    effective_date: str = ""
    expiration_date: str | None = None
    copay: float | None = None
    deductible: float | None = None
    deductible_met: float | None = None
    benefits: list[Benefit] = Field(default_factory=list)
    last_checked: str = ""


class Payment(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    amount: float = 0
    date: str = ""
    method: str = ""


class Transaction(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    date: str = ""
    description: str = ""
    amount: float = 0
    type: TransactionType = "charge"
    status: TransactionStatus = "pending"


class PatientBalance(Entity):
    REQUIRED_FIELDS = ("patient_id",)
    COLLECTION = "balances"

    patient_id: str = ""
    patient_name: str = ""
    total_balance: float = 0
    insurance_balance: float = 0
    patient_balance: float = 0
    last_payment: Payment | None = None
    transactions: list[Transaction] = Field(default_factory=list)


class BillingCode(Entity):
    REQUIRED_FIELDS = ("code", "description")
    COLLECTION = "billing_codes"

    code: str = ""
    description: str = ""
    category: str = ""
    fee: float = 0
    insurance_rate: float | None = None
    last_updated: str = ""
    status: BillingCodeStatus = "active"


ENTITY_TYPES: dict[str, type[Entity]] = {
    cls.__name__: cls
    for cls in (
        Patient,
        Provider,
        Appointment,
        ClinicalNote,
        VitalSigns,
        LabResult,
        Medication,
        InsuranceEligibility,
        PatientBalance,
        BillingCode,
    )
}


def supplied_fields(entity_type: type[Entity], partial: Entity | Mapping[str, Any]) -> dict[str, Any]:
    """Validated values of the fields explicitly present in *partial*.

    Keys in *partial* may be attribute names or their camelCase aliases; the
    result is keyed by attribute name. Unknown keys are dropped.

    Raises:
        pydantic.ValidationError: If a supplied value has the wrong type
    """
    if isinstance(partial, Entity):
        if not isinstance(partial, entity_type):
            raise TypeError(f"Expected {entity_type.__name__}, got {type(partial).__name__}")
        model = partial
    else:
        model = entity_type.model_validate(dict(partial))
    return model.model_dump(include=model.model_fields_set)
