"""Entity model and result envelope."""

from .entities import (
    ENTITY_TYPES,
    TERMINAL_APPOINTMENT_STATUSES,
    Appointment,
    Benefit,
    BillingCode,
    ClinicalNote,
    Entity,
    InsuranceEligibility,
    LabResult,
    LabValue,
    Medication,
    Patient,
    PatientBalance,
    Payment,
    Provider,
    Transaction,
    VitalSigns,
    compute_bmi,
    supplied_fields,
)
from .availability import ProviderAvailability, TimeSlot
from .envelope import Envelope

__all__ = [
    "ENTITY_TYPES",
    "TERMINAL_APPOINTMENT_STATUSES",
    "Appointment",
    "Benefit",
    "BillingCode",
    "ClinicalNote",
    "Entity",
    "Envelope",
    "InsuranceEligibility",
    "LabResult",
    "LabValue",
    "Medication",
    "Patient",
    "PatientBalance",
    "Payment",
    "Provider",
    "ProviderAvailability",
    "TimeSlot",
    "Transaction",
    "VitalSigns",
    "compute_bmi",
    "supplied_fields",
]
