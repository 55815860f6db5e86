"""Shared sub-mappers and code tables for the transform layer.

All functions here are pure and never raise on missing data.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from .resources import Address, CodeableConcept, ContactPoint, HumanName

UNKNOWN_PATIENT = "Unknown Patient"
UNKNOWN_PROVIDER = "Unknown Provider"

# =============================================================================
# Code systems
# =============================================================================

LOINC = "http://loinc.org"
UCUM = "http://unitsofmeasure.org"
OBSERVATION_CATEGORY = "http://terminology.hl7.org/CodeSystem/observation-category"
PARTICIPATION_TYPE = "http://terminology.hl7.org/CodeSystem/v3-ParticipationType"
APPOINTMENT_REASON = "http://terminology.hl7.org/CodeSystem/v2-0276"
CONTACT_ROLE = "http://terminology.hl7.org/CodeSystem/v2-0131"
INTERPRETATION = "http://terminology.hl7.org/CodeSystem/v3-ObservationInterpretation"
NOTE_CATEGORY = "http://hl7.org/fhir/us/core/CodeSystem/us-core-documentreference-category"
RXNORM = "http://www.nlm.nih.gov/research/umls/rxnorm"

# Appointment participant type codes
PATIENT_PARTICIPANT_CODES = frozenset({"patient", "PPRF"})
PROVIDER_PARTICIPANT_CODES = frozenset({"practitioner", "PRCP"})

# =============================================================================
# Status tables (vocabulary fixed by FHIR R4)
# =============================================================================

APPOINTMENT_STATUS_IN: dict[str, str] = {
    "booked": "scheduled",
    "pending": "scheduled",
    "arrived": "confirmed",
    "checked-in": "confirmed",
    "fulfilled": "completed",
    "cancelled": "cancelled",
    "noshow": "no-show",
}

APPOINTMENT_STATUS_OUT: dict[str, str] = {
    "confirmed": "booked",
    "completed": "fulfilled",
    "cancelled": "cancelled",
    "no-show": "noshow",
}

MEDICATION_STATUS_IN: dict[str, str] = {
    "active": "active",
    "on-hold": "active",
    "draft": "active",
    "stopped": "discontinued",
    "cancelled": "discontinued",
    "entered-in-error": "discontinued",
    "completed": "completed",
}

MEDICATION_STATUS_OUT: dict[str, str] = {
    "active": "active",
    "discontinued": "stopped",
    "completed": "completed",
}

LAB_STATUS_IN: dict[str, str] = {
    "registered": "pending",
    "preliminary": "pending",
    "unknown": "pending",
    "final": "completed",
    "amended": "reviewed",
    "corrected": "reviewed",
}

LAB_STATUS_OUT: dict[str, str] = {
    "pending": "preliminary",
    "completed": "final",
    "reviewed": "amended",
}

INTERPRETATION_STATUS: dict[str, str] = {
    "N": "normal",
    "H": "abnormal",
    "L": "abnormal",
    "A": "abnormal",
    "HH": "critical",
    "LL": "critical",
    "AA": "critical",
    "HU": "critical",
    "LU": "critical",
}

# Reverse of INTERPRETATION_STATUS used when writing lab values
STATUS_INTERPRETATION: dict[str, str] = {
    "normal": "N",
    "abnormal": "A",
    "critical": "AA",
}

# VitalSigns field -> (LOINC code, display, UCUM unit)
VITAL_CODES: dict[str, tuple[str, str, str]] = {
    "temperature": ("8310-5", "Body temperature", "Cel"),
    "blood_pressure_systolic": ("8480-6", "Systolic blood pressure", "mm[Hg]"),
    "blood_pressure_diastolic": ("8462-4", "Diastolic blood pressure", "mm[Hg]"),
    "heart_rate": ("8867-4", "Heart rate", "/min"),
    "respiratory_rate": ("9279-1", "Respiratory rate", "/min"),
    "oxygen_saturation": ("2708-6", "Oxygen saturation", "%"),
    "weight": ("29463-7", "Body weight", "kg"),
    "height": ("8302-2", "Body height", "cm"),
    "bmi": ("39156-5", "Body mass index", "kg/m2"),
    "pain": ("72514-3", "Pain severity - 0-10 verbal numeric rating", "{score}"),
}

VITAL_FIELDS_BY_CODE: dict[str, str] = {code: name for name, (code, _, _) in VITAL_CODES.items()}

BLOOD_PRESSURE_PANEL = "85354-9"
VITAL_SIGNS_PANEL = "85353-1"


def map_appointment_status_in(status: str | None) -> str:
    """FHIR Appointment.status -> dashboard status (unknown -> scheduled)."""
    return APPOINTMENT_STATUS_IN.get(status or "", "scheduled")


def map_appointment_status_out(status: str | None) -> str:
    """Dashboard status -> FHIR Appointment.status (unknown -> booked)."""
    return APPOINTMENT_STATUS_OUT.get(status or "", "booked")


# =============================================================================
# Sub-mappers
# =============================================================================


def extract_display_text(concept: CodeableConcept | dict | None) -> str:
    """Readable text of a CodeableConcept.

    Order is fixed: ``text``, then the first coding's ``display``, then its
    ``code``, then "".
    """
    if concept is None:
        return ""
    if isinstance(concept, dict):
        concept = CodeableConcept.model_validate(concept)
    if concept.text:
        return concept.text
    if concept.coding:
        first = concept.coding[0]
        return first.display or first.code or ""
    return ""


def has_code(concepts: Iterable[CodeableConcept], codes: Iterable[str]) -> bool:
    """True if any coding in *concepts* carries one of *codes*."""
    wanted = set(codes)
    return any(c.code in wanted for concept in concepts for c in concept.coding)


def first_code(concept: CodeableConcept | None) -> str:
    if concept is None or not concept.coding:
        return ""
    return concept.coding[0].code or ""


def parse_iso(value: str) -> datetime:
    # fromisoformat() only learned the "Z" suffix in 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def format_date(value: str | None) -> str | None:
    """Format an ISO date/datetime as ``M/D/YYYY``.

    Missing or unparseable input is returned unchanged.
    """
    if not value:
        return value
    try:
        parsed = parse_iso(value)
    except ValueError:
        return value
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def date_part(value: str | None) -> str:
    """``YYYY-MM-DD`` portion of an ISO datetime ("" if missing)."""
    if not value:
        return ""
    return value.split("T")[0]


def time_part(value: str | None) -> str:
    """``HH:MM`` wall-clock portion of an ISO datetime ("" if absent)."""
    if not value or "T" not in value:
        return ""
    return value.split("T")[1][:5]


def minutes_between(start: str | None, end: str | None) -> int | None:
    """Whole minutes from *start* to *end*, or None if either is unusable."""
    if not start or not end:
        return None
    try:
        delta = parse_iso(end) - parse_iso(start)
    except (ValueError, TypeError):
        return None
    return round(delta.total_seconds() / 60)


def join_address_parts(address: Address | None) -> str:
    """Lines, city, state, postal code and country joined by ", "."""
    if address is None:
        return ""
    parts = [
        *address.line,
        address.city,
        address.state,
        address.postal_code,
        address.country,
    ]
    return ", ".join(p for p in parts if p)


def compose_name(name: HumanName | None, fallback: str) -> str:
    """``"{given[0]} {family}"``, or *fallback* when both are absent."""
    if name is None:
        return fallback
    given = name.given[0] if name.given else ""
    full = f"{given} {name.family or ''}".strip()
    return full or fallback


def split_name(full_name: str) -> tuple[list[str], str]:
    """Split "First Middle Last" into (given names, family name)."""
    parts = full_name.split()
    if not parts:
        return [], ""
    return parts[:-1], parts[-1]


def find_telecom(telecom: Iterable[ContactPoint], system: str) -> str:
    """Value of the first ContactPoint with the given system ("" if none)."""
    for point in telecom:
        if point.system == system and point.value:
            return point.value
    return ""


def reference_id(reference: str | None) -> str:
    """Id portion of a relative reference such as ``Patient/123``."""
    if not reference:
        return ""
    return reference.rstrip("/").split("/")[-1]
