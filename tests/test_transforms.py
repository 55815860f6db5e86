"""Tests for FHIR resource <-> entity transforms."""

import base64
import json

import pytest

from conftest import fhir_appointment, fhir_patient, fhir_practitioner
from fhirdash.errors import MalformedResourceError
from fhirdash.fhir.transforms import (
    bundle_patient_name,
    bundle_resources,
    merge_vital_observations,
    transform_entity_to_external,
    transform_external_to_entity,
)
from fhirdash.models import (
    Appointment,
    BillingCode,
    ClinicalNote,
    InsuranceEligibility,
    LabResult,
    Medication,
    Patient,
    PatientBalance,
    Provider,
    VitalSigns,
)


def round_trip(entity_type, partial: dict):
    resource = transform_entity_to_external(partial, entity_type, create=True)
    return resource, transform_external_to_entity(resource)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


def test_patient_from_fhir():
    patient = transform_external_to_entity(fhir_patient())
    assert isinstance(patient, Patient)
    assert patient.id == "p1"
    assert patient.full_name == "John Smith"
    assert patient.gender == "male"
    assert patient.date_of_birth == "1980-04-02"
    assert patient.phone == "555-0100"
    assert patient.email == "john@example.com"
    assert patient.address == "1 Main St, Springfield, IL, 62701"


def test_practitioner_from_fhir():
    provider = transform_external_to_entity(fhir_practitioner())
    assert isinstance(provider, Provider)
    assert provider.name == "Gregory House"
    assert provider.specialty == "Diagnostic Medicine"
    assert provider.qualification == "MD"
    assert provider.department == "Primary Care"
    assert provider.active is True


def test_appointment_from_fhir():
    appointment = transform_external_to_entity(fhir_appointment(status="arrived"))
    assert isinstance(appointment, Appointment)
    assert appointment.patient_id == "p1"
    assert appointment.patient_name == "John Smith"
    assert appointment.provider_id == "dr1"
    assert appointment.provider_name == "Gregory House"
    assert appointment.date == "2024-05-06"
    assert appointment.time == "09:00"
    assert appointment.duration == 45
    assert appointment.status == "confirmed"
    assert appointment.type == "General"


def test_patient_name_override_wins():
    appointment = transform_external_to_entity(fhir_appointment(), patient_name="Johnny S.")
    assert appointment.patient_name == "Johnny S."


def test_participants_found_by_reference_when_untyped():
    resource = {
        "resourceType": "Appointment",
        "participant": [
            {"actor": {"reference": "Practitioner/dr9"}},
            {"actor": {"reference": "Patient/p9"}},
        ],
    }
    appointment = transform_external_to_entity(resource)
    assert appointment.patient_id == "p9"
    assert appointment.provider_id == "dr9"
    assert appointment.patient_name == "Unknown Patient"
    assert appointment.provider_name == "Unknown Provider"


def test_observation_routes_on_laboratory_category():
    lab = {
        "resourceType": "Observation",
        "status": "final",
        "category": [{"coding": [{"code": "laboratory"}]}],
        "code": {"text": "Glucose"},
        "valueQuantity": {"value": 95.0, "unit": "mg/dL"},
        "interpretation": [{"coding": [{"code": "H"}]}],
        "subject": {"reference": "Patient/p1"},
    }
    vital = {
        "resourceType": "Observation",
        "category": [{"coding": [{"code": "vital-signs"}]}],
        "code": {"coding": [{"code": "8867-4"}]},
        "valueQuantity": {"value": 72},
    }
    result = transform_external_to_entity(lab)
    assert isinstance(result, LabResult)
    assert result.status == "completed"
    assert result.results[0].value == "95"
    assert result.results[0].unit == "mg/dL"
    assert result.results[0].status == "abnormal"

    vitals = transform_external_to_entity(vital)
    assert isinstance(vitals, VitalSigns)
    assert vitals.heart_rate == 72


def test_balance_without_split_is_estimated():
    account = {
        "resourceType": "Account",
        "extension": [{"url": "https://fhirdash.dev/fhir/StructureDefinition/balance", "valueDecimal": 100.0}],
    }
    balance = transform_external_to_entity(account)
    assert isinstance(balance, PatientBalance)
    assert balance.total_balance == 100.0
    assert balance.insurance_balance == 80.0
    assert balance.patient_balance == 20.0


def test_note_sections_read_from_attachment():
    body = {"chiefComplaint": "Headache", "plan": "Rest", "followUp": "2 weeks"}
    resource = {
        "resourceType": "DocumentReference",
        "subject": {"reference": "Patient/p1", "display": "John Smith"},
        "content": [{"attachment": {"data": base64.b64encode(json.dumps(body).encode()).decode()}}],
    }
    note = transform_external_to_entity(resource)
    assert isinstance(note, ClinicalNote)
    assert note.chief_complaint == "Headache"
    assert note.plan == "Rest"
    assert note.follow_up == "2 weeks"
    assert note.type == "Progress Note"


# ---------------------------------------------------------------------------
# Default safety
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "resource_type, entity_type",
    [
        ("Patient", Patient),
        ("Practitioner", Provider),
        ("Appointment", Appointment),
        ("DocumentReference", ClinicalNote),
        ("Observation", VitalSigns),
        ("MedicationRequest", Medication),
        ("Coverage", InsuranceEligibility),
        ("Account", PatientBalance),
        ("ChargeItem", BillingCode),
    ],
)
def test_bare_resource_gives_defaults(resource_type, entity_type):
    entity = transform_external_to_entity({"resourceType": resource_type})
    assert isinstance(entity, entity_type)
    assert entity.id == ""


def test_bare_appointment_defaults():
    appointment = transform_external_to_entity({"resourceType": "Appointment"})
    assert appointment.patient_name == "Unknown Patient"
    assert appointment.provider_name == "Unknown Provider"
    assert appointment.duration == 30
    assert appointment.status == "scheduled"


@pytest.mark.parametrize(
    "bad",
    [
        "Patient",
        ["resourceType"],
        {},
        {"resourceType": "Encounter"},
        {"resourceType": "Patient", "name": "not-a-list"},
    ],
)
def test_malformed_input_raises(bad):
    with pytest.raises(MalformedResourceError):
        transform_external_to_entity(bad)


# ---------------------------------------------------------------------------
# Outbound and round trips
# ---------------------------------------------------------------------------


def test_outbound_maps_only_supplied_fields():
    resource = transform_entity_to_external({"phone": "555-0199"}, Patient)
    assert resource == {
        "resourceType": "Patient",
        "telecom": [{"system": "phone", "value": "555-0199", "use": "mobile"}],
    }


def test_outbound_update_carries_no_status_or_category():
    assert transform_entity_to_external({"notes": "rechecked"}, VitalSigns) == {
        "resourceType": "Observation",
        "note": [{"text": "rechecked"}],
    }
    assert transform_entity_to_external({"notes": "fasting"}, LabResult) == {
        "resourceType": "Observation",
        "note": [{"text": "fasting"}],
    }
    assert transform_entity_to_external({"provider_name": "Dr. House"}, ClinicalNote) == {
        "resourceType": "DocumentReference",
        "author": [{"display": "Dr. House"}],
    }
    assert transform_entity_to_external({"notes": "with food"}, Medication) == {
        "resourceType": "MedicationRequest",
        "note": [{"text": "with food"}],
    }
    assert transform_entity_to_external({"patient_id": "p1"}, PatientBalance) == {
        "resourceType": "Account",
        "subject": [{"reference": "Patient/p1"}],
    }


def test_outbound_create_fills_required_elements():
    vitals = transform_entity_to_external({"patient_id": "p1"}, VitalSigns, create=True)
    assert vitals["status"] == "final"
    assert vitals["category"][0]["coding"][0]["code"] == "vital-signs"
    assert vitals["code"]["coding"][0]["code"] == "85353-1"

    lab = transform_entity_to_external({"test_name": "CBC", "status": "reviewed"}, LabResult, create=True)
    assert lab["status"] == "amended"
    assert lab["category"][0]["coding"][0]["code"] == "laboratory"

    medication = transform_entity_to_external({"medication_name": "Metformin"}, Medication, create=True)
    assert (medication["intent"], medication["status"]) == ("order", "active")


def test_outbound_accepts_camel_case_and_entity_names():
    resource = transform_entity_to_external({"firstName": "Ana", "lastName": "Lima"}, "Patient")
    assert resource["name"][0]["given"] == ["Ana"]
    assert resource["name"][0]["family"] == "Lima"


def test_patient_round_trip():
    partial = {
        "first_name": "Jane",
        "last_name": "Doe",
        "date_of_birth": "1990-07-14",
        "gender": "female",
        "phone": "555-0142",
        "email": "jane@example.com",
        "allergies": ["Penicillin"],
        "conditions": ["Asthma"],
        "insurance_provider": "Acme Health",
        "insurance_id": "AH-42",
        "emergency_contact": "John Doe",
        "emergency_phone": "555-0143",
    }
    _, patient = round_trip(Patient, partial)
    for field, value in partial.items():
        assert getattr(patient, field) == value


def test_appointment_round_trip():
    partial = {
        "patient_id": "p1",
        "patient_name": "Jane Doe",
        "provider_id": "dr1",
        "provider_name": "Gregory House",
        "date": "2024-05-06",
        "time": "14:30",
        "duration": 45,
        "type": "Follow-up",
        "status": "cancelled",
        "reason": "Check-up",
        "notes": "Bring labs",
        "location": "Room 4",
    }
    resource, appointment = round_trip(Appointment, partial)
    assert resource["status"] == "cancelled"
    for field, value in partial.items():
        assert getattr(appointment, field) == value


def test_appointment_confirmed_round_trip_is_lossy():
    resource, appointment = round_trip(Appointment, {"status": "confirmed"})
    assert resource["status"] == "booked"
    assert appointment.status == "scheduled"


def test_vitals_round_trip():
    partial = {
        "patient_id": "p1",
        "date": "2024-03-01",
        "time": "08:15",
        "temperature": 37.2,
        "blood_pressure_systolic": 120,
        "blood_pressure_diastolic": 80,
        "heart_rate": 64,
        "oxygen_saturation": 98,
        "weight": 70,
        "height": 175,
        "pain": 2,
    }
    _, vitals = round_trip(VitalSigns, partial)
    for field, value in partial.items():
        assert getattr(vitals, field) == value
    assert vitals.bmi == 22.9


def test_lab_result_round_trip():
    partial = {
        "patient_id": "p1",
        "test_name": "Basic Metabolic Panel",
        "status": "reviewed",
        "order_date": "2024-02-01",
        "result_date": "2024-02-02",
        "results": [
            {"name": "Glucose", "value": "95", "unit": "mg/dL", "reference_range": "70-99", "status": "normal"},
            {"name": "Culture", "value": "No growth", "status": "abnormal"},
        ],
    }
    _, lab = round_trip(LabResult, partial)
    assert isinstance(lab, LabResult)
    assert lab.status == "reviewed"
    assert lab.test_name == "Basic Metabolic Panel"
    assert [v.model_dump() for v in lab.results] == [
        {"name": "Glucose", "value": "95", "unit": "mg/dL", "reference_range": "70-99", "status": "normal"},
        {"name": "Culture", "value": "No growth", "unit": "", "reference_range": "", "status": "abnormal"},
    ]


def test_medication_round_trip():
    partial = {
        "patient_id": "p1",
        "medication_name": "Lisinopril",
        "dosage": "10 mg",
        "frequency": "Once daily",
        "route": "Oral",
        "start_date": "2024-01-10",
        "end_date": "2024-07-10",
        "prescribed_by": "Dr. House",
        "indication": "Hypertension",
        "status": "discontinued",
    }
    resource, medication = round_trip(Medication, partial)
    assert resource["status"] == "stopped"
    for field, value in partial.items():
        assert getattr(medication, field) == value


def test_billing_round_trips():
    _, code = round_trip(
        BillingCode,
        {"code": "99213", "description": "Office visit", "category": "E&M", "fee": 150.0, "status": "inactive"},
    )
    assert (code.code, code.description, code.category, code.fee, code.status) == (
        "99213", "Office visit", "E&M", 150.0, "inactive",
    )
    assert code.insurance_rate == 120.0

    _, coverage = round_trip(
        InsuranceEligibility,
        {"patient_id": "p1", "policy_number": "POL-1", "group_number": "G-7", "copay": 25.0,
         "eligibility_status": "active"},
    )
    assert coverage.policy_number == "POL-1"
    assert coverage.group_number == "G-7"
    assert coverage.copay == 25.0
    assert coverage.eligibility_status == "active"


def test_note_round_trip():
    partial = {
        "patient_id": "p1",
        "provider_id": "dr1",
        "date": "2024-04-01",
        "type": "Discharge Summary",
        "chief_complaint": "Chest pain",
        "assessment": "Stable angina",
        "plan": "Start aspirin",
        "follow_up": "1 week",
    }
    _, note = round_trip(ClinicalNote, partial)
    for field, value in partial.items():
        assert getattr(note, field) == value


# ---------------------------------------------------------------------------
# Vital sign merging and bundles
# ---------------------------------------------------------------------------


def _single_vital(code: str, value: float, when: str = "2024-03-01T08:15:00Z", obs_id: str = "o1") -> dict:
    return {
        "resourceType": "Observation",
        "id": obs_id,
        "category": [{"coding": [{"code": "vital-signs"}]}],
        "code": {"coding": [{"code": code}]},
        "subject": {"reference": "Patient/p1"},
        "effectiveDateTime": when,
        "valueQuantity": {"value": value},
    }


def test_merge_vital_observations_groups_by_instant():
    observations = [
        _single_vital("8867-4", 70, obs_id="o1"),
        _single_vital("8480-6", 118, obs_id="o2"),
        _single_vital("8867-4", 88, when="2024-03-02T10:00:00Z", obs_id="o3"),
        {"resourceType": "Observation", "category": [{"coding": [{"code": "laboratory"}]}]},
    ]
    merged = merge_vital_observations(observations, patient_name="Jane Doe")
    assert [v.id for v in merged] == ["o1", "o3"]
    assert merged[0].heart_rate == 70
    assert merged[0].blood_pressure_systolic == 118
    assert merged[0].patient_name == "Jane Doe"
    assert merged[1].heart_rate == 88


def test_bundle_helpers():
    payload = {
        "resourceType": "Bundle",
        "entry": [
            {"resource": fhir_appointment()},
            {"resource": fhir_patient(given="Jane", family="Doe")},
            {"fullUrl": "no-resource"},
        ],
    }
    assert [r["resourceType"] for r in bundle_resources(payload)] == ["Appointment", "Patient"]
    assert len(bundle_resources(payload, "Appointment")) == 1
    assert bundle_patient_name(payload) == "Jane Doe"
    assert bundle_patient_name({"resourceType": "Bundle"}) is None
