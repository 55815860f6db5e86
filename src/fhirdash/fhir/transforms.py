"""Bidirectional mapping between FHIR R4 resources and dashboard entities.

Inbound (``transform_external_to_entity``) turns any supported resource into
a fully populated entity, degrading to field defaults for anything the
upstream omitted. Outbound (``transform_entity_to_external``) turns a
partial entity into a partial resource carrying only the elements whose
source fields were supplied, so it can back both creates and PATCH-like
updates.

Example:
    >>> patient = transform_external_to_entity({
    ...     "resourceType": "Patient",
    ...     "id": "p1",
    ...     "name": [{"given": ["Jane"], "family": "Doe"}],
    ... })
    >>> patient.first_name, patient.last_name, patient.allergies
    ('Jane', 'Doe', [])
"""

from __future__ import annotations

import base64
import binascii
import copy
import json
import logging
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Any, Callable

from ..errors import MalformedResourceError
from ..models.entities import (
    ENTITY_TYPES,
    Appointment,
    BillingCode,
    ClinicalNote,
    Entity,
    InsuranceEligibility,
    LabResult,
    LabValue,
    Medication,
    Patient,
    PatientBalance,
    Provider,
    VitalSigns,
    compute_bmi,
    supplied_fields,
)
from .mappers import (
    APPOINTMENT_REASON,
    BLOOD_PRESSURE_PANEL,
    CONTACT_ROLE,
    INTERPRETATION,
    INTERPRETATION_STATUS,
    LAB_STATUS_IN,
    LAB_STATUS_OUT,
    LOINC,
    MEDICATION_STATUS_IN,
    MEDICATION_STATUS_OUT,
    NOTE_CATEGORY,
    OBSERVATION_CATEGORY,
    PARTICIPATION_TYPE,
    PATIENT_PARTICIPANT_CODES,
    PROVIDER_PARTICIPANT_CODES,
    RXNORM,
    STATUS_INTERPRETATION,
    UCUM,
    UNKNOWN_PATIENT,
    UNKNOWN_PROVIDER,
    VITAL_CODES,
    VITAL_FIELDS_BY_CODE,
    VITAL_SIGNS_PANEL,
    compose_name,
    date_part,
    extract_display_text,
    find_telecom,
    first_code,
    has_code,
    join_address_parts,
    map_appointment_status_in,
    map_appointment_status_out,
    minutes_between,
    parse_iso,
    reference_id,
    split_name,
    time_part,
)
from .resources import (
    RESOURCE_VARIANTS,
    AccountResource,
    AppointmentParticipant,
    AppointmentResource,
    ChargeItemResource,
    CoverageResource,
    DocumentReferenceResource,
    FhirResource,
    MedicationRequestResource,
    ObservationComponent,
    ObservationResource,
    PatientResource,
    PractitionerResource,
    Reference,
    parse_resource,
)

logger = logging.getLogger(__name__)


# Entity fields with no element in the target resource ride on extensions
EXTENSION_BASE = "https://fhirdash.dev/fhir/StructureDefinition/"

DEFAULT_APPOINTMENT_MINUTES = 30
GENDERS = frozenset({"male", "female", "other", "unknown"})

# Note type -> LOINC document code
NOTE_TYPE_CODES: dict[str, tuple[str, str]] = {
    "progress note": ("11506-3", "Progress note"),
    "initial consultation": ("11488-4", "Consultation note"),
    "consultation": ("11488-4", "Consultation note"),
    "follow-up visit": ("11506-3", "Progress note"),
    "discharge summary": ("18842-5", "Discharge summary"),
    "history and physical": ("34117-2", "History and physical note"),
    "procedure note": ("28570-0", "Procedure note"),
}

# Sections of a clinical note carried in the attachment body
NOTE_SECTIONS = (
    "chief_complaint",
    "history_of_present_illness",
    "physical_exam",
    "assessment",
    "plan",
    "follow_up",
)


# =============================================================================
# Helpers
# =============================================================================


def _extension(name: str, *, string: str | None = None, decimal: float | None = None) -> dict:
    ext: dict[str, Any] = {"url": f"{EXTENSION_BASE}{name}"}
    if decimal is not None:
        ext["valueDecimal"] = decimal
    else:
        ext["valueString"] = string
    return ext


def _extension_strings(resource: FhirResource, name: str) -> list[str]:
    url = f"{EXTENSION_BASE}{name}"
    return [e.value_string for e in resource.extension if e.url == url and e.value_string is not None]


def _extension_string(resource: FhirResource, name: str) -> str | None:
    values = _extension_strings(resource, name)
    return values[0] if values else None


def _extension_decimal(resource: FhirResource, name: str) -> float | None:
    url = f"{EXTENSION_BASE}{name}"
    for ext in resource.extension:
        if ext.url == url and ext.value_decimal is not None:
            return ext.value_decimal
    return None


def _subject(patient_id: str | None, patient_name: str | None) -> dict:
    ref: dict[str, str] = {}
    if patient_id:
        ref["reference"] = f"Patient/{patient_id}"
    if patient_name:
        ref["display"] = patient_name
    return ref


def _patient_display(ref: Reference | None, override: str | None) -> str:
    if override:
        return override
    if ref is not None and ref.display:
        return ref.display
    return UNKNOWN_PATIENT


def _datetime(date: str | None, time: str | None = None) -> str:
    if date and time:
        return f"{date}T{time}:00Z"
    return date or ""


def _number_text(value: float) -> str:
    """Render a quantity the way a lab sheet does: 7.0 -> "7", 1.25 -> "1.25"."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _as_number(text: str) -> float | None:
    """Parse *text* as a number only when rendering it back gives *text*."""
    try:
        value = float(text)
    except (TypeError, ValueError):
        return None
    return value if _number_text(value) == text else None


# =============================================================================
# Inbound: Patient / Practitioner
# =============================================================================


def patient_from_fhir(resource: PatientResource, patient_name: str | None = None) -> Patient:
    name = resource.name[0] if resource.name else None
    address = resource.address[0] if resource.address else None

    # Prefer the contact flagged as emergency contact
    contact = next(
        (c for c in resource.contact if has_code(c.relationship, {"EP", "C"})),
        resource.contact[0] if resource.contact else None,
    )
    emergency_contact = ""
    emergency_phone = ""
    if contact is not None:
        if contact.name is not None:
            emergency_contact = " ".join([*contact.name.given, contact.name.family or ""]).strip()
        emergency_phone = find_telecom(contact.telecom, "phone")

    return Patient(
        id=resource.id or "",
        first_name=(name.given[0] if name and name.given else ""),
        last_name=(name.family if name and name.family else ""),
        date_of_birth=resource.birth_date or "",
        gender=resource.gender if resource.gender in GENDERS else "unknown",
        phone=find_telecom(resource.telecom, "phone"),
        email=find_telecom(resource.telecom, "email"),
        address=join_address_parts(address),
        emergency_contact=emergency_contact,
        emergency_phone=emergency_phone,
        allergies=_extension_strings(resource, "patient-allergy"),
        conditions=_extension_strings(resource, "patient-condition"),
        medications=_extension_strings(resource, "patient-medication"),
        last_visit=_extension_string(resource, "patient-last-visit") or "",
        next_appointment=_extension_string(resource, "patient-next-appointment"),
        insurance_provider=_extension_string(resource, "patient-insurance-provider") or "",
        insurance_id=_extension_string(resource, "patient-insurance-id") or "",
    )


def provider_from_fhir(resource: PractitionerResource, patient_name: str | None = None) -> Provider:
    name = resource.name[0] if resource.name else None
    concept = resource.qualification[0].code if resource.qualification else None
    qualification = ""
    specialty = ""
    if concept is not None:
        display = concept.coding[0].display if concept.coding else None
        qualification = display or concept.text or ""
        specialty = concept.text or display or ""

    return Provider(
        id=resource.id or "",
        name=compose_name(name, UNKNOWN_PROVIDER),
        first_name=(name.given[0] if name and name.given else ""),
        last_name=(name.family if name and name.family else ""),
        specialty=specialty or "General Practice",
        qualification=qualification,
        department="Primary Care",
        email=find_telecom(resource.telecom, "email") or None,
        phone=find_telecom(resource.telecom, "phone") or None,
        active=resource.active is not False,
    )


# =============================================================================
# Inbound: Appointment
# =============================================================================


def _find_participant(
    participants: list[AppointmentParticipant],
    codes: Iterable[str],
    reference_prefix: str,
) -> AppointmentParticipant | None:
    codes = frozenset(codes)
    for p in participants:
        if has_code(p.type, codes):
            return p
    for p in participants:
        if p.actor is not None and (p.actor.reference or "").startswith(reference_prefix):
            return p
    return None


def appointment_from_fhir(resource: AppointmentResource, patient_name: str | None = None) -> Appointment:
    patient = _find_participant(resource.participant, PATIENT_PARTICIPANT_CODES, "Patient/")
    provider = _find_participant(resource.participant, PROVIDER_PARTICIPANT_CODES, "Practitioner/")
    location = _find_participant(resource.participant, {"LOC"}, "Location/")

    duration = resource.minutes_duration or minutes_between(resource.start, resource.end)
    if not duration or duration <= 0:
        duration = DEFAULT_APPOINTMENT_MINUTES

    appointment_type = extract_display_text(resource.appointment_type)
    if not appointment_type and resource.service_type:
        appointment_type = extract_display_text(resource.service_type[0])

    patient_actor = patient.actor if patient else None
    provider_actor = provider.actor if provider else None

    return Appointment(
        id=resource.id or "",
        patient_id=reference_id(patient_actor.reference) if patient_actor else "",
        patient_name=_patient_display(patient_actor, patient_name),
        provider_id=reference_id(provider_actor.reference) if provider_actor else "",
        provider_name=(provider_actor.display if provider_actor and provider_actor.display else UNKNOWN_PROVIDER),
        date=date_part(resource.start),
        time=time_part(resource.start),
        duration=duration,
        type=appointment_type or "General",
        status=map_appointment_status_in(resource.status),
        reason=extract_display_text(resource.reason_code[0]) if resource.reason_code else "",
        notes=resource.description,
        location=(location.actor.display if location and location.actor else None),
    )


# =============================================================================
# Inbound: DocumentReference
# =============================================================================


def _decode_note_body(resource: DocumentReferenceResource) -> dict[str, Any]:
    """Section fields from a base64 JSON attachment ({} if absent or not JSON)."""
    for content in resource.content:
        attachment = content.attachment
        if attachment is None or not attachment.data:
            continue
        try:
            body = json.loads(base64.b64decode(attachment.data).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            continue
        if isinstance(body, dict):
            return body
    return {}


def note_from_fhir(resource: DocumentReferenceResource, patient_name: str | None = None) -> ClinicalNote:
    body = _decode_note_body(resource)
    author = resource.author[0] if resource.author else None
    attachment = resource.content[0].attachment if resource.content else None

    note_type = extract_display_text(resource.type)
    if not note_type and resource.category:
        note_type = extract_display_text(resource.category[0])

    def section(name: str, camel: str, fallback: str = "") -> str:
        value = body.get(camel, body.get(name))
        return value if isinstance(value, str) else fallback

    follow_up = body.get("followUp", body.get("follow_up"))

    return ClinicalNote(
        id=resource.id or "",
        patient_id=reference_id(resource.subject.reference) if resource.subject else "",
        patient_name=_patient_display(resource.subject, patient_name),
        provider_id=reference_id(author.reference) if author else "",
        provider_name=(author.display if author and author.display else UNKNOWN_PROVIDER),
        date=date_part(resource.date),
        type=note_type or "Progress Note",
        chief_complaint=section("chief_complaint", "chiefComplaint", resource.description or ""),
        history_of_present_illness=section("history_of_present_illness", "historyOfPresentIllness"),
        physical_exam=section("physical_exam", "physicalExam"),
        assessment=section("assessment", "assessment", (attachment.title if attachment else None) or ""),
        plan=section("plan", "plan"),
        follow_up=follow_up if isinstance(follow_up, str) else None,
    )


# =============================================================================
# Inbound: Observation (vital signs and laboratory)
# =============================================================================


def _is_laboratory(resource: ObservationResource) -> bool:
    return has_code(resource.category, {"laboratory"})


def _vital_measurements(resource: ObservationResource) -> dict[str, float]:
    """Measurement fields carried by one Observation (single value or panel)."""
    values: dict[str, float] = {}
    code = first_code(resource.code)
    field = VITAL_FIELDS_BY_CODE.get(code)
    if field and resource.value_quantity and resource.value_quantity.value is not None:
        values[field] = resource.value_quantity.value

    if code in (BLOOD_PRESSURE_PANEL, VITAL_SIGNS_PANEL) or resource.component:
        for component in resource.component:
            field = VITAL_FIELDS_BY_CODE.get(first_code(component.code))
            if field and component.value_quantity and component.value_quantity.value is not None:
                values[field] = component.value_quantity.value
    return values


def _vitals_record(
    resource: ObservationResource,
    measurements: Mapping[str, float],
    patient_name: str | None,
) -> VitalSigns:
    weight = measurements.get("weight")
    height = measurements.get("height")
    bmi = measurements.get("bmi")
    if bmi is None:
        bmi = compute_bmi(weight, height)
    pain = measurements.get("pain")

    return VitalSigns(
        id=resource.id or "",
        patient_id=reference_id(resource.subject.reference) if resource.subject else "",
        patient_name=_patient_display(resource.subject, patient_name),
        date=date_part(resource.effective_date_time),
        time=time_part(resource.effective_date_time),
        temperature=measurements.get("temperature", 0),
        blood_pressure_systolic=measurements.get("blood_pressure_systolic", 0),
        blood_pressure_diastolic=measurements.get("blood_pressure_diastolic", 0),
        heart_rate=measurements.get("heart_rate", 0),
        respiratory_rate=measurements.get("respiratory_rate", 0),
        oxygen_saturation=measurements.get("oxygen_saturation", 0),
        weight=weight,
        height=height,
        bmi=bmi,
        pain=round(pain) if pain is not None else None,
        notes=resource.note[0].text if resource.note else None,
    )


def vitals_from_fhir(resource: ObservationResource, patient_name: str | None = None) -> VitalSigns:
    return _vitals_record(resource, _vital_measurements(resource), patient_name)


def merge_vital_observations(
    observations: Iterable[Mapping[str, Any] | ObservationResource],
    patient_name: str | None = None,
) -> list[VitalSigns]:
    """Fold single-measurement vital-sign Observations into VitalSigns records.

    Observations for the same patient taken at the same instant become one
    record, in first-seen order; the record takes the id and notes of the
    first Observation in its group. Laboratory and malformed Observations
    are skipped.
    """
    groups: dict[tuple[str, str], tuple[ObservationResource, dict[str, float]]] = {}
    for raw in observations:
        try:
            resource = parse_resource(raw)
        except MalformedResourceError as e:
            logger.warning("Skipping vital-sign Observation: %s", e)
            continue
        if not isinstance(resource, ObservationResource) or _is_laboratory(resource):
            continue
        key = (
            (resource.subject.reference or "") if resource.subject else "",
            resource.effective_date_time or "",
        )
        if key not in groups:
            groups[key] = (resource, {})
        groups[key][1].update(_vital_measurements(resource))

    return [_vitals_record(first, values, patient_name) for first, values in groups.values()]


def _lab_value(component: ObservationComponent | ObservationResource, name: str) -> LabValue:
    quantity = component.value_quantity
    if quantity is not None and quantity.value is not None:
        value = _number_text(quantity.value)
        unit = quantity.unit or ""
    else:
        value = component.value_string or ""
        unit = ""

    reference_range = ""
    if component.reference_range:
        rr = component.reference_range[0]
        if rr.text:
            reference_range = rr.text
        elif rr.low is not None and rr.high is not None and rr.low.value is not None and rr.high.value is not None:
            reference_range = f"{_number_text(rr.low.value)}-{_number_text(rr.high.value)}"

    interpretation = first_code(component.interpretation[0]) if component.interpretation else ""

    return LabValue(
        name=name,
        value=value,
        unit=unit,
        reference_range=reference_range,
        status=INTERPRETATION_STATUS.get(interpretation, "normal"),
    )


def lab_result_from_fhir(resource: ObservationResource, patient_name: str | None = None) -> LabResult:
    test_name = extract_display_text(resource.code)

    category = ""
    for concept in resource.category:
        if not has_code([concept], {"laboratory"}):
            category = extract_display_text(concept)
            break
    else:
        if resource.category:
            category = extract_display_text(resource.category[0])

    if resource.component:
        results = [_lab_value(c, extract_display_text(c.code)) for c in resource.component]
    elif resource.value_quantity is not None or resource.value_string is not None:
        results = [_lab_value(resource, test_name)]
    else:
        results = []

    performer = resource.performer[0] if resource.performer else None

    return LabResult(
        id=resource.id or "",
        patient_id=reference_id(resource.subject.reference) if resource.subject else "",
        patient_name=_patient_display(resource.subject, patient_name),
        order_date=date_part(resource.effective_date_time),
        result_date=date_part(resource.issued),
        test_name=test_name,
        category=category,
        results=results,
        provider_id=reference_id(performer.reference) if performer else "",
        provider_name=(performer.display if performer and performer.display else UNKNOWN_PROVIDER),
        status=LAB_STATUS_IN.get(resource.status or "", "pending"),
        notes=resource.note[0].text if resource.note else None,
    )


def observation_from_fhir(resource: ObservationResource, patient_name: str | None = None) -> Entity:
    if _is_laboratory(resource):
        return lab_result_from_fhir(resource, patient_name)
    return vitals_from_fhir(resource, patient_name)


# =============================================================================
# Inbound: MedicationRequest
# =============================================================================


def medication_from_fhir(resource: MedicationRequestResource, patient_name: str | None = None) -> Medication:
    dosage = resource.dosage_instruction[0] if resource.dosage_instruction else None
    frequency = ""
    route = ""
    if dosage is not None:
        route = extract_display_text(dosage.route)
        if dosage.timing is not None:
            frequency = extract_display_text(dosage.timing.code)
            if not frequency and dosage.timing.repeat and dosage.timing.repeat.frequency is not None:
                frequency = str(dosage.timing.repeat.frequency)

    requester = resource.requester
    prescribed_by = ""
    if requester is not None:
        prescribed_by = requester.display or reference_id(requester.reference)

    end = None
    if resource.dispense_request and resource.dispense_request.validity_period:
        end = date_part(resource.dispense_request.validity_period.end) or None

    return Medication(
        id=resource.id or "",
        patient_id=reference_id(resource.subject.reference) if resource.subject else "",
        patient_name=_patient_display(resource.subject, patient_name),
        medication_name=extract_display_text(resource.medication_codeable_concept),
        dosage=(dosage.text or "") if dosage else "",
        frequency=frequency,
        route=route,
        start_date=date_part(resource.authored_on),
        end_date=end,
        prescribed_by=prescribed_by or UNKNOWN_PROVIDER,
        indication=extract_display_text(resource.reason_code[0]) if resource.reason_code else "",
        status=MEDICATION_STATUS_IN.get(resource.status or "", "active"),
        notes=resource.note[0].text if resource.note else None,
    )


# =============================================================================
# Inbound: billing (Coverage, Account, ChargeItem)
# =============================================================================


def eligibility_from_fhir(resource: CoverageResource, patient_name: str | None = None) -> InsuranceEligibility:
    payor = resource.payor[0] if resource.payor else None
    group = next(
        (c.value for c in resource.class_ if c.type is not None and first_code(c.type) == "group"),
        None,
    )
    status = {"active": "active", "draft": "pending"}.get(resource.status or "", "inactive")
    period = resource.period

    return InsuranceEligibility(
        id=resource.id or "",
        patient_id=reference_id(resource.beneficiary.reference) if resource.beneficiary else "",
        patient_name=_patient_display(resource.beneficiary, patient_name),
        insurance_provider=(payor.display if payor and payor.display else UNKNOWN_PROVIDER),
        policy_number=resource.subscriber_id or "",
        group_number=group,
        eligibility_status=status,
        effective_date=(period.start or "") if period else "",
        expiration_date=period.end if period else None,
        copay=_extension_decimal(resource, "coverage-copay"),
        deductible=_extension_decimal(resource, "coverage-deductible"),
        deductible_met=_extension_decimal(resource, "coverage-deductible-met"),
        last_checked=date_part(resource.meta.last_updated) if resource.meta else "",
    )


def balance_from_fhir(resource: AccountResource, patient_name: str | None = None) -> PatientBalance:
    subject = resource.subject[0] if resource.subject else None
    total = _extension_decimal(resource, "balance") or 0
    insurance = _extension_decimal(resource, "insurance-balance")
    patient = _extension_decimal(resource, "patient-balance")
    # Without a split on the account, estimate 80% insurer / 20% patient
    if insurance is None:
        insurance = round(total * 0.8, 2)
    if patient is None:
        patient = round(total * 0.2, 2)

    return PatientBalance(
        id=resource.id or "",
        patient_id=reference_id(subject.reference) if subject else "",
        patient_name=_patient_display(subject, patient_name),
        total_balance=total,
        insurance_balance=insurance,
        patient_balance=patient,
    )


def billing_code_from_fhir(resource: ChargeItemResource, patient_name: str | None = None) -> BillingCode:
    coding = resource.code.coding[0] if resource.code and resource.code.coding else None
    fee = resource.price_override.value if resource.price_override and resource.price_override.value else 0
    insurance_rate = _extension_decimal(resource, "charge-insurance-rate")
    if insurance_rate is None:
        insurance_rate = round(fee * 0.8, 2)

    return BillingCode(
        id=resource.id or "",
        code=(coding.code or "") if coding else "",
        description=((coding.display if coding else None) or (resource.code.text if resource.code else None) or ""),
        category=_extension_string(resource, "charge-category") or "General",
        fee=fee,
        insurance_rate=insurance_rate,
        last_updated=date_part(resource.meta.last_updated) if resource.meta else "",
        status="active" if resource.status == "billable" else "inactive",
    )


# resource variant -> inbound mapper; checked exhaustive below
_INBOUND: dict[type[FhirResource], Callable[[Any, str | None], Entity]] = {
    PatientResource: patient_from_fhir,
    PractitionerResource: provider_from_fhir,
    AppointmentResource: appointment_from_fhir,
    DocumentReferenceResource: note_from_fhir,
    ObservationResource: observation_from_fhir,
    MedicationRequestResource: medication_from_fhir,
    CoverageResource: eligibility_from_fhir,
    AccountResource: balance_from_fhir,
    ChargeItemResource: billing_code_from_fhir,
}

_unmapped = set(RESOURCE_VARIANTS) - set(_INBOUND)
if _unmapped:
    raise TypeError(f"No inbound mapper for: {sorted(c.__name__ for c in _unmapped)}")


def transform_external_to_entity(
    resource: Mapping[str, Any] | FhirResource,
    patient_name: str | None = None,
) -> Entity:
    """Map a FHIR resource to its dashboard entity.

    Args:
        resource: Raw FHIR JSON object (or parsed variant) with ``resourceType``
        patient_name: Display name to denormalize onto records that only
            reference their patient

    Returns:
        Fully populated entity; missing elements become field defaults

    Raises:
        MalformedResourceError: If *resource* is not a FHIR resource object
    """
    parsed = parse_resource(resource)
    return _INBOUND[type(parsed)](parsed, patient_name)


# =============================================================================
# Outbound
# =============================================================================


def patient_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "Patient"}
    if fields.get("id"):
        resource["id"] = fields["id"]

    if "first_name" in fields or "last_name" in fields:
        name: dict[str, Any] = {"use": "usual"}
        if fields.get("last_name"):
            name["family"] = fields["last_name"]
        if fields.get("first_name"):
            name["given"] = [fields["first_name"]]
        resource["name"] = [name]

    telecom = []
    if fields.get("phone"):
        telecom.append({"system": "phone", "value": fields["phone"], "use": "mobile"})
    if fields.get("email"):
        telecom.append({"system": "email", "value": fields["email"], "use": "home"})
    if telecom:
        resource["telecom"] = telecom

    if "gender" in fields:
        resource["gender"] = fields["gender"]
    if "date_of_birth" in fields:
        resource["birthDate"] = fields["date_of_birth"]
    if fields.get("address"):
        resource["address"] = [{"use": "home", "line": [fields["address"]]}]

    if fields.get("emergency_contact"):
        given, family = split_name(fields["emergency_contact"])
        contact: dict[str, Any] = {
            "relationship": [
                {
                    "coding": [
                        {
                            "system": CONTACT_ROLE,
                            "code": "EP",
                            "display": "Emergency contact person",
                        }
                    ]
                }
            ],
            "name": {"family": family, "given": given},
        }
        if fields.get("emergency_phone"):
            contact["telecom"] = [{"system": "phone", "value": fields["emergency_phone"], "use": "home"}]
        resource["contact"] = [contact]

    extensions = []
    for field, name in (
        ("allergies", "patient-allergy"),
        ("conditions", "patient-condition"),
        ("medications", "patient-medication"),
    ):
        extensions.extend(_extension(name, string=item) for item in fields.get(field) or [])
    for field, name in (
        ("last_visit", "patient-last-visit"),
        ("next_appointment", "patient-next-appointment"),
        ("insurance_provider", "patient-insurance-provider"),
        ("insurance_id", "patient-insurance-id"),
    ):
        if fields.get(field):
            extensions.append(_extension(name, string=fields[field]))
    if extensions:
        resource["extension"] = extensions

    return resource


def provider_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "Practitioner"}
    if fields.get("id"):
        resource["id"] = fields["id"]

    if fields.get("first_name") or fields.get("last_name"):
        given = [fields["first_name"]] if fields.get("first_name") else []
        family = fields.get("last_name") or ""
    elif fields.get("name"):
        given, family = split_name(fields["name"])
    else:
        given, family = [], ""
    if given or family:
        resource["name"] = [{"family": family, "given": given}]

    telecom = []
    if fields.get("phone"):
        telecom.append({"system": "phone", "value": fields["phone"], "use": "work"})
    if fields.get("email"):
        telecom.append({"system": "email", "value": fields["email"], "use": "work"})
    if telecom:
        resource["telecom"] = telecom

    if fields.get("specialty") or fields.get("qualification"):
        code: dict[str, Any] = {}
        if fields.get("specialty"):
            code["text"] = fields["specialty"]
        if fields.get("qualification"):
            code["coding"] = [{"display": fields["qualification"]}]
        resource["qualification"] = [{"code": code}]

    if "active" in fields:
        resource["active"] = fields["active"]
    return resource


def _participant(code: str, display: str, actor: dict[str, str]) -> dict[str, Any]:
    return {
        "type": [{"coding": [{"system": PARTICIPATION_TYPE, "code": code, "display": display}]}],
        "actor": actor,
        "required": "required",
        "status": "accepted",
    }


def appointment_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "Appointment"}
    if fields.get("id"):
        resource["id"] = fields["id"]
    if "status" in fields:
        resource["status"] = map_appointment_status_out(fields["status"])
    if fields.get("type"):
        resource["appointmentType"] = {
            "coding": [{"system": APPOINTMENT_REASON, "code": "ROUTINE", "display": fields["type"]}]
        }
    if fields.get("reason"):
        resource["reasonCode"] = [{"text": fields["reason"]}]
    if fields.get("notes") is not None:
        resource["description"] = fields["notes"]

    if fields.get("date") and fields.get("time"):
        start = f"{fields['date']}T{fields['time']}:00"
        resource["start"] = start
        if fields.get("duration"):
            end = parse_iso(start) + timedelta(minutes=fields["duration"])
            resource["end"] = end.isoformat(timespec="seconds")
    if fields.get("duration"):
        resource["minutesDuration"] = fields["duration"]

    participants = []
    if fields.get("patient_id") or fields.get("patient_name"):
        actor = _subject(fields.get("patient_id"), fields.get("patient_name"))
        participants.append(_participant("PPRF", "primary performer", actor))
    if fields.get("provider_id") or fields.get("provider_name"):
        actor = {}
        if fields.get("provider_id"):
            actor["reference"] = f"Practitioner/{fields['provider_id']}"
        if fields.get("provider_name"):
            actor["display"] = fields["provider_name"]
        participants.append(_participant("PRCP", "primary care provider", actor))
    if fields.get("location"):
        participants.append(_participant("LOC", "location", {"display": fields["location"]}))
    if participants:
        resource["participant"] = participants

    return resource


def note_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "DocumentReference"}
    if fields.get("id"):
        resource["id"] = fields["id"]

    if fields.get("type"):
        code, display = NOTE_TYPE_CODES.get(fields["type"].lower(), ("11506-3", "Progress note"))
        resource["type"] = {
            "coding": [{"system": LOINC, "code": code, "display": display}],
            "text": fields["type"],
        }
        resource["category"] = [
            {"coding": [{"system": NOTE_CATEGORY, "code": "clinical-note", "display": "Clinical Note"}]}
        ]

    if fields.get("patient_id") or fields.get("patient_name"):
        resource["subject"] = _subject(fields.get("patient_id"), fields.get("patient_name"))
    if fields.get("date"):
        resource["date"] = f"{fields['date']}T00:00:00Z"
    if fields.get("provider_id") or fields.get("provider_name"):
        author = {}
        if fields.get("provider_id"):
            author["reference"] = f"Practitioner/{fields['provider_id']}"
        if fields.get("provider_name"):
            author["display"] = fields["provider_name"]
        resource["author"] = [author]
    if "chief_complaint" in fields:
        resource["description"] = fields["chief_complaint"]

    sections = {
        ClinicalNote.model_fields[name].alias or name: fields[name]
        for name in NOTE_SECTIONS
        if name in fields and fields[name] is not None
    }
    if sections:
        attachment: dict[str, Any] = {
            "contentType": "application/json",
            "data": base64.b64encode(json.dumps(sections).encode("utf-8")).decode("utf-8"),
        }
        if fields.get("assessment"):
            attachment["title"] = fields["assessment"]
        resource["content"] = [{"attachment": attachment}]

    return resource


def _observation_category(code: str, display: str) -> dict[str, Any]:
    return {"coding": [{"system": OBSERVATION_CATEGORY, "code": code, "display": display}]}


def _observation_base(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "Observation"}
    if fields.get("id"):
        resource["id"] = fields["id"]
    if fields.get("patient_id") or fields.get("patient_name"):
        resource["subject"] = _subject(fields.get("patient_id"), fields.get("patient_name"))
    if fields.get("notes"):
        resource["note"] = [{"text": fields["notes"]}]
    return resource


def vitals_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource = _observation_base(fields)
    if fields.get("date"):
        resource["effectiveDateTime"] = _datetime(fields["date"], fields.get("time"))

    components = []
    for name, (code, display, unit) in VITAL_CODES.items():
        value = fields.get(name)
        # 0 is the unrecorded default of the core measurements
        if value is None or (value == 0 and name != "pain"):
            continue
        components.append(
            {
                "code": {"coding": [{"system": LOINC, "code": code, "display": display}]},
                "valueQuantity": {"value": value, "unit": unit, "system": UCUM, "code": unit},
            }
        )
    if components:
        resource["code"] = {
            "coding": [{"system": LOINC, "code": VITAL_SIGNS_PANEL, "display": "Vital signs panel"}]
        }
        resource["component"] = components
    return resource


def _lab_component(value: dict[str, Any]) -> dict[str, Any]:
    component: dict[str, Any] = {"code": {"text": value.get("name", "")}}
    number = _as_number(value.get("value", ""))
    if number is not None:
        component["valueQuantity"] = {"value": number, "unit": value.get("unit", "")}
    else:
        component["valueString"] = value.get("value", "")
    if value.get("reference_range"):
        component["referenceRange"] = [{"text": value["reference_range"]}]
    interpretation = STATUS_INTERPRETATION.get(value.get("status", "normal"), "N")
    component["interpretation"] = [{"coding": [{"system": INTERPRETATION, "code": interpretation}]}]
    return component


def lab_result_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource = _observation_base(fields)
    if fields.get("category"):
        resource["category"] = [_observation_category("laboratory", "Laboratory"), {"text": fields["category"]}]
    if "status" in fields:
        resource["status"] = LAB_STATUS_OUT.get(fields["status"], "preliminary")
    if fields.get("test_name"):
        resource["code"] = {"coding": [{"system": LOINC, "display": fields["test_name"]}], "text": fields["test_name"]}
    if fields.get("order_date"):
        resource["effectiveDateTime"] = f"{fields['order_date']}T00:00:00Z"
    if fields.get("result_date"):
        resource["issued"] = f"{fields['result_date']}T00:00:00Z"
    if fields.get("provider_id") or fields.get("provider_name"):
        performer = {}
        if fields.get("provider_id"):
            performer["reference"] = f"Practitioner/{fields['provider_id']}"
        if fields.get("provider_name"):
            performer["display"] = fields["provider_name"]
        resource["performer"] = [performer]
    if "results" in fields:
        resource["component"] = [_lab_component(v) for v in fields["results"]]
    return resource


def medication_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "MedicationRequest"}
    if fields.get("id"):
        resource["id"] = fields["id"]
    if "status" in fields:
        resource["status"] = MEDICATION_STATUS_OUT.get(fields["status"], "active")
    if fields.get("medication_name"):
        resource["medicationCodeableConcept"] = {
            "coding": [{"system": RXNORM, "display": fields["medication_name"]}],
            "text": fields["medication_name"],
        }
    if fields.get("patient_id") or fields.get("patient_name"):
        resource["subject"] = _subject(fields.get("patient_id"), fields.get("patient_name"))
    if fields.get("start_date"):
        resource["authoredOn"] = f"{fields['start_date']}T00:00:00Z"
    if fields.get("end_date"):
        resource["dispenseRequest"] = {"validityPeriod": {"end": fields["end_date"]}}
    if fields.get("prescribed_by"):
        resource["requester"] = {"display": fields["prescribed_by"]}

    dosage: dict[str, Any] = {}
    if fields.get("dosage"):
        dosage["text"] = fields["dosage"]
    if fields.get("route"):
        dosage["route"] = {"coding": [{"display": fields["route"]}]}
    if fields.get("frequency"):
        dosage["timing"] = {"code": {"text": fields["frequency"]}}
    if dosage:
        resource["dosageInstruction"] = [dosage]

    if fields.get("indication"):
        resource["reasonCode"] = [{"text": fields["indication"]}]
    if fields.get("notes"):
        resource["note"] = [{"text": fields["notes"]}]
    return resource


def eligibility_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "Coverage"}
    if fields.get("id"):
        resource["id"] = fields["id"]
    if "eligibility_status" in fields:
        resource["status"] = {"active": "active", "pending": "draft"}.get(fields["eligibility_status"], "cancelled")
    if fields.get("patient_id") or fields.get("patient_name"):
        resource["beneficiary"] = _subject(fields.get("patient_id"), fields.get("patient_name"))
    if fields.get("insurance_provider"):
        resource["payor"] = [{"display": fields["insurance_provider"]}]
    if fields.get("policy_number"):
        resource["subscriberId"] = fields["policy_number"]
    if fields.get("group_number"):
        resource["class"] = [{"type": {"coding": [{"code": "group"}]}, "value": fields["group_number"]}]

    period = {}
    if fields.get("effective_date"):
        period["start"] = fields["effective_date"]
    if fields.get("expiration_date"):
        period["end"] = fields["expiration_date"]
    if period:
        resource["period"] = period

    extensions = [
        _extension(name, decimal=fields[field])
        for field, name in (
            ("copay", "coverage-copay"),
            ("deductible", "coverage-deductible"),
            ("deductible_met", "coverage-deductible-met"),
        )
        if fields.get(field) is not None
    ]
    if extensions:
        resource["extension"] = extensions
    return resource


def balance_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "Account"}
    if fields.get("id"):
        resource["id"] = fields["id"]
    if fields.get("patient_id") or fields.get("patient_name"):
        resource["subject"] = [_subject(fields.get("patient_id"), fields.get("patient_name"))]

    extensions = [
        _extension(name, decimal=fields[field])
        for field, name in (
            ("total_balance", "balance"),
            ("insurance_balance", "insurance-balance"),
            ("patient_balance", "patient-balance"),
        )
        if fields.get(field) is not None
    ]
    if extensions:
        resource["extension"] = extensions
    return resource


def billing_code_to_fhir(fields: dict[str, Any]) -> dict[str, Any]:
    resource: dict[str, Any] = {"resourceType": "ChargeItem"}
    if fields.get("id"):
        resource["id"] = fields["id"]
    if "status" in fields:
        resource["status"] = "billable" if fields["status"] == "active" else "not-billable"
    if fields.get("code") or fields.get("description"):
        coding = {}
        if fields.get("code"):
            coding["code"] = fields["code"]
        if fields.get("description"):
            coding["display"] = fields["description"]
        resource["code"] = {"coding": [coding]}
    if fields.get("fee") is not None:
        resource["priceOverride"] = {"value": fields["fee"], "currency": "USD"}

    extensions = []
    if fields.get("category"):
        extensions.append(_extension("charge-category", string=fields["category"]))
    if fields.get("insurance_rate") is not None:
        extensions.append(_extension("charge-insurance-rate", decimal=fields["insurance_rate"]))
    if extensions:
        resource["extension"] = extensions
    return resource


# entity class -> outbound mapper; checked exhaustive below
_OUTBOUND: dict[type[Entity], Callable[[dict[str, Any]], dict[str, Any]]] = {
    Patient: patient_to_fhir,
    Provider: provider_to_fhir,
    Appointment: appointment_to_fhir,
    ClinicalNote: note_to_fhir,
    VitalSigns: vitals_to_fhir,
    LabResult: lab_result_to_fhir,
    Medication: medication_to_fhir,
    InsuranceEligibility: eligibility_to_fhir,
    PatientBalance: balance_to_fhir,
    BillingCode: billing_code_to_fhir,
}

_unmapped_entities = set(ENTITY_TYPES.values()) - set(_OUTBOUND)
if _unmapped_entities:
    raise TypeError(f"No outbound mapper for: {sorted(c.__name__ for c in _unmapped_entities)}")


# Elements a new resource needs but no entity field supplies; partial updates
# leave them as the upstream has them
_CREATE_ELEMENTS: dict[type[Entity], dict[str, Any]] = {
    Appointment: {"status": "booked"},
    ClinicalNote: {"status": "current"},
    VitalSigns: {
        "status": "final",
        "category": [_observation_category("vital-signs", "Vital Signs")],
        "code": {"coding": [{"system": LOINC, "code": VITAL_SIGNS_PANEL, "display": "Vital signs panel"}]},
    },
    LabResult: {
        "status": "preliminary",
        "category": [_observation_category("laboratory", "Laboratory")],
    },
    Medication: {"status": "active", "intent": "order"},
    PatientBalance: {"status": "active"},
}


def transform_entity_to_external(
    partial: Entity | Mapping[str, Any],
    entity_type: type[Entity] | str | None = None,
    create: bool = False,
) -> dict[str, Any]:
    """Map a (partial) entity to a partial FHIR resource.

    Only fields explicitly present in *partial* are mapped, so the result
    can be merged onto an existing resource for an update.

    Args:
        partial: Entity instance or mapping of entity fields (snake_case or
            camelCase keys)
        entity_type: Entity class or name; inferred when *partial* is an entity
        create: Also fill the elements FHIR requires of a new resource
            (``status``, ``intent``, Observation ``category``) where no
            supplied field set them

    Returns:
        FHIR resource dict with ``resourceType`` and the mapped elements
    """
    if isinstance(entity_type, str):
        entity_type = ENTITY_TYPES[entity_type]
    if entity_type is None:
        if not isinstance(partial, Entity):
            raise TypeError("entity_type is required when partial is not an Entity")
        entity_type = type(partial)

    fields = supplied_fields(entity_type, partial)
    resource = _OUTBOUND[entity_type](fields)
    if create:
        for element, value in _CREATE_ELEMENTS.get(entity_type, {}).items():
            resource.setdefault(element, copy.deepcopy(value))
    return resource


# =============================================================================
# Bundles
# =============================================================================


def bundle_resources(bundle: Mapping[str, Any], resource_type: str | None = None) -> list[dict[str, Any]]:
    """Resources from a search Bundle, optionally of one ``resourceType``."""
    resources = []
    for entry in bundle.get("entry") or []:
        resource = entry.get("resource") if isinstance(entry, Mapping) else None
        if not isinstance(resource, Mapping):
            continue
        if resource_type and resource.get("resourceType") != resource_type:
            continue
        resources.append(dict(resource))
    return resources


def bundle_patient_name(bundle: Mapping[str, Any]) -> str | None:
    """Display name of a Patient included in the Bundle (``_include``), if any."""
    patients = bundle_resources(bundle, "Patient")
    if not patients:
        return None
    try:
        resource = parse_resource(patients[0])
    except MalformedResourceError as e:
        logger.warning("Ignoring included Patient: %s", e)
        return None
    return compose_name(resource.name[0] if resource.name else None, UNKNOWN_PATIENT)
