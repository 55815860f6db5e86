"""Tagged FHIR R4 wire variants consumed by the transform layer.

Only the elements the dashboard reads are declared; every field is
optional and unknown elements are kept (``extra="allow"``), so a sparse or
extended upstream record still parses. ``parse_resource`` selects the
variant from the ``resourceType`` discriminator.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..errors import MalformedResourceError


class FhirElement(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# =============================================================================
# Data types
# =============================================================================


class Coding(FhirElement):
    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConcept(FhirElement):
    coding: list[Coding] = Field(default_factory=list)
    text: str | None = None


class Reference(FhirElement):
    reference: str | None = None
    display: str | None = None


class HumanName(FhirElement):
    use: str | None = None
    text: str | None = None
    family: str | None = None
    given: list[str] = Field(default_factory=list)
    prefix: list[str] = Field(default_factory=list)
    suffix: list[str] = Field(default_factory=list)


class ContactPoint(FhirElement):
    system: str | None = None
    value: str | None = None
    use: str | None = None


class Address(FhirElement):
    use: str | None = None
    text: str | None = None
    line: list[str] = Field(default_factory=list)
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class Period(FhirElement):
    start: str | None = None
    end: str | None = None


class Quantity(FhirElement):
    value: float | None = None
    unit: str | None = None
    system: str | None = None
    code: str | None = None


class Money(FhirElement):
    value: float | None = None
    currency: str | None = None


class Annotation(FhirElement):
    text: str | None = None


class Extension(FhirElement):
    url: str | None = None
    value_string: str | None = None
    value_decimal: float | None = None
    value_date: str | None = None


class Meta(FhirElement):
    version_id: str | None = None
    last_updated: str | None = None


class Attachment(FhirElement):
    content_type: str | None = None
    data: str | None = None
    title: str | None = None
    url: str | None = None


class ReferenceRange(FhirElement):
    text: str | None = None
    low: Quantity | None = None
    high: Quantity | None = None


# =============================================================================
# Backbone elements
# =============================================================================


class PatientContact(FhirElement):
    relationship: list[CodeableConcept] = Field(default_factory=list)
    name: HumanName | None = None
    telecom: list[ContactPoint] = Field(default_factory=list)


class Qualification(FhirElement):
    code: CodeableConcept | None = None


class AppointmentParticipant(FhirElement):
    type: list[CodeableConcept] = Field(default_factory=list)
    actor: Reference | None = None
    required: str | None = None
    status: str | None = None


class DocumentContent(FhirElement):
    attachment: Attachment | None = None


class ObservationComponent(FhirElement):
    code: CodeableConcept | None = None
    value_quantity: Quantity | None = None
    value_string: str | None = None
    interpretation: list[CodeableConcept] = Field(default_factory=list)
    reference_range: list[ReferenceRange] = Field(default_factory=list)


class TimingRepeat(FhirElement):
    frequency: int | None = None
    period: float | None = None
    period_unit: str | None = None


class Timing(FhirElement):
    repeat: TimingRepeat | None = None
    code: CodeableConcept | None = None


class Dosage(FhirElement):
    text: str | None = None
    route: CodeableConcept | None = None
    timing: Timing | None = None


class DispenseRequest(FhirElement):
    validity_period: Period | None = None


class CoverageClass(FhirElement):
    type: CodeableConcept | None = None
    value: str | None = None
    name: str | None = None


# =============================================================================
# Resources
# =============================================================================


class FhirResource(FhirElement):
    id: str | None = None
    meta: Meta | None = None
    extension: list[Extension] = Field(default_factory=list)


class PatientResource(FhirResource):
    resource_type: Literal["Patient"] = "Patient"
    active: bool | None = None
    name: list[HumanName] = Field(default_factory=list)
    telecom: list[ContactPoint] = Field(default_factory=list)
    gender: str | None = None
    birth_date: str | None = None
    address: list[Address] = Field(default_factory=list)
    contact: list[PatientContact] = Field(default_factory=list)


class PractitionerResource(FhirResource):
    resource_type: Literal["Practitioner"] = "Practitioner"
    active: bool | None = None
    name: list[HumanName] = Field(default_factory=list)
    telecom: list[ContactPoint] = Field(default_factory=list)
    qualification: list[Qualification] = Field(default_factory=list)


class AppointmentResource(FhirResource):
    resource_type: Literal["Appointment"] = "Appointment"
    status: str | None = None
    service_type: list[CodeableConcept] = Field(default_factory=list)
    appointment_type: CodeableConcept | None = None
    reason_code: list[CodeableConcept] = Field(default_factory=list)
    description: str | None = None
    comment: str | None = None
    start: str | None = None
    end: str | None = None
    minutes_duration: int | None = None
    participant: list[AppointmentParticipant] = Field(default_factory=list)


class DocumentReferenceResource(FhirResource):
    resource_type: Literal["DocumentReference"] = "DocumentReference"
    status: str | None = None
    doc_status: str | None = None
    type: CodeableConcept | None = None
    category: list[CodeableConcept] = Field(default_factory=list)
    subject: Reference | None = None
    date: str | None = None
    author: list[Reference] = Field(default_factory=list)
    description: str | None = None
    content: list[DocumentContent] = Field(default_factory=list)


class ObservationResource(FhirResource):
    resource_type: Literal["Observation"] = "Observation"
    status: str | None = None
    category: list[CodeableConcept] = Field(default_factory=list)
    code: CodeableConcept | None = None
    subject: Reference | None = None
    effective_date_time: str | None = None
    issued: str | None = None
    performer: list[Reference] = Field(default_factory=list)
    value_quantity: Quantity | None = None
    value_string: str | None = None
    interpretation: list[CodeableConcept] = Field(default_factory=list)
    reference_range: list[ReferenceRange] = Field(default_factory=list)
    component: list[ObservationComponent] = Field(default_factory=list)
    note: list[Annotation] = Field(default_factory=list)


class MedicationRequestResource(FhirResource):
    resource_type: Literal["MedicationRequest"] = "MedicationRequest"
    status: str | None = None
    intent: str | None = None
    medication_codeable_concept: CodeableConcept | None = None
    subject: Reference | None = None
    authored_on: str | None = None
    requester: Reference | None = None
    dosage_instruction: list[Dosage] = Field(default_factory=list)
    reason_code: list[CodeableConcept] = Field(default_factory=list)
    dispense_request: DispenseRequest | None = None
    note: list[Annotation] = Field(default_factory=list)


class CoverageResource(FhirResource):
    resource_type: Literal["Coverage"] = "Coverage"
    status: str | None = None
    beneficiary: Reference | None = None
    payor: list[Reference] = Field(default_factory=list)
    subscriber_id: str | None = None
    class_: list[CoverageClass] = Field(default_factory=list, alias="class")
    period: Period | None = None


class AccountResource(FhirResource):
    resource_type: Literal["Account"] = "Account"
    status: str | None = None
    name: str | None = None
    subject: list[Reference] = Field(default_factory=list)


class ChargeItemResource(FhirResource):
    resource_type: Literal["ChargeItem"] = "ChargeItem"
    status: str | None = None
    code: CodeableConcept | None = None
    subject: Reference | None = None
    price_override: Money | None = None


FhirResourceVariant = Union[
    PatientResource,
    PractitionerResource,
    AppointmentResource,
    DocumentReferenceResource,
    ObservationResource,
    MedicationRequestResource,
    CoverageResource,
    AccountResource,
    ChargeItemResource,
]

RESOURCE_VARIANTS: tuple[type[FhirResource], ...] = get_args(FhirResourceVariant)

# resourceType -> variant class
RESOURCE_TYPES: dict[str, type[FhirResource]] = {
    cls.model_fields["resource_type"].default: cls for cls in RESOURCE_VARIANTS
}

_adapter: TypeAdapter[Any] = TypeAdapter(
    Annotated[FhirResourceVariant, Field(discriminator="resource_type")]
)


def parse_resource(data: Mapping[str, Any] | FhirResource) -> FhirResource:
    """Parse a raw FHIR JSON object into its tagged variant.

    Raises:
        MalformedResourceError: If *data* is not a mapping, has no
            ``resourceType``, names an unsupported type, or carries an
            element of the wrong shape.
    """
    if isinstance(data, FhirResource):
        return data
    if not isinstance(data, Mapping):
        raise MalformedResourceError(
            f"FHIR resource must be a JSON object, got {type(data).__name__}"
        )

    resource_type = data.get("resourceType")
    if not resource_type:
        raise MalformedResourceError("FHIR resource is missing 'resourceType'")
    if resource_type not in RESOURCE_TYPES:
        raise MalformedResourceError(f"Unsupported resourceType: {resource_type}")

    try:
        return _adapter.validate_python(dict(data))
    except ValidationError as e:
        raise MalformedResourceError(
            f"Malformed {resource_type} resource: {e.error_count()} invalid element(s)"
        ) from e
