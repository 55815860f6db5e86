"""FHIR R4 wire layer: resources, transforms, search parameters and client.

Usage:
    from fhirdash.fhir import transform_external_to_entity, build_search_params

    patient = transform_external_to_entity(resource)
    params = build_search_params("Smith", "name")
"""

from .client import FhirClient, get_client
from .mappers import (
    compose_name,
    extract_display_text,
    format_date,
    join_address_parts,
    map_appointment_status_in,
    map_appointment_status_out,
    reference_id,
)
from .resources import RESOURCE_TYPES, FhirResource, FhirResourceVariant, parse_resource
from .search import (
    SearchMode,
    build_date_range_params,
    build_list_params,
    build_patient_params,
    build_search_params,
)
from .transforms import (
    bundle_patient_name,
    bundle_resources,
    merge_vital_observations,
    transform_entity_to_external,
    transform_external_to_entity,
)

__all__ = [
    # Client
    "FhirClient",
    "get_client",
    # Wire resources
    "RESOURCE_TYPES",
    "FhirResource",
    "FhirResourceVariant",
    "parse_resource",
    # Transforms
    "transform_external_to_entity",
    "transform_entity_to_external",
    "merge_vital_observations",
    "bundle_resources",
    "bundle_patient_name",
    # Sub-mappers
    "compose_name",
    "extract_display_text",
    "format_date",
    "join_address_parts",
    "map_appointment_status_in",
    "map_appointment_status_out",
    "reference_id",
    # Search parameters
    "SearchMode",
    "build_search_params",
    "build_list_params",
    "build_patient_params",
    "build_date_range_params",
]
