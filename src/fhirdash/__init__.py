"""fhirdash - data layer for a FHIR-backed clinical dashboard."""

from .config import DashboardConfig, get_config
from .errors import (
    ErrorKind,
    FhirDashError,
    MalformedResourceError,
    RecordNotFoundError,
    UpstreamUnavailableError,
)
from .fhir import (
    FhirClient,
    SearchMode,
    build_search_params,
    transform_entity_to_external,
    transform_external_to_entity,
)
from .models import Envelope
from .services import ClinicalDataService, WritePolicy
from .store import MockStore

__all__ = [
    "ClinicalDataService",
    "DashboardConfig",
    "Envelope",
    "ErrorKind",
    "FhirClient",
    "FhirDashError",
    "MalformedResourceError",
    "MockStore",
    "RecordNotFoundError",
    "SearchMode",
    "UpstreamUnavailableError",
    "WritePolicy",
    "build_search_params",
    "get_config",
    "transform_entity_to_external",
    "transform_external_to_entity",
]
