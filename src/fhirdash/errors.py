"""Error taxonomy for the clinical data layer.

Store operations raise ``RecordNotFoundError`` for a missing id. Transport
failures surface as ``UpstreamUnavailableError``. Transforms raise
``MalformedResourceError`` only when the input is not a FHIR resource at all.
The service facade turns every one of these into a failed ``Envelope``.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure kinds carried on a failed envelope."""

    NOT_FOUND = "not_found"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MALFORMED_RESOURCE = "malformed_resource"
    VALIDATION = "validation"
    UNEXPECTED = "unexpected"


class FhirDashError(Exception):
    """Base class for all errors raised by fhirdash."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class RecordNotFoundError(FhirDashError):
    """Raised when an update/delete targets an id the mock store does not hold."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record not found: {record_id}")


class UpstreamUnavailableError(FhirDashError):
    """Raised when the upstream FHIR server cannot answer a request."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedResourceError(FhirDashError, ValueError):
    """Raised when a transform input is not a usable FHIR resource."""

    kind = ErrorKind.MALFORMED_RESOURCE
