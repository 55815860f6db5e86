"""Shared read/write dispatch for one entity type.

Reads go to the upstream FHIR server and are transformed into entities;
records created during the session (held by the mock store) are appended.
Writes go to the mock store while the write policy says so, otherwise to
the upstream. Every public method returns an ``Envelope`` and never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from ..errors import (
    ErrorKind,
    FhirDashError,
    MalformedResourceError,
    RecordNotFoundError,
    UpstreamUnavailableError,
)
from ..fhir.client import FhirClient
from ..fhir.transforms import (
    bundle_patient_name,
    bundle_resources,
    transform_entity_to_external,
    transform_external_to_entity,
)
from ..models.entities import Entity, supplied_fields
from ..models.envelope import Envelope
from ..store.mock_store import MockCollection
from .policy import WritePolicy, mock_write_message

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class EntityService(Generic[E]):
    """Uniform read/write API for one entity type."""

    entity_type: type[E]
    resource_type: str
    label: str

    def __init__(
        self,
        client: FhirClient,
        collection: MockCollection[E],
        policy: WritePolicy,
        page_size: int = 20,
    ):
        self._client = client
        self._collection = collection
        self._policy = policy
        self._page_size = page_size

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failure(
        self,
        action: str,
        error: Exception,
        data: Any = None,
        total: int | None = None,
    ) -> Envelope:
        """Convert an exception into a failed envelope (and log it)."""
        if isinstance(error, UpstreamUnavailableError) and error.status_code == 404:
            kind = ErrorKind.NOT_FOUND
            message = str(error)
        elif isinstance(error, FhirDashError):
            kind = error.kind
            message = str(error)
        elif isinstance(error, ValidationError):
            kind = ErrorKind.VALIDATION
            message = f"Invalid {self.label} data: {error.error_count()} invalid field(s)"
        else:
            kind = ErrorKind.UNEXPECTED
            message = f"Unexpected error: {type(error).__name__}: {error}"
        logger.warning("Failed to %s %s: %s", action, self.label, message)
        return Envelope.fail(message, kind, data=data, total=total)

    def _entities_from_bundle(self, bundle: Mapping[str, Any], patient_name: str | None) -> list[E]:
        entities = []
        for resource in bundle_resources(bundle, self.resource_type):
            try:
                entity = transform_external_to_entity(resource, patient_name)
            except MalformedResourceError as e:
                logger.warning("Skipping %s %s: %s", self.resource_type, resource.get("id", "?"), e)
                continue
            # Observation bundles can mix vital signs and lab results
            if isinstance(entity, self.entity_type):
                entities.append(entity)
        return entities

    async def _search(
        self,
        params: dict[str, Any],
        local: list[E] | None = None,
        patient_name: str | None = None,
        name_from_include: bool = False,
    ) -> Envelope:
        """Search upstream, transform, and append matching local records."""
        try:
            bundle = await self._client.search(self.resource_type, params)
            if name_from_include and patient_name is None:
                patient_name = bundle_patient_name(bundle)
            entities = self._entities_from_bundle(bundle, patient_name)
        except Exception as e:
            return self._failure("search", e, data=[], total=0)

        local = local or []
        upstream_total = bundle.get("total")
        if not isinstance(upstream_total, int):
            upstream_total = len(entities)
        return Envelope.ok(entities + local, total=upstream_total + len(local))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _as_own_type(self, resource: Mapping[str, Any], record_id: str) -> E:
        # Observation ids are shared by vital signs and lab results
        entity = transform_external_to_entity(resource)
        if not isinstance(entity, self.entity_type):
            raise RecordNotFoundError(self._collection.name, record_id)
        return entity

    async def get_by_id(self, record_id: str) -> Envelope:
        """Fetch one record: the mock store first, then the upstream."""
        local = await self._collection.get_by_id(record_id)
        if local is not None:
            return Envelope.ok(local)
        try:
            resource = await self._client.read(self.resource_type, record_id)
            return Envelope.ok(self._as_own_type(resource, record_id))
        except Exception as e:
            return self._failure("get", e)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _mock_message(self, operation: str) -> str:
        return mock_write_message(operation, self.label)

    async def create(self, data: E | Mapping[str, Any]) -> Envelope:
        """Create a record (mock store, or upstream when writes are enabled)."""
        try:
            if self._policy.should_use_mock_crud("create"):
                record = await self._collection.create(data)
                return Envelope.ok(record, message=self._mock_message("create"))

            resource = transform_entity_to_external(data, self.entity_type, create=True)
            resource.pop("id", None)
            created = await self._client.create(self.resource_type, resource)
            return Envelope.ok(transform_external_to_entity(created))
        except Exception as e:
            return self._failure("create", e)

    async def _upstream_update(self, record_id: str, fields: dict[str, Any]) -> E:
        existing = await self._client.read(self.resource_type, record_id)
        current = self._as_own_type(existing, record_id)
        merged = self.entity_type.model_validate({**current.model_dump(), **fields, "id": record_id})
        # Whole record: one FHIR element can carry several fields (telecom)
        outbound = transform_entity_to_external(merged)
        updated = await self._client.update(
            self.resource_type,
            record_id,
            {**existing, **outbound, "id": record_id},
        )
        return transform_external_to_entity(updated)

    async def update(
        self,
        record_id: str,
        changes: E | Mapping[str, Any],
        operation: str = "update",
    ) -> Envelope:
        """Merge *changes* into an existing record."""
        try:
            if self._policy.should_use_mock_crud("update"):
                record = await self._collection.update(record_id, changes)
                return Envelope.ok(record, message=self._mock_message(operation))

            fields = supplied_fields(self.entity_type, changes)
            return Envelope.ok(await self._upstream_update(record_id, fields))
        except Exception as e:
            return self._failure(operation, e)

    async def delete(self, record_id: str) -> Envelope:
        """Delete a record."""
        try:
            if self._policy.should_use_mock_crud("delete"):
                await self._collection.delete(record_id)
                return Envelope.ok(None, message=self._mock_message("delete"))

            await self._client.delete(self.resource_type, record_id)
            return Envelope.ok(None)
        except Exception as e:
            return self._failure("delete", e)
