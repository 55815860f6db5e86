"""In-memory mock persistence for writes the upstream cannot accept.

The upstream FHIR server is treated as read-only, so every create, update,
delete and cancel made during a session lands here instead. Each entity type
gets its own insertion-ordered collection keyed by a synthetic id.

All operations are coroutines that run to completion without awaiting
anything, so under asyncio each one is atomic with respect to the others and
no locking is needed. Reads hand out deep copies; mutating a returned
record never changes stored state.
"""

from __future__ import annotations

import copy
import logging
import random
import string
import time
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from ..errors import RecordNotFoundError
from ..models.entities import (
    Appointment,
    BillingCode,
    ClinicalNote,
    Entity,
    InsuranceEligibility,
    LabResult,
    Medication,
    Patient,
    PatientBalance,
    Provider,
    VitalSigns,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

_ID_ALPHABET = string.digits + string.ascii_lowercase


class IdGenerator:
    """Synthetic ids of the form ``mock-{epoch_ms}-{9 base36 chars}``.

    The millisecond part never goes backwards for a given generator; the
    random suffix separates ids minted within the same millisecond.
    """

    def __init__(self, prefix: str = "mock", suffix_length: int = 9):
        self._prefix = prefix
        self._suffix_length = suffix_length
        self._last_ms = 0
        self._random = random.SystemRandom()

    def __call__(self) -> str:
        now_ms = time.time_ns() // 1_000_000
        self._last_ms = max(now_ms, self._last_ms)
        suffix = "".join(self._random.choices(_ID_ALPHABET, k=self._suffix_length))
        return f"{self._prefix}-{self._last_ms}-{suffix}"


class MockCollection(Generic[E]):
    """CRUD collection for one entity type."""

    def __init__(self, entity_type: type[E], id_generator: Callable[[], str] | None = None):
        self.entity_type = entity_type
        self.name = entity_type.COLLECTION
        self._records: dict[str, E] = {}
        self._new_id = id_generator or IdGenerator()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def _label(self) -> str:
        return self.name.replace("_", " ")

    def _fresh_id(self) -> str:
        record_id = self._new_id()
        while record_id in self._records:
            record_id = self._new_id()
        return record_id

    def _require(self, record_id: str) -> E:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(self.name, record_id)
        return record

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _record_fields(self, record: Entity | Mapping[str, Any]) -> dict[str, Any]:
        """Fields present in *record*, keyed by attribute name.

        Each value is validated on its own; one that does not validate is
        stored as given.
        """
        if isinstance(record, Entity):
            record = record.model_dump(include=record.model_fields_set)
        fields = {}
        for name, info in self.entity_type.model_fields.items():
            for key in (info.alias, name):
                if key and key in record:
                    fields[name] = record[key]
                    break
        for name, value in fields.items():
            try:
                fields[name] = getattr(self.entity_type.model_validate({name: value}), name)
            except ValidationError:
                logger.debug("Mock store: keeping unvalidated %s.%s", self._label(), name)
        return copy.deepcopy(fields)

    async def create(self, record: E | Mapping[str, Any]) -> E:
        """Store a new record under a fresh id and return a copy of it.

        Any ``id`` in *record* is ignored; the caller's object is not modified.
        """
        fields = self._record_fields(record)
        fields["id"] = self._fresh_id()
        stored = self.entity_type.model_construct(**fields)
        self._records[stored.id] = stored
        logger.info("Mock store: created %s %s", self._label(), stored.id)
        return stored.model_copy(deep=True)

    async def update(self, record_id: str, changes: E | Mapping[str, Any]) -> E:
        """Shallow-merge *changes* into the stored record (last write wins).

        Raises:
            RecordNotFoundError: If no record has *record_id*
        """
        existing = self._require(record_id)
        fields = self._record_fields(changes)
        fields.pop("id", None)
        merged = existing.model_copy(update=fields, deep=True)
        self._records[record_id] = merged
        logger.info("Mock store: updated %s %s", self._label(), record_id)
        return merged.model_copy(deep=True)

    async def delete(self, record_id: str) -> None:
        """Remove a record.

        Raises:
            RecordNotFoundError: If no record has *record_id*
        """
        self._require(record_id)
        del self._records[record_id]
        logger.info("Mock store: deleted %s %s", self._label(), record_id)

    def clear(self) -> None:
        self._records.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self) -> list[E]:
        return [r.model_copy(deep=True) for r in self._records.values()]

    async def get_by_id(self, record_id: str) -> E | None:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    async def filter(self, predicate: Callable[[E], bool]) -> list[E]:
        return [r.model_copy(deep=True) for r in self._records.values() if predicate(r)]

    async def get_by_patient(self, patient_id: str) -> list[E]:
        return await self.filter(lambda r: getattr(r, "patient_id", None) == patient_id)

    async def get_by_date_range(self, start: str, end: str, field: str = "date") -> list[E]:
        """Records whose ISO *field* falls within ``[start, end]``."""
        return await self.filter(lambda r: start <= str(getattr(r, field, "") or "")[:10] <= end)


class AppointmentCollection(MockCollection[Appointment]):
    def __init__(self, id_generator: Callable[[], str] | None = None):
        super().__init__(Appointment, id_generator)

    async def cancel(self, record_id: str) -> Appointment:
        """Mark an appointment cancelled.

        Raises:
            RecordNotFoundError: If no appointment has *record_id*
        """
        return await self.update(record_id, {"status": "cancelled"})

    async def get_by_provider(self, provider_id: str, date: str | None = None) -> list[Appointment]:
        return await self.filter(
            lambda a: a.provider_id == provider_id and (date is None or a.date == date)
        )


class MockStore:
    """One mock collection per entity type.

    Construct once per process (or per test) and pass it to the services;
    ``clear_all()`` resets every collection.
    """

    def __init__(self, id_generator: Callable[[], str] | None = None):
        new_id = id_generator or IdGenerator()
        self.patients: MockCollection[Patient] = MockCollection(Patient, new_id)
        self.providers: MockCollection[Provider] = MockCollection(Provider, new_id)
        self.appointments = AppointmentCollection(new_id)
        self.clinical_notes: MockCollection[ClinicalNote] = MockCollection(ClinicalNote, new_id)
        self.vitals: MockCollection[VitalSigns] = MockCollection(VitalSigns, new_id)
        self.lab_results: MockCollection[LabResult] = MockCollection(LabResult, new_id)
        self.medications: MockCollection[Medication] = MockCollection(Medication, new_id)
        self.insurance: MockCollection[InsuranceEligibility] = MockCollection(InsuranceEligibility, new_id)
        self.balances: MockCollection[PatientBalance] = MockCollection(PatientBalance, new_id)
        self.billing_codes: MockCollection[BillingCode] = MockCollection(BillingCode, new_id)

    @property
    def collections(self) -> list[MockCollection[Any]]:
        return [
            self.patients,
            self.providers,
            self.appointments,
            self.clinical_notes,
            self.vitals,
            self.lab_results,
            self.medications,
            self.insurance,
            self.balances,
            self.billing_codes,
        ]

    def collection_for(self, entity_type: type[E]) -> MockCollection[E]:
        for collection in self.collections:
            if collection.entity_type is entity_type:
                return collection
        raise KeyError(f"No mock collection for {entity_type.__name__}")

    def clear_all(self) -> None:
        """Empty every collection (test isolation)."""
        for collection in self.collections:
            collection.clear()
        logger.info("Mock store: cleared all data")
