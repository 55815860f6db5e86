"""Clinical records: notes, vital signs, lab results and medications."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..fhir.search import build_patient_params
from ..fhir.transforms import bundle_resources, merge_vital_observations
from ..models.entities import ClinicalNote, LabResult, Medication, VitalSigns
from ..models.envelope import Envelope
from .base import E, EntityService


class _PatientRecordService(EntityService[E]):
    """Records belonging to one patient, searched with the patient included."""

    category: str | None = None
    status: str | None = None

    async def get_by_patient(self, patient_id: str) -> Envelope:
        params = build_patient_params(patient_id, self.category, self.status)
        params["_include"] = f"{self.resource_type}:patient"
        local = await self._collection.get_by_patient(patient_id)
        return await self._search(params, local, name_from_include=True)


class NoteService(_PatientRecordService[ClinicalNote]):
    entity_type = ClinicalNote
    resource_type = "DocumentReference"
    label = "clinical note"
    status = "current"


class VitalsService(_PatientRecordService[VitalSigns]):
    entity_type = VitalSigns
    resource_type = "Observation"
    label = "vital signs"
    category = "vital-signs"
    status = "final"

    def _entities_from_bundle(self, bundle: Mapping[str, Any], patient_name: str | None) -> list[VitalSigns]:
        # One Observation per measurement upstream; fold them back into readings
        return merge_vital_observations(bundle_resources(bundle, self.resource_type), patient_name)


class LabService(_PatientRecordService[LabResult]):
    entity_type = LabResult
    resource_type = "Observation"
    label = "lab result"
    category = "laboratory"

    async def update_status(self, record_id: str, status: str) -> Envelope:
        """Move a lab result to ``pending``, ``completed`` or ``reviewed``."""
        return await self.update(record_id, {"status": status})


class MedicationService(_PatientRecordService[Medication]):
    entity_type = Medication
    resource_type = "MedicationRequest"
    label = "medication"

    async def discontinue(self, record_id: str) -> Envelope:
        return await self.update(record_id, {"status": "discontinued"}, operation="discontinue")
