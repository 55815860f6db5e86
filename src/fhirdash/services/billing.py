"""Billing: insurance eligibility, patient balances and the billing code catalogue."""

from __future__ import annotations

import logging

from ..fhir.transforms import transform_external_to_entity
from ..models.entities import BillingCode, InsuranceEligibility, PatientBalance
from ..models.envelope import Envelope
from .base import E, EntityService

logger = logging.getLogger(__name__)


class _PatientBillingService(EntityService[E]):
    """Billing records looked up by patient; the patient's name is read separately."""

    patient_param: str = "patient"

    async def _patient_name(self, patient_id: str) -> str | None:
        try:
            resource = await self._client.read("Patient", patient_id)
            return transform_external_to_entity(resource).full_name or None
        except Exception as e:
            logger.warning("Could not fetch patient details for %s: %s", patient_id, e)
            return None

    async def get_by_patient(self, patient_id: str) -> Envelope:
        params = {self.patient_param: patient_id, "_format": "json"}
        local = await self._collection.get_by_patient(patient_id)
        patient_name = await self._patient_name(patient_id)
        return await self._search(params, local, patient_name=patient_name)

    async def list(self, limit: int | None = None) -> Envelope:
        params = {"_count": str(limit or self._page_size), "_format": "json"}
        return await self._search(params, await self._collection.get_all())


class InsuranceService(_PatientBillingService[InsuranceEligibility]):
    entity_type = InsuranceEligibility
    resource_type = "Coverage"
    label = "insurance eligibility"
    patient_param = "beneficiary"


class BalanceService(_PatientBillingService[PatientBalance]):
    entity_type = PatientBalance
    resource_type = "Account"
    label = "patient balance"


class BillingCodeService(EntityService[BillingCode]):
    entity_type = BillingCode
    resource_type = "ChargeItem"
    label = "billing code"

    async def list(self, limit: int | None = None) -> Envelope:
        params = {"_count": str(limit or self._page_size), "_format": "json"}
        return await self._search(params, await self._collection.get_all())

    async def search(self, term: str) -> Envelope:
        """Codes whose code or description contains *term* (case-insensitive)."""
        needle = (term or "").strip().lower()
        listed = await self.list()
        if not listed.success or not needle:
            return listed
        matches = [
            c for c in listed.data
            if needle in c.code.lower() or needle in c.description.lower()
        ]
        return Envelope.ok(matches, total=len(matches))

    async def get_by_category(self, category: str) -> Envelope:
        listed = await self.list()
        if not listed.success:
            return listed
        matches = [c for c in listed.data if c.category.lower() == category.lower()]
        return Envelope.ok(matches, total=len(matches))


class BillingService:
    """Groups the billing sub-services as ``insurance``, ``balances`` and ``codes``."""

    def __init__(
        self,
        insurance: InsuranceService,
        balances: BalanceService,
        codes: BillingCodeService,
    ):
        self.insurance = insurance
        self.balances = balances
        self.codes = codes
