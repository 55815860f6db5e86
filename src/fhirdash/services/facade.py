"""Single entry point the dashboard talks to."""

from __future__ import annotations

import logging

from ..config import DashboardConfig, get_config
from ..fhir.client import FhirClient
from ..store.mock_store import MockStore
from .appointments import AppointmentService
from .billing import BalanceService, BillingCodeService, BillingService, InsuranceService
from .clinical import LabService, MedicationService, NoteService, VitalsService
from .patients import PatientService
from .policy import WritePolicy
from .providers import ProviderService

logger = logging.getLogger(__name__)


class ClinicalDataService:
    """Read/write dispatch for every entity the dashboard shows.

    Reads come from the upstream FHIR server, merged with records written
    during the session. Writes go to the injected ``MockStore`` while
    ``config.mock_writes`` is set, otherwise to the upstream.

    Example::

        service = ClinicalDataService.from_config()
        result = await service.patients.search("Smith", "name")
        if result.success:
            names = [p.full_name for p in result.data]
    """

    def __init__(
        self,
        client: FhirClient,
        store: MockStore,
        config: DashboardConfig | None = None,
    ):
        self.config = config or DashboardConfig()
        self.client = client
        self.store = store
        self.policy = WritePolicy(mock_writes=self.config.mock_writes)

        common = {"policy": self.policy, "page_size": self.config.page_size}
        self.patients = PatientService(client, store.patients, **common)
        self.providers = ProviderService(client, store.providers, **common)
        self.appointments = AppointmentService(
            client, store.appointments, providers=self.providers, **common
        )
        self.notes = NoteService(client, store.clinical_notes, **common)
        self.vitals = VitalsService(client, store.vitals, **common)
        self.labs = LabService(client, store.lab_results, **common)
        self.medications = MedicationService(client, store.medications, **common)
        self.billing = BillingService(
            insurance=InsuranceService(client, store.insurance, **common),
            balances=BalanceService(client, store.balances, **common),
            codes=BillingCodeService(client, store.billing_codes, **common),
        )
        logger.info(
            "Clinical data service ready (upstream=%s, mock_writes=%s)",
            client.base_url,
            self.config.mock_writes,
        )

    @classmethod
    def from_config(
        cls,
        config: DashboardConfig | None = None,
        store: MockStore | None = None,
    ) -> ClinicalDataService:
        """Build a service for the configured upstream with a fresh mock store."""
        config = config or get_config()
        return cls(FhirClient.from_config(config), store or MockStore(), config)

    def should_use_mock_crud(self, operation: str) -> bool:
        return self.policy.should_use_mock_crud(operation)
