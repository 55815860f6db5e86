"""Read/write dispatch services.

Usage:
    from fhirdash.services import ClinicalDataService

    service = ClinicalDataService.from_config()
    result = await service.appointments.get_by_patient("123")
"""

from .appointments import WEEKDAYS, AppointmentService
from .base import EntityService
from .billing import BalanceService, BillingCodeService, BillingService, InsuranceService
from .clinical import LabService, MedicationService, NoteService, VitalsService
from .facade import ClinicalDataService
from .patients import PatientService
from .policy import WRITE_OPERATIONS, WritePolicy, mock_write_message
from .providers import ProviderService

__all__ = [
    # Facade
    "ClinicalDataService",
    # Write routing
    "WRITE_OPERATIONS",
    "WritePolicy",
    "mock_write_message",
    # Per-entity services
    "EntityService",
    "PatientService",
    "ProviderService",
    "AppointmentService",
    "WEEKDAYS",
    "NoteService",
    "VitalsService",
    "LabService",
    "MedicationService",
    "BillingService",
    "InsuranceService",
    "BalanceService",
    "BillingCodeService",
]
