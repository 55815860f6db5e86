"""Appointment scheduling: reads by date, patient and provider; cancellation; availability."""

from __future__ import annotations

import datetime as dt
import logging

from ..errors import ErrorKind
from ..fhir.search import build_date_range_params, build_patient_params
from ..models.availability import ProviderAvailability, TimeSlot
from ..models.entities import Appointment
from ..models.envelope import Envelope
from .base import EntityService
from .providers import ProviderService

logger = logging.getLogger(__name__)

# Indexed by date.weekday()
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class AppointmentService(EntityService[Appointment]):
    entity_type = Appointment
    resource_type = "Appointment"
    label = "appointment"

    def __init__(self, *args, providers: ProviderService, **kwargs):
        super().__init__(*args, **kwargs)
        self._providers = providers

    async def get_by_date_range(self, start: str, end: str) -> Envelope:
        """Appointments dated within ``[start, end]`` (ISO dates, inclusive)."""
        local = await self._collection.get_by_date_range(start, end)
        return await self._search(build_date_range_params(start, end), local)

    async def get_by_patient(self, patient_id: str) -> Envelope:
        local = await self._collection.get_by_patient(patient_id)
        return await self._search(build_patient_params(patient_id), local)

    async def get_by_provider(self, provider_id: str, date: str | None = None) -> Envelope:
        """A provider's appointments, optionally restricted to one date."""
        params = {"practitioner": provider_id, "_format": "json"}
        if date:
            params["date"] = date
        local = await self._collection.get_by_provider(provider_id, date)
        return await self._search(params, local)

    async def cancel(self, record_id: str, reason: str | None = None) -> Envelope:
        """Set an appointment's status to cancelled.

        Args:
            record_id: Appointment id
            reason: Optional reason, appended to the appointment notes

        Returns:
            Envelope with the updated appointment, or a failed envelope of
            kind ``not_found`` if the appointment does not exist
        """
        changes: dict[str, str] = {"status": "cancelled"}
        if reason:
            current = await self.get_by_id(record_id)
            if not current.success:
                return current
            notes = current.data.notes
            line = f"Cancellation reason: {reason}"
            changes["notes"] = f"{notes}\n{line}" if notes else line
        return await self.update(record_id, changes, operation="cancel")

    async def get_provider_availability(self, provider_id: str, date: str) -> Envelope:
        """Bookable slots for a provider on *date*.

        Slots come from the provider's weekly availability for the weekday of
        *date*; a slot is unavailable when a non-cancelled appointment with
        that provider starts at the same time on that date.
        """
        try:
            weekday = WEEKDAYS[dt.date.fromisoformat(date).weekday()]
        except ValueError:
            return Envelope.fail(f"Invalid date: {date!r}", ErrorKind.VALIDATION)

        provider = await self._providers.get_by_id(provider_id)
        if not provider.success:
            return provider
        booked = await self.get_by_provider(provider_id, date)
        if not booked.success:
            return Envelope.fail(booked.error or "", booked.error_kind or ErrorKind.UNEXPECTED)

        taken = {
            a.time for a in booked.data
            if a.date == date and a.status != "cancelled"
        }
        slots = [
            TimeSlot(time=time, available=time not in taken)
            for time in provider.data.availability.get(weekday, [])
        ]
        logger.debug("Provider %s on %s: %d of %d slots free", provider_id, date,
                     sum(s.available for s in slots), len(slots))
        return Envelope.ok(
            ProviderAvailability(provider_id=provider_id, date=date, weekday=weekday, slots=slots)
        )
