"""Provider availability schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TimeSlot(BaseModel):
    """One bookable slot on a provider's day."""

    time: str = Field(..., description="Slot start, HH:MM")
    available: bool = Field(..., description="False when a non-cancelled appointment holds the slot")


class ProviderAvailability(BaseModel):
    """A provider's slots for one date."""

    provider_id: str
    date: str
    weekday: str
    slots: list[TimeSlot] = Field(default_factory=list)

    @property
    def available(self) -> bool:
        return any(slot.available for slot in self.slots)
