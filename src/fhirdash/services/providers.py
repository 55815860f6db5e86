"""Practitioner directory."""

from __future__ import annotations

from ..errors import ErrorKind
from ..models.entities import Provider
from ..models.envelope import Envelope
from .base import EntityService


class ProviderService(EntityService[Provider]):
    entity_type = Provider
    resource_type = "Practitioner"
    label = "provider"

    async def list(self, limit: int | None = None) -> Envelope:
        """Active practitioners, followed by providers created this session."""
        params = {
            "active": "true",
            "_count": str(limit or self._page_size),
            "_format": "json",
        }
        local = await self._collection.get_all()
        return await self._search(params, local)

    async def current(self) -> Envelope:
        """The practitioner acting as the signed-in user (the first listed)."""
        listed = await self.list()
        if not listed.success:
            return Envelope.fail(listed.error or "", listed.error_kind or ErrorKind.UNEXPECTED)
        if not listed.data:
            return Envelope.fail("No practitioners available", ErrorKind.NOT_FOUND)
        return Envelope.ok(listed.data[0])
