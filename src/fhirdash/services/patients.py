"""Patient search, listing and writes."""

from __future__ import annotations

from ..errors import ErrorKind
from ..fhir.search import SearchMode, build_list_params, build_search_params
from ..models.entities import Patient
from ..models.envelope import Envelope
from .base import EntityService


class PatientService(EntityService[Patient]):
    entity_type = Patient
    resource_type = "Patient"
    label = "patient"

    async def search(self, term: str, mode: SearchMode | str = SearchMode.NAME) -> Envelope:
        """Search patients by name or id.

        Args:
            term: Name fragment or exact patient id
            mode: ``"name"`` or ``"id"``

        Returns:
            Envelope with the matching patients. A blank term or unknown mode
            gives a failed envelope of kind ``validation``.
        """
        try:
            params = build_search_params(term, mode, self._page_size)
        except ValueError as e:
            return Envelope.fail(str(e), ErrorKind.VALIDATION, data=[], total=0)
        if not params:
            return Envelope.fail(
                "A search term is required", ErrorKind.VALIDATION, data=[], total=0
            )

        needle = term.strip()
        if SearchMode(mode) is SearchMode.ID:
            local = await self._collection.filter(lambda p: p.id == needle)
        else:
            needle = needle.lower()
            local = await self._collection.filter(lambda p: needle in p.full_name.lower())
        return await self._search(params, local)

    async def list(self, page: int = 1, limit: int | None = None) -> Envelope:
        """One page of patients sorted by family name; session records come last."""
        params = build_list_params(page, limit or self._page_size)
        local = await self._collection.get_all() if page <= 1 else []
        return await self._search(params, local)
