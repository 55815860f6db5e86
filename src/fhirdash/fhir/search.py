"""Search parameter builders for upstream FHIR queries."""

from __future__ import annotations

from enum import Enum

DEFAULT_PAGE_SIZE = 20


class SearchMode(str, Enum):
    """How a patient search term is matched."""

    NAME = "name"
    ID = "id"


# Search mode -> FHIR search parameter
_MODE_PARAMS = {
    SearchMode.NAME: "name",
    SearchMode.ID: "_id",
}


def _common_params(page_size: int) -> dict[str, str]:
    # Sorting by family name keeps repeated searches in a stable order
    return {
        "_count": str(page_size),
        "_sort": "family",
        "_format": "json",
    }


def build_search_params(
    term: str,
    mode: SearchMode | str,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> dict[str, str]:
    """Build Patient search parameters for a user-entered term.

    Args:
        term: Search text; surrounding whitespace is ignored
        mode: ``"name"`` (free-text name match) or ``"id"`` (exact id)
        page_size: Result-size cap sent as ``_count``

    Returns:
        Parameter dict, or ``{}`` when *term* is empty or whitespace

    Raises:
        ValueError: If *mode* is not a known search mode

    Example:
        >>> build_search_params("Smith", "name")
        {'name': 'Smith', '_count': '20', '_sort': 'family', '_format': 'json'}
    """
    mode = SearchMode(mode)
    term = (term or "").strip()
    if not term:
        return {}
    return {_MODE_PARAMS[mode]: term, **_common_params(page_size)}


def build_list_params(page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict[str, str]:
    """Parameters for a paged, family-name-sorted patient listing."""
    params = _common_params(limit)
    if page > 1:
        params["_getpagesoffset"] = str((page - 1) * limit)
    return params


def build_patient_params(
    patient_id: str,
    category: str | None = None,
    status: str | None = None,
) -> dict[str, str]:
    """Parameters for resources belonging to one patient."""
    params = {"patient": patient_id, "_format": "json"}
    if category:
        params["category"] = category
    if status:
        params["status"] = status
    return params


def build_date_range_params(start: str, end: str) -> dict[str, list[str] | str]:
    """Parameters for resources dated within ``[start, end]`` (inclusive)."""
    return {"date": [f"ge{start}", f"le{end}"], "_format": "json"}
