"""Async client for the upstream FHIR R4 server.

Thin wrapper over ``httpx``: FHIR JSON headers, a request timeout, and
translation of transport failures into ``UpstreamUnavailableError``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import DashboardConfig, get_config
from ..errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


class FhirClient:
    """Async FHIR REST client (search, read, create, update, delete)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        # Tests inject httpx.MockTransport here
        self._transport = transport

    @classmethod
    def from_config(cls, config: DashboardConfig) -> FhirClient:
        return cls(config.base_url, timeout=config.timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON body.

        Raises:
            UpstreamUnavailableError: On timeout, connection failure,
                non-2xx status or a non-JSON body
        """
        headers = {"Accept": FHIR_JSON, "Cache-Control": "no-cache"}
        if json is not None:
            headers["Content-Type"] = FHIR_JSON

        logger.debug("FHIR %s %s params=%s", method, path, params)
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(method, path, params=params, json=json, headers=headers)
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise UpstreamUnavailableError(f"Request timed out: {method} {path}") from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 401:
                    message = "Authentication failed - check FHIR server credentials"
                elif status == 404:
                    message = f"Resource not found: {path}"
                else:
                    message = f"FHIR server error {status}: {e.response.text[:200]}"
                raise UpstreamUnavailableError(message, status_code=status) from e
            except httpx.HTTPError as e:
                raise UpstreamUnavailableError(f"FHIR request failed: {type(e).__name__}: {e}") from e

            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamUnavailableError(f"FHIR server returned invalid JSON for {path}") from e

    async def search(self, resource_type: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Search a resource type; returns a FHIR Bundle."""
        return await self._request("GET", f"/{resource_type}", params=params or None)

    async def read(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        """Read one resource by id."""
        return await self._request("GET", f"/{resource_type}/{resource_id}")

    async def create(self, resource_type: str, resource: dict[str, Any]) -> dict[str, Any]:
        """POST a new resource; returns the server's copy."""
        return await self._request("POST", f"/{resource_type}", json=resource)

    async def update(self, resource_type: str, resource_id: str, resource: dict[str, Any]) -> dict[str, Any]:
        """PUT a full resource; returns the server's copy."""
        return await self._request("PUT", f"/{resource_type}/{resource_id}", json=resource)

    async def delete(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        """DELETE a resource."""
        return await self._request("DELETE", f"/{resource_type}/{resource_id}")


# Global client instance
_client: FhirClient | None = None


def get_client() -> FhirClient:
    """Get or create the global client for the configured upstream."""
    global _client
    if _client is None:
        _client = FhirClient.from_config(get_config())
    return _client
