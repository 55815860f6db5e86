"""Shared fixtures: FHIR payload builders and services wired to a fake upstream."""

from __future__ import annotations

import json

import httpx
import pytest

from fhirdash.config import DashboardConfig
from fhirdash.fhir.client import FhirClient
from fhirdash.services import ClinicalDataService
from fhirdash.store import MockStore

BASE_URL = "https://fhir.test/baseR4"


# ---------------------------------------------------------------------------
# FHIR payloads
# ---------------------------------------------------------------------------


def bundle(*resources: dict, total: int | None = None) -> dict:
    result = {
        "resourceType": "Bundle",
        "type": "searchset",
        "entry": [{"resource": r} for r in resources],
    }
    if total is not None:
        result["total"] = total
    return result


def fhir_patient(patient_id: str = "p1", given: str = "John", family: str = "Smith") -> dict:
    return {
        "resourceType": "Patient",
        "id": patient_id,
        "name": [{"use": "official", "family": family, "given": [given]}],
        "gender": "male",
        "birthDate": "1980-04-02",
        "telecom": [
            {"system": "phone", "value": "555-0100", "use": "mobile"},
            {"system": "email", "value": "john@example.com"},
        ],
        "address": [{"line": ["1 Main St"], "city": "Springfield", "state": "IL", "postalCode": "62701"}],
    }


def fhir_practitioner(practitioner_id: str = "dr1") -> dict:
    return {
        "resourceType": "Practitioner",
        "id": practitioner_id,
        "active": True,
        "name": [{"family": "House", "given": ["Gregory"]}],
        "qualification": [{"code": {"text": "Diagnostic Medicine", "coding": [{"display": "MD"}]}}],
    }


def fhir_appointment(appointment_id: str = "a1", status: str = "booked", start: str = "2024-05-06T09:00:00Z") -> dict:
    return {
        "resourceType": "Appointment",
        "id": appointment_id,
        "status": status,
        "start": start,
        "end": start.replace("09:00", "09:45"),
        "participant": [
            {
                "type": [{"coding": [{"code": "PPRF"}]}],
                "actor": {"reference": "Patient/p1", "display": "John Smith"},
            },
            {
                "type": [{"coding": [{"code": "PRCP"}]}],
                "actor": {"reference": "Practitioner/dr1", "display": "Gregory House"},
            },
        ],
    }


# ---------------------------------------------------------------------------
# Fake upstream
# ---------------------------------------------------------------------------


class FakeFhirServer:
    """Answers GETs from canned bundles/resources and records every request."""

    def __init__(self):
        self.routes: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None

    def add(self, path: str, body: dict) -> None:
        self.routes[path] = body

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="server unavailable")
        path = request.url.path.removeprefix("/baseR4")
        if request.method in ("POST", "PUT"):
            body = json.loads(request.content)
            body.setdefault("id", "server-1")
            return httpx.Response(201, json=body)
        if request.method == "DELETE":
            return httpx.Response(204)
        if path in self.routes:
            return httpx.Response(200, json=self.routes[path])
        if path.count("/") > 1:
            return httpx.Response(404, json={"resourceType": "OperationOutcome"})
        return httpx.Response(200, json=bundle())

    def last_params(self) -> httpx.QueryParams:
        return self.requests[-1].url.params


@pytest.fixture
def server() -> FakeFhirServer:
    return FakeFhirServer()


@pytest.fixture
def client(server) -> FhirClient:
    return FhirClient(BASE_URL, timeout=5.0, transport=httpx.MockTransport(server))


@pytest.fixture
def store() -> MockStore:
    return MockStore()


@pytest.fixture
def service(client, store) -> ClinicalDataService:
    return ClinicalDataService(client, store, DashboardConfig(base_url=BASE_URL))


@pytest.fixture
def live_service(client, store) -> ClinicalDataService:
    """Service whose writes go to the (fake) upstream."""
    return ClinicalDataService(client, store, DashboardConfig(base_url=BASE_URL, mock_writes=False))
