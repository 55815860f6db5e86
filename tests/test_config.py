"""Tests for configuration, write policy, envelopes and entity helpers."""

import pytest

from fhirdash.config import DashboardConfig
from fhirdash.errors import ErrorKind, RecordNotFoundError, UpstreamUnavailableError
from fhirdash.models import Appointment, Envelope, Patient, compute_bmi, supplied_fields
from fhirdash.services import ClinicalDataService, WritePolicy, mock_write_message


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("FHIRDASH_BASE_URL", "https://fhir.example.org/r4")
    monkeypatch.setenv("FHIRDASH_TIMEOUT", "12.5")
    monkeypatch.setenv("FHIRDASH_MOCK_WRITES", "false")
    monkeypatch.setenv("FHIRDASH_PAGE_SIZE", "50")
    config = DashboardConfig.from_env()
    assert config.base_url == "https://fhir.example.org/r4"
    assert config.timeout == 12.5
    assert config.mock_writes is False
    assert config.page_size == 50


def test_config_defaults(monkeypatch):
    for name in ("FHIRDASH_BASE_URL", "FHIRDASH_TIMEOUT", "FHIRDASH_MOCK_WRITES", "FHIRDASH_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)
    config = DashboardConfig()
    assert config.base_url == "https://hapi.fhir.org/baseR4"
    assert config.mock_writes is True
    assert config.page_size == 20


def test_from_config_builds_service():
    config = DashboardConfig(base_url="https://fhir.example.org/r4/", mock_writes=False, page_size=5)
    service = ClinicalDataService.from_config(config)
    assert service.client.base_url == "https://fhir.example.org/r4"
    assert not service.should_use_mock_crud("delete")


def test_write_policy():
    assert WritePolicy().should_use_mock_crud("create")
    assert not WritePolicy(mock_writes=False).should_use_mock_crud("update")
    with pytest.raises(ValueError):
        WritePolicy().should_use_mock_crud("cancel")


def test_mock_write_message():
    assert mock_write_message("create", "patient") == (
        "Successfully created patient using demonstration mode. "
        "In a production environment, this would be saved to the FHIR server."
    )


def test_envelopes():
    ok = Envelope.ok([1, 2], total=2)
    assert ok.success and ok.data == [1, 2] and ok.error is None
    failed = Envelope.fail("gone", ErrorKind.NOT_FOUND)
    assert not failed.success
    assert failed.error_kind is ErrorKind.NOT_FOUND
    assert failed.data is None


def test_error_kinds():
    assert RecordNotFoundError("patients", "x").kind is ErrorKind.NOT_FOUND
    error = UpstreamUnavailableError("down", status_code=502)
    assert error.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert error.status_code == 502


def test_entity_aliases_and_helpers():
    patient = Patient.model_validate({"firstName": "Jane", "lastName": "Doe"})
    assert patient.full_name == "Jane Doe"
    assert patient.model_dump(by_alias=True)["dateOfBirth"] == ""
    assert patient.missing_required_fields() == ["date_of_birth"]
    assert Appointment(status="no-show").is_terminal
    assert not Appointment(status="confirmed").is_terminal
    assert compute_bmi(80, 180) == 24.7
    assert compute_bmi(None, 180) is None
    assert supplied_fields(Patient, {"phone": "1", "unknown": "x"}) == {"phone": "1"}
