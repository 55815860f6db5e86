"""Tests for the in-memory mock store."""

import asyncio

import pytest

from fhirdash.errors import ErrorKind, RecordNotFoundError
from fhirdash.models import Appointment, Patient
from fhirdash.store import IdGenerator, MockCollection, MockStore

JANE = {
    "first_name": "Jane",
    "last_name": "Doe",
    "date_of_birth": "1990-07-14",
    "gender": "female",
    "phone": "555-0142",
}


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Ids
# ---------------------------------------------------------------------------


def test_id_format():
    new_id = IdGenerator()()
    prefix, millis, suffix = new_id.split("-")
    assert prefix == "mock"
    assert millis.isdigit()
    assert len(suffix) == 9
    assert suffix.isalnum() and suffix == suffix.lower()


def test_ids_are_unique_over_many_creates():
    collection = MockCollection(Patient)

    async def create_many():
        return [await collection.create({"first_name": f"P{i}"}) for i in range(1000)]

    created = run(create_many())
    assert len({p.id for p in created}) == 1000
    assert len(collection) == 1000


def test_colliding_ids_are_redrawn():
    ids = iter(["mock-1-aaaaaaaaa", "mock-1-aaaaaaaaa", "mock-1-bbbbbbbbb"])
    collection = MockCollection(Patient, lambda: next(ids))

    async def scenario():
        first = await collection.create({})
        second = await collection.create({})
        return first, second

    first, second = run(scenario())
    assert first.id == "mock-1-aaaaaaaaa"
    assert second.id == "mock-1-bbbbbbbbb"


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


def test_create_ignores_supplied_id_and_does_not_touch_input():
    store = MockStore()
    payload = {**JANE, "id": "caller-id"}
    created = run(store.patients.create(payload))
    assert created.id.startswith("mock-")
    assert payload["id"] == "caller-id"


def test_update_merges_shallowly():
    store = MockStore()

    async def scenario():
        created = await store.patients.create(JANE)
        updated = await store.patients.update(created.id, {"phone": "555-0199", "allergies": ["Latex"]})
        return created, updated

    created, updated = run(scenario())
    assert updated.id == created.id
    assert updated.phone == "555-0199"
    assert updated.allergies == ["Latex"]
    assert updated.first_name == "Jane"
    assert updated.date_of_birth == "1990-07-14"


def test_update_accepts_camel_case_keys():
    store = MockStore()

    async def scenario():
        created = await store.patients.create(JANE)
        return await store.patients.update(created.id, {"lastName": "Roe"})

    assert run(scenario()).last_name == "Roe"


def test_missing_ids_raise_not_found():
    store = MockStore()
    with pytest.raises(RecordNotFoundError) as excinfo:
        run(store.patients.update("mock-0-missing00", {"phone": "1"}))
    assert excinfo.value.kind is ErrorKind.NOT_FOUND
    with pytest.raises(RecordNotFoundError):
        run(store.patients.delete("mock-0-missing00"))
    with pytest.raises(RecordNotFoundError):
        run(store.appointments.cancel("mock-0-missing00"))
    assert run(store.patients.get_by_id("mock-0-missing00")) is None


def test_reads_return_copies():
    store = MockStore()

    async def scenario():
        created = await store.patients.create(JANE)
        fetched = await store.patients.get_by_id(created.id)
        fetched.allergies.append("Peanuts")
        fetched.first_name = "Changed"
        return await store.patients.get_by_id(created.id)

    again = run(scenario())
    assert again.first_name == "Jane"
    assert again.allergies == []


def test_partial_payloads_are_accepted():
    record = run(MockStore().appointments.create({"patient_id": "p1"}))
    assert isinstance(record, Appointment)
    assert record.status == "scheduled"
    assert record.duration == 30
    assert record.missing_required_fields() == ["provider_id", "date", "time"]


def test_invalid_values_are_stored_as_given():
    store = MockStore()

    async def scenario():
        created = await store.patients.create({"first_name": "A", "gender": "M"})
        appointment = await store.appointments.create({"patient_id": "p1", "duration": 0})
        updated = await store.appointments.update(appointment.id, {"duration": -5, "time": "09:30"})
        return created, updated

    created, updated = run(scenario())
    assert created.first_name == "A"
    assert created.gender == "M"
    assert created.last_name == ""
    assert (updated.duration, updated.time, updated.patient_id) == (-5, "09:30", "p1")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def test_queries():
    store = MockStore()

    async def scenario():
        await store.appointments.create({"patient_id": "p1", "provider_id": "dr1", "date": "2024-05-01"})
        await store.appointments.create({"patient_id": "p2", "provider_id": "dr1", "date": "2024-05-10"})
        await store.appointments.create({"patient_id": "p1", "provider_id": "dr2", "date": "2024-06-01"})
        return (
            await store.appointments.get_by_patient("p1"),
            await store.appointments.get_by_date_range("2024-05-01", "2024-05-10"),
            await store.appointments.get_by_provider("dr1"),
            await store.appointments.get_by_provider("dr1", "2024-05-10"),
            await store.appointments.filter(lambda a: a.date.startswith("2024-06")),
        )

    by_patient, in_range, by_provider, by_provider_on_day, june = run(scenario())
    assert [a.date for a in by_patient] == ["2024-05-01", "2024-06-01"]
    assert [a.patient_id for a in in_range] == ["p1", "p2"]
    assert len(by_provider) == 2
    assert [a.patient_id for a in by_provider_on_day] == ["p2"]
    assert [a.provider_id for a in june] == ["dr2"]


def test_cancel_sets_status():
    store = MockStore()

    async def scenario():
        created = await store.appointments.create({"patient_id": "p1", "status": "confirmed"})
        return await store.appointments.cancel(created.id)

    cancelled = run(scenario())
    assert cancelled.status == "cancelled"
    assert cancelled.is_terminal


def test_clear_all_and_collection_lookup():
    store = MockStore()
    run(store.patients.create(JANE))
    run(store.appointments.create({"patient_id": "p1"}))
    assert store.collection_for(Patient) is store.patients
    store.clear_all()
    assert all(len(c) == 0 for c in store.collections)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


def test_jane_doe_lifecycle():
    store = MockStore()

    async def scenario():
        created = await store.patients.create(JANE)
        assert created.id in store.patients
        await store.patients.update(created.id, {"phone": "555-0199"})
        fetched = await store.patients.get_by_id(created.id)
        assert fetched.phone == "555-0199"
        assert fetched.full_name == "Jane Doe"
        await store.patients.delete(created.id)
        return created.id, await store.patients.get_by_id(created.id), await store.patients.get_all()

    patient_id, after_delete, remaining = run(scenario())
    assert after_delete is None
    assert remaining == []
    assert patient_id not in store.patients
