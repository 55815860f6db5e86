"""In-memory mock persistence store."""

from .mock_store import AppointmentCollection, IdGenerator, MockCollection, MockStore

__all__ = ["AppointmentCollection", "IdGenerator", "MockCollection", "MockStore"]
