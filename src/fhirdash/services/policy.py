"""Write routing between the upstream FHIR server and the mock store."""

from __future__ import annotations

from dataclasses import dataclass

WRITE_OPERATIONS = frozenset({"create", "update", "delete"})

_PAST_TENSE = {
    "create": "created",
    "update": "updated",
    "delete": "deleted",
    "cancel": "cancelled",
    "discontinue": "discontinued",
}


@dataclass
class WritePolicy:
    """Decides, per operation, whether a write goes to the mock store.

    The public HAPI test server rejects writes, so ``mock_writes`` defaults
    to True. The flag applies to every entity type alike.
    """

    mock_writes: bool = True

    def should_use_mock_crud(self, operation: str) -> bool:
        """True if *operation* ("create", "update" or "delete") uses the mock store."""
        if operation not in WRITE_OPERATIONS:
            raise ValueError(f"Unknown write operation: {operation}")
        return self.mock_writes


def mock_write_message(operation: str, label: str) -> str:
    """User-facing notice that a write was kept in the local demonstration store."""
    done = _PAST_TENSE.get(operation, f"{operation}d")
    return (
        f"Successfully {done} {label} using demonstration mode. "
        "In a production environment, this would be saved to the FHIR server."
    )
