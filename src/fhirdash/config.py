"""Configuration for the clinical data layer."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class DashboardConfig:
    """Settings for the upstream FHIR source and write routing."""

    # Upstream FHIR R4 endpoint (the public HAPI test server is read-only)
    base_url: str = "https://hapi.fhir.org/baseR4"
    timeout: float = 30.0

    # Route create/update/delete/cancel to the in-memory mock store
    mock_writes: bool = True

    # Result-size cap for searches and list reads
    page_size: int = 20

    @classmethod
    def from_env(cls) -> DashboardConfig:
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv()
        return cls(
            base_url=os.getenv("FHIRDASH_BASE_URL", "https://hapi.fhir.org/baseR4"),
            timeout=float(os.getenv("FHIRDASH_TIMEOUT", "30")),
            mock_writes=_env_flag("FHIRDASH_MOCK_WRITES", "true"),
            page_size=int(os.getenv("FHIRDASH_PAGE_SIZE", "20")),
        )


# Global config instance
_config: DashboardConfig | None = None


def get_config() -> DashboardConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = DashboardConfig.from_env()
    return _config
