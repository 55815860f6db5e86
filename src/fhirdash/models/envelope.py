"""Uniform result envelope returned by every service operation."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ErrorKind

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Result of a service call: either data, or an error with its kind.

    Callers check ``success`` before reading ``data``. A failed read carries
    ``data=[]`` (collections) or ``data=None`` (single records), so an empty
    result is never confused with a failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: T | None = None
    success: bool = True
    message: str | None = Field(None, description="User-facing note, e.g. demonstration-mode writes")
    error: str | None = Field(None, description="Error message if the operation failed")
    error_kind: ErrorKind | None = None
    total: int | None = Field(None, description="Total matches for collection reads")

    @classmethod
    def ok(
        cls,
        data: Any = None,
        *,
        message: str | None = None,
        total: int | None = None,
    ) -> Envelope:
        return cls(data=data, success=True, message=message, total=total)

    @classmethod
    def fail(
        cls,
        error: str,
        kind: ErrorKind = ErrorKind.UNEXPECTED,
        *,
        data: Any = None,
        total: int | None = None,
    ) -> Envelope:
        return cls(data=data, success=False, error=error, error_kind=kind, total=total)
