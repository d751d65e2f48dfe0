"""
Unified Result types and error hierarchy for debugmemory.

This module provides:
1. Result[T, E] type for explicit error handling at the storage boundary
2. Domain-specific exception hierarchy

Usage:
    from debugmemory.core.result import Ok, Err, Result, StorageError

    def load() -> Result[list[Incident], StorageError]:
        if broken:
            return Err(StorageError("Incident directory unreadable"))
        return Ok(incidents)

    match load():
        case Ok(incidents):
            ...
        case Err(err):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class DebugMemoryError(Exception):
    """Base exception for all debugmemory errors.

    Carries an optional context mapping that is rendered alongside the
    message, so log lines stay greppable.
    """

    def __init__(self, message: str, *, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class StorageError(DebugMemoryError):
    """Raised when the record store cannot be read or written.

    Examples:
    - Incident directory unreadable
    - Pattern write failed
    - Corpus load timed out
    """

    pass


class ConfigurationError(DebugMemoryError):
    """Raised for configuration issues.

    Examples:
    - Config file parse errors
    - Invalid config values
    """

    pass


class ValidationError(DebugMemoryError):
    """Raised for record validation failures.

    Examples:
    - Incident missing required fields
    - Value out of range
    """

    pass


class InvalidIdError(ValidationError):
    """Raised when a record id does not match the generator format."""

    pass


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "DebugMemoryError",
    "StorageError",
    "ConfigurationError",
    "ValidationError",
    "InvalidIdError",
]
