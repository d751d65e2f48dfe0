"""Tests for the Result containers and error hierarchy."""

from __future__ import annotations

import pytest

from debugmemory.core.result import (
    DebugMemoryError,
    Err,
    InvalidIdError,
    Ok,
    Result,
    StorageError,
    ValidationError,
)


def _describe(result: Result[int, DebugMemoryError]) -> str:
    match result:
        case Ok(value):
            return f"ok:{value}"
        case Err(err):
            return f"err:{err.message}"


def test_results_are_matched_by_shape() -> None:
    assert _describe(Ok(3)) == "ok:3"
    assert _describe(Err(StorageError("disk gone"))) == "err:disk gone"


def test_results_are_plain_containers() -> None:
    for name in ("is_ok", "is_err", "unwrap", "unwrap_or", "map", "map_err", "and_then"):
        assert not hasattr(Ok(1), name)
        assert not hasattr(Err(StorageError("x")), name)


def test_results_are_frozen() -> None:
    with pytest.raises(AttributeError):
        Ok(1).value = 2  # type: ignore[misc]


def test_error_context_rendering() -> None:
    err = StorageError("Failed to write incident", context={"id": "INC_1"})
    assert str(err) == "Failed to write incident [id=INC_1]"
    assert str(DebugMemoryError("plain")) == "plain"


def test_hierarchy() -> None:
    assert issubclass(InvalidIdError, ValidationError)
    assert issubclass(ValidationError, DebugMemoryError)
    assert issubclass(StorageError, DebugMemoryError)
