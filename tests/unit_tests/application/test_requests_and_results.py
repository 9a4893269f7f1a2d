"""Unit tests for request validation and result helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from doc_converter.application.options import (
    ConversionRequest,
    new_operation_id,
    normalize_format,
    validate_operation_id,
)
from doc_converter.application.results import ConversionResult
from doc_converter.types import FailureKind


@pytest.mark.parametrize("value", ["job-1", "A.b_c", "x" * 64, new_operation_id()])
def test_valid_operation_ids(value: str) -> None:
    """Accept single safe path segments."""
    assert validate_operation_id(value) == value


@pytest.mark.parametrize("value", ["", ".", "..", "a/b", "a\\b", "x" * 65, "sp ace"])
def test_invalid_operation_ids(value: str) -> None:
    """Reject ids that could escape or collide in the work directory."""
    with pytest.raises(ValueError, match="operation_id"):
        validate_operation_id(value)


def test_normalize_format() -> None:
    """Lower-case and drop the leading dot."""
    assert normalize_format(" .DOCX ") == "docx"


def test_request_target_extension_drops_filter() -> None:
    """Derive the engine's output extension from the target."""
    request = ConversionRequest(Path("a.doc"), Path("a.txt"), "txt:Text", "op")
    assert request.target_extension == "txt"


def test_request_rejects_blank_target() -> None:
    """Refuse requests without a target."""
    with pytest.raises(ValueError, match="target_format"):
        ConversionRequest(Path("a.doc"), Path("a.txt"), " ", "op")


def test_result_helpers() -> None:
    """Ensure result factories and retry classification."""
    ok = ConversionResult.ok(Path("o.pdf"), method="engine")
    timeout = ConversionResult.failed(FailureKind.TIMEOUT, "slow", method="engine")
    broken = ConversionResult.failed(
        FailureKind.ENGINE_CONVERSION_FAILED, "bad input", method="engine"
    )

    assert ok.success and ok.error is None and ok.failure is None
    assert not ok.retryable
    assert timeout.retryable
    assert not broken.retryable
    assert broken.output_path is None


def test_with_timing_keeps_existing_operation_id() -> None:
    """Only overwrite the correlation id when one is given."""
    result = ConversionResult.ok(Path("o.pdf"), method="engine", operation_id="op")

    assert result.with_timing(12).operation_id == "op"
    stamped = result.with_timing(15, "other")
    assert (stamped.elapsed_ms, stamped.operation_id) == (15, "other")
    assert result.elapsed_ms == 0
