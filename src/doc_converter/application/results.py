"""Application-layer result objects."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path

from doc_converter.types import RETRYABLE_FAILURES, FailureKind


@dataclass(frozen=True)
class ConversionResult:
    """Structured conversion outcome.

    ``output_path`` is meaningful only when ``success`` is true; ``error`` and
    ``failure`` only when it is false.
    """

    success: bool
    method: str
    output_path: Path | None = None
    error: str | None = None
    failure: FailureKind | None = None
    elapsed_ms: int = 0
    operation_id: str | None = None

    @classmethod
    def ok(
        cls,
        output_path: Path,
        *,
        method: str,
        elapsed_ms: int = 0,
        operation_id: str | None = None,
    ) -> ConversionResult:
        """Build a successful result."""
        return cls(
            success=True,
            method=method,
            output_path=output_path,
            elapsed_ms=elapsed_ms,
            operation_id=operation_id,
        )

    @classmethod
    def failed(
        cls,
        failure: FailureKind,
        error: str,
        *,
        method: str,
        elapsed_ms: int = 0,
        operation_id: str | None = None,
    ) -> ConversionResult:
        """Build a failed result tagged with ``failure``."""
        return cls(
            success=False,
            method=method,
            error=error,
            failure=failure,
            elapsed_ms=elapsed_ms,
            operation_id=operation_id,
        )

    @property
    def retryable(self) -> bool:
        """Whether retrying the same request may succeed."""
        return self.failure in RETRYABLE_FAILURES

    def with_timing(
        self, elapsed_ms: int, operation_id: str | None = None
    ) -> ConversionResult:
        """Return a copy stamped with elapsed time and correlation id."""
        return dataclasses.replace(
            self,
            elapsed_ms=elapsed_ms,
            operation_id=operation_id if operation_id is not None else self.operation_id,
        )
