"""Typed request objects shared across conversion use-cases."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from pathlib import Path

_OPERATION_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_operation_id() -> str:
    """Generate a correlation token usable as a directory name."""
    return uuid.uuid4().hex


def validate_operation_id(value: str) -> str:
    """Return ``value`` if it is a safe single path segment.

    Raises
    ------
    ValueError
        If the id contains separators, is empty, too long or ``.``/``..``.
    """
    if not _OPERATION_ID_RE.fullmatch(value) or value in {".", ".."}:
        raise ValueError(
            "operation_id must be 1-64 characters of [A-Za-z0-9._-] "
            f"and not '.' or '..': {value!r}"
        )
    return value


def normalize_format(value: str) -> str:
    """Lower-case a format name and drop a leading dot."""
    return value.strip().lower().lstrip(".")


@dataclass(frozen=True)
class ConversionRequest:
    """One engine conversion.

    Parameters
    ----------
    input_path : Path
        Source document.
    output_path : Path
        Where the caller wants the converted file.
    target_format : str
        Engine target, optionally with a filter (``"txt:Text"``).
    operation_id : str
        Correlation token; namespaces profile and staging directories.
    """

    input_path: Path
    output_path: Path
    target_format: str
    operation_id: str

    def __post_init__(self) -> None:
        validate_operation_id(self.operation_id)
        if not self.target_format.strip():
            raise ValueError("target_format cannot be empty")

    @property
    def target_extension(self) -> str:
        """File extension the engine gives its output."""
        return self.target_format.split(":", 1)[0].strip().lower()
