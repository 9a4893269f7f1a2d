"""Top-level API for headless document conversion."""

from __future__ import annotations

import asyncio
from pathlib import Path

from doc_converter.application.results import ConversionResult
from doc_converter.types import FailureKind

__version__ = "0.1.0"


def convert_document(
    input_path: Path | str,
    output_path: Path | str,
    *,
    input_format: str | None = None,
    output_format: str | None = None,
    operation_id: str | None = None,
    config_path: Path | None = None,
) -> ConversionResult:
    """Convert a document and block until the result is available.

    Parameters
    ----------
    input_path : Path | str
        Source document.
    output_path : Path | str
        Destination path for the converted file.
    input_format : str, optional
        Source format; inferred from ``input_path`` when omitted.
    output_format : str, optional
        Target format; inferred from ``output_path`` when omitted.
    operation_id : str, optional
        Correlation token; generated when omitted.
    config_path : Path, optional
        TOML settings file. ``DOCCONV_*`` environment variables apply on top.

    Returns
    -------
    ConversionResult
        Tagged outcome. Conversion failures are not raised.

    Raises
    ------
    ConfigError
        If settings are invalid.
    ValueError
        If formats cannot be inferred or ``operation_id`` is unsafe.

    Notes
    -----
    Must not be called from a running event loop; await
    ``doc_converter.application.convert_file`` there instead.
    """
    from .application.use_cases import convert_file
    from .config import load_settings

    settings = load_settings(config_path)
    return asyncio.run(
        convert_file(
            input_path=Path(input_path),
            output_path=Path(output_path),
            settings=settings,
            input_format=input_format,
            output_format=output_format,
            operation_id=operation_id,
        )
    )


__all__ = [
    "ConversionResult",
    "FailureKind",
    "convert_document",
]
