"""Application-layer use-cases, requests and results."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from doc_converter.application.options import ConversionRequest, new_operation_id
from doc_converter.application.results import ConversionResult

if TYPE_CHECKING:
    from doc_converter.dispatch.dispatcher import ConversionDispatcher
    from doc_converter.dispatch.registry import CodecRegistry
    from doc_converter.engine.admission import AdmissionController
    from doc_converter.schemas import OrchestratorSettings


def build_dispatcher(
    settings: OrchestratorSettings,
    registry: CodecRegistry | None = None,
    *,
    admission: AdmissionController | None = None,
) -> ConversionDispatcher:
    """Build a dispatcher via lazy use-case import."""
    from doc_converter.application.use_cases import build_dispatcher as _impl

    return _impl(settings, registry, admission=admission)


async def convert_file(
    *,
    input_path: Path,
    output_path: Path,
    settings: OrchestratorSettings,
    input_format: str | None = None,
    output_format: str | None = None,
    operation_id: str | None = None,
    dispatcher: ConversionDispatcher | None = None,
) -> ConversionResult:
    """Convert one file via lazy use-case import."""
    from doc_converter.application.use_cases import convert_file as _impl

    return await _impl(
        input_path=input_path,
        output_path=output_path,
        settings=settings,
        input_format=input_format,
        output_format=output_format,
        operation_id=operation_id,
        dispatcher=dispatcher,
    )


__all__ = [
    "ConversionRequest",
    "ConversionResult",
    "build_dispatcher",
    "convert_file",
    "new_operation_id",
]
