"""Conversion dispatch: map a format pair to an engine or codec handler."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from doc_converter.application.options import (
    ConversionRequest,
    new_operation_id,
    normalize_format,
    validate_operation_id,
)
from doc_converter.application.ports import Codec, EngineRunner
from doc_converter.application.results import ConversionResult
from doc_converter.dispatch.registry import conversion_key
from doc_converter.engine.admission import AdmissionController
from doc_converter.types import FailureKind

logger = logging.getLogger(__name__)

DISPATCH_METHOD = "dispatcher"

# conversion key -> engine --convert-to argument
ENGINE_CONVERSIONS: Mapping[str, str] = MappingProxyType(
    {
        "doc-pdf": "pdf",
        "docx-pdf": "pdf",
        "odt-pdf": "pdf",
        "rtf-pdf": "pdf",
        "doc-txt": "txt:Text",
        "docx-txt": "txt:Text",
        "doc-html": "html",
        "doc-htm": "html",
        "docx-html": "html",
        "doc-docx": "docx",
        "docx-doc": "doc",
        "pdf-doc": "doc",
        "pdf-docx": "docx",
        "txt-pdf": "pdf",
        "txt-docx": "docx",
        "txt-doc": "doc",
        "html-pdf": "pdf",
        "htm-pdf": "pdf",
        "xml-pdf": "pdf",
        "xlsx-pdf": "pdf",
        "ods-pdf": "pdf",
        "csv-pdf": "pdf",
        "xlsx-csv": "csv",
        "csv-xlsx": "xlsx",
        "pptx-pdf": "pdf",
        "ppt-pdf": "pdf",
        "odp-pdf": "pdf",
    }
)


class Handler(Protocol):
    """Callable that performs one conversion."""

    method: str

    async def __call__(
        self, input_path: Path, output_path: Path, operation_id: str
    ) -> ConversionResult: ...


class EngineHandler:
    """Run an engine conversion while holding an admission permit."""

    method = "engine"

    def __init__(
        self,
        target_format: str,
        runner: EngineRunner,
        admission: AdmissionController,
        acquire_timeout: float | None = None,
    ) -> None:
        self.target_format = target_format
        self._runner = runner
        self._admission = admission
        self._acquire_timeout = acquire_timeout

    async def __call__(
        self, input_path: Path, output_path: Path, operation_id: str
    ) -> ConversionResult:
        async with self._admission.slot(operation_id, self._acquire_timeout) as permit:
            if permit is None:
                return ConversionResult.failed(
                    FailureKind.ADMISSION_TIMEOUT,
                    f"No conversion slot became free within {self._acquire_timeout:g} seconds",
                    method=self.method,
                )
            request = ConversionRequest(
                input_path=input_path,
                output_path=output_path,
                target_format=self.target_format,
                operation_id=operation_id,
            )
            return await self._runner.convert(request)


class CodecHandler:
    """Run a blocking in-process codec in a worker thread."""

    def __init__(self, codec: Codec) -> None:
        self._codec = codec
        self.method = getattr(codec, "method", codec.name)

    async def __call__(
        self, input_path: Path, output_path: Path, operation_id: str
    ) -> ConversionResult:
        del operation_id
        return await asyncio.to_thread(self._codec.convert, input_path, output_path)


class ConversionDispatcher:
    """Route ``(input_format, output_format)`` pairs to handlers.

    The handler table is fixed at construction. Lookups are pure: an unknown
    pair never touches a handler or the admission controller.
    """

    def __init__(self, handlers: Mapping[str, Handler]) -> None:
        self._handlers: Mapping[str, Handler] = MappingProxyType(dict(handlers))

    def handler_for(self, input_format: str, output_format: str) -> Handler | None:
        return self._handlers.get(conversion_key(input_format, output_format))

    def is_supported(self, input_format: str, output_format: str) -> bool:
        """Pre-flight check with no side effects."""
        return self.handler_for(input_format, output_format) is not None

    def supported_conversions(self) -> list[str]:
        return sorted(self._handlers)

    def supported_targets(self, input_format: str) -> list[str]:
        """Return targets reachable from ``input_format``."""
        prefix = normalize_format(input_format) + "-"
        return sorted(key[len(prefix):] for key in self._handlers if key.startswith(prefix))

    async def convert(
        self,
        input_format: str,
        output_format: str,
        input_path: Path | str,
        output_path: Path | str,
        *,
        operation_id: str | None = None,
    ) -> ConversionResult:
        """Convert ``input_path`` into ``output_path``.

        Handler exceptions become ``HandlerFailed`` results. Task cancellation
        propagates; engine handlers still release their permit and kill their
        process on the way out.

        Raises
        ------
        ValueError
            If ``operation_id`` is not a safe path segment.
        """
        started = time.monotonic()
        op_id = validate_operation_id(operation_id) if operation_id else new_operation_id()
        key = conversion_key(input_format, output_format)
        handler = self._handlers.get(key)
        if handler is None:
            logger.warning("unsupported conversion %s requested (%s)", key, op_id)
            return ConversionResult.failed(
                FailureKind.UNSUPPORTED_CONVERSION,
                f"Conversion from {normalize_format(input_format)} to "
                f"{normalize_format(output_format)} is not supported",
                method=DISPATCH_METHOD,
                operation_id=op_id,
            )

        try:
            result = await handler(Path(input_path), Path(output_path), op_id)
        except Exception as exc:
            logger.exception("conversion handler for %s crashed (%s)", key, op_id)
            result = ConversionResult.failed(
                FailureKind.HANDLER_FAILED,
                f"Conversion failed: {exc}",
                method=handler.method,
            )

        if result.success and (result.output_path is None or not Path(result.output_path).is_file()):
            result = ConversionResult.failed(
                FailureKind.OUTPUT_NOT_PRODUCED,
                f"Handler reported success but {Path(output_path).name} does not exist",
                method=result.method,
            )

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if result.success:
            logger.info("conversion %s completed in %dms (%s)", key, elapsed_ms, op_id)
        else:
            logger.error(
                "conversion %s failed (%s, %s): %s", key, result.failure, op_id, result.error
            )
        return result.with_timing(elapsed_ms, op_id)


def build_handlers(
    runner: EngineRunner,
    admission: AdmissionController,
    codecs: Mapping[str, Codec] | None = None,
    *,
    acquire_timeout: float | None = None,
) -> dict[str, Handler]:
    """Build the dispatch table; codecs take precedence over engine routes."""
    handlers: dict[str, Handler] = {
        key: EngineHandler(target, runner, admission, acquire_timeout)
        for key, target in ENGINE_CONVERSIONS.items()
    }
    handler_cache: dict[int, CodecHandler] = {}
    for key, codec in (codecs or {}).items():
        handlers[key] = handler_cache.setdefault(id(codec), CodecHandler(codec))
    return handlers
