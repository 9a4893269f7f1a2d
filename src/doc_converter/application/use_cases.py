"""Application use-cases wiring settings into a conversion dispatcher."""

from __future__ import annotations

from pathlib import Path

from doc_converter.application.ports import EngineRunner
from doc_converter.application.results import ConversionResult
from doc_converter.dispatch.dispatcher import ConversionDispatcher, build_handlers
from doc_converter.dispatch.registry import CodecRegistry, create_default_registry
from doc_converter.engine.admission import AdmissionController
from doc_converter.engine.process import ProcessLifecycleManager
from doc_converter.engine.resolver import EngineExecutableResolver
from doc_converter.schemas import OrchestratorSettings


def build_dispatcher(
    settings: OrchestratorSettings,
    registry: CodecRegistry | None = None,
    *,
    admission: AdmissionController | None = None,
    runner: EngineRunner | None = None,
) -> ConversionDispatcher:
    """Wire resolver, admission controller, lifecycle manager and codecs.

    Parameters
    ----------
    settings : OrchestratorSettings
        Validated settings.
    registry : CodecRegistry | None, optional
        Codec registry; defaults to built-ins plus ``settings.codec_modules``.
    admission : AdmissionController | None, optional
        Shared permit pool. Pass one controller to every dispatcher that
        must respect the same ceiling.
    runner : EngineRunner | None, optional
        Engine runner override.

    Returns
    -------
    ConversionDispatcher
        Dispatcher with the engine table and codec routes.
    """
    if registry is None:
        registry = create_default_registry(settings.codec_modules)
    if admission is None:
        admission = AdmissionController(settings.concurrency.max_concurrency)
    if runner is None:
        runner = ProcessLifecycleManager(
            EngineExecutableResolver(settings.engine),
            settings.engine,
            settings.work_dir,
        )
    handlers = build_handlers(
        runner,
        admission,
        dict(registry.items()),
        acquire_timeout=settings.concurrency.acquire_timeout_seconds,
    )
    return ConversionDispatcher(handlers)


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
    """Use-case: convert one file, inferring formats from suffixes."""
    source = input_format or input_path.suffix
    target = output_format or output_path.suffix
    if not source.strip(". ") or not target.strip(". "):
        raise ValueError(
            "Cannot infer formats from file suffixes; pass input_format and output_format."
        )
    dispatcher = dispatcher or build_dispatcher(settings)
    return await dispatcher.convert(
        source,
        target,
        input_path,
        output_path,
        operation_id=operation_id,
    )
