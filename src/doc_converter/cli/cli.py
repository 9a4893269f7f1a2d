#!/usr/bin/env python3
"""
doc_converter.cli.cli

Typer-based CLI for headless document conversion.

Engine-backed conversions need an office engine install (bundled next to the
application, configured with ``--engine-path``/``DOCCONV_ENGINE_PATH``, or a
system install). In-process codecs need the ``codecs`` extra.

Examples
--------
Convert one document:

    docconv convert report.docx report.pdf

Convert a batch, at most two engine processes at a time:

    docconv batch out/ a.docx b.xlsx c.pptx --to pdf --max-concurrency 2
"""

from __future__ import annotations

import asyncio
import logging
import sys
import traceback
from collections import Counter
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import typer

from doc_converter.application.results import ConversionResult
from doc_converter.errors import ConversionError
from doc_converter.schemas import OrchestratorSettings
from doc_converter.types import FailureKind

app = typer.Typer(
    name="docconv",
    help="Convert office documents with a headless engine or in-process codecs.",
    no_args_is_help=True,
)

# Failure kind -> process exit code; anything unlisted exits with 1.
FAILURE_EXIT_CODES: Mapping[FailureKind, int] = {
    FailureKind.INPUT_MISSING: 3,
    FailureKind.UNSUPPORTED_CONVERSION: 4,
    FailureKind.ENGINE_NOT_FOUND: 5,
    FailureKind.ENGINE_VALIDATION_FAILED: 5,
    FailureKind.MISSING_RUNTIME_DEPENDENCY: 5,
    FailureKind.TIMEOUT: 6,
    FailureKind.ADMISSION_TIMEOUT: 6,
}
CODEC_DISTRIBUTIONS = ("pypdf", "Pillow")


# -----------------------------
# Utilities
# -----------------------------
def _print_conversion_error(exc: Exception, debug: bool) -> int:
    """Print a user-friendly error and return the process exit code."""
    typer.echo(f"[red]✗ {type(exc).__name__}:[/red] {exc}", err=True)
    if debug:
        typer.echo("\n[dim]Traceback:[/dim]", err=True)
        typer.echo("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)), err=True)
    code = getattr(exc, "exit_code", None)
    if isinstance(code, int) and code > 0:
        return code
    return 1


def _exit_code(result: ConversionResult) -> int:
    if result.success:
        return 0
    return FAILURE_EXIT_CODES.get(result.failure, 1) if result.failure else 1


def _print_result(result: ConversionResult, label: str) -> None:
    if result.success:
        typer.echo(
            f"[green]✓ Saved:[/green] {result.output_path} "
            f"({result.method}, {result.elapsed_ms}ms)"
        )
    else:
        retry = " (retryable)" if result.retryable else ""
        typer.echo(f"[red]✗ {label}: {result.failure}{retry}:[/red] {result.error}", err=True)


def _load_settings(ctx: typer.Context, overrides: Mapping[str, Any] | None = None) -> OrchestratorSettings:
    """Load settings from ``--config``, the environment and ``overrides``."""
    from doc_converter.config import load_settings

    return load_settings(ctx.obj.get("config"), overrides=overrides)


def _engine_overrides(
    engine_path: Path | None,
    timeout: float | None,
    codec_modules: list[str] | None,
) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    engine: dict[str, Any] = {}
    if engine_path is not None:
        engine["executable_path"] = engine_path
    if timeout is not None:
        engine["timeout_seconds"] = timeout
    if engine:
        overrides["engine"] = engine
    if codec_modules:
        overrides["codec_modules"] = codec_modules
    return overrides


# -----------------------------
# Global options
# -----------------------------
@app.callback()
def _main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Show full tracebacks on error."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, ...)."),
    config: Path | None = typer.Option(
        None,
        "--config",
        exists=True,
        dir_okay=False,
        readable=True,
        help="TOML settings file.",
    ),
) -> None:
    """Initialize shared CLI state.

    Parameters
    ----------
    ctx : typer.Context
        Typer context object used to store shared state.
    debug : bool, default=False
        Whether to enable debug error output.
    log_level : str, default="WARNING"
        Root logging level.
    config : Path | None
        Optional settings file.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{log_level}'.", param_hint="--log-level")
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"debug": debug, "config": config}


# -----------------------------
# Commands
# -----------------------------
@app.command("convert")
def convert_cmd(
    ctx: typer.Context,
    input_path: Path = typer.Argument(..., help="Document to convert."),
    output_path: Path = typer.Argument(..., help="Where to write the converted file."),
    input_format: str | None = typer.Option(
        None, "--from", help="Source format; defaults to the input suffix."
    ),
    output_format: str | None = typer.Option(
        None, "--to", help="Target format; defaults to the output suffix."
    ),
    operation_id: str | None = typer.Option(
        None, "--operation-id", help="Correlation id ([A-Za-z0-9._-], max 64 chars)."
    ),
    engine_path: Path | None = typer.Option(
        None, "--engine-path", help="Engine executable to prefer over discovery."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", min=0.001, help="Engine timeout in seconds."
    ),
    codec_module: list[str] | None = typer.Option(
        None,
        "--codec-module",
        help="Codec module import path or file path (repeatable).",
    ),
) -> None:
    """Convert a single document.

    Notes
    -----
    - Exit codes: 3 input missing, 4 unsupported pair, 5 engine unavailable,
      6 timed out, 1 any other conversion failure, 2 invalid settings.
    """
    debug: bool = bool(ctx.obj.get("debug", False))

    try:
        from doc_converter.application.use_cases import convert_file

        settings = _load_settings(ctx, _engine_overrides(engine_path, timeout, codec_module))
        result = asyncio.run(
            convert_file(
                input_path=input_path,
                output_path=output_path,
                settings=settings,
                input_format=input_format,
                output_format=output_format,
                operation_id=operation_id,
            )
        )
    except ValueError as exc:
        _print_conversion_error(exc, debug)
        raise typer.Exit(code=2)
    except ConversionError as exc:
        raise typer.Exit(code=_print_conversion_error(exc, debug))
    except Exception as exc:
        # Unexpected crash: still show a clean message; debug prints traceback.
        raise typer.Exit(code=_print_conversion_error(exc, debug))

    _print_result(result, input_path.name)
    code = _exit_code(result)
    if code:
        raise typer.Exit(code=code)


@app.command("batch")
def batch_cmd(
    ctx: typer.Context,
    output_dir: Path = typer.Argument(..., file_okay=False, help="Directory for converted files."),
    inputs: list[Path] = typer.Argument(..., help="Documents to convert."),
    output_format: str = typer.Option(..., "--to", help="Target format for every input."),
    max_concurrency: int | None = typer.Option(
        None, "--max-concurrency", min=1, help="Engine processes allowed at once."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", min=0.001, help="Engine timeout in seconds."
    ),
) -> None:
    """Convert several documents concurrently through one dispatcher.

    Inputs sharing a file stem are rejected (exit code 2) because their
    outputs would overwrite each other in ``output_dir``.
    """
    debug: bool = bool(ctx.obj.get("debug", False))

    stems = Counter(path.stem.lower() for path in inputs)
    duplicates = sorted(stem for stem, count in stems.items() if count > 1)
    if duplicates:
        typer.echo(
            f"[red]✗ Duplicate input names:[/red] {', '.join(duplicates)} "
            f"would overwrite each other in {output_dir}",
            err=True,
        )
        raise typer.Exit(code=2)

    overrides = _engine_overrides(None, timeout, None)
    if max_concurrency is not None:
        overrides["concurrency"] = {"max_concurrency": max_concurrency}

    async def _run(settings: OrchestratorSettings) -> list[ConversionResult]:
        from doc_converter.application.use_cases import build_dispatcher

        dispatcher = build_dispatcher(settings)
        target = output_format.strip().lower().lstrip(".")
        return await asyncio.gather(
            *(
                dispatcher.convert(
                    path.suffix,
                    target,
                    path,
                    output_dir / f"{path.stem}.{target}",
                )
                for path in inputs
            )
        )

    try:
        settings = _load_settings(ctx, overrides)
        results = asyncio.run(_run(settings))
    except ConversionError as exc:
        raise typer.Exit(code=_print_conversion_error(exc, debug))
    except Exception as exc:
        raise typer.Exit(code=_print_conversion_error(exc, debug))

    for path, result in zip(inputs, results, strict=True):
        _print_result(result, path.name)
    failed = sum(1 for result in results if not result.success)
    typer.echo(f"{len(results) - failed}/{len(results)} converted")
    if failed:
        raise typer.Exit(code=1)


@app.command("formats")
def formats_cmd(
    ctx: typer.Context,
    input_format: str | None = typer.Argument(None, help="Only list targets for this source."),
) -> None:
    """List supported conversions without starting the engine."""
    debug: bool = bool(ctx.obj.get("debug", False))

    try:
        from doc_converter.application.use_cases import build_dispatcher

        dispatcher = build_dispatcher(_load_settings(ctx))
    except ConversionError as exc:
        raise typer.Exit(code=_print_conversion_error(exc, debug))

    if input_format is None:
        for key in dispatcher.supported_conversions():
            typer.echo(key)
        return

    targets = dispatcher.supported_targets(input_format)
    if not targets:
        typer.echo(f"No conversions from '{input_format}'.", err=True)
        raise typer.Exit(code=FAILURE_EXIT_CODES[FailureKind.UNSUPPORTED_CONVERSION])
    typer.echo(", ".join(targets))


@app.command("doctor")
def doctor_cmd(ctx: typer.Context) -> None:
    """Print the resolved engine, rejected candidates and codec dependencies."""
    import importlib.metadata as metadata

    from doc_converter.dispatch.registry import create_default_registry
    from doc_converter.engine.resolver import EngineExecutableResolver

    debug: bool = bool(ctx.obj.get("debug", False))
    try:
        settings = _load_settings(ctx)
    except ConversionError as exc:
        raise typer.Exit(code=_print_conversion_error(exc, debug))

    typer.echo(f"Python: {sys.version.split()[0]}")
    resolution = EngineExecutableResolver(settings.engine).resolve()
    if resolution.found:
        status = "found"
    elif resolution.rejections:
        status = "rejected"
    else:
        status = "not found"
    typer.echo(f"engine: {resolution.candidate.path} ({resolution.candidate.strategy}, {status})")
    for rejection in resolution.rejections:
        typer.echo(
            f"[yellow]rejected:[/yellow] {rejection.candidate.path} "
            f"({rejection.candidate.strategy}): {rejection.reason}"
        )
    typer.echo(f"max concurrency: {settings.concurrency.max_concurrency}")
    typer.echo(f"work dir: {settings.work_dir}")

    for distribution in CODEC_DISTRIBUTIONS:
        try:
            typer.echo(f"{distribution}: {metadata.version(distribution)}")
        except metadata.PackageNotFoundError:
            typer.echo(f"{distribution}: <not installed>")

    try:
        registry = create_default_registry(settings.codec_modules)
        typer.echo(f"codecs: {', '.join(registry.names())}")
    except ConversionError as exc:
        typer.echo(f"codecs: <unavailable> ({exc})")

    if not resolution.found:
        raise typer.Exit(code=FAILURE_EXIT_CODES[FailureKind.ENGINE_NOT_FOUND])


if __name__ == "__main__":
    app()
