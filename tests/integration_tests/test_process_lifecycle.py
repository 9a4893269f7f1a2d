"""Integration tests for the engine process lifecycle against a fake engine."""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

import pytest

from doc_converter.application.options import ConversionRequest
from doc_converter.engine.process import HEADLESS_FLAGS, ProcessLifecycleManager
from doc_converter.engine.resolver import EngineExecutableResolver
from doc_converter.schemas import OrchestratorSettings
from doc_converter.types import FailureKind

from fake_engine import FakeEngine

pytestmark = pytest.mark.integration


def _manager(settings: OrchestratorSettings) -> ProcessLifecycleManager:
    return ProcessLifecycleManager(
        EngineExecutableResolver(settings.engine), settings.engine, settings.work_dir
    )


def _request(
    source: Path, output: Path, target: str = "pdf", operation_id: str = "op-1"
) -> ConversionRequest:
    return ConversionRequest(
        input_path=source,
        output_path=output,
        target_format=target,
        operation_id=operation_id,
    )


def _process_gone(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    return False


async def _wait_for_file(path: Path, deadline: float = 5.0) -> None:
    started = time.monotonic()
    while not path.exists():
        if time.monotonic() - started > deadline:
            raise AssertionError(f"{path} was never written")
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_successful_conversion_moves_output_and_cleans_up(
    fake_engine: FakeEngine,
) -> None:
    """Ensure output lands at the requested path and per-op dirs are removed."""
    settings = fake_engine.settings()
    manager = _manager(settings)
    source = fake_engine.document("report.docx")
    target = fake_engine.root / "out" / "nested" / "final.pdf"

    result = await manager.convert(_request(source, target))

    assert result.success, result.error
    assert result.method == "engine"
    assert result.output_path == target
    assert target.read_text().startswith("converted report.docx")
    assert result.operation_id == "op-1"
    assert not manager.staging_dir("op-1").exists()
    assert not manager.profile_dir("op-1").exists()


@pytest.mark.asyncio
async def test_engine_receives_headless_flags_and_private_profile(
    fake_engine: FakeEngine,
) -> None:
    """Ensure the argument vector isolates each invocation."""
    settings = fake_engine.settings()
    manager = _manager(settings)
    source = fake_engine.document("letter.doc")

    result = await manager.convert(
        _request(source, fake_engine.root / "letter.txt", target="txt:Text", operation_id="op-txt")
    )

    assert result.success, result.error
    (argv,) = fake_engine.calls()
    for flag in HEADLESS_FLAGS:
        assert flag in argv
    profile = [arg for arg in argv if arg.startswith("-env:UserInstallation=file://")]
    assert len(profile) == 1
    assert profile[0].endswith("/profiles/op-txt")
    assert argv[argv.index("--convert-to") + 1] == "txt:Text"
    assert argv[argv.index("--outdir") + 1] == str(manager.staging_dir("op-txt").absolute())
    assert argv[-1] == str(source.absolute())


@pytest.mark.asyncio
async def test_keep_profile_dirs_retains_profile(fake_engine: FakeEngine) -> None:
    """Ensure profile retention can be enabled for debugging."""
    settings = fake_engine.settings(keep_profile_dirs=True)
    manager = _manager(settings)
    source = fake_engine.document("a.docx")

    result = await manager.convert(_request(source, fake_engine.root / "a.pdf"))

    assert result.success
    assert manager.profile_dir("op-1").is_dir()
    assert not manager.staging_dir("op-1").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("mode", "failure", "fragment"),
    [
        ("noop", FailureKind.OUTPUT_NOT_PRODUCED, "did not create report.pdf"),
        ("fail", FailureKind.ENGINE_CONVERSION_FAILED, "source file could not be loaded"),
        ("stdout-fail", FailureKind.ENGINE_CONVERSION_FAILED, "general input/output error"),
        ("missing-lib", FailureKind.MISSING_RUNTIME_DEPENDENCY, "exit code 127"),
        ("crash", FailureKind.ENGINE_CONVERSION_FAILED, "SIGKILL"),
    ],
)
async def test_engine_failures_are_tagged(
    fake_engine: FakeEngine, mode: str, failure: FailureKind, fragment: str
) -> None:
    """Ensure each engine failure mode maps to its failure kind."""
    manager = _manager(fake_engine.settings())
    source = fake_engine.document("report.docx", mode=mode)
    target = fake_engine.root / "report.pdf"

    result = await manager.convert(_request(source, target))

    assert not result.success
    assert result.failure is failure
    assert fragment in (result.error or "")
    assert not target.exists()
    assert not manager.staging_dir("op-1").exists()


@pytest.mark.asyncio
async def test_timeout_kills_engine_within_bound(
    fake_engine: FakeEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Ensure a hung engine is killed shortly after the deadline."""
    pid_file = fake_engine.root / "engine.pid"
    monkeypatch.setenv("FAKE_ENGINE_PID_FILE", str(pid_file))
    manager = _manager(fake_engine.settings(timeout_seconds=1.0))
    source = fake_engine.document("stuck.docx", mode="hang")

    started = time.monotonic()
    result = await manager.convert(_request(source, fake_engine.root / "stuck.pdf"))
    elapsed = time.monotonic() - started

    assert result.failure is FailureKind.TIMEOUT
    assert result.retryable
    assert "timed out after 1 seconds" in (result.error or "")
    assert elapsed < 1.0 + 5.0
    assert _process_gone(int(pid_file.read_text()))


@pytest.mark.asyncio
async def test_cancellation_kills_engine(
    fake_engine: FakeEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Ensure cancelling the caller does not leave the engine running."""
    pid_file = fake_engine.root / "engine.pid"
    monkeypatch.setenv("FAKE_ENGINE_PID_FILE", str(pid_file))
    manager = _manager(fake_engine.settings(timeout_seconds=30.0))
    source = fake_engine.document("stuck.docx", mode="hang")

    task = asyncio.create_task(manager.convert(_request(source, fake_engine.root / "x.pdf")))
    await _wait_for_file(pid_file)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert _process_gone(int(pid_file.read_text()))
    assert not manager.staging_dir("op-1").exists()


@pytest.mark.asyncio
async def test_missing_input_does_not_spawn(fake_engine: FakeEngine) -> None:
    """Ensure the engine is never started for a missing or empty input."""
    manager = _manager(fake_engine.settings())
    empty = fake_engine.root / "empty.docx"
    empty.touch()

    missing = await manager.convert(_request(fake_engine.root / "nope.docx", fake_engine.root / "a.pdf"))
    blank = await manager.convert(_request(empty, fake_engine.root / "b.pdf"))

    assert missing.failure is FailureKind.INPUT_MISSING
    assert blank.failure is FailureKind.INPUT_MISSING
    assert fake_engine.calls() == []


@pytest.mark.asyncio
async def test_engine_not_found(fake_engine: FakeEngine) -> None:
    """Ensure a missing engine reports where it was expected."""
    settings = fake_engine.settings(app_dir=fake_engine.root / "elsewhere")
    manager = _manager(settings)
    source = fake_engine.document("a.docx")

    result = await manager.convert(_request(source, fake_engine.root / "a.pdf"))

    assert result.failure is FailureKind.ENGINE_NOT_FOUND
    assert "elsewhere" in (result.error or "")
    assert fake_engine.calls() == []


@pytest.mark.asyncio
async def test_untrusted_configured_engine_is_rejected(fake_engine: FakeEngine) -> None:
    """Ensure an existing engine outside trusted roots is never executed."""
    rogue_dir = fake_engine.root / "downloads" / "program"
    rogue_dir.mkdir(parents=True)
    rogue = rogue_dir / "soffice"
    rogue.write_bytes(fake_engine.executable.read_bytes())
    rogue.chmod(0o755)
    settings = fake_engine.settings(
        app_dir=fake_engine.root / "elsewhere", executable_path=rogue
    )
    manager = _manager(settings)
    source = fake_engine.document("a.docx")

    result = await manager.convert(_request(source, fake_engine.root / "a.pdf"))

    assert result.failure is FailureKind.ENGINE_VALIDATION_FAILED
    assert "outside" in (result.error or "")
    assert fake_engine.calls() == []


@pytest.mark.asyncio
async def test_bundled_symlink_to_untrusted_engine_is_not_executed(
    fake_engine: FakeEngine,
) -> None:
    """Ensure a bundled path that resolves outside trusted roots never runs."""
    evil = fake_engine.root / "evil" / "program" / "soffice"
    evil.parent.mkdir(parents=True)
    fake_engine.executable.rename(evil)
    fake_engine.executable.symlink_to(evil)
    manager = _manager(fake_engine.settings())
    source = fake_engine.document("a.docx")
    target = fake_engine.root / "a.pdf"

    result = await manager.convert(_request(source, target))

    assert result.failure is FailureKind.ENGINE_VALIDATION_FAILED
    assert "outside" in (result.error or "")
    assert not target.exists()
    assert fake_engine.calls() == []


@pytest.mark.asyncio
async def test_non_executable_engine_fails_to_spawn(fake_engine: FakeEngine) -> None:
    """Ensure an engine that cannot be executed is reported as a spawn failure."""
    fake_engine.executable.chmod(0o644)
    manager = _manager(fake_engine.settings())
    source = fake_engine.document("a.docx")

    result = await manager.convert(_request(source, fake_engine.root / "a.pdf"))

    assert result.failure is FailureKind.SPAWN_FAILED
    assert "Failed to start engine process" in (result.error or "")
    assert fake_engine.calls() == []
    assert not manager.staging_dir("op-1").exists()


@pytest.mark.asyncio
async def test_output_parent_that_is_a_file_fails_relocation(
    fake_engine: FakeEngine,
) -> None:
    """Ensure an unusable destination is reported, not silently dropped."""
    blocker = fake_engine.root / "blocker"
    blocker.write_text("not a directory")
    manager = _manager(fake_engine.settings())
    source = fake_engine.document("report.docx")

    result = await manager.convert(_request(source, blocker / "report.pdf"))

    assert result.failure is FailureKind.OUTPUT_RELOCATION_FAILED
    assert "Failed to move report.pdf" in (result.error or "")
    assert len(fake_engine.calls()) == 1
    assert not manager.staging_dir("op-1").exists()


@pytest.mark.asyncio
async def test_output_path_that_is_a_directory_fails_relocation(
    fake_engine: FakeEngine,
) -> None:
    """Ensure engine output is never moved into an existing directory."""
    destination = fake_engine.root / "outdir"
    destination.mkdir()
    manager = _manager(fake_engine.settings())
    source = fake_engine.document("report.docx")

    result = await manager.convert(_request(source, destination))

    assert result.failure is FailureKind.OUTPUT_RELOCATION_FAILED
    assert "target is a directory" in (result.error or "")
    assert list(destination.iterdir()) == []
