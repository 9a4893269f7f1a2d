"""Engine process lifecycle: spawn, bound, classify and reconcile."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
import time
from pathlib import Path
from typing import Any

from doc_converter.application.options import ConversionRequest
from doc_converter.application.ports import ExecutableResolver
from doc_converter.application.results import ConversionResult
from doc_converter.schemas import EngineSettings
from doc_converter.types import FailureKind, InvocationState

logger = logging.getLogger(__name__)

METHOD = "engine"
HEADLESS_FLAGS = (
    "--headless",
    "--invisible",
    "--nologo",
    "--norestore",
    "--nolockcheck",
    "--nodefault",
)
KILL_GRACE_SECONDS = 5.0
MAX_DIAGNOSTIC_CHARS = 4000
_POSIX = os.name == "posix"


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace").strip()


def _describe_exit(code: int) -> str:
    if code < 0:
        try:
            name = signal.Signals(-code).name
        except ValueError:
            name = str(-code)
        return f"engine terminated by signal {name}"
    return f"engine exited with code {code}"


def _listing(directory: Path) -> str:
    try:
        return ", ".join(sorted(p.name for p in directory.iterdir())) or "<empty>"
    except OSError:
        return "<unreadable>"


class _Invocation:
    """Tracks one invocation's state for logging and timing."""

    def __init__(self, request: ConversionRequest) -> None:
        self.request = request
        self.state = InvocationState.NOT_STARTED
        self.started = time.monotonic()

    def advance(self, state: InvocationState) -> None:
        logger.debug(
            "operation %s: %s -> %s", self.request.operation_id, self.state, state
        )
        self.state = state

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def fail(self, failure: FailureKind, error: str) -> ConversionResult:
        # A missing runtime dependency is a deployment defect, not a bad input.
        level = (
            logging.CRITICAL
            if failure is FailureKind.MISSING_RUNTIME_DEPENDENCY
            else logging.ERROR
        )
        logger.log(
            level, "operation %s failed (%s): %s", self.request.operation_id, failure, error
        )
        return ConversionResult.failed(
            failure,
            error,
            method=METHOD,
            elapsed_ms=self.elapsed_ms,
            operation_id=self.request.operation_id,
        )


class ProcessLifecycleManager:
    """Run one engine process per conversion request.

    Each invocation gets a private profile directory and a private staging
    output directory under ``work_dir``, keyed by the request's
    ``operation_id``. The process is always reaped before ``convert`` returns.

    Parameters
    ----------
    resolver : ExecutableResolver
        Supplies the validated engine executable.
    settings : EngineSettings
        Timeout, exit-code sentinels and profile retention.
    work_dir : Path
        Root of per-operation ``profiles/`` and ``output/`` directories.
    """

    def __init__(
        self,
        resolver: ExecutableResolver,
        settings: EngineSettings,
        work_dir: Path,
    ) -> None:
        self._resolver = resolver
        self._settings = settings
        self._work_dir = work_dir

    def profile_dir(self, operation_id: str) -> Path:
        return self._work_dir / "profiles" / operation_id

    def staging_dir(self, operation_id: str) -> Path:
        return self._work_dir / "output" / operation_id

    def expected_output_path(self, request: ConversionRequest) -> Path:
        """Where the engine will write: ``<stem>.<target extension>``."""
        return (
            self.staging_dir(request.operation_id)
            / f"{request.input_path.stem}.{request.target_extension}"
        )

    def build_command(
        self,
        executable: Path,
        request: ConversionRequest,
        profile_dir: Path | None,
    ) -> list[str]:
        """Build the engine argument vector."""
        argv = [str(executable), *HEADLESS_FLAGS]
        if profile_dir is not None:
            argv.append(f"-env:UserInstallation={profile_dir.absolute().as_uri()}")
        argv += [
            "--convert-to",
            request.target_format,
            "--outdir",
            str(self.staging_dir(request.operation_id).absolute()),
            str(request.input_path.absolute()),
        ]
        return argv

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        """Convert ``request`` with the engine and return a tagged result."""
        invocation = _Invocation(request)
        try:
            return await self._convert(invocation)
        finally:
            self._cleanup(request.operation_id)

    async def _convert(self, invocation: _Invocation) -> ConversionResult:
        request = invocation.request

        invocation.advance(InvocationState.RESOLVING)
        resolution = self._resolver.resolve()
        if not resolution.found:
            if resolution.rejections:
                reasons = "; ".join(
                    f"{r.candidate.path} ({r.candidate.strategy}): {r.reason}"
                    for r in resolution.rejections
                )
                return invocation.fail(
                    FailureKind.ENGINE_VALIDATION_FAILED,
                    f"No trusted engine executable: {reasons}",
                )
            return invocation.fail(
                FailureKind.ENGINE_NOT_FOUND,
                f"Engine executable not found at {resolution.candidate.path}",
            )
        executable = resolution.candidate.path

        try:
            size = request.input_path.stat().st_size if request.input_path.is_file() else 0
        except OSError:
            size = 0
        if size <= 0:
            return invocation.fail(
                FailureKind.INPUT_MISSING,
                f"Input file is missing or empty: {request.input_path.name}",
            )

        profile_dir: Path | None = self.profile_dir(request.operation_id)
        try:
            profile_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning(
                "could not create profile directory for %s, using engine default: %s",
                request.operation_id,
                exc,
            )
            profile_dir = None

        staging_dir = self.staging_dir(request.operation_id)
        try:
            staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            return invocation.fail(
                FailureKind.SPAWN_FAILED, f"Cannot create output directory: {exc}"
            )

        argv = self.build_command(executable, request, profile_dir)
        logger.info(
            "executing engine conversion %s: %s -> %s",
            request.operation_id,
            request.input_path.name,
            request.target_format,
        )
        logger.debug("engine command: %s", argv)

        spawn_kwargs: dict[str, Any] = {}
        if _POSIX:
            spawn_kwargs["start_new_session"] = True
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(executable.parent),
                **spawn_kwargs,
            )
        except OSError as exc:
            return invocation.fail(
                FailureKind.SPAWN_FAILED, f"Failed to start engine process: {exc}"
            )
        invocation.advance(InvocationState.SPAWNED)

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._settings.timeout_seconds
            )
        except TimeoutError:
            invocation.advance(InvocationState.TIMED_OUT)
            await self._terminate(process)
            return invocation.fail(
                FailureKind.TIMEOUT,
                f"Engine conversion timed out after {self._settings.timeout_seconds:g} seconds",
            )
        except asyncio.CancelledError:
            logger.warning(
                "operation %s cancelled; killing engine process %d",
                request.operation_id,
                process.pid,
            )
            await self._terminate(process)
            raise
        finally:
            # Never leave the process running, whatever interrupted the wait.
            self._kill(process)

        invocation.advance(InvocationState.EXITED)
        code = process.returncode if process.returncode is not None else -1
        out_text = _decode(stdout)
        err_text = _decode(stderr)
        logger.info(
            "engine process completed for %s with exit code %d in %dms",
            request.operation_id,
            code,
            invocation.elapsed_ms,
        )
        logger.debug("engine stdout=%r stderr=%r", out_text, err_text)

        if code in self._settings.missing_dependency_exit_codes:
            return invocation.fail(
                FailureKind.MISSING_RUNTIME_DEPENDENCY,
                f"Engine could not start because a runtime dependency is missing "
                f"(exit code {code}). Reinstall or repair the engine runtime.",
            )
        if code != 0:
            diagnostic = err_text or out_text or _describe_exit(code)
            return invocation.fail(
                FailureKind.ENGINE_CONVERSION_FAILED,
                f"Engine conversion failed ({_describe_exit(code)}): "
                f"{diagnostic[:MAX_DIAGNOSTIC_CHARS]}",
            )

        return self._reconcile(invocation)

    def _reconcile(self, invocation: _Invocation) -> ConversionResult:
        request = invocation.request
        expected = self.expected_output_path(request)
        if not expected.is_file():
            logger.debug(
                "files in staging directory %s: %s",
                expected.parent,
                _listing(expected.parent),
            )
            return invocation.fail(
                FailureKind.OUTPUT_NOT_PRODUCED,
                f"Engine exited successfully but did not create {expected.name}",
            )

        requested = request.output_path.absolute()
        if expected.absolute() != requested:
            # shutil.move would silently place the file inside a directory.
            if requested.is_dir():
                return invocation.fail(
                    FailureKind.OUTPUT_RELOCATION_FAILED,
                    f"Failed to move {expected.name} to {request.output_path}: "
                    "target is a directory",
                )
            try:
                requested.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(expected), str(requested))
            except OSError as exc:
                return invocation.fail(
                    FailureKind.OUTPUT_RELOCATION_FAILED,
                    f"Failed to move {expected.name} to {request.output_path}: {exc}",
                )
            logger.debug("moved engine output %s to %s", expected, requested)

        invocation.advance(InvocationState.RECONCILED)
        invocation.advance(InvocationState.DONE)
        return ConversionResult.ok(
            request.output_path,
            method=METHOD,
            elapsed_ms=invocation.elapsed_ms,
            operation_id=request.operation_id,
        )

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            if _POSIX:
                os.killpg(process.pid, signal.SIGKILL)
            else:
                process.kill()
        except ProcessLookupError:
            pass
        except PermissionError:
            process.kill()

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Kill the process (group) and reap it."""
        self._kill(process)
        try:
            await asyncio.wait_for(process.communicate(), timeout=KILL_GRACE_SECONDS)
        except TimeoutError:
            logger.error(
                "engine process %d did not exit within %.0fs of being killed",
                process.pid,
                KILL_GRACE_SECONDS,
            )

    def _cleanup(self, operation_id: str) -> None:
        shutil.rmtree(self.staging_dir(operation_id), ignore_errors=True)
        if not self._settings.keep_profile_dirs:
            shutil.rmtree(self.profile_dir(operation_id), ignore_errors=True)
