"""Engine executable discovery and trust validation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

from doc_converter.application.ports import (
    CandidateRejection,
    ExecutableCandidate,
    ExecutableResolution,
)
from doc_converter.errors import EngineValidationError
from doc_converter.schemas import EngineSettings
from doc_converter.types import ResolutionStrategy

logger = logging.getLogger(__name__)

PROGRAM_DIR_NAME = "program"


def is_descendant(path: Path, root: Path) -> bool:
    """Check containment by path segments.

    ``/opt/Files/x`` is inside ``/opt/Files`` but ``/opt/FilesEvil/x`` is not.
    """
    return path != root and path.is_relative_to(root)


def validate_executable(
    path: Path,
    *,
    binary_name: str,
    trusted_roots: Sequence[Path],
) -> Path:
    """Validate a candidate executable and return its canonical path.

    Parameters
    ----------
    path : Path
        Candidate executable.
    binary_name : str
        Expected engine file name, compared case-insensitively.
    trusted_roots : Sequence[Path]
        Application and program-files directories the engine may live in.

    Returns
    -------
    Path
        Canonical path with symlinks resolved.

    Raises
    ------
    EngineValidationError
        If any check fails.
    """
    if not path.is_absolute():
        raise EngineValidationError(path, "path is not absolute")
    if ".." in path.parts:
        raise EngineValidationError(path, "path contains traversal segments")
    try:
        canonical = path.resolve(strict=False)
    except (OSError, RuntimeError) as exc:
        raise EngineValidationError(path, f"cannot canonicalize path: {exc}") from exc

    if canonical.name.lower() != binary_name.lower():
        raise EngineValidationError(
            path, f"file name {canonical.name!r} is not {binary_name!r}"
        )
    if canonical.parent.name != PROGRAM_DIR_NAME:
        raise EngineValidationError(
            path, f"executable is not inside a {PROGRAM_DIR_NAME!r} directory"
        )

    roots = [_canonical_root(root) for root in trusted_roots]
    if not any(is_descendant(canonical, root) for root in roots if root is not None):
        raise EngineValidationError(
            path, "executable is outside the application and program-files directories"
        )
    return canonical


def _canonical_root(root: Path) -> Path | None:
    if not root.is_absolute():
        return None
    try:
        return root.resolve(strict=False)
    except (OSError, RuntimeError):
        return None


class EngineExecutableResolver:
    """Resolve the engine executable in priority order.

    Bundled runtime first, then the configured path, then the system
    installation, then the 32-bit system installation. Every candidate is
    validated before it is trusted.
    """

    def __init__(self, settings: EngineSettings) -> None:
        self._settings = settings

    @property
    def app_dir(self) -> Path:
        return self._settings.app_dir.absolute()

    @property
    def trusted_roots(self) -> list[Path]:
        """Directories a trusted executable may live under."""
        return [
            self.app_dir,
            *self._settings.system_dirs,
            *self._settings.system_32bit_dirs,
        ]

    def bundled_path(self) -> Path:
        """Path of the bundled engine inside the application directory."""
        return (
            self.app_dir
            / self._settings.bundled_dir_name
            / PROGRAM_DIR_NAME
            / self._settings.binary_name
        )

    def candidates(self) -> Iterator[ExecutableCandidate]:
        """Yield candidates in priority order."""
        yield ExecutableCandidate(self.bundled_path(), ResolutionStrategy.BUNDLED)
        if self._settings.executable_path is not None:
            yield ExecutableCandidate(
                self._settings.executable_path, ResolutionStrategy.CONFIGURED
            )
        yield from self._system_candidates(
            self._settings.system_dirs, ResolutionStrategy.SYSTEM
        )
        yield from self._system_candidates(
            self._settings.system_32bit_dirs, ResolutionStrategy.SYSTEM_32BIT
        )

    def _system_candidates(
        self, roots: Iterable[Path], strategy: ResolutionStrategy
    ) -> Iterator[ExecutableCandidate]:
        for root in roots:
            path = (
                root
                / self._settings.install_dir_name
                / PROGRAM_DIR_NAME
                / self._settings.binary_name
            )
            yield ExecutableCandidate(path, strategy)

    def resolve(self) -> ExecutableResolution:
        """Return the first existing, valid candidate.

        Falls back to the bundled path (which may not exist) so that callers
        can report where the engine was expected.
        """
        rejections: list[CandidateRejection] = []
        for candidate in self.candidates():
            if not candidate.path.is_file():
                logger.debug(
                    "engine candidate %s (%s) does not exist",
                    candidate.path,
                    candidate.strategy,
                )
                continue
            try:
                canonical = validate_executable(
                    candidate.path,
                    binary_name=self._settings.binary_name,
                    trusted_roots=self.trusted_roots,
                )
            except EngineValidationError as exc:
                logger.warning(
                    "rejected engine candidate %s (%s): %s",
                    candidate.path,
                    candidate.strategy,
                    exc.reason,
                )
                rejections.append(CandidateRejection(candidate, exc.reason))
                continue

            if candidate.strategy in (
                ResolutionStrategy.SYSTEM,
                ResolutionStrategy.SYSTEM_32BIT,
            ):
                logger.warning(
                    "using system engine installation (not recommended for deployment): %s",
                    canonical,
                )
            else:
                logger.info("using %s engine executable: %s", candidate.strategy, canonical)
            return ExecutableResolution(
                ExecutableCandidate(canonical, candidate.strategy),
                tuple(rejections),
                validated=True,
            )

        fallback = ExecutableCandidate(self.bundled_path(), ResolutionStrategy.BUNDLED)
        logger.error(
            "no engine executable found; expected bundled runtime at %s", fallback.path
        )
        return ExecutableResolution(fallback, tuple(rejections))
