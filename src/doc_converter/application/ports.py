"""Application ports for clean architecture boundaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from doc_converter.application.options import ConversionRequest
from doc_converter.application.results import ConversionResult
from doc_converter.types import ResolutionStrategy


@dataclass(frozen=True)
class ExecutableCandidate:
    """A filesystem path plus the strategy that proposed it."""

    path: Path
    strategy: ResolutionStrategy


@dataclass(frozen=True)
class CandidateRejection:
    """A candidate that existed but failed validation."""

    candidate: ExecutableCandidate
    reason: str


@dataclass(frozen=True)
class ExecutableResolution:
    """Outcome of executable resolution.

    ``candidate`` is the first valid existing executable, or the bundled
    fallback path when nothing qualified. Only a validated candidate may be
    executed; the fallback may exist on disk and still have been rejected.
    """

    candidate: ExecutableCandidate
    rejections: tuple[CandidateRejection, ...] = field(default_factory=tuple)
    validated: bool = False

    @property
    def found(self) -> bool:
        """Whether ``candidate`` passed validation and can be executed."""
        return self.validated


class ExecutableResolver(Protocol):
    """Locate the trusted engine executable."""

    def resolve(self) -> ExecutableResolution:
        """Return the validated executable or the bundled fallback."""


class EngineRunner(Protocol):
    """Run one engine-backed conversion."""

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        """Convert and always return a tagged result."""


@runtime_checkable
class Codec(Protocol):
    """In-process converter with the same result shape as the engine."""

    name: str
    conversions: frozenset[str]

    def convert(self, input_path: Path, output_path: Path) -> ConversionResult:
        """Convert ``input_path`` into ``output_path``."""
