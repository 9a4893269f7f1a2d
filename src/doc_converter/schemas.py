"""Pydantic schemas for runtime validation of orchestrator settings."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

_WINDOWS = os.name == "nt"

# STATUS_DLL_NOT_FOUND as unsigned and signed, plus the POSIX loader code.
DEFAULT_MISSING_DEPENDENCY_EXIT_CODES = (3221225781, -1073741515, 127)


def default_binary_name() -> str:
    """Return the engine binary name for the current platform."""
    return "soffice.exe" if _WINDOWS else "soffice"


def default_install_dir_name() -> str:
    """Return the engine install directory name under program files."""
    return "LibreOffice" if _WINDOWS else "libreoffice"


def default_system_dirs() -> list[Path]:
    """Return the primary program-files directories for the platform."""
    if _WINDOWS:
        return [Path(os.environ.get("ProgramFiles", r"C:\Program Files"))]
    return [Path("/usr/lib"), Path("/opt")]


def default_system_32bit_dirs() -> list[Path]:
    """Return 32-bit program-files directories, if the platform has them."""
    if _WINDOWS:
        return [
            Path(os.environ.get("ProgramFiles(x86)", r"C:\Program Files (x86)"))
        ]
    return []


def default_app_dir() -> Path:
    """Return the application installation directory."""
    return Path(sys.prefix)


def default_work_dir() -> Path:
    """Return the root for per-operation profile and staging directories."""
    return Path(tempfile.gettempdir()) / "doc-converter"


class EngineSettings(BaseModel):
    """Engine discovery and invocation settings."""

    model_config = ConfigDict(extra="forbid")

    executable_path: Path | None = None
    timeout_seconds: float = Field(default=60.0, gt=0)
    app_dir: Path = Field(default_factory=default_app_dir)
    binary_name: str = Field(default_factory=default_binary_name)
    bundled_dir_name: str = "LibreOffice"
    install_dir_name: str = Field(default_factory=default_install_dir_name)
    system_dirs: list[Path] = Field(default_factory=default_system_dirs)
    system_32bit_dirs: list[Path] = Field(default_factory=default_system_32bit_dirs)
    missing_dependency_exit_codes: tuple[int, ...] = DEFAULT_MISSING_DEPENDENCY_EXIT_CODES
    keep_profile_dirs: bool = False

    @field_validator("executable_path", mode="before")
    @classmethod
    def _blank_path_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("binary_name", "bundled_dir_name", "install_dir_name")
    @classmethod
    def _validate_segment(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned or cleaned in {".", ".."} or "/" in cleaned or "\\" in cleaned:
            raise ValueError("must be a single, non-empty path segment.")
        return cleaned


class ConcurrencySettings(BaseModel):
    """Admission control settings."""

    model_config = ConfigDict(extra="forbid")

    max_concurrency: int = Field(default=2, ge=1)
    acquire_timeout_seconds: float | None = Field(default=None, gt=0)


class OrchestratorSettings(BaseModel):
    """Top-level orchestrator settings."""

    model_config = ConfigDict(extra="forbid")

    engine: EngineSettings = Field(default_factory=EngineSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    work_dir: Path = Field(default_factory=default_work_dir)
    codec_modules: list[str] = Field(default_factory=list)

    @field_validator("codec_modules")
    @classmethod
    def _strip_modules(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]
