"""Settings loading from TOML files and ``DOCCONV_*`` environment variables."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from doc_converter.errors import ConfigError
from doc_converter.schemas import OrchestratorSettings

logger = logging.getLogger(__name__)

ENV_PREFIX = "DOCCONV_"

# env suffix -> (section, key); section None means top level.
_ENV_FIELDS: dict[str, tuple[str | None, str]] = {
    "ENGINE_PATH": ("engine", "executable_path"),
    "TIMEOUT_SECONDS": ("engine", "timeout_seconds"),
    "APP_DIR": ("engine", "app_dir"),
    "KEEP_PROFILE_DIRS": ("engine", "keep_profile_dirs"),
    "MAX_CONCURRENCY": ("concurrency", "max_concurrency"),
    "ACQUIRE_TIMEOUT_SECONDS": ("concurrency", "acquire_timeout_seconds"),
    "WORK_DIR": (None, "work_dir"),
    "CODEC_MODULES": (None, "codec_modules"),
}


def _read_toml(config_path: Path) -> dict[str, Any]:
    """Read a TOML settings file."""
    try:
        with config_path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``DOCCONV_*`` overrides into a nested settings payload."""
    payload: dict[str, Any] = {}
    for suffix, (section, key) in _ENV_FIELDS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is None:
            continue
        value: object = raw
        if key == "codec_modules":
            value = [item for item in raw.split(",") if item.strip()]
        elif key == "acquire_timeout_seconds" and not raw.strip():
            value = None
        if section is None:
            payload[key] = value
        else:
            payload.setdefault(section, {})[key] = value
    return payload


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> OrchestratorSettings:
    """Build validated settings.

    Sources are layered: defaults, then the TOML file, then environment
    variables, then explicit ``overrides`` (used by the CLI).

    Parameters
    ----------
    config_path : Path | None, optional
        TOML file with optional ``[engine]`` and ``[concurrency]`` tables.
    environ : Mapping[str, str] | None, optional
        Environment to read; defaults to ``os.environ``.
    overrides : Mapping[str, Any] | None, optional
        Nested payload applied last.

    Returns
    -------
    OrchestratorSettings
        Validated settings.

    Raises
    ------
    ConfigError
        If a source cannot be read or the merged payload is invalid.
    """
    payload: dict[str, Any] = {}
    if config_path is not None:
        payload = _merge(payload, _read_toml(config_path))
        logger.debug("loaded settings file %s", config_path)
    payload = _merge(payload, _env_overrides(os.environ if environ is None else environ))
    if overrides:
        payload = _merge(payload, overrides)
    try:
        return OrchestratorSettings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid orchestrator settings: {exc}") from exc
