"""Codec registry and discovery helpers."""

from __future__ import annotations

import importlib
import importlib.util
import logging
from collections.abc import Iterable
from pathlib import Path
from types import ModuleType

from doc_converter.application.options import normalize_format
from doc_converter.application.ports import Codec
from doc_converter.dispatch.codecs import builtin_codecs
from doc_converter.errors import CodecError

logger = logging.getLogger(__name__)


def conversion_key(input_format: str, output_format: str) -> str:
    """Build the ``"<in>-<out>"`` lookup key."""
    return f"{normalize_format(input_format)}-{normalize_format(output_format)}"


def _normalize_key(key: str) -> str:
    source, sep, target = key.partition("-")
    if not sep or not source.strip() or not target.strip():
        raise CodecError(f"Invalid conversion key '{key}'. Use '<input>-<output>'.")
    return conversion_key(source, target)


class CodecRegistry:
    """Registry mapping conversion keys to in-process codecs."""

    def __init__(self) -> None:
        self._codecs: dict[str, Codec] = {}

    def register(self, codec: Codec) -> None:
        """Register ``codec`` for every key in ``codec.conversions``.

        A later registration for the same key replaces the earlier one.

        Raises
        ------
        CodecError
            If the codec has no name or declares no conversions.
        """
        name = getattr(codec, "name", "").strip()
        if not name:
            raise CodecError("Codec must define a non-empty 'name'.")
        conversions = getattr(codec, "conversions", None)
        if not conversions:
            raise CodecError(f"Codec '{name}' must declare at least one conversion.")
        for key in conversions:
            normalized = _normalize_key(key)
            previous = self._codecs.get(normalized)
            if previous is not None and previous is not codec:
                logger.info("codec '%s' replaces '%s' for %s", name, previous.name, normalized)
            self._codecs[normalized] = codec

    def keys(self) -> list[str]:
        """Return sorted conversion keys."""
        return sorted(self._codecs)

    def names(self) -> list[str]:
        """Return sorted codec names."""
        return sorted({codec.name for codec in self._codecs.values()})

    def items(self) -> list[tuple[str, Codec]]:
        return sorted(self._codecs.items())

    def get(self, key: str) -> Codec:
        """Get the codec registered for ``key``.

        Raises
        ------
        CodecError
            If no codec handles ``key``.
        """
        try:
            return self._codecs[_normalize_key(key)]
        except KeyError as exc:
            raise CodecError(
                f"No codec for '{key}'. Available: {', '.join(self.keys())}"
            ) from exc

    def load_module(self, module_or_path: str) -> None:
        """Load codecs from a module name or file path.

        .. warning::
            This executes the module's code. Only load codecs from trusted
            sources.
        """
        module = _import_module_or_path(module_or_path)
        _register_from_module(module, self)


def _import_module_or_path(module_or_path: str) -> ModuleType:
    """Import module by import path or filesystem path.

    Raises
    ------
    CodecError
        If import cannot be completed.
    """
    candidate = Path(module_or_path)
    if candidate.suffix == ".py" and candidate.exists():
        spec = importlib.util.spec_from_file_location(candidate.stem, candidate)
        if spec is None or spec.loader is None:
            raise CodecError(f"Unable to load codec module from {candidate}.")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    try:
        return importlib.import_module(module_or_path)
    except Exception as exc:
        raise CodecError(
            f"Unable to import codec module '{module_or_path}': {exc}"
        ) from exc


def _register_from_module(module: ModuleType, registry: CodecRegistry) -> None:
    """Register codec definitions found in ``module``."""
    if hasattr(module, "register_codecs"):
        module.register_codecs(registry)
        return

    codecs_obj = getattr(module, "CODECS", None)
    if codecs_obj is not None:
        for codec in codecs_obj:
            registry.register(codec)
        return

    codec_obj = getattr(module, "CODEC", None)
    if codec_obj is not None:
        registry.register(codec_obj)
        return

    raise CodecError(
        "Codec module must expose register_codecs(registry), CODECS, or CODEC."
    )


def create_default_registry(
    extra_modules: Iterable[str] | None = None,
) -> CodecRegistry:
    """Create a registry with built-in codecs plus ``extra_modules``."""
    registry = CodecRegistry()
    for codec in builtin_codecs():
        registry.register(codec)
    for module in extra_modules or []:
        registry.load_module(module)
    return registry
