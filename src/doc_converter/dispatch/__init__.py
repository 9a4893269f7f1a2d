"""Conversion dispatch and in-process codecs."""

from __future__ import annotations

from doc_converter.dispatch.dispatcher import ENGINE_CONVERSIONS, ConversionDispatcher
from doc_converter.dispatch.registry import (
    CodecRegistry,
    conversion_key,
    create_default_registry,
)

__all__ = [
    "CodecRegistry",
    "ConversionDispatcher",
    "ENGINE_CONVERSIONS",
    "conversion_key",
    "create_default_registry",
]
