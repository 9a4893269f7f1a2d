"""Engine discovery, admission control and process lifecycle."""

from __future__ import annotations

from doc_converter.engine.admission import AdmissionController, AdmissionStats, Permit
from doc_converter.engine.process import ProcessLifecycleManager
from doc_converter.engine.resolver import EngineExecutableResolver, validate_executable

__all__ = [
    "AdmissionController",
    "AdmissionStats",
    "EngineExecutableResolver",
    "Permit",
    "ProcessLifecycleManager",
    "validate_executable",
]
