"""Shared type aliases and enums for orchestrator modules."""

from __future__ import annotations

from enum import StrEnum
from typing import TypeAlias


class FailureKind(StrEnum):
    """Tag attached to every failed ``ConversionResult``."""

    ENGINE_NOT_FOUND = "EngineNotFound"
    ENGINE_VALIDATION_FAILED = "EngineValidationFailed"
    INPUT_MISSING = "InputMissing"
    SPAWN_FAILED = "SpawnFailed"
    TIMEOUT = "Timeout"
    MISSING_RUNTIME_DEPENDENCY = "MissingRuntimeDependency"
    ENGINE_CONVERSION_FAILED = "EngineConversionFailed"
    OUTPUT_NOT_PRODUCED = "OutputNotProduced"
    OUTPUT_RELOCATION_FAILED = "OutputRelocationFailed"
    UNSUPPORTED_CONVERSION = "UnsupportedConversion"
    ADMISSION_TIMEOUT = "AdmissionTimeout"
    HANDLER_FAILED = "HandlerFailed"


RETRYABLE_FAILURES = frozenset(
    {
        FailureKind.TIMEOUT,
        FailureKind.SPAWN_FAILED,
        FailureKind.ADMISSION_TIMEOUT,
    }
)


class ResolutionStrategy(StrEnum):
    """Which resolver strategy produced an executable candidate."""

    BUNDLED = "bundled"
    CONFIGURED = "configured"
    SYSTEM = "system"
    SYSTEM_32BIT = "system_32bit"


class InvocationState(StrEnum):
    """Lifecycle of a single engine invocation."""

    NOT_STARTED = "NotStarted"
    RESOLVING = "Resolving"
    SPAWNED = "Spawned"
    EXITED = "Exited"
    TIMED_OUT = "TimedOut"
    RECONCILED = "Reconciled"
    DONE = "Done"


ConversionKey: TypeAlias = str
FormatName: TypeAlias = str
