"""Exception types for programming and configuration errors.

Conversion failures are reported as tagged ``ConversionResult`` values, not
exceptions. The types below cover what a result cannot express: invalid
settings, broken codec modules and illegal permit handling.
"""

from __future__ import annotations


class ConversionError(Exception):
    """Base error for the package.

    Parameters
    ----------
    message : str
        Human-readable description.
    exit_code : int, default=1
        Process exit code used by the CLI when this error aborts a command.
    """

    def __init__(self, message: str, *, exit_code: int = 1) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class ConfigError(ConversionError):
    """Raised when orchestrator settings are invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message, exit_code=2)


class CodecError(ConversionError):
    """Raised when a codec cannot be registered, found or loaded."""


class PermitError(ConversionError):
    """Raised when a permit is released into a pool that did not issue it."""


class EngineValidationError(ConversionError):
    """Raised by the resolver when a candidate executable is not trusted."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
