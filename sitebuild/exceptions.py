"""Central application exception hierarchy.

This module defines the base application exception ``AppError`` and the
specialized subclasses used throughout the build runner: configuration and
validation failures, build state persistence problems, gate rejections,
phase execution failures and the failure modes of remote generation work
(timeouts, retry exhaustion, open circuit breaker). Using a centralized
hierarchy keeps error handling, logging and testing consistent.

Read-only inspection APIs (``load``, ``check_gate``) report problems as
structured results; state-mutating APIs raise one of the errors below.
"""

from __future__ import annotations

from typing import Any, Mapping


class AppError(Exception):
    """Base exception for all application-level errors.

    Parameters
    ----------
    code : str
        Machine-readable error code (e.g., ``'STATE_INVALID_ERROR'``).
    message : str
        Human-readable message describing the error.
    context : Mapping[str, Any] | None, optional
        Optional structured context for logging.
    transient : bool, optional
        Whether the error is temporary and may be retried.

    Attributes
    ----------
    code : str
        Stable machine-readable error code.
    message : str
        Human-readable message.
    context : dict
        Structured, non-sensitive context for logging.
    transient : bool
        True if the error is transient.

    Examples
    --------
    >>> e = AppError('CODE', 'message', context={'k': 'v'}, transient=True)
    >>> e.code
    'CODE'
    """

    __slots__ = ("code", "message", "context", "transient")

    def __init__(
        self,
        code: str,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = dict(context or {})
        self.transient = bool(transient)

    def __str__(self) -> str:
        """Return a compact string representation of the error."""
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Return a log-safe dictionary representation of the error."""
        return {
            "error_code": self.code,
            "message": self.message,
            "context": self.context,
            "is_transient": self.transient,
        }


class ConfigurationError(AppError):
    """Raised for invalid or missing configuration."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "CONFIGURATION_ERROR", message, context=context, transient=False
        )


class DataValidationError(AppError):
    """Raised for project data that fails schema or content validation."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "DATA_VALIDATION_ERROR", message, context=context, transient=False
        )


class StateNotFoundError(AppError):
    """Raised when a mutation targets a project without a build state document."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "STATE_NOT_FOUND_ERROR", message, context=context, transient=False
        )


class StateInvalidError(AppError):
    """Raised when the build state document fails schema validation."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "STATE_INVALID_ERROR", message, context=context, transient=False
        )


class StateLockedError(AppError):
    """Raised when another process already holds the project run lock."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "STATE_LOCKED_ERROR", message, context=context, transient=True
        )


class UnknownPhaseError(AppError):
    """Raised for a phase id outside the fixed phase set."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "UNKNOWN_PHASE_ERROR", message, context=context, transient=False
        )


class GateFailedError(AppError):
    """Raised when one or more gates refuse forward progress.

    ``reasons`` carries every individual failure so that callers can print
    the full list rather than only the first problem.
    """

    __slots__ = ("reasons",)

    def __init__(
        self,
        message: str,
        *,
        reasons: list[str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__("GATE_FAILED_ERROR", message, context=context, transient=False)
        self.reasons = list(reasons or [])


class ArtifactCheckFailedError(AppError):
    """Raised when a phase's artifact predicate rejects a completion."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "ARTIFACT_CHECK_FAILED_ERROR", message, context=context, transient=False
        )


class PhaseExecutionFailedError(AppError):
    """Raised by the orchestrator when a phase fails.

    Attributes
    ----------
    phase_id : str
        Step id of the failing phase.
    resume_command : str
        Literal shell command that resumes the build at the failing phase.
    """

    __slots__ = ("phase_id", "resume_command")

    def __init__(
        self,
        message: str,
        *,
        phase_id: str,
        resume_command: str,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            "PHASE_EXECUTION_FAILED_ERROR", message, context=context, transient=False
        )
        self.phase_id = phase_id
        self.resume_command = resume_command


class CircuitBrokenError(AppError):
    """Raised inside a generation task that was skipped by the open breaker."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "CIRCUIT_BROKEN_ERROR", message, context=context, transient=False
        )


class RetryExhaustedError(AppError):
    """Raised when retry attempts for a transient error have been exhausted."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "RETRY_EXHAUSTED_ERROR", message, context=context, transient=False
        )


class TimeoutExceededError(AppError):
    """Raised when a configured timeout or deadline is exceeded."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "TIMEOUT_EXCEEDED_ERROR", message, context=context, transient=True
        )


class ExternalServiceError(AppError):
    """Raised for unexpected failures from an external service."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        transient: bool = True,
    ) -> None:
        super().__init__(
            "EXTERNAL_SERVICE_ERROR", message, context=context, transient=transient
        )
