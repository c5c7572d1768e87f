"""
Exception hierarchy for media reference validation.

Validation failures are raised inside the pipeline and converted into
``ValidationResult`` data at its boundary, so a single bad reference never
aborts a batch. Only ``EngineNotInitializedError`` reaches callers.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a validation failure, carried on failed results."""

    INVALID_REFERENCE = "invalid_reference"
    NOT_FOUND = "not_found"
    POLICY_VIOLATION = "policy_violation"
    INTEGRITY_FAILURE = "integrity_failure"
    RECOVERY_EXHAUSTED = "recovery_exhausted"
    RECOVERY_TIMEOUT = "recovery_timeout"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    UNEXPECTED = "unexpected"


class MediaReferenceError(Exception):
    """Base exception for all media reference errors."""

    kind = ErrorKind.UNEXPECTED
    recoverable = False

    def __init__(self, message: str, reference: str | None = None):
        super().__init__(message)
        self.message = message
        self.reference = reference


class InvalidReferenceError(MediaReferenceError):
    """Raised when a reference is not a well-formed URI."""

    kind = ErrorKind.INVALID_REFERENCE


class ReferenceNotFoundError(MediaReferenceError):
    """Raised when the referenced file does not exist."""

    kind = ErrorKind.NOT_FOUND
    recoverable = True


class PolicyViolationError(MediaReferenceError):
    """Raised when the file lies outside the enabled directories."""

    kind = ErrorKind.POLICY_VIOLATION


class IntegrityFailureError(MediaReferenceError):
    """Raised when the file is empty, unsupported or has a corrupt header."""

    kind = ErrorKind.INTEGRITY_FAILURE


class RecoveryExhaustedError(MediaReferenceError):
    """Raised when every recovery strategy failed to find a substitute."""

    kind = ErrorKind.RECOVERY_EXHAUSTED


class RecoveryTimeoutError(MediaReferenceError):
    """Raised when recovery exceeds its wall-clock budget."""

    kind = ErrorKind.RECOVERY_TIMEOUT


class OperationInProgressError(MediaReferenceError):
    """Raised by a reentrancy guard when the same operation is already running."""

    kind = ErrorKind.OPERATION_IN_PROGRESS


class EngineNotInitializedError(RuntimeError):
    """Raised when the engine is used before ``initialize()`` completed."""
