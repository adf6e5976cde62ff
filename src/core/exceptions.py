"""Structured exception hierarchy for consistent error handling.

Every failure the API reports to a caller is a ``StratusError`` subclass. The
subclasses mirror the failure modes of the authorization and consistency
layer: credential problems, access denials, admission rejections and the two
ways a wait on store-side reconciliation can end without a result.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **StratusError**: Base exception with rich context and fingerprinting
- **Specialized exceptions**: One class per failure mode

Store transport errors are converted into this hierarchy at the repository
boundary, so nothing above the repositories needs to know about HTTP status
codes returned by the store.
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for the Stratus application."""

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    UNKNOWN_FAILURE = "UNKNOWN_FAILURE"
    """The store failed in a way that is not meaningful to the caller."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    DUPLICATE_NAME = "DUPLICATE_NAME"
    """A sibling with the same case-folded name already exists."""

    ORPHANED_REFERENCE = "ORPHANED_REFERENCE"
    """The declared parent of a resource does not exist."""

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    # Authentication/Authorization errors
    UNAUTHORIZED = "UNAUTHORIZED"
    """Authentication failed."""

    MALFORMED_CREDENTIAL = "MALFORMED_CREDENTIAL"
    """The authorization header is missing or cannot be parsed."""

    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    """The credential was parsed but rejected (bad, expired or untrusted)."""

    FORBIDDEN = "FORBIDDEN"
    """The caller is authenticated but may not access the resource."""

    # Reconciliation waits
    TIMEOUT = "TIMEOUT"
    """A resource did not reach the awaited condition before the deadline."""

    UNWATCHABLE = "UNWATCHABLE"
    """A watch on the resource could not be established or broke."""


class Severity(Enum):
    """Severity levels for errors in the Stratus application."""

    LOW = "LOW"
    """Low severity errors that don't significantly impact functionality."""

    MEDIUM = "MEDIUM"
    """Medium severity errors that may affect some features but not critical ops."""

    HIGH = "HIGH"
    """High severity errors impacting critical functionality or data integrity."""

    CRITICAL = "CRITICAL"
    """Critical errors requiring immediate attention, may cause system failures."""


class StratusError(Exception):
    """Base exception class for all Stratus application exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Returns:
            str: A hash of the error type and the frames that raised it
        """
        max_frames = 5
        relevant_frames = (
            self.stack_trace[-max_frames:]
            if len(self.stack_trace) > max_frames
            else self.stack_trace
        )

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether the error is part of normal operation (LOW or MEDIUM severity)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Whether the error should trigger alerts (HIGH or CRITICAL severity)."""
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(StratusError):
    """Exception raised when request input is invalid.

    Args:
        message: Description of the validation failure
        error_code: Error code (defaults to VALIDATION_ERROR)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(StratusError):
    """Exception raised when a requested resource cannot be found.

    Args:
        message: Description of what resource was not found
        error_code: Error code (defaults to NOT_FOUND)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class UnauthorizedError(StratusError):
    """Exception raised when the caller cannot be authenticated.

    Args:
        message: Description of the authentication failure
        error_code: Error code (defaults to UNAUTHORIZED)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.UNAUTHORIZED,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, context, cause)


class MalformedCredentialError(UnauthorizedError):
    """The authorization header is absent, uses an unknown scheme or is empty."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.MALFORMED_CREDENTIAL, context, cause)


class InvalidCredentialError(UnauthorizedError):
    """The credential was rejected: bad or expired token, unusable certificate."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INVALID_CREDENTIAL, context, cause)


class ForbiddenError(StratusError):
    """Exception raised when the store denies the caller access to a resource.

    Args:
        resource_type: Human readable type of the resource, e.g. "Space"
        message: Description of the denial
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        resource_type: str,
        message: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.resource_type = resource_type
        super().__init__(
            ErrorCode.FORBIDDEN,
            message or f"You are not authorized to perform the requested action on {resource_type}",
            Severity.LOW,
            {"resource_type": resource_type, **(context or {})},
            cause,
        )


class DuplicateNameError(StratusError):
    """A live sibling already uses the requested name within the same partition."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_NAME, message, Severity.LOW, context, cause
        )


class OrphanedReferenceError(StratusError):
    """The parent partition named by a resource has no live parent entity."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.ORPHANED_REFERENCE, message, Severity.LOW, context, cause
        )


class AwaitTimeoutError(StratusError):
    """A resource did not report the awaited condition before the deadline.

    The mutation that started the wait may still complete later, so this is
    reported as a server-side failure and never retried automatically.

    Args:
        message: Description of the wait that timed out
        elapsed_seconds: How long the wait actually lasted
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        elapsed_seconds: float,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            ErrorCode.TIMEOUT,
            message,
            Severity.HIGH,
            {"elapsed_seconds": round(elapsed_seconds, 3), **(context or {})},
            cause,
        )


class UnwatchableError(StratusError):
    """A watch subscription could not be established or was broken.

    Transient; the caller may retry the whole request.
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(ErrorCode.UNWATCHABLE, message, Severity.HIGH, context, cause)


class UnknownFailureError(StratusError):
    """An opaque store or transport failure.

    The message given here is logged; callers only ever see a generic text.
    """

    public_message = "An unknown error occurred."

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.UNKNOWN_FAILURE, message, Severity.HIGH, context, cause
        )


def forbidden_as_not_found(error: StratusError) -> StratusError:
    """Hide the existence of a resource the caller may not read.

    Args:
        error: Any error raised while accessing a single resource.

    Returns:
        StratusError: A NotFoundError for forbidden errors, the error otherwise.
    """
    if isinstance(error, ForbiddenError):
        return NotFoundError(
            f"{error.resource_type} not found",
            context={"resource_type": error.resource_type},
            cause=error,
        )
    return error
