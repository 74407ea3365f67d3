"""ERC Intake Exception Hierarchy.

Exceptions raised by the intake pipeline carry structured context so that
batch reports, the CLI and log lines can describe a failure without parsing
message strings.

Exception Hierarchy:
    ErcIntakeException (base)
    ├── ExtractionError
    │   └── WorkbookLoadError
    ├── SourceError
    │   ├── SourceNotFoundError
    │   ├── SourceAccessDeniedError
    │   └── SourceTimeoutError
    ├── ExportValidationError
    ├── BatchInputError
    └── BatchError
        ├── SessionNotFoundError
        └── BatchAlreadyRunningError

Example:
    >>> from erc_intake.exceptions import SourceNotFoundError
    >>> raise SourceNotFoundError(
    ...     message="Workbook not found",
    ...     source_reference="1AbCdEf",
    ... )

Author: ERC Intake Team
Status: Production Ready
"""

import json
import re
from datetime import datetime
from typing import Any, Dict, List, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class ErcIntakeException(Exception):
    """Base exception for all intake pipeline errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "ERC_SOURCE_NOT_FOUND_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "ERC"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now()

    def _generate_error_code(self) -> str:
        """Generate an error code from the exception class name.

        Returns:
            Error code like "ERC_WORKBOOK_LOAD_ERROR"
        """
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Extraction Exceptions
# ==============================================================================

class ExtractionError(ErcIntakeException):
    """Values could not be extracted from a workbook."""


class WorkbookLoadError(ExtractionError):
    """Workbook bytes could not be opened (invalid or unsupported format).

    Example:
        >>> raise WorkbookLoadError(
        ...     message="File is not a zip file",
        ...     file_name="client.xlsx",
        ... )
    """

    def __init__(
        self,
        message: str,
        file_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if file_name:
            context["file_name"] = file_name
        super().__init__(message, context=context)


# ==============================================================================
# Source Exceptions
# ==============================================================================

class SourceError(ErcIntakeException):
    """Base exception for workbook source failures."""

    def __init__(
        self,
        message: str,
        source_reference: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize source error.

        Args:
            message: Error message
            source_reference: Reference (URL, id or path) that failed
            context: Error context
        """
        context = context or {}
        if source_reference:
            context["source_reference"] = source_reference
        self.source_reference = source_reference
        super().__init__(message, context=context)


class SourceNotFoundError(SourceError):
    """The referenced workbook does not exist."""


class SourceAccessDeniedError(SourceError):
    """The referenced workbook exists but cannot be read."""


class SourceTimeoutError(SourceError):
    """Fetching the referenced workbook exceeded the configured timeout."""

    def __init__(
        self,
        message: str,
        source_reference: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if timeout_seconds is not None:
            context["timeout_seconds"] = timeout_seconds
        super().__init__(message, source_reference=source_reference, context=context)


# ==============================================================================
# Export Exceptions
# ==============================================================================

class ExportValidationError(ErcIntakeException):
    """Canonical record is missing fields required by an export format.

    Example:
        >>> raise ExportValidationError(
        ...     message="Record cannot be exported",
        ...     missing_fields=["Company EIN", "City"],
        ... )
    """

    def __init__(
        self,
        message: str,
        missing_fields: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        self.missing_fields = list(missing_fields or [])
        context["missing_fields"] = self.missing_fields
        super().__init__(message, context=context)


# ==============================================================================
# Batch Exceptions
# ==============================================================================

class BatchInputError(ErcIntakeException):
    """Batch input file could not be parsed into rows."""


class BatchError(ErcIntakeException):
    """Base exception for batch orchestration errors."""


class SessionNotFoundError(BatchError):
    """No batch session exists for the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"Session {session_id} not found",
            context={"session_id": session_id},
        )


class BatchAlreadyRunningError(BatchError):
    """A batch run is already active on this orchestrator."""

    def __init__(self, active_session_id: Optional[str] = None):
        super().__init__(
            "Another batch is already being processed",
            context={"active_session_id": active_session_id},
        )


__all__ = [
    "ErcIntakeException",
    "ExtractionError",
    "WorkbookLoadError",
    "SourceError",
    "SourceNotFoundError",
    "SourceAccessDeniedError",
    "SourceTimeoutError",
    "ExportValidationError",
    "BatchInputError",
    "BatchError",
    "SessionNotFoundError",
    "BatchAlreadyRunningError",
]
