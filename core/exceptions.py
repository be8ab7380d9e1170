"""
Custom exceptions for the normalization pipeline with structured error context.

Each exception carries a context dictionary for debugging and a
``to_dict()`` rendering used in structured log records.

Exception Hierarchy:
    PipelineError (base)
    ├── RegistryError
    │   ├── RegistryLoadError
    │   ├── RegistryWriteError
    │   └── SnapshotFormatError
    ├── TransformationError
    │   └── RecordMappingError
    ├── LoadError
    │   ├── DatabaseError
    │   │   └── DatabaseConnectionError
    │   └── UpsertError
    ├── ConcurrentRunError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (report date, table, row id, ...)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Classification Mixins
# ============================================================================

class RetryableError(PipelineError):
    """
    Errors an external scheduler may retry by re-invoking the same date.

    The pipeline itself never retries.
    """
    pass


class NonRetryableError(PipelineError):
    """Errors that will fail the same way on a retry until data or config changes."""
    pass


# ============================================================================
# Registry Errors
# ============================================================================

class RegistryError(PipelineError):
    """Base exception for commodity registry failures."""
    pass


class RegistryLoadError(RetryableError, RegistryError):
    """
    The registry could not be read. Fatal for the run.

    Context should include:
        - operation: "load" or "reload"
    """
    pass


class RegistryWriteError(RetryableError, RegistryError):
    """
    A freshly minted identity could not be persisted.

    Context should include:
        - commodity_name: Name that was minted
        - code: Identity code handed to the caller
        - attempt: Mint attempt number
    """
    pass


class SnapshotFormatError(NonRetryableError, RegistryError):
    """
    A registry snapshot file is not in the expected shape.

    Context should include:
        - path: Snapshot file path
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(PipelineError):
    """Base exception for raw-to-canonical transformation failures."""
    pass


class RecordMappingError(NonRetryableError, TransformationError):
    """
    A raw row could not be mapped to a canonical payload.

    Context should include:
        - source: Source scope (AGMARK, ENAM)
        - raw_id: Primary key of the raw row
        - field_errors: Validation messages
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(PipelineError):
    """Base exception for canonical/summary write failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when a database operation fails.

    Context should include:
        - operation: SELECT, UPDATE, UPSERT
        - table_name: Name of the table
    """
    pass


class UpsertError(RetryableError, LoadError):
    """
    A single canonical row upsert failed. The row is skipped for this run.

    Context should include:
        - source: Source scope
        - raw_id: Primary key of the raw row
        - table_name: Target table
    """
    pass


class DatabaseConnectionError(RetryableError, DatabaseError):
    """The store could not be reached. Fatal for the run."""
    pass


# ============================================================================
# Concurrency Errors
# ============================================================================

class ConcurrentRunError(RetryableError):
    """
    Raised when a date is already being normalized in this process.

    Context should include:
        - report_date: The contended date
    """
    pass
