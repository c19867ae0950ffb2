# core/exceptions.py
"""
╔════════════════════════════════════════════════════════════════════════════╗
║  DriftFix PRO - Exceptions v1.0                                           ║
║  ─────────────────────────────────────────────────────────────────────────  ║
║  ✓ Centralized Exception Hierarchy                                       ║
║  ✓ Error Code & Severity System                                          ║
║  ✓ Context & Details Tracking                                            ║
║  ✓ Context Manager & Safe Execution Wrapper                              ║
╚════════════════════════════════════════════════════════════════════════════╝

Architecture:
```
    DriftFixError (Base)
    ├── ErrorCode (taxonomy)
    ├── ErrorSeverity (info/warning/error/critical)
    └── Context & Details

    Specific Exceptions:
    ├── InsufficientSamplesError     (recoverable, falls back to fast-track)
    ├── DimensionMismatchError       (fatal for one model's drift event)
    ├── PatchApplicationError        (patch marked FAILED, batch continues)
    ├── RollbackInconsistencyError   (patch stays APPLIED, manual action)
    ├── DataValidationError
    ├── ConfigurationError
    └── PipelineCancelledError

    Helpers:
    ├── safe_execute()
    └── exception_context()
```

Usage:
```python
    from core.exceptions import PatchApplicationError, exception_context

    with exception_context(
        to=PatchApplicationError,
        message="Failed to merge patch configuration",
        context={"patch_id": patch.id}
    ):
        live.merge(patch.configuration)
```

Dependencies:
    • loguru
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional, Type

from loguru import logger

# ═══════════════════════════════════════════════════════════════════════════
# Module Metadata
# ═══════════════════════════════════════════════════════════════════════════

__version__ = "1.0.0"
__author__ = "DriftFix Team"

__all__ = [
    # Enums
    "ErrorCode",
    "ErrorSeverity",
    # Base Exception
    "DriftFixError",
    # Specific Exceptions
    "InsufficientSamplesError",
    "DimensionMismatchError",
    "PatchApplicationError",
    "RollbackInconsistencyError",
    "DataValidationError",
    "ConfigurationError",
    "PipelineCancelledError",
    # Helpers
    "safe_execute",
    "exception_context",
]


# ═══════════════════════════════════════════════════════════════════════════
# Error Taxonomy
# ═══════════════════════════════════════════════════════════════════════════

class ErrorSeverity(str, Enum):
    """🚨 Severity classification for errors."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(str, Enum):
    """
    🏷️ **Error Code Taxonomy**

    Standardized error codes used by logs and serialized results.
    """
    UNKNOWN = "unknown_error"
    INSUFFICIENT_SAMPLES = "insufficient_samples"
    DIMENSION_MISMATCH = "dimension_mismatch"
    PATCH_APPLICATION = "patch_application_error"
    ROLLBACK_INCONSISTENCY = "rollback_inconsistency"
    DATA_VALIDATION = "data_validation_error"
    CONFIG = "configuration_error"
    PIPELINE_CANCELLED = "pipeline_cancelled"


# ═══════════════════════════════════════════════════════════════════════════
# Base Exception
# ═══════════════════════════════════════════════════════════════════════════

class DriftFixError(Exception):
    """
    🎯 **Base DriftFix Exception**

    Base exception class with error code, severity, details and context.

    Usage:
```python
        raise DriftFixError(
            "Operation failed",
            details={"feature_index": 3},
            error_code=ErrorCode.DATA_VALIDATION,
            context={"model_id": "churn-v2"}
        )
```
    """

    default_code: ErrorCode = ErrorCode.UNKNOWN
    default_severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        error_code: Optional[ErrorCode] = None,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional details dictionary
            error_code: Error code classification (class default if None)
            severity: Error severity level (class default if None)
            context: Execution context dictionary
            cause: Original exception (if wrapping)
        """
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}
        self.error_code: ErrorCode = error_code or self.default_code
        self.severity: ErrorSeverity = severity or self.default_severity
        self.context: Dict[str, Any] = context or {}
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"{self.error_code.value}: {self.message}"]

        if self.details:
            parts.append(f"Details: {self.details}")

        if self.context:
            parts.append(f"Context: {self.context}")

        if self.cause:
            parts.append(f"Cause: {type(self.cause).__name__}: {self.cause}")

        return " | ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details,
                "context": self.context,
                "severity": self.severity.value,
                "cause": str(self.cause) if self.cause else None
            }
        }

    @classmethod
    def from_exc(
        cls,
        exc: BaseException,
        *,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> "DriftFixError":
        """
        Create from an existing exception.

        DriftFix exceptions are returned unchanged.
        """
        if isinstance(exc, DriftFixError):
            return exc

        return cls(
            message or str(exc) or "An unexpected error occurred",
            details=details,
            context=context,
            cause=exc
        )


# ═══════════════════════════════════════════════════════════════════════════
# Specific Exception Classes
# ═══════════════════════════════════════════════════════════════════════════

class InsufficientSamplesError(DriftFixError):
    """📉 Sample too small for a statistical test."""
    default_code = ErrorCode.INSUFFICIENT_SAMPLES
    default_severity = ErrorSeverity.WARNING


class DimensionMismatchError(DriftFixError):
    """📐 Reference and current feature counts differ."""
    default_code = ErrorCode.DIMENSION_MISMATCH


class PatchApplicationError(DriftFixError):
    """🩹 Snapshot capture or live-configuration mutation failed."""
    default_code = ErrorCode.PATCH_APPLICATION


class RollbackInconsistencyError(DriftFixError):
    """↩️ Snapshot missing or no longer consistent with the live configuration."""
    default_code = ErrorCode.ROLLBACK_INCONSISTENCY
    default_severity = ErrorSeverity.CRITICAL


class DataValidationError(DriftFixError):
    """⚠️ Malformed dataset."""
    default_code = ErrorCode.DATA_VALIDATION


class ConfigurationError(DriftFixError, ValueError):
    """⚙️ Invalid component configuration (also a ValueError)."""
    default_code = ErrorCode.CONFIG


class PipelineCancelledError(DriftFixError):
    """🛑 Drift-event pipeline cancelled before an irreversible stage."""
    default_code = ErrorCode.PIPELINE_CANCELLED
    default_severity = ErrorSeverity.INFO


# ═══════════════════════════════════════════════════════════════════════════
# Helper Functions
# ═══════════════════════════════════════════════════════════════════════════

def safe_execute(
    func: Callable[..., Any],
    *args,
    error_message: str = "Operation failed",
    exc_type: Type[DriftFixError] = DriftFixError,
    log: bool = True,
    context: Optional[Dict[str, Any]] = None,
    **kwargs
) -> Any:
    """
    🛡️ **Safe Function Execution**

    Executes function and re-raises any foreign exception as `exc_type`.

    Example:
```python
        edges = safe_execute(
            np.quantile, values, q,
            error_message="Quantile computation failed",
            exc_type=DataValidationError
        )
```
    """
    try:
        return func(*args, **kwargs)
    except DriftFixError:
        raise
    except Exception as e:
        wrapped = exc_type(
            error_message,
            details={"original_error": str(e)},
            context=context,
            cause=e
        )

        if log:
            logger.error(str(wrapped))

        raise wrapped from e


@contextmanager
def exception_context(
    *,
    to: Type[DriftFixError] = DriftFixError,
    message: str = "Operation failed",
    context: Optional[Dict[str, Any]] = None,
    log: bool = True
) -> Iterator[None]:
    """
    🔒 **Exception Context Manager**

    Wraps foreign exceptions raised inside the block into `to`.
    DriftFix exceptions pass through untouched.
    """
    try:
        yield
    except DriftFixError:
        raise
    except Exception as e:
        wrapped = to(
            message,
            details={"original_error": str(e)},
            context=context,
            cause=e
        )

        if log:
            logger.error(str(wrapped))

        raise wrapped from e
