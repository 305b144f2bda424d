"""
Custom exception classes for the pricelist engine.

Only two error kinds ever leave a component: an unsupported document kind
handed to the extractor, and store failures. Template version collisions
are raised by stores and recovered inside the template matcher.
"""

from typing import Any, Dict, Optional


class PricelistEngineError(Exception):
    """
    Base exception class for all engine errors

    Attributes:
        message: Error message
        component: Component where error occurred
        details: Additional error details
        original_exception: Original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        self.message = message
        self.component = component
        self.details = details or {}
        self.original_exception = original_exception

        full_message = message
        if component:
            full_message = f"[{component.upper()}] {message}"

        super().__init__(full_message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "component": self.component,
            "details": self.details,
            "original_exception": str(self.original_exception)
            if self.original_exception
            else None,
        }


class UnsupportedFormatError(PricelistEngineError):
    """
    Raised when content of an unknown document kind reaches the extractor
    """

    def __init__(
        self,
        message: str,
        document_kind: Optional[str] = None,
        original_exception: Optional[Exception] = None,
    ):
        details = {}
        if document_kind:
            details["document_kind"] = document_kind

        super().__init__(
            message=message,
            component="extraction",
            details=details,
            original_exception=original_exception,
        )


class TemplateConflictError(PricelistEngineError):
    """
    Raised by a store when a compare-and-swap write loses the race

    The caller is expected to re-read the record and retry.
    """

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        expected_revision: Optional[int] = None,
        actual_revision: Optional[int] = None,
    ):
        details: Dict[str, Any] = {}
        if record_id:
            details["record_id"] = record_id
        if expected_revision is not None:
            details["expected_revision"] = expected_revision
        if actual_revision is not None:
            details["actual_revision"] = actual_revision

        super().__init__(message=message, component="templates", details=details)


class EnhancementError(PricelistEngineError):
    """
    Exception raised by the optional AI layout enhancer

    Common causes:
    - Missing API key
    - API failures or rate limiting
    - Unparseable model responses
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(
            message=message,
            component="enhancement",
            details=details,
            original_exception=original_exception,
        )


__all__ = [
    "PricelistEngineError",
    "UnsupportedFormatError",
    "TemplateConflictError",
    "EnhancementError",
]
