"""Custom exceptions for SmartBuy Suggest.

Defines specific exception types for better error handling and reporting.
Engine code raises them; the API turns them into JSON error responses.
"""

from typing import Any, Dict, Optional


class SmartBuyException(Exception):
    """Base exception for SmartBuy errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class MissingDataError(SmartBuyException):
    """Raised when a referenced household, product or record is not found.

    Callers fall back to an unranked candidate set instead of failing.
    """

    def __init__(self, entity: str, entity_id: Any, details: Optional[Dict[str, Any]] = None):
        message = f"{entity} '{entity_id}' not found"
        super().__init__(
            message=message,
            status_code=404,
            details=details or {"entity": entity, "id": str(entity_id)},
        )


class DegenerateTrainingError(SmartBuyException):
    """Raised when there are no valid training examples.

    Resolved inside the trainer by seeding the default weights.
    """

    def __init__(self, total_examples: int):
        message = (
            f"No valid training examples out of {total_examples}; "
            "default weights will be used"
        )
        super().__init__(
            message=message,
            status_code=422,
            details={"total_examples": total_examples},
        )


class NormalizationError(SmartBuyException):
    """Raised when a min-max normalization has an empty range."""

    def __init__(self, feature: str, value: float):
        message = f"Cannot normalize '{feature}': all candidates share the value {value}"
        super().__init__(
            message=message,
            status_code=422,
            details={"feature": feature, "value": value},
        )


class ConcurrentWriteError(SmartBuyException):
    """Raised when a weight write keeps losing its compare-and-swap."""

    def __init__(self, expected_version: int, actual_version: int):
        message = (
            f"Weight vector changed concurrently (expected version "
            f"{expected_version}, found {actual_version})"
        )
        super().__init__(
            message=message,
            status_code=409,
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class InvalidInteractionError(SmartBuyException):
    """Raised when an interaction event carries an unknown action."""

    def __init__(self, action: str, allowed: Optional[list] = None):
        message = f"Unknown interaction action '{action}'"
        super().__init__(
            message=message,
            status_code=422,
            details={"action": action, "allowed": allowed or []},
        )


class StoreUnavailableError(SmartBuyException):
    """Raised when the record store cannot be read or written."""

    def __init__(self, path: str, error: Exception):
        message = f"Record store unavailable at '{path}': {str(error)}"
        super().__init__(
            message=message,
            status_code=503,
            details={
                "path": path,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
