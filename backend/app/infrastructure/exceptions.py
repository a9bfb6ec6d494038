"""
Custom Exceptions for the Quota Ledger

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class QuotaLedgerError(Exception):
    """Base exception for all quota ledger errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class DatabaseError(QuotaLedgerError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class PlanLimitsUnavailableError(QuotaLedgerError):
    """Raised when the plan catalog cannot resolve limits for a plan."""

    def __init__(
        self,
        plan_name: str,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            f"No plan limits configured for plan '{plan_name}'",
            details={"plan_name": plan_name},
            original_error=original_error,
        )
        self.plan_name = plan_name


class ConfigurationError(QuotaLedgerError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
