"""Custom exceptions for PartKeeper."""

from typing import Any, Dict, Optional


class PartKeeperException(Exception):
    """Base exception for all PartKeeper errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)


class NoData(PartKeeperException):
    """Raised when the base table holds no rows.

    Benign: callers treat it as a no-op.
    """

    def __init__(
        self,
        message: str = "Base table is empty",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=404)


class MalformedPartitionName(PartKeeperException):
    """Raised when a table name does not follow the partition naming convention."""

    def __init__(
        self,
        message: str = "Malformed partition name",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=422)


class UnsafePartition(PartKeeperException):
    """Raised when a partition holds rows outside the month its name declares."""

    def __init__(
        self,
        message: str = "Partition content does not match its name",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=409)


class InvalidRange(PartKeeperException):
    """Raised when a month range is empty or out of bounds."""

    def __init__(
        self,
        message: str = "Invalid month range",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=422)


class InvalidRepresentation(PartKeeperException):
    """Raised when a stored value cannot be read as a timestamp."""

    def __init__(
        self,
        message: str = "Value cannot be interpreted as a timestamp",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=422)


class InvalidRetentionWindow(PartKeeperException):
    """Raised when the number of months to keep is negative."""

    def __init__(
        self,
        message: str = "months_to_keep must be 0 or greater",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=422)


class StorageFailure(PartKeeperException):
    """Raised when a database operation fails."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=500)


class AuthenticationError(PartKeeperException):
    """Raised when the admin token is missing or wrong."""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details, status_code=401)
