"""Custom exceptions for the soil monitor.

Provides a hierarchy of domain-specific exceptions so each stage of the
telemetry pipeline can decide what is recoverable and what is not.
"""


class SoilMonitorError(Exception):
    """Base exception for all application errors."""


class ConfigurationError(SoilMonitorError):
    """Raised when the static configuration is invalid."""


class ValidationError(SoilMonitorError):
    """Raised when an inbound telemetry payload is rejected."""


class MalformedPayload(ValidationError):
    """Payload is not a JSON object matching the reading schema."""


class OutOfRange(ValidationError):
    """Moisture level is an integer outside [0, 100]."""


class DatabaseError(SoilMonitorError):
    """Base exception for database-related errors."""


class DatabaseNotConnectedError(DatabaseError):
    """Raised when attempting database operations without a connection."""

    def __init__(self, message: str = "Database not connected") -> None:
        super().__init__(message)


class StoreError(DatabaseError):
    """Raised when the reading store fails to write or truncate."""


class NotificationError(SoilMonitorError):
    """Raised when an alert could not be delivered to a recipient."""


class ArchivalError(SoilMonitorError):
    """Raised when an archival cycle fails to serialize or upload."""
