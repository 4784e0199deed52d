"""
Milight library exceptions.

This module defines all custom exceptions used throughout the library.
"""


class MilightError(Exception):
    """Base exception for Milight bridge errors"""
    pass


class InvalidArgumentError(MilightError, ValueError):
    """Raised when a capability value is missing or out of range"""
    pass


class UnsupportedOperationError(MilightError):
    """Raised when an operation is not available for a zone type or bridge generation"""

    def __init__(self, zone_type, operation: str, detail: str = ""):
        self.zone_type = zone_type
        self.operation = operation
        name = getattr(zone_type, "value", zone_type)
        message = f"Can not {operation} on zone type {name}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class MissingFieldError(MilightError):
    """Raised when a bridge or device identity lacks a required field"""

    def __init__(self, field: str, what: str = "object"):
        self.field = field
        super().__init__(f"Missing {field} on {what}")


class NotFoundError(MilightError):
    """Raised when a bridge or zone lookup fails"""
    pass


class MilightTransportError(MilightError):
    """Raised when sending commands or discovering bridges fails"""
    pass


class MilightTimeoutError(MilightTransportError):
    """Raised when a bridge does not answer in time"""
    pass
