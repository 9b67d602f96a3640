"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Each subclass carries the HTTP
status and the machine-readable code the API layer renders.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""

    status_code = 400
    error_code = "DOMAIN_ERROR"


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(DomainException):
    """Malformed input or an illegal status transition."""

    error_code = "VALIDATION_ERROR"


class InvalidTransitionException(ValidationException):
    """Raised when a status change is not in the transition table."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition from {from_status} to {to_status}",
            {"from": from_status, "to": to_status}
        )


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ForbiddenException(ApplicationException):
    """Role or ownership check failed."""

    status_code = 403
    error_code = "FORBIDDEN"


class ConflictException(ApplicationException):
    """Request clashes with existing state (e.g. reused idempotency key)."""

    status_code = 409
    error_code = "CONFLICT"


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

    error_code = "CONFIGURATION_ERROR"


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationDeliveryException(ExternalServiceException):
    """Raised when a notification sender reports a failed delivery."""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        super().__init__(f"Notification[{channel}]", message, details)
