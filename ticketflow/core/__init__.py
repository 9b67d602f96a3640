"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from ticketflow.core.clock import Clock, SystemClock, ensure_utc
from ticketflow.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ForbiddenException,
    ConflictException,
    ConfigurationException,
    ExternalServiceException,
    NotificationDeliveryException,
)

__all__ = [
    "Clock",
    "SystemClock",
    "ensure_utc",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "InvalidTransitionException",
    "ResourceNotFoundException",
    "ForbiddenException",
    "ConflictException",
    "ConfigurationException",
    "ExternalServiceException",
    "NotificationDeliveryException",
]
