"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticketflow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/tickets",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA / TAT ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA configuration YAML file"
    )
    escalation_sweep_interval: int = Field(
        default=300,
        description="Seconds between automatic escalation sweeps",
        ge=10
    )
    status_cache_ttl: int = Field(
        default=60,
        description="Seconds the status registry snapshot is cached",
        ge=0
    )

    # ========== Outbox ==========
    outbox_dispatch_interval: int = Field(
        default=30,
        description="Seconds between outbox dispatch runs",
        ge=1
    )
    outbox_batch_size: int = Field(default=10, description="Events claimed per dispatch run", ge=1)
    outbox_max_attempts: int = Field(default=3, description="Delivery attempts before dead letter", ge=1)
    outbox_retry_base_seconds: float = Field(
        default=60.0,
        description="Base delay for exponential retry backoff",
        ge=0
    )
    outbox_processing_timeout: int = Field(
        default=300,
        description="Seconds after which a claimed event is considered stuck",
        ge=30
    )

    # ========== Idempotency ==========
    idempotency_ttl_hours: int = Field(
        default=24,
        description="Hours an idempotency key is honoured",
        ge=1
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for notifications"
    )
    slack_channel: str = Field(
        default="#ticket-escalations",
        description="Default Slack channel for ticket notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== Email Relay ==========
    email_relay_url: Optional[str] = Field(
        default=None,
        description="HTTP endpoint of the transactional email relay"
    )
    email_relay_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the email relay"
    )
    email_from: str = Field(
        default="support@example.com",
        description="Sender address for ticket emails"
    )
    email_timeout_seconds: float = Field(default=10.0, ge=0.1, le=60)

    # ========== Background Jobs ==========
    scheduler_enabled: bool = Field(
        default=True,
        description="Run escalation/outbox jobs inside the API process"
    )
    cron_secret: Optional[str] = Field(
        default=None,
        description="Shared secret required by the /cron endpoints"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str):
    """Ticket lifecycle statuses (values of the ticket_statuses table)."""
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    AWAITING_STUDENT_RESPONSE = "awaiting_student_response"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"
    CANCELLED = "cancelled"


class UserRole(str):
    """Roles mirrored from the identity provider."""
    SUPER_ADMIN = "super_admin"
    SNR_ADMIN = "snr_admin"
    ADMIN = "admin"
    COMMITTEE = "committee"
    STUDENT = "student"


class ActivityAction(str):
    """Kinds of ticket activity records."""
    CREATED = "created"
    COMMENT = "comment"
    INTERNAL_NOTE = "internal_note"
    STATUS_CHANGED = "status_changed"
    ESCALATED = "escalated"
    ASSIGNED = "assigned"
    DESCRIPTION_UPDATED = "description_updated"
    REOPENED = "reopened"
    TAT_EXTENDED = "tat_extended"
    RATED = "rated"


class Visibility(str):
    """Audience of an activity record."""
    PUBLIC = "public"
    STUDENT_VISIBLE = "student_visible"
    ADMIN_ONLY = "admin_only"


class OutboxStatus(str):
    """Outbox event lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


class EventType(str):
    """Outbox event types."""
    TICKET_CREATED = "ticket.created"
    TICKET_ASSIGNED = "ticket.assigned"
    TICKET_STATUS_UPDATED = "ticket.status_updated"
    TICKET_ESCALATED = "ticket.escalated"
    TICKET_COMMENT_ADDED = "ticket.comment_added"
    TICKET_REOPENED = "ticket.reopened"
    TICKET_TAT_EXTENDED = "ticket.tat_extended"


class NotificationChannel(str):
    """Delivery channels understood by the dispatcher."""
    SLACK = "slack"
    EMAIL = "email"


GLOBAL_DOMAIN = "Global"
UNASSIGNED = "unassigned"


# ========== Lists for validation ==========

VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.ACKNOWLEDGED, TicketStatus.IN_PROGRESS,
    TicketStatus.AWAITING_STUDENT_RESPONSE, TicketStatus.RESOLVED,
    TicketStatus.CLOSED, TicketStatus.REOPENED, TicketStatus.CANCELLED
]
FINAL_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED]
VALID_ROLES = [
    UserRole.SUPER_ADMIN, UserRole.SNR_ADMIN, UserRole.ADMIN,
    UserRole.COMMITTEE, UserRole.STUDENT
]
ADMIN_ROLES = [UserRole.SUPER_ADMIN, UserRole.SNR_ADMIN, UserRole.ADMIN]
STAFF_ROLES = ADMIN_ROLES + [UserRole.COMMITTEE]
VALID_VISIBILITIES = [Visibility.PUBLIC, Visibility.STUDENT_VISIBLE, Visibility.ADMIN_ONLY]
STUDENT_VISIBILITIES = [Visibility.PUBLIC, Visibility.STUDENT_VISIBLE]
VALID_OUTBOX_STATUSES = [
    OutboxStatus.PENDING, OutboxStatus.PROCESSING, OutboxStatus.COMPLETED,
    OutboxStatus.FAILED, OutboxStatus.DEAD_LETTER
]
VALID_EVENT_TYPES = [
    EventType.TICKET_CREATED, EventType.TICKET_ASSIGNED,
    EventType.TICKET_STATUS_UPDATED, EventType.TICKET_ESCALATED,
    EventType.TICKET_COMMENT_ADDED, EventType.TICKET_REOPENED,
    EventType.TICKET_TAT_EXTENDED
]


# ========== Limits ==========

DEFAULT_TAT_HOURS = 48
MAX_TAT_EXTENSION_HOURS = 720
COMMENT_MAX_LENGTH = 10000
TITLE_MAX_LENGTH = 255
IDEMPOTENCY_KEY_MAX_LENGTH = 64
