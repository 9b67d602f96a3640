"""
Ticket Application DTOs
=======================

Pydantic models for the ticket API: request bodies and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ticketflow.config import (
    COMMENT_MAX_LENGTH,
    MAX_TAT_EXTENSION_HOURS,
    TITLE_MAX_LENGTH,
)
from ticketflow.sla.domain import TatCalculator
from ticketflow.tickets.domain.metadata import TicketMetadata
from ticketflow.tickets.domain.statuses import StatusEntry, StatusSnapshot


def _strip(v: Optional[str]) -> Optional[str]:
    return v.strip() if isinstance(v, str) else v


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request body for raising a ticket."""
    title: Optional[str] = Field(None, max_length=TITLE_MAX_LENGTH)
    description: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)
    location: Optional[str] = Field(None, max_length=255)
    category_id: Optional[int] = Field(None, ge=1)
    subcategory_id: Optional[int] = Field(None, ge=1)
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Dynamic form fields stored with the ticket"
    )

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description must not be blank")
        return v.strip()

    @field_validator("title", "location")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        v = _strip(v)
        return v or None


class AskQuestionRequest(BaseModel):
    """Admin question to the ticket creator."""
    question: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)


class EscalateRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class CommentRequest(BaseModel):
    """New comment or internal note."""
    comment: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)
    is_internal: bool = Field(default=False, description="Admin-only note")
    attachments: List[str] = Field(default_factory=list)


class ReassignRequest(BaseModel):
    """Reassignment target: a user id or ``"unassigned"``."""
    model_config = ConfigDict(populate_by_name=True)

    assigned_to: str = Field(..., alias="assignedTo", min_length=1)
    reason: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class StatusChangeRequest(BaseModel):
    status: str = Field(..., min_length=1)
    comment: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class ResolveRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class ReopenRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class TatExtendRequest(BaseModel):
    """Push the resolution deadline out by business hours."""
    hours: float = Field(..., gt=0, le=MAX_TAT_EXTENSION_HOURS)
    reason: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=COMMENT_MAX_LENGTH)


class DescriptionUpdateRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)


# ========== Response DTOs ==========

class StatusResponse(BaseModel):
    """One entry of the status registry."""
    value: str
    label: str
    progress_percent: int
    display_order: int
    is_final: bool
    description: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: StatusEntry) -> "StatusResponse":
        return cls(
            value=entry.value,
            label=entry.label,
            progress_percent=entry.progress_percent,
            display_order=entry.display_order,
            is_final=entry.is_final,
            description=entry.description,
        )


class TicketResponse(BaseModel):
    """Ticket with its lifecycle and TAT view."""
    id: int
    ticket_number: str
    title: Optional[str] = None
    description: str
    location: Optional[str] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    created_by: UUID
    assigned_to: Optional[UUID] = None

    status: str
    status_label: str
    progress_percent: int
    is_final: bool

    escalation_level: int
    escalated_at: Optional[datetime] = None
    reopen_count: int
    tat_extensions: int

    acknowledgement_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None

    tat_paused: bool = False
    remaining_business_hours: Optional[float] = None
    is_overdue: bool = False
    rating: Optional[int] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class ActivityResponse(BaseModel):
    """One activity log entry."""
    id: int
    ticket_id: int
    user_id: Optional[UUID] = None
    action: str
    details: Dict[str, Any] = Field(default_factory=dict)
    visibility: str
    created_at: datetime

    @classmethod
    def from_model(cls, model: Any) -> "ActivityResponse":
        return cls(
            id=model.id,
            ticket_id=model.ticket_id,
            user_id=model.user_id,
            action=model.action,
            details=dict(model.details or {}),
            visibility=model.visibility,
            created_at=model.created_at,
        )


class EscalationResponse(BaseModel):
    ticket_id: int
    escalation_level: int
    escalated_at: datetime


class CommentResponse(BaseModel):
    """The new activity row and the ticket after the comment."""
    activity: ActivityResponse
    ticket: TicketResponse


def ticket_to_response(
    ticket: Any,
    snapshot: StatusSnapshot,
    calculator: TatCalculator,
    now: datetime,
) -> TicketResponse:
    """Build the API view of a ticket row."""
    status = snapshot.value_for(ticket.status_id)
    entry = snapshot.get(status) if status else None
    is_final = entry.is_final if entry else False

    meta = TicketMetadata.from_raw(ticket.metadata_)
    remaining: Optional[float] = None
    if meta.tat_state is not None:
        remaining = meta.tat_state.remaining_hours
    elif ticket.resolution_due_at is not None and not is_final:
        remaining = round(calculator.remaining_business_hours(ticket.resolution_due_at, now), 2)

    overdue = False
    if not meta.tat_state_unreliable:
        overdue = calculator.is_overdue(ticket.resolution_due_at, meta.tat_state, now, is_final)

    return TicketResponse(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        title=ticket.title,
        description=ticket.description,
        location=ticket.location,
        category_id=ticket.category_id,
        subcategory_id=ticket.subcategory_id,
        created_by=ticket.created_by,
        assigned_to=ticket.assigned_to,
        status=status,
        status_label=entry.label if entry else status,
        progress_percent=entry.progress_percent if entry else 0,
        is_final=is_final,
        escalation_level=ticket.escalation_level,
        escalated_at=ticket.escalated_at,
        reopen_count=ticket.reopen_count,
        tat_extensions=ticket.tat_extensions,
        acknowledgement_due_at=ticket.acknowledgement_due_at,
        resolution_due_at=ticket.resolution_due_at,
        acknowledged_at=ticket.acknowledged_at,
        resolved_at=ticket.resolved_at,
        closed_at=ticket.closed_at,
        reopened_at=ticket.reopened_at,
        tat_paused=meta.is_paused,
        remaining_business_hours=remaining,
        is_overdue=overdue,
        rating=meta.rating,
        metadata=dict(ticket.metadata_ or {}) if isinstance(ticket.metadata_, dict) else {},
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
    )
