"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle.

Controllers are thin - they resolve the caller and delegate to
TicketMutationService.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query, status

from ticketflow.container import ServiceContainer
from ticketflow.core.exceptions import ForbiddenException
from ticketflow.identity.directory import Actor
from ticketflow.shared.api.dependencies import get_container
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.tickets.application.dto import (
    AskQuestionRequest,
    CommentRequest,
    DescriptionUpdateRequest,
    EscalateRequest,
    EscalationResponse,
    RatingRequest,
    ReassignRequest,
    ReopenRequest,
    ResolveRequest,
    StatusChangeRequest,
    StatusResponse,
    TatExtendRequest,
    TicketCreateRequest,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])
status_router = APIRouter(prefix="/statuses", tags=["Statuses"])


# ========== Example payloads for Swagger ==========

ESCALATION_RESPONSE_EXAMPLE = {
    "ticket_id": 42,
    "escalation_level": 1,
    "escalated_at": "2024-01-15T10:00:00+00:00"
}


# ========== Dependencies ==========

async def get_actor(
    container: ServiceContainer = Depends(get_container),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    """Resolve the authenticated caller from the gateway headers."""
    if not x_user_id or not x_user_id.strip():
        raise ForbiddenException("Missing X-User-Id header")
    return await container.identity.ensure_user(
        x_user_id, email=x_user_email, full_name=x_user_name
    )


def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> Optional[str]:
    return idempotency_key


# ========== Route Handlers ==========

@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Raise a ticket",
    description="""
    Create a ticket, route it to the responsible admin and start its TAT clock.

    **Idempotent**: send an `Idempotency-Key` header to make retries safe.
    The same key with the same body returns the original response; the same
    key with a different body is rejected with 409.

    **Example Request**:
    ```json
    {
        "title": "Hostel wifi down",
        "description": "No connectivity on the second floor since this morning.",
        "location": "Block A",
        "category_id": 3,
        "metadata": {"room": "A-214"}
    }
    ```
    """,
    responses={201: {"description": "Ticket created"}, 409: {"description": "Idempotency conflict"}},
)
async def create_ticket(
    body: TicketCreateRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.create_ticket(actor, body, idempotency_key)


@router.get(
    "/assigned/me",
    summary="Tickets assigned to me",
    description="Open tickets the calling admin is responsible for, newest first.",
)
async def list_my_tickets(
    limit: int = Query(100, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
) -> List[Dict[str, Any]]:
    return await container.tickets.list_for_admin(actor, limit=limit)


@router.get("/{ticket_id}", summary="Get a ticket")
async def get_ticket(
    ticket_id: int,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
) -> Dict[str, Any]:
    return await container.tickets.get_ticket(ticket_id, actor)


@router.get(
    "/{ticket_id}/activity",
    summary="Ticket activity log",
    description="Students only see public and student-visible entries.",
)
async def list_activity(
    ticket_id: int,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
) -> List[Dict[str, Any]]:
    return await container.tickets.list_activity(ticket_id, actor)


@router.post(
    "/{ticket_id}/ask-question",
    summary="Ask the creator a question",
    description="Admin only. Moves the ticket to `awaiting_student_response` and pauses the TAT clock.",
)
async def ask_question(
    ticket_id: int,
    body: AskQuestionRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.ask_question(ticket_id, actor, body.question, idempotency_key)


@router.post(
    "/{ticket_id}/escalate",
    response_model=EscalationResponse,
    summary="Escalate a ticket",
    description="Creator or admin. Rejected once the maximum escalation level is reached.",
    responses={
        200: {
            "description": "Ticket escalated",
            "content": {"application/json": {"example": ESCALATION_RESPONSE_EXAMPLE}}
        }
    },
)
async def escalate_ticket(
    ticket_id: int,
    body: Optional[EscalateRequest] = None,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    reason = body.reason if body else None
    return await container.tickets.escalate(ticket_id, actor, reason, idempotency_key)


@router.post(
    "/{ticket_id}/comments",
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a ticket",
    description="""
    Public comment, or an admin-only internal note with `is_internal`.

    A reply from the creator while the ticket awaits their response moves it
    back to `in_progress` and resumes the TAT clock.
    """,
)
async def add_comment(
    ticket_id: int,
    body: CommentRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.add_comment(
        ticket_id, actor, body.comment,
        is_internal=body.is_internal,
        attachments=body.attachments,
        idempotency_key=idempotency_key,
    )


@router.post("/{ticket_id}/reassign", summary="Reassign a ticket")
async def reassign_ticket(
    ticket_id: int,
    body: ReassignRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.reassign(
        ticket_id, actor, body.assigned_to, body.reason, idempotency_key
    )


@router.post("/{ticket_id}/status", summary="Change ticket status")
async def change_status(
    ticket_id: int,
    body: StatusChangeRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.change_status(
        ticket_id, actor, body.status, body.comment, idempotency_key
    )


@router.post("/{ticket_id}/resolve", summary="Resolve a ticket")
async def resolve_ticket(
    ticket_id: int,
    body: Optional[ResolveRequest] = None,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    comment = body.comment if body else None
    return await container.tickets.resolve(ticket_id, actor, comment, idempotency_key)


@router.post("/{ticket_id}/reopen", summary="Reopen a ticket")
async def reopen_ticket(
    ticket_id: int,
    body: Optional[ReopenRequest] = None,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    reason = body.reason if body else None
    return await container.tickets.reopen(ticket_id, actor, reason, idempotency_key)


@router.post(
    "/{ticket_id}/tat/extend",
    summary="Extend the TAT",
    description="Admin only. Hours are business hours on the SLA calendar.",
)
async def extend_tat(
    ticket_id: int,
    body: TatExtendRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.extend_tat(
        ticket_id, actor, body.hours, body.reason, idempotency_key
    )


@router.post("/{ticket_id}/rating", summary="Rate a resolved ticket")
async def rate_ticket(
    ticket_id: int,
    body: RatingRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.rate(
        ticket_id, actor, body.rating, body.feedback, idempotency_key
    )


@router.patch("/{ticket_id}/description", summary="Edit the description")
async def update_description(
    ticket_id: int,
    body: DescriptionUpdateRequest,
    container: ServiceContainer = Depends(get_container),
    actor: Actor = Depends(get_actor),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
) -> Dict[str, Any]:
    return await container.tickets.update_description(
        ticket_id, actor, body.description, idempotency_key
    )


@status_router.get(
    "",
    response_model=List[StatusResponse],
    summary="List ticket statuses",
    description="Active entries of the status registry in display order.",
)
async def list_statuses(
    container: ServiceContainer = Depends(get_container),
) -> List[StatusResponse]:
    entries = await container.statuses.get_statuses()
    return [StatusResponse.from_entry(entry) for entry in entries]


# Export router
tickets_router = router
