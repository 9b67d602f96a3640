"""
Ticket Mutation Service
=======================

Every externally triggered change to a ticket goes through here.

Each mutation follows the same shape:

1. replay the stored response if the Idempotency-Key was seen before
2. read phase: load the ticket and run the permission/transition checks
3. write phase: one transaction that re-reads the ticket FOR UPDATE,
   re-runs the checks against the locked row, applies the change, appends
   activity and records the idempotency key
4. after commit: hand the collected events to the outbox publisher
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ticketflow.assignment.domain import TicketPlacement
from ticketflow.config import (
    ActivityAction,
    EventType,
    STUDENT_VISIBILITIES,
    TicketStatus,
    UNASSIGNED,
    UserRole,
    VALID_STATUSES,
    Visibility,
)
from ticketflow.core.clock import Clock
from ticketflow.core.exceptions import (
    ConflictException,
    ForbiddenException,
    ResourceNotFoundException,
    ValidationException,
)
from ticketflow.identity.directory import Actor, parse_user_id
from ticketflow.outbox.application.publisher import OutboxPublisher
from ticketflow.outbox.domain import OutboxEvent
from ticketflow.shared.application.idempotency import IdempotencyService, request_hash
from ticketflow.shared.application.unit_of_work import IUnitOfWork, UnitOfWorkFactory
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application.escalation import EscalationService
from ticketflow.sla.application.interfaces import ISLAConfigProvider
from ticketflow.sla.domain import SLAConfig, TatCalculator
from ticketflow.tickets.application.dto import (
    ActivityResponse,
    CommentResponse,
    TicketCreateRequest,
    ticket_to_response,
)
from ticketflow.tickets.application.status_registry import StatusRegistry
from ticketflow.tickets.domain.events import ticket_event
from ticketflow.tickets.domain.metadata import TicketMetadata
from ticketflow.tickets.domain.statuses import StatusSnapshot
from ticketflow.tickets.domain.transitions import TransitionPlan, plan_transition

logger = get_logger(__name__)

# Metadata keys clients may not set directly
RESERVED_METADATA_KEYS = frozenset(TicketMetadata.model_fields)


@dataclass
class MutationContext:
    """State shared by the checks and the change of one mutation."""
    ticket: Any
    actor: Actor
    now: datetime
    snapshot: StatusSnapshot
    calculator: TatCalculator
    config: SLAConfig
    uow: Optional[IUnitOfWork] = None
    events: List[OutboxEvent] = field(default_factory=list)

    @property
    def status(self) -> str:
        return self.snapshot.value_for(self.ticket.status_id)

    @property
    def is_creator(self) -> bool:
        return self.ticket.created_by == self.actor.user_id

    @property
    def is_final(self) -> bool:
        return self.snapshot.is_final(self.status)

    async def log(self, action: str, details: Dict[str, Any], visibility: str) -> Any:
        return await self.uow.activity.append(
            ticket_id=self.ticket.id,
            user_id=self.actor.user_id,
            action=action,
            details=details,
            visibility=visibility,
            created_at=self.now,
        )

    def emit(self, event_type: str, activity: Any, **kwargs: Any) -> None:
        self.events.append(ticket_event(
            self.ticket,
            event_type,
            actor_id=self.actor.user_id,
            status=self.status,
            activity_id=activity.id if activity is not None else None,
            **kwargs,
        ))


Check = Callable[[MutationContext], None]
Apply = Callable[[MutationContext], Awaitable[Dict[str, Any]]]


def _can_view(ctx: MutationContext) -> None:
    if ctx.actor.is_staff or ctx.is_creator:
        return
    raise ForbiddenException(
        "You do not have access to this ticket",
        {"ticket_id": ctx.ticket.id}
    )


def _require_admin(ctx: MutationContext, action: str) -> None:
    if not ctx.actor.is_admin:
        raise ForbiddenException(f"Only admins can {action}")


def _require_creator_or_admin(ctx: MutationContext, action: str) -> None:
    if not (ctx.actor.is_admin or ctx.is_creator):
        raise ForbiddenException(f"Only the ticket creator or an admin can {action}")


def _require_open(ctx: MutationContext, action: str) -> None:
    if ctx.is_final:
        raise ValidationException(
            f"Cannot {action} a ticket in final status '{ctx.status}'",
            {"status": ctx.status}
        )


def _new_ticket_number(now: datetime) -> str:
    return f"TKT-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


class TicketMutationService:
    """
    Ticket lifecycle operations.

    Args:
        uow_factory: opens a unit of work
        statuses: status registry
        config_provider: current SLA configuration
        escalation: escalation engine, for manual escalation and hooks
        publisher: post-commit outbox publisher
        idempotency: Idempotency-Key store
        clock: time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        statuses: StatusRegistry,
        config_provider: ISLAConfigProvider,
        escalation: EscalationService,
        publisher: OutboxPublisher,
        idempotency: IdempotencyService,
        clock: Clock,
    ):
        self._uow_factory = uow_factory
        self._statuses = statuses
        self._config = config_provider
        self._escalation = escalation
        self._publisher = publisher
        self._idempotency = idempotency
        self._clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _replay(
        self,
        idempotency_key: Optional[str],
        operation: str,
        body: Dict[str, Any],
    ):
        """(key, fingerprint, stored response) for an optional Idempotency-Key."""
        key = self._idempotency.validate_key(idempotency_key)
        if not key:
            return None, None, None
        fingerprint = request_hash(operation, body)
        replay = await self._idempotency.lookup(key, operation, fingerprint)
        return key, fingerprint, replay

    async def _load(self, ticket_id: int) -> Any:
        async with self._uow_factory() as uow:
            ticket = await uow.tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def _mutate(
        self,
        ticket_id: int,
        actor: Actor,
        operation: str,
        body: Dict[str, Any],
        idempotency_key: Optional[str],
        check: Check,
        apply: Apply,
    ) -> Dict[str, Any]:
        key, fingerprint, replay = await self._replay(
            idempotency_key,
            operation,
            {"ticket_id": ticket_id, "actor": str(actor.user_id), **body},
        )
        if replay is not None:
            return replay

        snapshot = await self._statuses.snapshot()
        config = self._config.get_config()
        calculator = self._config.calculator()

        ticket = await self._load(ticket_id)
        check(MutationContext(
            ticket=ticket, actor=actor, now=self._clock.now(),
            snapshot=snapshot, calculator=calculator, config=config,
        ))

        now = self._clock.now()
        async with self._uow_factory() as uow:
            ticket = await uow.tickets.get(ticket_id, for_update=True)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", str(ticket_id))

            ctx = MutationContext(
                ticket=ticket, actor=actor, now=now,
                snapshot=snapshot, calculator=calculator, config=config, uow=uow,
            )
            check(ctx)
            response = await apply(ctx)
            ticket.updated_at = now

            if key:
                await self._idempotency.remember(
                    uow, key, operation, fingerprint, response, resource_id=ticket_id
                )

        await self._publisher.publish(ctx.events)
        return response

    def _view(self, ctx: MutationContext) -> Dict[str, Any]:
        return ticket_to_response(
            ctx.ticket, ctx.snapshot, ctx.calculator, ctx.now
        ).model_dump(mode="json")

    async def _sla_hours(self, uow: IUnitOfWork, ticket: Any, config: SLAConfig) -> float:
        """Subcategory TAT, else category TAT, else the configured default."""
        if ticket.subcategory_id is not None:
            sub = await uow.categories.get_subcategory(ticket.subcategory_id)
            if sub is not None and sub.sla_hours:
                return float(sub.sla_hours)
        if ticket.category_id is not None:
            category = await uow.categories.get(ticket.category_id)
            if category is not None and category.sla_hours:
                return float(category.sla_hours)
        return float(config.default_sla_hours)

    async def _transition(
        self,
        ctx: MutationContext,
        to_status: str,
        reason: Optional[str] = None,
        visibility: str = Visibility.STUDENT_VISIBLE,
        notify: bool = True,
    ) -> TransitionPlan:
        """Apply one status change with its TAT and bookkeeping side effects."""
        plan = plan_transition(ctx.status, to_status)
        ticket = ctx.ticket
        meta = TicketMetadata.from_raw(ticket.metadata_)

        if plan.pause_tat:
            state = ctx.calculator.pause(ticket.resolution_due_at, ctx.now, plan.from_status, meta.tat_state)
            meta = meta.updated(tat_state=state)
        elif plan.resume_tat and meta.tat_state is not None:
            ticket.resolution_due_at = ctx.calculator.resume(meta.tat_state, ctx.now)
            meta = meta.updated(tat_state=None)

        if plan.reopen:
            ticket.reopen_count = (ticket.reopen_count or 0) + 1
            ticket.escalation_level = 0
            ticket.escalated_at = None
            ticket.resolved_at = None
            ticket.closed_at = None
            sla_hours = await self._sla_hours(ctx.uow, ticket, ctx.config)
            ticket.resolution_due_at = ctx.calculator.initial_deadlines(ctx.now, sla_hours).resolution_due_at
            meta = meta.updated(tat_state=None, escalated_breaches=[])

        if plan.stamp:
            setattr(ticket, plan.stamp, ctx.now)

        ticket.status_id = ctx.snapshot.id_for(to_status)
        ticket.metadata_ = meta.to_raw()

        activity = await ctx.log(
            ActivityAction.REOPENED if plan.reopen else ActivityAction.STATUS_CHANGED,
            {"from_status": plan.from_status, "to_status": to_status, "reason": reason},
            Visibility.PUBLIC if plan.reopen else visibility,
        )

        if plan.reopen:
            ctx.emit(
                EventType.TICKET_REOPENED, activity,
                recipients=[ticket.assigned_to],
                slack=True,
                reason=reason,
                reopen_count=ticket.reopen_count,
            )
            if ticket.reopen_count >= ctx.config.reopen_escalation_threshold:
                outcome = await self._escalation.maybe_escalate(
                    ctx.uow, ticket,
                    reason=f"Ticket reopened {ticket.reopen_count} times",
                    trigger="reopen_threshold",
                    now=ctx.now,
                    snapshot=ctx.snapshot,
                    calculator=ctx.calculator,
                    config=ctx.config,
                    actor_id=ctx.actor.user_id,
                )
                if outcome is not None:
                    ctx.events.extend(outcome.events)
        elif notify:
            ctx.emit(
                EventType.TICKET_STATUS_UPDATED, activity,
                recipients=[ticket.created_by, ticket.assigned_to],
                old_status=plan.from_status,
                new_status=to_status,
                reason=reason,
            )

        logger.info(
            "Ticket status changed",
            extra={
                "ticket_id": ticket.id,
                "from_status": plan.from_status,
                "to_status": to_status,
                "actor_id": str(ctx.actor.user_id),
            }
        )
        return plan

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_ticket(
        self,
        actor: Actor,
        data: TicketCreateRequest,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Raise a ticket, route it and start its TAT clock."""
        key, fingerprint, replay = await self._replay(
            idempotency_key,
            "ticket.create",
            {"actor": str(actor.user_id), **data.model_dump(mode="json")},
        )
        if replay is not None:
            return replay

        reserved = sorted(RESERVED_METADATA_KEYS & set(data.metadata))
        if reserved:
            raise ValidationException(
                "metadata contains reserved keys",
                {"reserved_keys": reserved}
            )

        snapshot = await self._statuses.snapshot()
        config = self._config.get_config()
        calculator = self._config.calculator()

        async with self._uow_factory() as uow:
            category = None
            subcategory = None
            if data.category_id is not None:
                category = await uow.categories.get(data.category_id)
                if category is None or not category.is_active:
                    raise ValidationException(
                        "Unknown category",
                        {"category_id": data.category_id}
                    )
            if data.subcategory_id is not None:
                subcategory = await uow.categories.get_subcategory(data.subcategory_id)
                if subcategory is None or (
                    category is not None and subcategory.category_id != category.id
                ):
                    raise ValidationException(
                        "Unknown subcategory for this category",
                        {"subcategory_id": data.subcategory_id}
                    )
                if category is None:
                    category = await uow.categories.get(subcategory.category_id)
            resolver = await uow.assignments.load_resolver(category.id if category else None)

        placement = TicketPlacement(
            category_id=category.id if category else None,
            domain=category.domain if category else None,
            location=data.location,
            default_admin_id=category.default_admin_id if category else None,
        )
        assignee = resolver.resolve_candidates(placement)
        if assignee is None:
            logger.warning(
                "No admin matched new ticket, leaving it unassigned",
                extra={"category_id": placement.category_id, "location": data.location}
            )

        now = self._clock.now()
        async with self._uow_factory() as uow:
            ticket = await uow.tickets.add(
                ticket_number=_new_ticket_number(now),
                title=data.title,
                description=data.description,
                location=data.location,
                category_id=placement.category_id,
                subcategory_id=subcategory.id if subcategory else None,
                created_by=actor.user_id,
                assigned_to=assignee,
                status_id=snapshot.id_for(TicketStatus.OPEN),
                escalation_level=0,
                reopen_count=0,
                tat_extensions=0,
                metadata_=dict(data.metadata),
                created_at=now,
                updated_at=now,
            )
            sla_hours = await self._sla_hours(uow, ticket, config)
            deadlines = calculator.initial_deadlines(now, sla_hours)
            ticket.acknowledgement_due_at = deadlines.acknowledgement_due_at
            ticket.resolution_due_at = deadlines.resolution_due_at

            ctx = MutationContext(
                ticket=ticket, actor=actor, now=now,
                snapshot=snapshot, calculator=calculator, config=config, uow=uow,
            )
            activity = await ctx.log(
                ActivityAction.CREATED,
                {
                    "status": TicketStatus.OPEN,
                    "assigned_to": str(assignee) if assignee else None,
                    "sla_hours": sla_hours,
                },
                Visibility.PUBLIC,
            )
            ctx.emit(
                EventType.TICKET_CREATED, activity,
                recipients=[assignee],
                slack=True,
                description=data.description,
            )
            response = self._view(ctx)

            if key:
                await self._idempotency.remember(
                    uow, key, "ticket.create", fingerprint, response, resource_id=ticket.id
                )

        await self._publisher.publish(ctx.events)
        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "assigned_to": str(assignee) if assignee else None,
            }
        )
        return response

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def ask_question(
        self,
        ticket_id: int,
        actor: Actor,
        question: str,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Ask the creator a question and pause the TAT clock."""
        question = (question or "").strip()
        if not question:
            raise ValidationException("question must not be blank")

        def check(ctx: MutationContext) -> None:
            _require_admin(ctx, "ask questions")
            plan_transition(ctx.status, TicketStatus.AWAITING_STUDENT_RESPONSE)

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            activity = await ctx.log(
                ActivityAction.COMMENT,
                {"comment": question, "is_question": True},
                Visibility.STUDENT_VISIBLE,
            )
            await self._transition(
                ctx, TicketStatus.AWAITING_STUDENT_RESPONSE,
                reason="Question asked",
                notify=False,
            )
            ctx.emit(
                EventType.TICKET_COMMENT_ADDED, activity,
                recipients=[ctx.ticket.created_by],
                comment=question,
                is_question=True,
            )
            return self._view(ctx)

        return await self._mutate(
            ticket_id, actor, "ticket.ask_question", {"question": question},
            idempotency_key, check, apply,
        )

    async def escalate(
        self,
        ticket_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._escalation.escalate_manual(ticket_id, actor, reason, idempotency_key)

    async def add_comment(
        self,
        ticket_id: int,
        actor: Actor,
        comment: str,
        is_internal: bool = False,
        attachments: Optional[List[str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Comment on a ticket.

        Internal notes are admin-only and notify nobody. A reply from the
        creator while the ticket awaits their response moves it back to
        in_progress and resumes the TAT clock.
        """
        comment = (comment or "").strip()
        if not comment:
            raise ValidationException("comment must not be blank")
        attachments = list(attachments or [])

        def check(ctx: MutationContext) -> None:
            _can_view(ctx)
            if is_internal and not ctx.actor.is_staff:
                raise ForbiddenException("Only staff can add internal notes")
            if ctx.status in (TicketStatus.CLOSED, TicketStatus.CANCELLED):
                raise ValidationException(
                    f"Cannot comment on a ticket in status '{ctx.status}'",
                    {"status": ctx.status}
                )

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            details = {"comment": comment, "attachments": attachments or None}
            if is_internal:
                activity = await ctx.log(ActivityAction.INTERNAL_NOTE, details, Visibility.ADMIN_ONLY)
            else:
                activity = await ctx.log(ActivityAction.COMMENT, details, Visibility.PUBLIC)

                new_status = None
                if ctx.is_creator and ctx.status == TicketStatus.AWAITING_STUDENT_RESPONSE:
                    await self._transition(
                        ctx, TicketStatus.IN_PROGRESS,
                        reason="Student replied",
                        notify=False,
                    )
                    new_status = TicketStatus.IN_PROGRESS

                recipient = ctx.ticket.assigned_to if ctx.is_creator else ctx.ticket.created_by
                ctx.emit(
                    EventType.TICKET_COMMENT_ADDED, activity,
                    recipients=[recipient],
                    comment=comment,
                    new_status=new_status,
                )

            return CommentResponse(
                activity=ActivityResponse.from_model(activity),
                ticket=ticket_to_response(ctx.ticket, ctx.snapshot, ctx.calculator, ctx.now),
            ).model_dump(mode="json")

        return await self._mutate(
            ticket_id, actor, "ticket.comment",
            {"comment": comment, "is_internal": is_internal, "attachments": attachments},
            idempotency_key, check, apply,
        )

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    async def reassign(
        self,
        ticket_id: int,
        actor: Actor,
        assigned_to: Optional[str],
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Hand the ticket to another admin, or to nobody with ``"unassigned"``."""
        target = None
        if assigned_to is not None and assigned_to != UNASSIGNED:
            target = parse_user_id(assigned_to)
            if target is None:
                raise ValidationException(
                    "assignedTo must be a user id or 'unassigned'",
                    {"assignedTo": assigned_to}
                )

        def check(ctx: MutationContext) -> None:
            _require_admin(ctx, "reassign tickets")
            _require_open(ctx, "reassign")

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            ticket = ctx.ticket
            if target is not None:
                user = await ctx.uow.users.get(target)
                if user is None:
                    raise ResourceNotFoundException("User", str(target))
                if user.role == UserRole.STUDENT:
                    raise ValidationException(
                        "Tickets can only be assigned to staff",
                        {"assignedTo": str(target)}
                    )

            previous = ticket.assigned_to
            if previous == target:
                return self._view(ctx)

            meta = TicketMetadata.from_raw(ticket.metadata_)
            ticket.metadata_ = meta.updated(
                previous_assigned_to=str(previous) if previous else None
            ).to_raw()
            ticket.assigned_to = target

            activity = await ctx.log(
                ActivityAction.ASSIGNED,
                {
                    "from": str(previous) if previous else None,
                    "to": str(target) if target else UNASSIGNED,
                    "reason": reason,
                },
                Visibility.ADMIN_ONLY,
            )
            ctx.emit(
                EventType.TICKET_ASSIGNED, activity,
                recipients=[target],
                previous_assignee_id=str(previous) if previous else None,
                reason=reason,
            )
            return self._view(ctx)

        return await self._mutate(
            ticket_id, actor, "ticket.reassign",
            {"assigned_to": str(target) if target else UNASSIGNED, "reason": reason},
            idempotency_key, check, apply,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def change_status(
        self,
        ticket_id: int,
        actor: Actor,
        status: str,
        comment: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        operation: str = "ticket.status",
    ) -> Dict[str, Any]:
        """Move the ticket along the state machine."""
        if status not in VALID_STATUSES:
            raise ValidationException(
                f"Unknown status '{status}'",
                {"valid_statuses": VALID_STATUSES}
            )

        def check(ctx: MutationContext) -> None:
            if status == TicketStatus.REOPENED:
                _require_creator_or_admin(ctx, "reopen tickets")
            else:
                _require_admin(ctx, "change ticket status")
            plan_transition(ctx.status, status)

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            await self._transition(ctx, status, reason=comment)
            return self._view(ctx)

        return await self._mutate(
            ticket_id, actor, operation, {"status": status, "comment": comment},
            idempotency_key, check, apply,
        )

    async def resolve(
        self,
        ticket_id: int,
        actor: Actor,
        comment: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.change_status(
            ticket_id, actor, TicketStatus.RESOLVED, comment,
            idempotency_key, operation="ticket.resolve",
        )

    async def reopen(
        self,
        ticket_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Reopen a resolved or closed ticket.

        Resets escalation, starts a fresh resolution deadline and escalates
        automatically once the reopen count reaches the configured threshold.
        """
        return await self.change_status(
            ticket_id, actor, TicketStatus.REOPENED, reason,
            idempotency_key, operation="ticket.reopen",
        )

    # ------------------------------------------------------------------
    # TAT
    # ------------------------------------------------------------------

    async def extend_tat(
        self,
        ticket_id: int,
        actor: Actor,
        hours: float,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Push the resolution deadline out by business hours."""
        if hours is None or hours <= 0:
            raise ValidationException("Extension hours must be positive", {"hours": hours})

        def check(ctx: MutationContext) -> None:
            _require_admin(ctx, "extend TAT")
            _require_open(ctx, "extend TAT on")
            if ctx.ticket.resolution_due_at is None:
                raise ValidationException("Ticket has no TAT deadline to extend")

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            ticket = ctx.ticket
            meta = TicketMetadata.from_raw(ticket.metadata_)
            extension = ctx.calculator.extend(
                ticket.resolution_due_at, hours, ctx.now,
                tat_state=meta.tat_state,
                reason=reason,
                extended_by=str(ctx.actor.user_id),
            )
            # A paused ticket keeps its deadline; the resume recomputes it
            if meta.tat_state is None:
                ticket.resolution_due_at = extension.new_deadline
            changes = {"extensions": meta.extensions + [extension.record]}
            if meta.tat_state is not None:
                changes["tat_state"] = extension.tat_state
            ticket.metadata_ = meta.updated(**changes).to_raw()
            ticket.tat_extensions = (ticket.tat_extensions or 0) + 1

            activity = await ctx.log(
                ActivityAction.TAT_EXTENDED,
                {
                    "hours": hours,
                    "reason": reason,
                    "previous_deadline": extension.record.previous_deadline.isoformat(),
                    "new_deadline": extension.new_deadline.isoformat(),
                    "extension_count": ticket.tat_extensions,
                },
                Visibility.STUDENT_VISIBLE,
            )
            ctx.emit(
                EventType.TICKET_TAT_EXTENDED, activity,
                recipients=[ticket.created_by],
                hours=hours,
                reason=reason,
                new_deadline=extension.new_deadline.isoformat(),
            )

            if ticket.tat_extensions in ctx.config.extension_escalation_counts:
                outcome = await self._escalation.maybe_escalate(
                    ctx.uow, ticket,
                    reason=f"TAT extended {ticket.tat_extensions} times",
                    trigger="tat_extensions",
                    now=ctx.now,
                    snapshot=ctx.snapshot,
                    calculator=ctx.calculator,
                    config=ctx.config,
                    actor_id=ctx.actor.user_id,
                )
                if outcome is not None:
                    ctx.events.extend(outcome.events)
            return self._view(ctx)

        return await self._mutate(
            ticket_id, actor, "ticket.tat_extend", {"hours": hours, "reason": reason},
            idempotency_key, check, apply,
        )

    # ------------------------------------------------------------------
    # Feedback and edits
    # ------------------------------------------------------------------

    async def rate(
        self,
        ticket_id: int,
        actor: Actor,
        rating: int,
        feedback: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Creator's 1-5 rating of a resolved ticket; a poor one escalates."""
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationException("rating must be between 1 and 5", {"rating": rating})

        def check(ctx: MutationContext) -> None:
            if not ctx.is_creator:
                raise ForbiddenException("Only the ticket creator can rate it")
            if ctx.status not in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
                raise ValidationException(
                    "Only resolved or closed tickets can be rated",
                    {"status": ctx.status}
                )
            if TicketMetadata.from_raw(ctx.ticket.metadata_).rating is not None:
                raise ConflictException("Ticket has already been rated", {"ticket_id": ctx.ticket.id})

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            ticket = ctx.ticket
            meta = TicketMetadata.from_raw(ticket.metadata_)
            ticket.metadata_ = meta.updated(
                rating=rating, feedback=feedback, rated_at=ctx.now
            ).to_raw()
            await ctx.log(
                ActivityAction.RATED,
                {"rating": rating, "feedback": feedback},
                Visibility.PUBLIC,
            )

            if rating <= ctx.config.poor_rating_threshold:
                outcome = await self._escalation.maybe_escalate(
                    ctx.uow, ticket,
                    reason=f"Poor rating ({rating}/5)",
                    trigger="poor_rating",
                    now=ctx.now,
                    snapshot=ctx.snapshot,
                    calculator=ctx.calculator,
                    config=ctx.config,
                    actor_id=ctx.actor.user_id,
                )
                if outcome is not None:
                    ctx.events.extend(outcome.events)
            return self._view(ctx)

        return await self._mutate(
            ticket_id, actor, "ticket.rate", {"rating": rating, "feedback": feedback},
            idempotency_key, check, apply,
        )

    async def update_description(
        self,
        ticket_id: int,
        actor: Actor,
        description: str,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        description = (description or "").strip()
        if not description:
            raise ValidationException("description must not be blank")

        def check(ctx: MutationContext) -> None:
            _require_creator_or_admin(ctx, "edit the description")
            _require_open(ctx, "edit")

        async def apply(ctx: MutationContext) -> Dict[str, Any]:
            previous = ctx.ticket.description
            ctx.ticket.description = description
            await ctx.log(
                ActivityAction.DESCRIPTION_UPDATED,
                {"previous": previous, "description": description},
                Visibility.PUBLIC,
            )
            return self._view(ctx)

        return await self._mutate(
            ticket_id, actor, "ticket.description", {"description": description},
            idempotency_key, check, apply,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read_context(self, ticket_id: int, actor: Actor) -> MutationContext:
        snapshot = await self._statuses.snapshot()
        ticket = await self._load(ticket_id)
        ctx = MutationContext(
            ticket=ticket, actor=actor, now=self._clock.now(),
            snapshot=snapshot, calculator=self._config.calculator(),
            config=self._config.get_config(),
        )
        _can_view(ctx)
        return ctx

    async def get_ticket(self, ticket_id: int, actor: Actor) -> Dict[str, Any]:
        ctx = await self._read_context(ticket_id, actor)
        return self._view(ctx)

    async def list_activity(self, ticket_id: int, actor: Actor) -> List[Dict[str, Any]]:
        """Activity log; students only see public and student-visible entries."""
        await self._read_context(ticket_id, actor)
        visibilities = None if actor.is_staff else STUDENT_VISIBILITIES
        async with self._uow_factory() as uow:
            rows = await uow.activity.list_for_ticket(ticket_id, visibilities)
        return [ActivityResponse.from_model(row).model_dump(mode="json") for row in rows]

    async def list_for_admin(self, actor: Actor, limit: int = 100) -> List[Dict[str, Any]]:
        """Open tickets this admin is responsible for."""
        if not actor.is_staff:
            raise ForbiddenException("Only staff have assigned tickets")

        snapshot = await self._statuses.snapshot()
        calculator = self._config.calculator()
        now = self._clock.now()

        async with self._uow_factory() as uow:
            tickets = await uow.tickets.list_open(snapshot.final_ids(), limit=limit * 5)
            resolver = await uow.assignments.load_resolver()
            grants = resolver.grants_for(actor.user_id)

            mine = []
            categories: Dict[int, Any] = {}
            for ticket in tickets:
                if actor.role != UserRole.SUPER_ADMIN:
                    category = None
                    if ticket.category_id is not None:
                        if ticket.category_id not in categories:
                            categories[ticket.category_id] = await uow.categories.get(ticket.category_id)
                        category = categories[ticket.category_id]
                    placement = TicketPlacement(
                        category_id=ticket.category_id,
                        domain=category.domain if category else None,
                        location=ticket.location,
                        assigned_to=ticket.assigned_to,
                        default_admin_id=category.default_admin_id if category else None,
                    )
                    if not resolver.resolve(placement, actor.user_id, grants):
                        continue
                mine.append(ticket)
                if len(mine) >= limit:
                    break

        return [
            ticket_to_response(t, snapshot, calculator, now).model_dump(mode="json")
            for t in mine
        ]
