"""
Escalation Engine
=================

Raises a ticket's escalation level, manually or when a TAT deadline lapses.

Every escalation moves the level up by exactly one, stamps
``escalated_at``, writes an admin-only ``escalated`` activity and queues a
``ticket.escalated`` outbox event for the person named by the matching
escalation rule.

The automatic sweep is idempotent: each lapsed deadline is recorded as a
breach marker in the ticket metadata and is never escalated twice.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ticketflow.config import (
    ActivityAction,
    EventType,
    GLOBAL_DOMAIN,
    NotificationChannel,
    TicketStatus,
    Visibility,
)
from ticketflow.core.clock import Clock
from ticketflow.core.exceptions import (
    ForbiddenException,
    ResourceNotFoundException,
    ValidationException,
)
from ticketflow.identity.directory import Actor
from ticketflow.outbox.application.publisher import OutboxPublisher
from ticketflow.outbox.domain import OutboxEvent
from ticketflow.shared.application.idempotency import IdempotencyService, request_hash
from ticketflow.shared.application.unit_of_work import IUnitOfWork, UnitOfWorkFactory
from ticketflow.shared.infrastructure.logging import get_logger, log_latency
from ticketflow.sla.application.interfaces import ISLAConfigProvider
from ticketflow.sla.domain import Breach, SLAConfig, TatCalculator
from ticketflow.tickets.domain.events import ticket_event
from ticketflow.tickets.domain.metadata import TicketMetadata
from ticketflow.tickets.domain.statuses import StatusSnapshot

if TYPE_CHECKING:
    from ticketflow.tickets.application.status_registry import StatusRegistry

logger = get_logger(__name__)

MISSING_RULE_NOTE = "(no matching escalation rule found)"


@dataclass
class EscalationOutcome:
    """What one escalation did."""
    ticket_id: int
    previous_level: int
    escalation_level: int
    escalated_at: datetime
    trigger: str
    rule_id: Optional[int] = None
    activity_id: Optional[int] = None
    events: List[OutboxEvent] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "escalation_level": self.escalation_level,
            "escalated_at": self.escalated_at.isoformat(),
        }


@dataclass
class SweepResult:
    """Counters for one automatic sweep."""
    scanned: int = 0
    escalated: int = 0
    skipped: int = 0
    ticket_ids: List[int] = field(default_factory=list)


class EscalationService:
    """
    Manual escalation, the automatic sweep, and the in-transaction hooks
    used by the ticket mutation service.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        statuses: "StatusRegistry",
        config_provider: ISLAConfigProvider,
        publisher: OutboxPublisher,
        clock: Clock,
        idempotency: Optional[IdempotencyService] = None,
    ):
        self._uow_factory = uow_factory
        self._statuses = statuses
        self._config = config_provider
        self._publisher = publisher
        self._clock = clock
        self._idempotency = idempotency

    # ------------------------------------------------------------------
    # Core transition
    # ------------------------------------------------------------------

    async def escalate_in(
        self,
        uow: IUnitOfWork,
        ticket: Any,
        *,
        actor_id: Optional[Any],
        reason: Optional[str],
        now: datetime,
        snapshot: StatusSnapshot,
        calculator: TatCalculator,
        trigger: str = "manual",
        breach: Optional[Breach] = None,
    ) -> EscalationOutcome:
        """
        Escalate a ticket already locked by the caller's transaction.

        Does not check level limits; callers do.
        """
        previous_level = ticket.escalation_level or 0
        next_level = previous_level + 1

        domain = GLOBAL_DOMAIN
        if ticket.category_id is not None:
            category = await uow.categories.get(ticket.category_id)
            if category is not None and category.domain:
                domain = category.domain
        rule = await uow.escalation_rules.find(domain, ticket.location, next_level)

        meta = TicketMetadata.from_raw(ticket.metadata_)
        changes: Dict[str, Any] = {"last_escalation_at": now}
        if breach is not None and not meta.has_breach_marker(breach.marker):
            changes["escalated_breaches"] = meta.escalated_breaches + [breach.marker]

        if rule is not None and rule.tat_hours:
            if meta.tat_state is not None:
                changes["tat_state"] = meta.tat_state.model_copy(
                    update={"remaining_hours": float(rule.tat_hours)}
                )
            else:
                ticket.resolution_due_at = calculator.add_business_hours(now, rule.tat_hours)

        ticket.escalation_level = next_level
        ticket.escalated_at = now
        ticket.metadata_ = meta.updated(**changes).to_raw()
        ticket.updated_at = now

        reason_text = reason or "Ticket escalated"
        if rule is None:
            reason_text = f"{reason_text} {MISSING_RULE_NOTE}"
            logger.warning(
                "No escalation rule matched, escalating without a target",
                extra={
                    "ticket_id": ticket.id,
                    "domain": domain,
                    "scope": ticket.location,
                    "level": next_level,
                }
            )

        activity = await uow.activity.append(
            ticket_id=ticket.id,
            user_id=actor_id,
            action=ActivityAction.ESCALATED,
            details={
                "previous_level": previous_level,
                "escalation_level": next_level,
                "reason": reason_text,
                "trigger": trigger,
                "rule_id": rule.id if rule else None,
                "escalate_to": str(rule.escalate_to_user_id) if rule and rule.escalate_to_user_id else None,
                "breach": breach.marker if breach else None,
            },
            visibility=Visibility.ADMIN_ONLY,
            created_at=now,
        )

        if rule is not None and rule.escalate_to_user_id is not None:
            recipients = [rule.escalate_to_user_id]
            slack = rule.notify_channel == NotificationChannel.SLACK
        else:
            recipients = [ticket.assigned_to]
            slack = True

        event = ticket_event(
            ticket,
            EventType.TICKET_ESCALATED,
            actor_id=actor_id,
            status=snapshot.value_for(ticket.status_id),
            recipients=recipients,
            slack=slack,
            activity_id=activity.id,
            reason=reason_text,
            trigger=trigger,
            previous_level=previous_level,
            escalate_to=str(rule.escalate_to_user_id) if rule and rule.escalate_to_user_id else None,
        )

        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": ticket.id,
                "escalation_level": next_level,
                "trigger": trigger,
                "rule_id": rule.id if rule else None,
            }
        )

        return EscalationOutcome(
            ticket_id=ticket.id,
            previous_level=previous_level,
            escalation_level=next_level,
            escalated_at=now,
            trigger=trigger,
            rule_id=rule.id if rule else None,
            activity_id=activity.id,
            events=[event],
        )

    async def maybe_escalate(
        self,
        uow: IUnitOfWork,
        ticket: Any,
        *,
        reason: str,
        trigger: str,
        now: datetime,
        snapshot: StatusSnapshot,
        calculator: TatCalculator,
        config: SLAConfig,
        actor_id: Optional[Any] = None,
    ) -> Optional[EscalationOutcome]:
        """Automatic escalation hook; stops at the configured maximum level."""
        if (ticket.escalation_level or 0) >= config.max_escalation_level:
            logger.info(
                "Ticket already at maximum escalation level",
                extra={"ticket_id": ticket.id, "trigger": trigger}
            )
            return None
        return await self.escalate_in(
            uow, ticket,
            actor_id=actor_id,
            reason=reason,
            now=now,
            snapshot=snapshot,
            calculator=calculator,
            trigger=trigger,
        )

    # ------------------------------------------------------------------
    # Manual escalation
    # ------------------------------------------------------------------

    def _check_manual(
        self,
        ticket: Any,
        actor: Actor,
        snapshot: StatusSnapshot,
        config: SLAConfig,
    ) -> None:
        if not actor.is_admin and ticket.created_by != actor.user_id:
            raise ForbiddenException("Only the ticket creator or an admin can escalate")

        status = snapshot.value_for(ticket.status_id)
        if snapshot.is_final(status):
            raise ValidationException(
                f"Cannot escalate a ticket in final status '{status}'",
                {"status": status}
            )
        if (ticket.escalation_level or 0) >= config.max_escalation_level:
            raise ValidationException(
                "Ticket is already at the maximum escalation level",
                {
                    "escalation_level": ticket.escalation_level,
                    "max_escalation_level": config.max_escalation_level,
                }
            )

    async def escalate_manual(
        self,
        ticket_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Escalate on request of the creator or an admin.

        Returns:
            ``{ticket_id, escalation_level, escalated_at}``
        """
        key = None
        fingerprint = None
        if self._idempotency is not None:
            key = self._idempotency.validate_key(idempotency_key)
        if key:
            fingerprint = request_hash(
                "ticket.escalate",
                {"ticket_id": ticket_id, "reason": reason, "actor": str(actor.user_id)},
            )
            replay = await self._idempotency.lookup(key, "ticket.escalate", fingerprint)
            if replay is not None:
                return replay

        snapshot = await self._statuses.snapshot()
        config = self._config.get_config()
        calculator = self._config.calculator()

        async with self._uow_factory() as uow:
            ticket = await uow.tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        self._check_manual(ticket, actor, snapshot, config)

        now = self._clock.now()
        async with self._uow_factory() as uow:
            ticket = await uow.tickets.get(ticket_id, for_update=True)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", str(ticket_id))
            self._check_manual(ticket, actor, snapshot, config)

            outcome = await self.escalate_in(
                uow, ticket,
                actor_id=actor.user_id,
                reason=reason or "Escalated manually",
                now=now,
                snapshot=snapshot,
                calculator=calculator,
                trigger="manual",
            )
            response = outcome.to_response()
            if key:
                await self._idempotency.remember(
                    uow, key, "ticket.escalate", fingerprint, response, resource_id=ticket_id
                )

        await self._publisher.publish(outcome.events)
        return response

    # ------------------------------------------------------------------
    # Automatic sweep
    # ------------------------------------------------------------------

    def _breach_for(
        self,
        ticket: Any,
        snapshot: StatusSnapshot,
        calculator: TatCalculator,
        now: datetime,
    ) -> Optional[Breach]:
        meta = TicketMetadata.from_raw(ticket.metadata_)
        if meta.invalid_fields:
            logger.warning(
                "Ticket metadata has invalid fields",
                extra={"ticket_id": ticket.id, "fields": sorted(meta.invalid_fields)}
            )
        if meta.tat_state_unreliable:
            return None

        status = snapshot.value_for(ticket.status_id)
        if not status:
            return None

        breach = calculator.find_breach(
            status,
            ticket.acknowledgement_due_at,
            ticket.resolution_due_at,
            meta.tat_state,
            now,
            is_final=snapshot.is_final(status),
            awaiting_acknowledgement=(
                status == TicketStatus.OPEN and ticket.acknowledged_at is None
            ),
        )
        if breach is None or meta.has_breach_marker(breach.marker):
            return None
        return breach

    async def run_sweep(self, limit: int = 100) -> SweepResult:
        """
        Escalate every ticket whose deadline lapsed since the last sweep.

        Candidate rows are locked with SKIP LOCKED so concurrent sweeps split
        the work instead of escalating the same ticket twice. They are read in
        pages of ``limit`` until none are left, so skipped rows never hide
        later breaches.
        """
        result = SweepResult()
        now = self._clock.now()
        snapshot = await self._statuses.snapshot()
        config = self._config.get_config()
        calculator = self._config.calculator()
        events: List[OutboxEvent] = []

        with log_latency(logger, "escalation_sweep"):
            async with self._uow_factory() as uow:
                after_id = 0
                while True:
                    candidates = await uow.tickets.lock_escalation_candidates(
                        now,
                        snapshot.final_ids(),
                        snapshot.id_for(TicketStatus.OPEN),
                        config.max_escalation_level,
                        limit,
                        after_id=after_id,
                    )
                    result.scanned += len(candidates)

                    for ticket in candidates:
                        breach = self._breach_for(ticket, snapshot, calculator, now)
                        if breach is None:
                            result.skipped += 1
                            continue

                        outcome = await self.escalate_in(
                            uow, ticket,
                            actor_id=None,
                            reason=f"{breach.kind.capitalize()} deadline passed",
                            now=now,
                            snapshot=snapshot,
                            calculator=calculator,
                            trigger="automatic",
                            breach=breach,
                        )
                        events.extend(outcome.events)
                        result.escalated += 1
                        result.ticket_ids.append(ticket.id)

                    if len(candidates) < limit:
                        break
                    after_id = candidates[-1].id

        if events:
            await self._publisher.publish(events)

        logger.info(
            "Escalation sweep finished",
            extra={
                "scanned": result.scanned,
                "escalated": result.escalated,
                "skipped": result.skipped,
            }
        )
        return result
