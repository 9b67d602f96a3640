"""
Service Container
=================

Wires repositories, services and senders together once per process and
exposes the background jobs shared by the scheduler and the cron endpoints.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketflow.config import NotificationChannel, Settings
from ticketflow.core.clock import Clock, SystemClock
from ticketflow.identity.directory import IdentityDirectory
from ticketflow.infrastructure.unit_of_work import unit_of_work_factory
from ticketflow.outbox.application import (
    DispatchResult,
    NotificationRouter,
    NotificationSender,
    OutboxDispatcher,
    OutboxPublisher,
)
from ticketflow.outbox.infrastructure import EmailRelayNotifier, SlackNotifier
from ticketflow.shared.application.idempotency import IdempotencyService
from ticketflow.shared.application.unit_of_work import UnitOfWorkFactory
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import EscalationService, ISLAConfigProvider, SweepResult
from ticketflow.sla.application.interfaces import StaticSLAConfigProvider
from ticketflow.tickets.application import StatusRegistry, TicketMutationService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler or background job needs."""
    settings: Settings
    clock: Clock
    uow_factory: UnitOfWorkFactory
    sla_config: ISLAConfigProvider
    statuses: StatusRegistry
    identity: IdentityDirectory
    idempotency: IdempotencyService
    publisher: OutboxPublisher
    escalation: EscalationService
    tickets: TicketMutationService
    dispatcher: OutboxDispatcher
    senders: Dict[str, NotificationSender] = field(default_factory=dict)

    async def run_escalation_sweep(self) -> SweepResult:
        return await self.escalation.run_sweep()

    async def dispatch_outbox(self) -> DispatchResult:
        return await self.dispatcher.dispatch_batch()

    async def purge_idempotency_keys(self) -> int:
        return await self.idempotency.purge_expired()

    async def close(self) -> None:
        for sender in self.senders.values():
            await sender.close()


def default_senders(settings: Settings) -> Dict[str, NotificationSender]:
    return {
        NotificationChannel.SLACK: SlackNotifier(
            webhook_url=settings.slack_webhook_url,
            default_channel=settings.slack_channel,
            timeout_seconds=settings.slack_timeout_seconds,
        ),
        NotificationChannel.EMAIL: EmailRelayNotifier(
            relay_url=settings.email_relay_url,
            sender_address=settings.email_from,
            api_token=settings.email_relay_token,
            timeout_seconds=settings.email_timeout_seconds,
        ),
    }


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    clock: Optional[Clock] = None,
    sla_config: Optional[ISLAConfigProvider] = None,
    senders: Optional[Dict[str, NotificationSender]] = None,
) -> ServiceContainer:
    """Build the object graph for one process."""
    clock = clock or SystemClock()
    sla_config = sla_config or StaticSLAConfigProvider()
    senders = default_senders(settings) if senders is None else senders
    uow_factory = unit_of_work_factory(session_factory)

    statuses = StatusRegistry(uow_factory, clock, ttl_seconds=settings.status_cache_ttl)
    idempotency = IdempotencyService(uow_factory, clock, ttl_hours=settings.idempotency_ttl_hours)
    publisher = OutboxPublisher(uow_factory, max_attempts=settings.outbox_max_attempts, clock=clock)
    escalation = EscalationService(
        uow_factory,
        statuses=statuses,
        config_provider=sla_config,
        publisher=publisher,
        clock=clock,
        idempotency=idempotency,
    )
    tickets = TicketMutationService(
        uow_factory,
        statuses=statuses,
        config_provider=sla_config,
        escalation=escalation,
        publisher=publisher,
        idempotency=idempotency,
        clock=clock,
    )
    dispatcher = OutboxDispatcher(
        uow_factory,
        router=NotificationRouter(settings.slack_channel),
        senders=senders,
        clock=clock,
        batch_size=settings.outbox_batch_size,
        retry_base_seconds=settings.outbox_retry_base_seconds,
        processing_timeout_seconds=settings.outbox_processing_timeout,
    )

    return ServiceContainer(
        settings=settings,
        clock=clock,
        uow_factory=uow_factory,
        sla_config=sla_config,
        statuses=statuses,
        identity=IdentityDirectory(uow_factory),
        idempotency=idempotency,
        publisher=publisher,
        escalation=escalation,
        tickets=tickets,
        dispatcher=dispatcher,
        senders=senders,
    )
