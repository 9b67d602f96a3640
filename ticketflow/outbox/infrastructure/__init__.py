"""
Outbox Infrastructure Layer
===========================

- Models: the 'outbox' table
- Repositories: idempotent enqueue and exclusive claiming
- Senders: Slack webhook and email relay clients
"""

from ticketflow.outbox.infrastructure.models import OutboxModel
from ticketflow.outbox.infrastructure.repositories import SQLAlchemyOutboxRepository
from ticketflow.outbox.infrastructure.senders import (
    CircuitBreaker,
    CircuitState,
    EmailRelayNotifier,
    SlackNotifier,
)

__all__ = [
    "OutboxModel",
    "SQLAlchemyOutboxRepository",
    "CircuitBreaker",
    "CircuitState",
    "EmailRelayNotifier",
    "SlackNotifier",
]
