"""
Outbox Application Layer
========================

Publisher (post-commit enqueue), dispatcher (claim/deliver/record) and the
abstractions they depend on.
"""

from ticketflow.outbox.application.dispatcher import (
    Delivery,
    DispatchResult,
    NotificationRouter,
    OutboxDispatcher,
)
from ticketflow.outbox.application.interfaces import (
    Contact,
    DeliveryResult,
    IContactDirectory,
    IOutboxRepository,
    NotificationSender,
)
from ticketflow.outbox.application.publisher import OutboxPublisher

__all__ = [
    "Delivery",
    "DispatchResult",
    "NotificationRouter",
    "OutboxDispatcher",
    "Contact",
    "DeliveryResult",
    "IContactDirectory",
    "IOutboxRepository",
    "NotificationSender",
    "OutboxPublisher",
]
