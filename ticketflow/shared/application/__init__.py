"""
Shared Application Layer
========================

Unit of work abstraction and request idempotency.
"""

from ticketflow.shared.application.idempotency import (
    IIdempotencyRepository,
    IdempotencyService,
    request_hash,
)
from ticketflow.shared.application.unit_of_work import IUnitOfWork, UnitOfWorkFactory

__all__ = [
    "IIdempotencyRepository",
    "IdempotencyService",
    "request_hash",
    "IUnitOfWork",
    "UnitOfWorkFactory",
]
