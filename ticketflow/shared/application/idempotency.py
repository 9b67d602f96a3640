"""
Idempotency Keys
================

Replay protection for mutating requests that carry an ``Idempotency-Key``
header.

The key is written in the same transaction as the mutation it guards, so
either both exist or neither does. A retry with the same key and the same
request body gets the stored response back; the same key with a different
body is a conflict. Keys expire after ``ttl_hours`` and are purged by a
background job.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ticketflow.config import IDEMPOTENCY_KEY_MAX_LENGTH
from ticketflow.core.clock import Clock
from ticketflow.core.exceptions import ConflictException, ValidationException
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IIdempotencyRepository(ABC):
    """Interface for idempotency key storage."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Stored record for a key, expired or not."""

    @abstractmethod
    async def add(
        self,
        key: str,
        resource_type: str,
        resource_id: Optional[str],
        request_hash: str,
        response: Optional[Dict[str, Any]],
        created_at: datetime,
        expires_at: datetime,
    ) -> None:
        """
        Store a key, replacing an expired record with the same key.

        Raises:
            ConflictException: a live record with this key already exists
        """

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Delete expired records; returns how many."""


def request_hash(operation: str, body: Any) -> str:
    """Stable fingerprint of an operation and its arguments."""
    canonical = json.dumps(
        {"operation": operation, "body": body},
        sort_keys=True,
        default=str,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyService:
    """
    Looks up and records idempotency keys.

    ``lookup`` runs before the write transaction; ``remember`` runs inside it.
    """

    def __init__(self, uow_factory, clock: Clock, ttl_hours: int = 24):
        self._uow_factory = uow_factory
        self._clock = clock
        self.ttl_hours = ttl_hours

    @staticmethod
    def validate_key(key: Optional[str]) -> Optional[str]:
        if key is None:
            return None
        key = key.strip()
        if not key:
            return None
        if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise ValidationException(
                f"Idempotency-Key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters"
            )
        return key

    async def lookup(
        self,
        key: str,
        resource_type: str,
        fingerprint: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Stored response for a live key, or ``None`` when the request is new.

        Raises:
            ConflictException: the key was used for a different request
        """
        now = self._clock.now()
        async with self._uow_factory() as uow:
            record = await uow.idempotency.get(key)

        if record is None or record.expires_at <= now:
            return None

        if record.request_hash != fingerprint or record.resource_type != resource_type:
            raise ConflictException(
                "Idempotency-Key was already used for a different request",
                {"idempotency_key": key}
            )

        logger.info(
            "Replaying idempotent request",
            extra={"idempotency_key": key, "resource_type": resource_type}
        )
        return record.response

    async def remember(
        self,
        uow,
        key: str,
        resource_type: str,
        fingerprint: str,
        response: Dict[str, Any],
        resource_id: Optional[Any] = None,
    ) -> None:
        """Record the key inside the caller's transaction."""
        now = self._clock.now()
        await uow.idempotency.add(
            key=key,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            request_hash=fingerprint,
            response=response,
            created_at=now,
            expires_at=now + timedelta(hours=self.ttl_hours),
        )

    async def purge_expired(self) -> int:
        async with self._uow_factory() as uow:
            purged = await uow.idempotency.purge_expired(self._clock.now())
        if purged:
            logger.info("Purged expired idempotency keys", extra={"purged": purged})
        return purged
