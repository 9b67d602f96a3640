"""
Cron Endpoints
==============

HTTP triggers for the background jobs, for deployments where an external
scheduler calls in instead of the in-process JobScheduler.
"""

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query

from ticketflow.container import ServiceContainer
from ticketflow.core.exceptions import ForbiddenException
from ticketflow.shared.api.dependencies import get_container
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def verify_cron_secret(
    container: ServiceContainer = Depends(get_container),
    x_cron_secret: Optional[str] = Header(None),
) -> None:
    expected = container.settings.cron_secret
    if expected and x_cron_secret != expected:
        logger.warning("Rejected cron call with invalid secret")
        raise ForbiddenException("Invalid cron secret")


router = APIRouter(
    prefix="/cron",
    tags=["Background Jobs"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.post("/escalations", summary="Run the escalation sweep")
async def run_escalations(
    limit: int = Query(100, ge=1, le=1000),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    result = await container.escalation.run_sweep(limit=limit)
    return asdict(result)


@router.post("/outbox", summary="Dispatch one outbox batch")
async def dispatch_outbox(
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    result = await container.dispatch_outbox()
    return asdict(result)


@router.post("/idempotency/purge", summary="Purge expired idempotency keys")
async def purge_idempotency_keys(
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    purged = await container.purge_idempotency_keys()
    return {"purged": purged}


# Export router
cron_router = router
