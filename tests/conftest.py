"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database (aiosqlite, StaticPool) with seeded statuses
- A fixed, advanceable clock
- Recording notification senders
- The service container and an HTTPX AsyncClient bound to the app
"""

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ticketflow.config import NotificationChannel, Settings, UserRole
from ticketflow.container import ServiceContainer, build_container
from ticketflow.identity.directory import Actor
from ticketflow.identity.models import UserModel
from ticketflow.infrastructure.database import build_session_factory, create_tables, transaction
from ticketflow.main import create_app
from ticketflow.outbox.application import DeliveryResult, NotificationSender
from ticketflow.sla.application import StaticSLAConfigProvider
from ticketflow.sla.domain import SLAConfig
from ticketflow.tickets.application.dto import TicketCreateRequest
from ticketflow.tickets.infrastructure.models import CategoryModel
from ticketflow.tickets.infrastructure.repositories import seed_statuses

# Monday 10:00 UTC
FIXED_NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: Any) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingSender(NotificationSender):
    """Sender that records every delivery and optionally fails."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(
        self,
        channel: str,
        recipient: Optional[str],
        template_data: Dict[str, Any],
    ) -> DeliveryResult:
        self.sent.append({"channel": channel, "recipient": recipient, "data": template_data})
        if self.fail:
            return DeliveryResult(delivered=False, error="relay unavailable")
        return DeliveryResult(delivered=True)


# =============================================================================
# Database
# =============================================================================

@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    async with transaction(build_session_factory(engine)) as session:
        await seed_statuses(session)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest.fixture
def sla_config() -> SLAConfig:
    return SLAConfig()


@pytest.fixture
def senders() -> Dict[str, RecordingSender]:
    return {
        NotificationChannel.SLACK: RecordingSender(),
        NotificationChannel.EMAIL: RecordingSender(),
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        scheduler_enabled=False,
        cron_secret="cron-secret",
        outbox_retry_base_seconds=60.0,
    )


@pytest.fixture
def container(session_factory, settings, clock, sla_config, senders) -> ServiceContainer:
    return build_container(
        session_factory,
        settings,
        clock=clock,
        sla_config=StaticSLAConfigProvider(sla_config),
        senders=senders,
    )


@pytest_asyncio.fixture
async def client(container, settings) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(settings)
    app.state.container = container
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# =============================================================================
# Data helpers
# =============================================================================

async def add_user(
    session_factory,
    external_id: str,
    role: str = UserRole.STUDENT,
    email: Optional[str] = None,
) -> Actor:
    async with transaction(session_factory) as session:
        user = UserModel(
            external_id=external_id,
            email=email or f"{external_id}@example.com",
            full_name=external_id.replace("-", " ").title(),
            role=role,
        )
        session.add(user)
        await session.flush()
        return Actor(user_id=user.id, role=user.role)


async def add_category(
    session_factory,
    name: str = "Network",
    domain: Optional[str] = "IT",
    sla_hours: Optional[float] = None,
    default_admin_id: Optional[UUID] = None,
) -> int:
    async with transaction(session_factory) as session:
        category = CategoryModel(
            name=name,
            domain=domain,
            sla_hours=sla_hours,
            default_admin_id=default_admin_id,
            is_active=True,
        )
        session.add(category)
        await session.flush()
        return category.id


@pytest_asyncio.fixture
async def student(session_factory) -> Actor:
    return await add_user(session_factory, "student-1")


@pytest_asyncio.fixture
async def admin(session_factory) -> Actor:
    return await add_user(session_factory, "admin-1", role=UserRole.ADMIN)


def headers_for(external_id: str, **extra: str) -> Dict[str, str]:
    headers = {"X-User-Id": external_id}
    headers.update(extra)
    return headers


async def raise_ticket(container: ServiceContainer, actor: Actor, **fields: Any) -> Dict[str, Any]:
    fields.setdefault("description", "Wifi is down in the library")
    return await container.tickets.create_ticket(actor, TicketCreateRequest(**fields))


def parse_ts(value: str) -> datetime:
    """Datetime from an API response field."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
