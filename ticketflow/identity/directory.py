"""
Identity Directory
==================

Maps identity-provider users onto local user rows and answers role and
contact questions for the other modules.

Authentication itself happens upstream; requests arrive with the caller's
external id and this directory makes sure a local row exists for it.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import ADMIN_ROLES, STAFF_ROLES, UserRole, VALID_ROLES
from ticketflow.core.exceptions import ResourceNotFoundException, ValidationException
from ticketflow.identity.models import UserModel
from ticketflow.outbox.application.interfaces import Contact, IContactDirectory
from ticketflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def parse_user_id(value: Union[str, UUID, None]) -> Optional[UUID]:
    """UUID from a path/body value; ``None`` when it is not one."""
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""
    user_id: UUID
    role: str = UserRole.STUDENT

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


# ============================================================================
# Repository
# ============================================================================

class IUserRepository(IContactDirectory):
    """Interface for user data access."""

    @abstractmethod
    async def get(self, user_id: UUID) -> Optional[Any]:
        """User row by local id."""

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> Optional[Any]:
        """User row by identity-provider id."""

    @abstractmethod
    async def add(
        self,
        external_id: str,
        email: Optional[str],
        full_name: Optional[str],
        role: str,
    ) -> Any:
        """Insert a user row."""


class SQLAlchemyUserRepository(IUserRepository):
    """Users backed by the 'users' table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, user_id: UUID) -> Optional[UserModel]:
        return await self._session.get(UserModel, user_id)

    async def get_by_external_id(self, external_id: str) -> Optional[UserModel]:
        stmt = select(UserModel).where(UserModel.external_id == external_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def add(
        self,
        external_id: str,
        email: Optional[str],
        full_name: Optional[str],
        role: str,
    ) -> UserModel:
        model = UserModel(
            external_id=external_id,
            email=email,
            full_name=full_name,
            role=role,
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def get_contact(self, user_id: str) -> Optional[Contact]:
        uid = parse_user_id(user_id)
        if uid is None:
            return None
        user = await self.get(uid)
        if user is None:
            return None
        return Contact(user_id=str(user.id), email=user.email, full_name=user.full_name)


# ============================================================================
# Service
# ============================================================================

class IdentityDirectory:
    """
    Local view of identity-provider users.

    Args:
        uow_factory: opens a unit of work exposing ``users``
    """

    def __init__(self, uow_factory):
        self._uow_factory = uow_factory

    async def ensure_user(
        self,
        external_id: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Actor:
        """Return the caller, creating the local row on first sight."""
        external_id = (external_id or "").strip()
        if not external_id:
            raise ValidationException("User id is required")
        if role is not None and role not in VALID_ROLES:
            raise ValidationException(f"Invalid role '{role}'", {"valid_roles": VALID_ROLES})

        async with self._uow_factory() as uow:
            user = await uow.users.get_by_external_id(external_id)
            if user is None:
                uid = parse_user_id(external_id)
                if uid is not None:
                    user = await uow.users.get(uid)
            if user is None:
                user = await uow.users.add(
                    external_id=external_id,
                    email=email,
                    full_name=full_name,
                    role=role or UserRole.STUDENT,
                )
                logger.info(
                    "User registered",
                    extra={"user_id": str(user.id), "role": user.role}
                )
            else:
                if email and not user.email:
                    user.email = email
                if full_name and not user.full_name:
                    user.full_name = full_name
            return Actor(user_id=user.id, role=user.role)

    async def get_role(self, user_id: UUID) -> str:
        async with self._uow_factory() as uow:
            user = await uow.users.get(user_id)
        if user is None:
            raise ResourceNotFoundException("User", str(user_id))
        return user.role
