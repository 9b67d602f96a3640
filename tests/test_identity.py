"""Mirroring identity-provider users into the local directory."""

from uuid import uuid4

import pytest

from ticketflow.config import UserRole
from ticketflow.core.exceptions import ResourceNotFoundException, ValidationException
from tests.conftest import add_user


@pytest.mark.asyncio
async def test_first_sight_registers_a_student(container):
    actor = await container.identity.ensure_user("s-42", email="s42@campus.test", full_name="S 42")

    assert actor.role == UserRole.STUDENT
    assert not actor.is_staff
    assert await container.identity.get_role(actor.user_id) == UserRole.STUDENT

    again = await container.identity.ensure_user("s-42")
    assert again == actor


@pytest.mark.asyncio
async def test_existing_role_is_kept(container, session_factory):
    admin = await add_user(session_factory, "admin-9", role=UserRole.SNR_ADMIN)

    actor = await container.identity.ensure_user("admin-9")

    assert actor.user_id == admin.user_id
    assert actor.is_admin and actor.is_staff


@pytest.mark.asyncio
async def test_lookup_by_internal_id(container, session_factory):
    admin = await add_user(session_factory, "admin-3", role=UserRole.ADMIN)

    actor = await container.identity.ensure_user(str(admin.user_id))

    assert actor == admin


@pytest.mark.asyncio
async def test_contact_details_are_filled_in_later(container):
    actor = await container.identity.ensure_user("s-7")
    await container.identity.ensure_user("s-7", email="s7@campus.test")

    async with container.uow_factory() as uow:
        contact = await uow.users.get_contact(str(actor.user_id))
    assert contact.email == "s7@campus.test"


@pytest.mark.asyncio
async def test_invalid_input(container):
    with pytest.raises(ValidationException):
        await container.identity.ensure_user("   ")
    with pytest.raises(ValidationException):
        await container.identity.ensure_user("x-1", role="janitor")
    with pytest.raises(ResourceNotFoundException):
        await container.identity.get_role(uuid4())
