"""
Identity Module
===============

Local mirror of identity-provider users: who is calling and what role
they hold.
"""

from ticketflow.identity.directory import (
    Actor,
    IUserRepository,
    IdentityDirectory,
    SQLAlchemyUserRepository,
    parse_user_id,
)
from ticketflow.identity.models import UserModel

__all__ = [
    "Actor",
    "IUserRepository",
    "IdentityDirectory",
    "SQLAlchemyUserRepository",
    "UserModel",
    "parse_user_id",
]
