"""
Role-Based Authorization

DESIGN DECISION: Roles are a closed set and every permission is a named
capability. The ledger asks one question at its approve/reject boundary,
"may this actor do X?", and never compares role strings itself.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Optional, Union

import structlog


logger = structlog.get_logger(__name__)


class Capability(str, Enum):
    """Things an actor may be allowed to do."""
    APPROVE_TRANSACTIONS = "approve_transactions"


class Role(str, Enum):
    """
    Closed set of user roles.

    OWNER records entries; APPROVER and SUPERADMIN may also decide on them.
    """
    OWNER = "owner"
    APPROVER = "approver"
    SUPERADMIN = "superadmin"

    @property
    def can_approve(self) -> bool:
        return self in (Role.APPROVER, Role.SUPERADMIN)

    def has(self, capability: Capability) -> bool:
        if capability is Capability.APPROVE_TRANSACTIONS:
            return self.can_approve
        return False


class AuthorizationInterface(ABC):
    """Answers capability checks for actors."""

    @abstractmethod
    async def check_role(self, actor: str, capability: Capability) -> bool:
        """Return True if ``actor`` holds ``capability``."""
        pass


RoleLookup = Union[Mapping[str, Role], Callable[[str], Optional[Role]]]


class RoleBasedAuthorization(AuthorizationInterface):
    """
    Authorization backed by an actor -> role lookup.

    The lookup is either a mapping or a callable returning the actor's
    role (or None for unknown actors, who are denied).
    """

    def __init__(self, roles: RoleLookup):
        self._roles = roles

    def role_of(self, actor: str) -> Optional[Role]:
        if callable(self._roles):
            return self._roles(actor)
        return self._roles.get(actor)

    async def check_role(self, actor: str, capability: Capability) -> bool:
        role = self.role_of(actor)
        allowed = role is not None and role.has(capability)
        if not allowed:
            logger.info(
                "capability_denied",
                actor=actor,
                role=role.value if role else None,
                capability=capability.value,
            )
        return allowed
