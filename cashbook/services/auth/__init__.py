"""Authorization services package."""

from cashbook.services.auth.roles import (
    AuthorizationInterface,
    Capability,
    Role,
    RoleBasedAuthorization,
)

__all__ = [
    "AuthorizationInterface",
    "Capability",
    "Role",
    "RoleBasedAuthorization",
]
