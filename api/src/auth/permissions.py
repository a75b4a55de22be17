"""Platform roles.

Tokens are issued by the identity service; this API only reads the role
claim. Dashboard endpoints are restricted to the student role.
"""

from enum import Enum


class UserRole(str, Enum):
    """Roles carried in the access token `role` claim."""

    STUDENT = "student"
    TEACHER = "teacher"
    HOST = "host"
    SUPPORT = "support"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


def parse_role(role: UserRole | str) -> UserRole | None:
    """Convert a role claim to UserRole (None for unknown roles)."""
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def is_student(role: UserRole | str) -> bool:
    """Check if role is STUDENT."""
    return parse_role(role) == UserRole.STUDENT
