"""
Role -- the three-level role hierarchy.

Responsibility:
    Single definition of the roles and their ordering.  Every "is at least
    as privileged as" question in the kernel goes through ``hierarchy_rank``
    and ``at_least``; nothing compares role strings directly.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - officer < captain < admin, strictly.
    - "No role" is ``None`` everywhere and ranks below every role; it is never
      silently promoted to officer.
"""

from enum import Enum

from muster_kernel.exceptions import InvalidRoleError


class Role(str, Enum):
    """Assignable roles, lowest first."""

    OFFICER = "officer"
    CAPTAIN = "captain"
    ADMIN = "admin"


_RANKS: dict[Role, int] = {
    Role.OFFICER: 1,
    Role.CAPTAIN: 2,
    Role.ADMIN: 3,
}

NO_ROLE_RANK = 0


def hierarchy_rank(role: Role | None) -> int:
    """Rank of ``role``; ``None`` (no role) ranks 0."""
    if role is None:
        return NO_ROLE_RANK
    return _RANKS[role]


def at_least(role: Role | None, minimum: Role) -> bool:
    """True if ``role`` is ``minimum`` or more privileged."""
    return hierarchy_rank(role) >= hierarchy_rank(minimum)


def outranks(role: Role | None, other: Role | None) -> bool:
    """True if ``role`` is strictly more privileged than ``other``."""
    return hierarchy_rank(role) > hierarchy_rank(other)


def parse_role(value: str | Role) -> Role:
    """Parse a stored or user-supplied role name."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError as exc:
        raise InvalidRoleError(value) from exc
