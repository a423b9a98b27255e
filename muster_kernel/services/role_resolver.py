"""
RoleResolver -- identity -> role lookup.

Responsibility:
    Maps an authenticated identity to its assigned role, or None.  Every
    request resolves the role afresh; nothing is cached, because roles can
    change between requests (and between an audit entry and its revert).

Architecture position:
    Kernel > Services -- leaf dependency of every other service.

Invariants enforced:
    - None means "no access".  It is never defaulted to officer.
    - A stored role name that is not officer/captain/admin resolves to None
      and is logged as an error; the identity gets no access.

Failure modes:
    - StoreUnavailableError when the role store cannot be reached, distinct
      from the None ("no role") result.
"""

from sqlalchemy import select

from muster_kernel.domain.identity import Actor, Identity
from muster_kernel.domain.roles import Role
from muster_kernel.logging_config import get_logger
from muster_kernel.models.role_assignment import RoleAssignment
from muster_kernel.services.base import BaseService, translates_store_errors

logger = get_logger("services.role_resolver")

_ROLE_VALUES = {role.value: role for role in Role}


class RoleResolver(BaseService):
    """Pure lookup against the role-assignment store; no side effects."""

    @translates_store_errors
    def resolve_role(self, identity: Identity) -> Role | None:
        stored = self.session.execute(
            select(RoleAssignment.role).where(
                RoleAssignment.identity_id == identity.identity_id
            )
        ).scalar_one_or_none()

        if stored is None:
            logger.debug(
                "role_not_assigned",
                extra={"identity_id": identity.identity_id},
            )
            return None

        role = _ROLE_VALUES.get(stored)
        if role is None:
            logger.error(
                "unknown_stored_role",
                extra={"identity_id": identity.identity_id, "stored_role": stored},
            )
        return role

    def resolve_actor(self, identity: Identity) -> Actor:
        """The identity together with its current role."""
        return Actor.of(identity, self.resolve_role(identity))
