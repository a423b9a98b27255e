"""
RoleAssignmentService -- reading and managing other identities' roles.

Responsibility:
    Own-role lookup, the filtered role list, and role update/delete under
    the hierarchy rules of the access policy (never self, never another
    admin, captains only on officers).

Architecture position:
    Kernel > Services.  Role rows are created only by invite claims
    (services/invite_service.py).

Invariants enforced:
    - list_assignments filters with the same ``authorize`` call used for a
      single-row read, so the two can never disagree.
    - Every change is audited (UPDATE_USER_ROLE / DELETE_USER_ROLE).

Failure modes:
    - RoleAssignmentNotFoundError: target identity has no role row.
    - AccessDeniedError: SELF_ACTION, ADMIN_PROTECTION, HIERARCHY_VIOLATION,
      TARGET_ROLE_MISMATCH or INSUFFICIENT_ROLE.
    - InvalidRoleError: new role is not officer/captain/admin.
"""

from sqlalchemy import select

from muster_kernel.domain.access_policy import (
    Entity,
    Operation,
    PolicyTarget,
    authorize,
    require,
)
from muster_kernel.domain.clock import Clock
from muster_kernel.domain.identity import Actor
from muster_kernel.domain.roles import Role, parse_role
from muster_kernel.exceptions import RoleAssignmentNotFoundError
from muster_kernel.logging_config import LogContext, get_logger
from muster_kernel.models.audit_log import AuditAction
from muster_kernel.models.role_assignment import RoleAssignment
from muster_kernel.services.audit_recorder import AuditRecorder
from muster_kernel.services.base import BaseService, translates_store_errors

logger = get_logger("services.role_assignments")


def _target(row: RoleAssignment, new_role: Role | None = None) -> PolicyTarget:
    return PolicyTarget(
        owner_id=row.identity_id,
        target_role=parse_role(row.role),
        new_role=new_role,
    )


class RoleAssignmentService(BaseService):
    def __init__(self, session, clock: Clock | None = None, auditor: AuditRecorder | None = None):
        super().__init__(session, clock)
        self._auditor = auditor or AuditRecorder(session, self.clock)

    def _row(self, identity_id: str) -> RoleAssignment | None:
        return self.session.execute(
            select(RoleAssignment).where(RoleAssignment.identity_id == identity_id)
        ).scalar_one_or_none()

    def _load(self, identity_id: str) -> RoleAssignment:
        row = self._row(identity_id)
        if row is None:
            raise RoleAssignmentNotFoundError(identity_id)
        return row

    @staticmethod
    def _gate_management(actor: Actor, operation: Operation, identity_id: str):
        """
        Check ``actor`` against the most manageable row ``identity_id`` could
        hold before looking it up.  The real row is checked again once loaded.
        """
        require(
            actor.role,
            Entity.ROLE_ASSIGNMENT,
            operation,
            PolicyTarget(
                owner_id=identity_id,
                target_role=Role.OFFICER,
                new_role=Role.OFFICER,
            ),
            actor_id=actor.identity_id,
        )

    @translates_store_errors
    def get_own(self, actor: Actor) -> RoleAssignment:
        require(
            actor.role,
            Entity.ROLE_ASSIGNMENT,
            Operation.READ,
            PolicyTarget(owner_id=actor.identity_id),
            actor_id=actor.identity_id,
        )
        return self._load(actor.identity_id)

    @translates_store_errors
    def list_assignments(self, actor: Actor) -> list[RoleAssignment]:
        """Every role row the actor may read (own row plus lower roles)."""
        require(
            actor.role,
            Entity.ROLE_ASSIGNMENT,
            Operation.READ,
            PolicyTarget(owner_id=actor.identity_id),
            actor_id=actor.identity_id,
        )
        rows = self.session.execute(
            select(RoleAssignment).order_by(RoleAssignment.email)
        ).scalars()
        return [
            row
            for row in rows
            if authorize(
                actor.role,
                Entity.ROLE_ASSIGNMENT,
                Operation.READ,
                _target(row),
                actor_id=actor.identity_id,
            ).allowed
        ]

    @translates_store_errors
    def update_role(
        self,
        actor: Actor,
        identity_id: str,
        new_role: Role | str,
    ) -> RoleAssignment:
        new_role = parse_role(new_role)
        self._gate_management(actor, Operation.UPDATE, identity_id)
        row = self._load(identity_id)
        require(
            actor.role,
            Entity.ROLE_ASSIGNMENT,
            Operation.UPDATE,
            _target(row, new_role),
            actor_id=actor.identity_id,
        )

        old_role = row.role
        row.role = new_role.value
        row.updated_by_id = actor.identity_id
        self.session.flush()

        with LogContext.bind(entity_id=identity_id):
            self._auditor.record(
                actor,
                AuditAction.UPDATE_USER_ROLE,
                f"Changed role of {row.email} from {old_role} to {new_role.value}",
                {
                    "identity_id": identity_id,
                    "old_role": old_role,
                    "new_role": new_role.value,
                },
            )
            logger.info(
                "role_updated",
                extra={"old_role": old_role, "new_role": new_role.value},
            )
        return row

    @translates_store_errors
    def delete_role(self, actor: Actor, identity_id: str) -> None:
        self._gate_management(actor, Operation.DELETE, identity_id)
        row = self._load(identity_id)
        require(
            actor.role,
            Entity.ROLE_ASSIGNMENT,
            Operation.DELETE,
            _target(row),
            actor_id=actor.identity_id,
        )

        removed = {"identity_id": row.identity_id, "email": row.email, "role": row.role}
        self.session.delete(row)
        self.session.flush()

        with LogContext.bind(entity_id=identity_id):
            self._auditor.record(
                actor,
                AuditAction.DELETE_USER_ROLE,
                f"Removed {removed['role']} role from {removed['email']}",
                removed,
            )
            logger.info("role_deleted", extra={"role": removed["role"]})
