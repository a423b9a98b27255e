"""
Access Policy Engine -- the single authorization decision point.

Responsibility:
    Given (actor role, entity, operation, target row attributes) decide
    allow or deny, and on deny say which rule fired.  Every service gates
    every operation through ``require``; list endpoints filter rows with
    ``authorize`` so single-row checks and list filters can never drift.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The role comes from
    the Role Resolver; target attributes come from the row being touched.

Invariants enforced:
    - Role hierarchy officer < captain < admin via domain/roles.py only.
    - No role denies everything (NO_ROLE); it is never treated as officer.
    - Section is NOT an authorization axis.  ``PolicyTarget.section`` is
      accepted so callers can pass full row context, and is ignored.
    - Self-lockout: no identity may update or delete its own role row.
    - Admin protection: an admin may not update or delete another admin.
    - Captains manage officer-level rows and codes only; admins manage
      officer- and captain-level rows and codes.
    - REVERT_ACTION audit entries may be created by admins only.
    - Audit revert data and revert execution are admin-only.
    - Monotonic: for any request, if a role is allowed, every higher role is
      allowed too.

Failure modes:
    - ``require`` raises AccessDeniedError carrying the DenyReason.

Policy matrix:

    Entity            | Operation             | officer | captain         | admin
    ------------------|-----------------------|---------|-----------------|-----------------------
    Member            | create/read/upd/del   | yes     | yes             | yes
    Section settings  | read                  | yes     | yes             | yes
    Section settings  | create/update         | no      | yes             | yes
    Role assignment   | read own              | yes     | yes             | yes
    Role assignment   | read others'          | no      | officer rows    | officer+captain rows
    Role assignment   | update/delete         | no      | officer rows,   | officer/captain rows,
                      |                       |         | never self      | never self/other admin
    Invite code       | read / revoke         | no      | officer codes   | all
    Invite code       | issue                 | no      | role=officer    | role=officer/captain
    Audit log         | create                | yes     | yes             | yes (REVERT_ACTION: admin)
    Audit log         | read (redacted)       | no      | yes             | yes
    Audit log         | read revert data      | no      | no              | yes
    Audit log         | revert                | no      | no              | yes
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from muster_kernel.domain.roles import Role, at_least, outranks
from muster_kernel.domain.sections import Section
from muster_kernel.exceptions import AccessDeniedError
from muster_kernel.logging_config import get_logger

logger = get_logger("domain.access_policy")

REVERT_ACTION = "REVERT_ACTION"


class Entity(str, Enum):
    MEMBER = "member"
    SECTION_SETTINGS = "section_settings"
    ROLE_ASSIGNMENT = "role_assignment"
    INVITE_CODE = "invite_code"
    AUDIT_LOG = "audit_log"


class Operation(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ISSUE = "issue"
    REVOKE = "revoke"
    READ_REVERT_DATA = "read_revert_data"
    REVERT = "revert"


class DenyReason(str, Enum):
    """Machine-distinguishable reason attached to every deny."""

    NO_ROLE = "no_role"
    INSUFFICIENT_ROLE = "insufficient_role"
    HIERARCHY_VIOLATION = "hierarchy_violation"
    SELF_ACTION = "self_action"
    TARGET_ROLE_MISMATCH = "target_role_mismatch"
    ADMIN_PROTECTION = "admin_protection"
    UNSUPPORTED_OPERATION = "unsupported_operation"


@dataclass(frozen=True)
class PolicyTarget:
    """
    Attributes of the row an operation touches.

    owner_id:     identity owning a role-assignment row
    target_role:  role currently on the row (role assignment) or granted by
                  it (invite code default role)
    new_role:     role a role-assignment update would set, or the role an
                  invite being issued would grant
    action_type:  audit action type of an entry being created
    section:      row's section (never consulted)
    """

    owner_id: str | None = None
    target_role: Role | None = None
    new_role: Role | None = None
    action_type: str | None = None
    section: Section | None = None


@dataclass(frozen=True)
class PolicyDecision:
    entity: Entity
    operation: Operation
    allowed: bool
    reason: DenyReason | None = None
    detail: str = ""

    @classmethod
    def allow(cls, entity: Entity, operation: Operation) -> "PolicyDecision":
        return cls(entity=entity, operation=operation, allowed=True)

    @classmethod
    def deny(
        cls,
        entity: Entity,
        operation: Operation,
        reason: DenyReason,
        detail: str,
    ) -> "PolicyDecision":
        return cls(
            entity=entity,
            operation=operation,
            allowed=False,
            reason=reason,
            detail=detail,
        )


_EMPTY_TARGET = PolicyTarget()

# Roles each role may grant through an invite, or set on another identity.
_GRANTABLE_ROLES: dict[Role, frozenset[Role]] = {
    Role.OFFICER: frozenset(),
    Role.CAPTAIN: frozenset({Role.OFFICER}),
    Role.ADMIN: frozenset({Role.OFFICER, Role.CAPTAIN}),
}


def grantable_roles(role: Role | None) -> frozenset[Role]:
    """Roles ``role`` may put on an invite code or assign to someone else."""
    if role is None:
        return frozenset()
    return _GRANTABLE_ROLES[role]


def readable_target_roles(role: Role | None) -> frozenset[Role]:
    """Roles whose rows ``role`` may see besides its own (strictly lower)."""
    return frozenset(r for r in Role if outranks(role, r))


# ---------------------------------------------------------------------------
# Per-entity rules
# ---------------------------------------------------------------------------

_Rule = Callable[[Role, Operation, PolicyTarget, str | None], PolicyDecision]


def _member_rule(role, operation, target, actor_id):
    if operation in (
        Operation.CREATE,
        Operation.READ,
        Operation.UPDATE,
        Operation.DELETE,
    ):
        return PolicyDecision.allow(Entity.MEMBER, operation)
    return _unsupported(Entity.MEMBER, operation)


def _settings_rule(role, operation, target, actor_id):
    entity = Entity.SECTION_SETTINGS
    if operation is Operation.READ:
        return PolicyDecision.allow(entity, operation)
    if operation in (Operation.CREATE, Operation.UPDATE):
        if at_least(role, Role.CAPTAIN):
            return PolicyDecision.allow(entity, operation)
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.INSUFFICIENT_ROLE,
            "Changing section settings requires captain or admin",
        )
    return _unsupported(entity, operation)


def _role_assignment_rule(role, operation, target, actor_id):
    entity = Entity.ROLE_ASSIGNMENT
    is_self = actor_id is not None and target.owner_id == actor_id

    if operation is Operation.READ:
        if is_self:
            return PolicyDecision.allow(entity, operation)
        if not at_least(role, Role.CAPTAIN):
            return PolicyDecision.deny(
                entity,
                operation,
                DenyReason.INSUFFICIENT_ROLE,
                "Officers may only read their own role",
            )
        if target.target_role is None or target.target_role in readable_target_roles(role):
            return PolicyDecision.allow(entity, operation)
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.HIERARCHY_VIOLATION,
            f"A {role.value} cannot read {target.target_role.value} roles",
        )

    if operation not in (Operation.UPDATE, Operation.DELETE):
        return _unsupported(entity, operation)

    if is_self:
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.SELF_ACTION,
            "You cannot change or remove your own role",
        )
    if not at_least(role, Role.CAPTAIN):
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.INSUFFICIENT_ROLE,
            "Managing roles requires captain or admin",
        )
    if role is Role.ADMIN and target.target_role is Role.ADMIN:
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.ADMIN_PROTECTION,
            "An admin cannot change or remove another admin",
        )
    if target.target_role is None or not outranks(role, target.target_role):
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.HIERARCHY_VIOLATION,
            f"A {role.value} cannot manage this role",
        )
    if operation is Operation.UPDATE and target.new_role not in grantable_roles(role):
        new_role = target.new_role.value if target.new_role else "no role"
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.TARGET_ROLE_MISMATCH,
            f"A {role.value} cannot assign the {new_role} role",
        )
    return PolicyDecision.allow(entity, operation)


def _invite_code_rule(role, operation, target, actor_id):
    entity = Entity.INVITE_CODE
    if operation not in (Operation.READ, Operation.ISSUE, Operation.REVOKE):
        return _unsupported(entity, operation)

    if not at_least(role, Role.CAPTAIN):
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.INSUFFICIENT_ROLE,
            "Invite codes require captain or admin",
        )

    if operation is Operation.ISSUE:
        if target.new_role in grantable_roles(role):
            return PolicyDecision.allow(entity, operation)
        new_role = target.new_role.value if target.new_role else "no role"
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.TARGET_ROLE_MISMATCH,
            f"A {role.value} cannot issue {new_role} invite codes",
        )

    # READ / REVOKE: admins see every code, captains only officer codes
    if role is Role.ADMIN or target.target_role is None:
        return PolicyDecision.allow(entity, operation)
    if target.target_role in grantable_roles(role):
        return PolicyDecision.allow(entity, operation)
    return PolicyDecision.deny(
        entity,
        operation,
        DenyReason.TARGET_ROLE_MISMATCH,
        f"A {role.value} can only {operation.value} officer invite codes",
    )


def _audit_log_rule(role, operation, target, actor_id):
    entity = Entity.AUDIT_LOG
    if operation is Operation.CREATE:
        if target.action_type == REVERT_ACTION and role is not Role.ADMIN:
            return PolicyDecision.deny(
                entity,
                operation,
                DenyReason.INSUFFICIENT_ROLE,
                "Only admins may record revert actions",
            )
        return PolicyDecision.allow(entity, operation)
    if operation is Operation.READ:
        if at_least(role, Role.CAPTAIN):
            return PolicyDecision.allow(entity, operation)
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.INSUFFICIENT_ROLE,
            "Audit logs require captain or admin",
        )
    if operation in (Operation.READ_REVERT_DATA, Operation.REVERT):
        if role is Role.ADMIN:
            return PolicyDecision.allow(entity, operation)
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.INSUFFICIENT_ROLE,
            "Revert data and reverts are admin-only",
        )
    return _unsupported(entity, operation)


def _unsupported(entity: Entity, operation: Operation) -> PolicyDecision:
    return PolicyDecision.deny(
        entity,
        operation,
        DenyReason.UNSUPPORTED_OPERATION,
        f"{operation.value} is not a supported operation on {entity.value}",
    )


_RULES: dict[Entity, _Rule] = {
    Entity.MEMBER: _member_rule,
    Entity.SECTION_SETTINGS: _settings_rule,
    Entity.ROLE_ASSIGNMENT: _role_assignment_rule,
    Entity.INVITE_CODE: _invite_code_rule,
    Entity.AUDIT_LOG: _audit_log_rule,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def authorize(
    actor_role: Role | None,
    entity: Entity,
    operation: Operation,
    target: PolicyTarget | None = None,
    *,
    actor_id: str | None = None,
) -> PolicyDecision:
    """
    Decide whether ``actor_role`` may perform ``operation`` on ``entity``.

    Args:
        actor_role: Resolved role, or None for an identity without one.
        entity: Entity type being touched.
        operation: Operation requested.
        target: Attributes of the row touched (or to be created).
        actor_id: Acting identity, needed for own-row checks.

    Returns:
        PolicyDecision; never raises for a deny.
    """
    if actor_role is None:
        return PolicyDecision.deny(
            entity,
            operation,
            DenyReason.NO_ROLE,
            "No role is assigned to this account",
        )
    return _RULES[entity](actor_role, operation, target or _EMPTY_TARGET, actor_id)


def require(
    actor_role: Role | None,
    entity: Entity,
    operation: Operation,
    target: PolicyTarget | None = None,
    *,
    actor_id: str | None = None,
) -> PolicyDecision:
    """
    ``authorize`` that raises AccessDeniedError on deny.

    Raises:
        AccessDeniedError: With the decision's reason and detail.
    """
    decision = authorize(actor_role, entity, operation, target, actor_id=actor_id)
    if not decision.allowed:
        logger.warning(
            "access_denied",
            extra={
                "role": actor_role.value if actor_role else None,
                "entity": entity.value,
                "operation": operation.value,
                "reason": decision.reason.value,
            },
        )
        raise AccessDeniedError(
            reason=decision.reason,
            entity=entity,
            operation=operation,
            message=decision.detail,
        )
    return decision
