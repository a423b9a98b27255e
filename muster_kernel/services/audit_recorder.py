"""
AuditRecorder -- the audit trail of every mutating operation.

Responsibility:
    Writes one immutable AuditLog entry per accepted mutation, in the same
    transaction as the mutation, and serves the trail back to captains and
    admins with revert data redacted for everyone but admins.

Architecture position:
    Kernel > Services -- called by every mutating service and by
    RevertService.

Invariants enforced:
    - The acting email comes from the trusted identity, never from a payload.
    - REVERT_ACTION entries require a fresh admin check against the role
      store, not the role the caller resolved earlier.
    - revert_data is only returned to admins (list and single read).
    - revert_data never reaches the logs.

Failure modes:
    - AccessDeniedError: reading below captain, revert data below admin,
      REVERT_ACTION below admin.
    - AuditLogNotFoundError: unknown entry id.
    - StoreUnavailableError: store outage.

Audit relevance:
    This IS the audit service.  Rows are append-only apart from the single
    reverted_by_log_id backlink set by RevertService.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

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
from muster_kernel.domain.sections import Section, parse_section
from muster_kernel.exceptions import AuditLogNotFoundError
from muster_kernel.logging_config import get_logger
from muster_kernel.models.audit_log import AuditAction, AuditLog
from muster_kernel.services.base import (
    BaseService,
    coerce_uuid,
    translates_store_errors,
)
from muster_kernel.services.role_resolver import RoleResolver

logger = get_logger("services.audit_recorder")

DEFAULT_LIST_LIMIT = 50


@dataclass(frozen=True)
class AuditEntryView:
    """
    An audit entry as shown to a caller.

    revert_data is None unless the caller is an admin; has_revert_data
    still tells a captain whether an entry carries a payload.
    """

    id: UUID
    occurred_at: datetime
    section: str | None
    actor_email: str
    action_type: str
    description: str
    has_revert_data: bool
    revert_data: dict[str, Any] | None
    reverts_log_id: UUID | None
    reverted_by_log_id: UUID | None

    @property
    def is_reverted(self) -> bool:
        return self.reverted_by_log_id is not None


class AuditRecorder(BaseService):
    """
    Service for recording and reading audit entries.

    Guarantees:
        - ``record`` flushes; it never commits.
        - ``list_entries`` returns newest first, capped at the list limit.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        role_resolver: RoleResolver | None = None,
        list_limit: int = DEFAULT_LIST_LIMIT,
    ):
        super().__init__(session, clock)
        self._roles = role_resolver or RoleResolver(session, self.clock)
        self._list_limit = list_limit

    @translates_store_errors
    def record(
        self,
        actor: Actor,
        action_type: AuditAction,
        description: str,
        revert_data: dict[str, Any] | None = None,
        *,
        section: Section | str | None = None,
        reverts_log_id: UUID | None = None,
    ) -> AuditLog:
        """
        Append an audit entry for an accepted mutation.

        Raises:
            AccessDeniedError: If the actor has no role, or records a
                REVERT_ACTION without currently being an admin.
        """
        role = actor.role
        if action_type is AuditAction.REVERT_ACTION:
            role = self._roles.resolve_role(actor.identity)

        require(
            role,
            Entity.AUDIT_LOG,
            Operation.CREATE,
            PolicyTarget(action_type=action_type.value),
            actor_id=actor.identity_id,
        )

        entry = AuditLog(
            occurred_at=self.clock.now(),
            section=parse_section(section).value if section is not None else None,
            actor_id=actor.identity_id,
            actor_email=actor.email,
            action_type=action_type.value,
            description=description,
            revert_data=revert_data,
            reverts_log_id=reverts_log_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "audit_entry_recorded",
            extra={
                "audit_log_id": str(entry.id),
                "action_type": action_type.value,
                "has_revert_data": revert_data is not None,
            },
        )
        return entry

    @translates_store_errors
    def list_entries(
        self,
        actor: Actor,
        section: Section | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntryView]:
        """Newest entries first; revert data only for admins."""
        require(
            actor.role,
            Entity.AUDIT_LOG,
            Operation.READ,
            actor_id=actor.identity_id,
        )
        include_revert_data = authorize(
            actor.role,
            Entity.AUDIT_LOG,
            Operation.READ_REVERT_DATA,
            actor_id=actor.identity_id,
        ).allowed

        if limit is None:
            limit = self._list_limit
        limit = max(1, min(limit, self._list_limit))
        stmt = select(AuditLog).order_by(AuditLog.occurred_at.desc()).limit(limit)
        if section is not None:
            stmt = stmt.where(AuditLog.section == parse_section(section).value)

        entries = self.session.execute(stmt).scalars().all()
        return [_to_view(entry, include_revert_data) for entry in entries]

    @translates_store_errors
    def get_revert_data(self, actor: Actor, log_id: UUID | str) -> dict[str, Any] | None:
        """Admin-only read of one entry's revert payload."""
        require(
            actor.role,
            Entity.AUDIT_LOG,
            Operation.READ_REVERT_DATA,
            actor_id=actor.identity_id,
        )
        return self.get_entry(log_id).revert_data

    def get_entry(self, log_id: UUID | str) -> AuditLog:
        """Load an entry by id (no authorization; internal use)."""
        entry_id = coerce_uuid(log_id)
        entry = self.session.get(AuditLog, entry_id) if entry_id else None
        if entry is None:
            raise AuditLogNotFoundError(str(log_id))
        return entry


def _to_view(entry: AuditLog, include_revert_data: bool) -> AuditEntryView:
    return AuditEntryView(
        id=entry.id,
        occurred_at=entry.occurred_at,
        section=entry.section,
        actor_email=entry.actor_email,
        action_type=entry.action_type,
        description=entry.description,
        has_revert_data=entry.revert_data is not None,
        revert_data=entry.revert_data if include_revert_data else None,
        reverts_log_id=entry.reverts_log_id,
        reverted_by_log_id=entry.reverted_by_log_id,
    )
