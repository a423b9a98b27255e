"""
RevertService -- undo a prior mutation from its audit entry.

Responsibility:
    Applies the inverse of an audited mutation using the entry's stored
    revert_data, records a REVERT_ACTION entry pointing at the original, and
    marks the original as reverted.

Architecture position:
    Kernel > Services.  Cooperates with AuditRecorder (entry lookup and the
    REVERT_ACTION record) and SettingsService (meeting day restore).

Invariants enforced:
    - Admin only, checked against the role store at revert time.  The role
      the caller held when the original entry was written is irrelevant.
    - An entry is reverted at most once.  The backlink is set with a
      conditional UPDATE (reverted_by_log_id IS NULL); losing that race
      raises AlreadyRevertedError and the caller's transaction rolls back
      the inverse along with it.
    - REVERT_ACTION entries are never themselves revertible.

Failure modes:
    - AccessDeniedError: caller is not currently an admin.
    - AuditLogNotFoundError: unknown entry id.
    - ActionNotRevertibleError: action type has no inverse, or no payload.
    - AlreadyRevertedError: entry already carries a backlink.
    - MemberNotFoundError: reverting a create whose member is gone.

Supported inversions:
    CREATE_MEMBER    delete the created member
    UPDATE_MEMBER    restore the prior snapshot(s)
    DELETE_MEMBER    recreate the member with its original id
    UPDATE_SETTINGS  restore the previous meeting day
"""

from typing import Any
from uuid import UUID

from sqlalchemy import update

from muster_kernel.domain.access_policy import Entity, Operation, require
from muster_kernel.domain.clock import Clock
from muster_kernel.domain.identity import Actor, Identity
from muster_kernel.domain.sections import parse_section
from muster_kernel.exceptions import (
    ActionNotRevertibleError,
    AlreadyRevertedError,
    MemberNotFoundError,
)
from muster_kernel.logging_config import LogContext, get_logger
from muster_kernel.models.audit_log import REVERTIBLE_ACTIONS, AuditAction, AuditLog
from muster_kernel.models.member import Member
from muster_kernel.services.audit_recorder import AuditRecorder
from muster_kernel.services.base import BaseService, translates_store_errors
from muster_kernel.services.role_resolver import RoleResolver
from muster_kernel.services.settings_service import SettingsService

logger = get_logger("services.revert")


def _stored_action(action_type: str) -> AuditAction | None:
    try:
        return AuditAction(action_type)
    except ValueError:
        logger.warning("unknown_stored_action", extra={"action_type": action_type})
        return None


_RESTORED_MEMBER_COLUMNS = ("section", "name", "squad", "year", "marks", "is_squad_leader")


class RevertService(BaseService):
    """
    Admin-only inversion of audited mutations.

    Contract:
        ``revert`` flushes the inverse, the REVERT_ACTION entry and the
        backlink in the caller's transaction.  Nothing is committed here.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        auditor: AuditRecorder | None = None,
        role_resolver: RoleResolver | None = None,
        settings_service: SettingsService | None = None,
    ):
        super().__init__(session, clock)
        self._roles = role_resolver or RoleResolver(session, self.clock)
        self._auditor = auditor or AuditRecorder(session, self.clock, self._roles)
        self._settings = settings_service or SettingsService(
            session, self.clock, self._auditor
        )

    @translates_store_errors
    def revert(self, actor: Actor | Identity, log_id: UUID | str) -> AuditLog:
        """
        Revert the entry ``log_id`` and return the new REVERT_ACTION entry.
        """
        identity = actor.identity if isinstance(actor, Actor) else actor
        current = Actor.of(identity, self._roles.resolve_role(identity))
        require(
            current.role,
            Entity.AUDIT_LOG,
            Operation.REVERT,
            actor_id=current.identity_id,
        )

        entry = self._auditor.get_entry(log_id)
        action = _stored_action(entry.action_type)
        if action not in REVERTIBLE_ACTIONS or entry.revert_data is None:
            raise ActionNotRevertibleError(str(entry.id), entry.action_type)
        if entry.is_reverted:
            raise AlreadyRevertedError(str(entry.id), str(entry.reverted_by_log_id))

        with LogContext.bind(actor_id=current.identity_id, entity_id=str(entry.id)):
            self._apply_inverse(current, action, entry.revert_data)

            revert_entry = self._auditor.record(
                current,
                AuditAction.REVERT_ACTION,
                f"Reverted: {entry.description}",
                section=entry.section,
                reverts_log_id=entry.id,
            )

            result = self.session.execute(
                update(AuditLog)
                .where(
                    AuditLog.id == entry.id,
                    AuditLog.reverted_by_log_id.is_(None),
                )
                .values(reverted_by_log_id=revert_entry.id)
                .execution_options(synchronize_session=False)
            )
            self.session.refresh(entry)
            if result.rowcount != 1:
                logger.warning("revert_lost_race")
                raise AlreadyRevertedError(str(entry.id), str(entry.reverted_by_log_id))

            logger.info(
                "action_reverted",
                extra={
                    "action_type": action.value,
                    "revert_log_id": str(revert_entry.id),
                },
            )
        return revert_entry

    # ------------------------------------------------------------------
    # Inversions
    # ------------------------------------------------------------------

    def _apply_inverse(self, actor: Actor, action: AuditAction, data: dict[str, Any]):
        if action is AuditAction.CREATE_MEMBER:
            self._delete_created_member(data["member_id"])
        elif action is AuditAction.DELETE_MEMBER:
            self._restore_member(actor, data["member"])
        elif action is AuditAction.UPDATE_MEMBER:
            snapshots = data["members"] if "members" in data else [data["member"]]
            for snapshot in snapshots:
                self._restore_member(actor, snapshot)
        elif action is AuditAction.UPDATE_SETTINGS:
            self._settings.restore_meeting_day(
                actor, parse_section(data["section"]), data["meeting_day"]
            )
        self.session.flush()

    def _delete_created_member(self, member_id: str) -> None:
        member = self.session.get(Member, UUID(member_id))
        if member is None:
            raise MemberNotFoundError(member_id)
        self.session.delete(member)

    def _restore_member(self, actor: Actor, snapshot: dict[str, Any]) -> None:
        member_id = UUID(snapshot["id"])
        member = self.session.get(Member, member_id)
        if member is None:
            member = Member(id=member_id, created_by_id=actor.identity_id)
            self.session.add(member)
        else:
            member.updated_by_id = actor.identity_id
        for column in _RESTORED_MEMBER_COLUMNS:
            value = snapshot[column]
            setattr(member, column, [dict(m) for m in value] if column == "marks" else value)
