"""
MemberService -- members and their marks.

Responsibility:
    Create, read, update and delete members, and record one meeting's marks
    across many members at once.  Every payload goes through
    domain/members.py (and so the Mark Validator) before any row changes;
    every mutation is audited with enough prior state to revert it.

Architecture position:
    Kernel > Services.  Uses AuditRecorder; gated by the access policy.

Invariants enforced:
    - The caller is gated before any row is looked up, so a caller without
      permission never learns whether an id exists.
    - Validate-then-write: a rejected batch leaves every member untouched.
    - At most one mark per member per date; a new mark for an existing date
      replaces it.
    - Section is contextual: any role-bearing identity may act on either
      section.

Revert payloads:
    CREATE_MEMBER   {"member_id": <id>}
    UPDATE_MEMBER   {"member": <prior snapshot>}            (single)
                    {"members": [<prior snapshots>, ...]}   (weekly marks)
    DELETE_MEMBER   {"member": <snapshot>}
"""

from collections.abc import Mapping
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select

from muster_kernel.domain.access_policy import Entity, Operation, PolicyTarget, require
from muster_kernel.domain.clock import Clock
from muster_kernel.domain.identity import Actor
from muster_kernel.domain.marks import merge_marks, validate_marks
from muster_kernel.domain.members import validate_member
from muster_kernel.domain.sections import Section, parse_section, year_from_storage
from muster_kernel.exceptions import MemberNotFoundError, MemberValidationError
from muster_kernel.logging_config import LogContext, get_logger
from muster_kernel.models.audit_log import AuditAction
from muster_kernel.models.member import Member
from muster_kernel.services.audit_recorder import AuditRecorder
from muster_kernel.services.base import (
    BaseService,
    coerce_uuid,
    translates_store_errors,
)

logger = get_logger("services.members")


def _editable_fields(member: Member) -> dict[str, Any]:
    section = parse_section(member.section)
    return {
        "name": member.name,
        "squad": member.squad,
        "year": year_from_storage(section, member.year),
        "marks": [dict(mark) for mark in member.marks],
        "is_squad_leader": member.is_squad_leader,
    }


class MemberService(BaseService):
    """Member CRUD and weekly mark entry."""

    def __init__(self, session, clock: Clock | None = None, auditor: AuditRecorder | None = None):
        super().__init__(session, clock)
        self._auditor = auditor or AuditRecorder(session, self.clock)

    def _load(self, member_id: UUID | str) -> Member:
        key = coerce_uuid(member_id)
        member = self.session.get(Member, key) if key else None
        if member is None:
            raise MemberNotFoundError(str(member_id))
        return member

    @staticmethod
    def _gate(actor: Actor, operation: Operation, section: Section | None = None):
        require(
            actor.role,
            Entity.MEMBER,
            operation,
            PolicyTarget(section=section),
            actor_id=actor.identity_id,
        )

    @translates_store_errors
    def create_member(
        self,
        actor: Actor,
        section: Section | str,
        payload: Mapping[str, Any],
    ) -> Member:
        section = parse_section(section)
        self._gate(actor, Operation.CREATE, section)
        draft = validate_member(section, payload)

        member = Member(**draft.to_columns(), created_by_id=actor.identity_id)
        self.session.add(member)
        self.session.flush()

        with LogContext.bind(section=section.value, entity_id=str(member.id)):
            self._auditor.record(
                actor,
                AuditAction.CREATE_MEMBER,
                f"Added {section.value} member {member.name}",
                {"member_id": str(member.id)},
                section=section,
            )
            logger.info("member_created", extra={"mark_count": len(draft.marks)})
        return member

    @translates_store_errors
    def get_member(self, actor: Actor, member_id: UUID | str) -> Member:
        self._gate(actor, Operation.READ)
        return self._load(member_id)

    @translates_store_errors
    def list_members(self, actor: Actor, section: Section | str) -> list[Member]:
        """Members of ``section`` ordered by name."""
        section = parse_section(section)
        self._gate(actor, Operation.READ, section)
        return list(
            self.session.execute(
                select(Member)
                .where(Member.section == section.value)
                .order_by(Member.name, Member.id)
            ).scalars()
        )

    @translates_store_errors
    def update_member(
        self,
        actor: Actor,
        member_id: UUID | str,
        payload: Mapping[str, Any],
    ) -> Member:
        """
        Apply a partial update.  Fields not in ``payload`` keep their value;
        the merged member is validated as a whole.
        """
        self._gate(actor, Operation.UPDATE)
        member = self._load(member_id)
        section = parse_section(member.section)

        if not isinstance(payload, Mapping):
            raise MemberValidationError("payload", payload, "member must be an object")
        merged = _editable_fields(member)
        merged.update(payload)
        draft = validate_member(section, merged)

        snapshot = member.to_snapshot()
        for column, value in draft.to_columns().items():
            setattr(member, column, value)
        member.updated_by_id = actor.identity_id
        self.session.flush()

        with LogContext.bind(section=section.value, entity_id=str(member.id)):
            self._auditor.record(
                actor,
                AuditAction.UPDATE_MEMBER,
                f"Updated {section.value} member {member.name}",
                {"member": snapshot},
                section=section,
            )
            logger.info("member_updated", extra={"fields": sorted(payload)})
        return member

    @translates_store_errors
    def delete_member(self, actor: Actor, member_id: UUID | str) -> None:
        self._gate(actor, Operation.DELETE)
        member = self._load(member_id)
        section = parse_section(member.section)

        snapshot = member.to_snapshot()
        self.session.delete(member)
        self.session.flush()

        with LogContext.bind(section=section.value, entity_id=snapshot["id"]):
            self._auditor.record(
                actor,
                AuditAction.DELETE_MEMBER,
                f"Deleted {section.value} member {snapshot['name']}",
                {"member": snapshot},
                section=section,
            )
            logger.info("member_deleted")

    @translates_store_errors
    def record_weekly_marks(
        self,
        actor: Actor,
        section: Section | str,
        mark_date: date | str,
        marks_by_member_id: Mapping[UUID | str, Mapping[str, Any]],
    ) -> list[Member]:
        """
        Upsert one meeting's marks for many members.

        ``marks_by_member_id`` maps a member id to that member's mark fields
        without the date (``{"score": 8}`` or the junior sub-scores).  Every
        mark is validated before any member changes.

        Raises:
            MemberNotFoundError: Unknown member id.
            MemberValidationError: Member belongs to another section, or is
                listed twice under differently spelled ids.
            MarkValidationError: Any mark breaks a rule.
        """
        section = parse_section(section)
        self._gate(actor, Operation.UPDATE, section)
        iso_date = mark_date.isoformat() if isinstance(mark_date, date) else mark_date

        pending = []
        seen = set()
        for member_id, fields in marks_by_member_id.items():
            member = self._load(member_id)
            if member.id in seen:
                raise MemberValidationError(
                    "member_id",
                    str(member_id),
                    f"member {member.name} appears more than once",
                )
            seen.add(member.id)
            if member.section != section.value:
                raise MemberValidationError(
                    "section",
                    member.section,
                    f"member {member.name} is not in the {section.value} section",
                )
            if not isinstance(fields, Mapping):
                raise MemberValidationError("marks", fields, "mark must be an object")
            raw = {**fields, "date": iso_date}
            validated = validate_marks(section, member.name, [raw])
            pending.append((member, validated))

        if not pending:
            return []

        snapshots = []
        for member, validated in pending:
            snapshots.append(member.to_snapshot())
            member.marks = merge_marks(member.marks, validated.marks)
            member.updated_by_id = actor.identity_id
        self.session.flush()

        with LogContext.bind(section=section.value):
            self._auditor.record(
                actor,
                AuditAction.UPDATE_MEMBER,
                f"Recorded {section.value} marks for {len(pending)} members "
                f"on {iso_date}",
                {"members": snapshots},
                section=section,
            )
            logger.info(
                "weekly_marks_recorded",
                extra={"mark_date": iso_date, "member_count": len(pending)},
            )
        return [member for member, _ in pending]
