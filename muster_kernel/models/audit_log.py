"""
Module: muster_kernel.models.audit_log
Responsibility: ORM persistence for the audit trail of mutating operations.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only.  The single permitted change is setting
      reverted_by_log_id once, from empty (ORM listener + compare-and-set).
    - No ORM deletes.  Rows are purged only by the external retention job.
    - revert_data is never returned to callers below admin; redaction
      happens in services/audit_recorder.py.

Audit relevance:
    AuditLog IS the audit trail.  Every mutating operation in the kernel
    writes exactly one entry in the same transaction as the mutation.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from muster_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: every mutating kernel operation maps to exactly one member.
    Only the member-data and settings actions can be reverted.
    """

    # Member lifecycle
    CREATE_MEMBER = "CREATE_MEMBER"
    UPDATE_MEMBER = "UPDATE_MEMBER"
    DELETE_MEMBER = "DELETE_MEMBER"

    # Settings
    UPDATE_SETTINGS = "UPDATE_SETTINGS"

    # Invites
    GENERATE_INVITE_CODE = "GENERATE_INVITE_CODE"
    REVOKE_INVITE_CODE = "REVOKE_INVITE_CODE"
    USE_INVITE_CODE = "USE_INVITE_CODE"

    # Role management
    UPDATE_USER_ROLE = "UPDATE_USER_ROLE"
    DELETE_USER_ROLE = "DELETE_USER_ROLE"

    # Revert
    REVERT_ACTION = "REVERT_ACTION"


REVERTIBLE_ACTIONS: frozenset[AuditAction] = frozenset(
    {
        AuditAction.CREATE_MEMBER,
        AuditAction.UPDATE_MEMBER,
        AuditAction.DELETE_MEMBER,
        AuditAction.UPDATE_SETTINGS,
    }
)


class AuditLog(Base):
    """
    One audit trail entry.

    Contract:
        actor_email is copied from the trusted identity claim at record
        time; the recorder never accepts an email from the payload.

    Guarantees:
        - reverts_log_id is set only on REVERT_ACTION entries.
        - reverted_by_log_id transitions at most once, None -> id.
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_log_occurred", "occurred_at"),
        Index("idx_audit_log_section", "section"),
        Index("idx_audit_log_action", "action_type"),
    )

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    section: Mapped[str | None] = mapped_column(String(16), nullable=True)

    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)

    actor_email: Mapped[str] = mapped_column(String(320), nullable=False)

    action_type: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str] = mapped_column(String(2000), nullable=False)

    # Prior state sufficient to invert the action (admin-only)
    revert_data: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    # Set on REVERT_ACTION entries: the entry this one undid
    reverts_log_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Set once on the original when a revert succeeds
    reverted_by_log_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action_type} by {self.actor_email}>"

    @property
    def is_reverted(self) -> bool:
        return self.reverted_by_log_id is not None
