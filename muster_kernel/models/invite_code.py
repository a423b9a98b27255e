"""
Module: muster_kernel.models.invite_code
Responsibility: ORM persistence for single-use, time-bounded invite codes.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique.
    - Once used, never un-used or re-assigned; once revoked, never
      un-revoked (ORM listener in db/immutability.py).
    - expires_at <= generated_at + 7 days (checked at issue time).
    - An expired code is revoked on the next read or write that touches it
      (lazy expiry, services/invite_service.py).

Failure modes:
    - ImmutabilityViolationError on an attempt to reverse a terminal state.
"""

from datetime import datetime

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from muster_kernel.db.base import Base


class InviteCode(Base):
    """
    Invite code granting ``default_role`` on redemption.

    Contract:
        The code string is the public handle; ``id`` is internal.
        ``section`` is an optional hint for the UI, not an access scope.
    """

    __tablename__ = "invite_codes"

    __table_args__ = (
        Index("idx_invite_expires", "expires_at"),
        Index("idx_invite_default_role", "default_role"),
    )

    code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)

    generated_by: Mapped[str] = mapped_column(String(255), nullable=False)

    generated_at: Mapped[datetime] = mapped_column(nullable=False)

    section: Mapped[str | None] = mapped_column(String(16), nullable=True)

    default_role: Mapped[str] = mapped_column(String(16), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    used_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<InviteCode {self.code} -> {self.default_role}>"

    @property
    def is_used(self) -> bool:
        return self.used_by is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_claimable(self, now: datetime) -> bool:
        """Unused, unrevoked and unexpired as of ``now``."""
        return not self.is_used and not self.revoked and not self.is_expired(now)
