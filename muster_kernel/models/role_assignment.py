"""
Module: muster_kernel.models.role_assignment
Responsibility: ORM persistence for identity -> role assignments.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one role per identity (unique identity_id).
    - role is one of officer / captain / admin; checked by services before
      insert or update.
"""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from muster_kernel.db.base import TrackedBase


class RoleAssignment(TrackedBase):
    """Role held by one identity."""

    __tablename__ = "role_assignments"

    __table_args__ = (Index("idx_role_assignment_role", "role"),)

    identity_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    email: Mapped[str] = mapped_column(String(320), nullable=False)

    role: Mapped[str] = mapped_column(String(16), nullable=False)

    def __repr__(self) -> str:
        return f"<RoleAssignment {self.identity_id}: {self.role}>"
