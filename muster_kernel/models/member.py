"""
Module: muster_kernel.models.member
Responsibility: ORM persistence for members and their marks.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - squad/year domains depend on the member's section; validated by
      domain/members.py before any row is written.
    - marks is an ordered JSON list with at most one entry per date;
      validated by domain/marks.py.

Audit relevance:
    to_snapshot() is the revert payload shape for UPDATE_MEMBER and
    DELETE_MEMBER audit entries.  It must capture every column a revert
    needs to restore, including the id.
"""

from typing import Any

from sqlalchemy import JSON, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from muster_kernel.db.base import TrackedBase


class Member(TrackedBase):
    """
    A young person on a section's register.

    Contract:
        year is stored as text: company years are the strings "8".."14",
        junior years are "P4".."P7".  domain/sections.py converts.
    """

    __tablename__ = "members"

    __table_args__ = (
        Index("idx_member_section", "section"),
        Index("idx_member_section_name", "section", "name"),
    )

    section: Mapped[str] = mapped_column(String(16), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    squad: Mapped[int] = mapped_column(Integer, nullable=False)

    year: Mapped[str] = mapped_column(String(8), nullable=False)

    marks: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    is_squad_leader: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        return f"<Member {self.name} ({self.section})>"

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe copy of every restorable column."""
        return {
            "id": str(self.id),
            "section": self.section,
            "name": self.name,
            "squad": self.squad,
            "year": self.year,
            "marks": [dict(mark) for mark in self.marks],
            "is_squad_leader": self.is_squad_leader,
        }
