"""ORM persistence for per-section settings (one row per section)."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from muster_kernel.db.base import TrackedBase


class SectionSettings(TrackedBase):
    """Settings for one section.  meeting_day is 0 (Sunday) through 6."""

    __tablename__ = "section_settings"

    section: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)

    meeting_day: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<SectionSettings {self.section}: day {self.meeting_day}>"
