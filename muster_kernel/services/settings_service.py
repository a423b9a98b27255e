"""
SettingsService -- per-section meeting day.

Every role may read a section's settings; captains and admins may change
them.  A section with no stored row reports the configured default day.
Changes are audited as UPDATE_SETTINGS with the previous day as revert data.
"""

from dataclasses import dataclass

from sqlalchemy import select

from muster_kernel.domain.access_policy import Entity, Operation, PolicyTarget, require
from muster_kernel.domain.clock import Clock
from muster_kernel.domain.identity import Actor
from muster_kernel.domain.sections import DAYS_OF_WEEK, Section, parse_section
from muster_kernel.exceptions import SettingsValidationError
from muster_kernel.logging_config import LogContext, get_logger
from muster_kernel.models.audit_log import AuditAction
from muster_kernel.models.section_settings import SectionSettings
from muster_kernel.services.audit_recorder import AuditRecorder
from muster_kernel.services.base import BaseService, translates_store_errors

logger = get_logger("services.settings")

_DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


@dataclass(frozen=True)
class MeetingSettings:
    section: Section
    meeting_day: int
    is_default: bool = False

    @property
    def day_name(self) -> str:
        return _DAY_NAMES[self.meeting_day]


def validate_meeting_day(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value not in DAYS_OF_WEEK:
        raise SettingsValidationError(
            "meeting_day", value, "must be an integer from 0 (Sunday) to 6 (Saturday)"
        )
    return value


class SettingsService(BaseService):
    def __init__(
        self,
        session,
        clock: Clock | None = None,
        auditor: AuditRecorder | None = None,
        default_meeting_day: int = 5,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditRecorder(session, self.clock)
        self._default_meeting_day = default_meeting_day

    def _row(self, section: Section) -> SectionSettings | None:
        return self.session.execute(
            select(SectionSettings).where(SectionSettings.section == section.value)
        ).scalar_one_or_none()

    @translates_store_errors
    def get_settings(self, actor: Actor, section: Section | str) -> MeetingSettings:
        section = parse_section(section)
        require(
            actor.role,
            Entity.SECTION_SETTINGS,
            Operation.READ,
            PolicyTarget(section=section),
            actor_id=actor.identity_id,
        )
        row = self._row(section)
        if row is None:
            return MeetingSettings(section, self._default_meeting_day, is_default=True)
        return MeetingSettings(section, row.meeting_day)

    @translates_store_errors
    def update_settings(
        self,
        actor: Actor,
        section: Section | str,
        meeting_day: int,
    ) -> MeetingSettings:
        section = parse_section(section)
        require(
            actor.role,
            Entity.SECTION_SETTINGS,
            Operation.UPDATE,
            PolicyTarget(section=section),
            actor_id=actor.identity_id,
        )
        meeting_day = validate_meeting_day(meeting_day)

        row = self._row(section)
        previous = row.meeting_day if row is not None else self._default_meeting_day
        self.restore_meeting_day(actor, section, meeting_day)

        with LogContext.bind(section=section.value):
            self._auditor.record(
                actor,
                AuditAction.UPDATE_SETTINGS,
                f"Changed {section.value} meeting day from {_DAY_NAMES[previous]} "
                f"to {_DAY_NAMES[meeting_day]}",
                {"section": section.value, "meeting_day": previous},
                section=section,
            )
            logger.info(
                "settings_updated",
                extra={"previous_day": previous, "meeting_day": meeting_day},
            )
        return MeetingSettings(section, meeting_day)

    def restore_meeting_day(self, actor: Actor, section: Section, meeting_day: int) -> None:
        """Upsert the stored meeting day.  Not audited; callers record the change."""
        row = self._row(section)
        if row is None:
            row = SectionSettings(
                section=section.value,
                meeting_day=meeting_day,
                created_by_id=actor.identity_id,
            )
            self.session.add(row)
        else:
            row.meeting_day = meeting_day
            row.updated_by_id = actor.identity_id
        self.session.flush()
