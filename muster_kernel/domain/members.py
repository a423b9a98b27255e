"""
Member validation.

``validate_member`` checks a complete member payload against its section's
domains and runs the marks through the Mark Validator, producing a
``MemberDraft`` the service can write.  Nothing here touches storage.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from muster_kernel.domain.marks import ValidatedMarks, validate_marks
from muster_kernel.domain.sections import (
    COMPANY_YEARS,
    JUNIOR_YEARS,
    SQUADS_BY_SECTION,
    Section,
    year_to_storage,
)
from muster_kernel.exceptions import MemberValidationError

MAX_NAME_LENGTH = 200

MEMBER_FIELDS = frozenset({"name", "squad", "year", "marks", "is_squad_leader"})


@dataclass(frozen=True)
class MemberDraft:
    """A validated member, ready to be written for ``section``."""

    section: Section
    name: str
    squad: int
    year: int | str
    is_squad_leader: bool
    marks: ValidatedMarks

    def to_columns(self) -> dict[str, Any]:
        """Column values for the members table."""
        return {
            "section": self.section.value,
            "name": self.name,
            "squad": self.squad,
            "year": year_to_storage(self.year),
            "marks": self.marks.to_payload(),
            "is_squad_leader": self.is_squad_leader,
        }


def _validate_name(raw: Any) -> str:
    if not isinstance(raw, str) or not raw.strip():
        raise MemberValidationError("name", raw, "name must be a non-empty string")
    name = raw.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise MemberValidationError(
            "name", raw, f"name must be at most {MAX_NAME_LENGTH} characters"
        )
    return name


def _validate_squad(section: Section, raw: Any) -> int:
    squads = SQUADS_BY_SECTION[section]
    if isinstance(raw, bool) or not isinstance(raw, int) or raw not in squads:
        raise MemberValidationError(
            "squad",
            raw,
            f"{section.value} squads are {', '.join(str(s) for s in sorted(squads))}",
        )
    return raw


def _validate_year(section: Section, raw: Any) -> int | str:
    if section is Section.COMPANY:
        if isinstance(raw, bool) or not isinstance(raw, int) or raw not in COMPANY_YEARS:
            raise MemberValidationError(
                "year", raw, "company years are 8 to 14"
            )
        return raw
    if not isinstance(raw, str) or raw not in JUNIOR_YEARS:
        raise MemberValidationError(
            "year", raw, f"junior years are {', '.join(sorted(JUNIOR_YEARS))}"
        )
    return raw


def validate_member(section: Section, payload: Mapping[str, Any]) -> MemberDraft:
    """
    Validate a full member payload for ``section``.

    Required keys: name, squad, year.  Optional: marks (default []),
    is_squad_leader (default False).  Unknown keys are rejected.

    Raises:
        MemberValidationError: For name/squad/year/flag problems.
        MarkValidationError: For any mark problem (whole batch rejected).
    """
    if not isinstance(payload, Mapping):
        raise MemberValidationError("payload", payload, "member must be an object")

    unknown = set(payload) - MEMBER_FIELDS
    if unknown:
        field = sorted(unknown, key=str)[0]
        raise MemberValidationError(str(field), payload[field], "unexpected field")

    name = _validate_name(payload.get("name"))
    squad = _validate_squad(section, payload.get("squad"))
    year = _validate_year(section, payload.get("year"))

    is_squad_leader = payload.get("is_squad_leader", False)
    if not isinstance(is_squad_leader, bool):
        raise MemberValidationError(
            "is_squad_leader", is_squad_leader, "must be true or false"
        )

    marks = validate_marks(section, name, payload.get("marks", []))

    return MemberDraft(
        section=section,
        name=name,
        squad=squad,
        year=year,
        is_squad_leader=is_squad_leader,
        marks=marks,
    )
