"""
Section -- the two fixed organisational groupings.

Responsibility:
    Section identifiers and their member attribute domains (squads, school
    years).  Section selects the shape of member and mark data; it is NOT an
    authorization axis.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Company squads are 1..3 and years 8..14 (integers).
    - Junior squads are 1..4 and years P4..P7 (labels).
"""

from enum import Enum

from muster_kernel.exceptions import InvalidSectionError


class Section(str, Enum):
    COMPANY = "company"
    JUNIOR = "junior"


COMPANY_SQUADS: frozenset[int] = frozenset({1, 2, 3})
COMPANY_YEARS: frozenset[int] = frozenset(range(8, 15))

JUNIOR_SQUADS: frozenset[int] = frozenset({1, 2, 3, 4})
JUNIOR_YEARS: frozenset[str] = frozenset({"P4", "P5", "P6", "P7"})

SQUADS_BY_SECTION: dict[Section, frozenset[int]] = {
    Section.COMPANY: COMPANY_SQUADS,
    Section.JUNIOR: JUNIOR_SQUADS,
}

# Sunday = 0 ... Saturday = 6
DAYS_OF_WEEK = range(0, 7)


def parse_section(value: str | Section) -> Section:
    if isinstance(value, Section):
        return value
    try:
        return Section(value)
    except ValueError as exc:
        raise InvalidSectionError(value) from exc


def year_to_storage(year: int | str) -> str:
    """Stored text form of a validated year."""
    return str(year)


def year_from_storage(section: Section, raw: str) -> int | str:
    """Inverse of ``year_to_storage`` for the member's section."""
    if section is Section.COMPANY:
        return int(raw)
    return raw
