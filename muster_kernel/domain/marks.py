"""
Mark Validator -- section-specific numeric rules for attendance marks.

Responsibility:
    Turns an untrusted list of mark mappings into a tuple of typed marks
    (CompanyMark or JuniorMark, chosen by section), or rejects the whole
    batch with a MarkValidationError naming the member, the date and the rule.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by the member
    service before any row is written.

Invariants enforced:
    - Dates are strict ``YYYY-MM-DD`` calendar dates.
    - Every numeric field is int/float/Decimal (not bool, not NaN/inf) with at
      most two decimal places.
    - Company: score is -1 (absent) or in [0, 10]; junior sub-score fields
      are not allowed at all.
    - Junior: uniform_score is -1 or in [0, 10]; behaviour_score is -1 or in
      [0, 5]; score is -1 if either sub-score is -1, otherwise exactly
      uniform_score + behaviour_score.
    - At most one mark per date in a batch.
    - All-or-nothing: one bad mark rejects the batch.

Failure modes:
    - MarkValidationError, carrying member_name, mark_date, rule and field.

Payload shape:
    Company: {"date": "2025-01-15", "score": 7.5}
    Junior:  {"date": "2025-01-15", "score": 12, "uniform_score": 8,
              "behaviour_score": 4}

    Numeric comparison is exact (Decimal).  Floats are converted through
    their shortest repr, so 9.5 is Decimal("9.5") and 0.1 + 0.2 has more than
    two decimal places.
"""

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from muster_kernel.domain.sections import Section
from muster_kernel.exceptions import MarkValidationError

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")

ABSENT = Decimal(-1)

COMPANY_SCORE_MAX = Decimal(10)
UNIFORM_SCORE_MAX = Decimal(10)
BEHAVIOUR_SCORE_MAX = Decimal(5)

MAX_DECIMAL_PLACES = 2

COMPANY_FIELDS = frozenset({"date", "score"})
JUNIOR_ONLY_FIELDS = frozenset({"uniform_score", "behaviour_score"})
JUNIOR_FIELDS = COMPANY_FIELDS | JUNIOR_ONLY_FIELDS

_FIELD_LABELS = {
    "score": "Score",
    "uniform_score": "Uniform score",
    "behaviour_score": "Behaviour score",
}


def _json_number(value: Decimal) -> int | float:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


@dataclass(frozen=True)
class CompanyMark:
    date: date
    score: Decimal

    @property
    def is_absent(self) -> bool:
        return self.score == ABSENT

    def to_payload(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "score": _json_number(self.score)}


@dataclass(frozen=True)
class JuniorMark:
    date: date
    score: Decimal
    uniform_score: Decimal
    behaviour_score: Decimal

    @property
    def is_absent(self) -> bool:
        return self.score == ABSENT

    def to_payload(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "score": _json_number(self.score),
            "uniform_score": _json_number(self.uniform_score),
            "behaviour_score": _json_number(self.behaviour_score),
        }


Mark = CompanyMark | JuniorMark


@dataclass(frozen=True)
class ValidatedMarks:
    """A batch that passed every rule, in input order."""

    section: Section
    member_name: str
    marks: tuple[Mark, ...]

    def to_payload(self) -> list[dict[str, Any]]:
        return [mark.to_payload() for mark in self.marks]

    def __len__(self) -> int:
        return len(self.marks)


def is_numeric(value: Any) -> bool:
    """int, float or Decimal, excluding bool, NaN and infinities."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, Decimal):
        return value.is_finite()
    return False


def to_decimal(value: int | float | Decimal) -> Decimal:
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def has_at_most_two_decimals(value: Decimal) -> bool:
    """Exact on the digit tuple; context precision never rounds it."""
    _, digits, exponent = value.as_tuple()
    excess = -exponent - MAX_DECIMAL_PLACES
    return excess <= 0 or not any(digits[-excess:])


def parse_mark_date(raw: Any) -> date | None:
    """Strict ISO calendar date, or None."""
    if not isinstance(raw, str) or not DATE_PATTERN.fullmatch(raw):
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return None


class _BatchValidator:
    """Validates one batch for one member; raises on the first violation."""

    def __init__(self, section: Section, member_name: str):
        self.section = section
        self.member_name = member_name

    def fail(self, mark_date, rule: str, message: str, field: str | None = None):
        raise MarkValidationError(
            member_name=self.member_name,
            mark_date=mark_date,
            rule=rule,
            message=message,
            field=field,
        )

    def validate(self, marks: Any) -> ValidatedMarks:
        if isinstance(marks, (str, bytes)) or not isinstance(marks, Sequence):
            self.fail(None, "not_a_sequence", "Marks must be an array.")

        seen: set[date] = set()
        validated: list[Mark] = []
        for raw in marks:
            mark = self.validate_one(raw)
            if mark.date in seen:
                self.fail(
                    mark.date.isoformat(),
                    "duplicate_date",
                    f"Duplicate mark for {self.member_name} on "
                    f"{mark.date.isoformat()}: at most one mark per date.",
                )
            seen.add(mark.date)
            validated.append(mark)

        return ValidatedMarks(
            section=self.section,
            member_name=self.member_name,
            marks=tuple(validated),
        )

    def validate_one(self, raw: Any) -> Mark:
        if not isinstance(raw, Mapping):
            self.fail(
                None,
                "not_a_record",
                f"Each mark for {self.member_name} must be an object.",
            )

        raw_date = raw.get("date")
        mark_date = parse_mark_date(raw_date)
        if mark_date is None:
            self.fail(
                raw_date if isinstance(raw_date, str) else None,
                "date_format",
                f"Invalid date format for mark: {raw_date}",
                field="date",
            )
        iso = mark_date.isoformat()

        score = raw.get("score")
        if not is_numeric(score):
            self.fail(
                iso,
                "score_type",
                f"Invalid score type for mark on {iso}. Score must be a number.",
                field="score",
            )

        numbers = {"score": to_decimal(score)}
        for field in JUNIOR_ONLY_FIELDS:
            if field in raw and is_numeric(raw[field]):
                numbers[field] = to_decimal(raw[field])

        for field, value in numbers.items():
            if not has_at_most_two_decimals(value):
                self.fail(
                    iso,
                    "precision",
                    f"{_FIELD_LABELS[field]} for {self.member_name} on {iso} "
                    f"has more than 2 decimal places.",
                    field=field,
                )

        if self.section is Section.COMPANY:
            return self.company_mark(raw, mark_date, numbers)
        return self.junior_mark(raw, mark_date, numbers)

    def reject_unknown_fields(self, raw: Mapping, allowed: frozenset, iso: str):
        for key in raw:
            if key not in allowed:
                self.fail(
                    iso,
                    "unexpected_field",
                    f"Mark for {self.member_name} on {iso} has unexpected "
                    f"field '{key}'.",
                    field=str(key),
                )

    def company_mark(self, raw, mark_date: date, numbers) -> CompanyMark:
        iso = mark_date.isoformat()
        if JUNIOR_ONLY_FIELDS & set(raw):
            self.fail(
                iso,
                "section_fields",
                f"Company section member {self.member_name} on {iso} has "
                f"junior-specific scores.",
            )
        self.reject_unknown_fields(raw, COMPANY_FIELDS, iso)

        score = numbers["score"]
        if score != ABSENT and not (0 <= score <= COMPANY_SCORE_MAX):
            self.fail(
                iso,
                "score_range",
                f"Company section score for {self.member_name} on {iso} is "
                f"out of range (0-10).",
                field="score",
            )
        return CompanyMark(date=mark_date, score=score)

    def junior_mark(self, raw, mark_date: date, numbers) -> JuniorMark:
        iso = mark_date.isoformat()
        self.reject_unknown_fields(raw, JUNIOR_FIELDS, iso)

        uniform = numbers.get("uniform_score")
        if uniform is None or (
            uniform != ABSENT and not (0 <= uniform <= UNIFORM_SCORE_MAX)
        ):
            self.fail(
                iso,
                "uniform_range",
                f"Junior section uniform score for {self.member_name} on {iso} "
                f"is invalid or out of range (0-10).",
                field="uniform_score",
            )

        behaviour = numbers.get("behaviour_score")
        if behaviour is None or (
            behaviour != ABSENT and not (0 <= behaviour <= BEHAVIOUR_SCORE_MAX)
        ):
            self.fail(
                iso,
                "behaviour_range",
                f"Junior section behaviour score for {self.member_name} on {iso} "
                f"is invalid or out of range (0-5).",
                field="behaviour_score",
            )

        score = numbers["score"]
        if uniform == ABSENT or behaviour == ABSENT:
            if score != ABSENT:
                self.fail(
                    iso,
                    "absence_sentinel",
                    f"Junior section total score for {self.member_name} on "
                    f"{iso} must be -1 when a sub-score is absent.",
                    field="score",
                )
        elif score != uniform + behaviour:
            self.fail(
                iso,
                "total_mismatch",
                f"Junior section total score for {self.member_name} on {iso} "
                f"does not match sum of uniform and behaviour scores.",
                field="score",
            )

        return JuniorMark(
            date=mark_date,
            score=score,
            uniform_score=uniform,
            behaviour_score=behaviour,
        )


def validate_marks(section: Section, member_name: str, marks: Any) -> ValidatedMarks:
    """
    Validate a batch of marks for one member.

    Preconditions: ``section`` is the member's section.
    Postconditions: Returns every mark, typed and in input order;
        ``to_payload()`` on the result equals the valid input.

    Raises:
        MarkValidationError: On the first violated rule.
    """
    return _BatchValidator(section, member_name).validate(marks)


def merge_marks(
    existing: Sequence[Mapping[str, Any]],
    incoming: Sequence[Mark],
) -> list[dict[str, Any]]:
    """
    Upsert ``incoming`` into stored payloads, one mark per date.

    A mark for a date already present replaces it; new dates are added.
    The result is ordered by date.
    """
    by_date: dict[str, dict[str, Any]] = {
        str(mark["date"]): dict(mark) for mark in existing
    }
    for mark in incoming:
        payload = mark.to_payload()
        by_date[payload["date"]] = payload
    return [by_date[key] for key in sorted(by_date)]
