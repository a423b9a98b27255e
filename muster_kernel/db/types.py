"""
Module: muster_kernel.db.types
Responsibility: Column types shared by every model, so timestamps have one
    definition.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  MUST NOT import from either.

Invariants enforced:
    - All timestamps are timezone-aware UTC on the way in and on the way out.
      UTCDateTime normalises aware values to UTC before binding and attaches
      UTC to naive values read back from backends that drop tz info (SQLite).

Failure modes:
    - ValueError when a naive datetime is bound; the kernel never produces
      one, so receiving one indicates a caller bypassing the Clock.
"""

from datetime import UTC

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime stored in UTC.

    Contract:
        Accepts only aware datetimes.  Values are converted to UTC before
        being written; values read back always carry tzinfo=UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime cannot be stored: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
