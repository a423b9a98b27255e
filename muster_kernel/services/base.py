"""
BaseService -- common base for all kernel services.

Responsibility:
    Shared constructor (session + clock) and the flush-only transaction
    contract.  Also hosts ``translates_store_errors``, the one place where
    driver-level outages become StoreUnavailableError.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back.  The caller (session_scope, a web request, a test) owns the
      transaction, so a mutation and its audit entry land together.
    - A store outage is never reported as a denial or a validation failure.

Failure modes:
    - StoreUnavailableError (Infrastructure) wrapping OperationalError,
      InterfaceError or a pool TimeoutError, original chained.
"""

import functools
from abc import ABC
from collections.abc import Callable
from typing import ParamSpec, TypeVar
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from muster_kernel.domain.clock import Clock, SystemClock
from muster_kernel.exceptions import StoreUnavailableError
from muster_kernel.logging_config import get_logger

logger = get_logger("services.base")

P = ParamSpec("P")
R = TypeVar("R")

_STORE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


def translates_store_errors(fn: Callable[P, R]) -> Callable[P, R]:
    """Re-raise driver outages from ``fn`` as StoreUnavailableError."""

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return fn(*args, **kwargs)
        except _STORE_ERRORS as exc:
            cause = getattr(exc, "orig", None) or exc
            logger.error(
                "store_unavailable",
                extra={"operation": fn.__qualname__},
                exc_info=True,
            )
            raise StoreUnavailableError(
                operation=fn.__qualname__,
                cause=str(cause),
            ) from exc

    return wrapper


def coerce_uuid(value: UUID | str) -> UUID | None:
    """Parse an id supplied by a caller; None if it is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
