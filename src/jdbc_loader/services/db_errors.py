from __future__ import annotations

import asyncpg
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    InterfaceError,
    NoSuchTableError,
    OperationalError,
    ProgrammingError,
)

from src.jdbc_loader.core.enums import LoadFailureCause


def is_db_disconnect(exc: BaseException) -> bool:
    # SQLAlchemy wrappers
    if isinstance(exc, InterfaceError):
        return True
    if (isinstance(exc, DBAPIError) and
            getattr(exc, "connection_invalidated", False)):
        return True

    msg = str(exc).lower()
    return (
        "connection is closed" in msg
        or "connection was closed" in msg
        or "connection does not exist" in msg
        or "connection refused" in msg
        or "connect call failed" in msg
        or "no address associated with hostname" in msg
        or "the database system is starting up" in msg
        or "closed in the middle of operation" in msg
    )


def _orig(exc: BaseException) -> BaseException:
    return getattr(exc, "orig", None) or exc


def classify_load_failure(exc: BaseException) -> LoadFailureCause:
    """Map a warehouse-side SQLAlchemy/asyncpg failure to a load failure cause."""
    orig = _orig(exc)

    # asyncpg / Postgres server resource limits
    if isinstance(orig, (asyncpg.exceptions.InsufficientResourcesError,
                         asyncpg.exceptions.ProgramLimitExceededError,
                         asyncpg.exceptions.TooManyConnectionsError)):
        return LoadFailureCause.QUOTA
    if isinstance(exc, (DataError, IntegrityError, NoSuchTableError, ProgrammingError)):
        return LoadFailureCause.SCHEMA_VALIDATION
    if isinstance(orig, asyncpg.exceptions.DataError):
        return LoadFailureCause.SCHEMA_VALIDATION
    if is_db_disconnect(exc) or isinstance(exc, (OperationalError, OSError)):
        return LoadFailureCause.CONNECTION
    return LoadFailureCause.UNKNOWN
