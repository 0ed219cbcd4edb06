from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from src.jdbc_loader.core.enums import CanonicalType
from src.jdbc_loader.core.exceptions import UnsupportedTypeError


def _to_datetime(v: date) -> datetime:
    if isinstance(v, datetime):
        return v
    return datetime.combine(v, time.min)


# Order matters: bool before int, datetime before date.
_SOURCE_TYPES: tuple[tuple[tuple[type, ...], CanonicalType, Callable[[Any], Any]], ...] = (
    ((bool,), CanonicalType.BOOLEAN, bool),
    ((int,), CanonicalType.INTEGER, int),
    ((float,), CanonicalType.FLOAT, float),
    ((Decimal,), CanonicalType.FLOAT, float),
    ((str,), CanonicalType.TEXT, str),
    ((UUID,), CanonicalType.TEXT, str),
    ((datetime, date), CanonicalType.TIMESTAMP, _to_datetime),
    ((bytes, bytearray, memoryview), CanonicalType.BINARY, bytes),
)

# destination type names -> canonical (SQL, BigQuery and Elasticsearch spellings)
_DESTINATION_NAMES: dict[str, CanonicalType] = {
    "INTEGER": CanonicalType.INTEGER,
    "INT64": CanonicalType.INTEGER,
    "LONG": CanonicalType.INTEGER,
    "SHORT": CanonicalType.INTEGER,
    "BYTE": CanonicalType.INTEGER,
    "FLOAT": CanonicalType.FLOAT,
    "FLOAT64": CanonicalType.FLOAT,
    "DOUBLE": CanonicalType.FLOAT,
    "HALF_FLOAT": CanonicalType.FLOAT,
    "SCALED_FLOAT": CanonicalType.FLOAT,
    "NUMERIC": CanonicalType.FLOAT,
    "STRING": CanonicalType.TEXT,
    "TEXT": CanonicalType.TEXT,
    "KEYWORD": CanonicalType.TEXT,
    "BOOL": CanonicalType.BOOLEAN,
    "BOOLEAN": CanonicalType.BOOLEAN,
    "TIMESTAMP": CanonicalType.TIMESTAMP,
    "DATETIME": CanonicalType.TIMESTAMP,
    "DATE": CanonicalType.TIMESTAMP,
    "BYTES": CanonicalType.BINARY,
    "BINARY": CanonicalType.BINARY,
}


def canonicalize(
    value: Any, *, column: str, sql_type: str | None = None
) -> tuple[CanonicalType, Any]:
    """Map a driver value onto the canonical value set, or fail for the column.

    sql_type is the driver-reported column type, used only in the error.
    """
    if value is None:
        return CanonicalType.NULL, None
    for py_types, canonical, convert in _SOURCE_TYPES:
        if isinstance(value, py_types):
            return canonical, convert(value)
    py_type = type(value).__name__
    raise UnsupportedTypeError(
        column, f"{py_type} (driver type {sql_type})" if sql_type else py_type
    )


def destination_type(name: str) -> CanonicalType | None:
    return _DESTINATION_NAMES.get((name or "").strip().upper())
