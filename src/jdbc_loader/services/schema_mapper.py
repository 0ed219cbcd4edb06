from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from src.jdbc_loader.core.enums import CanonicalType
from src.jdbc_loader.core.exceptions import SchemaMismatchError
from src.jdbc_loader.ports.warehouse import DestinationSchema
from src.jdbc_loader.services.extractor import SourceRow

DestinationRecord = dict[str, Any]

T = CanonicalType


def _same(v: Any) -> Any:
    return v


def _bool_text(v: bool) -> str:
    return "true" if v else "false"


def _ts_text(v: datetime) -> str:
    return v.isoformat()


# (source, destination) -> converter. Pairs not listed are rejected.
COERCIONS: dict[tuple[CanonicalType, CanonicalType], Callable[[Any], Any]] = {
    (T.INTEGER, T.INTEGER): _same,
    (T.INTEGER, T.FLOAT): float,
    (T.INTEGER, T.TEXT): str,
    (T.FLOAT, T.FLOAT): _same,
    (T.FLOAT, T.TEXT): str,
    (T.TEXT, T.TEXT): _same,
    (T.BOOLEAN, T.BOOLEAN): _same,
    (T.BOOLEAN, T.TEXT): _bool_text,
    (T.TIMESTAMP, T.TIMESTAMP): _same,
    (T.TIMESTAMP, T.TEXT): _ts_text,
    (T.BINARY, T.BINARY): _same,
}


def coerce(field: str, source: CanonicalType, destination: CanonicalType, value: Any) -> Any:
    if source is T.NULL:
        return None
    convert = COERCIONS.get((source, destination))
    if convert is None:
        raise SchemaMismatchError(field, source.value, destination.value)
    return convert(value)


class SchemaMapper:
    """SourceRow -> DestinationRecord по точному (case-sensitive) совпадению имён.

    Лишние колонки источника отбрасываются, отсутствующие поля назначения
    просто не попадают в запись (при загрузке это NULL).
    """

    def __init__(self, schema: DestinationSchema) -> None:
        self._schema = dict(schema)

    @property
    def schema(self) -> DestinationSchema:
        return self._schema

    def map_row(self, row: SourceRow) -> DestinationRecord:
        record: DestinationRecord = {}
        for label, source_type, value in row:
            destination = self._schema.get(label)
            if destination is None:
                continue
            record[label] = coerce(label, source_type, destination, value)
        return record
