from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy import MetaData, Table, delete, insert
from sqlalchemy import types as sqltypes
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from src.jdbc_loader.core.constants import OUTPUT_TABLE_RE
from src.jdbc_loader.core.enums import CanonicalType, LoadFailureCause, LoadMode
from src.jdbc_loader.core.exceptions import LoadError
from src.jdbc_loader.ports.staging import StagingStorage
from src.jdbc_loader.ports.warehouse import DestinationSchema
from src.jdbc_loader.services.db_errors import classify_load_failure
from src.jdbc_loader.services.staging_codec import decode_batch

logger = logging.getLogger("jdbc_loader")


def canonical_column_type(t: sqltypes.TypeEngine) -> CanonicalType | None:
    if isinstance(t, sqltypes.Boolean):
        return CanonicalType.BOOLEAN
    if isinstance(t, sqltypes.Integer):
        return CanonicalType.INTEGER
    if isinstance(t, (sqltypes.Float, sqltypes.Numeric)):
        return CanonicalType.FLOAT
    if isinstance(t, (sqltypes.DateTime, sqltypes.Date)):
        return CanonicalType.TIMESTAMP
    if isinstance(t, sqltypes.String):
        return CanonicalType.TEXT
    if isinstance(t, (sqltypes.LargeBinary, sqltypes.BINARY, sqltypes.VARBINARY)):
        return CanonicalType.BINARY
    return None


def split_table(table: str) -> tuple[str, str]:
    m = OUTPUT_TABLE_RE.fullmatch((table or "").strip())
    if m is None:
        raise LoadError(
            table, LoadFailureCause.SCHEMA_VALIDATION, "expected [project:]dataset.table"
        )
    # project (if any) is the database the engine already points to
    return m.group("dataset"), m.group("table")


def _group_by_columns(rows: list[dict[str, Any]]) -> list[list[dict[str, Any]]]:
    # executemany needs the same key set in every row of one call
    groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
    for r in rows:
        groups.setdefault(tuple(sorted(r)), []).append(r)
    return list(groups.values())


class SqlWarehouse:
    """Warehouse поверх SQLAlchemy: вся загрузка в одной транзакции."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _reflect(self, conn: AsyncConnection, table: str) -> Table:
        schema, name = split_table(table)
        return await conn.run_sync(
            lambda sync_conn: Table(name, MetaData(), schema=schema, autoload_with=sync_conn)
        )

    async def get_schema(self, table: str) -> DestinationSchema:
        try:
            async with self._engine.connect() as conn:
                t = await self._reflect(conn, table)
        except NoSuchTableError as exc:
            raise LoadError(
                table, LoadFailureCause.SCHEMA_VALIDATION, "destination table does not exist"
            ) from exc
        except (SQLAlchemyError, OSError) as exc:
            raise LoadError(table, classify_load_failure(exc), repr(exc)) from exc

        schema: dict[str, CanonicalType] = {}
        for col in t.columns:
            ct = canonical_column_type(col.type)
            if ct is None:
                logger.warning(
                    "Skip destination column %s.%s: unsupported type %s", table, col.name, col.type
                )
                continue
            schema[col.name] = ct
        return schema

    async def load(
        self,
        table: str,
        schema: DestinationSchema,
        *,
        staging: StagingStorage,
        keys: Sequence[str],
        mode: LoadMode,
        load_id: str,
    ) -> int:
        total = 0
        try:
            async with self._engine.begin() as conn:
                t = await self._reflect(conn, table)
                if mode is LoadMode.TRUNCATE:
                    await conn.execute(delete(t))
                    logger.info("load=%s truncated %s inside load transaction", load_id, table)

                for key in keys:
                    try:
                        payload = await staging.read(key)
                    except Exception as exc:
                        raise LoadError(
                            table, LoadFailureCause.STAGING_IO, f"cannot read {key!r}: {exc!r}"
                        ) from exc

                    rows = decode_batch(payload, schema)
                    for group in _group_by_columns(rows):
                        await conn.execute(insert(t), group)
                    total += len(rows)
        except LoadError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            raise LoadError(table, classify_load_failure(exc), repr(exc)) from exc

        logger.info("load=%s committed %d rows into %s mode=%s", load_id, total, table, mode.value)
        return total

    async def close(self) -> None:
        await self._engine.dispose()
