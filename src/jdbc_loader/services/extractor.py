from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, NamedTuple, Sequence

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncResult

from src.jdbc_loader.core.enums import CanonicalType
from src.jdbc_loader.core.exceptions import ExtractionError, JobCancelledError
from src.jdbc_loader.services.sql_columns import projection_column_names
from src.jdbc_loader.services.types import canonicalize

logger = logging.getLogger("jdbc_loader")


class SourceValue(NamedTuple):
    label: str
    type: CanonicalType
    value: Any


SourceRow = tuple[SourceValue, ...]


def _driver_types(result: AsyncResult, width: int) -> list[str | None]:
    """DBAPI type codes from cursor.description, where the driver reports them."""
    cursor = getattr(getattr(result, "_real_result", None), "cursor", None)
    description = getattr(cursor, "description", None) or ()
    codes = [str(d[1]) if d[1] is not None else None for d in description]
    return codes if len(codes) == width else [None] * width


class QueryExtractor:
    """Runs the source query and yields SourceRow one by one (forward-only, single use)."""

    def __init__(
        self,
        query: str,
        *,
        use_column_alias: bool,
        backend: str | None = None,
        fetch_size: int = 1000,
    ) -> None:
        self.query = query.strip().rstrip(";")
        self.use_column_alias = use_column_alias
        self.backend = backend
        self.fetch_size = fetch_size
        self.rows_emitted = 0
        self._started = False

    def column_labels(self, reported: Sequence[str]) -> list[str]:
        reported = list(reported)
        if self.use_column_alias:
            return reported

        names = projection_column_names(self.query, backend=self.backend)
        if names is None or len(names) != len(reported):
            logger.warning(
                "Cannot resolve underlying column names from query; "
                "using reported labels %s",
                reported,
            )
            return reported
        return names

    async def stream(
        self,
        conn: AsyncConnection,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[SourceRow]:
        if self._started:
            raise ExtractionError("Row stream is not restartable", rows_emitted=self.rows_emitted)
        self._started = True

        try:
            # the query is driver SQL: a literal ":name" is not a bind parameter
            result = await conn.stream(
                text(self.query.replace(":", r"\:")),
                execution_options={"yield_per": self.fetch_size},
            )
        except SQLAlchemyError as exc:
            raise ExtractionError(f"Source query failed: {exc!r}") from exc

        try:
            labels = self.column_labels(result.keys())
            sql_types = _driver_types(result, len(labels))
            logger.info("Extracting columns=%s use_column_alias=%s", labels, self.use_column_alias)

            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise JobCancelledError(
                        f"Extraction cancelled after {self.rows_emitted} rows"
                    )
                try:
                    row = await result.__anext__()
                except StopAsyncIteration:
                    break
                except (SQLAlchemyError, OSError) as exc:
                    raise ExtractionError(
                        f"Source stream failed: {exc!r}", rows_emitted=self.rows_emitted
                    ) from exc

                source_row = tuple(
                    SourceValue(label, *canonicalize(value, column=label, sql_type=sql_type))
                    for label, sql_type, value in zip(labels, sql_types, row)
                )
                self.rows_emitted += 1
                yield source_row
        finally:
            await result.close()

        logger.info("Extraction done rows=%d", self.rows_emitted)
