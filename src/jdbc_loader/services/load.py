from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator

from src.jdbc_loader.core.enums import LoadFailureCause, LoadMode
from src.jdbc_loader.core.exceptions import LoadError
from src.jdbc_loader.ports.staging import StagingStorage
from src.jdbc_loader.ports.warehouse import DestinationSchema, Warehouse
from src.jdbc_loader.services.schema_mapper import DestinationRecord
from src.jdbc_loader.services.staging_codec import encode_batch

logger = logging.getLogger("jdbc_loader")

# one commit in flight per destination table (within this process)
_commit_locks: dict[str, asyncio.Lock] = {}
_commit_users: dict[str, int] = {}


@asynccontextmanager
async def _commit_lock(table: str) -> AsyncIterator[None]:
    lock = _commit_locks.setdefault(table, asyncio.Lock())
    _commit_users[table] = _commit_users.get(table, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _commit_users[table] -= 1
        if not _commit_users[table]:
            # nobody holds or waits for it
            del _commit_users[table]
            del _commit_locks[table]


@dataclass(frozen=True, slots=True)
class StagedBatch:
    key: str
    uri: str
    rows: int


@dataclass(frozen=True, slots=True)
class LoadResult:
    table: str
    mode: LoadMode
    batches: int
    rows_committed: int


class LoadCoordinator:
    """Stages destination records in batches, commits them in one load, cleans up staging."""

    def __init__(
        self,
        *,
        table: str,
        schema: DestinationSchema,
        staging: StagingStorage,
        warehouse: Warehouse,
        mode: LoadMode,
        run_id: str,
        batch_size: int = 1000,
        max_concurrency: int = 4,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.table = table
        self.schema = schema
        self.mode = mode
        self.run_id = run_id
        self.batch_size = batch_size
        self._staging = staging
        self._warehouse = warehouse
        self._max_concurrency = max(1, max_concurrency)
        self._cancel_event = cancel_event
        self.prefix = run_id

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def _batch_key(self, batch_no: int) -> str:
        return f"{self.prefix}/batch-{batch_no:05d}.jsonl"

    async def _write_batch(
        self,
        batch_no: int,
        records: list[DestinationRecord],
        slots: asyncio.Semaphore,
    ) -> StagedBatch:
        key = self._batch_key(batch_no)
        try:
            uri = await self._staging.write_new(key, encode_batch(records))
        except Exception as exc:
            raise LoadError(
                self.table, LoadFailureCause.STAGING_IO, f"staging write {key!r} failed: {exc!r}"
            ) from exc
        finally:
            slots.release()
        logger.info("Staged batch=%d rows=%d uri=%s", batch_no, len(records), uri)
        return StagedBatch(key=key, uri=uri, rows=len(records))

    async def stage(self, records: AsyncIterable[DestinationRecord]) -> list[StagedBatch]:
        slots = asyncio.Semaphore(self._max_concurrency)
        tasks: list[asyncio.Task[StagedBatch]] = []
        buf: list[DestinationRecord] = []

        def raise_failed() -> None:
            for t in tasks:
                if t.done() and not t.cancelled() and t.exception() is not None:
                    raise t.exception()

        async def flush() -> None:
            nonlocal buf
            raise_failed()
            # backpressure: wait for a free slot before taking the next batch
            await slots.acquire()
            # a write that freed the slot may have failed: stop pulling the source
            raise_failed()
            tasks.append(
                asyncio.create_task(self._write_batch(len(tasks) + 1, buf, slots))
            )
            buf = []

        try:
            async for record in records:
                buf.append(record)
                if len(buf) >= self.batch_size:
                    await flush()
            if buf:
                await flush()
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for r in results:
            if isinstance(r, BaseException):
                raise r
        staged = list(results)
        logger.info(
            "Staging done table=%s batches=%d rows=%d",
            self.table,
            len(staged),
            sum(b.rows for b in staged),
        )
        return staged

    async def commit(self, batches: list[StagedBatch]) -> LoadResult:
        if self._cancelled():
            raise LoadError(self.table, LoadFailureCause.CANCELLED, "job cancelled before commit")

        async with _commit_lock(self.table):
            if self._cancelled():
                raise LoadError(
                    self.table, LoadFailureCause.CANCELLED, "job cancelled before commit"
                )

            logger.info(
                "Commit start table=%s mode=%s batches=%d", self.table, self.mode.value, len(batches)
            )
            try:
                rows = await self._warehouse.load(
                    self.table,
                    self.schema,
                    staging=self._staging,
                    keys=[b.key for b in batches],
                    mode=self.mode,
                    load_id=self.run_id,
                )
            except LoadError:
                raise
            except Exception as exc:
                raise LoadError(self.table, LoadFailureCause.UNKNOWN, repr(exc)) from exc

        staged_rows = sum(b.rows for b in batches)
        if rows != staged_rows:
            logger.warning(
                "Committed rows=%d differ from staged rows=%d table=%s", rows, staged_rows, self.table
            )
        logger.info("Commit done table=%s rows=%d", self.table, rows)
        return LoadResult(
            table=self.table, mode=self.mode, batches=len(batches), rows_committed=rows
        )

    async def cleanup(self) -> int:
        try:
            deleted = await self._staging.delete_prefix(self.prefix)
        except Exception as exc:
            raise LoadError(
                self.table,
                LoadFailureCause.STAGING_IO,
                f"staging cleanup of {self.prefix!r} failed: {exc!r}",
            ) from exc
        logger.info("Staging cleanup prefix=%s deleted=%d", self.prefix, deleted)
        return deleted
