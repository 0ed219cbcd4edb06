from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator
from uuid import uuid4

from src.config import Settings, get_settings
from src.jdbc_loader.orchestration.context import ExecutionContext
from src.jdbc_loader.ports.kms import KeyManagementClient
from src.jdbc_loader.ports.staging import StagingStorage
from src.jdbc_loader.ports.warehouse import Warehouse
from src.jdbc_loader.schemas.pipeline import PipelineConfig
from src.jdbc_loader.services.connection import ConnectionConfig
from src.jdbc_loader.services.extractor import QueryExtractor, SourceRow
from src.jdbc_loader.services.load import LoadCoordinator
from src.jdbc_loader.services.logctx import ctx_prefix
from src.jdbc_loader.services.schema_mapper import DestinationRecord, SchemaMapper
from src.jdbc_loader.services.secrets import SecretResolver

logger = logging.getLogger("jdbc_loader")


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    run_id: str
    rows_read: int
    rows_written: int
    batches: int


async def _mapped(
    rows: AsyncIterator[SourceRow], mapper: SchemaMapper
) -> AsyncIterator[DestinationRecord]:
    async for row in rows:
        yield mapper.map_row(row)


class PipelineExecutor:
    """Один запуск: config -> decrypt -> extract -> map -> stage -> commit -> cleanup."""

    def __init__(
        self,
        *,
        kms: KeyManagementClient | None,
        staging: StagingStorage,
        warehouse: Warehouse,
        settings: Settings | None = None,
    ) -> None:
        self._kms = kms
        self._staging = staging
        self._warehouse = warehouse
        self._settings = settings or get_settings()

    async def execute(
        self,
        config: PipelineConfig,
        *,
        cancel_event: asyncio.Event | None = None,
        run_id: str | None = None,
    ) -> ExecutionResult:
        ctx = ExecutionContext(
            run_id=run_id or uuid4().hex,
            config=config,
            cancel_event=cancel_event or asyncio.Event(),
        )
        ctx_str = ctx_prefix(
            table=config.output_table, run=ctx.run_id, query_chars=len(config.query)
        )

        logger.info(
            "%s start driver=%s jars=%d mode=%s use_column_alias=%s batch_size=%d",
            ctx_str,
            config.driver_class_name,
            len(config.driver_jars),
            config.load_mode.value,
            config.use_column_alias,
            config.batch_size,
        )

        # fail fast: driver policy, URL shape, properties
        connection = ConnectionConfig(
            driver=config.driver_class_name,
            connection_url=config.connection_url,
            connection_properties=config.connection_properties,
            settings=self._settings,
        )
        connection.validate_driver()

        resolved = await SecretResolver(self._kms).resolve_connection(
            config, connection.properties
        )

        schema = await self._warehouse.get_schema(config.output_table)
        logger.info("%s destination fields=%s", ctx_str, sorted(schema))

        mapper = SchemaMapper(schema)
        extractor = QueryExtractor(
            config.query,
            use_column_alias=config.use_column_alias,
            backend=connection.backend,
            fetch_size=self._settings.extract_fetch_size,
        )
        coordinator = LoadCoordinator(
            table=config.output_table,
            schema=schema,
            staging=self._staging,
            warehouse=self._warehouse,
            mode=config.load_mode,
            run_id=ctx.run_id,
            batch_size=config.batch_size,
            max_concurrency=self._settings.staging_max_concurrency,
            cancel_event=ctx.cancel_event,
        )

        try:
            async with connection.open(resolved) as conn:
                rows = extractor.stream(conn, ctx.cancel_event)
                try:
                    staged = await coordinator.stage(_mapped(rows, mapper))
                finally:
                    await rows.aclose()
            del resolved

            result = await coordinator.commit(staged)
        except Exception as exc:
            logger.error("%s FAILED rows_read=%d err=%r", ctx_str, extractor.rows_emitted, exc)
            raise
        finally:
            await coordinator.cleanup()

        logger.info(
            "%s done rows_read=%d rows_written=%d batches=%d",
            ctx_str,
            extractor.rows_emitted,
            result.rows_committed,
            result.batches,
        )
        return ExecutionResult(
            run_id=ctx.run_id,
            rows_read=extractor.rows_emitted,
            rows_written=result.rows_committed,
            batches=result.batches,
        )
