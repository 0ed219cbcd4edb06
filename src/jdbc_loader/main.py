from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from src.config import get_settings
from src.jdbc_loader.adapters import AwsKmsClient, resolve_staging, resolve_warehouse
from src.jdbc_loader.core.exceptions import PipelineError
from src.jdbc_loader.orchestration.executor import ExecutionResult, PipelineExecutor
from src.jdbc_loader.schemas.pipeline import PipelineConfig

logger = logging.getLogger("jdbc_loader")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] [loader] %(message)s",
    )


def load_config(path: str | Path) -> PipelineConfig:
    return PipelineConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))


async def run_once(config: PipelineConfig) -> ExecutionResult:
    settings = get_settings()
    cancel_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            # Windows: no signal handlers in the event loop
            pass

    kms = AwsKmsClient(settings) if config.kms_encryption_key else None
    warehouse = resolve_warehouse(config.output_table, settings)
    executor = PipelineExecutor(
        kms=kms,
        staging=resolve_staging(config.staging_dir, settings),
        warehouse=warehouse,
        settings=settings,
    )
    try:
        return await executor.execute(config, cancel_event=cancel_event)
    finally:
        await warehouse.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Load a JDBC query result into a warehouse table")
    parser.add_argument("config", help="path to pipeline config JSON")
    args = parser.parse_args(argv)

    setup_logging(get_settings().log_level)
    logger.info("Loader starting up...")

    try:
        config = load_config(args.config)
    except OSError as exc:
        logger.error("Cannot read pipeline config %s: %s", args.config, exc)
        return 2
    except ValidationError as exc:
        # input values may hold credentials, report locations only
        problems = [(".".join(map(str, e["loc"])), e["msg"]) for e in exc.errors()]
        logger.error("Invalid pipeline config %s: %s", args.config, problems)
        return 2

    try:
        result = asyncio.run(run_once(config))
    except PipelineError:
        logger.exception("Load job failed")
        return 1

    logger.info(
        "Load job finished run=%s rows_read=%d rows_written=%d",
        result.run_id,
        result.rows_read,
        result.rows_written,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
