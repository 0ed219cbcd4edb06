from __future__ import annotations

import asyncio
from dataclasses import dataclass

from src.jdbc_loader.schemas.pipeline import PipelineConfig


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    run_id: str
    config: PipelineConfig
    cancel_event: asyncio.Event
