from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from src.jdbc_loader.core.enums import CanonicalType, LoadMode
from src.jdbc_loader.ports.staging import StagingStorage

DestinationSchema = Mapping[str, CanonicalType]


class Warehouse(Protocol):
    """Warehouse принимает staged батчи и коммитит их одной логической загрузкой."""

    async def get_schema(self, table: str) -> DestinationSchema:
        ...

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
        """All-or-nothing: либо все строки видны, либо таблица не изменилась."""
        ...

    async def close(self) -> None:
        ...
