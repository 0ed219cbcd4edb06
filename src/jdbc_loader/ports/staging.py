from __future__ import annotations

from typing import Protocol


class StagingStorage(Protocol):
    """Durable staging area под временной директорией загрузки."""

    location: str

    async def write_new(self, key: str, data: bytes) -> str:
        """Записать новый объект (перезапись запрещена), вернуть его полный путь."""
        ...

    async def read(self, key: str) -> bytes:
        ...

    async def delete_prefix(self, prefix: str) -> int:
        """Удалить все объекты под prefix, вернуть число удалённых."""
        ...
