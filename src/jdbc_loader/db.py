from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.config import Settings, get_settings


def create_warehouse_engine(settings: Settings | None = None) -> AsyncEngine:
    """Асинхронный движок SQLAlchemy для warehouse-таблиц назначения."""
    s = settings or get_settings()
    return create_async_engine(
        s.warehouse_url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
