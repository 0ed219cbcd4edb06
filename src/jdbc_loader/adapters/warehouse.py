from __future__ import annotations

from src.config import Settings, get_settings
from src.jdbc_loader.adapters.warehouse_es import ElasticsearchWarehouse, load_es_config
from src.jdbc_loader.adapters.warehouse_sql import SqlWarehouse
from src.jdbc_loader.core.constants import ES_TARGET_PREFIX
from src.jdbc_loader.db import create_warehouse_engine
from src.jdbc_loader.ports.warehouse import Warehouse


def resolve_warehouse(output_table: str, settings: Settings | None = None) -> Warehouse:
    s = settings or get_settings()
    target = (output_table or "").strip()

    if target.startswith(ES_TARGET_PREFIX):
        return ElasticsearchWarehouse(load_es_config(s))

    return SqlWarehouse(create_warehouse_engine(s))
