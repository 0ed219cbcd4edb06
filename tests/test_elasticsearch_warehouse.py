from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from elasticsearch import ConnectionError as ESConnectionError

from src.jdbc_loader.adapters.staging import LocalStagingStorage
from src.jdbc_loader.adapters.warehouse_es import (
    ESConfig,
    ElasticsearchWarehouse,
    classify_es_failure,
)
from src.jdbc_loader.core.enums import CanonicalType, LoadFailureCause, LoadMode
from src.jdbc_loader.core.exceptions import LoadError
from src.jdbc_loader.services.staging_codec import encode_batch

OLD_INDEX = "people-20240101"
MAPPINGS = {
    "properties": {
        "id": {"type": "long"},
        "full_name": {"type": "keyword"},
        "location": {"type": "geo_point"},
    }
}


@pytest.fixture
def es_client():
    client = AsyncMock()
    client.indices.exists_alias.return_value = True
    client.indices.get_alias.return_value = SimpleNamespace(body={OLD_INDEX: {"aliases": {"people": {}}}})
    client.indices.get_mapping.return_value = SimpleNamespace(body={OLD_INDEX: {"mappings": MAPPINGS}})
    client.bulk.return_value = SimpleNamespace(body={"errors": False, "items": []})
    return client


@pytest.fixture
def warehouse(es_client):
    return ElasticsearchWarehouse(ESConfig(url="http://es:9200", user=None, password=None), client=es_client)


@pytest.fixture
def staged(tmp_path):
    async def _write(*batches):
        storage = LocalStagingStorage(tmp_path / "staging")
        keys = []
        for n, records in enumerate(batches, start=1):
            key = f"run-1/batch-{n:05d}.jsonl"
            await storage.write_new(key, encode_batch(records))
            keys.append(key)
        return storage, keys

    return _write


@pytest.mark.asyncio
async def test_get_schema_skips_unsupported_fields(warehouse):
    schema = await warehouse.get_schema("es:people")
    assert schema == {"id": CanonicalType.INTEGER, "full_name": CanonicalType.TEXT}


@pytest.mark.asyncio
async def test_get_schema_missing_alias(warehouse, es_client):
    es_client.indices.exists_alias.return_value = False

    with pytest.raises(LoadError) as e:
        await warehouse.get_schema("es:people")
    assert e.value.cause is LoadFailureCause.SCHEMA_VALIDATION


@pytest.mark.asyncio
async def test_truncate_swaps_alias_and_drops_old_index(warehouse, es_client, staged):
    storage, keys = await staged([{"id": 1, "full_name": "A"}], [{"id": 2, "full_name": "B"}])

    total = await warehouse.load(
        "es:people", {}, staging=storage, keys=keys, mode=LoadMode.TRUNCATE, load_id="RUN-1"
    )

    assert total == 2
    es_client.indices.create.assert_awaited_once_with(index="people-run-1", mappings=MAPPINGS)
    assert es_client.bulk.await_count == 2
    es_client.indices.update_aliases.assert_awaited_once_with(
        actions=[
            {"remove": {"index": OLD_INDEX, "alias": "people"}},
            {"add": {"index": "people-run-1", "alias": "people"}},
        ]
    )
    es_client.indices.delete.assert_awaited_once_with(index=OLD_INDEX, ignore_unavailable=True)


@pytest.mark.asyncio
async def test_append_adds_index_to_alias(warehouse, es_client, staged):
    storage, keys = await staged([{"id": 1, "full_name": "A"}])

    await warehouse.load(
        "es:people", {}, staging=storage, keys=keys, mode=LoadMode.APPEND, load_id="run-2"
    )

    es_client.indices.update_aliases.assert_awaited_once_with(
        actions=[{"add": {"index": "people-run-2", "alias": "people"}}]
    )
    es_client.indices.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_bulk_errors_abort_without_alias_change(warehouse, es_client, staged):
    es_client.bulk.return_value = SimpleNamespace(
        body={
            "errors": True,
            "items": [{"index": {"status": 400, "error": {"type": "mapper_parsing_exception"}}}],
        }
    )
    storage, keys = await staged([{"id": "not a number"}])

    with pytest.raises(LoadError) as e:
        await warehouse.load(
            "es:people", {}, staging=storage, keys=keys, mode=LoadMode.TRUNCATE, load_id="run-3"
        )

    assert e.value.cause is LoadFailureCause.SCHEMA_VALIDATION
    es_client.indices.update_aliases.assert_not_awaited()
    es_client.indices.delete.assert_awaited_once_with(index="people-run-3", ignore_unavailable=True)


def test_transport_errors_are_connection_failures():
    assert classify_es_failure(ESConnectionError("refused")) is LoadFailureCause.CONNECTION
    assert classify_es_failure(RuntimeError("x")) is LoadFailureCause.UNKNOWN
