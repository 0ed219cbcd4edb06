import asyncio
from datetime import date, datetime, time
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from src.jdbc_loader.core.enums import CanonicalType
from src.jdbc_loader.core.exceptions import (
    ExtractionError,
    JobCancelledError,
    UnsupportedTypeError,
)
from src.jdbc_loader.services.extractor import QueryExtractor
from src.jdbc_loader.services.sql_columns import projection_column_names
from src.jdbc_loader.services.types import canonicalize, destination_type


@pytest_asyncio.fixture
async def source_conn(source_db):
    engine = create_async_engine(f"sqlite+aiosqlite:///{source_db}")
    async with engine.connect() as conn:
        yield conn
    await engine.dispose()


async def _collect(extractor, conn, cancel_event=None):
    return [row async for row in extractor.stream(conn, cancel_event)]


@pytest.mark.asyncio
async def test_alias_labels(source_conn):
    extractor = QueryExtractor(
        "select id, name as full_name from t order by id", use_column_alias=True, backend="sqlite"
    )

    rows = await _collect(extractor, source_conn)

    assert [[v.label for v in r] for r in rows] == [["id", "full_name"]] * 2
    assert rows[0][0].type is CanonicalType.INTEGER
    assert rows[0][1].value == "A"
    assert extractor.rows_emitted == 2


@pytest.mark.asyncio
async def test_underlying_names_when_alias_off(source_conn):
    extractor = QueryExtractor(
        "select id, name as full_name from t order by id", use_column_alias=False, backend="sqlite"
    )

    rows = await _collect(extractor, source_conn)

    assert [v.label for v in rows[0]] == ["id", "name"]
    assert [v.value for v in rows[1]] == [2, "B"]


@pytest.mark.asyncio
async def test_empty_result(source_conn):
    extractor = QueryExtractor("select id from t where id > 10", use_column_alias=True)

    assert await _collect(extractor, source_conn) == []
    assert extractor.rows_emitted == 0


@pytest.mark.asyncio
async def test_null_values(source_conn):
    extractor = QueryExtractor("select null as x", use_column_alias=True)

    [row] = await _collect(extractor, source_conn)

    assert row[0].type is CanonicalType.NULL
    assert row[0].value is None


@pytest.mark.asyncio
async def test_bad_query(source_conn):
    extractor = QueryExtractor("select * from no_such_table", use_column_alias=True)

    with pytest.raises(ExtractionError):
        await _collect(extractor, source_conn)


@pytest.mark.asyncio
async def test_stream_is_single_use(source_conn):
    extractor = QueryExtractor("select id from t", use_column_alias=True)
    await _collect(extractor, source_conn)

    with pytest.raises(ExtractionError):
        await _collect(extractor, source_conn)


@pytest.mark.asyncio
async def test_cancel_stops_stream(source_conn):
    extractor = QueryExtractor("select id from t order by id", use_column_alias=True)
    cancel = asyncio.Event()
    seen = []

    with pytest.raises(JobCancelledError):
        async for row in extractor.stream(source_conn, cancel):
            seen.append(row)
            cancel.set()

    assert len(seen) == 1
    assert extractor.rows_emitted == 1


def test_alias_on_keeps_reported_labels():
    extractor = QueryExtractor("select a as b from t", use_column_alias=True)
    assert extractor.column_labels(["b"]) == ["b"]


def test_star_falls_back_to_reported_labels():
    extractor = QueryExtractor("select * from t", use_column_alias=False)
    assert extractor.column_labels(["id", "name"]) == ["id", "name"]


@pytest.mark.parametrize(
    "query, expected",
    [
        ("select id, name as full_name from t", ["id", "name"]),
        ("select t.id as x, upper(name) as u from t", ["id", "u"]),
        ("select a from (select 1 as a) s", ["a"]),
        ("select * from t", None),
        ("insert into t values (1)", None),
    ],
)
def test_projection_column_names(query, expected):
    assert projection_column_names(query, backend="postgresql") == expected


@pytest.mark.parametrize(
    "value, expected_type, expected_value",
    [
        (True, CanonicalType.BOOLEAN, True),
        (7, CanonicalType.INTEGER, 7),
        (Decimal("1.5"), CanonicalType.FLOAT, 1.5),
        ("x", CanonicalType.TEXT, "x"),
        (date(2024, 1, 2), CanonicalType.TIMESTAMP, datetime(2024, 1, 2)),
        (memoryview(b"ab"), CanonicalType.BINARY, b"ab"),
    ],
)
def test_canonicalize(value, expected_type, expected_value):
    assert canonicalize(value, column="c") == (expected_type, expected_value)


@pytest.mark.parametrize("value", [time(12, 0), object(), [1, 2]])
def test_canonicalize_unsupported(value):
    with pytest.raises(UnsupportedTypeError) as e:
        canonicalize(value, column="weird")
    assert e.value.column == "weird"
    assert e.value.sql_type == type(value).__name__


def test_destination_type_names():
    assert destination_type("bigint") is None
    assert destination_type("INT64") is CanonicalType.INTEGER
    assert destination_type("keyword") is CanonicalType.TEXT
    assert destination_type("date") is CanonicalType.TIMESTAMP


@pytest.mark.asyncio
async def test_colons_in_query_are_not_bind_parameters(source_conn):
    extractor = QueryExtractor(
        "select id, 'note :x' as n, '10:30' as t from t order by id", use_column_alias=True
    )

    rows = await _collect(extractor, source_conn)

    assert [v.value for v in rows[0]] == [1, "note :x", "10:30"]


def test_unsupported_type_names_driver_type():
    with pytest.raises(UnsupportedTypeError) as e:
        canonicalize(time(9, 0), column="opens_at", sql_type="1083")
    assert e.value.sql_type == "time (driver type 1083)"
