import asyncio

import pytest

from fake_store import FakeStore
from retag.errors import SchemaFetchError
from retag.tsdb.base import FieldKey, FieldType, TagKey
from retag.tsdb.catalog import SchemaCatalog


def test_fetch_keys_and_build_schema():
    store = FakeStore("temp", ["room", "building"], {"value": "float", "count": "integer"})
    catalog = SchemaCatalog(store)

    tags = asyncio.run(catalog.fetch_tag_keys("temp"))
    fields = asyncio.run(catalog.fetch_field_keys("temp"))
    assert set(tags) == {TagKey("room"), TagKey("building")}
    assert set(fields) == {FieldKey("value", FieldType.FLOAT), FieldKey("count", FieldType.INTEGER)}

    schema = asyncio.run(catalog.load("temp"))
    assert schema.tag_keys == frozenset({"room", "building"})
    assert schema.field_types == {"value": FieldType.FLOAT, "count": FieldType.INTEGER}
    assert store.queries[:2] == ['SHOW TAG KEYS FROM "temp"', 'SHOW FIELD KEYS FROM "temp"']


def test_unreachable_store_raises_schema_error():
    store = FakeStore("temp", ["room"], {"value": "float"})
    store.fail_metadata = True
    with pytest.raises(SchemaFetchError) as info:
        asyncio.run(SchemaCatalog(store).load("temp"))
    assert "connection refused" in str(info.value)


def test_unknown_field_type_is_a_schema_error():
    store = FakeStore("temp", ["room"], {"value": "decimal"})
    with pytest.raises(SchemaFetchError):
        asyncio.run(SchemaCatalog(store).fetch_field_keys("temp"))


def test_rows_without_expected_column_are_rejected():
    class _Broken:
        async def metadata_query(self, query):
            return [{"name": "room"}]

    with pytest.raises(SchemaFetchError):
        asyncio.run(SchemaCatalog(_Broken()).fetch_tag_keys("temp"))


def test_conflicting_field_types_keep_first(caplog):
    class _Sharded:
        async def metadata_query(self, query):
            return [
                {"fieldKey": "value", "fieldType": "float"},
                {"fieldKey": "value", "fieldType": "integer"},
            ]

    caplog.set_level("WARNING")
    fields = asyncio.run(SchemaCatalog(_Sharded()).fetch_field_keys("temp"))
    assert fields == [FieldKey("value", FieldType.FLOAT)]
    assert any("value" in r.getMessage() for r in caplog.records)
