"""Fetch tag and field keys of a measurement."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from retag.errors import SchemaFetchError, StoreRequestError
from retag.tsdb import influxql
from retag.tsdb.base import FieldKey, FieldType, Schema, StoreClient, TagKey


class SchemaCatalog:
    """Reads the schema description of one measurement from the store."""

    def __init__(self, client: StoreClient, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    async def _rows(self, query: str) -> List[Dict[str, Any]]:
        try:
            return await self.client.metadata_query(query)
        except StoreRequestError as exc:
            raise SchemaFetchError(f"Schema query failed ({query}): {exc}") from exc

    async def fetch_tag_keys(self, measurement: str) -> List[TagKey]:
        rows = await self._rows(influxql.show_tag_keys(measurement))
        keys = {}
        for row in rows:
            name = row.get("tagKey")
            if not isinstance(name, str):
                raise SchemaFetchError(f"Unexpected tag key row for {measurement}: {row!r}")
            keys[name] = TagKey(name)
        self.logger.debug("Tag keys of %s: %s", measurement, sorted(keys))
        return list(keys.values())

    async def fetch_field_keys(self, measurement: str) -> List[FieldKey]:
        rows = await self._rows(influxql.show_field_keys(measurement))
        keys: Dict[str, FieldKey] = {}
        for row in rows:
            name = row.get("fieldKey")
            if not isinstance(name, str):
                raise SchemaFetchError(f"Unexpected field key row for {measurement}: {row!r}")
            try:
                field_type = FieldType.parse(row.get("fieldType"))
            except ValueError as exc:
                raise SchemaFetchError(f"Field {name} of {measurement}: {exc}") from exc
            previous = keys.get(name)
            if previous and previous.field_type != field_type:
                # shards may disagree; the first reported type wins for this run
                self.logger.warning(
                    "Field %s of %s reported as both %s and %s; using %s",
                    name,
                    measurement,
                    previous.field_type.value,
                    field_type.value,
                    previous.field_type.value,
                )
                continue
            keys[name] = FieldKey(name, field_type)
        self.logger.debug("Field keys of %s: %s", measurement, {k: v.field_type.value for k, v in keys.items()})
        return list(keys.values())

    async def load(self, measurement: str) -> Schema:
        tags = await self.fetch_tag_keys(measurement)
        fields = await self.fetch_field_keys(measurement)
        schema = Schema.from_keys(measurement, tags, fields)
        overlap = schema.tag_keys.intersection(schema.field_types)
        if overlap:
            self.logger.warning("Keys %s of %s are both tag and field; treating them as tags", sorted(overlap), measurement)
        self.logger.info("Schema of %s: %d tag keys, %d field keys", measurement, len(tags), len(fields))
        return schema
