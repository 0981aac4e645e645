"""TSDB package exports."""

from retag.tsdb.base import FieldKey, FieldType, Point, Schema, Series, StoreClient, TagKey, WriteRequest  # noqa: F401
from retag.tsdb.catalog import SchemaCatalog  # noqa: F401
from retag.tsdb.influx import DryRunStoreClient, InfluxStoreClient  # noqa: F401
from retag.tsdb.line_protocol import render  # noqa: F401
from retag.tsdb.reconstruct import reconstruct  # noqa: F401
