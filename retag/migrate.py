"""Rename a tag value across every point of a measurement.

Each matching point is read back, rebuilt with its original fields and
timestamp, given the new tag value and written again. Writes happen one
at a time in the order the store returns the rows. The original points
are left in place, so after a run the same data exists under both the old
and the new tag value. A failed run is not rolled back and is not
resumable; run the whole migration again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from retag.errors import MigrationError, RowFetchError, StoreRequestError, WriteError
from retag.tsdb import influxql
from retag.tsdb.base import Point, Schema, StoreClient
from retag.tsdb.catalog import SchemaCatalog
from retag.tsdb.line_protocol import render
from retag.tsdb.reconstruct import reconstruct


class MigrationState(str, Enum):
    IDLE = "idle"
    SCHEMA_FETCHED = "schema_fetched"
    ROWS_FETCHED = "rows_fetched"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MigrationReport:
    measurement: str
    tag: str
    old_value: str
    new_value: str
    rows_written: int
    series_count: int
    dry_run: bool = False


def retag_point(point: Point, tag: str, new_value: str) -> Point:
    """Set ``tag`` to ``new_value``, inserting it when the row lacked it."""

    point.tags[tag] = new_value
    return point


class TagRenamer:
    """Drives one tag rename over a single measurement."""

    def __init__(
        self,
        client: StoreClient,
        measurement: str,
        logger: Optional[logging.Logger] = None,
        dry_run: bool = False,
    ) -> None:
        self.client = client
        self.measurement = measurement
        self.logger = logger or logging.getLogger(__name__)
        self.catalog = SchemaCatalog(client, logger=self.logger)
        self.dry_run = dry_run
        self.state = MigrationState.IDLE
        self.rows_written = 0
        self.schema: Optional[Schema] = None

    async def rename_tag(self, tag: str, old_value: str, new_value: str) -> MigrationReport:
        self.state = MigrationState.IDLE
        self.rows_written = 0
        try:
            if not tag or not new_value:
                raise MigrationError(f"Tag key and new tag value must be non-empty (tag={tag!r}, new={new_value!r})")
            return await self._run(tag, old_value, new_value)
        except MigrationError:
            self.state = MigrationState.FAILED
            raise

    async def _run(self, tag: str, old_value: str, new_value: str) -> MigrationReport:
        self.schema = await self.catalog.load(self.measurement)
        self.state = MigrationState.SCHEMA_FETCHED
        if tag not in self.schema.tag_keys:
            self.logger.warning("%s is not a known tag key of %s", tag, self.measurement)

        query = influxql.select_by_tag(self.measurement, tag, old_value)
        self.logger.info("Reading rows: %s", query)
        try:
            # the whole result is held in memory
            series_list = await self.client.read_query(query)
        except StoreRequestError as exc:
            raise RowFetchError(f"Reading {self.measurement} where {tag}={old_value!r} failed: {exc}") from exc
        self.state = MigrationState.ROWS_FETCHED

        if not series_list:
            self.logger.info("No rows of %s have %s=%r", self.measurement, tag, old_value)

        self.state = MigrationState.WRITING
        for series in series_list:
            rows = series.rows()
            for idx, row in enumerate(rows):
                point = reconstruct(
                    self.measurement,
                    self.schema.tag_keys,
                    self.schema.field_types,
                    row,
                    logger=self.logger,
                )
                retag_point(point, tag, new_value)
                try:
                    request = render(point)
                except ValueError as exc:
                    raise WriteError(f"Cannot write row {idx + 1} of {self.measurement}: {exc}") from exc
                try:
                    await self.client.write(request)
                except StoreRequestError as exc:
                    raise WriteError(
                        f"Write of row {idx + 1}/{len(rows)} failed after {self.rows_written} rows were written: {exc}"
                    ) from exc
                self.rows_written += 1
                self.logger.info("Wrote entry %d/%d", idx + 1, len(rows))

        self.state = MigrationState.DONE
        return MigrationReport(
            measurement=self.measurement,
            tag=tag,
            old_value=old_value,
            new_value=new_value,
            rows_written=self.rows_written,
            series_count=len(series_list),
            dry_run=self.dry_run,
        )
