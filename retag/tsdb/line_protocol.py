"""Render points as InfluxDB line protocol write requests."""

from __future__ import annotations

from typing import Any, Callable, Dict

from retag.tsdb.base import FieldType, Point, WriteRequest


def _escape_measurement(val: str) -> str:
    return val.replace(",", "\\,").replace(" ", "\\ ")


def _escape_key(val: str) -> str:
    # backslashes are stored verbatim outside string field values
    return val.replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _encode_string(value: Any) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


FIELD_ENCODERS: Dict[FieldType, Callable[[Any], str]] = {
    FieldType.FLOAT: lambda v: repr(float(v)),
    FieldType.INTEGER: lambda v: f"{int(v)}i",
    FieldType.STRING: _encode_string,
    FieldType.BOOLEAN: lambda v: "true" if v else "false",
}


def point_to_line(point: Point) -> str:
    if not point.fields:
        raise ValueError(f"Point of {point.name} at {point.timestamp_ns} has no fields to write")

    parts = [_escape_measurement(point.name)]
    for tag_name in sorted(point.tags):
        tag_val = str(point.tags[tag_name])
        if not tag_val:
            raise ValueError(f"Tag {tag_name} of {point.name} at {point.timestamp_ns} has an empty value")
        parts.append(f"{_escape_key(tag_name)}={_escape_key(tag_val)}")
    series_key = ",".join(parts)

    fields = ",".join(
        f"{_escape_key(name)}={FIELD_ENCODERS[field_type](value)}"
        for name, (value, field_type) in point.fields.items()
    )
    return f"{series_key} {fields} {point.timestamp_ns}"


def render(point: Point) -> WriteRequest:
    """Build the write request for one point without touching it."""

    return WriteRequest(
        measurement=point.name,
        timestamp_ns=point.timestamp_ns,
        line=point_to_line(point),
    )
