"""Rebuild typed points from flattened query rows.

A row returned by ``SELECT *`` is a flat mapping of column name to an
untyped JSON value. The measurement's schema decides whether a column is a
tag, a field (and of which type) or the ``time`` column. Keys matching
neither schema are dropped with a warning; the row itself is still
produced.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Collection, Dict, Mapping, Optional

from retag.tsdb.base import FieldType, Point

TIME_KEY = "time"

_UINT64_MAX = 2**64 - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_RFC3339_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt ](?P<clock>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?(?P<tz>[Zz]|[+-]\d{2}:\d{2})$"
)


def parse_rfc3339_ns(text: str) -> int:
    """Return nanoseconds since the epoch for an RFC-3339 timestamp.

    ``datetime`` only keeps microseconds, so the fractional part is carried
    separately to stay exact to the nanosecond.
    """

    match = _RFC3339_RE.match(str(text).strip())
    if not match:
        raise ValueError(f"Not an RFC-3339 timestamp: {text!r}")

    tz_raw = match.group("tz")
    if tz_raw in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if tz_raw[0] == "-" else 1
        hours, minutes = int(tz_raw[1:3]), int(tz_raw[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

    moment = datetime.fromisoformat(f"{match.group('date')}T{match.group('clock')}").replace(tzinfo=tz)
    delta = moment - _EPOCH
    seconds = delta.days * 86_400 + delta.seconds
    frac = (match.group("frac") or "").ljust(9, "0")
    nanos = seconds * 1_000_000_000 + int(frac)
    if nanos < 0:
        raise ValueError(f"Timestamp before the epoch: {text!r}")
    return nanos


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_float(value: Any) -> float:
    if not _is_number(value):
        raise ValueError(f"expected a number, got {value!r}")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError(f"non-finite float {value!r}")
    return result


def _as_unsigned(value: Any) -> int:
    if not _is_number(value):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"expected an integer, got {value!r}")
        value = int(value)
    if value < 0 or value > _UINT64_MAX:
        raise ValueError(f"integer {value} outside the unsigned 64-bit range")
    return value


def _as_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {value!r}")
    return value


COERCERS: Dict[FieldType, Callable[[Any], Any]] = {
    FieldType.FLOAT: _as_float,
    FieldType.INTEGER: _as_unsigned,
    FieldType.STRING: _as_string,
    FieldType.BOOLEAN: _as_bool,
}


def coerce(value: Any, field_type: FieldType) -> Any:
    """Coerce a dynamic value to ``field_type`` or raise ``ValueError``."""

    return COERCERS[field_type](value)


def parse_time_value(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"Timestamp before the epoch: {value}")
        return value
    if isinstance(value, str):
        return parse_rfc3339_ns(value)
    raise ValueError(f"Unsupported time value: {value!r}")


def reconstruct(
    measurement: str,
    tag_keys: Collection[str],
    field_keys: Mapping[str, FieldType],
    raw_row: Mapping[str, Any],
    logger: Optional[logging.Logger] = None,
) -> Point:
    """Classify every key of ``raw_row`` and return the typed point."""

    log = logger or logging.getLogger(__name__)
    point = Point(name=measurement)
    seen_time = False

    for key, value in raw_row.items():
        if key in tag_keys:
            if value is None:
                log.debug("Tag %s is null on this row; skipping", key)
                continue
            point.tags[key] = value
        elif key in field_keys:
            if value is None:
                log.debug("Field %s is null on this row; skipping", key)
                continue
            field_type = field_keys[key]
            try:
                point.fields[key] = (coerce(value, field_type), field_type)
            except ValueError as exc:
                log.warning("Dropping field %s: cannot coerce to %s (%s)", key, field_type.value, exc)
        elif key == TIME_KEY:
            seen_time = True
            try:
                point.timestamp_ns = parse_time_value(value)
            except ValueError as exc:
                log.warning("Malformed time value %r, using timestamp 0: %s", value, exc)
                point.timestamp_ns = 0
        else:
            log.warning("Value with name %s is neither field nor tag; dropping it", key)

    if not seen_time:
        log.warning("Row of %s has no %s column, using timestamp 0", measurement, TIME_KEY)
    return point
