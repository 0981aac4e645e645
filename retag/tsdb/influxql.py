"""InfluxQL statements used by the migration."""

from __future__ import annotations


def quote_ident(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def show_tag_keys(measurement: str) -> str:
    return f"SHOW TAG KEYS FROM {quote_ident(measurement)}"


def show_field_keys(measurement: str) -> str:
    return f"SHOW FIELD KEYS FROM {quote_ident(measurement)}"


def select_by_tag(measurement: str, tag: str, value: str) -> str:
    return f"SELECT * FROM {quote_ident(measurement)} WHERE ({quote_ident(tag)}::tag = {quote_literal(value)})"
