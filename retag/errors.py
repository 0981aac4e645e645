"""Error types raised by the tag migration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class ErrorDetail:
    status_code: Optional[int]
    message: str
    endpoint: str


class StoreRequestError(RuntimeError):
    """Transport, auth or server-side failure of a single store request."""

    def __init__(self, detail: ErrorDetail) -> None:
        self.detail = detail
        super().__init__(detail.message)


class ConfigError(ValueError):
    pass


class MigrationError(RuntimeError):
    """Base class for errors that abort a migration run."""


class SchemaFetchError(MigrationError):
    pass


class RowFetchError(MigrationError):
    pass


class WriteError(MigrationError):
    pass
