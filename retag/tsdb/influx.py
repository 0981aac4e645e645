"""InfluxDB HTTP store client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from retag.errors import ErrorDetail, StoreRequestError
from retag.tsdb.base import Series, StoreClient, WriteRequest


def parse_query_response(payload: Any, endpoint: str) -> List[Series]:
    """Return the series of the first statement of a ``/query`` response."""

    if not isinstance(payload, dict):
        raise StoreRequestError(ErrorDetail(None, f"Unexpected response shape: {type(payload).__name__}", endpoint))
    if payload.get("error"):
        raise StoreRequestError(ErrorDetail(None, str(payload["error"]), endpoint))

    results = payload.get("results")
    if not isinstance(results, list) or not results:
        raise StoreRequestError(ErrorDetail(None, "Response has no results", endpoint))
    result = results[0]
    if not isinstance(result, dict):
        raise StoreRequestError(ErrorDetail(None, "Malformed statement result", endpoint))
    if result.get("error"):
        raise StoreRequestError(ErrorDetail(None, str(result["error"]), endpoint))
    if result.get("partial"):
        raise StoreRequestError(ErrorDetail(None, "Result truncated by the server row limit", endpoint))

    series: List[Series] = []
    for raw in result.get("series") or []:
        columns = raw.get("columns") if isinstance(raw, dict) else None
        if not isinstance(columns, list):
            raise StoreRequestError(ErrorDetail(None, "Series without columns", endpoint))
        if raw.get("partial"):
            name = raw.get("name", "")
            raise StoreRequestError(ErrorDetail(None, f"Series {name} truncated by the server row limit", endpoint))
        series.append(
            Series(
                name=str(raw.get("name", "")),
                columns=[str(c) for c in columns],
                values=list(raw.get("values") or []),
            )
        )
    return series


class InfluxStoreClient(StoreClient):
    """Talks to the InfluxDB 1.x compatible ``/query`` and ``/write`` endpoints."""

    def __init__(
        self,
        host: str,
        bucket: str,
        token: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.bucket = bucket
        self.token = token or ""
        self.timeout = float(timeout or 10.0)
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Token {self.token}"
        return headers

    def _request(self, method: str, path: str, params: Dict[str, str], data: Optional[bytes] = None) -> requests.Response:
        url = f"{self.host}{path}"
        headers = self._headers()
        if data is not None:
            headers["Content-Type"] = "text/plain; charset=utf-8"
        try:
            response = self.session.request(method, url, params=params, data=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StoreRequestError(ErrorDetail(None, f"Request failed: {exc}", path)) from exc

        if response.status_code >= 300:
            message = self._error_message(response)
            self.logger.warning("InfluxDB error endpoint=%s status=%s msg=%s", path, response.status_code, message)
            raise StoreRequestError(ErrorDetail(response.status_code, message, path))
        return response

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text.strip() or f"HTTP status {response.status_code}"
        if isinstance(payload, dict) and payload.get("error"):
            return str(payload["error"])
        return f"HTTP status {response.status_code}"

    def query(self, query: str) -> List[Series]:
        response = self._request("GET", "/query", {"db": self.bucket, "q": query})
        try:
            payload = response.json()
        except ValueError:
            raise StoreRequestError(ErrorDetail(response.status_code, "Non-JSON query response", "/query")) from None
        return parse_query_response(payload, "/query")

    def write_line(self, request: WriteRequest) -> None:
        self.logger.debug("Writing %s", request.line)
        self._request(
            "POST",
            "/write",
            {"db": self.bucket, "precision": "ns"},
            data=request.line.encode("utf-8"),
        )

    async def _to_thread(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    async def metadata_query(self, query: str) -> List[Dict[str, Any]]:
        series = await self._to_thread(self.query, query)
        rows: List[Dict[str, Any]] = []
        for entry in series:
            rows.extend(entry.rows())
        return rows

    async def read_query(self, query: str) -> List[Series]:
        return await self._to_thread(self.query, query)

    async def write(self, request: WriteRequest) -> None:
        await self._to_thread(self.write_line, request)

    def close(self) -> None:
        self.session.close()


class DryRunStoreClient(StoreClient):
    """Forward reads to another client and only log writes."""

    def __init__(self, inner: StoreClient, logger: Optional[logging.Logger] = None) -> None:
        self.inner = inner
        self.logger = logger or logging.getLogger(__name__)
        self.skipped_writes = 0

    async def metadata_query(self, query: str) -> List[Dict[str, Any]]:
        return await self.inner.metadata_query(query)

    async def read_query(self, query: str) -> List[Series]:
        return await self.inner.read_query(query)

    async def write(self, request: WriteRequest) -> None:
        self.skipped_writes += 1
        self.logger.info("Dry run, not writing: %s", request.line)
