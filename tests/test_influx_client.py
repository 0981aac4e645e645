import asyncio

import pytest
import requests

from retag.errors import RowFetchError, StoreRequestError
from retag.tsdb.base import WriteRequest
from retag.migrate import TagRenamer
from retag.tsdb.influx import DryRunStoreClient, InfluxStoreClient, parse_query_response


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


SELECT_PAYLOAD = {
    "results": [
        {
            "statement_id": 0,
            "series": [
                {
                    "name": "temp",
                    "columns": ["time", "room", "value"],
                    "values": [["2024-01-01T00:00:00Z", "a", 21.5], ["2024-01-01T00:01:00Z", "a", 22.0]],
                }
            ],
        }
    ]
}


def test_read_query_returns_series_rows():
    session = _FakeSession([_FakeResponse(payload=SELECT_PAYLOAD)])
    client = InfluxStoreClient("http://influx:8086/", "telemetry", token="secret", session=session)
    series = asyncio.run(client.read_query('SELECT * FROM "temp"'))
    assert len(series) == 1
    assert series[0].rows()[0] == {"time": "2024-01-01T00:00:00Z", "room": "a", "value": 21.5}

    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "http://influx:8086/query"
    assert kwargs["params"] == {"db": "telemetry", "q": 'SELECT * FROM "temp"'}
    assert kwargs["headers"]["Authorization"] == "Token secret"


def test_metadata_query_flattens_all_series():
    payload = {
        "results": [
            {
                "series": [
                    {"name": "temp", "columns": ["fieldKey", "fieldType"], "values": [["value", "float"]]},
                    {"name": "temp", "columns": ["fieldKey", "fieldType"], "values": [["count", "integer"]]},
                ]
            }
        ]
    }
    client = InfluxStoreClient("http://influx:8086", "telemetry", session=_FakeSession([_FakeResponse(payload=payload)]))
    rows = asyncio.run(client.metadata_query('SHOW FIELD KEYS FROM "temp"'))
    assert rows == [{"fieldKey": "value", "fieldType": "float"}, {"fieldKey": "count", "fieldType": "integer"}]


def test_no_token_sends_no_auth_header():
    session = _FakeSession([_FakeResponse(payload={"results": [{"statement_id": 0}]})])
    client = InfluxStoreClient("http://influx:8086", "telemetry", session=session)
    assert asyncio.run(client.read_query("SELECT 1")) == []
    assert "Authorization" not in session.calls[0][2]["headers"]


def test_statement_error_raises():
    with pytest.raises(StoreRequestError) as info:
        parse_query_response({"results": [{"statement_id": 0, "error": "measurement not found"}]}, "/query")
    assert "measurement not found" in str(info.value)
    with pytest.raises(StoreRequestError):
        parse_query_response({"error": "database not found: x"}, "/query")
    with pytest.raises(StoreRequestError):
        parse_query_response(["not", "a", "mapping"], "/query")


def test_http_error_carries_status_and_message():
    session = _FakeSession([_FakeResponse(status_code=401, payload={"error": "authorization failed"})])
    client = InfluxStoreClient("http://influx:8086", "telemetry", session=session)
    with pytest.raises(StoreRequestError) as info:
        asyncio.run(client.read_query("SELECT 1"))
    assert info.value.detail.status_code == 401
    assert info.value.detail.message == "authorization failed"
    assert info.value.detail.endpoint == "/query"


def test_transport_failure_is_wrapped():
    session = _FakeSession([requests.ConnectionError("refused")])
    client = InfluxStoreClient("http://influx:8086", "telemetry", session=session)
    with pytest.raises(StoreRequestError) as info:
        asyncio.run(client.metadata_query("SHOW TAG KEYS FROM \"temp\""))
    assert info.value.detail.status_code is None
    assert isinstance(info.value.__cause__, requests.ConnectionError)


def test_write_posts_line_protocol_with_ns_precision():
    session = _FakeSession([_FakeResponse(status_code=204, text="")])
    client = InfluxStoreClient("http://influx:8086", "telemetry", token="t", timeout=3, session=session)
    request = WriteRequest("temp", 1, "temp,room=b value=21.5 1")
    asyncio.run(client.write(request))
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "http://influx:8086/write"
    assert kwargs["params"] == {"db": "telemetry", "precision": "ns"}
    assert kwargs["data"] == b"temp,room=b value=21.5 1"
    assert kwargs["timeout"] == 3.0
    client.close()
    assert session.closed


def test_write_failure_with_plain_text_body():
    session = _FakeSession([_FakeResponse(status_code=400, text="unable to parse")])
    client = InfluxStoreClient("http://influx:8086", "telemetry", session=session)
    with pytest.raises(StoreRequestError) as info:
        asyncio.run(client.write(WriteRequest("temp", 1, "bad")))
    assert info.value.detail.message == "unable to parse"


def test_dry_run_client_forwards_reads_and_skips_writes():
    session = _FakeSession([_FakeResponse(payload=SELECT_PAYLOAD)])
    inner = InfluxStoreClient("http://influx:8086", "telemetry", session=session)
    client = DryRunStoreClient(inner)
    series = asyncio.run(client.read_query("SELECT 1"))
    asyncio.run(client.write(WriteRequest("temp", 1, "temp value=1.0 1")))
    assert len(series) == 1
    assert client.skipped_writes == 1
    assert len(session.calls) == 1


def test_partial_series_is_an_error():
    payload = {
        "results": [
            {
                "statement_id": 0,
                "series": [dict(SELECT_PAYLOAD["results"][0]["series"][0], partial=True)],
            }
        ]
    }
    with pytest.raises(StoreRequestError, match="truncated"):
        parse_query_response(payload, "/query")
    with pytest.raises(StoreRequestError, match="truncated"):
        parse_query_response({"results": [{"statement_id": 0, "partial": True}]}, "/query")


def test_truncated_read_aborts_migration_before_writing():
    tag_keys = {"results": [{"series": [{"name": "temp", "columns": ["tagKey"], "values": [["room"]]}]}]}
    field_keys = {
        "results": [{"series": [{"name": "temp", "columns": ["fieldKey", "fieldType"], "values": [["value", "float"]]}]}]
    }
    truncated = {"results": [{"statement_id": 0, "series": [dict(SELECT_PAYLOAD["results"][0]["series"][0], partial=True)]}]}
    session = _FakeSession([_FakeResponse(payload=p) for p in (tag_keys, field_keys, truncated)])
    client = InfluxStoreClient("http://influx:8086", "telemetry", session=session)

    with pytest.raises(RowFetchError, match="truncated"):
        asyncio.run(TagRenamer(client, "temp").rename_tag("room", "a", "b"))
    assert [call[0] for call in session.calls] == ["GET", "GET", "GET"]
