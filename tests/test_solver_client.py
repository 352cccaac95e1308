from __future__ import annotations

import json
from pathlib import Path

import allure
import httpx
import pytest

from coprocessor_cli.remote import IpfsClient, SolverClient, SolverError, UploadTicket

pytestmark = [
    allure.epic("Remote Jobs"),
    allure.feature("Solver HTTP Client"),
]

BASE_URL = "https://solver.example"


def _client(handler) -> SolverClient:
    return SolverClient(BASE_URL, transport=httpx.MockTransport(handler))


def test_ensure_posts_cid_hash_and_size_in_path() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ready")

    with _client(handler) as client:
        result = client.ensure(cid="bafy123", machine_hash="00ff", size="4096")

    assert result.is_success
    assert result.content == "ready"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/ensure/bafy123/00ff/4096"


def test_non_2xx_is_reported_as_failed_fetch() -> None:
    with _client(lambda _request: httpx.Response(503, text="busy")) as client:
        result = client.publish_status("abc")

    assert not result.is_success
    assert result.status_code == 503
    assert result.error == "HTTP 503"
    assert result.content == "busy"


def test_connection_error_is_status_zero() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("All connection attempts failed", request=request)

    with _client(handler) as client:
        result = client.ensure(cid="c", machine_hash="h", size="1")

    assert not result.is_success
    assert result.status_code == 0
    assert "All connection attempts failed" in (result.error or "")


def test_request_upload_parses_ticket() -> None:
    payload = {"upload_id": "u-1", "presigned_url": "https://bucket.example/put?sig=1"}

    with _client(lambda _request: httpx.Response(200, json=payload)) as client:
        ticket = client.request_upload()

    assert ticket == UploadTicket(upload_id="u-1", presigned_url=payload["presigned_url"])


def test_request_upload_rejects_malformed_payload() -> None:
    with (
        _client(lambda _request: httpx.Response(200, text="not json")) as client,
        pytest.raises(SolverError) as raised,
    ):
        client.request_upload()

    assert raised.value.status_code == 200
    assert not raised.value.unreachable


def test_upload_car_puts_file_bytes_to_presigned_url(tmp_path: Path) -> None:
    car = tmp_path / "output.car"
    car.write_bytes(b"\x01car-bytes")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    ticket = UploadTicket(upload_id="u-1", presigned_url="https://bucket.example/put?sig=1")
    with _client(handler) as client:
        client.upload_car(ticket, car)

    assert seen[0].method == "PUT"
    assert seen[0].url.host == "bucket.example"
    assert seen[0].content == b"\x01car-bytes"


def test_publish_failure_raises_with_body() -> None:
    with (
        _client(lambda _request: httpx.Response(400, text="unknown upload")) as client,
        pytest.raises(SolverError) as raised,
    ):
        client.publish("u-1")

    assert raised.value.status_code == 400
    assert raised.value.body == "unknown upload"
    assert "Failed to publish upload ID" in str(raised.value)


def test_ipfs_dag_import_sends_multipart_file(tmp_path: Path) -> None:
    car = tmp_path / "output.car"
    car.write_bytes(b"car")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=json.dumps({"Root": {"Cid": {"/": "bafy"}}}))

    with IpfsClient("http://127.0.0.1:5001", transport=httpx.MockTransport(handler)) as ipfs:
        result = ipfs.dag_import(car)

    assert result.is_success
    assert seen[0].url.path == "/api/v0/dag/import"
    assert seen[0].headers["content-type"].startswith("multipart/form-data")
    assert b'name="file"' in seen[0].content
