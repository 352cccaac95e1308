"""HTTP clients for the coprocessor solver and the devnet IPFS node."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "cartesi-coprocessor-cli/0.1"
CAR_CONTENT_TYPE = "application/vnd.ipld.car"


@dataclass(slots=True)
class FetchResult:
    """Result of one HTTP request."""

    url: str
    status_code: int
    content: str
    is_success: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class UploadTicket:
    upload_id: str
    presigned_url: str


class SolverError(RuntimeError):
    """One-shot solver request failed."""

    def __init__(self, message: str, *, status_code: int = 0, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def unreachable(self) -> bool:
        return self.status_code == 0


class _HttpClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float | None,
        transport: httpx.BaseTransport | None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        timeout = (
            httpx.Timeout(timeout_seconds, connect=10.0)
            if timeout_seconds is not None
            else httpx.Timeout(None)
        )
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"User-Agent": DEFAULT_USER_AGENT},
            transport=transport,
            follow_redirects=True,
        )

    def _send(self, method: str, url: str, **kwargs: Any) -> FetchResult:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            logger.warning("Timeout calling %s %s", method, url)
            return FetchResult(
                url=url,
                status_code=0,
                content="",
                is_success=False,
                error="timeout",
            )
        except httpx.HTTPError as exc:
            logger.warning("HTTP error calling %s %s: %s", method, url, exc)
            return FetchResult(
                url=url,
                status_code=0,
                content="",
                is_success=False,
                error=str(exc),
            )
        return FetchResult(
            url=url,
            status_code=response.status_code,
            content=response.text,
            is_success=response.is_success,
            error=None if response.is_success else f"HTTP {response.status_code}",
        )

    def close(self) -> None:
        self._client.close()


class SolverClient(_HttpClient):
    """Endpoints of the coprocessor solver service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, timeout_seconds=timeout_seconds, transport=transport)

    def ensure_url(self, *, cid: str, machine_hash: str, size: str) -> str:
        return f"{self.base_url}/ensure/{cid}/{machine_hash}/{size}"

    def publish_status_url(self, upload_id: str) -> str:
        return f"{self.base_url}/publish_status/{upload_id}"

    def ensure(self, *, cid: str, machine_hash: str, size: str) -> FetchResult:
        """Ask the solver to make the program available to operators."""

        return self._send("POST", self.ensure_url(cid=cid, machine_hash=machine_hash, size=size))

    def publish_status(self, upload_id: str) -> FetchResult:
        return self._send("GET", self.publish_status_url(upload_id))

    def request_upload(self) -> UploadTicket:
        """Reserve an upload slot; returns the upload id and presigned URL."""

        result = self._send("POST", "/upload", content=b"")
        _raise_for_result(result, "Failed to receive presigned url from solver")
        try:
            payload = json.loads(result.content)
            return UploadTicket(
                upload_id=str(payload["upload_id"]),
                presigned_url=str(payload["presigned_url"]),
            )
        except (ValueError, KeyError, TypeError) as error:
            raise SolverError(
                f"Unexpected upload response from solver: {result.content[:200]}",
                status_code=result.status_code,
                body=result.content,
            ) from error

    def upload_car(self, ticket: UploadTicket, car_path: Path) -> None:
        """PUT the CAR file to the presigned URL without a client-side timeout."""

        with car_path.open("rb") as handle:
            result = self._send(
                "PUT",
                ticket.presigned_url,
                content=handle,
                timeout=httpx.Timeout(None),
            )
        _raise_for_result(result, "Upload to presigned URL failed")

    def publish(self, upload_id: str) -> None:
        result = self._send("POST", f"/publish/{upload_id}", content=b"")
        _raise_for_result(result, "Failed to publish upload ID")

    def __enter__(self) -> SolverClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class IpfsClient(_HttpClient):
    """Devnet IPFS node used in place of remote storage."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, timeout_seconds=timeout_seconds, transport=transport)

    def dag_import(self, car_path: Path) -> FetchResult:
        with car_path.open("rb") as handle:
            return self._send(
                "POST",
                "/api/v0/dag/import",
                files={"file": (car_path.name, handle, CAR_CONTENT_TYPE)},
            )

    def __enter__(self) -> IpfsClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _raise_for_result(result: FetchResult, message: str) -> None:
    if result.is_success:
        return
    detail = result.error or "unknown error"
    if result.content:
        detail = f"{detail}: {result.content[:500]}"
    raise SolverError(f"{message} ({detail})", status_code=result.status_code, body=result.content)
