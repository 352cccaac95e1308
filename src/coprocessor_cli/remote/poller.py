"""Bounded-retry polling of asynchronous solver-side jobs."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from coprocessor_cli.progress import ProgressIndicator
from coprocessor_cli.remote.solver import FetchResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
DEFAULT_INTERVAL_SECONDS = 5.0

PUBLISH_FAILURE_MARKERS: tuple[str, ...] = ("upload_failed", "dag_import_error")
PUBLISH_READY_MARKER = "dag_importing_complete"
ENSURE_READY_MARKER = "ready"


class JobStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    UNKNOWN = "unknown"


class PollTermination(str, Enum):
    READY = "ready"
    REJECTED = "rejected"
    EXHAUSTED = "exhausted"
    HTTP_ERROR = "http_error"
    UNREACHABLE = "unreachable"


@dataclass(slots=True)
class RemoteJobState:
    """Client-side view of one remote job; owned by a single poll call."""

    job_id: str
    url: str
    retry_counter: int = 0
    status: JobStatus = JobStatus.UNKNOWN


@dataclass(frozen=True, slots=True)
class PollResult:
    """Terminal outcome of ``RemoteJobPoller.poll_until_done``."""

    termination: PollTermination
    job_id: str
    attempts: int
    retries: int
    body: str
    error: str | None = None

    @property
    def ready(self) -> bool:
        return self.termination is PollTermination.READY


JobFetcher = Callable[[RemoteJobState], FetchResult]
JobClassifier = Callable[[str], JobStatus]


class RemoteJobPoller:
    """Issue one request per attempt until the job is ready, rejected, or exhausted."""

    def __init__(
        self,
        *,
        fetch: JobFetcher,
        max_retries: int = DEFAULT_MAX_RETRIES,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0.")
        self._fetch = fetch
        self._max_retries = max_retries
        self._interval = interval_seconds
        self._sleep = sleep

    def poll_until_done(
        self,
        job: RemoteJobState,
        classify: JobClassifier,
        *,
        progress: ProgressIndicator | None = None,
        waiting_message: str = "Waiting for solver to finish publication process...",
        retry_http_errors: bool = False,
    ) -> PollResult:
        """Poll until a terminal status.

        Transport failures (status 0) end the poll as UNREACHABLE. A non-2xx reply ends it as
        HTTP_ERROR unless ``retry_http_errors`` is set, in which case it counts as pending.
        """

        attempts = 0
        while True:
            result = self._fetch(job)
            attempts += 1
            if result.status_code == 0:
                logger.warning("Polling %s failed: %s", job.url, result.error)
                return self._result(job, PollTermination.UNREACHABLE, attempts, result)

            if result.is_success:
                job.status = classify(result.content)
            elif retry_http_errors:
                logger.info("Polling %s returned %s; retrying", job.url, result.error)
                job.status = JobStatus.PENDING
            else:
                logger.warning("Polling %s returned %s", job.url, result.error)
                return self._result(job, PollTermination.HTTP_ERROR, attempts, result)
            logger.debug(
                "Job %s attempt %d status=%s",
                job.job_id,
                attempts,
                job.status.value,
            )
            if job.status is JobStatus.READY:
                return self._result(job, PollTermination.READY, attempts, result)
            if job.status is JobStatus.FAILED:
                return self._result(job, PollTermination.REJECTED, attempts, result)

            if job.retry_counter >= self._max_retries:
                logger.warning(
                    "Job %s still pending after %d retries",
                    job.job_id,
                    job.retry_counter,
                )
                return self._result(job, PollTermination.EXHAUSTED, attempts, result)

            job.retry_counter += 1
            if progress is not None:
                progress.update(
                    f"{waiting_message} (retry {job.retry_counter}/{self._max_retries})",
                )
            self._sleep(self._interval)

    @staticmethod
    def _result(
        job: RemoteJobState,
        termination: PollTermination,
        attempts: int,
        fetched: FetchResult,
    ) -> PollResult:
        return PollResult(
            termination=termination,
            job_id=job.job_id,
            attempts=attempts,
            retries=job.retry_counter,
            body=fetched.content,
            error=fetched.error,
        )


def classify_publish_status(body: str) -> JobStatus:
    """Classify a ``publish_status`` payload by its first ``response_body``."""

    text = _first_publish_response_body(body)
    if text is None:
        text = body
    if any(marker in text for marker in PUBLISH_FAILURE_MARKERS):
        return JobStatus.FAILED
    if PUBLISH_READY_MARKER in text:
        return JobStatus.READY
    if not text.strip():
        return JobStatus.UNKNOWN
    return JobStatus.PENDING


def classify_ensure_response(body: str) -> JobStatus:
    """The ``ensure`` endpoint reports completion with the word "ready"."""

    if ENSURE_READY_MARKER in body:
        return JobStatus.READY
    return JobStatus.PENDING


def _first_publish_response_body(body: str) -> str | None:
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    results = payload.get("publish_results")
    if not isinstance(results, list) or not results:
        return None
    first = results[0]
    if not isinstance(first, dict):
        return None
    response_body = first.get("response_body")
    if isinstance(response_body, str):
        return response_body
    if response_body is None:
        return None
    return json.dumps(response_body)
