"""Remote solver endpoints and bounded job polling."""

from coprocessor_cli.remote.poller import (
    JobStatus,
    PollResult,
    PollTermination,
    RemoteJobPoller,
    RemoteJobState,
    classify_ensure_response,
    classify_publish_status,
)
from coprocessor_cli.remote.solver import (
    FetchResult,
    IpfsClient,
    SolverClient,
    SolverError,
    UploadTicket,
)

__all__ = [
    "FetchResult",
    "IpfsClient",
    "JobStatus",
    "PollResult",
    "PollTermination",
    "RemoteJobPoller",
    "RemoteJobState",
    "SolverClient",
    "SolverError",
    "UploadTicket",
    "classify_ensure_response",
    "classify_publish_status",
]
