"""Bounded registry routing inbound worker messages to in-flight jobs."""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from common.constants import DEFAULT_AUTHOR, MAX_ACTIVE_JOBS
from common.logging_config import get_logger
from common.protocol import (
    GET_METADATA_DONE,
    GET_METADATA_ERROR,
    PIN_DONE,
    PIN_ERROR,
    TRANSCODING_DONE,
    TRANSCODING_ERROR,
)
from uploader.event_bus import JobEventBus
from uploader.exceptions import JobLimitError

logger = get_logger(__name__)

KIND_TRANSCODE = "transcode"
KIND_PIN = "pin"
KIND_METADATA = "getMetaData"

# kind -> (done event, error event)
TERMINAL_EVENTS: Dict[str, Tuple[str, str]] = {
    KIND_TRANSCODE: (TRANSCODING_DONE, TRANSCODING_ERROR),
    KIND_PIN: (PIN_DONE, PIN_ERROR),
    KIND_METADATA: (GET_METADATA_DONE, GET_METADATA_ERROR),
}


@dataclass(eq=False)
class JobDescriptor:
    """
    One remote job against a worker, correlated by content hash.
    """
    kind: str
    content_hash: str
    worker_address: str
    worker_peer_id: str
    bus: JobEventBus
    author: str = DEFAULT_AUTHOR
    size: int = 0
    extra: dict = field(default_factory=dict)

    @property
    def error_event(self) -> str:
        return TERMINAL_EVENTS[self.kind][1]

    @property
    def done_event(self) -> str:
        return TERMINAL_EVENTS[self.kind][0]


class JobRegistry:
    """
    Maps (kind, content hash) to the jobs awaiting worker replies.

    Jobs are removed automatically when their bus closes (terminal event,
    timeout or cancellation).
    """

    def __init__(self, max_jobs: int = MAX_ACTIVE_JOBS):
        self.max_jobs = max_jobs
        self._jobs: Dict[Tuple[str, str], List[JobDescriptor]] = {}
        self._count = 0

    def __len__(self) -> int:
        return self._count

    def register(self, job: JobDescriptor) -> None:
        """
        Raises:
            JobLimitError: If max_jobs jobs are already active
        """
        if self._count >= self.max_jobs:
            raise JobLimitError(f"Too many active jobs ({self._count}/{self.max_jobs})")
        self._jobs.setdefault((job.kind, job.content_hash), []).append(job)
        self._count += 1
        logger.debug(f"Registered {job.kind} job for {job.content_hash} [active={self._count}]")
        job.bus.add_close_callback(lambda event, args: self.remove(job))

    def remove(self, job: JobDescriptor) -> bool:
        key = (job.kind, job.content_hash)
        jobs = self._jobs.get(key, [])
        if job not in jobs:
            return False
        jobs.remove(job)
        if not jobs:
            del self._jobs[key]
        self._count -= 1
        logger.debug(f"Removed {job.kind} job for {job.content_hash} [active={self._count}]")
        return True

    def lookup(self, kind: str, content_hash: str) -> List[JobDescriptor]:
        return list(self._jobs.get((kind, content_hash), []))

    def active(self) -> List[JobDescriptor]:
        return [job for jobs in self._jobs.values() for job in jobs]
