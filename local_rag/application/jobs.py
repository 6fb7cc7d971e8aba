"""Background ingestion jobs.

Ingestion runs off the request path on a single worker thread, so at most one
document is written at a time. Each job exposes its latest progress and can
be cancelled cooperatively.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from enum import Enum

from local_rag.application.dto.ingest_dto import IngestDocumentRequest, IngestProgress
from local_rag.application.use_cases.ingest_document import IngestDocument
from local_rag.domain.errors import DomainError, IngestionCancelledError
from local_rag.domain.models import DocumentSummary

logger = logging.getLogger(__name__)

# Finished jobs kept for polling; older ones are forgotten first.
MAX_FINISHED_JOBS = 256


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class IngestionJob:
    def __init__(self, job_id: str, document_id: str) -> None:
        self.job_id = job_id
        self.document_id = document_id
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._state = JobState.QUEUED
        self._progress: IngestProgress | None = None
        self._error: DomainError | None = None
        self._future: Future[DocumentSummary] | None = None

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> IngestProgress | None:
        with self._lock:
            return self._progress

    @property
    def error(self) -> DomainError | None:
        with self._lock:
            return self._error

    @property
    def done(self) -> bool:
        return self.state.is_final

    def cancel(self) -> bool:
        """Request cancellation; False if the job had already finished."""
        if self.done:
            return False
        self._cancel_event.set()
        if self._future is not None and self._future.cancel():
            # Never started: nothing was written for this document.
            self._set_final(JobState.CANCELLED, IngestionCancelledError(self.document_id))
        return True

    def wait(self, timeout: float | None = None) -> DocumentSummary:
        """Block until the job finishes; raises the ingestion error if it failed."""
        assert self._future is not None
        try:
            return self._future.result(timeout=timeout)
        except CancelledError as ex:
            raise IngestionCancelledError(self.document_id) from ex

    # ---------- runner side ----------

    def _update(self, progress: IngestProgress) -> None:
        with self._lock:
            self._progress = progress

    def _set_running(self) -> None:
        with self._lock:
            self._state = JobState.RUNNING

    def _set_final(self, state: JobState, error: DomainError | None = None) -> None:
        with self._lock:
            self._state = state
            self._error = error


class IngestionJobRunner:
    def __init__(self, ingest: IngestDocument, max_finished_jobs: int = MAX_FINISHED_JOBS) -> None:
        self.ingest = ingest
        self.max_finished_jobs = max_finished_jobs
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest")
        self._jobs: dict[str, IngestionJob] = {}
        self._lock = threading.Lock()

    def submit(self, req: IngestDocumentRequest) -> IngestionJob:
        job = IngestionJob(uuid.uuid4().hex, req.document_id)
        with self._lock:
            self._evict_finished()
            self._jobs[job.job_id] = job
        job._future = self._executor.submit(self._run, job, req)
        logger.info("Queued ingestion job %s for document '%s'", job.job_id, req.document_id)
        return job

    def get(self, job_id: str) -> IngestionJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def jobs(self) -> list[IngestionJob]:
        with self._lock:
            return list(self._jobs.values())

    def shutdown(self, wait: bool = True) -> None:
        for job in self.jobs():
            if not job.done:
                job.cancel()
        self._executor.shutdown(wait=wait)

    def _run(self, job: IngestionJob, req: IngestDocumentRequest) -> DocumentSummary:
        job._set_running()
        res = self.ingest.execute(req, progress=job._update, cancel=job._cancel_event)
        if res.ok:
            assert res.value is not None
            job._set_final(JobState.SUCCEEDED)
            return res.value
        err = res.error
        assert err is not None
        state = JobState.CANCELLED if isinstance(err, IngestionCancelledError) else JobState.FAILED
        job._set_final(state, err)
        raise err

    def _evict_finished(self) -> None:
        """Drop the oldest finished jobs beyond `max_finished_jobs`; caller holds the lock."""
        finished = [job_id for job_id, job in self._jobs.items() if job.done]
        excess = len(finished) - self.max_finished_jobs
        for job_id in finished[: max(excess, 0)]:
            del self._jobs[job_id]
