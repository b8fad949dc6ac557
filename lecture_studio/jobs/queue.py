"""Worker pool that claims persisted jobs and dispatches them to handlers."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Dict, Iterator, List, Optional

from ..services.events import emit_job_event
from .models import (
    Job,
    JobContext,
    JobEvent,
    JobHandler,
    JobMetrics,
    JobStatus,
)
from .store import JobStore


LOGGER = logging.getLogger(__name__)


DEFAULT_SUBSCRIBER_BUFFER = 10


class Subscription:
    """Bounded stream of events for one job."""

    def __init__(self, job_id: str, *, buffer_size: int = DEFAULT_SUBSCRIBER_BUFFER) -> None:
        self.job_id = job_id
        self._events: "queue.Queue[JobEvent]" = queue.Queue(maxsize=buffer_size)
        self._closed = threading.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: JobEvent) -> bool:
        """Deliver *event* without blocking. Returns ``False`` when it was dropped."""

        if self.closed:
            return False
        try:
            self._events.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[JobEvent]:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self._closed.set()

    def iter_events(self, *, poll: float = 0.5) -> Iterator[JobEvent]:
        """Yield events until a terminal one arrives or the subscription closes."""

        while not self.closed:
            event = self.get(timeout=poll)
            if event is None:
                continue
            yield event
            if event.is_terminal:
                return


class JobQueue:
    """Poll the job store from a fixed pool of worker threads."""

    def __init__(
        self,
        store: JobStore,
        *,
        workers: int = 2,
        poll_interval: float = 1.0,
        subscriber_buffer: int = DEFAULT_SUBSCRIBER_BUFFER,
    ) -> None:
        self._store = store
        self._worker_count = max(1, int(workers))
        self._poll_interval = max(0.01, float(poll_interval))
        self._subscriber_buffer = max(1, int(subscriber_buffer))
        self._handlers: Dict[str, JobHandler] = {}
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._contexts: Dict[str, JobContext] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def job_types(self) -> List[str]:
        with self._lock:
            return sorted(self._handlers)

    def register(self, job_type: str, handler: JobHandler) -> None:
        with self._lock:
            if job_type in self._handlers:
                LOGGER.warning("Replacing handler for job type %s", job_type)
            self._handlers[job_type] = handler
        LOGGER.debug("Registered handler for job type %s", job_type)

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------
    def enqueue(self, job_type: str, payload: Optional[Dict[str, Any]] = None) -> str:
        job_id = self._store.create(job_type, payload)
        emit_job_event(job_id, JobStatus.PENDING, "Job enqueued", payload={"type": job_type})
        return job_id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._store.get(job_id)

    def list_jobs(self, *, status: Optional[str] = None, limit: int = 50) -> List[Job]:
        return self._store.list_jobs(status=status, limit=limit)

    def subscribe(self, job_id: str) -> Subscription:
        subscription = Subscription(job_id, buffer_size=self._subscriber_buffer)
        with self._lock:
            self._subscribers.setdefault(job_id, []).append(subscription)
        LOGGER.debug("Subscriber attached to job %s", job_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._lock:
            subscribers = self._subscribers.get(subscription.job_id)
            if not subscribers:
                return
            remaining = [entry for entry in subscribers if entry is not subscription]
            if remaining:
                self._subscribers[subscription.job_id] = remaining
            else:
                self._subscribers.pop(subscription.job_id, None)

    def cancel(self, job_id: str) -> bool:
        """Mark a pending or running job cancelled. Running handlers are not interrupted."""

        changed = self._store.cancel(job_id)
        if not changed:
            LOGGER.debug("Cancel ignored for job %s (not active)", job_id)
            return False
        with self._lock:
            context = self._contexts.get(job_id)
        if context is not None:
            context.cancelled.set()
        job = self._store.get(job_id)
        progress = job.progress if job is not None else 0
        emit_job_event(job_id, JobStatus.CANCELLED, "Job cancelled")
        self._publish(JobEvent(job_id=job_id, status=JobStatus.CANCELLED, progress=progress))
        return True

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if any(thread.is_alive() for thread in self._threads):
                return
            self._stop_event.clear()
            self._threads = [
                threading.Thread(
                    target=self._worker_loop,
                    args=(index,),
                    name=f"job-worker-{index}",
                    daemon=True,
                )
                for index in range(self._worker_count)
            ]
            threads = list(self._threads)
        for thread in threads:
            thread.start()
        LOGGER.info(
            "Job queue started with %d worker(s) polling every %.2fs",
            self._worker_count,
            self._poll_interval,
        )

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        self._stop_event.set()
        with self._lock:
            threads = list(self._threads)
            self._threads = []
        for thread in threads:
            thread.join(timeout=timeout)
        LOGGER.info("Job queue stopped")

    def run_once(self) -> bool:
        """Claim and execute at most one job. Returns ``True`` when a job ran."""

        job = self._store.claim_next()
        if job is None:
            return False
        self._execute(job)
        return True

    def _worker_loop(self, index: int) -> None:
        LOGGER.debug("Worker %d polling for jobs", index)
        while not self._stop_event.is_set():
            try:
                processed = self.run_once()
            except Exception:  # noqa: BLE001 - keep the worker alive on store errors
                LOGGER.exception("Worker %d failed to claim a job", index)
                processed = False
            if not processed:
                self._stop_event.wait(self._poll_interval)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _execute(self, job: Job) -> None:
        context = JobContext(job_id=job.id)
        with self._lock:
            handler = self._handlers.get(job.type)
            self._contexts[job.id] = context

        started = time.perf_counter()
        emit_job_event(job.id, JobStatus.RUNNING, "Job claimed", payload={"type": job.type})
        self._publish(JobEvent(job_id=job.id, status=JobStatus.RUNNING, progress=0))

        def update(
            progress: int,
            message: str,
            metadata: Optional[Dict[str, Any]] = None,
            metrics: Optional[JobMetrics] = None,
        ) -> None:
            self._store.update_progress(
                job.id, progress, message, metadata=metadata, metrics=metrics
            )
            status = JobStatus.CANCELLED if context.is_cancelled else JobStatus.RUNNING
            self._publish(
                JobEvent(
                    job_id=job.id,
                    status=status,
                    progress=int(progress),
                    message=message,
                    metadata=metadata,
                )
            )

        try:
            if handler is None:
                raise LookupError(f"no handler registered for job type: {job.type}")
            result = handler(job, context, update)
        except Exception as error:  # noqa: BLE001 - every handler error fails the job
            message = str(error) or error.__class__.__name__
            LOGGER.exception("Job %s (%s) failed", job.id, job.type)
            if self._store.fail(job.id, message):
                emit_job_event(
                    job.id,
                    JobStatus.FAILED,
                    message,
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    level=logging.ERROR,
                )
                self._publish(
                    JobEvent(job_id=job.id, status=JobStatus.FAILED, progress=0, error=message)
                )
        else:
            payload = result if isinstance(result, dict) else {}
            if self._store.complete(job.id, payload):
                emit_job_event(
                    job.id,
                    JobStatus.COMPLETED,
                    "Job completed",
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                )
                self._publish(
                    JobEvent(
                        job_id=job.id,
                        status=JobStatus.COMPLETED,
                        progress=100,
                        result=payload,
                    )
                )
            else:
                LOGGER.info("Job %s finished after it was cancelled; result discarded", job.id)
        finally:
            with self._lock:
                self._contexts.pop(job.id, None)

    def _publish(self, event: JobEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(event.job_id, ()))
        for subscription in subscribers:
            if not subscription.offer(event):
                LOGGER.debug(
                    "Dropped %s event for a slow subscriber of job %s",
                    event.status,
                    event.job_id,
                )


__all__ = ["DEFAULT_SUBSCRIBER_BUFFER", "JobQueue", "Subscription"]
