from __future__ import annotations

import threading
import time

from lecture_studio.jobs.models import JobError, JobEvent, JobMetrics, JobStatus, JobType
from lecture_studio.jobs.queue import JobQueue, Subscription


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def test_handler_result_and_metrics_are_persisted(job_store):
    queue = JobQueue(job_store, workers=1, poll_interval=0.05)

    def handler(job, context, update):
        update(25, "Quarter", metrics=JobMetrics(input_tokens=100, output_tokens=20, estimated_cost=0.01))
        update(75, "Most", metadata={"stage": "late"}, metrics=JobMetrics(input_tokens=50, estimated_cost=0.02))
        return {"echo": job.payload["value"]}

    queue.register(JobType.BUILD_MATERIAL, handler)
    job_id = queue.enqueue(JobType.BUILD_MATERIAL, {"value": 7})

    assert queue.run_once() is True
    job = queue.get_job(job_id)

    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    assert job.result == {"echo": 7}
    assert job.metadata == {"stage": "late"}
    assert job.input_tokens == 150
    assert job.output_tokens == 20
    assert abs(job.estimated_cost - 0.03) < 1e-9
    assert job.started_at and job.completed_at


def test_handler_error_fails_job_with_message(job_store):
    queue = JobQueue(job_store)

    def handler(job, context, update):
        raise JobError("lecture not found")

    queue.register(JobType.TRANSCRIBE_MEDIA, handler)
    job_id = queue.enqueue(JobType.TRANSCRIBE_MEDIA, {})
    queue.run_once()

    job = queue.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == "lecture not found"


def test_unregistered_type_fails(job_store):
    queue = JobQueue(job_store)
    job_id = queue.enqueue(JobType.PUBLISH_MATERIAL, {})

    queue.run_once()

    job = queue.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert "no handler registered" in job.error


def test_jobs_are_claimed_oldest_first(job_store):
    queue = JobQueue(job_store)
    seen = []
    queue.register(JobType.DOWNLOAD_REMOTE, lambda job, context, update: seen.append(job.payload["n"]))
    for index in range(3):
        queue.enqueue(JobType.DOWNLOAD_REMOTE, {"n": index})

    while queue.run_once():
        pass

    assert seen == [0, 1, 2]
    assert queue.run_once() is False


def test_cancel_running_job_discards_result(job_store):
    queue = JobQueue(job_store)
    observed = {}

    def handler(job, context, update):
        queue.cancel(job.id)
        observed["cancelled"] = context.is_cancelled
        update(50, "still going")
        return {"ignored": True}

    queue.register(JobType.INGEST_DOCUMENTS, handler)
    job_id = queue.enqueue(JobType.INGEST_DOCUMENTS, {})
    subscription = queue.subscribe(job_id)
    queue.run_once()

    job = queue.get_job(job_id)
    assert observed["cancelled"] is True
    assert job.status == JobStatus.CANCELLED
    assert job.result is None
    statuses = []
    while True:
        event = subscription.get(timeout=0.05)
        if event is None:
            break
        statuses.append(event.status)
    assert statuses[0] == JobStatus.RUNNING
    assert JobStatus.CANCELLED in statuses
    assert JobStatus.COMPLETED not in statuses


def test_cancel_is_rejected_for_terminal_jobs(job_store):
    queue = JobQueue(job_store)
    queue.register(JobType.DOWNLOAD_REMOTE, lambda job, context, update: {})
    job_id = queue.enqueue(JobType.DOWNLOAD_REMOTE, {})
    queue.run_once()

    assert queue.cancel(job_id) is False
    assert queue.cancel("unknown") is False


def test_subscribers_receive_progress_until_terminal(job_store):
    queue = JobQueue(job_store)

    def handler(job, context, update):
        update(10, "Starting")
        update(90, "Almost")
        return {"done": True}

    queue.register(JobType.BUILD_MATERIAL, handler)
    job_id = queue.enqueue(JobType.BUILD_MATERIAL, {})
    subscription = queue.subscribe(job_id)
    queue.run_once()

    events = list(subscription.iter_events(poll=0.05))

    assert [event.progress for event in events] == [0, 10, 90, 100]
    assert events[-1].status == JobStatus.COMPLETED
    assert events[-1].result == {"done": True}


def test_slow_subscriber_drops_events_without_blocking():
    subscription = Subscription("job", buffer_size=2)
    for progress in range(5):
        subscription.offer(JobEvent(job_id="job", status=JobStatus.RUNNING, progress=progress))

    assert subscription.dropped == 3
    assert subscription.get(timeout=0.01).progress == 0
    subscription.close()
    assert subscription.offer(JobEvent(job_id="job", status=JobStatus.RUNNING, progress=9)) is False


def test_worker_pool_processes_each_job_once(job_store):
    queue = JobQueue(job_store, workers=3, poll_interval=0.02)
    lock = threading.Lock()
    counts = {}

    def handler(job, context, update):
        with lock:
            counts[job.id] = counts.get(job.id, 0) + 1
        return {}

    queue.register(JobType.DOWNLOAD_REMOTE, handler)
    job_ids = [queue.enqueue(JobType.DOWNLOAD_REMOTE, {"n": index}) for index in range(6)]

    queue.start()
    try:
        finished = _wait_for(
            lambda: all(queue.get_job(job_id).status == JobStatus.COMPLETED for job_id in job_ids)
        )
    finally:
        queue.stop()

    assert finished
    assert counts == {job_id: 1 for job_id in job_ids}
