"""Tests for the run.py command line entrypoint."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from rich.console import Console
from typer.testing import CliRunner

import run
from lecture_studio.jobs.models import JobStatus, JobType
from lecture_studio.jobs.store import JobStore


runner = CliRunner()


def _setup_serve(monkeypatch, tmp_path, *, workers: bool):
    captured = {}

    monkeypatch.setattr(run, "initialize_app", lambda: SimpleNamespace(storage_root=tmp_path))
    monkeypatch.setattr(run, "_prepare_logging", lambda storage_root: None)

    class DummyQueue:
        def start(self):
            captured["queue_started"] = True

        def stop(self):
            captured["queue_stopped"] = True

    monkeypatch.setattr(run, "_build_queue", lambda config: DummyQueue())

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def _create_app(queue, *, config, root_path):
        captured["root_path"] = root_path
        return dummy_app

    monkeypatch.setattr(run, "create_app", _create_app)

    class DummyConfig:
        def __init__(self, app, **kwargs):
            captured["app"] = app
            captured["config_kwargs"] = kwargs

    class DummyServer:
        def __init__(self, config):
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)

    run.serve(host="0.0.0.0", port=9000, root_path="/studio", workers=workers)

    captured["app_state_server"] = dummy_app.state.server
    return captured


def test_serve_runs_workers_around_the_server(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, workers=True)

    assert captured["server_run"] is True
    assert captured["queue_started"] and captured["queue_stopped"]
    assert captured["config_kwargs"]["host"] == "0.0.0.0"
    assert captured["config_kwargs"]["port"] == 9000
    assert captured["config_kwargs"]["log_config"] is None
    assert captured["root_path"] == "/studio"
    assert captured["app_state_server"] is captured["server_instance"]


def test_serve_without_workers_leaves_queue_idle(monkeypatch, tmp_path):
    captured = _setup_serve(monkeypatch, tmp_path, workers=False)

    assert captured["server_run"] is True
    assert "queue_started" not in captured
    assert "queue_stopped" not in captured


@pytest.fixture()
def cli_config(temp_config, monkeypatch):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)
    monkeypatch.setattr(run, "console", Console(width=200))
    return temp_config


def test_enqueue_prints_identifier_and_stores_payload(cli_config):
    result = runner.invoke(
        run.cli,
        ["enqueue", JobType.BUILD_MATERIAL, "--payload", json.dumps({"exam_id": "exam-1"})],
    )

    assert result.exit_code == 0, result.output
    job_id = result.output.strip()
    job = JobStore(cli_config).get(job_id)
    assert job is not None
    assert job.status == JobStatus.PENDING
    assert job.payload == {"exam_id": "exam-1"}


def test_enqueue_rejects_unknown_type_and_bad_payload(cli_config):
    unknown = runner.invoke(run.cli, ["enqueue", "compress_video"])
    invalid = runner.invoke(run.cli, ["enqueue", JobType.TRANSCRIBE_MEDIA, "-p", "{not json"])
    not_object = runner.invoke(run.cli, ["enqueue", JobType.TRANSCRIBE_MEDIA, "-p", "[1, 2]"])

    assert unknown.exit_code != 0
    assert invalid.exit_code != 0
    assert not_object.exit_code != 0
    assert JobStore(cli_config).list_jobs() == []


def test_status_reports_job_and_missing_job(cli_config):
    job_id = JobStore(cli_config).create(JobType.TRANSCRIBE_MEDIA, {"lecture_id": "abc"})

    found = runner.invoke(run.cli, ["status", job_id])
    missing = runner.invoke(run.cli, ["status", "does-not-exist"])

    assert found.exit_code == 0
    assert job_id in found.output
    assert "pending" in found.output
    assert missing.exit_code == 1
    assert "Job not found" in missing.output


def test_jobs_lists_recent_jobs(cli_config):
    empty = runner.invoke(run.cli, ["jobs"])
    store = JobStore(cli_config)
    store.create(JobType.DOWNLOAD_REMOTE, {"url": "https://example.com/a.mp3"})
    store.create(JobType.INGEST_DOCUMENTS, {"lecture_id": "abc"})

    listed = runner.invoke(run.cli, ["jobs", "--status", "pending"])

    assert "No jobs found." in empty.output
    assert listed.exit_code == 0
    assert JobType.DOWNLOAD_REMOTE in listed.output
    assert JobType.INGEST_DOCUMENTS in listed.output


def test_watch_exits_with_failure_for_failed_job(cli_config):
    store = JobStore(cli_config)
    job_id = store.create(JobType.PUBLISH_MATERIAL, {"tool_id": "t"})
    store.claim_next()
    store.fail(job_id, "tool not found: t")

    result = runner.invoke(run.cli, ["watch", job_id, "--interval", "0.1"])

    assert result.exit_code == 1
    assert "tool not found: t" in result.output
