"""Entry-point for the Lecture Studio job service."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from lecture_studio.bootstrap import initialize_app
from lecture_studio.config import AppConfig
from lecture_studio.export.assembler import ExportAssembler
from lecture_studio.export.uploads import TmpFilesUploader
from lecture_studio.jobs.handlers import register_handlers
from lecture_studio.jobs.models import Job, JobStatus, JobType
from lecture_studio.jobs.queue import JobQueue
from lecture_studio.jobs.store import JobStore
from lecture_studio.llm import build_provider
from lecture_studio.logging_utils import configure_logging
from lecture_studio.markdown.converter import PandocConverter
from lecture_studio.processing import FasterWhisperTranscriptionService, PyMuPDFDocumentProcessor
from lecture_studio.prompts import PromptManager
from lecture_studio.services.events import emit_db_event
from lecture_studio.services.storage import LectureRepository
from lecture_studio.tools.generator import ToolGenerator
from lecture_studio.web.server import create_app


LOGGER = logging.getLogger("lecture_studio.cli")


cli = typer.Typer(add_completion=False, help="Lecture Studio job commands")
console = Console()


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

_STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.RUNNING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.CANCELLED: "magenta",
}


def _prepare_logging(storage_root: Path) -> None:
    log_file = configure_logging(storage_root)
    LOGGER.debug("Logging to %s", log_file)


def _build_queue(config: AppConfig) -> JobQueue:
    """Wire the store, collaborators and handlers into a job queue."""

    repository = LectureRepository(config, event_emitter=emit_db_event)
    store = JobStore(config)
    queue = JobQueue(store, workers=config.jobs.workers, poll_interval=config.jobs.poll_interval)

    generator = ToolGenerator(config, build_provider(config), PromptManager(config.prompts_root))
    converter = PandocConverter(
        pandoc_binary=config.export.pandoc_binary,
        pdf_engine=config.export.pdf_engine,
        resource_path=config.storage_root,
        timeout=config.export.timeout_seconds,
    )
    assembler = ExportAssembler(
        config,
        repository,
        generator,
        converter,
        uploader=TmpFilesUploader(config.export.upload_url),
    )
    register_handlers(
        queue,
        repository,
        config,
        transcription=FasterWhisperTranscriptionService(
            config.transcription.model,
            download_root=config.models_root,
            compute_type=config.transcription.compute_type,
            beam_size=config.transcription.beam_size,
        ),
        documents=PyMuPDFDocumentProcessor(dpi=config.export.document_dpi),
        generator=generator,
        assembler=assembler,
    )
    return queue


def _parse_payload(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise typer.BadParameter(f"Payload is not valid JSON: {error}", param_hint="--payload") from error
    if not isinstance(payload, dict):
        raise typer.BadParameter("Payload must be a JSON object.", param_hint="--payload")
    return payload


def _styled_status(status: str) -> str:
    style = _STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _render_job(job: Job) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("ID", job.id)
    table.add_row("Type", job.type)
    table.add_row("Status", _styled_status(job.status))
    table.add_row("Progress", f"{job.progress}% {job.progress_message}".strip())
    if job.result:
        table.add_row("Result", json.dumps(job.result))
    if job.error:
        table.add_row("Error", f"[red]{job.error}[/red]")
    if job.input_tokens or job.output_tokens:
        table.add_row("Tokens", f"{job.input_tokens} in / {job.output_tokens} out")
    if job.estimated_cost:
        table.add_row("Cost", f"${job.estimated_cost:.4f}")
    table.add_row("Created", job.created_at)
    if job.completed_at:
        table.add_row("Completed", job.completed_at)
    return table


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None, workers=True)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="LECTURE_STUDIO_ROOT_PATH",
    ),
    workers: bool = typer.Option(True, "--workers/--no-workers", help="Run job workers in this process"),
) -> None:
    """Run the job API, with the worker pool unless disabled."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)

    queue = _build_queue(app_config)
    app = create_app(queue, config=app_config, root_path=root_path)

    server_config = uvicorn.Config(app, host=host, port=port, log_config=None)
    server = uvicorn.Server(server_config)
    app.state.server = server

    if workers:
        queue.start()
    try:
        server.run()
    finally:
        if workers:
            queue.stop()


@cli.command()
def worker(
    once: bool = typer.Option(False, "--once", help="Process a single pending job and exit"),
) -> None:
    """Process queued jobs without serving the API."""

    config = initialize_app()
    _prepare_logging(config.storage_root)
    queue = _build_queue(config)

    if once:
        if not queue.run_once():
            console.print("No pending jobs.")
        return

    queue.start()
    console.print(f"Worker pool running with {config.jobs.workers} worker(s). Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("Stopping workers…")
    finally:
        queue.stop()


@cli.command()
def enqueue(
    job_type: str = typer.Argument(..., help=f"One of: {', '.join(JobType.ALL)}"),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="Job payload as a JSON object"),
) -> None:
    """Queue a job and print its identifier."""

    if job_type not in JobType.ALL:
        raise typer.BadParameter(f"Unknown job type: {job_type}", param_hint="JOB_TYPE")
    data = _parse_payload(payload)
    config = initialize_app()
    store = JobStore(config)
    queue = JobQueue(store)
    job_id = queue.enqueue(job_type, data)
    console.print(job_id)


@cli.command()
def status(job_id: str = typer.Argument(..., help="Job identifier")) -> None:
    """Show the state of one job."""

    config = initialize_app()
    job = JobStore(config).get(job_id)
    if job is None:
        console.print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(code=1)
    console.print(_render_job(job))


@cli.command("jobs")
def list_jobs(
    status_filter: Optional[str] = typer.Option(None, "--status", help="Only show jobs in this status"),
    limit: int = typer.Option(20, min=1, help="Maximum number of jobs to list"),
) -> None:
    """List recent jobs."""

    config = initialize_app()
    jobs = JobStore(config).list_jobs(status=status_filter, limit=limit)
    if not jobs:
        console.print("No jobs found.")
        return
    table = Table(title="Jobs")
    table.add_column("ID", no_wrap=True)
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Created")
    for job in jobs:
        table.add_row(job.id, job.type, _styled_status(job.status), f"{job.progress}%", job.created_at)
    console.print(table)


@cli.command()
def watch(
    job_id: str = typer.Argument(..., help="Job identifier"),
    interval: float = typer.Option(1.0, min=0.1, help="Seconds between polls"),
) -> None:
    """Follow a job's progress until it finishes."""

    config = initialize_app()
    store = JobStore(config)
    job = store.get(job_id)
    if job is None:
        console.print(f"[red]Job not found:[/red] {job_id}")
        raise typer.Exit(code=1)

    last_seen = None
    with console.status(f"Watching {job_id}…") as spinner:
        while True:
            job = store.get(job_id)
            if job is None:
                break
            snapshot = (job.status, job.progress, job.progress_message)
            if snapshot != last_seen:
                last_seen = snapshot
                spinner.update(f"{job.progress:>3}% {job.progress_message or job.status}")
            if job.is_terminal:
                break
            time.sleep(interval)

    if job is not None:
        console.print(_render_job(job))
        if job.status == JobStatus.FAILED:
            raise typer.Exit(code=1)


if __name__ == "__main__":
    cli()
