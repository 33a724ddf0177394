# src/promptbatch/cli.py
"""promptbatch Command Line Interface.

Entry point for the promptbatch CLI tool: a thin transport over the
task service.
"""

import json
from pathlib import Path

import typer

from promptbatch import __version__
from promptbatch.contracts.enums import EventType
from promptbatch.contracts.errors import ConfigurationError, PromptBatchError
from promptbatch.contracts.events import ProgressEvent
from promptbatch.core.config import BatchSettings, ProcessingSettings, load_settings
from promptbatch.core.logging import configure_logging
from promptbatch.core.tasks import TaskRegistry
from promptbatch.engine.service import TaskService
from promptbatch.plugins.llm import create_provider

app = typer.Typer(
    name="promptbatch",
    help="promptbatch: resumable batch runs of tabular data through LLM and agent APIs.",
    no_args_is_help=True,
)

DEFAULT_OUTPUT_DIR = "outputData"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"promptbatch version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """promptbatch: resumable batch runs of tabular data through LLM and agent APIs."""
    pass


def _parse_fields(fields: str) -> list[int]:
    try:
        return [int(part) for part in fields.split(",") if part.strip()]
    except ValueError:
        typer.echo(f"Error: --fields must be comma-separated integers, got {fields!r}", err=True)
        raise typer.Exit(1) from None


def _load(settings: str) -> BatchSettings:
    try:
        return load_settings(Path(settings))
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ConfigurationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors:
            typer.echo(f"  - {error['loc']}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _echo_event(event: ProgressEvent) -> None:
    progress = event.progress or {}
    if event.type == EventType.PROGRESS:
        typer.echo(
            f"[{progress.get('progress', 0):3d}%] "
            f"{progress.get('processedRows', 0)}/{progress.get('totalRows', 0)} rows "
            f"ok={progress.get('successCount', 0)} err={progress.get('errorCount', 0)} "
            f"skip={progress.get('skippedCount', 0)} "
            f"{progress.get('speed', 0)} rows/min"
        )
    elif event.type == EventType.FAILED:
        typer.echo(f"Task {event.task_id} failed: {event.error}", err=True)
    else:
        typer.echo(f"Task {event.task_id} {event.type.value}")


@app.command()
def run(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    data: str = typer.Option(
        ...,
        "--data",
        "-d",
        help="Data file (.csv, .xlsx, .xls, .json, .jsonl).",
    ),
    fields: str = typer.Option(
        "0",
        "--fields",
        "-f",
        help="Comma-separated 0-based field indices joined into the prompt.",
    ),
    start: int = typer.Option(0, "--start", help="First data row to process (0-based)."),
    end: int | None = typer.Option(None, "--end", help="Stop before this data row."),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed output.",
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines."),
) -> None:
    """Run (or resume) a batch task.

    Re-running with the same data file and configuration resumes the
    unfinished task instead of starting over. Ctrl-C stops after the
    in-flight batch; the task can be resumed later.
    """
    configure_logging(verbose=verbose, json_output=json_logs)
    config = _load(settings)
    selected = _parse_fields(fields)

    service = TaskService(config.processing, observer=_echo_event)
    try:
        task_id = service.start_task(
            data,
            selected,
            config.api_config,
            config.prompt_config,
            start_pos=start,
            end_pos=end,
        )
    except PromptBatchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    try:
        while service.is_running():
            service.wait(timeout=0.5)
    except KeyboardInterrupt:
        typer.echo("Stopping after the current batch...", err=True)
        service.stop_task(task_id)
        service.wait()

    if service.last_error is not None:
        typer.echo(f"Error during task execution: {service.last_error}", err=True)
        raise typer.Exit(1)

    summary = service.last_summary
    if summary is None:
        typer.echo(f"Task {task_id} did not finish", err=True)
        raise typer.Exit(1)

    typer.echo(f"\nTask {summary.state.value}: {summary.task_id}")
    typer.echo(f"  Rows processed: {summary.processed_rows}/{summary.total_rows}")
    typer.echo(
        f"  Success: {summary.success_count}  Errors: {summary.error_count}  "
        f"Skipped: {summary.skipped_count}"
    )
    typer.echo(f"  Results: {summary.output_files.success_file}")
    typer.echo(f"  Errors:  {summary.output_files.error_file}")


@app.command()
def validate(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
) -> None:
    """Validate a settings file without running anything."""
    config = _load(settings)
    try:
        provider = create_provider(config.api_config)
    except PromptBatchError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    with provider:
        info = provider.info()
    typer.echo("Configuration valid.")
    for key, value in info.items():
        typer.echo(f"  {key}: {value}")


@app.command()
def status(
    task_id: str = typer.Argument(..., help="Task id."),
    output_dir: str = typer.Option(DEFAULT_OUTPUT_DIR, "--output-dir", "-o", help="Output root."),
) -> None:
    """Show the persisted progress of a task."""
    service = TaskService(ProcessingSettings(output_dir=Path(output_dir)))
    progress = service.get_task_status(task_id)
    if progress is None:
        typer.echo(f"Task not found or not started: {task_id}", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(progress, indent=2, ensure_ascii=False))


@app.command()
def tasks(
    output_dir: str = typer.Option(DEFAULT_OUTPUT_DIR, "--output-dir", "-o", help="Output root."),
) -> None:
    """List tasks, newest first."""
    listing = TaskRegistry(Path(output_dir)).list_tasks()
    if not listing:
        typer.echo("No tasks.")
        return
    for task in listing:
        typer.echo(f"{task['id']}  {task['status']:<10}  {task['createdAt']}  {task['dataFile']}")


@app.command()
def cleanup(
    days: float = typer.Option(7, "--days", help="Delete tasks older than this many days."),
    output_dir: str = typer.Option(DEFAULT_OUTPUT_DIR, "--output-dir", "-o", help="Output root."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete old task directories, whatever their status."""
    if not yes:
        typer.confirm(f"Delete every task older than {days} days?", abort=True)
    result = TaskRegistry(Path(output_dir)).cleanup_old_tasks(days)
    typer.echo(f"Deleted {result.deleted_count} task(s), freed {result.bytes_freed} bytes.")
    for task_id in result.failed_refs:
        typer.echo(f"  failed: {task_id}", err=True)
    if result.failed_refs:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
