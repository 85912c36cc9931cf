"""Install, update, verify and status commands."""

from __future__ import annotations

import json
import queue
import threading
from typing import Any

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from launchpad_tools.core.config import AppConfig
from launchpad_tools.core.manifest_store import ManifestStore
from launchpad_tools.core.patch_engine import OperationResult, PatchEngine
from launchpad_tools.core.progress import (
    CancellationToken,
    FileFinished,
    FileStarted,
    OperationFinished,
    ProgressEvent,
    QueueSink,
)
from launchpad_tools.core.transfer import LocalFileError, TransferError, create_transfer
from launchpad_tools.core.types import Module, Operation, SystemTarget
from launchpad_tools.core.version import VersionError

logger = structlog.get_logger()

MODULE_CHOICE = click.Choice([m.value for m in Module], case_sensitive=False)

# Seconds between checks of a finished worker while waiting for events
EVENT_POLL_INTERVAL = 0.1


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


def _result_to_dict(result: OperationResult) -> dict[str, Any]:
    return {
        "module": result.module.value,
        "operation": result.operation.value,
        "success": result.success,
        "stage": result.stage.value if result.stage else None,
        "error": result.error,
        "failed_entries": result.failed_entries,
        "files_processed": result.files_processed,
    }


def _render_event(
    event: ProgressEvent,
    progress: Progress,
    task: TaskID,
    verbose: bool,
) -> None:
    if isinstance(event, FileStarted):
        progress.update(
            task,
            description=event.message,
            total=event.total,
            completed=event.index - 1,
        )
    elif isinstance(event, FileFinished):
        progress.update(task, completed=event.index)
        if verbose and not event.ok:
            progress.console.print(f"[yellow]✗ {event.path} ({event.stage})[/yellow]")


def _consume_events(
    sink: QueueSink,
    worker: threading.Thread,
    progress: Progress,
    task: TaskID,
    verbose: bool,
) -> None:
    """Render events until the worker reports the end of the operation."""
    while True:
        try:
            event = sink.queue.get(timeout=EVENT_POLL_INTERVAL)
        except queue.Empty:
            if not worker.is_alive() and sink.queue.empty():
                return
            continue
        _render_event(event, progress, task, verbose)
        if isinstance(event, OperationFinished):
            return


def _run_operation(ctx: click.Context, module_name: str, operation: Operation) -> None:
    """Run a bulk operation on a worker thread and render its progress."""
    config, console, verbose, _ = _get_context_objects(ctx)
    module = Module(module_name.lower())

    sink = QueueSink()
    token = CancellationToken()
    results: list[OperationResult] = []

    try:
        transfer = create_transfer(config.remote)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    with transfer:
        engine = PatchEngine(transfer, ManifestStore(config), config, sink=sink, cancel_token=token)
        run = getattr(engine, operation.value)

        worker = threading.Thread(
            target=lambda: results.append(run(module)),
            name=f"{operation.value}-{module.value}",
            daemon=True,
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=config.output_format != "rich",
        ) as progress:
            task = progress.add_task(f"{operation.value.capitalize()} {module.value}...", total=None)
            worker.start()
            try:
                _consume_events(sink, worker, progress, task, verbose)
            except KeyboardInterrupt:
                token.cancel()
                progress.console.print("[yellow]Cancelling...[/yellow]")
            worker.join()

    if not results:
        raise click.ClickException(f"{operation.value.capitalize()} of {module.value} ended unexpectedly")
    result = results[0]

    if config.output_format == "json":
        print(json.dumps(_result_to_dict(result), indent=2))
    elif result.success:
        console.print(Panel.fit(f"[green]{result.summary}[/green]", title="Success"))
    else:
        console.print(f"[red]{result.summary}[/red]")
        for line in result.failed_entries:
            console.print(f"  {line}")

    if not result.success:
        raise click.ClickException(result.summary)


@click.command()
@click.argument("module", type=MODULE_CHOICE)
@click.pass_context
def install(ctx: click.Context, module: str) -> None:
    """Download and verify every file of MODULE."""
    _run_operation(ctx, module, Operation.INSTALL)


@click.command()
@click.argument("module", type=MODULE_CHOICE)
@click.pass_context
def update(ctx: click.Context, module: str) -> None:
    """Download the files of MODULE that changed since the last manifest."""
    _run_operation(ctx, module, Operation.UPDATE)


@click.command()
@click.argument("module", type=MODULE_CHOICE)
@click.pass_context
def verify(ctx: click.Context, module: str) -> None:
    """Hash every file of MODULE and repair broken ones."""
    _run_operation(ctx, module, Operation.VERIFY)


def _safe_check(check: Any) -> bool | str:
    """Run a server check, returning the error text instead of raising."""
    try:
        return bool(check())
    except (TransferError, LocalFileError, VersionError, OSError) as e:
        logger.warning("status_check_failed", error=str(e))
        return f"error: {e}"


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show server reachability and local module state."""
    config, console, _, _ = _get_context_objects(ctx)

    try:
        transfer = create_transfer(config.remote)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    with transfer:
        engine = PatchEngine(transfer, ManifestStore(config), config)
        platform: SystemTarget = config.launcher.system_target

        reachable = engine.can_patch()
        info: dict[str, Any] = {
            "address": config.remote.address,
            "reachable": reachable,
            "platform": platform.value,
            "game_installed": engine.is_game_installed(),
        }
        if reachable:
            info["platform_available"] = engine.is_platform_available(platform)
            for module in Module:
                info[f"{module.value}_manifest_outdated"] = _safe_check(
                    lambda m=module: engine.is_manifest_outdated(m)
                )
                info[f"{module.value}_outdated"] = _safe_check(
                    lambda m=module: engine.is_module_outdated(m)
                )

    if config.output_format == "json":
        print(json.dumps(info, indent=2))
        return

    table = Table(title="Patch Status")
    table.add_column("Check", style="cyan")
    table.add_column("Value", style="magenta")
    for key, value in info.items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(table)
