"""Manifest generation and inspection commands."""

from __future__ import annotations

import json
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from launchpad_tools.core.config import AppConfig
from launchpad_tools.core.integrity import IntegrityError, verify_file
from launchpad_tools.core.manifest_generator import generate_manifest
from launchpad_tools.core.types import Module
from launchpad_tools.core.utils import format_size
from launchpad_tools.formats.manifest import ManifestEntry, ManifestParser

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


@click.group(name="manifest")
def manifest_group() -> None:
    """Generate and inspect manifest files."""


@manifest_group.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "--module",
    "-m",
    type=click.Choice([m.value for m in Module], case_sensitive=False),
    default=Module.GAME.value,
    help="Module the manifest describes",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the manifest and checksum (default: parent of DIRECTORY)",
)
@click.pass_context
def generate(ctx: click.Context, directory: Path, module: str, output_dir: Path | None) -> None:
    """Generate a manifest and checksum for DIRECTORY."""
    config, console, verbose, _ = _get_context_objects(ctx)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            console=console,
            disable=config.output_format != "rich",
        ) as progress:
            task = progress.add_task("Hashing files...", total=None)

            def on_progress(entry: ManifestEntry, completed: int, total: int) -> None:
                progress.update(task, completed=completed, total=total)
                if verbose:
                    progress.console.print(f"  {entry.wire_path} ({format_size(entry.size)})")

            generated = generate_manifest(
                directory, Module(module.lower()), output_dir, on_progress=on_progress
            )
    except (OSError, ValueError) as e:
        logger.error("manifest_generation_failed", directory=str(directory), error=str(e))
        raise click.ClickException(f"Manifest generation failed: {e}") from e

    if config.output_format == "json":
        print(json.dumps({
            "manifest": str(generated.manifest_path),
            "checksum_file": str(generated.checksum_path),
            "checksum": generated.checksum,
            "files": len(generated.manifest),
            "total_size": generated.manifest.total_size,
        }, indent=2))
        return

    console.print(f"[green]Wrote {len(generated.manifest)} entries to {generated.manifest_path}[/green]")
    console.print(f"Checksum: {generated.checksum}")


@manifest_group.command()
@click.argument("manifest_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def show(ctx: click.Context, manifest_file: Path) -> None:
    """List the entries of MANIFEST_FILE."""
    config, console, _, _ = _get_context_objects(ctx)

    try:
        manifest = ManifestParser().parse_file(manifest_file)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        print(json.dumps([
            {"path": e.wire_path, "hash": e.content_hash, "size": e.size}
            for e in manifest
        ], indent=2))
        return

    table = Table(title=f"{manifest_file.name}")
    table.add_column("Path", style="cyan")
    table.add_column("MD5", style="dim")
    table.add_column("Size", style="magenta", justify="right")
    for entry in manifest:
        table.add_row(entry.wire_path, entry.content_hash, format_size(entry.size))
    console.print(table)
    console.print(f"{len(manifest)} entries, {format_size(manifest.total_size)} total")


@manifest_group.command()
@click.argument("manifest_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def check(ctx: click.Context, manifest_file: Path, directory: Path) -> None:
    """Check DIRECTORY against MANIFEST_FILE without network access."""
    config, console, verbose, _ = _get_context_objects(ctx)

    try:
        manifest = ManifestParser().parse_file(manifest_file)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    failures: list[tuple[ManifestEntry, str]] = []
    for entry in manifest:
        try:
            verify_file(directory / entry.relative_path, entry)
        except IntegrityError as e:
            failures.append((entry, str(e)))
            continue
        if verbose:
            console.print(f"[green]✓ {entry.wire_path}[/green]")

    if config.output_format == "json":
        print(json.dumps({
            "files": len(manifest),
            "intact": len(manifest) - len(failures),
            "broken": [{"path": e.wire_path, "error": msg} for e, msg in failures],
        }, indent=2))
    else:
        table = Table(title="Integrity Check")
        table.add_column("Result", style="cyan")
        table.add_column("Count", style="magenta")
        table.add_row("Total files", str(len(manifest)))
        table.add_row("Intact", str(len(manifest) - len(failures)))
        table.add_row("Broken", str(len(failures)))
        console.print(table)
        for entry, message in failures[:10]:
            console.print(f"  [red]{entry.wire_path}[/red]: {message}")
        if len(failures) > 10:
            console.print(f"  ... and {len(failures) - 10} more")

    if failures:
        raise click.ClickException(f"{len(failures)} file(s) failed the integrity check")
