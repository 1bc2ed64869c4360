"""Command-line interface for StaticForge.

This module defines the CLI commands using the Click framework.

Commands:
- render: Generate the whole site.
- render-page: Render a single source file.
- features: List the features loaded for a project.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .errors import ConfigError, FileProcessingError
from .log import configure_logging
from .orchestrator import Orchestrator
from .result import GenerationResult

project_option = click.option(
    "--project",
    "project",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Project root containing staticforge.yaml",
)


@click.group()
@click.version_option(version=__version__, prog_name="staticforge")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON lines")
def cli(verbose: bool, log_json: bool):
    """StaticForge static site generator."""
    configure_logging(verbose=verbose, log_json=log_json)


def _load(project: Path, **kwargs) -> Orchestrator:
    try:
        return Orchestrator.from_project(project.resolve(), **kwargs)
    except ConfigError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from None


@cli.command()
@project_option
@click.option("--clean", is_flag=True, help="Empty the output directory first")
def render(project: Path, clean: bool):
    """Generate the site into the output directory."""
    orchestrator = _load(project, clean_output=clean)
    result = orchestrator.generate()
    _report(result, orchestrator.output_dir)
    if not result:
        raise SystemExit(1)


def _report(result: GenerationResult, output_dir: Path) -> None:
    if not result.success:
        click.echo(click.style("Generation failed:", fg="red", bold=True), err=True)
        for failure in result.failures_of("core"):
            click.echo(click.style(f"  {failure.message}", fg="white"), err=True)
        return

    click.echo(f"Rendered {result.files_processed} files into {output_dir}")
    if result.skipped:
        click.echo(f"Skipped {len(result.skipped)} files")
    if result.clean:
        return
    click.echo(
        click.style(f"Completed with {result.failure_count} failures:", fg="yellow", bold=True),
        err=True,
    )
    for failure in result.failures:
        location = f"{failure.subject} [{failure.stage}]" if failure.stage else failure.subject
        click.echo(click.style(f"  {failure.kind}: {location}: {failure.message}", fg="yellow"), err=True)


@cli.command("render-page")
@project_option
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def render_page(project: Path, path: Path):
    """Render a single source file."""
    orchestrator = _load(project)
    try:
        context = orchestrator.render_file(path.resolve())
    except FileProcessingError as exc:
        click.echo(click.style("Render failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {exc.file_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Stage: {exc.stage}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc}", fg="white"), err=True)
        raise SystemExit(1) from None

    if context.skip_file:
        click.echo(f"Skipped {path}")
    elif context.output_path and context.rendered_content is not None:
        click.echo(f"Rendered {path} -> {context.output_path}")
    else:
        click.echo(f"No renderer handled {path}")


@cli.command()
@project_option
def features(project: Path):
    """List loaded features with their type and events."""
    orchestrator = _load(project)
    orchestrator.ensure_plugins_loaded()
    registry = orchestrator.registry
    types = registry.types()
    for name, status in registry.statuses().items():
        plugin = registry.get_plugin(name)
        events = ", ".join(plugin.get_event_listeners()) if plugin is not None else "-"
        kind = types.get(name, "-")
        colour = "green" if status == "enabled" else "yellow"
        click.echo(f"{name:<24} {kind:<10} {click.style(status, fg=colour):<18} {events}")
    for error in registry.errors:
        click.echo(click.style(f"failed: {error}", fg="red"), err=True)


def main():
    cli()
