"""Command-line interface for Barn.

This module defines the CLI commands using the Click framework.

Commands:
- init: Clone the starter template into a new directory.
- generate: Generate the site into the output directory.
- server: Run the development server.
- new: Create a new content file interactively.

Exit codes of generate:
- 0: every unit succeeded.
- 1: the run completed but some units failed (or it was cancelled).
- 2: the run aborted before writing anything.
"""

from __future__ import annotations

import shutil
import subprocess
import threading
from datetime import datetime
from pathlib import Path

import click
import questionary
import yaml

from . import __version__
from .config import ConfigResolver
from .constants import CONFIG_FILE_NAME, STARTER_REPO_URL
from .errors import FatalError
from .utils import slugify, titleize

EXIT_OK = 0
EXIT_UNIT_FAILURES = 1
EXIT_ABORTED = 2


@click.group()
@click.version_option(version=__version__, prog_name="barn")
def cli():
    """Barn content scaffolding tool."""


@cli.command()
@click.argument("directory", default=".")
@click.option("--repo", default=STARTER_REPO_URL, show_default=True, help="Starter repository to clone")
def init(directory: str, repo: str):
    """Clone the starter template into DIRECTORY."""
    target = Path(directory).resolve()
    if target.exists() and any(target.iterdir()):
        raise click.ClickException(f"Refusing to initialize into non-empty directory: {target}")
    git_bin = shutil.which("git")
    if not git_bin:
        raise click.ClickException("git was not found on PATH; install git to use 'barn init'.")
    result = subprocess.run(
        [git_bin, "clone", "--depth", "1", repo, str(target)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise click.ClickException(
            f"git clone failed: {result.stderr.strip() or f'exit code {result.returncode}'}"
        )
    click.echo(f"New Barn site created at {target}")


@cli.command()
@click.option(
    "--path",
    "project_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project directory (defaults to the current directory)",
)
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    required=False,
    help="Worker pool size (overrides config.yml concurrency)",
)
@click.option("--config", "config_file", default=CONFIG_FILE_NAME, show_default=True, help="Config file name")
def generate(project_dir: Path, concurrency: int | None, config_file: str):
    """Generate the site into the output directory."""
    from .pipeline import PipelineCoordinator

    coordinator = PipelineCoordinator(concurrency=concurrency, config_file_name=config_file)
    try:
        report = _run_cancellable(coordinator, project_dir)
    except FatalError as exc:
        click.echo(click.style("Generate aborted:", fg="red", bold=True) + f" {exc}", err=True)
        raise SystemExit(EXIT_ABORTED) from None

    colour = "green" if report.failed == 0 and not report.cancelled else "yellow"
    click.echo(click.style(f"Generated into {report.output_dir}: {report.summary()}", fg=colour))
    for rel in report.removed:
        click.echo(f"  removed {rel}")
    for failure in report.failures:
        click.echo(
            click.style(f"  {failure.source_path}", fg="yellow")
            + f": {failure.kind}: {failure.message}",
            err=True,
        )
    if report.manifest_error:
        click.echo(click.style(f"  warning: {report.manifest_error}", fg="yellow"), err=True)
    if report.failed or report.cancelled:
        raise SystemExit(EXIT_UNIT_FAILURES)


@cli.command()
@click.option("--host", required=False, help="Interface to bind (overrides config.yml debug.host)")
@click.option("--port", type=int, required=False, help="Port to serve on (overrides config.yml debug.port)")
def server(host: str | None, port: int | None):
    """Generate the site and serve it with regeneration on change."""
    from .server import DevServer

    try:
        dev_server = DevServer(Path.cwd(), host=host, port=port)
        dev_server.start()
    except FatalError as exc:
        click.echo(click.style("Server aborted:", fg="red", bold=True) + f" {exc}", err=True)
        raise SystemExit(EXIT_ABORTED) from None


@cli.command()
def new():
    """Create a new content file interactively."""
    project_root = Path.cwd()
    try:
        config = ConfigResolver().resolve(project_root)
    except FatalError as exc:
        raise click.ClickException(str(exc)) from None
    content_dir = project_root / config.content_dir
    if not content_dir.is_dir():
        raise click.ClickException(
            f"No {config.content_dir}/ directory found. Run this command from a Barn project root."
        )

    folder = questionary.select(
        "Select folder:",
        choices=_get_content_folders(content_dir),
        style=_questionary_style(),
    ).ask()
    if folder is None:
        raise click.Abort()

    name = questionary.text(
        "File name (without .md extension):",
        validate=lambda x: len(x.strip()) > 0 or "File name cannot be empty",
        style=_questionary_style(),
    ).ask()
    if name is None:
        raise click.Abort()
    name = name.strip()

    add_date = questionary.confirm(
        "Prefix with today's date? (YYYY-MM-DD-)",
        default=False,
        style=_questionary_style(),
    ).ask()
    if add_date is None:
        raise click.Abort()

    stem = slugify(name)
    filename = f"{datetime.now():%Y-%m-%d}-{stem}.md" if add_date else f"{stem}.md"
    target_dir = content_dir if folder == ". (root)" else content_dir / folder
    target_path = target_dir / filename
    if target_path.exists():
        raise click.ClickException(f"File already exists: {target_path.relative_to(project_root)}")

    target_dir.mkdir(parents=True, exist_ok=True)
    frontmatter = yaml.safe_dump({"title": titleize(name)}, allow_unicode=True, sort_keys=False)
    target_path.write_text(f"---\n{frontmatter}---\n\n", encoding="utf-8")
    click.echo(f"Created {target_path.relative_to(project_root)}")


def _run_cancellable(coordinator, project_dir: Path):
    """Run the pipeline on a worker thread so Ctrl-C cancels it cooperatively."""
    outcome: dict = {}

    def target():
        try:
            outcome["report"] = coordinator.run(project_dir)
        except BaseException as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="barn-generate", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.1)
    except KeyboardInterrupt:
        click.echo(click.style("Cancelling...", fg="yellow"), err=True)
        coordinator.cancel()
        worker.join()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["report"]


def _get_content_folders(content_dir: Path) -> list[str]:
    """List content folders, skipping hidden ones, with the root option first."""
    folders = sorted(
        path.relative_to(content_dir).as_posix()
        for path in content_dir.rglob("*")
        if path.is_dir()
        and not any(
            part.startswith((".", "_")) for part in path.relative_to(content_dir).parts
        )
    )
    folders.insert(0, ". (root)")
    return folders


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
