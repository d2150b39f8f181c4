"""Command-line interface for license_gatherer.

Provides the main entry point and subcommands for generating license
attribution reports, computing clarifications, and managing the cache.
"""

import asyncio
import json
import logging
from importlib import resources
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from license_gatherer import graph
from license_gatherer.cache import RemoteFileCache
from license_gatherer.clarify import ClarifiedSubsection, clarify_file, parse_subsection
from license_gatherer.config import CONFIG_FILENAME, Config, load_config
from license_gatherer.diagnostics import render_diagnostic
from license_gatherer.errors import LicenseGathererError
from license_gatherer.fetch import GitCache, read_local
from license_gatherer.gatherer import Gatherer
from license_gatherer.report import error_count, generate as generate_list
from license_gatherer.reporters import BaseReporter, JsonReporter, MarkdownReporter
from license_gatherer.reporters.markdown import DEFAULT_TEMPLATE
from license_gatherer.resolution import resolve
from license_gatherer.store import CORPUS_PATH, CorpusDownloader, LicenseStore, store_from_cache

app = typer.Typer(
    name="license-gatherer",
    help="Gather, resolve and report the licenses of a project's dependencies.",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)
logger = logging.getLogger("license_gatherer")


def _setup_logging(verbose: bool) -> None:
    """Configure logging level based on verbosity flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.getLogger("license_gatherer").setLevel(level)


async def _load_store(corpus: Path) -> LicenseStore:
    """Load the license corpus, downloading it first if it is missing."""
    if not corpus.exists():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True,
        ) as progress:
            progress.add_task("Downloading SPDX license texts...", total=None)
            async with CorpusDownloader() as downloader:
                await downloader.download(corpus)
    return store_from_cache(corpus)


def _apply_overrides(
    config: Config,
    threshold: Optional[float],
    extras: Optional[list[str]],
    no_clearly_defined: bool,
) -> Config:
    update: dict = {}
    if threshold is not None:
        update["confidence_threshold"] = min(max(threshold, 0.0), 1.0)
    if extras:
        update["extras"] = [*config.extras, *extras]
    if no_clearly_defined:
        update["disallow_clearly_defined"] = True
    return config.model_copy(update=update) if update else config


def _reporter(output_format: str, template: Optional[Path]) -> BaseReporter:
    if output_format == "json":
        return JsonReporter()
    if template:
        return MarkdownReporter(template_path=template)
    return MarkdownReporter()


async def _run_generate(
    manifest_path: Path,
    config_path: Optional[Path],
    output: Optional[Path],
    output_format: str,
    template: Optional[Path],
    threshold: Optional[float],
    extras: Optional[list[str]],
    no_clearly_defined: bool,
    corpus: Path,
    fail: bool,
) -> int:
    """Async implementation of the generate command."""
    try:
        config = load_config(config_path, manifest_path)
        config = _apply_overrides(config, threshold, extras, no_clearly_defined)
        store = await _load_store(corpus)
        packages = graph.build(manifest_path, config.extras, config.targets or None)
    except LicenseGathererError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1

    if not packages:
        console.print("[yellow]No installed dependencies found[/yellow]")
        return 0

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=err_console,
        transient=True,
    ) as progress:
        progress.add_task(
            f"Gathering licenses for {len(packages)} packages...", total=None
        )
        with RemoteFileCache() as remote_files:
            async with Gatherer(store, git_cache=GitCache(store=remote_files)) as gatherer:
                package_licenses = await gatherer.gather(packages, config)

    files, resolved = resolve(package_licenses, config.accepted, config)
    for result in resolved:
        for diagnostic in result.diagnostics:
            render_diagnostic(err_console, files, diagnostic)

    errors = error_count(resolved)
    license_list = generate_list(package_licenses, resolved, store)

    reporter = _reporter(output_format, template)
    output = output or Path(f"licenses{reporter.default_extension}")
    try:
        reporter.write(license_list, output)
    except OSError as e:
        err_console.print(f"[red]Error writing output:[/red] {escape(str(e))}")
        return 1
    console.print(f"[green]Generated:[/green] {output}")

    if errors:
        err_console.print(
            f"[red]Error:[/red] encountered {errors} errors resolving licenses"
        )
        if fail:
            return 1
    return 0


@app.command()
def generate(
    manifest_path: Annotated[
        Path,
        typer.Option(
            "--manifest-path",
            "-m",
            help="Path to the project's pyproject.toml",
            exists=True,
            readable=True,
        ),
    ] = Path("pyproject.toml"),
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to license-gatherer.toml (default: search upwards)",
            exists=True,
            readable=True,
        ),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path"),
    ] = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: markdown or json"),
    ] = "markdown",
    template: Annotated[
        Optional[Path],
        typer.Option(
            "--template",
            "-t",
            help="Custom Jinja2 template file",
            exists=True,
            readable=True,
        ),
    ] = None,
    threshold: Annotated[
        Optional[float],
        typer.Option("--threshold", help="Minimum confidence for license detection"),
    ] = None,
    extras: Annotated[
        Optional[list[str]],
        typer.Option("--extras", "-e", help="Optional dependency groups to include"),
    ] = None,
    no_clearly_defined: Annotated[
        bool,
        typer.Option("--no-clearly-defined", help="Do not query ClearlyDefined"),
    ] = False,
    corpus: Annotated[
        Path,
        typer.Option("--corpus", help="Path of the license text corpus"),
    ] = CORPUS_PATH,
    fail: Annotated[
        bool,
        typer.Option("--fail", help="Exit non-zero if licenses could not be resolved"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Generate a license attribution report.

    Builds the dependency graph of the project, gathers license evidence
    for every package, resolves it against the accepted licenses, and
    writes the report.
    """
    _setup_logging(verbose)
    if output_format not in ("markdown", "json"):
        err_console.print(f"[red]Unknown format:[/red] {output_format}")
        raise typer.Exit(code=1)

    exit_code = asyncio.run(
        _run_generate(
            manifest_path=manifest_path,
            config_path=config_path,
            output=output,
            output_format=output_format,
            template=template,
            threshold=threshold,
            extras=extras,
            no_clearly_defined=no_clearly_defined,
            corpus=corpus,
            fail=fail,
        )
    )
    raise typer.Exit(code=exit_code)


def _toml_str(value: str) -> str:
    # JSON string escapes are valid TOML basic strings.
    return json.dumps(value, ensure_ascii=False)


def format_clarification(
    expression: str,
    path: Path,
    subsections: list[ClarifiedSubsection],
    remote: bool,
) -> str:
    """Format a clarification as TOML ready to paste into the config."""
    lines = [f"license = {_toml_str(expression)}"]
    table = "git" if remote else "files"
    for section in subsections:
        lines.append("")
        lines.append(f"[[{table}]]")
        lines.append(f"path = {_toml_str(path.as_posix())}")
        if len(subsections) > 1:
            lines.append(f"license = {_toml_str(section.license)}")
        lines.append(f"checksum = {_toml_str(section.checksum)}")
        if section.start is not None:
            lines.append(f"start = {_toml_str(section.start)}")
        if section.end is not None:
            lines.append(f"end = {_toml_str(section.end)}")
    return "\n".join(lines) + "\n"


async def _read_clarified_file(
    path: Path, root: Optional[Path], repo: Optional[str], rev: Optional[str]
) -> str:
    if root is not None:
        return await asyncio.to_thread(read_local, root, path)
    async with GitCache() as git_cache:
        return await git_cache.retrieve_remote(repo, rev, path.as_posix())


@app.command()
def clarify(
    path: Annotated[
        Path,
        typer.Argument(help="Path of the license file, relative to the root"),
    ],
    root: Annotated[
        Optional[Path],
        typer.Option("--root", help="Local directory the path is relative to"),
    ] = None,
    repo: Annotated[
        Optional[str],
        typer.Option("--repo", help="Git repository URL to fetch the file from"),
    ] = None,
    rev: Annotated[
        Optional[str],
        typer.Option("--rev", help="Git revision to fetch the file at"),
    ] = None,
    subsection: Annotated[
        Optional[list[str]],
        typer.Option(
            "--subsection",
            "-s",
            help="Subsection of the file as START!!END; may be repeated",
        ),
    ] = None,
    threshold: Annotated[
        float,
        typer.Option("--threshold", help="Minimum confidence for license detection"),
    ] = 0.8,
    corpus: Annotated[
        Path,
        typer.Option("--corpus", help="Path of the license text corpus"),
    ] = CORPUS_PATH,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Compute a clarification for a license file.

    Prints the checksum and detected license of the file, or of each
    subsection, as TOML for a clarification entry.
    """
    _setup_logging(verbose)

    if (root is None) == (repo is None):
        err_console.print("[red]Error:[/red] Specify exactly one of --root or --repo")
        raise typer.Exit(code=1)
    if repo is not None and rev is None:
        err_console.print("[red]Error:[/red] --repo requires --rev")
        raise typer.Exit(code=1)

    try:
        anchors = [parse_subsection(value) for value in subsection or []]
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    async def run() -> tuple[str, list[ClarifiedSubsection]]:
        store = await _load_store(corpus)
        contents = await _read_clarified_file(path, root, repo, rev)
        return clarify_file(contents, path, store, anchors, threshold)

    try:
        expression, sections = asyncio.run(run())
    except LicenseGathererError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    typer.echo(format_clarification(expression, path, sections, remote=repo is not None))


def _write_resource(name: str, target: Path, overwrite: bool) -> None:
    if target.exists() and not overwrite:
        console.print(f"[yellow]Skipped:[/yellow] {target} already exists")
        return
    source = resources.files("license_gatherer.templates").joinpath(name).read_text(
        encoding="utf-8"
    )
    target.write_text(source, encoding="utf-8")
    console.print(f"[green]Wrote:[/green] {target}")


@app.command()
def init(
    directory: Annotated[
        Path,
        typer.Argument(help="Directory to write the files to", file_okay=False),
    ] = Path("."),
    no_template: Annotated[
        bool,
        typer.Option("--no-template", help="Do not write the Markdown template"),
    ] = False,
    overwrite: Annotated[
        bool,
        typer.Option("--overwrite", help="Replace files that already exist"),
    ] = False,
) -> None:
    """Write a starter configuration and the default report template.

    Existing files are left alone unless --overwrite is given.
    """
    try:
        directory.mkdir(parents=True, exist_ok=True)
        _write_resource(CONFIG_FILENAME, directory / CONFIG_FILENAME, overwrite)
        if not no_template:
            _write_resource(DEFAULT_TEMPLATE, directory / DEFAULT_TEMPLATE, overwrite)
    except OSError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.command()
def cache(
    action: Annotated[
        str,
        typer.Argument(help="Cache action: 'show' or 'clear'"),
    ],
    repository: Annotated[
        Optional[str],
        typer.Argument(help="Specific repository to clear (optional)"),
    ] = None,
) -> None:
    """Manage the cache of remotely fetched license files.

    Actions:
        show  - Display cache location, entry count, and size
        clear - Clear all cached files (or those of one repository)
    """
    cache_instance = RemoteFileCache()

    if action == "show":
        info = cache_instance.info()
        console.print(f"[bold]Cache Location:[/bold] {info['path']}")
        console.print(f"[bold]Entries:[/bold] {info['count']}")
        console.print(f"[bold]Size:[/bold] {info['size_bytes'] / 1024:.1f} KB")

    elif action == "clear":
        if repository:
            cache_instance.clear(repository=repository)
            console.print(f"[green]Cleared cache for:[/green] {repository}")
        else:
            cache_instance.clear()
            console.print("[green]Cache cleared[/green]")

    else:
        err_console.print(f"[red]Unknown action:[/red] {action}")
        err_console.print("Valid actions: show, clear")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
