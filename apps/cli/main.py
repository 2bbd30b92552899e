"""CLI application for depbump."""

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn
from rich.table import Table

from depbump.cache import RegistryCache
from depbump.errors import DepbumpError
from depbump.manifest import load_global_package, load_packages
from depbump.models import CheckOptions, DiffSeverity, PackageContext, UpdateMode
from depbump.orchestrator import CheckCallbacks, PackageResolutionOrchestrator
from depbump.ranges import change_range
from depbump.registry import RegistryClient
from depbump.scheduler import ResolutionScheduler
from depbump.settings import DepbumpSettings, get_settings

console = Console()
err_console = Console(stderr=True)

class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"


DIFF_STYLES = {
    DiffSeverity.MAJOR: "red",
    DiffSeverity.MINOR: "yellow",
    DiffSeverity.PATCH: "green",
    DiffSeverity.PRERELEASE: "magenta",
    DiffSeverity.NONE: "dim",
}


def configure_logging(settings: DepbumpSettings) -> None:
    """Configure logging based on settings."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


async def check_packages(
    options: CheckOptions, settings: DepbumpSettings, show_progress: bool = True
) -> list[PackageContext]:
    """Load manifests and resolve them against the registry."""
    if options.global_packages:
        packages = [load_global_package(options)]
        # global packages are never written back to a manifest
        options.write = False
    else:
        packages = load_packages(options)

    cache = RegistryCache(settings.cache_path, ttl=settings.cache_ttl)

    progress = Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("{task.fields[dep]}"),
        console=err_console,
        transient=True,
        disable=not show_progress,
    )
    tasks: dict[str, TaskID] = {}

    def before_package_start(pkg: PackageContext) -> None:
        tasks[pkg.name] = progress.add_task(pkg.name, total=len(pkg.dependencies), dep="")

    def on_dependency_resolved(pkg_name: str, dep_name: str, completed: int, total: int) -> None:
        progress.update(tasks[pkg_name], completed=completed, total=total, dep=dep_name)

    def after_package_end(pkg: PackageContext) -> None:
        progress.remove_task(tasks.pop(pkg.name))

    callbacks = CheckCallbacks(
        before_package_start=before_package_start,
        on_dependency_resolved=on_dependency_resolved,
        after_package_end=after_package_end,
    )

    async with httpx.AsyncClient(timeout=settings.timeout) as http_client:
        client = RegistryClient(
            cache,
            registry_url=settings.registry_url,
            timeout=settings.timeout,
            force=options.force,
            http_client=http_client,
        )
        scheduler = ResolutionScheduler(client, max_concurrency=settings.max_concurrency)
        orchestrator = PackageResolutionOrchestrator(cache, client, scheduler)
        with progress:
            return await orchestrator.run(packages, options, callbacks)


def render_package(pkg: PackageContext, show_all: bool) -> Table | None:
    """Build a table of a package's dependencies."""
    rows = [dep for dep in pkg.resolved if show_all or dep.update or dep.error]
    if not rows:
        return None

    title = pkg.name
    if pkg.file_path:
        title += f" [dim]({pkg.file_path})[/dim]"
    table = Table(title=title, title_justify="left", show_edge=False)
    table.add_column("name")
    table.add_column("source", style="dim")
    table.add_column("current")
    table.add_column("")
    table.add_column("target")
    table.add_column("diff")

    for dep in rows:
        if dep.error:
            table.add_row(dep.name, dep.source, dep.current_range, "", "[red]error[/red]", "")
        elif dep.update:
            style = DIFF_STYLES[dep.diff]
            target = change_range(dep.current_range, dep.target_version)
            table.add_row(dep.name, dep.source, dep.current_range, "→", f"[{style}]{target}[/{style}]", f"[{style}]{dep.diff.value}[/{style}]")
        else:
            table.add_row(dep.name, dep.source, dep.current_range, "", "[dim]up to date[/dim]", "")
    return table


def format_json_output(packages: list[PackageContext]) -> str:
    """Format JSON output."""
    reports = []
    for pkg in packages:
        reports.append({
            "name": pkg.name,
            "file": str(pkg.file_path) if pkg.file_path else None,
            "write_error": pkg.write_error,
            "dependencies": [
                {
                    "name": dep.name,
                    "source": dep.source,
                    "current_range": dep.current_range,
                    "current_version": dep.current_version,
                    "target_version": dep.target_version,
                    "latest_version": dep.latest_version,
                    "diff": dep.diff.value,
                    "update": dep.update,
                    "error": dep.error,
                }
                for dep in pkg.resolved
            ],
        })

    return json.dumps({"packages": reports}, indent=2)


def has_changes(packages: list[PackageContext]) -> bool:
    """Check if any package has an available update."""
    return any(pkg.changes for pkg in packages)


app = typer.Typer(
    name="depbump",
    help="depbump - Check package.json dependencies for newer registry versions",
    add_completion=False,
)


@app.command()
def check(
    mode: UpdateMode = typer.Argument(UpdateMode.DEFAULT, help="Update mode: default, major, minor, patch, latest, newest, next"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Check every package.json below the working directory"),
    write: bool = typer.Option(False, "--write", "-w", help="Write updated ranges to package.json"),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore the registry cache"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Show up-to-date dependencies too"),
    global_packages: bool = typer.Option(False, "--global", "-g", help="Check globally installed npm packages"),
    include: list[str] = typer.Option([], "--include", "-n", help="Only check matching dependencies (glob or /regex/)"),
    exclude: list[str] = typer.Option([], "--exclude", "-x", help="Skip matching dependencies (glob or /regex/)"),
    ignore_paths: list[str] = typer.Option([], "--ignore-path", help="Skip manifests whose path matches this glob"),
    fail_on_outdated: bool = typer.Option(False, "--fail-on-outdated", help="Exit with code 1 when updates are found but not written"),
    format_type: OutputFormat = typer.Option(OutputFormat.TABLE, "--format", help="Output format"),
    cwd: Path = typer.Option(Path("."), "--cwd", "-C", help="Working directory"),
    concurrency: int | None = typer.Option(None, "--concurrency", help="Maximum concurrent registry requests"),
) -> None:
    """Check dependencies for updates under the chosen MODE."""
    settings = get_settings()
    configure_logging(settings)
    if concurrency is not None:
        settings = settings.model_copy(update={"max_concurrency": max(1, concurrency)})

    options = CheckOptions(
        mode=mode,
        write=write,
        force=force,
        recursive=recursive,
        cwd=cwd,
        ignore_paths=ignore_paths,
        include=include,
        exclude=exclude,
        fail_on_outdated=fail_on_outdated,
        all=show_all,
        global_packages=global_packages,
    )

    try:
        if not global_packages and not (cwd / "package.json").exists() and not recursive:
            console.print(f"Error: No package.json found in {cwd}", style="red")
            raise typer.Exit(1)

        packages = asyncio.run(check_packages(options, settings, show_progress=format_type != OutputFormat.JSON))
    except typer.Exit:
        raise
    except DepbumpError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    if format_type == OutputFormat.JSON:
        typer.echo(format_json_output(packages))
    else:
        hidden = 0
        for pkg in packages:
            table = render_package(pkg, show_all)
            if table is None:
                hidden += 1
                continue
            console.print(table)
            console.print()

        if hidden and not show_all and has_changes(packages):
            where = "one package" if hidden == 1 else f"{hidden} packages"
            console.print(f"dependencies are already up-to-date in {where}", style="green")
            console.print()

        failed = [(pkg, dep) for pkg in packages for dep in pkg.errors]
        if failed:
            err_console.print(" ERROR ", style="bold reverse red")
            for pkg, dep in failed:
                err_console.print(f"could not check {dep.name} ({pkg.name}): {dep.error}", style="red")
            err_console.print()

    write_errors = [pkg for pkg in packages if pkg.write_error]
    for pkg in write_errors:
        err_console.print(f"Error: {pkg.write_error}", style="red")

    changes = has_changes(packages)
    if not changes:
        if format_type != OutputFormat.JSON:
            console.print("dependencies are already up-to-date", style="green")
        raise typer.Exit(1 if write_errors else 0)

    if format_type != OutputFormat.JSON:
        if options.write:
            console.print("changes written to package.json, run your package manager to install updates", style="yellow")
        else:
            if mode == UpdateMode.DEFAULT:
                console.print("Run [cyan]depbump major[/cyan] to check major updates")
            console.print("Add [green]-w[/green] to write to package.json")

    if write_errors or (fail_on_outdated and not options.write):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
