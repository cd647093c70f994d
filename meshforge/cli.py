"""Thin CLI wrapper for meshforge.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from meshforge import __version__
from meshforge.config import configure_logging, get_settings, print_settings_json

app = typer.Typer(
    name="meshforge",
    help="Meshforge - custom firmware builds, plugin resolution and target "
    "compatibility",
    no_args_is_help=True,
)
console = Console()

STATUS_COLORS = {
    "success": "green",
    "failure": "red",
    "queued": "yellow",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"meshforge version {__version__}")
        raise typer.Exit()


def _print_json(data: Any) -> None:
    """Print JSON without Rich wrapping or markup."""
    console.print(
        json.dumps(data, indent=2), soft_wrap=True, markup=False, highlight=False
    )


def _session_factory() -> Any:
    from meshforge.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    return get_session_factory(engine)


def _load_context() -> Any:
    from meshforge.context import load_context
    from meshforge.registry.io import RegistryLoadError

    try:
        return load_context()
    except RegistryLoadError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None


def _build_to_dict(build: Any) -> dict[str, Any]:
    from meshforge.types import humanize_status

    return {
        "id": build.id,
        "build_hash": build.build_hash,
        "status": build.status,
        "status_label": humanize_status(build.status),
        "config": build.config,
        "run_id": build.run_id,
        "run_id_history": list(build.run_id_history or []),
        "firmware_path": build.firmware_path,
        "source_path": build.source_path,
        "error_message": build.error_message,
        "started_at": build.started_at.isoformat() if build.started_at else None,
        "updated_at": build.updated_at.isoformat() if build.updated_at else None,
        "completed_at": build.completed_at.isoformat() if build.completed_at else None,
    }


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Meshforge - custom firmware builds and plugin resolution."""
    configure_logging(get_settings())


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(
            print_settings_json(settings), soft_wrap=True, markup=False, highlight=False
        )
        return

    def _display(value: Any) -> str:
        return str(value) if value else "(not set)"

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Storage:[/bold]")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print()
    console.print("[bold]Registries:[/bold]")
    console.print(f"  Plugin registry:     {_display(settings.registry_path)}")
    console.print(f"  Hardware list:       {_display(settings.hardware_list_path)}")
    console.print(f"  Hierarchy:           {_display(settings.hierarchy_path)}")
    console.print()
    console.print("[bold]Compiler:[/bold]")
    console.print(f"  Repository:          {settings.github_repo}")
    workflow = f"{settings.github_workflow}@{settings.github_ref}"
    token_state = "set" if settings.github_token else "(not set)"
    console.print(f"  Workflow:            {workflow}")
    console.print(f"  Token:               {token_state}")
    console.print(f"  Callback URL:        {_display(settings.callback_url)}")
    console.print()
    console.print("[bold]Artifacts:[/bold]")
    console.print(f"  Base URL:            {settings.artifacts_base_url}")
    console.print(f"  URL TTL (seconds):   {settings.download_url_ttl}")
    console.print()
    console.print(f"  Log level:           {settings.log_level}")


@app.command("hash")
def hash_config(
    path: Annotated[Path, typer.Argument(help="Build config file (JSON or YAML)")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Compute the build hash of a configuration file."""
    from pydantic import ValidationError

    from meshforge.builds.canonical import (
        canonicalize,
        compute_build_hash,
        normalize_build_config,
    )
    from meshforge.builds.schema import BuildConfig
    from meshforge.registry.io import RegistryLoadError, load_data_file

    try:
        config_obj = BuildConfig.model_validate(load_data_file(path))
    except RegistryLoadError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print("[red]Invalid build config:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    registry = _load_context().registry
    normalized = normalize_build_config(config_obj, registry)
    canonical = canonicalize(normalized, registry)
    build_hash = compute_build_hash(normalized, registry)

    if json_output:
        _print_json(
            {
                "build_hash": build_hash,
                "flags": canonical.flags,
                "plugins": canonical.closure,
                "config": normalized.to_storage(),
            }
        )
        return

    console.print(f"[bold]Build hash:[/bold] {build_hash}")
    console.print(f"  Flags:   {canonical.flags or '(none)'}", markup=False)
    console.print(f"  Plugins: {' '.join(canonical.closure) or '(none)'}", markup=False)


plugins_app = typer.Typer(help="Inspect the plugin registry")
app.add_typer(plugins_app, name="plugins")


@plugins_app.command("list")
def plugins_list(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List registry plugins, featured first."""
    registry = _load_context().registry
    entries = registry.sorted_for_display()

    if json_output:
        _print_json(
            [
                {
                    "slug": e.slug,
                    "name": e.name,
                    "version": e.version,
                    "dependencies": sorted(e.dependencies),
                    "includes": e.effective_includes,
                    "excludes": e.excludes,
                }
                for e in entries
            ]
        )
        return

    if not entries:
        console.print("[yellow]No plugins in registry[/yellow]")
        return
    for e in entries:
        star = "*" if e.featured else " "
        console.print(f" {star} [bold]{e.slug}[/bold] {e.version}  {e.name}")


@plugins_app.command("resolve")
def plugins_resolve(
    plugins: Annotated[
        list[str], typer.Argument(help="Explicit plugins (slug or slug@version)")
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Resolve an explicit selection to its dependency closure."""
    from meshforge.plugins.resolver import closure, implicit_only, pinned_closure

    registry = _load_context().registry
    result = {
        "closure": closure(plugins, registry),
        "implicit": sorted(implicit_only(plugins, registry)),
        "pinned": pinned_closure(plugins, registry),
    }

    if json_output:
        _print_json(result)
        return

    console.print(f"[bold]Closure:[/bold]  {' '.join(result['pinned']) or '(empty)'}")
    if result["implicit"]:
        console.print(f"[bold]Implicit:[/bold] {' '.join(result['implicit'])}")


targets_app = typer.Typer(help="Target hierarchy and compatibility")
app.add_typer(targets_app, name="targets")


@targets_app.command("ancestors")
def targets_ancestors(
    target: Annotated[str, typer.Argument(help="Target or architecture name")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a target's architecture chain."""
    chain = _load_context().hierarchy.ancestors(target)
    if json_output:
        _print_json(chain)
    else:
        console.print(" -> ".join(chain))


@targets_app.command("check")
def targets_check(
    target: Annotated[str, typer.Argument(help="Hardware target")],
    plugins: Annotated[list[str], typer.Argument(help="Plugin slugs to check")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Check plugins against a target; exits 1 if any is incompatible."""
    from meshforge.plugins.resolver import token_slugs

    context = _load_context()
    verdicts = {
        slug: context.hierarchy.is_plugin_compatible(context.registry[slug], target)
        if slug in context.registry
        else True
        for slug in token_slugs(plugins)
    }
    compatible = all(verdicts.values())

    if json_output:
        _print_json({"target": target, "plugins": verdicts, "compatible": compatible})
    else:
        for slug, ok in verdicts.items():
            mark = "[green]compatible[/green]" if ok else "[red]incompatible[/red]"
            console.print(f"  {slug}: {mark}")

    if not compatible:
        raise typer.Exit(code=1)


@targets_app.command("generate-hierarchy")
def targets_generate_hierarchy(
    firmware_dir: Annotated[Path, typer.Argument(help="Firmware checkout root")],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Output JSON file"),
    ] = Path("architecture-hierarchy.json"),
) -> None:
    """Generate the architecture parent map from PlatformIO ini files."""
    from meshforge.targets.generate import (
        HierarchyGenerationError,
        generate_parent_map,
        write_parent_map,
    )

    try:
        parent_map = generate_parent_map(firmware_dir)
        report = write_parent_map(parent_map, output)
    except HierarchyGenerationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    for warning in report.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
    console.print(f"[green]Wrote {len(parent_map)} entries to {output}[/green]")


builds_app = typer.Typer(help="Inspect and manage builds")
app.add_typer(builds_app, name="builds")


@builds_app.command("list")
def builds_list(
    status: Annotated[
        str | None,
        typer.Option("--status", "-s", help="Filter by status"),
    ] = None,
    failed: Annotated[
        bool,
        typer.Option("--failed", help="Only failed builds, most recent first"),
    ] = False,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List build records."""
    from meshforge.builds.service import list_builds, list_failed_builds
    from meshforge.types import humanize_status

    factory = _session_factory()
    with factory() as session:
        if failed:
            builds = list_failed_builds(session, limit=limit)
        else:
            builds = list_builds(session, status=status, limit=limit)

        if json_output:
            _print_json([_build_to_dict(b) for b in builds])
            return

        if not builds:
            console.print("[yellow]No build records found[/yellow]")
            return

        console.print(f"[bold]Found {len(builds)} build(s):[/bold]")
        console.print()
        for b in builds:
            color = STATUS_COLORS.get(b.status, "blue")
            config_data = b.config or {}
            console.print(f"  [{color}]Build #{b.id}[/{color}] {b.build_hash[:12]}")
            console.print(
                f"    Target: {config_data.get('target')} {config_data.get('version')}"
            )
            console.print(f"    Status: {humanize_status(b.status)}")
            if b.error_message:
                console.print(f"    Error: {b.error_message}", markup=False)
            console.print()


def _find_build(session: Any, ref: str) -> Any:
    """Resolve a build by numeric ID or hash."""
    from meshforge.builds.service import (
        BuildNotFoundError,
        get_build,
        get_build_by_hash,
    )

    try:
        if ref.isdigit():
            return get_build(session, int(ref))
        return get_build_by_hash(session, ref)
    except BuildNotFoundError:
        console.print(f"[red]Build not found: {ref}[/red]")
        raise typer.Exit(code=1) from None


@builds_app.command("show")
def builds_show(
    ref: Annotated[str, typer.Argument(help="Build ID or hash")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a build."""
    from meshforge.types import humanize_status

    factory = _session_factory()
    with factory() as session:
        build = _find_build(session, ref)
        if json_output:
            _print_json(_build_to_dict(build))
            return

        console.print(f"[bold]Build #{build.id}[/bold]")
        console.print(f"  Hash:      {build.build_hash}")
        console.print(f"  Status:    {humanize_status(build.status)}")
        console.print(f"  Run:       {build.run_id or 'N/A'}")
        console.print(f"  Firmware:  {build.firmware_path or 'N/A'}")
        console.print(f"  Source:    {build.source_path or 'N/A'}")
        if build.error_message:
            console.print(f"  Error:     {build.error_message}", markup=False)


@builds_app.command("retry")
def builds_retry(
    build_id: Annotated[int, typer.Argument(help="Build ID")],
) -> None:
    """Reset a build to queued and dispatch it again."""
    from meshforge.builds.dispatch import DispatchConfigError
    from meshforge.builds.service import BuildNotFoundError, retry_build

    context = _load_context()
    factory = _session_factory()
    with factory() as session:
        try:
            build, dispatched = retry_build(
                session, build_id, context.registry, context.dispatcher
            )
            session.commit()
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None
        except DispatchConfigError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from None

        if not dispatched:
            console.print(f"[red]Dispatch failed: {build.error_message}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Build #{build.id} re-queued[/green]")


@builds_app.command("reproduce")
def builds_reproduce(
    ref: Annotated[str, typer.Argument(help="Build ID or hash")],
) -> None:
    """Print bash commands reproducing a build locally."""
    from meshforge.builds.reproduce import reproduce_commands

    context = _load_context()
    factory = _session_factory()
    with factory() as session:
        build = _find_build(session, ref)
        commands = reproduce_commands(
            build, context.registry, product=context.settings.product_name
        )
    console.print("\n".join(commands), soft_wrap=True, markup=False, highlight=False)


if __name__ == "__main__":
    app()
