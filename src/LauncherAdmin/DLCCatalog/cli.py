# === NAVMAP v1 ===
# {
#   "module": "LauncherAdmin.DLCCatalog.cli",
#   "purpose": "Typer CLI for planning and applying syncs, previewing/exporting catalogs, and migrating app documents",
#   "sections": [
#     {"id": "context", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "sync", "name": "sync plan / sync apply", "anchor": "group-sync", "kind": "function"},
#     {"id": "catalog", "name": "catalog preview / catalog export", "anchor": "group-catalog", "kind": "function"},
#     {"id": "migrate", "name": "migrate", "anchor": "function-migrate", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Operator CLI for the DLC catalog engine.

Global options come before the subcommand:

    dlc-admin --config admin.yaml --store ./store sync plan roleplay production
    dlc-admin -v sync apply roleplay staging --yes
    dlc-admin catalog export roleplay catalog.json --record

Exit codes: 0 success, 1 operation error, 2 usage or configuration error,
3 confirmation declined.
"""

import json
import logging
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from LauncherAdmin.DLCCatalog import __version__
from LauncherAdmin.DLCCatalog.discovery import DiscoveryService
from LauncherAdmin.DLCCatalog.documents import AppRepository, JsonFileDocumentStore
from LauncherAdmin.DLCCatalog.errors import (
    ConfigurationError,
    ConfirmationRequiredError,
    DLCCatalogError,
)
from LauncherAdmin.DLCCatalog.logging_utils import setup_logging
from LauncherAdmin.DLCCatalog.migration import migrate_app
from LauncherAdmin.DLCCatalog.models import BuildName
from LauncherAdmin.DLCCatalog.publisher import CatalogPublisher, PublishPreview
from LauncherAdmin.DLCCatalog.settings import AdminSettings, load_settings
from LauncherAdmin.DLCCatalog.storage import PublicBucket
from LauncherAdmin.DLCCatalog.sync import SyncOrchestrator, SyncPlan

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_DECLINED = 3

_console = Console()
_err_console = Console(stderr=True)


class CliContext:
    """Settings and wired services shared by every command of one invocation."""

    def __init__(
        self,
        settings: AdminSettings,
        *,
        store_root: Optional[Path] = None,
        verbosity: int = 0,
    ) -> None:
        self.settings = settings
        self.verbosity = verbosity
        self.console = _console
        root = store_root or settings.store.root
        self.store = JsonFileDocumentStore(root)
        self.repository = AppRepository(self.store)
        self.bucket = PublicBucket(settings.bucket, http_settings=settings.http)

    def discovery(self) -> DiscoveryService:
        return DiscoveryService.from_settings(self.bucket, self.settings.discovery)

    def orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(
            self.discovery(),
            self.repository,
            catalog_settings=self.settings.catalog,
        )

    def publisher(self) -> CatalogPublisher:
        return CatalogPublisher(
            self.repository,
            self.bucket,
            catalog_settings=self.settings.catalog,
        )


app = typer.Typer(
    name="dlc-admin",
    help="Discover DLC packages in the bucket, sync them into app documents, and build catalogs",
    no_args_is_help=True,
)
sync_app = typer.Typer(help="Plan and apply bucket → app document syncs", no_args_is_help=True)
catalog_app = typer.Typer(help="Preview and export the client catalog", no_args_is_help=True)
app.add_typer(sync_app, name="sync")
app.add_typer(catalog_app, name="catalog")

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _fail(message: str, code: int = EXIT_FAILURE) -> NoReturn:
    _err_console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(code)


def _parse_build(value: str) -> BuildName:
    try:
        return BuildName.parse(value)
    except ConfigurationError as exc:
        _fail(str(exc), EXIT_USAGE)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dlc-admin {__version__}")
        raise typer.Exit(EXIT_OK)


def _log_level(verbosity: int, configured: str) -> str:
    if verbosity >= 2:
        return "DEBUG"
    if verbosity == 1:
        return "INFO"
    return configured


@app.callback(invoke_without_command=False)
def main(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        envvar="DLCADMIN_CONFIG",
        help="Path to a YAML settings file",
    ),
    store: Optional[Path] = typer.Option(
        None,
        "--store",
        "-s",
        help="Root directory of the JSON document store",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """DLC catalog administration."""
    global _context

    try:
        settings = load_settings(config)
    except ConfigurationError as exc:
        _fail(str(exc), EXIT_USAGE)

    setup_logging(settings.logging, level=_log_level(verbosity, settings.logging.level))
    _context = CliContext(settings, store_root=store, verbosity=verbosity)
    logging.getLogger("LauncherAdmin.DLCCatalog.cli").debug(
        "cli context ready",
        extra={"stage": "cli", "config": str(config) if config else None, "store": str(_context.store.root)},
    )


# --- Rendering ------------------------------------------------------------------


def _render_plan(console: Console, plan: SyncPlan) -> None:
    table = Table(title=f"Sync plan: {plan.app_id} / {plan.build.value}")
    table.add_column("Folder", style="cyan")
    table.add_column("Change", style="yellow")
    table.add_column("Version", style="green")
    for folder in plan.added:
        table.add_row(folder, "add", plan.proposed_dlcs[folder].version if folder in plan.proposed_dlcs else "")
    for folder, (old, new) in plan.updated.items():
        table.add_row(folder, "update", f"{old} → {new}")
    for folder in plan.unchanged:
        dlc = plan.proposed_dlcs.get(folder)
        table.add_row(folder, "unchanged", dlc.version if dlc else "")
    for folder in plan.removed:
        table.add_row(folder, "remove", "")
    console.print(table)

    action = plan.version_action
    if action == "none":
        console.print(f"Base game version: {plan.current_version or 'unset'} (no change)")
    else:
        console.print(
            f"Base game version: {plan.current_version or 'unset'} → {plan.remote_version} ({action})"
        )
    counts = plan.counts()
    console.print(
        f"{counts['discovered']} discovered, {counts['replaced']} stored DLC(s) will be replaced"
    )
    if plan.clears_all:
        console.print(
            f"[bold red]No DLCs were discovered; applying will clear all "
            f"{plan.stored_count} stored DLC(s) from {plan.build.value}.[/bold red]"
        )


def _render_findings(console: Console, errors: List[str], changes: List[str]) -> None:
    if errors:
        console.print(f"[yellow]Validation findings ({len(errors)}):[/yellow]")
        for error in errors:
            console.print(f"  [yellow]•[/yellow] {error}")
    else:
        console.print("[green]✓ Catalog is valid[/green]")
    if changes:
        console.print("Changes:")
        for change in changes:
            console.print(f"  • {change}")
    else:
        console.print("No changes against the published catalog")


def _render_preview(console: Console, preview: PublishPreview) -> None:
    table = Table(title=f"Catalog preview: {preview.app_id}")
    table.add_column("Build", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("DLCs", justify="right")
    table.add_column("Environments", justify="right")
    table.add_column("Characters", justify="right")
    for build, summary in preview.summary.items():
        if summary is None:
            table.add_row(build, "not published", "-", "-", "-")
            continue
        table.add_row(
            build,
            str(summary["version"]),
            str(summary["dlcCount"]),
            str(summary["envCount"]),
            str(summary["charCount"]),
        )
    console.print(table)
    _render_findings(console, preview.report.errors, preview.diff.changes)


# --- sync -----------------------------------------------------------------------


@sync_app.command("plan")
def sync_plan(
    app_id: str = typer.Argument(..., help="App document id"),
    build: str = typer.Argument(..., help="production or staging"),
    as_json: bool = typer.Option(False, "--json", help="Emit the plan as JSON"),
) -> None:
    """Discover the bucket state of BUILD and show what a sync would change."""
    ctx = get_context()
    name = _parse_build(build)
    try:
        plan = ctx.orchestrator().plan_sync(app_id, name)
    except DLCCatalogError as exc:
        _fail(str(exc))

    if as_json:
        typer.echo(json.dumps(plan.to_dict(), indent=2))
    else:
        _render_plan(ctx.console, plan)


@sync_app.command("apply")
def sync_apply(
    app_id: str = typer.Argument(..., help="App document id"),
    build: str = typer.Argument(..., help="production or staging"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Confirm destructive syncs without prompting"),
) -> None:
    """Sync BUILD from the bucket into the app document."""
    ctx = get_context()
    name = _parse_build(build)
    orchestrator = ctx.orchestrator()
    try:
        plan = orchestrator.plan_sync(app_id, name)
    except DLCCatalogError as exc:
        _fail(str(exc))

    _render_plan(ctx.console, plan)
    confirmed = yes
    if plan.requires_confirmation and not yes:
        confirmed = typer.confirm(
            f"Remove all {plan.stored_count} DLC(s) from {name.value}?", default=False
        )
        if not confirmed:
            ctx.console.print("[yellow]Sync cancelled; nothing was written.[/yellow]")
            raise typer.Exit(EXIT_DECLINED)

    try:
        result = orchestrator.apply_sync(plan, confirmed=confirmed)
    except ConfirmationRequiredError as exc:
        _fail(str(exc), EXIT_DECLINED)
    except DLCCatalogError as exc:
        _fail(str(exc))

    ctx.console.print(
        f"[green]✓ Synced {result.dlc_count} DLC(s) to {name.value} "
        f"(base game {result.version})[/green]"
    )
    _render_findings(ctx.console, result.validation.errors, result.catalog_changes.changes)


# --- catalog --------------------------------------------------------------------


@catalog_app.command("preview")
def catalog_preview(
    app_id: str = typer.Argument(..., help="App document id"),
    as_json: bool = typer.Option(False, "--json", help="Emit the preview as JSON"),
) -> None:
    """Generate the catalog from stored state and diff it against the published one."""
    ctx = get_context()
    try:
        preview = ctx.publisher().prepare(app_id)
    except DLCCatalogError as exc:
        _fail(str(exc))

    if as_json:
        typer.echo(json.dumps(preview.to_dict(), indent=2, ensure_ascii=False))
    else:
        _render_preview(ctx.console, preview)


@catalog_app.command("export")
def catalog_export(
    app_id: str = typer.Argument(..., help="App document id"),
    output: Path = typer.Argument(..., help="Where to write catalog.json"),
    record: bool = typer.Option(
        False, "--record", help="Also store the catalog as the app's lastCatalog"
    ),
) -> None:
    """Write the generated catalog to OUTPUT for upload to the bucket."""
    ctx = get_context()
    publisher = ctx.publisher()
    try:
        preview = publisher.prepare(app_id)
        target = publisher.export(preview, output)
        if record:
            publisher.record(app_id, preview.catalog)
    except (DLCCatalogError, OSError) as exc:
        _fail(str(exc))

    _render_findings(ctx.console, preview.report.errors, preview.diff.changes)
    ctx.console.print(f"[green]✓ Catalog written to {target}[/green]")


# --- migrate --------------------------------------------------------------------


@app.command()
def migrate(app_id: str = typer.Argument(..., help="App document id")) -> None:
    """Move a legacy app document to the production/staging layout."""
    ctx = get_context()
    try:
        changed = migrate_app(ctx.store, app_id)
    except DLCCatalogError as exc:
        _fail(str(exc))

    if changed:
        ctx.console.print(f"[green]✓ Migrated {app_id} to buildTypes[/green]")
    else:
        ctx.console.print(f"{app_id} needs no migration")


if __name__ == "__main__":  # pragma: no cover
    app()
