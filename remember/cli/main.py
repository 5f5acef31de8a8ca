"""
Typer CLI for the remember-sync service.

Commands:
    remember init                  - Create the Remember-DB folders
    remember scan                  - Run one scan pass (skipped if today is done)
    remember scan --force          - Run a pass even if today was reconciled
    remember watch                 - Scan periodically until Ctrl-C (SIGUSR1 forces a pass)
    remember status                - Show metadata and content log counts
    remember due                   - List blocks due for review today
    remember import notes/         - Load markdown files as notes

Usage:
    remember --help
    remember scan --force
    remember watch --interval 120
"""

from __future__ import annotations

import os
import signal
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from remember.core.errors import RememberError, ScanLockedError
from remember.core.logging import setup_logging

app = typer.Typer(
    help="remember: spaced-repetition review sessions built from your notes",
    no_args_is_help=True,
)

console = Console()


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily initializes services so --help never touches the store.
    """

    def __init__(self) -> None:
        self.settings = get_settings()
        self._store = None
        self._scan_service = None

    @property
    def store(self):
        """Lazy load the configured document store."""
        if self._store is None:
            from remember.store import create_store

            self._store = create_store(self.settings)
            if self.settings.store_backend == "joplin" and not self._store.check_connection():
                rprint(f"[red]✗[/red] Cannot reach Joplin at {self.settings.joplin_api_url}")
                raise typer.Exit(code=1)
        return self._store

    @property
    def scan_service(self):
        """Lazy load ScanService."""
        if self._scan_service is None:
            from remember.sync.scan_service import ScanService

            self._scan_service = ScanService(self.store, settings=self.settings)
        return self._scan_service


def _build_context() -> CLIContext:
    return CLIContext()


def _fail(error: Exception) -> None:
    rprint(f"[red]✗[/red] {error}")
    raise typer.Exit(code=1)


def _scan_lock(settings):
    from remember.sync.scan_lock import ScanLock

    return ScanLock(settings.scan_lock_file)


# ========================================
# COMMANDS
# ========================================


@app.command("init")
def init_command() -> None:
    """Create the database, log and review folders if missing."""
    ctx = _build_context()
    try:
        folders = ctx.scan_service.init()
    except RememberError as e:
        _fail(e)

    table = Table(title="Remember Folders", show_header=True)
    table.add_column("Role", style="cyan")
    table.add_column("Title")
    table.add_column("ID", style="dim")
    for role, folder in (("database", folders.database), ("log", folders.log), ("review", folders.review)):
        table.add_row(role, folder.title, folder.id)
    console.print(table)


@app.command("scan")
def scan_command(
    force: bool = typer.Option(False, "--force", help="Scan even if today was already reconciled"),
) -> None:
    """
    Run one scan pass.

    Assigns ids to new blocks, harvests answered review sessions and
    creates today's review session from due blocks. Waits for a pass that
    another process (such as `remember watch`) is running.
    """
    ctx = _build_context()

    rprint("\n[bold cyan]Remember Scan[/bold cyan]")
    rprint(f"  Backend: {ctx.settings.store_backend}")
    rprint(f"  Forced: {force}\n")

    try:
        with _scan_lock(ctx.settings).hold(timeout=ctx.settings.scan_lock_timeout_seconds):
            result = ctx.scan_service.scan(force=force)
    except ScanLockedError as e:
        _fail(e)

    if result.skipped:
        rprint(f"[dim]Already reconciled {result.today}; use --force to rescan[/dim]")
        return
    if result.aborted:
        rprint("[yellow]⚠[/yellow] A review session is being edited; scan postponed")
        return

    table = Table(title="Scan Results", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in result.to_dict().items():
        if key in ("error", "skipped", "aborted"):
            continue
        table.add_row(key.replace("_", " "), "-" if value is None else str(value))
    console.print(table)

    if result.error:
        rprint(f"\n[red]✗[/red] Scan failed: {result.error}")
        raise typer.Exit(code=1)
    rprint("\n[bold green]✓ Scan complete![/bold green]")


@app.command("watch")
def watch_command(
    interval: int | None = typer.Option(None, "--interval", help="Seconds between scans"),
) -> None:
    """
    Scan periodically in the background until interrupted.

    Send SIGUSR1 to the watching process to force a scan right away.
    """
    from remember.sync.background_scan import BackgroundScanner

    ctx = _build_context()

    def report(result) -> None:
        if result.error:
            rprint(f"[red]✗[/red] Scan failed: {result.error}")
        elif result.review_note_id:
            rprint(f"[green]✓[/green] New review session with {result.quizzes} questions")

    scanner = BackgroundScanner(
        service=ctx.scan_service,
        interval_seconds=interval or ctx.settings.scan_interval_seconds,
        on_scan_complete=report,
        process_lock=_scan_lock(ctx.settings),
    )
    trigger = getattr(signal, "SIGUSR1", None)
    if trigger is not None:
        signal.signal(trigger, lambda signum, frame: scanner.request_scan())

    scanner.start()
    rprint(f"[cyan]Watching every {scanner.interval_seconds}s; press Ctrl-C to stop[/cyan]")
    if trigger is not None:
        rprint(f"[dim]kill -USR1 {os.getpid()} forces a scan[/dim]")
    try:
        while not scanner.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        scanner.stop()
    rprint(f"[dim]Stopped after {scanner.status.total_scans} scans[/dim]")


@app.command("status")
def status_command() -> None:
    """Show when notes were last reconciled and what is due."""
    ctx = _build_context()
    try:
        status = ctx.scan_service.status()
    except RememberError as e:
        _fail(e)

    table = Table(title="Remember Status", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in status.items():
        table.add_row(key.replace("_", " "), "-" if value is None else str(value))
    console.print(table)


@app.command("due")
def due_command() -> None:
    """List the blocks due for review today."""
    ctx = _build_context()
    try:
        due = ctx.scan_service.collect_due()
    except RememberError as e:
        _fail(e)

    if not due:
        rprint("[green]Nothing due today[/green]")
        return

    table = Table(title=f"Due Blocks ({len(due)})", show_header=True)
    table.add_column("Note", style="cyan")
    table.add_column("Block", justify="right")
    table.add_column("Preview", style="dim")
    for block in due:
        preview = block.body.strip().split("\n", 1)[0]
        table.add_row(block.source_title, str(block.block_id), preview[:60])
    console.print(table)


@app.command("import")
def import_command(
    path: Path = typer.Argument(..., exists=True, help="Markdown file or directory of .md files"),
    folder: str = typer.Option("Imported", "--folder", help="Folder receiving the notes"),
) -> None:
    """Create one note per markdown file, titled after the file name."""
    ctx = _build_context()
    files = sorted(path.rglob("*.md")) if path.is_dir() else [path]

    try:
        notes = ctx.scan_service.notes
        target = notes.ensure_folder(folder)
        for file in files:
            note = notes.create_note(file.stem, file.read_text(encoding="utf-8"), target.id)
            logger.debug("Imported {} as {}", file, note.id)
    except RememberError as e:
        _fail(e)

    rprint(f"[green]✓[/green] Imported {len(files)} notes into {folder!r}")


def main() -> None:
    """Entry point for the CLI."""
    settings = get_settings()
    setup_logging(level=settings.log_level, log_file=settings.log_file)
    app()


if __name__ == "__main__":
    main()
