"""
Command Line Interface entry point using Typer.
"""
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import typer

from . import __version__
from .archive import ArchivePipeline, list_archives
from .audit import AuditLogger, get_audit_log
from .backup import BackupPipeline, list_backups
from .classify import ErrorClassifier
from .concurrency import CancellationToken
from .config import Settings, load_settings
from .errors import ArchiveError, ConfigError
from .models import Archive, ArchiveResult
from .ui import (
    console,
    icon,
    render_banner,
    render_error,
    render_file_list,
    render_progress,
    render_status,
    render_summary,
    render_table,
    render_warning,
    setup_logging,
)
from .utils import human_size
from .verify import verify_archive

app = typer.Typer(
    help=(
        "[bold cyan]DIRVAULT[/]\n\n"
        "Point-in-time ZIP archives of a directory, single-file backups,\n"
        "and checksum verification."
    ),
    no_args_is_help=True,
    rich_markup_mode="rich"
)

_state: Dict[str, Any] = {"config": None}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings file (JSON)", envvar="DIRVAULT_CONFIG"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    setup_logging(verbose)
    _state["config"] = config

def _settings() -> Settings:
    try:
        return load_settings(_state["config"])
    except ConfigError as e:
        render_error(str(e), ErrorClassifier().outcome_code("config_error"))
        raise typer.Exit(ErrorClassifier().outcome_code("config_error"))

@contextmanager
def _cancel_on_interrupt() -> Generator[CancellationToken, None, None]:
    """First Ctrl-C asks the running operation to stop at the next file boundary."""
    token = CancellationToken()
    previous = signal.getsignal(signal.SIGINT)

    def handler(signum: Any, frame: Any) -> None:
        token.cancel()

    try:
        signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not on the main thread; no interrupt handling
        yield token
        return
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)

def _fail(audit: AuditLogger, operation: str, error: ArchiveError) -> None:
    audit.log(
        "operation_failed",
        operation=operation,
        kind=error.kind.value,
        status_code=error.status_code,
        path=error.path,
        message=str(error),
    )
    render_error(str(error), error.status_code)
    raise typer.Exit(error.status_code)

def _report_archive(result: ArchiveResult, audit: AuditLogger, classifier: ErrorClassifier, kind: str) -> None:
    if result.dry_run and result.identical_to is None and result.skipped_reason is None:
        render_status("dry_run", f"Dry run: would create {result.planned_path}", "cyan")
        render_file_list("Files to include", result.files)
        return
    if result.identical_to is not None:
        render_status("identical", result.skipped_reason or f"Identical to {result.identical_to}", "yellow")
        code = classifier.outcome_code("directory_identical")
        if code:
            raise typer.Exit(code)
        return
    if result.archive is None:
        render_warning(result.skipped_reason or "No archive created")
        return

    archive = result.archive
    audit.log(
        "archive_created",
        name=archive.name,
        path=archive.path,
        incremental=archive.is_incremental,
        base=archive.base_archive,
        files=len(result.files),
    )
    stats = {
        "Archive": archive.name,
        "Location": str(Path(archive.path).parent),
        "Files": str(len(result.files)),
        "Size": human_size(Path(archive.path).stat().st_size),
    }
    if archive.base_archive:
        stats["Base"] = archive.base_archive
    if archive.verification_status is not None:
        stats["Verified"] = "yes" if archive.verification_status.is_verified else "no"
    render_summary(f"{icon('success')} {kind} archive created", stats)
    code = classifier.outcome_code("created_archive")
    if code:
        raise typer.Exit(code)

def _run_archive(incremental: bool, note: Optional[str], dry_run: bool, verify: bool, source: Path) -> None:
    settings = _settings()
    if verify:
        settings = settings.model_copy(update={"verify_on_create": True})
    pipeline = ArchivePipeline(source, settings)
    audit = AuditLogger()
    operation = "create_incremental" if incremental else "create_full"
    with _cancel_on_interrupt() as token:
        try:
            with render_progress("Creating incremental archive..." if incremental else "Creating full archive..."):
                if incremental:
                    result = pipeline.create_incremental(note=note, dry_run=dry_run, cancel=token)
                else:
                    result = pipeline.create_full(note=note, dry_run=dry_run, cancel=token)
        except ArchiveError as e:
            _fail(audit, operation, e)
    _report_archive(result, audit, pipeline.classifier, "Incremental" if incremental else "Full")

@app.command(name="full")
def full_cmd(
    note: Optional[str] = typer.Argument(None, help="Optional note appended to the archive name"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would be archived"),
    verify: bool = typer.Option(False, "--verify", help="Verify the archive after creating it"),
    source: Path = typer.Option(Path("."), "--source", "-s", help="Directory to archive"),
):
    """Create a full archive of the source directory."""
    _run_archive(False, note, dry_run, verify, source)

@app.command(name="inc")
def inc_cmd(
    note: Optional[str] = typer.Argument(None, help="Optional note appended to the archive name"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would be archived"),
    verify: bool = typer.Option(False, "--verify", help="Verify the archive after creating it"),
    source: Path = typer.Option(Path("."), "--source", "-s", help="Directory to archive"),
):
    """Create an incremental archive of files changed since the last full archive."""
    _run_archive(True, note, dry_run, verify, source)

def _archive_rows(archives: List[Archive]) -> List[List[str]]:
    rows = []
    for a in archives:
        if a.verification_status is None:
            status = "[dim]-[/]"
        elif a.verification_status.is_verified:
            status = "[bold green]VERIFIED[/]"
        else:
            status = "[bold red]FAILED[/]"
        rows.append([
            a.name,
            "incremental" if a.is_incremental else "full",
            a.creation_time.strftime("%Y-%m-%d %H:%M:%S"),
            human_size(Path(a.path).stat().st_size) if Path(a.path).exists() else "?",
            status,
        ])
    return rows

@app.command(name="list")
def list_cmd(source: Path = typer.Option(Path("."), "--source", "-s", help="Source directory")):
    """List archives of the source directory."""
    pipeline = ArchivePipeline(source, _settings())
    archives = list_archives(pipeline.archive_dir)
    if not archives:
        render_status("info", f"No archives found in {pipeline.archive_dir}")
        return
    render_table(f"Archives in {pipeline.archive_dir}", ["Name", "Type", "Created", "Size", "Status"], _archive_rows(archives))

@app.command(name="verify")
def verify_cmd(
    archive: Optional[str] = typer.Argument(None, help="Archive name or path (default: all)"),
    source: Path = typer.Option(Path("."), "--source", "-s", help="Source directory"),
):
    """Verify archive structure and checksums."""
    settings = _settings()
    pipeline = ArchivePipeline(source, settings)
    audit = AuditLogger()

    if archive is None:
        targets = [Path(a.path) for a in list_archives(pipeline.archive_dir)]
    else:
        candidate = Path(archive)
        targets = [candidate if candidate.exists() else pipeline.archive_dir / archive]
    if not targets:
        render_status("info", f"No archives found in {pipeline.archive_dir}")
        return

    failed = 0
    rows = []
    for target in targets:
        if not target.is_file():
            render_error(f"Archive not found: {target}")
            raise typer.Exit(ErrorClassifier(settings.status_codes).outcome_code("file_not_found"))
        status = verify_archive(target, settings.checksum_algorithm, workers=settings.worker_count)
        audit.log("verification", archive=target.name, verified=status.is_verified, errors=status.errors)
        if not status.is_verified:
            failed += 1
        rows.append([
            target.name,
            "[bold green]PASS[/]" if status.is_verified else "[bold red]FAIL[/]",
            "\n".join(status.errors) or "-",
        ])
    render_table("Verification", ["Archive", "Status", "Errors"], rows)
    if failed:
        raise typer.Exit(ErrorClassifier(settings.status_codes).outcome_code("corruption"))

@app.command(name="backup")
def backup_cmd(
    file: Path = typer.Argument(..., help="File to back up"),
    note: Optional[str] = typer.Argument(None, help="Optional note appended to the backup name"),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would be backed up"),
):
    """Back up a single file."""
    pipeline = BackupPipeline(_settings())
    audit = AuditLogger()
    with _cancel_on_interrupt() as token:
        try:
            result = pipeline.create_file_backup(file, note=note, dry_run=dry_run, cancel=token)
        except ArchiveError as e:
            _fail(audit, "create_file_backup", e)

    if result.identical_to is not None:
        render_status("identical", f"File is identical to existing backup {result.identical_to.path}", "yellow")
        code = pipeline.classifier.outcome_code("file_identical")
    elif result.dry_run:
        render_status("dry_run", f"Dry run: would create {result.planned_path}", "cyan")
        code = 0
    else:
        audit.log("backup_created", source=str(file), path=result.record.path)
        render_status("backup", f"Backup created: {result.record.path}", "green")
        code = pipeline.classifier.outcome_code("created_backup")
    if code:
        raise typer.Exit(code)

@app.command(name="backups")
def backups_cmd(file: Path = typer.Argument(..., help="File whose backups to list")):
    """List backups of a file, most recent first."""
    pipeline = BackupPipeline(_settings())
    backup_dir = pipeline.backup_dir_for(file)
    records = list_backups(backup_dir, file)
    if not records:
        render_status("info", f"No backups found for {file.name} in {backup_dir}")
        return
    rows = [
        [r.name, r.creation_time.strftime("%Y-%m-%d %H:%M:%S"), r.note or "-"]
        for r in records
    ]
    render_table(f"Backups of {file.name}", ["Name", "Created", "Note"], rows)

@app.command(name="audit")
def show_audit(last_n: int = typer.Option(50, "--last", "-n", help="Number of recent events to show")):
    """Show recent audit logs."""
    events = get_audit_log(last_n)
    if not events:
        render_status("info", "No audit events found.")
        return

    rows = []
    for e in events:
        rows.append([e.get("timestamp", "?"), e.get("event", "?"), str(e.get("details", {}))])

    render_table("Audit Log", ["Timestamp", "Event", "Details"], rows)

@app.command(name="version")
def version_cmd():
    """Display dirvault version information."""
    render_banner(f"v{__version__}")
    console.print(f"dirvault {__version__} (Python {sys.version_info.major}.{sys.version_info.minor})")

if __name__ == "__main__":
    app()
