"""
Single-file backups: identical-content short-circuit, atomic copy, listing.
"""
import logging
import os
import shutil
import stat
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from .classify import ErrorClassifier
from .concurrency import CancellationToken
from .config import BackupSettings, Settings
from .errors import ArchiveError, ErrorKind
from .models import BackupRecord, BackupResult
from .naming import generate_backup_name, parse_backup_name
from .resources import TEMP_SUFFIX, ResourceManager
from .utils import hash_file

logger = logging.getLogger(__name__)


def list_backups(backup_dir: Union[str, Path], source_file: Union[str, Path]) -> List[BackupRecord]:
    """Backups of one source file, most recent first."""
    backup_dir = Path(backup_dir)
    source_name = Path(source_file).name
    if not backup_dir.is_dir():
        return []
    records: List[BackupRecord] = []
    for entry in os.scandir(backup_dir):
        if entry.name.endswith(TEMP_SUFFIX) or not entry.is_file(follow_symlinks=False):
            continue
        parsed = parse_backup_name(entry.name)
        if parsed is None or parsed.source_name != source_name:
            continue
        try:
            mtime = entry.stat().st_mtime
        except OSError as e:
            logger.warning("Skipping %s: %s", entry.name, e)
            continue
        records.append(BackupRecord(
            name=entry.name,
            path=entry.path,
            creation_time=datetime.fromtimestamp(mtime),
            source_file=source_name,
            note=parsed.note,
        ))
    records.sort(key=lambda r: (r.creation_time, r.name), reverse=True)
    return records

def get_most_recent_backup(backup_dir: Union[str, Path], source_file: Union[str, Path]) -> Optional[BackupRecord]:
    backups = list_backups(backup_dir, source_file)
    return backups[0] if backups else None

class BackupPipeline:
    def __init__(
        self,
        settings: Optional[BackupSettings] = None,
        classifier: Optional[ErrorClassifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        cwd: Optional[Union[str, Path]] = None,
    ):
        self.settings = settings or Settings()
        self.classifier = classifier or ErrorClassifier(self.settings.status_codes)
        self.clock = clock
        self.cwd = Path(cwd).absolute() if cwd else Path.cwd()

    def backup_dir_for(self, file_path: Union[str, Path]) -> Path:
        """Where backups of a file live; mirrors its directory when mirror_tree is set."""
        base = Path(self.settings.backup_dir).expanduser()
        if not base.is_absolute():
            base = self.cwd / base
        base = Path(os.path.normpath(base))
        if not self.settings.mirror_tree:
            return base
        parent = Path(file_path).absolute().parent
        try:
            relative = parent.relative_to(self.cwd)
        except ValueError:
            # Outside the working directory: keep the absolute layout minus its anchor
            relative = Path(*parent.parts[1:]) if len(parent.parts) > 1 else Path()
        return base / relative

    def _validate(self, file_path: Path) -> os.stat_result:
        try:
            st = os.stat(file_path)
        except OSError as e:
            raise self.classifier.classify(e, "Cannot access file", operation="validate", path=str(file_path)) from e
        if not stat.S_ISREG(st.st_mode):
            raise self.classifier.make(
                ErrorKind.INVALID_FILE_TYPE,
                "Not a regular file",
                operation="validate",
                path=str(file_path),
            )
        return st

    def _is_identical(self, file_path: Path, size: int, backup: BackupRecord) -> bool:
        if Path(backup.path).stat().st_size != size:
            return False
        algorithm = self.settings.checksum_algorithm
        return hash_file(file_path, algorithm) == hash_file(backup.path, algorithm)

    def create_file_backup(
        self,
        file_path: Union[str, Path],
        note: Optional[str] = None,
        dry_run: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> BackupResult:
        """Back up one file unless its latest backup already has the same content."""
        file_path = Path(file_path).absolute()
        try:
            return self._create(file_path, note, dry_run, cancel)
        except ArchiveError as e:
            self.classifier.classify(e, operation="create_file_backup")
            raise
        except OSError as e:
            raise self.classifier.classify(e, operation="create_file_backup") from e

    def _create(
        self,
        file_path: Path,
        note: Optional[str],
        dry_run: bool,
        cancel: Optional[CancellationToken],
    ) -> BackupResult:
        # 1. Validate and plan
        st = self._validate(file_path)
        backup_dir = self.backup_dir_for(file_path)
        try:
            name = generate_backup_name(file_path.name, self.clock(), note)
        except ValueError as e:
            raise self.classifier.make(ErrorKind.GENERIC, f"Invalid backup name: {e}", operation="plan") from e
        target = backup_dir / name

        # 2. Compare with the most recent backup
        if cancel is not None:
            cancel.raise_if_cancelled("compare")
        latest = get_most_recent_backup(backup_dir, file_path.name)
        if latest is not None and self._is_identical(file_path, st.st_size, latest):
            logger.info("%s is identical to %s", file_path.name, latest.name)
            return BackupResult(planned_path=str(target), dry_run=dry_run, identical_to=latest)
        if cancel is not None:
            cancel.raise_if_cancelled("copy")
        if target.exists():
            raise self.classifier.make(ErrorKind.TARGET_EXISTS, "Backup already exists", operation="plan", path=str(target))

        if dry_run:
            return BackupResult(planned_path=str(target), dry_run=True)

        # 3. Atomic copy
        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self.classifier.directory_error(e, "Failed to create backup directory", "mkdir", str(backup_dir)) from e

        with ResourceManager() as rm:
            try:
                with file_path.open("rb") as src, rm.open_atomic(target) as dst:
                    shutil.copyfileobj(src, dst)
            except OSError as e:
                raise self.classifier.classify(e, "Failed to write backup", operation="copy", path=str(target)) from e
        shutil.copymode(file_path, target)

        record = BackupRecord(
            name=name,
            path=str(target),
            creation_time=datetime.fromtimestamp(target.stat().st_mtime),
            source_file=file_path.name,
            note=note or None,
        )
        logger.info("Created backup %s", target)
        return BackupResult(record=record, planned_path=str(target))

def create_file_backup(
    file_path: Union[str, Path],
    settings: Optional[BackupSettings] = None,
    note: Optional[str] = None,
    dry_run: bool = False,
    cancel: Optional[CancellationToken] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> BackupResult:
    return BackupPipeline(settings, cwd=cwd).create_file_backup(file_path, note=note, dry_run=dry_run, cancel=cancel)
