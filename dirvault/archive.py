"""
Archive pipeline: full and incremental ZIP archives of a source tree.

Planning -> Collecting -> Writing -> (Verifying) -> Done; any failure moves
the pipeline to Failed and surfaces as one classified ArchiveError.
"""
import logging
import os
import shutil
import zipfile
import zlib
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .checksums import HashingReader, checksum_keys, store_checksums, validate_algorithm
from .classify import ErrorClassifier
from .collector import collect, collect_modified_since
from .comparison import directory_matches_archive
from .concurrency import CancellationToken
from .config import ArchiveSettings, Settings
from .errors import ArchiveError, ErrorKind
from .models import Archive, ArchiveResult, VcsInfo
from .naming import ARCHIVE_EXTENSION, generate_archive_name, parse_name
from .resources import TEMP_SUFFIX, ResourceManager
from .utils import CHUNK_SIZE
from .vcs import GitProvider, VcsProvider, get_vcs_info
from .verify import load_verification_status, verify_archive

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    PLANNING = "planning"
    COLLECTING = "collecting"
    WRITING = "writing"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"

def list_archives(archive_dir: Union[str, Path]) -> List[Archive]:
    """Every recognized archive in a directory, sorted by name."""
    archive_dir = Path(archive_dir)
    if not archive_dir.is_dir():
        return []
    archives: List[Archive] = []
    for entry in sorted(os.scandir(archive_dir), key=lambda e: e.name):
        if not entry.is_file(follow_symlinks=False):
            continue
        parsed = parse_name(entry.name)
        if parsed is None or parsed.extension != ARCHIVE_EXTENSION:
            continue
        try:
            mtime = entry.stat().st_mtime
        except OSError as e:
            logger.warning("Skipping %s: %s", entry.name, e)
            continue
        archives.append(Archive(
            name=entry.name,
            path=entry.path,
            creation_time=datetime.fromtimestamp(mtime),
            is_incremental=parsed.is_incremental,
            vcs_branch=parsed.vcs_branch,
            vcs_hash=parsed.vcs_hash,
            note=parsed.note,
            base_archive=parsed.base_name,
            verification_status=load_verification_status(entry.path),
        ))
    return archives

def find_latest_full_archive(archive_dir: Union[str, Path], prefix: Optional[str] = None) -> Optional[Archive]:
    """Most recent full archive by creation time; name breaks ties."""
    candidates = []
    for archive in list_archives(archive_dir):
        if archive.is_incremental:
            continue
        if prefix is not None and parse_name(archive.name).prefix != prefix:
            continue
        candidates.append(archive)
    if not candidates:
        return None
    return max(candidates, key=lambda a: (a.creation_time, a.name))

class ArchivePipeline:
    """One pipeline per source directory; each create_* call is one operation."""

    def __init__(
        self,
        source_dir: Union[str, Path],
        settings: Optional[ArchiveSettings] = None,
        vcs: Optional[VcsProvider] = None,
        classifier: Optional[ErrorClassifier] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.source_dir = Path(source_dir).absolute()
        self.settings = settings or Settings()
        self.vcs = vcs if vcs is not None else (GitProvider() if self.settings.include_vcs_info else None)
        self.classifier = classifier or ErrorClassifier(self.settings.status_codes)
        self.clock = clock
        self.state = PipelineState.PLANNING

    # -- planning ---------------------------------------------------------

    @property
    def archive_dir(self) -> Path:
        base = Path(self.settings.archive_dir).expanduser()
        if not base.is_absolute():
            base = self.source_dir / base
        base = Path(os.path.normpath(base))
        if self.settings.use_current_dir_name:
            base = base / self.source_dir.name
        return base

    @property
    def prefix(self) -> Optional[str]:
        # The directory name is already part of the path when it has its own folder
        if self.settings.use_current_dir_name:
            return None
        return self.source_dir.name

    def _patterns(self) -> List[str]:
        patterns = list(self.settings.exclusion_patterns)
        try:
            inside = self.archive_dir.relative_to(self.source_dir).as_posix()
        except ValueError:
            return patterns
        if inside != ".":
            patterns.append(f"{inside}/")
        return patterns

    def _vcs_info(self) -> Optional[VcsInfo]:
        if not self.settings.include_vcs_info:
            return None
        return get_vcs_info(self.vcs, self.source_dir, check_dirty=self.settings.show_vcs_dirty_status)

    def _plan_name(self, note: Optional[str], base: Optional[Archive] = None) -> str:
        try:
            return generate_archive_name(
                self.prefix,
                self.clock(),
                vcs=self._vcs_info(),
                note=note,
                is_incremental=base is not None,
                base_name=base.name if base is not None else None,
                show_dirty=self.settings.show_vcs_dirty_status,
            )
        except ValueError as e:
            raise self.classifier.make(ErrorKind.GENERIC, f"Invalid archive name: {e}", operation="plan") from e

    def _check_target(self, target: Path) -> None:
        if target.exists() or Path(str(target) + TEMP_SUFFIX).exists():
            raise self.classifier.make(
                ErrorKind.TARGET_EXISTS,
                "Archive already exists",
                operation="plan",
                path=str(target),
            )

    def _matches_archive(self, patterns: Sequence[str], latest: Archive, cancel: Optional[CancellationToken]) -> bool:
        try:
            return directory_matches_archive(
                self.source_dir, patterns, latest.path,
                self.settings.checksum_algorithm, self.settings.worker_count, cancel,
            )
        except (zipfile.BadZipFile, zlib.error, EOFError, ValueError, OSError) as e:
            # An unreadable previous archive never blocks a new one
            logger.warning("Cannot compare against %s, archiving anyway: %s", latest.name, e)
            return False

    # -- operations -------------------------------------------------------

    def create_full(
        self,
        note: Optional[str] = None,
        dry_run: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ArchiveResult:
        """Archive every eligible file in the source tree."""
        return self._guard("create_full", lambda: self._create_full(note, dry_run, cancel))

    def create_incremental(
        self,
        note: Optional[str] = None,
        dry_run: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ArchiveResult:
        """Archive files modified since the latest full archive."""
        return self._guard("create_incremental", lambda: self._create_incremental(note, dry_run, cancel))

    def _guard(self, operation: str, run: Callable[[], ArchiveResult]) -> ArchiveResult:
        self.state = PipelineState.PLANNING
        try:
            result = run()
        except ArchiveError as e:
            self.state = PipelineState.FAILED
            self.classifier.classify(e, operation=operation)
            raise
        except (OSError, zipfile.BadZipFile) as e:
            self.state = PipelineState.FAILED
            raise self.classifier.classify(e, operation=operation) from e
        except BaseException:
            self.state = PipelineState.FAILED
            raise
        self.state = PipelineState.DONE
        return result

    def _create_full(self, note: Optional[str], dry_run: bool, cancel: Optional[CancellationToken]) -> ArchiveResult:
        # 1. Plan
        if cancel is not None:
            cancel.raise_if_cancelled("create_full")
        target_dir = self.archive_dir
        name = self._plan_name(note)
        target = target_dir / name
        self._check_target(target)

        # 2. Collect
        self.state = PipelineState.COLLECTING
        patterns = self._patterns()
        files = list(collect(self.source_dir, patterns, cancel=cancel, classifier=self.classifier))
        logger.info("Collected %d files from %s", len(files), self.source_dir)

        if self.settings.skip_identical:
            latest = find_latest_full_archive(target_dir, self.prefix)
            if latest is not None and self._matches_archive(patterns, latest, cancel):
                logger.info("Source is identical to %s, nothing to do", latest.name)
                return ArchiveResult(
                    planned_name=name,
                    planned_path=str(target),
                    files=files,
                    dry_run=dry_run,
                    identical_to=latest.name,
                    skipped_reason=f"Directory is identical to existing archive {latest.name}",
                )

        if dry_run:
            return ArchiveResult(planned_name=name, planned_path=str(target), files=files, dry_run=True)

        # 3. Write, 4. verify
        archive = self._write_and_verify(target, files, cancel, note=note)
        return ArchiveResult(archive=archive, planned_name=name, planned_path=str(target), files=files)

    def _create_incremental(self, note: Optional[str], dry_run: bool, cancel: Optional[CancellationToken]) -> ArchiveResult:
        if cancel is not None:
            cancel.raise_if_cancelled("create_incremental")
        target_dir = self.archive_dir
        base = find_latest_full_archive(target_dir, self.prefix)
        if base is None:
            raise self.classifier.make(
                ErrorKind.NO_BASE_ARCHIVE,
                "No full archive found for incremental archive",
                operation="create_incremental",
                path=str(target_dir),
            )
        name = self._plan_name(note, base=base)
        target = target_dir / name
        self._check_target(target)

        self.state = PipelineState.COLLECTING
        files = collect_modified_since(
            self.source_dir,
            self._patterns(),
            base.creation_time,
            cancel=cancel,
            workers=self.settings.worker_count,
            classifier=self.classifier,
        )
        logger.info("%d files modified since %s", len(files), base.name)
        if not files:
            return ArchiveResult(
                planned_name=name,
                planned_path=str(target),
                dry_run=dry_run,
                skipped_reason=f"No files modified since {base.name}",
            )
        if dry_run:
            return ArchiveResult(planned_name=name, planned_path=str(target), files=files, dry_run=True)

        archive = self._write_and_verify(target, files, cancel, note=note, base=base)
        return ArchiveResult(archive=archive, planned_name=name, planned_path=str(target), files=files)

    # -- writing ----------------------------------------------------------

    def _write_and_verify(
        self,
        target: Path,
        files: Sequence[str],
        cancel: Optional[CancellationToken],
        note: Optional[str],
        base: Optional[Archive] = None,
    ) -> Archive:
        self.state = PipelineState.WRITING
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise self.classifier.directory_error(e, "Failed to create archive directory", "mkdir", str(target.parent)) from e

        with ResourceManager() as rm:
            self._write_container(rm, target, files, cancel)

        parsed = parse_name(target.name)
        archive = Archive(
            name=target.name,
            path=str(target),
            creation_time=datetime.fromtimestamp(target.stat().st_mtime),
            is_incremental=base is not None,
            vcs_branch=parsed.vcs_branch if parsed else None,
            vcs_hash=parsed.vcs_hash if parsed else None,
            note=note or None,
            base_archive=base.name if base is not None else None,
        )
        logger.info("Created archive %s (%d files)", target.name, len(files))

        if self.settings.verify_on_create:
            self.state = PipelineState.VERIFYING
            status = verify_archive(target, self.settings.checksum_algorithm, workers=self.settings.worker_count)
            archive = archive.model_copy(update={"verification_status": status})
            if not status.is_verified:
                raise self.classifier.make(
                    ErrorKind.CORRUPTION,
                    "Archive failed verification: " + "; ".join(status.errors),
                    operation="verify",
                    path=str(target),
                )
        return archive

    def _write_container(
        self,
        rm: ResourceManager,
        target: Path,
        files: Sequence[str],
        cancel: Optional[CancellationToken],
    ) -> None:
        # Each file is hashed from the same bytes that go into the container
        keys = checksum_keys(files)
        checksums = {}
        try:
            algorithm = validate_algorithm(self.settings.checksum_algorithm)
            with rm.open_atomic(target) as handle:
                with zipfile.ZipFile(handle, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                    for rel_path in files:
                        if cancel is not None:
                            cancel.raise_if_cancelled("write")
                        source = self.source_dir / rel_path
                        info = zipfile.ZipInfo.from_file(source, arcname=rel_path, strict_timestamps=False)
                        info.compress_type = zipfile.ZIP_DEFLATED
                        with source.open("rb") as src, zf.open(info, "w") as dst:
                            reader = HashingReader(src, algorithm)
                            shutil.copyfileobj(reader, dst, CHUNK_SIZE)
                        checksums[keys[rel_path]] = reader.hexdigest()
                    store_checksums(zf, checksums)
        except OSError as e:
            raise self.classifier.classify(e, "Failed to write archive", operation="write", path=str(target)) from e
        except ValueError as e:
            # Includes UnicodeEncodeError for names zipfile cannot store
            raise self.classifier.classify(e, "Cannot store entry in archive", operation="write", path=str(target)) from e

def create_full_archive(
    source_dir: Union[str, Path],
    settings: Optional[ArchiveSettings] = None,
    note: Optional[str] = None,
    dry_run: bool = False,
    cancel: Optional[CancellationToken] = None,
    vcs: Optional[VcsProvider] = None,
) -> ArchiveResult:
    return ArchivePipeline(source_dir, settings, vcs=vcs).create_full(note=note, dry_run=dry_run, cancel=cancel)

def create_incremental_archive(
    source_dir: Union[str, Path],
    settings: Optional[ArchiveSettings] = None,
    note: Optional[str] = None,
    dry_run: bool = False,
    cancel: Optional[CancellationToken] = None,
    vcs: Optional[VcsProvider] = None,
) -> ArchiveResult:
    return ArchivePipeline(source_dir, settings, vcs=vcs).create_incremental(note=note, dry_run=dry_run, cancel=cancel)
