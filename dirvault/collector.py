"""
File collector: walks a source tree, applies exclusions, and filters by
modification time for incremental archives.
"""
import logging
import os
import stat
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Union

from .checksums import CHECKSUM_ENTRY
from .classify import ErrorClassifier
from .concurrency import CancellationToken, ConcurrentProcessor
from .errors import ErrorKind
from .exclusion import PatternMatcher
from .models import FileEntry

logger = logging.getLogger(__name__)

ReferenceTime = Union[datetime, float]


def _check_root(root: Path, classifier: ErrorClassifier) -> None:
    try:
        st = os.stat(root)
    except OSError as e:
        raise classifier.classify(e, "Cannot read source directory", operation="collect", path=str(root), is_dir=True) from e
    if not stat.S_ISDIR(st.st_mode):
        raise classifier.make(
            ErrorKind.INVALID_DIRECTORY_TYPE,
            "Source is not a directory",
            operation="collect",
            path=str(root),
        )
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise classifier.classify(e, "Cannot read source directory", operation="collect", path=str(root), is_dir=True) from e

def _walk_error(error: OSError) -> None:
    logger.warning("Skipping unreadable directory %s: %s", error.filename, error.strerror or error)

def collect(
    root: Union[str, Path],
    patterns: Optional[Sequence[str]] = None,
    cancel: Optional[CancellationToken] = None,
    classifier: Optional[ErrorClassifier] = None,
) -> Iterator[str]:
    """
    Lazily yield the archive-relative POSIX paths of regular files under root,
    in sorted walk order. Symlinks, devices and directories are never yielded.
    """
    root = Path(root)
    _check_root(root, classifier or ErrorClassifier())
    matcher = PatternMatcher(patterns)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_walk_error):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        # Prune excluded subtrees in place so os.walk never descends into them
        dirnames[:] = sorted(
            d for d in dirnames if not matcher.prunes_directory(f"{rel_dir}/{d}" if rel_dir else d)
        )

        for name in sorted(filenames):
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if rel_path == CHECKSUM_ENTRY:
                continue
            try:
                rel_path.encode("utf-8")
            except UnicodeEncodeError:
                # Undecodable bytes come back as surrogates; ZIP names must be UTF-8
                logger.warning("Skipping %r: file name is not valid UTF-8", rel_path)
                continue
            if matcher.should_exclude(rel_path):
                continue
            try:
                st = os.lstat(os.path.join(dirpath, name))
            except OSError as e:
                logger.warning("Skipping %s: %s", rel_path, e)
                continue
            if not stat.S_ISREG(st.st_mode):
                logger.debug("Skipping non-regular file %s", rel_path)
                continue
            if cancel is not None:
                cancel.raise_if_cancelled("collect")
            yield rel_path

def _as_timestamp(reference_time: ReferenceTime) -> float:
    if isinstance(reference_time, datetime):
        return reference_time.timestamp()
    return float(reference_time)

def _stat_entries(
    root: Path,
    paths: Sequence[str],
    workers: Optional[int],
    cancel: Optional[CancellationToken],
) -> List[FileEntry]:
    def stat_one(rel_path: str) -> FileEntry:
        st = os.lstat(root / rel_path)
        return FileEntry(relative_path=rel_path, size=st.st_size, mtime=st.st_mtime)

    entries: List[FileEntry] = []
    processor = ConcurrentProcessor(stat_one, workers=workers, cancel=cancel)
    for result in processor.process(paths, total=len(paths)):
        if result.error is not None:
            logger.warning("Skipping %s: %s", result.item, result.error)
            continue
        entries.append(result.value)
    if cancel is not None:
        cancel.raise_if_cancelled("collect")
    entries.sort(key=lambda e: e.relative_path)
    return entries

def scan_entries(
    root: Union[str, Path],
    patterns: Optional[Sequence[str]] = None,
    cancel: Optional[CancellationToken] = None,
    workers: Optional[int] = None,
    classifier: Optional[ErrorClassifier] = None,
) -> List[FileEntry]:
    """Collect files with their size and mtime."""
    root = Path(root)
    paths = list(collect(root, patterns, cancel=cancel, classifier=classifier))
    return _stat_entries(root, paths, workers, cancel)

def collect_modified_since(
    root: Union[str, Path],
    patterns: Optional[Sequence[str]],
    reference_time: ReferenceTime,
    cancel: Optional[CancellationToken] = None,
    workers: Optional[int] = None,
    classifier: Optional[ErrorClassifier] = None,
) -> List[str]:
    """Files whose mtime is strictly after reference_time, sorted."""
    reference = _as_timestamp(reference_time)
    entries = scan_entries(root, patterns, cancel=cancel, workers=workers, classifier=classifier)
    modified = [e.relative_path for e in entries if e.mtime > reference]
    logger.debug("%d of %d files modified since %s", len(modified), len(entries), reference)
    return modified
