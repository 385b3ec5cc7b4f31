"""
Directory comparison: diff a source tree against the contents of an archive.
"""
import logging
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .checksums import CHECKSUM_ENTRY, DEFAULT_ALGORITHM
from .classify import ErrorClassifier
from .concurrency import CancellationToken, run_parallel
from .collector import scan_entries
from .models import FileFingerprint, TreeDiff
from .utils import CHUNK_SIZE, get_hasher, hash_file

logger = logging.getLogger(__name__)


def archive_fingerprints(archive_path: Union[str, Path]) -> Dict[str, FileFingerprint]:
    """Sizes of every file entry in the archive, digests left unset."""
    with zipfile.ZipFile(archive_path) as zf:
        return {
            info.filename: FileFingerprint(relative_path=info.filename, size=info.file_size)
            for info in zf.infolist()
            if not info.is_dir() and info.filename != CHECKSUM_ENTRY
        }

def _hash_members(archive_path: Union[str, Path], names: Sequence[str], algorithm: str) -> Dict[str, str]:
    digests: Dict[str, str] = {}
    with zipfile.ZipFile(archive_path) as zf:
        for name in names:
            hasher = get_hasher(algorithm)
            with zf.open(name) as member:
                for chunk in iter(lambda: member.read(CHUNK_SIZE), b""):
                    hasher.update(chunk)
            digests[name] = hasher.hexdigest()
    return digests

def compute_delta(current: Dict[str, FileFingerprint], previous: Dict[str, FileFingerprint]) -> TreeDiff:
    """
    Compare fingerprints keyed by relative path. Entries with matching sizes
    must carry digests on both sides to count as unchanged.
    """
    added: List[str] = []
    modified: List[str] = []
    unchanged: List[str] = []
    for path in sorted(current):
        fp = current[path]
        old = previous.get(path)
        if old is None:
            added.append(path)
        elif old.size != fp.size or old.digest is None or old.digest != fp.digest:
            modified.append(path)
        else:
            unchanged.append(path)
    deleted = sorted(p for p in previous if p not in current)
    return TreeDiff(added=added, modified=modified, deleted=deleted, unchanged=unchanged)

def compare_with_archive(
    root: Union[str, Path],
    patterns: Optional[Sequence[str]],
    archive_path: Union[str, Path],
    algorithm: str = DEFAULT_ALGORITHM,
    workers: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    classifier: Optional[ErrorClassifier] = None,
) -> TreeDiff:
    """Diff the eligible files under root against an existing archive."""
    root = Path(root)
    entries = scan_entries(root, patterns, cancel=cancel, workers=workers, classifier=classifier)
    archived = archive_fingerprints(archive_path)

    # Only same-size files need their content hashed
    candidates = [
        e.relative_path for e in entries
        if e.relative_path in archived and archived[e.relative_path].size == e.size
    ]
    local: Dict[str, str] = {}
    for result in run_parallel(candidates, lambda p: hash_file(root / p, algorithm), workers=workers, cancel=cancel):
        if result.error is not None:
            logger.warning("Could not hash %s for comparison: %s", result.item, result.error)
            continue
        local[result.item] = result.value
    if cancel is not None:
        cancel.raise_if_cancelled("compare")
    remote = _hash_members(archive_path, candidates, algorithm)

    current = {
        e.relative_path: FileFingerprint(relative_path=e.relative_path, size=e.size, digest=local.get(e.relative_path))
        for e in entries
    }
    previous = {
        name: fp.model_copy(update={"digest": remote.get(name)}) for name, fp in archived.items()
    }
    return compute_delta(current, previous)

def directory_matches_archive(
    root: Union[str, Path],
    patterns: Optional[Sequence[str]],
    archive_path: Union[str, Path],
    algorithm: str = DEFAULT_ALGORITHM,
    workers: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
) -> bool:
    return compare_with_archive(root, patterns, archive_path, algorithm, workers, cancel).identical
