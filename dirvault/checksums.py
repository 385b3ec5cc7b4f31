"""
Checksum maps: computed in parallel, stored as a JSON side entry inside the
archive container.
"""
import json
import logging
import zipfile
from collections import Counter
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Dict, Iterable, List, Optional, Union

from .concurrency import CancellationToken, ConcurrentProcessor
from .utils import get_hasher, hash_file

logger = logging.getLogger(__name__)

CHECKSUM_ENTRY = ".checksums"
DEFAULT_ALGORITHM = "sha256"

ChecksumMap = Dict[str, str]


def validate_algorithm(algorithm: str) -> str:
    """Normalize an algorithm name, raising ValueError if it is unknown."""
    get_hasher(algorithm)
    return algorithm.lower()

def _relative_key(path: Path, root: Optional[Path]) -> str:
    if root is not None:
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            pass
    return path.as_posix()

class HashingReader:
    """Read-only file wrapper that digests every chunk handed out."""

    def __init__(self, raw: BinaryIO, algorithm: str = DEFAULT_ALGORITHM):
        self._raw = raw
        self._hasher = get_hasher(algorithm)

    def read(self, size: int = -1) -> bytes:
        data = self._raw.read(size)
        self._hasher.update(data)
        return data

    def hexdigest(self) -> str:
        return self._hasher.hexdigest()

def checksum_keys(relative_paths: Iterable[str]) -> Dict[str, str]:
    """
    Map each archive-relative path to its checksum key.

    Keys are base filenames; files whose base name appears more than once
    are keyed by their full relative path instead.
    """
    paths = list(relative_paths)
    counts = Counter(PurePosixPath(p).name for p in paths)
    return {p: (PurePosixPath(p).name if counts[PurePosixPath(p).name] == 1 else p) for p in paths}

def compute_checksums(
    file_paths: Iterable[Union[str, Path]],
    algorithm: str = DEFAULT_ALGORITHM,
    *,
    root: Optional[Union[str, Path]] = None,
    workers: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
) -> ChecksumMap:
    """
    Hash every file in parallel. Relative paths are resolved against root.
    The first read failure is raised after the pool has drained.
    """
    algorithm = validate_algorithm(algorithm)
    root_path = Path(root) if root is not None else None
    paths: List[Path] = []
    for p in file_paths:
        p = Path(p)
        if root_path is not None and not p.is_absolute():
            p = root_path / p
        paths.append(p)

    keys = checksum_keys(_relative_key(p, root_path) for p in paths)

    def digest(path: Path) -> str:
        return hash_file(path, algorithm)

    checksums: ChecksumMap = {}
    first_error: Optional[BaseException] = None
    processor = ConcurrentProcessor(digest, workers=workers, cancel=cancel)
    for result in processor.process(paths, total=len(paths)):
        if result.error is not None:
            if first_error is None:
                first_error = result.error
            continue
        checksums[keys[_relative_key(result.item, root_path)]] = result.value

    if cancel is not None:
        cancel.raise_if_cancelled("compute_checksums")
    if first_error is not None:
        raise first_error
    logger.debug("Computed %d %s checksums", len(checksums), algorithm)
    return checksums

def store_checksums(zf: zipfile.ZipFile, checksums: ChecksumMap) -> None:
    """Write the checksum map as the reserved JSON entry."""
    payload = json.dumps(dict(sorted(checksums.items())), indent=2).encode("utf-8")
    zf.writestr(CHECKSUM_ENTRY, payload, compress_type=zipfile.ZIP_DEFLATED)

def load_checksums(zf: zipfile.ZipFile) -> ChecksumMap:
    """
    Read the checksum map back. Raises KeyError if the archive carries none
    and ValueError if the entry is not a JSON object of strings.
    """
    data = json.loads(zf.read(CHECKSUM_ENTRY).decode("utf-8"))
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise ValueError("Checksum entry is not a mapping of names to digests")
    return data

def has_checksums(zf: zipfile.ZipFile) -> bool:
    return CHECKSUM_ENTRY in zf.namelist()
