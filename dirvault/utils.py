"""
Core utilities for dirvault.
"""
import hashlib
import os
import sys
from pathlib import Path
from typing import Callable, Dict

CHUNK_SIZE = 65536

HASH_ALGORITHMS: Dict[str, Callable[[], "hashlib._Hash"]] = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
    "sha1": hashlib.sha1,
    "md5": hashlib.md5,
    "blake2b": hashlib.blake2b,
}


def is_windows() -> bool:
    """Return True if running on Windows."""
    return sys.platform == "win32"

def get_hasher(algorithm: str) -> "hashlib._Hash":
    """Return a fresh hash object for a registered algorithm name."""
    factory = HASH_ALGORITHMS.get(algorithm.lower())
    if factory is None:
        supported = ", ".join(sorted(HASH_ALGORITHMS))
        raise ValueError(f"Unsupported checksum algorithm '{algorithm}' (supported: {supported})")
    return factory()

def hash_file(path: str | Path, algorithm: str = "sha256") -> str:
    """Stream a file and return its hex digest."""
    hasher = get_hasher(algorithm)
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()

def validate_path(path: str | Path, base_dir: str | Path) -> Path:
    """
    Resolve a path and ensure it falls strictly under the base_dir to prevent directory traversal.
    """
    resolved_path = Path(path).resolve()
    resolved_base = Path(base_dir).resolve()
    if resolved_path != resolved_base and resolved_base not in resolved_path.parents:
        raise ValueError(f"Path '{path}' escapes base directory '{base_dir}'.")
    return resolved_path

def fsync_directory(path: str | Path) -> None:
    """Flush a directory entry after a rename (no-op where unsupported)."""
    if is_windows():
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)

def human_size(nbytes: int) -> str:
    """Convert bytes to a human-readable string (e.g. 1.2 MiB)."""
    if nbytes == 0:
        return "0 B"
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]
    size = float(nbytes)
    i = 0
    while size >= 1024 and i < len(suffixes) - 1:
        size /= 1024.0
        i += 1
    if i == 0:
        return f"{int(size)} {suffixes[i]}"
    return f"{size:.1f} {suffixes[i]}"
