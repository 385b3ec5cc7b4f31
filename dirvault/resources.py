"""
Resource manager: owns temporary files and directories for one operation and
provides the atomic write primitive (write to temp, fsync, rename).
"""
import logging
import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Generator, List, Optional, Union

from .utils import fsync_directory

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class Resource:
    """A filesystem artifact owned by a ResourceManager until released."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def remove(self) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"

class TempFile(Resource):
    def remove(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

class TempDir(Resource):
    def remove(self) -> None:
        if self.path.exists():
            shutil.rmtree(self.path)

class ResourceManager:
    """
    Registry of temp artifacts for a single top-level operation.

    Use it as a context manager: cleanup runs on every exit path and a
    cleanup failure never replaces the exception already propagating.
    """

    def __init__(self, temp_root: Optional[Union[str, Path]] = None):
        self.temp_root = Path(temp_root) if temp_root else None
        self._lock = threading.Lock()
        self._resources: List[Resource] = []
        self.last_cleanup_error: Optional[Exception] = None

    def __enter__(self) -> "ResourceManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        error = self.cleanup()
        if error is not None:
            self.last_cleanup_error = error
            if exc is not None:
                logger.warning("Cleanup failed while handling %s: %s", exc_type.__name__, error)
            else:
                logger.warning("Cleanup failed: %s", error)
        return False

    @property
    def resources(self) -> List[Resource]:
        with self._lock:
            return list(self._resources)

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def track(self, resource: Resource) -> Resource:
        with self._lock:
            if resource not in self._resources:
                self._resources.append(resource)
        return resource

    def release(self, resource: Resource) -> None:
        """Forget a resource without deleting it (it became a final artifact)."""
        with self._lock:
            if resource in self._resources:
                self._resources.remove(resource)

    def acquire_temp_file(self, prefix: str = "dirvault_") -> TempFile:
        fd, name = tempfile.mkstemp(prefix=prefix, dir=self._temp_dir())
        os.close(fd)
        return self.track(TempFile(name))  # type: ignore[return-value]

    def acquire_temp_dir(self, prefix: str = "dirvault_") -> TempDir:
        name = tempfile.mkdtemp(prefix=prefix, dir=self._temp_dir())
        return self.track(TempDir(name))  # type: ignore[return-value]

    def _temp_dir(self) -> Optional[str]:
        return str(self.temp_root) if self.temp_root else None

    def cleanup(self) -> Optional[Exception]:
        """
        Remove every registered resource, newest first.
        Keeps going past individual failures and returns the last one.
        """
        with self._lock:
            pending = list(reversed(self._resources))
            self._resources.clear()

        last_error: Optional[Exception] = None
        for resource in pending:
            try:
                resource.remove()
                logger.debug("Removed %r", resource)
            except OSError as e:
                logger.warning("Failed to remove %s: %s", resource.path, e)
                last_error = e
        return last_error

    def atomic_write(self, path: Union[str, Path], data: bytes) -> Path:
        """Write bytes to path atomically."""
        with self.open_atomic(path) as handle:
            handle.write(data)
        return Path(path)

    @contextmanager
    def open_atomic(self, path: Union[str, Path]) -> Generator[BinaryIO, None, None]:
        """
        Yield a binary handle on <path>.tmp; on clean exit fsync it and rename
        over path. On failure the temp file stays registered for cleanup.
        """
        final = Path(path)
        temp = self.track(TempFile(str(final) + TEMP_SUFFIX))
        with temp.path.open("wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp.path, final)
        self.release(temp)
        try:
            fsync_directory(final.parent)
        except OSError as e:
            logger.debug("Directory fsync skipped for %s: %s", final.parent, e)
