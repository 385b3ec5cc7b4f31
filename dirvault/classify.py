"""
Error classifier: maps low-level OS errors onto the dirvault taxonomy.

Status codes are never hard-coded here; the caller hands in its own table
so different front-ends can keep their own exit-code conventions.
"""
import errno
import logging
import zipfile
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ERROR_CLASSES, ArchiveError, ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_STATUS_CODES: Dict[str, int] = {
    ErrorKind.DISK_FULL.value: 30,
    ErrorKind.PERMISSION_DENIED.value: 22,
    ErrorKind.DIRECTORY_NOT_FOUND.value: 20,
    ErrorKind.FILE_NOT_FOUND.value: 20,
    ErrorKind.CORRUPTION.value: 10,
    ErrorKind.NO_BASE_ARCHIVE.value: 1,
    ErrorKind.CANCELLED.value: 130,
    ErrorKind.INVALID_FILE_TYPE.value: 21,
    ErrorKind.INVALID_DIRECTORY_TYPE.value: 21,
    ErrorKind.TARGET_EXISTS.value: 1,
    ErrorKind.GENERIC.value: 1,
    # Outcome codes used outside the error taxonomy
    "created_archive": 0,
    "directory_identical": 0,
    "created_backup": 0,
    "file_identical": 0,
    "failed_create_dir": 31,
    "config_error": 10,
}

DEFAULT_PATTERNS: Dict[ErrorKind, List[str]] = {
    ErrorKind.DISK_FULL: [
        "no space left on device",
        "disk full",
        "not enough space",
        "insufficient disk space",
        "device full",
        "quota exceeded",
        "file too large",
        "storage full",
        "filesystem full",
    ],
    ErrorKind.PERMISSION_DENIED: [
        "permission denied",
        "access denied",
        "access is denied",
        "operation not permitted",
        "insufficient privileges",
        "insufficient permissions",
    ],
    ErrorKind.DIRECTORY_NOT_FOUND: [
        "directory not found",
        "no such directory",
        "cannot find the path",
        "not a directory",
    ],
    ErrorKind.FILE_NOT_FOUND: [
        "no such file or directory",
        "file not found",
        "cannot find file",
        "file does not exist",
    ],
    ErrorKind.CORRUPTION: [
        "bad zip file",
        "not a zip file",
        "bad crc",
        "checksum mismatch",
        "truncated",
    ],
}

# Checked in this order; disk-full wins over the more generic not-found texts.
_KIND_ORDER = [
    ErrorKind.DISK_FULL,
    ErrorKind.PERMISSION_DENIED,
    ErrorKind.CORRUPTION,
    ErrorKind.DIRECTORY_NOT_FOUND,
    ErrorKind.FILE_NOT_FOUND,
]

_ERRNO_KINDS: Dict[int, ErrorKind] = {
    errno.ENOSPC: ErrorKind.DISK_FULL,
    errno.EFBIG: ErrorKind.DISK_FULL,
    errno.EACCES: ErrorKind.PERMISSION_DENIED,
    errno.EPERM: ErrorKind.PERMISSION_DENIED,
    errno.ENOTDIR: ErrorKind.DIRECTORY_NOT_FOUND,
    errno.EISDIR: ErrorKind.INVALID_FILE_TYPE,
}
if hasattr(errno, "EDQUOT"):
    _ERRNO_KINDS[errno.EDQUOT] = ErrorKind.DISK_FULL


class ErrorClassifier:
    """Turns raw exceptions into status-coded ArchiveErrors."""

    def __init__(
        self,
        status_codes: Optional[Mapping[str, int]] = None,
        extra_patterns: Optional[Mapping[ErrorKind, Sequence[str]]] = None,
    ) -> None:
        self._status_codes: Dict[str, int] = dict(DEFAULT_STATUS_CODES)
        if status_codes:
            self._status_codes.update(status_codes)
        self._patterns: Dict[ErrorKind, List[str]] = {
            kind: list(patterns) for kind, patterns in DEFAULT_PATTERNS.items()
        }
        self._extra_order: List[ErrorKind] = []
        for kind, patterns in (extra_patterns or {}).items():
            self.register(kind, *patterns)

    def register(self, kind: ErrorKind, *patterns: str) -> None:
        """Add message patterns for a kind without touching call sites."""
        bucket = self._patterns.setdefault(kind, [])
        bucket.extend(p.lower() for p in patterns)
        if kind not in _KIND_ORDER and kind not in self._extra_order:
            self._extra_order.append(kind)

    def status_code(self, kind: ErrorKind) -> int:
        return self._status_codes.get(kind.value, self._status_codes[ErrorKind.GENERIC.value])

    def outcome_code(self, key: str) -> int:
        """Status code for a named outcome such as 'file_identical'."""
        return self._status_codes.get(key, self._status_codes[ErrorKind.GENERIC.value])

    def directory_error(self, exc: OSError, message: str, operation: str, path: str) -> ArchiveError:
        """Classify a failed mkdir; anything but disk-full or permission gets the failed_create_dir code."""
        error = self.classify(exc, message, operation=operation, path=path, is_dir=True)
        if error.kind not in (ErrorKind.DISK_FULL, ErrorKind.PERMISSION_DENIED):
            error.status_code = self.outcome_code("failed_create_dir")
        return error

    def kind_of(self, exc: BaseException, is_dir: bool = False) -> ErrorKind:
        """Return the taxonomy kind for an exception."""
        if isinstance(exc, ArchiveError):
            return exc.kind
        if isinstance(exc, zipfile.BadZipFile):
            return ErrorKind.CORRUPTION
        if isinstance(exc, OSError) and exc.errno is not None:
            if exc.errno == errno.ENOENT:
                return ErrorKind.DIRECTORY_NOT_FOUND if is_dir else ErrorKind.FILE_NOT_FOUND
            kind = _ERRNO_KINDS.get(exc.errno)
            if kind is not None:
                return kind
        return self._match_text(str(exc), is_dir)

    def _match_text(self, text: str, is_dir: bool) -> ErrorKind:
        lowered = text.lower()
        for kind in self._iter_kinds():
            for pattern in self._patterns.get(kind, []):
                if pattern in lowered:
                    if kind is ErrorKind.FILE_NOT_FOUND and is_dir:
                        return ErrorKind.DIRECTORY_NOT_FOUND
                    return kind
        return ErrorKind.GENERIC

    def _iter_kinds(self) -> Iterable[ErrorKind]:
        yield from _KIND_ORDER
        yield from self._extra_order

    def make(
        self,
        kind: ErrorKind,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> ArchiveError:
        """Build the ArchiveError subclass for a kind with its status code."""
        cls = ERROR_CLASSES.get(kind, ERROR_CLASSES[ErrorKind.GENERIC])
        error = cls(
            message,
            status_code=self.status_code(kind),
            operation=operation,
            path=path,
            cause=cause,
        )
        error.table_coded = True
        return error

    def classify(
        self,
        exc: BaseException,
        message: Optional[str] = None,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        is_dir: bool = False,
    ) -> ArchiveError:
        """Wrap an exception with operation context; ArchiveErrors pass through."""
        if isinstance(exc, ArchiveError):
            # Errors raised below the classifier (cancellation) carry a fallback code
            if not exc.table_coded:
                exc.status_code = self.status_code(exc.kind)
                exc.table_coded = True
            if exc.operation is None:
                exc.operation = operation
            if exc.path is None:
                exc.path = path
            return exc
        kind = self.kind_of(exc, is_dir=is_dir)
        if path is None and isinstance(exc, OSError) and exc.filename:
            path = str(exc.filename)
        logger.debug("Classified %r as %s during %s", exc, kind.value, operation)
        return self.make(
            kind,
            message or _default_message(kind),
            operation=operation,
            path=path,
            cause=exc,
        )

def _default_message(kind: ErrorKind) -> str:
    return {
        ErrorKind.DISK_FULL: "Disk full or quota exceeded",
        ErrorKind.PERMISSION_DENIED: "Permission denied",
        ErrorKind.DIRECTORY_NOT_FOUND: "Directory not found",
        ErrorKind.FILE_NOT_FOUND: "File not found",
        ErrorKind.CORRUPTION: "Archive is corrupted",
        ErrorKind.INVALID_FILE_TYPE: "Path is not a regular file",
    }.get(kind, "Operation failed")
