"""
Custom exception hierarchy for dirvault.

Every error that leaves a pipeline is an ArchiveError subclass carrying the
status code the caller's exit-code table assigns to its kind.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    DISK_FULL = "disk_full"
    PERMISSION_DENIED = "permission_denied"
    DIRECTORY_NOT_FOUND = "directory_not_found"
    FILE_NOT_FOUND = "file_not_found"
    CORRUPTION = "corruption"
    NO_BASE_ARCHIVE = "no_base_archive"
    CANCELLED = "cancelled"
    INVALID_FILE_TYPE = "invalid_file_type"
    INVALID_DIRECTORY_TYPE = "invalid_directory_type"
    TARGET_EXISTS = "target_exists"
    GENERIC = "generic"

class ArchiveError(Exception):
    """Base exception for all dirvault errors."""
    kind: ErrorKind = ErrorKind.GENERIC

    def __init__(
        self,
        message: str,
        status_code: int = 1,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.operation = operation
        self.path = path
        # Set once a classifier has taken the code from its status table
        self.table_coded = False
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = self.message
        if self.path:
            text = f"{text} ({self.path})"
        if self.__cause__ is not None:
            text = f"{text}: {self.__cause__}"
        return text

class DiskFullError(ArchiveError):
    kind = ErrorKind.DISK_FULL

class PermissionDeniedError(ArchiveError):
    kind = ErrorKind.PERMISSION_DENIED

class DirectoryNotFoundError(ArchiveError):
    kind = ErrorKind.DIRECTORY_NOT_FOUND

class MissingFileError(ArchiveError):
    kind = ErrorKind.FILE_NOT_FOUND

class CorruptionError(ArchiveError):
    """Bad container or checksum mismatch."""
    kind = ErrorKind.CORRUPTION

class NoBaseArchiveError(ArchiveError):
    """Incremental archive requested with no full archive present."""
    kind = ErrorKind.NO_BASE_ARCHIVE

class OperationCancelledError(ArchiveError):
    kind = ErrorKind.CANCELLED

class InvalidFileTypeError(ArchiveError):
    kind = ErrorKind.INVALID_FILE_TYPE

class InvalidDirectoryTypeError(ArchiveError):
    kind = ErrorKind.INVALID_DIRECTORY_TYPE

class TargetExistsError(ArchiveError):
    kind = ErrorKind.TARGET_EXISTS

class GenericArchiveError(ArchiveError):
    kind = ErrorKind.GENERIC

class ConfigError(Exception):
    """Raised when the settings file cannot be read or validated."""

ERROR_CLASSES = {
    cls.kind: cls
    for cls in (
        DiskFullError,
        PermissionDeniedError,
        DirectoryNotFoundError,
        MissingFileError,
        CorruptionError,
        NoBaseArchiveError,
        OperationCancelledError,
        InvalidFileTypeError,
        InvalidDirectoryTypeError,
        TargetExistsError,
        GenericArchiveError,
    )
}
