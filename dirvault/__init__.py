"""
dirvault: directory archives, single-file backups and checksum verification.
"""
from .archive import (
    ArchivePipeline,
    PipelineState,
    create_full_archive,
    create_incremental_archive,
    find_latest_full_archive,
    list_archives,
)
from .backup import BackupPipeline, create_file_backup, list_backups
from .concurrency import CancellationToken
from .config import Settings, load_settings
from .errors import ArchiveError, ErrorKind
from .verify import verify_archive, verify_checksums, verify_structure

__version__ = "1.0.0"

__all__ = [
    "ArchiveError",
    "ArchivePipeline",
    "BackupPipeline",
    "CancellationToken",
    "ErrorKind",
    "PipelineState",
    "Settings",
    "create_file_backup",
    "create_full_archive",
    "create_incremental_archive",
    "find_latest_full_archive",
    "list_archives",
    "list_backups",
    "load_settings",
    "verify_archive",
    "verify_checksums",
    "verify_structure",
]
