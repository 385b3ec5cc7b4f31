"""
Pydantic v2 data models for dirvault.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)

class VerificationStatus(FrozenModel):
    verified_at: datetime
    is_verified: bool
    has_checksums: bool = False
    errors: List[str] = Field(default_factory=list)

class Archive(FrozenModel):
    name: str
    path: str
    creation_time: datetime
    is_incremental: bool = False
    vcs_branch: Optional[str] = None
    vcs_hash: Optional[str] = None
    note: Optional[str] = None
    base_archive: Optional[str] = None  # Name of the full archive an incremental depends on
    verification_status: Optional[VerificationStatus] = None

class BackupRecord(FrozenModel):
    name: str
    path: str
    creation_time: datetime
    source_file: str
    note: Optional[str] = None

class VcsInfo(FrozenModel):
    branch: str
    short_hash: str
    is_clean: Optional[bool] = None

class NameComponents(FrozenModel):
    prefix: Optional[str] = None
    timestamp: datetime
    vcs_branch: Optional[str] = None
    vcs_hash: Optional[str] = None
    vcs_dirty: bool = False
    note: Optional[str] = None
    is_incremental: bool = False
    base_name: Optional[str] = None  # Full archive file name, extension included
    extension: str = "zip"

class BackupNameComponents(FrozenModel):
    source_name: str
    timestamp: datetime
    note: Optional[str] = None

class FileEntry(FrozenModel):
    relative_path: str
    size: int
    mtime: float

class ArchiveResult(FrozenModel):
    archive: Optional[Archive] = None
    planned_name: str
    planned_path: str
    files: List[str] = Field(default_factory=list)
    dry_run: bool = False
    identical_to: Optional[str] = None
    skipped_reason: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.archive is not None

class BackupResult(FrozenModel):
    record: Optional[BackupRecord] = None
    planned_path: str
    dry_run: bool = False
    identical_to: Optional[BackupRecord] = None

    @property
    def created(self) -> bool:
        return self.record is not None

class FileFingerprint(FrozenModel):
    relative_path: str
    size: int
    digest: Optional[str] = None

class TreeDiff(FrozenModel):
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    unchanged: List[str] = Field(default_factory=list)

    @property
    def identical(self) -> bool:
        return not (self.added or self.modified or self.deleted)
