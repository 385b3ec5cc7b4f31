"""
Naming engine for archives and single-file backups.

Full archive:         [prefix-]YYYY-MM-DD-hh-mm[=branch=hash][=note].zip
Incremental archive:  base_update=YYYY-MM-DD-hh-mm[=branch=hash][=note].zip
File backup:          filename-YYYY-MM-DD-hh-mm[=note]
"""
import re
from datetime import datetime
from typing import List, Optional, Union

from .models import BackupNameComponents, NameComponents, VcsInfo

TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M"
ARCHIVE_EXTENSION = "zip"
INCREMENTAL_MARKER = "_update="
DIRTY_SUFFIX = "-dirty"

_TS = r"\d{4}-\d{2}-\d{2}-\d{2}-\d{2}"
_TS_RE = re.compile(rf"^{_TS}$")

_FULL_RE = re.compile(
    rf"^(?:(?P<prefix>[^=/]+)-)?(?P<timestamp>{_TS})"
    r"(?P<rest>(?:=[^=/]*)*)\.(?P<extension>[A-Za-z0-9]+)$"
)
_INCREMENTAL_RE = re.compile(
    rf"^(?P<base>[^/]+){re.escape(INCREMENTAL_MARKER)}(?P<timestamp>{_TS})"
    r"(?P<rest>(?:=[^=/]*)*)\.(?P<extension>[A-Za-z0-9]+)$"
)
_BACKUP_RE = re.compile(
    rf"^(?P<source>[^/]+?)-(?P<timestamp>{_TS})(?:=(?P<note>[^/]+))?$"
)

_FORBIDDEN = ("=", "/", "\\", "\0")


def format_timestamp(moment: datetime) -> str:
    """Render a datetime in the minute-resolution naming format."""
    return moment.strftime(TIMESTAMP_FORMAT)

def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a naming timestamp, returning None when it is not valid."""
    if not _TS_RE.fullmatch(value):
        return None
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        return None

def _timestamp_text(timestamp: Union[datetime, str]) -> str:
    if isinstance(timestamp, datetime):
        return format_timestamp(timestamp)
    if parse_timestamp(timestamp) is None:
        raise ValueError(f"Invalid timestamp '{timestamp}', expected YYYY-MM-DD-hh-mm")
    return timestamp

def _check_component(value: Optional[str], field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    for ch in _FORBIDDEN:
        if ch in value:
            raise ValueError(f"{field} may not contain {ch!r}: {value!r}")
    return value

def sanitize_component(value: str) -> str:
    """Make an arbitrary string (e.g. a branch name) safe for use in a name."""
    cleaned = value
    for ch in _FORBIDDEN:
        cleaned = cleaned.replace(ch, "-")
    return cleaned

def _vcs_segment(vcs: Optional[VcsInfo], show_dirty: bool) -> str:
    if vcs is None:
        return ""
    branch = _check_component(vcs.branch, "branch")
    short_hash = _check_component(vcs.short_hash, "hash")
    if not branch or not short_hash:
        return ""
    if short_hash.endswith(DIRTY_SUFFIX):
        raise ValueError(f"hash may not end with {DIRTY_SUFFIX!r}: {short_hash!r}")
    if show_dirty and vcs.is_clean is False:
        short_hash += DIRTY_SUFFIX
    return f"={branch}={short_hash}"

def generate_archive_name(
    prefix: Optional[str],
    timestamp: Union[datetime, str],
    vcs: Optional[VcsInfo] = None,
    note: Optional[str] = None,
    is_incremental: bool = False,
    base_name: Optional[str] = None,
    show_dirty: bool = False,
    extension: str = ARCHIVE_EXTENSION,
) -> str:
    """
    Build an archive file name.

    Incremental names are derived from the base (full) archive name and never
    carry a prefix of their own.
    """
    ts = _timestamp_text(timestamp)
    note = _check_component(note, "note")
    suffix = _vcs_segment(vcs, show_dirty)
    if note:
        suffix += f"={note}"

    if is_incremental:
        if not base_name:
            raise ValueError("Incremental archive names require a base archive name")
        if "/" in base_name or "\\" in base_name:
            raise ValueError(f"base archive name may not contain a path separator: {base_name!r}")
        base = base_name[: -len(extension) - 1] if base_name.endswith(f".{extension}") else base_name
        return f"{base}{INCREMENTAL_MARKER}{ts}{suffix}.{extension}"

    prefix = _check_component(prefix, "prefix")
    head = f"{prefix}-{ts}" if prefix else ts
    return f"{head}{suffix}.{extension}"

def _split_rest(rest: str) -> Optional[List[str]]:
    if not rest:
        return []
    segments = rest.split("=")[1:]
    if any(s == "" for s in segments) or len(segments) > 3:
        return None
    return segments

def parse_name(name: str) -> Optional[NameComponents]:
    """
    Extract components from an archive name.
    Returns None when the name is not a recognized archive name.
    """
    is_incremental = True
    match = _INCREMENTAL_RE.fullmatch(name)
    if match is None:
        is_incremental = False
        match = _FULL_RE.fullmatch(name)
    if match is None:
        return None

    timestamp = parse_timestamp(match.group("timestamp"))
    segments = _split_rest(match.group("rest"))
    if timestamp is None or segments is None:
        return None

    branch: Optional[str] = None
    short_hash: Optional[str] = None
    note: Optional[str] = None
    if len(segments) == 1:
        note = segments[0]
    elif len(segments) >= 2:
        branch, short_hash = segments[0], segments[1]
        if len(segments) == 3:
            note = segments[2]

    dirty = False
    if short_hash and short_hash.endswith(DIRTY_SUFFIX):
        dirty = True
        short_hash = short_hash[: -len(DIRTY_SUFFIX)]
        if not short_hash:
            return None

    extension = match.group("extension")
    return NameComponents(
        prefix=None if is_incremental else match.group("prefix"),
        timestamp=timestamp,
        vcs_branch=branch,
        vcs_hash=short_hash,
        vcs_dirty=dirty,
        note=note,
        is_incremental=is_incremental,
        base_name=f"{match.group('base')}.{extension}" if is_incremental else None,
        extension=extension,
    )

def is_archive_name(name: str) -> bool:
    return parse_name(name) is not None

def generate_backup_name(source_name: str, timestamp: Union[datetime, str], note: Optional[str] = None) -> str:
    """Build a single-file backup name: filename-YYYY-MM-DD-hh-mm[=note]."""
    if not source_name or "/" in source_name or "\\" in source_name:
        raise ValueError(f"Invalid source file name: {source_name!r}")
    name = f"{source_name}-{_timestamp_text(timestamp)}"
    if note:
        if "/" in note or "\\" in note or "\0" in note:
            raise ValueError(f"note may not contain a path separator: {note!r}")
        name += f"={note}"
    return name

def parse_backup_name(name: str) -> Optional[BackupNameComponents]:
    """Inverse of generate_backup_name; None for anything else."""
    match = _BACKUP_RE.fullmatch(name)
    if match is None:
        return None
    timestamp = parse_timestamp(match.group("timestamp"))
    if timestamp is None:
        return None
    return BackupNameComponents(
        source_name=match.group("source"),
        timestamp=timestamp,
        note=match.group("note"),
    )
