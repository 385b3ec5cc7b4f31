from datetime import datetime

import pytest
from hypothesis import given, settings, strategies as st

from dirvault.models import VcsInfo
from dirvault.naming import (
    generate_archive_name,
    generate_backup_name,
    is_archive_name,
    parse_backup_name,
    parse_name,
)

TS = datetime(2024, 1, 15, 10, 30)

component = st.text(alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789._-", min_size=1, max_size=20)
short_hash = st.text(alphabet="0123456789abcdef", min_size=4, max_size=12)
minutes = st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2099, 12, 31)).map(
    lambda d: d.replace(second=0, microsecond=0)
)

def test_full_name_formats():
    assert generate_archive_name(None, TS) == "2024-01-15-10-30.zip"
    assert generate_archive_name("proj", TS) == "proj-2024-01-15-10-30.zip"
    assert generate_archive_name("proj", TS, note="release") == "proj-2024-01-15-10-30=release.zip"
    vcs = VcsInfo(branch="main", short_hash="abc1234")
    assert generate_archive_name("proj", TS, vcs=vcs, note="wip") == "proj-2024-01-15-10-30=main=abc1234=wip.zip"

def test_incremental_name_format():
    name = generate_archive_name(None, TS, is_incremental=True, base_name="proj-2024-01-15-10-00.zip")
    assert name == "proj-2024-01-15-10-00_update=2024-01-15-10-30.zip"

def test_vcs_segment_needs_branch_and_hash():
    assert generate_archive_name(None, TS, vcs=VcsInfo(branch="main", short_hash="")) == "2024-01-15-10-30.zip"

def test_dirty_suffix_only_when_requested():
    vcs = VcsInfo(branch="main", short_hash="abc1234", is_clean=False)
    assert "=abc1234.zip" in generate_archive_name(None, TS, vcs=vcs)
    dirty = generate_archive_name(None, TS, vcs=vcs, show_dirty=True)
    assert dirty.endswith("=main=abc1234-dirty.zip")
    parsed = parse_name(dirty)
    assert parsed.vcs_hash == "abc1234"
    assert parsed.vcs_dirty is True

@pytest.mark.parametrize("note", ["a=b", "a/b", "a\\b"])
def test_invalid_note_rejected(note):
    with pytest.raises(ValueError):
        generate_archive_name(None, TS, note=note)

def test_incremental_requires_base():
    with pytest.raises(ValueError):
        generate_archive_name(None, TS, is_incremental=True)

@pytest.mark.parametrize("name", [
    "",
    "notes.txt",
    "proj.zip",
    "2024-13-45-99-99.zip",
    "2024-01-15-10-30",
    "2024-01-15-10-30==x.zip",
    "2024-01-15-10-30=a=b=c=d.zip",
    "dir/2024-01-15-10-30.zip",
    "2024-01-15-10-30.zip\n",
])
def test_unrecognized_names_return_none(name):
    assert parse_name(name) is None
    assert not is_archive_name(name)

@settings(max_examples=200, deadline=None)
@given(
    prefix=st.one_of(st.none(), component),
    timestamp=minutes,
    vcs=st.one_of(st.none(), st.builds(VcsInfo, branch=component, short_hash=short_hash)),
    note=st.one_of(st.none(), component),
)
def test_full_name_roundtrip(prefix, timestamp, vcs, note):
    name = generate_archive_name(prefix, timestamp, vcs=vcs, note=note)
    parsed = parse_name(name)
    assert parsed is not None
    assert parsed.prefix == prefix
    assert parsed.timestamp == timestamp
    assert parsed.note == note
    assert parsed.vcs_branch == (vcs.branch if vcs else None)
    assert parsed.vcs_hash == (vcs.short_hash if vcs else None)
    assert parsed.is_incremental is False

@settings(max_examples=200, deadline=None)
@given(
    prefix=st.one_of(st.none(), component),
    base_ts=minutes,
    timestamp=minutes,
    vcs=st.one_of(st.none(), st.builds(VcsInfo, branch=component, short_hash=short_hash)),
    note=st.one_of(st.none(), component),
)
def test_incremental_name_roundtrip(prefix, base_ts, timestamp, vcs, note):
    base = generate_archive_name(prefix, base_ts)
    name = generate_archive_name(None, timestamp, vcs=vcs, note=note, is_incremental=True, base_name=base)
    parsed = parse_name(name)
    assert parsed is not None
    assert parsed.is_incremental is True
    assert parsed.base_name == base
    assert parsed.timestamp == timestamp
    assert parsed.note == note
    assert parsed.vcs_hash == (vcs.short_hash if vcs else None)

def test_backup_name_roundtrip():
    name = generate_backup_name("notes.txt", TS, note="draft")
    assert name == "notes.txt-2024-01-15-10-30=draft"
    parsed = parse_backup_name(name)
    assert parsed.source_name == "notes.txt"
    assert parsed.timestamp == TS
    assert parsed.note == "draft"

def test_backup_name_without_note():
    parsed = parse_backup_name(generate_backup_name("my-file-2.txt", TS))
    assert parsed.source_name == "my-file-2.txt"
    assert parsed.note is None

def test_backup_name_rejects_separators():
    with pytest.raises(ValueError):
        generate_backup_name("dir/notes.txt", TS)
    assert parse_backup_name("notes.txt") is None
