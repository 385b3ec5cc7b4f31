import hashlib
import io
import zipfile
from pathlib import Path

import pytest

from dirvault.checksums import (
    CHECKSUM_ENTRY,
    HashingReader,
    checksum_keys,
    compute_checksums,
    load_checksums,
    store_checksums,
)
from dirvault.collector import collect


def _make_tree(root: Path, files: int, subdirs: int) -> None:
    root.mkdir(parents=True, exist_ok=True)
    dirs = [root] + [root / f"d{i}" for i in range(subdirs)]
    for d in dirs[1:]:
        d.mkdir()
    for i in range(files):
        (dirs[i % len(dirs)] / f"file{i}.bin").write_bytes(bytes([i]) * (i + 1))

@pytest.mark.parametrize("files, subdirs", [(1, 0), (5, 0), (7, 3), (12, 5), (0, 2)])
def test_one_key_per_file_and_none_for_directories(tmp_path: Path, files: int, subdirs: int):
    root = tmp_path / "tree"
    _make_tree(root, files, subdirs)
    paths = list(collect(root, []))
    checksums = compute_checksums(paths, root=root, workers=3)
    assert len(checksums) == files
    assert set(checksums) == {f"file{i}.bin" for i in range(files)}
    assert not any(k.startswith("d") for k in checksums)

def test_digest_matches_hashlib(tmp_path: Path):
    f = tmp_path / "a.txt"
    f.write_bytes(b"hello world")
    checksums = compute_checksums([f])
    assert checksums == {"a.txt": hashlib.sha256(b"hello world").hexdigest()}

def test_alternative_algorithm(tmp_path: Path):
    f = tmp_path / "a.txt"
    f.write_bytes(b"data")
    assert len(compute_checksums([f], "sha512")["a.txt"]) == 128
    assert compute_checksums([f], "MD5")["a.txt"] == hashlib.md5(b"data").hexdigest()

def test_unknown_algorithm(tmp_path: Path):
    with pytest.raises(ValueError):
        compute_checksums([tmp_path / "a.txt"], "crc99")

def test_colliding_base_names_use_relative_paths(tmp_path: Path):
    for d in ("x", "y"):
        (tmp_path / d).mkdir()
        (tmp_path / d / "same.txt").write_text(d)
    (tmp_path / "unique.txt").write_text("u")
    checksums = compute_checksums(["x/same.txt", "y/same.txt", "unique.txt"], root=tmp_path)
    assert set(checksums) == {"x/same.txt", "y/same.txt", "unique.txt"}

def test_checksum_keys():
    assert checksum_keys(["a/b.txt", "c.txt"]) == {"a/b.txt": "b.txt", "c.txt": "c.txt"}

def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        compute_checksums(["ghost.txt"], root=tmp_path)

def test_store_and_load():
    buffer = io.BytesIO()
    checksums = {"b.txt": "22", "a.txt": "11"}
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("a.txt", "a")
        store_checksums(zf, checksums)
    with zipfile.ZipFile(buffer) as zf:
        assert CHECKSUM_ENTRY in zf.namelist()
        assert load_checksums(zf) == checksums

def test_load_without_entry():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("a.txt", "a")
    with zipfile.ZipFile(buffer) as zf:
        with pytest.raises(KeyError):
            load_checksums(zf)

def test_load_rejects_non_mapping():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(CHECKSUM_ENTRY, "[1, 2]")
    with zipfile.ZipFile(buffer) as zf:
        with pytest.raises(ValueError):
            load_checksums(zf)

def test_hashing_reader_digests_streamed_bytes():
    payload = b"x" * 200_000
    reader = HashingReader(io.BytesIO(payload), "sha512")
    sink = io.BytesIO()
    for chunk in iter(lambda: reader.read(4096), b""):
        sink.write(chunk)
    assert sink.getvalue() == payload
    assert reader.hexdigest() == hashlib.sha512(payload).hexdigest()
