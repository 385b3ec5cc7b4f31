from pathlib import Path

import pytest

from dirvault.resources import Resource, ResourceManager, TempFile


class StubbornResource(Resource):
    def remove(self) -> None:
        raise PermissionError(13, "Permission denied", str(self.path))

def test_cleanup_removes_everything(tmp_path: Path):
    rm = ResourceManager(temp_root=tmp_path)
    f = rm.acquire_temp_file("t_")
    d = rm.acquire_temp_dir("t_")
    (d.path / "inner.txt").write_text("x")
    assert f.path.exists() and d.path.is_dir()
    assert len(rm) == 2

    assert rm.cleanup() is None
    assert not f.path.exists()
    assert not d.path.exists()
    assert len(rm) == 0

def test_cleanup_twice_is_noop(tmp_path: Path):
    rm = ResourceManager(temp_root=tmp_path)
    rm.acquire_temp_file()
    assert rm.cleanup() is None
    assert rm.cleanup() is None

def test_released_resources_survive_cleanup(tmp_path: Path):
    rm = ResourceManager(temp_root=tmp_path)
    f = rm.acquire_temp_file()
    rm.release(f)
    assert rm.cleanup() is None
    assert f.path.exists()

def test_cleanup_continues_past_failures(tmp_path: Path):
    rm = ResourceManager(temp_root=tmp_path)
    good = rm.acquire_temp_file()
    rm.track(StubbornResource(tmp_path / "stuck"))
    error = rm.cleanup()
    assert isinstance(error, PermissionError)
    assert not good.path.exists()
    assert len(rm) == 0

def test_atomic_write_leaves_no_temp(tmp_path: Path):
    target = tmp_path / "out.json"
    with ResourceManager() as rm:
        rm.atomic_write(target, b"{}")
        assert len(rm) == 0
    assert target.read_bytes() == b"{}"
    assert not (tmp_path / "out.json.tmp").exists()

def test_atomic_write_replaces_existing(tmp_path: Path):
    target = tmp_path / "out.txt"
    target.write_text("old")
    with ResourceManager() as rm:
        rm.atomic_write(target, b"new")
    assert target.read_text() == "new"

def test_failed_atomic_write_keeps_temp_registered(tmp_path: Path):
    target = tmp_path / "out.bin"
    rm = ResourceManager()
    with pytest.raises(RuntimeError):
        with rm.open_atomic(target) as handle:
            handle.write(b"partial")
            raise RuntimeError("boom")
    assert not target.exists()
    assert len(rm) == 1
    assert isinstance(rm.resources[0], TempFile)
    assert rm.cleanup() is None
    assert not (tmp_path / "out.bin.tmp").exists()
    assert len(rm) == 0

def test_context_manager_cleans_up_on_error(tmp_path: Path):
    with pytest.raises(ValueError):
        with ResourceManager(temp_root=tmp_path) as rm:
            f = rm.acquire_temp_file()
            raise ValueError("fail")
    assert not f.path.exists()

def test_cleanup_failure_does_not_mask_original_error(tmp_path: Path):
    rm = ResourceManager()
    with pytest.raises(ValueError, match="original"):
        with rm:
            rm.track(StubbornResource(tmp_path / "stuck"))
            raise ValueError("original")
    assert isinstance(rm.last_cleanup_error, PermissionError)
