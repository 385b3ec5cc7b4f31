from datetime import datetime, timedelta
from pathlib import Path

import pytest

from dirvault.config import Settings


class StepClock:
    """Deterministic clock: each call advances one minute."""
    def __init__(self, start: datetime = datetime(2024, 1, 15, 10, 0)):
        self.current = start - timedelta(minutes=1)

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current

class FakeVcs:
    def __init__(self, branch="main", short_hash="abc1234", clean=True, repo=True):
        self._branch = branch
        self._hash = short_hash
        self._clean = clean
        self._repo = repo

    def is_repository(self, directory):
        return self._repo

    def branch(self, directory):
        return self._branch

    def short_hash(self, directory):
        return self._hash

    def is_clean(self, directory):
        return self._clean

@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    monkeypatch.delenv("DIRVAULT_CONFIG", raising=False)
    return tmp_path / "xdg" / "dirvault"

@pytest.fixture
def clock():
    return StepClock()

@pytest.fixture
def proj(tmp_path: Path) -> Path:
    source = tmp_path / "proj"
    source.mkdir()
    (source / "a.txt").write_text("alpha")
    (source / "b.txt").write_text("bravo")
    (source / "c.log").write_text("noise")
    return source

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        archive_dir=str(tmp_path / "archives"),
        backup_dir=str(tmp_path / "backups"),
        exclusion_patterns=["*.log"],
        include_vcs_info=False,
        mirror_tree=False,
    )

@pytest.fixture
def fake_vcs():
    return FakeVcs
