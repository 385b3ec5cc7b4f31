import json
import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

from dirvault.config import CONFIG_FILE, Settings, get_config_dir, get_config_path, load_settings, save_settings
from dirvault.errors import ConfigError


def test_defaults():
    s = Settings()
    assert s.archive_dir == "../.bkpdir"
    assert s.backup_dir == "../.bkpdir"
    assert s.exclusion_patterns == [".git/", "vendor/"]
    assert s.checksum_algorithm == "sha256"
    assert s.use_current_dir_name is True
    assert s.verify_on_create is False
    assert s.status_codes["disk_full"] == 30
    assert s.status_codes["directory_identical"] == 0

def test_missing_file_gives_defaults(tmp_path: Path):
    assert load_settings(tmp_path / "absent.json") == Settings()

def test_partial_file_overlays_defaults(tmp_path: Path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({
        "archive_dir": "/srv/archives",
        "checksum_algorithm": "SHA512",
        "status_codes": {"disk_full": 99},
    }))
    s = load_settings(path)
    assert s.archive_dir == "/srv/archives"
    assert s.checksum_algorithm == "sha512"
    assert s.status_codes["disk_full"] == 99
    assert s.status_codes["permission_denied"] == 22
    assert s.exclusion_patterns == [".git/", "vendor/"]

@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps({"checksum_algorithm": "crc32"}),
    json.dumps({"status_codes": {"disk_full": 300}}),
    json.dumps({"worker_count": 0}),
    json.dumps(["a", "list"]),
])
def test_invalid_file_raises_config_error(tmp_path: Path, content: str):
    path = tmp_path / "cfg.json"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_settings(path)

def test_settings_are_frozen():
    with pytest.raises(ValidationError):
        Settings().archive_dir = "elsewhere"

def test_save_and_reload(tmp_path: Path):
    s = Settings(verify_on_create=True, exclusion_patterns=["*.tmp"], worker_count=2)
    path = save_settings(s, tmp_path / "nested" / "cfg.json")
    assert load_settings(path) == s

@pytest.mark.skipif(sys.platform == "win32", reason="XDG layout")
def test_config_path_follows_xdg(isolated_config: Path):
    assert get_config_dir() == isolated_config
    assert get_config_path() == isolated_config / CONFIG_FILE

def test_config_path_env_override(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("DIRVAULT_CONFIG", str(tmp_path / "custom.json"))
    assert get_config_path() == tmp_path / "custom.json"
