import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from dirvault import __version__
from dirvault.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({
        "archive_dir": str(tmp_path / "archives"),
        "backup_dir": str(tmp_path / "backups"),
        "exclusion_patterns": ["*.log"],
        "include_vcs_info": False,
        "mirror_tree": False,
    }))
    return path

def _invoke(config_file: Path, *args: str):
    return runner.invoke(app, ["--config", str(config_file), *args])

def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"dirvault {__version__}" in result.output

def test_full_archive(config_file: Path, proj: Path, tmp_path: Path):
    result = _invoke(config_file, "full", "--source", str(proj))
    assert result.exit_code == 0, result.output
    archives = list((tmp_path / "archives" / "proj").glob("*.zip"))
    assert len(archives) == 1
    assert archives[0].name in result.output

def test_full_dry_run(config_file: Path, proj: Path, tmp_path: Path):
    result = _invoke(config_file, "full", "--dry-run", "--source", str(proj))
    assert result.exit_code == 0, result.output
    assert "Dry run" in result.output
    assert "a.txt" in result.output
    assert not (tmp_path / "archives").exists()

def test_incremental_without_base(config_file: Path, proj: Path):
    result = _invoke(config_file, "inc", "--source", str(proj))
    assert result.exit_code == 1
    assert "No full archive" in result.output

def test_list_and_verify(config_file: Path, proj: Path, tmp_path: Path):
    assert _invoke(config_file, "full", "--source", str(proj)).exit_code == 0
    archive = next((tmp_path / "archives" / "proj").glob("*.zip"))

    listed = _invoke(config_file, "list", "--source", str(proj))
    assert listed.exit_code == 0
    assert archive.name in listed.output

    verified = _invoke(config_file, "verify", "--source", str(proj))
    assert verified.exit_code == 0, verified.output
    assert "PASS" in verified.output

    archive.write_bytes(archive.read_bytes()[:40])
    broken = _invoke(config_file, "verify", archive.name, "--source", str(proj))
    assert broken.exit_code == 10
    assert "FAIL" in broken.output

def test_verify_unknown_archive(config_file: Path, proj: Path):
    result = _invoke(config_file, "verify", "nope.zip", "--source", str(proj))
    assert result.exit_code == 20

def test_backup_then_identical(config_file: Path, tmp_path: Path):
    f = tmp_path / "notes.txt"
    f.write_text("draft")
    first = _invoke(config_file, "backup", str(f))
    assert first.exit_code == 0, first.output
    assert "Backup created" in first.output

    second = _invoke(config_file, "backup", str(f))
    assert second.exit_code == 0
    assert "identical" in second.output
    assert len(list((tmp_path / "backups").iterdir())) == 1

    listed = _invoke(config_file, "backups", str(f))
    assert listed.exit_code == 0
    assert "notes.txt-" in listed.output

def test_identical_exit_code_is_configurable(tmp_path: Path):
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({
        "backup_dir": str(tmp_path / "backups"),
        "mirror_tree": False,
        "status_codes": {"file_identical": 5},
    }))
    f = tmp_path / "notes.txt"
    f.write_text("draft")
    assert _invoke(cfg, "backup", str(f)).exit_code == 0
    assert _invoke(cfg, "backup", str(f)).exit_code == 5

def test_backup_missing_file(config_file: Path, tmp_path: Path):
    result = _invoke(config_file, "backup", str(tmp_path / "ghost.txt"))
    assert result.exit_code == 20

def test_bad_config(tmp_path: Path, proj: Path):
    cfg = tmp_path / "broken.json"
    cfg.write_text("{oops")
    result = _invoke(cfg, "full", "--source", str(proj))
    assert result.exit_code == 10

def test_audit_records_operations(config_file: Path, proj: Path, tmp_path: Path):
    _invoke(config_file, "full", "--source", str(proj))
    _invoke(config_file, "backup", str(tmp_path / "ghost.txt"))
    result = _invoke(config_file, "audit")
    assert result.exit_code == 0
    assert "archive_created" in result.output
    assert "operation_failed" in result.output
