"""
Configuration for dirvault: settings model, per-component views, JSON loader.
"""
import json
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import Field, ValidationError, field_validator

from .classify import DEFAULT_STATUS_CODES
from .errors import ConfigError
from .models import FrozenModel
from .utils import HASH_ALGORITHMS

APP_NAME = "dirvault"
CONFIG_FILE = "config.json"
CONFIG_ENV = "DIRVAULT_CONFIG"


class ArchiveSettings(Protocol):
    """What the archive pipeline reads."""
    archive_dir: str
    exclusion_patterns: List[str]
    verify_on_create: bool
    checksum_algorithm: str
    status_codes: Dict[str, int]
    use_current_dir_name: bool
    include_vcs_info: bool
    show_vcs_dirty_status: bool
    skip_identical: bool
    worker_count: Optional[int]

class BackupSettings(Protocol):
    """What the backup pipeline reads."""
    backup_dir: str
    checksum_algorithm: str
    status_codes: Dict[str, int]
    mirror_tree: bool

class Settings(FrozenModel):
    archive_dir: str = "../.bkpdir"
    backup_dir: str = "../.bkpdir"
    exclusion_patterns: List[str] = Field(default_factory=lambda: [".git/", "vendor/"])
    verify_on_create: bool = False
    checksum_algorithm: str = "sha256"
    status_codes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_STATUS_CODES))
    use_current_dir_name: bool = True
    include_vcs_info: bool = True
    show_vcs_dirty_status: bool = False
    skip_identical: bool = False
    mirror_tree: bool = True
    worker_count: Optional[int] = None

    @field_validator("checksum_algorithm")
    @classmethod
    def _known_algorithm(cls, v: str) -> str:
        v = v.lower()
        if v not in HASH_ALGORITHMS:
            raise ValueError(f"unsupported checksum algorithm '{v}'")
        return v

    @field_validator("status_codes")
    @classmethod
    def _merge_status_codes(cls, v: Dict[str, int]) -> Dict[str, int]:
        merged = dict(DEFAULT_STATUS_CODES)
        for key, code in v.items():
            if not 0 <= code <= 255:
                raise ValueError(f"status code for '{key}' must be between 0 and 255")
            merged[key] = code
        return merged

    @field_validator("worker_count")
    @classmethod
    def _positive_workers(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("worker_count must be at least 1")
        return v

def get_config_dir() -> Path:
    """Returns the platform-specific configuration directory."""
    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        if appdata:
            base_dir = Path(appdata)
        else:
            base_dir = Path.home() / "AppData" / "Roaming"
    else:
        # XDG Base Directory specification
        xdg_config = os.getenv("XDG_CONFIG_HOME")
        if xdg_config:
            base_dir = Path(xdg_config)
        else:
            base_dir = Path.home() / ".config"

    config_dir = base_dir / APP_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir

def get_config_path() -> Path:
    override = os.getenv(CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return get_config_dir() / CONFIG_FILE

def load_settings(path: Optional[Path] = None) -> Settings:
    """Defaults overlaid with the JSON config file, when one exists."""
    path = Path(path) if path else get_config_path()
    if not path.exists():
        return Settings()
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return Settings(**data)
    except (OSError, ValueError, TypeError, ValidationError) as e:
        raise ConfigError(f"Failed to load settings from '{path}': {e}") from e

def save_settings(settings: Settings, path: Optional[Path] = None) -> Path:
    path = Path(path) if path else get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(settings.model_dump_json(indent=2))
    return path
