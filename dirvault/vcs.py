"""
VCS metadata capability and the default git implementation.
"""
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Union

from .models import VcsInfo
from .naming import sanitize_component

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class VcsProvider(Protocol):
    def is_repository(self, directory: PathLike) -> bool: ...

    def branch(self, directory: PathLike) -> Optional[str]: ...

    def short_hash(self, directory: PathLike) -> Optional[str]: ...

    def is_clean(self, directory: PathLike) -> Optional[bool]: ...

class GitProvider:
    """Runs the git CLI; every failure degrades to 'no metadata'."""

    def __init__(self, executable: str = "git", timeout: float = 10.0):
        self.executable = executable
        self.timeout = timeout

    def _git(self, directory: PathLike, *args: str) -> Optional[str]:
        if shutil.which(self.executable) is None:
            return None
        try:
            proc = subprocess.run(
                [self.executable, "-C", str(directory), *args],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("git %s failed in %s: %s", args[0], directory, e)
            return None
        if proc.returncode != 0:
            return None
        return proc.stdout.strip()

    def is_repository(self, directory: PathLike) -> bool:
        return self._git(directory, "rev-parse", "--is-inside-work-tree") == "true"

    def branch(self, directory: PathLike) -> Optional[str]:
        return self._git(directory, "rev-parse", "--abbrev-ref", "HEAD") or None

    def short_hash(self, directory: PathLike) -> Optional[str]:
        return self._git(directory, "rev-parse", "--short", "HEAD") or None

    def is_clean(self, directory: PathLike) -> Optional[bool]:
        out = self._git(directory, "status", "--porcelain")
        if out is None:
            return None
        return out == ""

def get_vcs_info(provider: Optional[VcsProvider], directory: PathLike, check_dirty: bool = False) -> Optional[VcsInfo]:
    """Collect branch/hash for naming, or None when the tree is not usable."""
    if provider is None:
        return None
    try:
        if not provider.is_repository(directory):
            return None
        branch = provider.branch(directory)
        short_hash = provider.short_hash(directory)
        if not branch or not short_hash:
            return None
        clean = provider.is_clean(directory) if check_dirty else None
    except Exception as e:
        logger.warning("VCS lookup failed for %s: %s", directory, e)
        return None
    return VcsInfo(branch=sanitize_component(branch), short_hash=sanitize_component(short_hash), is_clean=clean)
