"""
Glob-based exclusion matching with recursive ** support.

Each user pattern expands into gitwildmatch lines for pathspec:
  - "dir/"          the directory and everything below it, at any depth
  - "**" patterns   matched against the whole relative path
  - "*.log"         the base name, at any depth
  - "docs/*.md"     the whole path, segment for segment
  - "secret.txt"    exactly that relative path
"""
import functools
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import pathspec

logger = logging.getLogger(__name__)


def _normalize(path: str) -> str:
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.strip("/")

def _has_magic(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?[")

def _unterminated_class(pattern: str) -> bool:
    opened = pattern.rfind("[")
    return opened != -1 and "]" not in pattern[opened + 1:]

def _escape_line(line: str) -> str:
    # A leading '!' or '#' means negation or comment to gitwildmatch
    if line[:1] in ("!", "#"):
        return "\\" + line
    return line

def _candidates(pattern: str) -> Tuple[List[str], bool]:
    """
    Expand one user pattern into gitwildmatch lines.
    The flag is True when the pattern covers a whole directory subtree.
    """
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    if pattern.endswith("/"):
        stem = pattern.strip("/")
        return [f"/{stem}/", f"**/{stem}/"], True
    if "**" in pattern:
        return [f"/{pattern.lstrip('/')}"], pattern.endswith("/**")
    if _has_magic(pattern) and "/" not in pattern:
        return [_escape_line(pattern)], False
    # Anchored: slash globs and literals match the full relative path only
    return [f"/{pattern.strip('/')}"], False

@functools.lru_cache(maxsize=512)
def _compile(pattern: str) -> Optional[Tuple[pathspec.PathSpec, bool]]:
    if _unterminated_class(pattern):
        logger.warning("Ignoring malformed exclusion pattern %r: unterminated character class", pattern)
        return None
    lines, covers_tree = _candidates(pattern)
    try:
        spec = pathspec.PathSpec.from_lines(pathspec.patterns.GitWildMatchPattern, lines)
    except ValueError as e:
        logger.warning("Ignoring malformed exclusion pattern %r: %s", pattern, e)
        return None
    return spec, covers_tree

class PatternMatcher:
    """Matches relative paths against an ordered exclusion pattern set."""

    def __init__(self, patterns: Optional[Sequence[str]] = None):
        self.patterns: List[str] = [p for p in (patterns or []) if p and p.strip()]
        self._file_specs: List[pathspec.PathSpec] = []
        self._tree_specs: List[pathspec.PathSpec] = []
        for pattern in self.patterns:
            compiled = _compile(pattern.strip())
            if compiled is None:
                continue
            spec, covers_tree = compiled
            self._file_specs.append(spec)
            if covers_tree:
                self._tree_specs.append(spec)

    def should_exclude(self, path: str) -> bool:
        normalized = _normalize(path)
        if not normalized:
            return False
        return any(spec.match_file(normalized) for spec in self._file_specs)

    def prunes_directory(self, rel_dir: str) -> bool:
        """True when a directory pattern removes this whole subtree."""
        normalized = _normalize(rel_dir)
        if not normalized:
            return False
        # The trailing slash lets "dir/" and "dir/**" lines see a directory
        return any(spec.match_file(normalized + "/") for spec in self._tree_specs)

    def filter(self, paths: Iterable[str]) -> List[str]:
        return [p for p in paths if not self.should_exclude(p)]

def should_exclude(path: str, patterns: Sequence[str]) -> bool:
    """Check if a relative path is excluded by any of the patterns."""
    return PatternMatcher(patterns).should_exclude(path)

def filter_paths(paths: Iterable[str], patterns: Sequence[str]) -> List[str]:
    """Drop excluded paths, preserving input order."""
    return PatternMatcher(patterns).filter(paths)
