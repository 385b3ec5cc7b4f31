"""
Archive verification: container structure, checksum comparison, and the
persisted verification status kept next to the archives.
"""
import json
import logging
import shutil
import zipfile
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from .checksums import CHECKSUM_ENTRY, DEFAULT_ALGORITHM, checksum_keys, has_checksums, load_checksums, validate_algorithm
from .concurrency import run_parallel
from .models import VerificationStatus
from .resources import ResourceManager
from .utils import hash_file, validate_path

logger = logging.getLogger(__name__)

METADATA_DIR = ".metadata"

# Everything a damaged container can throw while being read
_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError, ValueError, NotImplementedError)


def _status(errors: List[str], has_checksums: bool) -> VerificationStatus:
    return VerificationStatus(
        verified_at=datetime.now(timezone.utc),
        is_verified=not errors,
        has_checksums=has_checksums,
        errors=errors,
    )

def verify_structure(archive_path: Union[str, Path]) -> VerificationStatus:
    """Open the container and CRC-check every member without extracting."""
    errors: List[str] = []
    present = False
    try:
        with zipfile.ZipFile(archive_path) as zf:
            present = has_checksums(zf)
            bad = zf.testzip()
            if bad is not None:
                errors.append(f"Corrupted entry: {bad}")
    except _READ_ERRORS as e:
        errors.append(f"Invalid archive structure: {e}")
    return _status(errors, present)

def _extract_entry(zf: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path) -> Path:
    destination = validate_path(target / info.filename, target)
    destination.parent.mkdir(parents=True, exist_ok=True)
    with zf.open(info) as src, destination.open("wb") as dst:
        shutil.copyfileobj(src, dst)
    return destination

def verify_checksums(
    archive_path: Union[str, Path],
    algorithm: str = DEFAULT_ALGORITHM,
    workers: Optional[int] = None,
) -> VerificationStatus:
    """
    Extract into a scratch directory, recompute digests and compare them with
    the stored checksum map.
    """
    algorithm = validate_algorithm(algorithm)
    errors: List[str] = []
    try:
        with zipfile.ZipFile(archive_path) as zf, ResourceManager() as rm:
            try:
                stored = load_checksums(zf)
            except KeyError:
                return _status(["Archive has no stored checksums"], False)
            except ValueError as e:
                return _status([f"Unreadable checksum data: {e}"], True)

            entries = [i for i in zf.infolist() if not i.is_dir() and i.filename != CHECKSUM_ENTRY]
            keys = checksum_keys(i.filename for i in entries)
            scratch = rm.acquire_temp_dir("dirvault_verify_").path

            extracted = {}
            for info in entries:
                try:
                    extracted[info.filename] = _extract_entry(zf, info, scratch)
                except _READ_ERRORS as e:
                    errors.append(f"Failed to extract {info.filename}: {e}")

            results = run_parallel(list(extracted), lambda name: hash_file(extracted[name], algorithm), workers=workers)
            actual = {}
            for result in results:
                if result.error is not None:
                    errors.append(f"Failed to hash {result.item}: {result.error}")
                else:
                    actual[keys[result.item]] = result.value

            for name in sorted(extracted):
                key = keys[name]
                if key not in actual:
                    continue
                expected = stored.get(key)
                if expected is None:
                    errors.append(f"No stored checksum for {name}")
                elif expected.lower() != actual[key]:
                    errors.append(f"Checksum mismatch for {name}")

            known = set(keys.values())
            for key in sorted(stored):
                if key not in known:
                    errors.append(f"Stored checksum for missing entry {key}")
    except _READ_ERRORS as e:
        errors.append(f"Invalid archive structure: {e}")
        return _status(errors, False)
    return _status(errors, True)

def metadata_path(archive_path: Union[str, Path]) -> Path:
    archive_path = Path(archive_path)
    return archive_path.parent / METADATA_DIR / f"{archive_path.name}.json"

def store_verification_status(archive_path: Union[str, Path], status: VerificationStatus) -> Path:
    """Persist a status atomically under <archive_dir>/.metadata/."""
    target = metadata_path(archive_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with ResourceManager() as rm:
        rm.atomic_write(target, status.model_dump_json(indent=2).encode("utf-8"))
    return target

def load_verification_status(archive_path: Union[str, Path]) -> Optional[VerificationStatus]:
    target = metadata_path(archive_path)
    if not target.is_file():
        return None
    try:
        return VerificationStatus.model_validate(json.loads(target.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Ignoring unreadable verification status %s: %s", target, e)
        return None

def verify_archive(
    archive_path: Union[str, Path],
    algorithm: str = DEFAULT_ALGORITHM,
    store: bool = True,
    workers: Optional[int] = None,
) -> VerificationStatus:
    """Structure check, then checksum check when the structure is sound."""
    structure = verify_structure(archive_path)
    errors = list(structure.errors)
    has_stored = structure.has_checksums
    if structure.is_verified:
        content = verify_checksums(archive_path, algorithm, workers=workers)
        errors.extend(content.errors)
        has_stored = content.has_checksums
    status = _status(errors, has_stored)
    if store and Path(archive_path).is_file():
        store_verification_status(archive_path, status)
    logger.info("Verified %s: %s", Path(archive_path).name, "ok" if status.is_verified else "FAILED")
    return status
