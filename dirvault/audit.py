"""
Operation audit logging with structured JSON-Lines.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import get_config_dir

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.jsonl"


class AuditLogger:
    """Appends one JSON object per archive, backup or verification event."""
    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = Path(log_file) if log_file else get_config_dir() / AUDIT_FILE

    def log(self, event_type: str, **kwargs: Any) -> None:
        """Log a structured operation event."""
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "details": kwargs
        }
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            # The journal never fails the operation it describes
            logger.warning("Failed to write audit log %s: %s", self.log_file, e)

def get_audit_log(last_n: int = 50, log_file: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Retrieve the last N events from the audit log."""
    log_file = Path(log_file) if log_file else get_config_dir() / AUDIT_FILE
    if not log_file.exists():
        return []

    with log_file.open("r", encoding="utf-8") as f:
        lines = f.readlines()

    parsed = []
    for line in lines[-last_n:] if last_n > 0 else []:
        if not line.strip():
            continue
        try:
            parsed.append(json.loads(line))
        except json.JSONDecodeError:
            logger.warning("Skipping malformed audit line in %s", log_file)
    return parsed
