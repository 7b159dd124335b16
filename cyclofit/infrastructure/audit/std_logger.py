import json
import logging
from typing import Optional, Dict, Any

from ...utils import utcnow
from ...application.ports.audit_logger import AuditLogger


class StdAuditLogger(AuditLogger):
    """One JSON line per lifecycle event, prefixed AUDIT: so operators can grep for it."""

    def __init__(self, logger_name: str = "cyclofit.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    def log(self, action: str, analysis_id: Optional[str] = None, owner_id: Optional[str] = None, video_key: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        entry = {
            "timestamp": utcnow().isoformat(),
            "action": action,
            "analysis_id": analysis_id,
            "owner_id": owner_id,
            "video_key": video_key,
            "success": success,
            "details": details or {},
        }
        level = logging.INFO if success else logging.WARNING
        self._logger.log(level, f"AUDIT: {json.dumps(entry, default=str)}")
