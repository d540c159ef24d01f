"""
Simple in-memory progress tracker for bulk sync jobs.
Stores progress messages and a final status keyed by job_id.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger("hustly.progress")


class ProgressTracker:
    """Thread-safe progress message tracker"""

    def __init__(self):
        self._progress: Dict[str, List[Dict[str, Any]]] = {}
        self._status: Dict[str, Dict[str, Any]] = {}  # job_id -> {status, latest_message, level, result}
        self._owners: Dict[str, int] = {}
        self._lock = threading.Lock()

    def start(self, job_id: str, owner_id: int, message: str):
        """Register a new job as pending"""
        with self._lock:
            self._owners[job_id] = owner_id
        self.set_status(job_id, "pending", message)

    def owner_of(self, job_id: str) -> Optional[int]:
        with self._lock:
            return self._owners.get(job_id)

    def add_message(self, job_id: str, message: str, level: str = "info"):
        """Add a progress message for a job"""
        with self._lock:
            self._add_message_locked(job_id, message, level)

    def _add_message_locked(self, job_id: str, message: str, level: str):
        self._progress.setdefault(job_id, []).append({
            "message": message,
            "level": level,  # info, warning, error, success
            "timestamp": datetime.utcnow().isoformat(),
        })

    def get_progress(self, job_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._progress.get(job_id, []))

    def set_status(
        self,
        job_id: str,
        status: str,
        latest_message: str,
        level: str = "info",
        result: Optional[Dict[str, Any]] = None,
    ):
        """Set the status of a job (pending, running, completed, failed)"""
        with self._lock:
            self._status[job_id] = {
                "status": status,
                "latest_message": latest_message,
                "level": level,
                "result": result,
            }
            self._add_message_locked(job_id, latest_message, level)
        logger.debug("job %s -> %s: %s", job_id, status, latest_message)

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._status.get(job_id)

    def clear(self, job_id: str):
        with self._lock:
            self._progress.pop(job_id, None)
            self._status.pop(job_id, None)
            self._owners.pop(job_id, None)


# Global instance
progress_tracker = ProgressTracker()
