"""
Background process-run state management.
Tracks the progress of a full process() sweep started from the API.
"""

from datetime import datetime
from typing import Dict, Any, Optional
from enum import Enum
import threading
from common.constants import PATHS
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["app_log_file"])


class RunStatus(str, Enum):
    """Process run status."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessRunStateManager:
    """
    Manages the state of the current background sweep.
    Allows updates from the worker thread and status queries from API endpoints.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.run_id: Optional[str] = None
        self.status = RunStatus.IDLE
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.summary: Optional[Dict[str, Any]] = None
        self.error_message: Optional[str] = None

    def try_start(self, run_id: str) -> bool:
        """Mark a new run as started. Returns False if one is already running."""
        with self.lock:
            if self.status == RunStatus.RUNNING:
                return False
            self.run_id = run_id
            self.status = RunStatus.RUNNING
            self.start_time = datetime.now()
            self.end_time = None
            self.summary = None
            self.error_message = None
            logger.info(f"Process run {run_id} started")
            return True

    def complete(self, summary: Dict[str, Any]) -> None:
        with self.lock:
            self.status = RunStatus.COMPLETED
            self.end_time = datetime.now()
            self.summary = {k: len(v) for k, v in summary.items()}
            logger.info(f"Process run {self.run_id} completed: {self.summary}")

    def fail(self, error_msg: str) -> None:
        with self.lock:
            self.status = RunStatus.FAILED
            self.end_time = datetime.now()
            self.error_message = error_msg
            logger.error(f"Process run {self.run_id} failed: {error_msg}")

    def get_status(self) -> Dict[str, Any]:
        """Get current run status as dictionary."""
        with self.lock:
            duration = 0
            if self.start_time:
                end = self.end_time or datetime.now()
                duration = int((end - self.start_time).total_seconds())

            return {
                "run_id": self.run_id,
                "status": self.status.value,
                "duration_seconds": duration,
                "summary": self.summary,
                "error_message": self.error_message,
            }

    def reset(self) -> None:
        with self.lock:
            self.run_id = None
            self.status = RunStatus.IDLE
            self.start_time = None
            self.end_time = None
            self.summary = None
            self.error_message = None
