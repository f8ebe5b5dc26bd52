"""
Monitoring for the autopilot: structured events plus retention cleanup.

Logging here is best effort. A failing sink is reported through the
logging module and never reaches the caller.
"""

from dataclasses import asdict, dataclass, field
import logging
import threading
from typing import Callable, List, Optional

from shared.config import AUTOPILOT_LOG_RETENTION_DAYS
from .store import now_ms


logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000

SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class AutopilotLogEntry:
    timestamp: int
    session_id: str
    action: str  # toggle | process_round | error
    status: str  # success | failure
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class InMemoryLogSink:
    """Keeps log entries in a list; stands in for a real log collection."""

    def __init__(self):
        self.entries: List[AutopilotLogEntry] = []
        self._lock = threading.Lock()

    def write(self, entry: AutopilotLogEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    def delete_before(self, cutoff: int) -> int:
        with self._lock:
            kept = [e for e in self.entries if e.timestamp > cutoff]
            removed = len(self.entries) - len(kept)
            self.entries = kept
        return removed


class AutopilotMonitor:
    """Records what the autopilot did, to the log and to a sink."""

    def __init__(self, sink: Optional[InMemoryLogSink] = None, clock: Callable[[], int] = now_ms):
        self.sink = sink if sink is not None else InMemoryLogSink()
        self.clock = clock

    def log_event(self, session_id: str, action: str, status: str, details: Optional[dict] = None) -> None:
        entry = AutopilotLogEntry(
            timestamp=self.clock(),
            session_id=session_id,
            action=action,
            status=status,
            details=details or {},
        )
        try:
            self.sink.write(entry)
            message = "[Autopilot %s] Session %s: %s %s"
            if status == SUCCESS:
                logger.info(message, action, session_id, status, entry.details)
            else:
                logger.error(message, action, session_id, status, entry.details)
        except Exception:
            logger.exception("Failed to write log entry: %s", entry)

    def cleanup(self, retention_days: int = AUTOPILOT_LOG_RETENTION_DAYS) -> int:
        """Drop entries older than the retention window; returns how many went."""
        cutoff = self.clock() - retention_days * DAY_MS
        try:
            removed = self.sink.delete_before(cutoff)
        except Exception:
            logger.exception("Failed to clean up old log entries")
            return 0
        if removed:
            logger.info("Cleaned up %d old log entries", removed)
        return removed
