"""
Autopilot: settles rounds whose time limit has run out.

A polling loop rather than per-round timers, so a round can overrun its
limit by up to one polling interval. Settlement goes through the engine's
autopilot path, which treats missing bids as timeouts and is a no-op if the
round was already settled.
"""

import asyncio
import logging
from typing import List, Optional

from shared.config import AUTOPILOT_INTERVAL_SECONDS
from .engine import GameEngine
from .monitoring import DAY_MS, FAILURE, SUCCESS, AutopilotMonitor
from .settlement import Settlement
from .transitions import round_deadline


logger = logging.getLogger(__name__)


class AutopilotScheduler:
    """Periodic trigger for round settlement on autopilot sessions."""

    def __init__(self, engine: GameEngine, monitor: Optional[AutopilotMonitor] = None,
                 interval: float = AUTOPILOT_INTERVAL_SECONDS):
        self.engine = engine
        self.monitor = monitor or AutopilotMonitor(clock=engine.clock)
        self.interval = interval
        self.task: Optional[asyncio.Task] = None
        self.last_cleanup: Optional[int] = None

    def toggle_autopilot(self, session_id: str, enabled: bool):
        """Turn autopilot on or off for one session and log the toggle."""
        try:
            state = self.engine.set_autopilot(session_id, enabled)
        except Exception as e:
            self.monitor.log_event(session_id, "toggle", FAILURE, {"enabled": enabled, "error": str(e)})
            raise
        self.monitor.log_event(session_id, "toggle", SUCCESS, {"enabled": enabled})
        return state

    def due_sessions(self) -> List[str]:
        """Autopilot sessions whose round in flight has run out of time."""
        now = self.engine.clock()
        due = []
        for meta in self.engine.list_sessions():
            state = self.engine.store.get_state(meta.id)
            if state is None or not state.autopilot.enabled:
                continue
            deadline = round_deadline(state)
            if deadline is not None and now >= deadline:
                due.append(meta.id)
        return due

    def process_session(self, session_id: str) -> Optional[Settlement]:
        state = self.engine.store.get_state(session_id)
        round_num = state.current_round if state else None
        try:
            settlement = self.engine.end_current_round(session_id, autopilot=True)
        except Exception as e:
            self.monitor.log_event(session_id, "process_round", FAILURE, {
                "round": round_num,
                "error": str(e),
            })
            raise

        if settlement is None:
            return None

        self.monitor.log_event(session_id, "process_round", SUCCESS, {
            "round": settlement.result.round,
            "total_rounds": settlement.state.total_rounds,
            "player_count": settlement.player_count,
            "processed_bids": settlement.processed_bids,
            "timeout_bids": settlement.timeout_bids,
        })
        return settlement

    def run_once(self) -> List[Settlement]:
        """One scan over every session; a failing session does not stop the rest."""
        settlements = []
        for session_id in self.due_sessions():
            try:
                settlement = self.process_session(session_id)
            except Exception:
                logger.exception("Autopilot failed for session %s", session_id)
                continue
            if settlement is not None:
                settlements.append(settlement)
        self._maybe_cleanup()
        return settlements

    def _maybe_cleanup(self) -> None:
        now = self.engine.clock()
        if self.last_cleanup is None or now - self.last_cleanup >= DAY_MS:
            self.monitor.cleanup()
            self.last_cleanup = now

    async def run_forever(self):
        logger.info("Autopilot polling every %.0f seconds", self.interval)
        while True:
            try:
                self.run_once()
            except Exception:
                logger.exception("Autopilot scan failed")
            await asyncio.sleep(self.interval)

    def start(self):
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self.run_forever())
        return self.task

    async def stop(self):
        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        self.task = None
