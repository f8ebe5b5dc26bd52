"""
Session store contract and an in-memory implementation.

The engine depends only on GameStore. The store keeps whole sessions; game
state writes are shallow merges of top-level fields, so callers hand over
complete nested maps whenever they change one.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
import logging
import threading
import time
from typing import Callable, Dict, Iterator, List, Optional

from .errors import NotFoundError, StateConflictError, StoreError
from .models import SESSION_COMPLETED, GameState, Session, SessionMetadata


logger = logging.getLogger(__name__)

StateCallback = Callable[[GameState], None]


def now_ms() -> int:
    return int(time.time() * 1000)


class GameStore(ABC):
    """What the game core needs from persistence."""

    @abstractmethod
    def get_state(self, session_id: str) -> Optional[GameState]:
        pass

    @abstractmethod
    def update_state(self, session_id: str, state: Optional[GameState] = None, **changes) -> GameState:
        """Write a full state, or merge top-level field changes into the stored one."""
        pass

    @abstractmethod
    def subscribe(self, session_id: str, callback: StateCallback) -> Callable[[], None]:
        """Call back with a snapshot after every change; returns an unsubscribe function."""
        pass

    @abstractmethod
    def list_completed_sessions(self) -> List[SessionMetadata]:
        pass

    @abstractmethod
    def lock(self, session_id: str):
        """Context manager giving exclusive read-modify-write access to a session."""
        pass

    @abstractmethod
    def create_session(self, session: Session) -> str:
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Session]:
        pass

    @abstractmethod
    def list_sessions(self) -> List[SessionMetadata]:
        pass

    @abstractmethod
    def update_session_status(self, session_id: str, status: str) -> Session:
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> None:
        pass


class InMemoryGameStore(GameStore):
    """Thread-safe store keeping sessions in a dict."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._subscribers: Dict[str, List[StateCallback]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _session_lock(self, session_id: str) -> threading.RLock:
        with self._guard:
            if session_id not in self._locks:
                self._locks[session_id] = threading.RLock()
            return self._locks[session_id]

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        with self._session_lock(session_id):
            yield

    def _require_session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def get_state(self, session_id: str) -> Optional[GameState]:
        session = self._sessions.get(session_id)
        return session.game_state if session else None

    def update_state(self, session_id: str, state: Optional[GameState] = None, **changes) -> GameState:
        with self.lock(session_id):
            session = self._require_session(session_id)
            base = state if state is not None else session.game_state
            if base is None:
                raise StoreError(f"Session {session_id} has no game state to update")
            try:
                merged = replace(base, **changes) if changes else base
            except TypeError as e:
                raise StoreError(f"Invalid game state update: {e}")
            self._sessions[session_id] = replace(session, game_state=merged, updated_at=self.clock())
            self._notify(session_id, merged)
            return merged

    def _notify(self, session_id: str, state: GameState) -> None:
        for callback in list(self._subscribers.get(session_id, [])):
            try:
                callback(state)
            except Exception:
                logger.exception("State subscriber failed for session %s", session_id)

    def subscribe(self, session_id: str, callback: StateCallback) -> Callable[[], None]:
        with self._guard:
            self._subscribers.setdefault(session_id, []).append(callback)

        def unsubscribe():
            with self._guard:
                callbacks = self._subscribers.get(session_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        state = self.get_state(session_id)
        if state is not None:
            callback(state)
        return unsubscribe

    def create_session(self, session: Session) -> str:
        with self.lock(session.id):
            if session.id in self._sessions:
                raise StateConflictError(f"Session already exists: {session.id}")
            self._sessions[session.id] = session
            logger.info("Created session %s", session.id)
        return session.id

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list_sessions(self) -> List[SessionMetadata]:
        return [SessionMetadata.from_session(s) for s in list(self._sessions.values())]

    def list_completed_sessions(self) -> List[SessionMetadata]:
        return [m for m in self.list_sessions() if m.status == SESSION_COMPLETED]

    def update_session_status(self, session_id: str, status: str) -> Session:
        with self.lock(session_id):
            session = replace(self._require_session(session_id), status=status, updated_at=self.clock())
            self._sessions[session_id] = session
            return session

    def delete_session(self, session_id: str) -> None:
        with self.lock(session_id):
            self._sessions.pop(session_id, None)
        with self._guard:
            self._subscribers.pop(session_id, None)
            self._locks.pop(session_id, None)
