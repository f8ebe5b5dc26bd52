"""
GameEngine: runs state-machine transitions against a session store.

Each operation locks the session, reads the full state, applies one pure
transition and writes the full next state back. Bids from different players
touch disjoint keys and commute; settlement clears round_start_time in the
same locked write, so a round is settled at most once.
"""

import logging
import random
import re
from typing import Callable, Dict, List, Optional

from shared.config import SESSION_LIMITS
from . import transitions
from .errors import NotFoundError, StateConflictError, ValidationError
from .models import (
    SESSION_ACTIVE, SESSION_COMPLETED, SESSION_STATUSES, GameConfig, GameState, RoundResult,
    Session, SessionMetadata
)
from .settlement import Settlement
from .store import GameStore, now_ms


logger = logging.getLogger(__name__)


def session_id_for(name: str) -> str:
    """Session ids are the lower-cased name with whitespace runs as '-'."""
    return re.sub(r"\s+", "-", name.strip().lower())


def validate_session_config(config: GameConfig) -> None:
    """Bounds an admin-created session must respect on top of the game checks."""
    transitions.validate_config(config)

    low, high = SESSION_LIMITS["total_rounds"]
    if not low <= config.total_rounds <= high:
        raise ValidationError(f"Total rounds must be between {low} and {high}")
    low, high = SESSION_LIMITS["round_time_limit"]
    if not low <= config.round_time_limit <= high:
        raise ValidationError(f"Round time limit must be between {low} and {high} seconds")
    low, _ = SESSION_LIMITS["min_bid"]
    if config.min_bid < low:
        raise ValidationError(f"Minimum bid must be at least {low}")
    _, high = SESSION_LIMITS["max_bid"]
    if config.max_bid > high:
        raise ValidationError(f"Maximum bid must not exceed {high}")
    low, high = SESSION_LIMITS["cost_per_unit"]
    if not low < config.cost_per_unit <= high:
        raise ValidationError(f"Cost per unit must be above {low} and at most {high}")
    low, high = SESSION_LIMITS["max_players"]
    if not low <= config.max_players <= high:
        raise ValidationError(f"Maximum players must be between {low} and {high}")


class GameEngine:
    """Entry point for every game operation, bound to one store."""

    def __init__(self, store: GameStore, clock: Callable[[], int] = now_ms,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.clock = clock
        self.rng = rng

    # ---- sessions ----

    def create_session(self, name: str, config: GameConfig) -> Session:
        name = transitions.validate_name(name, kind="Session")
        validate_session_config(config)
        now = self.clock()
        session = Session(
            id=session_id_for(name),
            name=name,
            created_at=now,
            updated_at=now,
            config=config,
            game_state=transitions.start_game(None, config),
        )
        self.store.create_session(session)
        return session

    def get_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    def list_sessions(self) -> List[SessionMetadata]:
        return self.store.list_sessions()

    def delete_session(self, session_id: str) -> None:
        self.get_session(session_id)
        self.store.delete_session(session_id)
        logger.info("Deleted session %s", session_id)

    def update_session_status(self, session_id: str, status: str) -> Session:
        """Change a session's status; completing it also ends its game."""
        if status not in SESSION_STATUSES:
            raise ValidationError(f"Unknown session status: {status}")
        with self.store.lock(session_id):
            self.get_session(session_id)
            state = self.store.get_state(session_id)
            if status == SESSION_COMPLETED and state is not None \
                    and state.has_game_started and not state.is_ended:
                self.store.update_state(session_id, transitions.end_game(state))
            return self.store.update_session_status(session_id, status)

    # ---- state ----

    def get_state(self, session_id: str) -> GameState:
        state = self.store.get_state(session_id)
        if state is None:
            raise NotFoundError(f"No game state for session: {session_id}")
        return state

    def _apply(self, session_id: str, transition, *args) -> GameState:
        with self.store.lock(session_id):
            state = self.get_state(session_id)
            try:
                next_state = transition(state, *args)
            except StateConflictError as e:
                logger.warning("Session %s: %s", session_id, e)
                raise
            if next_state is not state:
                self.store.update_state(session_id, next_state)
            return next_state

    def start_game(self, session_id: str, config: Optional[GameConfig] = None) -> GameState:
        """Start a fresh game, by default with the session's own config; the session is active again."""
        with self.store.lock(session_id):
            session = self.get_session(session_id)
            state = transitions.start_game(session.game_state, config or session.config)
            self.store.update_state(session_id, state)
            self.store.update_session_status(session_id, SESSION_ACTIVE)
            logger.info("Session %s: game started (%d rounds)", session_id, state.total_rounds)
            return state

    def register_player(self, session_id: str, name: str) -> GameState:
        return self._apply(session_id, transitions.register_player, name)

    def unregister_player(self, session_id: str, name: str) -> GameState:
        return self._apply(session_id, transitions.unregister_player, name)

    def timeout_player(self, session_id: str, name: str) -> GameState:
        return self._apply(session_id, transitions.timeout_player, name)

    def un_timeout_player(self, session_id: str, name: str) -> GameState:
        return self._apply(session_id, transitions.un_timeout_player, name)

    def start_round(self, session_id: str) -> GameState:
        state = self._apply(session_id, transitions.start_round, self.clock(), self.rng)
        logger.info("Session %s: round %d started", session_id, state.current_round)
        return state

    def submit_bid(self, session_id: str, name: str, bid: float) -> GameState:
        return self._apply(session_id, transitions.submit_bid, name, bid, self.clock())

    def end_current_round(self, session_id: str, autopilot: bool = False) -> Optional[Settlement]:
        """
        Settle the round in flight.

        Returns None on the autopilot path when there was nothing to settle.
        The final round's settlement also marks the session completed.
        """
        with self.store.lock(session_id):
            state = self.get_state(session_id)
            try:
                settlement = transitions.end_current_round(state, self.clock(), autopilot)
            except StateConflictError as e:
                logger.warning("Session %s: %s", session_id, e)
                raise
            if settlement is None:
                return None
            self.store.update_state(session_id, settlement.state)
            if settlement.is_final:
                self.store.update_session_status(session_id, SESSION_COMPLETED)

        logger.info(
            "Session %s: round %d settled (%d players, %d timeouts)%s",
            session_id, settlement.result.round, settlement.player_count,
            settlement.timeout_bids, ", game over" if settlement.is_final else "",
        )
        return settlement

    def end_game(self, session_id: str) -> GameState:
        with self.store.lock(session_id):
            state = self._apply(session_id, transitions.end_game)
            self.store.update_session_status(session_id, SESSION_COMPLETED)
        logger.info("Session %s: game ended", session_id)
        return state

    def reset_game(self, session_id: str) -> GameState:
        with self.store.lock(session_id):
            self.get_session(session_id)
            state = self.store.update_state(session_id, transitions.reset_game())
            self.store.update_session_status(session_id, SESSION_ACTIVE)
        logger.info("Session %s: game reset", session_id)
        return state

    def update_rivalries(self, session_id: str, rivalries: Dict[str, List[str]]) -> GameState:
        return self._apply(session_id, transitions.update_rivalries, rivalries)

    def auto_assign_rivals(self, session_id: str) -> GameState:
        return self._apply(session_id, transitions.auto_assign_rivals)

    def extend_round_time(self, session_id: str, additional_seconds: int) -> GameState:
        return self._apply(session_id, transitions.extend_round_time, additional_seconds)

    def set_autopilot(self, session_id: str, enabled: bool) -> GameState:
        return self._apply(session_id, transitions.set_autopilot, enabled, self.clock())

    # ---- history ----

    def completed_histories(self) -> Dict[str, List[RoundResult]]:
        """Round history of every completed session, keyed by session id."""
        histories = {}
        for meta in self.store.list_completed_sessions():
            state = self.store.get_state(meta.id)
            if state is not None:
                histories[meta.id] = list(state.round_history)
        return histories
