"""
Game state machine for the Bertrand game.

    NotStarted -> Active(no round) -> Active(round in flight) -> ... -> Ended

Every transition takes a GameState and returns the next full GameState; the
input is never modified. Invalid transitions raise StateConflictError, bad
input raises ValidationError, unknown players raise NotFoundError.
"""

from dataclasses import replace
import math
import random
import re
from typing import Dict, List, Optional, Tuple

from .demand import DEMAND_MODELS
from .errors import CapacityError, NotFoundError, StateConflictError, ValidationError
from .models import (
    PAIRING, RIVALRY_MODES, AutopilotState, GameConfig, GameState, Player
)
from .rivalries import attach_players, pairing, round_robin, symmetrize, without_player
from .settlement import Settlement, settle_round


FORBIDDEN_NAME_CHARS = re.compile(r"[.#$\[\]]")
MIN_PLAYERS_PER_ROUND = 2


def validate_name(name: str, kind: str = "Player") -> str:
    """Strip a player or session name and reject empty or unsafe ones."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{kind} name cannot be empty")
    if FORBIDDEN_NAME_CHARS.search(cleaned):
        raise ValidationError(f"{kind} name cannot contain ., #, $, [, or ] characters")
    return cleaned


def validate_config(config: GameConfig) -> None:
    """Structural checks every game config must pass."""
    if config.max_bid <= config.min_bid:
        raise ValidationError("Maximum bid must be greater than minimum bid")
    if config.min_bid < 0:
        raise ValidationError("Minimum bid cannot be negative")
    if config.total_rounds < 1:
        raise ValidationError("Total rounds must be at least 1")
    if config.max_players < 2:
        raise ValidationError("Maximum players must be at least 2")
    if config.round_time_limit <= 0:
        raise ValidationError("Round time limit must be positive")
    if config.cost_per_unit < 0:
        raise ValidationError("Cost per unit cannot be negative")
    if config.alpha <= 0 or config.market_size <= 0:
        raise ValidationError("Alpha and market size must be positive")
    if config.demand_model not in DEMAND_MODELS:
        raise ValidationError(f"Unknown demand model: {config.demand_model}")
    if config.rivalry_mode not in RIVALRY_MODES:
        raise ValidationError(f"Unknown rivalry mode: {config.rivalry_mode}")


def _require_player(state: GameState, name: str) -> Player:
    if name not in state.players:
        raise NotFoundError(f"Player not found: {name}")
    return state.players[name]


def _with_player(state: GameState, player: Player) -> Dict[str, Player]:
    players = dict(state.players)
    players[player.name] = player
    return players


def start_game(state: Optional[GameState], config: GameConfig) -> GameState:
    """Fresh game from a config. Allowed before a game starts or after it ends."""
    if state is not None and state.has_game_started and not state.is_ended:
        raise StateConflictError("A game is already in progress")
    validate_config(config)

    return GameState(
        has_game_started=True,
        is_active=True,
        is_ended=False,
        current_round=1,
        total_rounds=config.total_rounds,
        round_time_limit=config.round_time_limit,
        min_bid=config.min_bid,
        max_bid=config.max_bid,
        cost_per_unit=config.cost_per_unit,
        max_players=config.max_players,
        alpha=config.alpha,
        market_size=config.market_size,
        demand_model=config.demand_model,
        rivalry_mode=config.rivalry_mode,
    )


def register_player(state: GameState, name: str) -> GameState:
    name = validate_name(name)
    if name in state.players:
        return state
    if len(state.players) >= state.max_players:
        raise CapacityError(f"Maximum number of players reached: {state.max_players}")
    return replace(state, players=_with_player(state, Player(name=name)))


def unregister_player(state: GameState, name: str) -> GameState:
    if name not in state.players:
        return state
    players = {k: v for k, v in state.players.items() if k != name}
    round_bids = {k: v for k, v in state.round_bids.items() if k != name}
    return replace(
        state,
        players=players,
        round_bids=round_bids,
        rivalries=without_player(state.rivalries, name),
    )


def _assign_rivalries(state: GameState, rng: Optional[random.Random]) -> Tuple[Dict[str, List[str]], bool]:
    names = list(state.players)
    if state.custom_rivalries:
        newcomers = [name for name in names if not state.rivalries.get(name)]
        paired = state.rivalry_mode == PAIRING
        return attach_players(state.rivalries, names, newcomers, paired, rng), True
    if state.rivalry_mode == PAIRING and state.current_round == 1:
        return pairing(names, rng), True
    return round_robin(names), False


def start_round(state: GameState, now: int, rng: Optional[random.Random] = None) -> GameState:
    """Open the current round for bids."""
    if not state.is_active or state.is_ended:
        raise StateConflictError("Cannot start round: game is not active")
    if state.round_active:
        raise StateConflictError("Cannot start round: a round is already in progress")
    if state.current_round > state.total_rounds:
        raise StateConflictError("Cannot start round: max rounds reached")
    if len(state.players) < MIN_PLAYERS_PER_ROUND:
        raise StateConflictError("Cannot start round: insufficient players")

    rivalries, custom = _assign_rivalries(state, rng)
    players = {
        name: replace(player, has_submitted_bid=False, current_bid=None, is_timed_out=False)
        for name, player in state.players.items()
    }
    return replace(
        state,
        round_start_time=now,
        round_bids={},
        players=players,
        rivalries=rivalries,
        custom_rivalries=custom,
    )


def submit_bid(state: GameState, name: str, bid: float, now: int) -> GameState:
    """Record one player's bid. Resubmitting before the round ends overwrites."""
    if not state.round_active:
        raise StateConflictError("Cannot submit bid: round is not active")
    player = _require_player(state, name)
    if player.is_timed_out:
        raise StateConflictError(f"Player {name} is timed out")
    try:
        bid = float(bid)
    except (TypeError, ValueError):
        raise ValidationError(f"Bid must be a number: {bid!r}")
    if math.isnan(bid) or bid < state.min_bid or bid > state.max_bid:
        raise ValidationError(f"Bid must be between {state.min_bid} and {state.max_bid}")

    round_bids = dict(state.round_bids)
    round_bids[name] = bid
    updated = replace(player, current_bid=bid, has_submitted_bid=True, last_bid_time=now)
    return replace(state, round_bids=round_bids, players=_with_player(state, updated))


def end_current_round(state: GameState, now: int, autopilot: bool = False) -> Optional[Settlement]:
    """
    Settle the round in flight.

    The manual path insists every non-timed-out player has bid. The
    autopilot path charges missing players max_bid instead, and returns
    None when the round was already settled by someone else.
    """
    if not state.round_active:
        if autopilot:
            return None
        raise StateConflictError("Cannot end round: no round in progress")

    if not autopilot:
        pending = state.pending_players()
        if pending:
            raise StateConflictError(
                f"Cannot end round: waiting for bids from {', '.join(sorted(pending))}"
            )

    return settle_round(state, now, resolve_timeouts=autopilot)


def end_game(state: GameState) -> GameState:
    """Force the game to its terminal state regardless of rounds left."""
    if not state.has_game_started:
        raise StateConflictError("Cannot end game: no game has started")
    return replace(
        state,
        is_active=False,
        is_ended=True,
        round_start_time=None,
        round_bids={},
        autopilot=replace(state.autopilot, enabled=False),
    )


def timeout_player(state: GameState, name: str) -> GameState:
    player = _require_player(state, name)
    return replace(state, players=_with_player(state, replace(player, is_timed_out=True)))


def un_timeout_player(state: GameState, name: str) -> GameState:
    player = _require_player(state, name)
    return replace(state, players=_with_player(state, replace(player, is_timed_out=False)))


def reset_game() -> GameState:
    """Back to an empty, not-started game; history is discarded."""
    return GameState()


def update_rivalries(state: GameState, rivalries: Dict[str, List[str]]) -> GameState:
    """Replace the rivalry graph with an admin-supplied one (made symmetric)."""
    if state.round_active:
        raise StateConflictError("Cannot change rivalries while a round is in progress")
    graph = symmetrize(rivalries, state.players)
    return replace(state, rivalries=graph, custom_rivalries=True)


def auto_assign_rivals(state: GameState) -> GameState:
    if state.round_active:
        raise StateConflictError("Cannot change rivalries while a round is in progress")
    return replace(state, rivalries=round_robin(state.players), custom_rivalries=True)


def extend_round_time(state: GameState, additional_seconds: int) -> GameState:
    """Push the round deadline back by moving its start time forward."""
    if not state.round_active:
        raise StateConflictError("Cannot extend time: no active round")
    if additional_seconds <= 0:
        raise ValidationError("Additional time must be positive")
    return replace(state, round_start_time=state.round_start_time + int(additional_seconds * 1000))


def set_autopilot(state: GameState, enabled: bool, now: int) -> GameState:
    if enabled and state.is_ended:
        raise StateConflictError("Cannot enable autopilot: game has ended")
    return replace(
        state,
        autopilot=AutopilotState(enabled=enabled, last_update_time=now if enabled else None),
    )


def round_deadline(state: GameState) -> Optional[int]:
    """Epoch ms at which the round in flight runs out of time."""
    if not state.round_active:
        return None
    return state.round_start_time + state.round_time_limit * 1000
