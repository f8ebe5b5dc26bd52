"""
Bertrand Arena - repeated price competition with logit demand

Players name prices each round; the engine splits the market between
rivals, settles profits and tracks sessions for a cross-game leaderboard.
"""

from .demand import market_share, profit
from .engine import GameEngine
from .errors import (
    CapacityError, GameError, NotFoundError, StateConflictError, StoreError, ValidationError
)
from .leaderboard import build_leaderboard, sort_leaderboard
from .models import GameConfig, GameState, Player, RoundResult
from .store import GameStore, InMemoryGameStore

__all__ = [
    "market_share", "profit", "GameEngine", "GameStore", "InMemoryGameStore",
    "GameConfig", "GameState", "Player", "RoundResult",
    "build_leaderboard", "sort_leaderboard",
    "GameError", "ValidationError", "CapacityError", "StateConflictError",
    "NotFoundError", "StoreError",
]
