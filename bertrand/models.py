"""
Records for the Bertrand game: players, rounds, game state and sessions.

State records are frozen. Transitions build the next full state with
dataclasses.replace and fresh containers instead of patching in place.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from shared.config import GAME_CONFIG_DEFAULTS
from .demand import DEFAULT_ALPHA, DEFAULT_MARKET_SIZE, LOGIT


ROUND_ROBIN = "round_robin"
PAIRING = "pairing"
RIVALRY_MODES = (ROUND_ROBIN, PAIRING)

SESSION_ACTIVE = "active"
SESSION_COMPLETED = "completed"
SESSION_ARCHIVED = "archived"
SESSION_STATUSES = (SESSION_ACTIVE, SESSION_COMPLETED, SESSION_ARCHIVED)


@dataclass(frozen=True)
class GameConfig:
    """Per-session configuration, fixed once the session exists."""
    total_rounds: int = GAME_CONFIG_DEFAULTS["total_rounds"]
    round_time_limit: int = GAME_CONFIG_DEFAULTS["round_time_limit"]  # seconds
    min_bid: float = GAME_CONFIG_DEFAULTS["min_bid"]
    max_bid: float = GAME_CONFIG_DEFAULTS["max_bid"]
    cost_per_unit: float = GAME_CONFIG_DEFAULTS["cost_per_unit"]
    max_players: int = GAME_CONFIG_DEFAULTS["max_players"]
    alpha: float = DEFAULT_ALPHA
    market_size: float = DEFAULT_MARKET_SIZE
    demand_model: str = LOGIT
    rivalry_mode: str = ROUND_ROBIN


@dataclass(frozen=True)
class Player:
    name: str
    current_bid: Optional[float] = None
    has_submitted_bid: bool = False
    last_bid_time: Optional[int] = None
    is_timed_out: bool = False


@dataclass(frozen=True)
class RoundResult:
    """Outcome of one settled round."""
    round: int
    bids: Dict[str, float]
    market_shares: Dict[str, float]
    profits: Dict[str, float]
    timestamp: int


@dataclass(frozen=True)
class PlayerStats:
    """Running totals for one player within one game."""
    total_profit: float = 0.0
    total_market_share: float = 0.0
    rounds_played: int = 0
    best_round: int = 0
    best_round_profit: float = 0.0

    @property
    def average_market_share(self) -> float:
        if self.rounds_played == 0:
            return 0.0
        return self.total_market_share / self.rounds_played


@dataclass(frozen=True)
class AutopilotState:
    enabled: bool = False
    last_update_time: Optional[int] = None


@dataclass(frozen=True)
class GameState:
    """Authoritative state of one session's game."""
    has_game_started: bool = False
    is_active: bool = False
    is_ended: bool = False
    current_round: int = 0
    total_rounds: int = 5
    round_time_limit: int = 60
    round_start_time: Optional[int] = None  # epoch ms
    min_bid: float = 0
    max_bid: float = 100
    cost_per_unit: float = 50
    max_players: int = 200
    alpha: float = DEFAULT_ALPHA
    market_size: float = DEFAULT_MARKET_SIZE
    demand_model: str = LOGIT
    rivalry_mode: str = ROUND_ROBIN
    players: Dict[str, Player] = field(default_factory=dict)
    round_bids: Dict[str, float] = field(default_factory=dict)
    round_history: List[RoundResult] = field(default_factory=list)
    rivalries: Dict[str, List[str]] = field(default_factory=dict)
    custom_rivalries: bool = False
    player_stats: Dict[str, PlayerStats] = field(default_factory=dict)
    autopilot: AutopilotState = field(default_factory=AutopilotState)

    @property
    def round_active(self) -> bool:
        return self.round_start_time is not None

    @property
    def rounds_remaining(self) -> int:
        return max(0, self.total_rounds - len(self.round_history))

    def pending_players(self) -> List[str]:
        """Players still expected to bid this round."""
        return [
            name for name, player in self.players.items()
            if not player.is_timed_out and not player.has_submitted_bid
        ]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["round_active"] = self.round_active
        return data


@dataclass(frozen=True)
class Session:
    id: str
    name: str
    created_at: int
    updated_at: int
    config: GameConfig
    status: str = SESSION_ACTIVE
    game_state: Optional[GameState] = None


@dataclass(frozen=True)
class SessionMetadata:
    """Listing view of a session."""
    id: str
    name: str
    created_at: int
    updated_at: int
    status: str
    config: GameConfig
    total_players: int = 0
    current_round: Optional[int] = None
    total_rounds: Optional[int] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionMetadata":
        state = session.game_state
        return cls(
            id=session.id,
            name=session.name,
            created_at=session.created_at,
            updated_at=session.updated_at,
            status=session.status,
            config=session.config,
            total_players=len(state.players) if state else 0,
            current_round=state.current_round if state else None,
            total_rounds=session.config.total_rounds,
        )

    def to_dict(self) -> dict:
        return asdict(self)
