"""
Cross-session leaderboard built from completed games' round histories.

Points reward wins and participation, plus a profit share and a consistency
bonus. Both bonuses are scaled by a participation factor so a player with a
handful of lucky rounds cannot top the board.
"""

from dataclasses import asdict, dataclass, field, replace
import math
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import RoundResult


# Constants for scoring system
SCORING_WEIGHTS = {
    "GAME_WIN": 10,          # Points per game won
    "ROUND_WIN": 2,          # Points per round won
    "GAME_PLAYED": 5,        # Base points per game played
    "ROUND_PLAYED": 0.5,     # Points per round played
    "PROFIT_SCALE": 10,      # Max points from profit contribution
    "CONSISTENCY_SCALE": 5,  # Max points from consistency score
    # Minimum thresholds for full profit scoring
    "MIN_GAMES_FOR_FULL_PROFIT": 3,
    "MIN_ROUNDS_FOR_FULL_PROFIT": 15,
}

SORTABLE_FIELDS = (
    "rank", "username", "leaderboard_points", "games_won", "rounds_won",
    "total_profit", "average_market_share", "consistency_score",
    "games_played", "rounds_played", "best_single_round_profit",
)


@dataclass
class PlayerAggregator:
    """Running totals for one player across sessions."""
    total_profit: float = 0.0
    total_share: float = 0.0
    rounds_played: int = 0
    rounds_won: int = 0
    games_played: Set[str] = field(default_factory=set)
    games_won: Set[str] = field(default_factory=set)
    best_single_round_profit: float = -math.inf
    best_game_round: Optional[Tuple[str, int]] = None
    consistency_score: float = 0.0  # Average percentile rank across all rounds


@dataclass(frozen=True)
class LeaderboardEntry:
    username: str
    total_profit: float
    average_market_share: float
    rounds_played: int
    rounds_won: int
    games_played: int
    games_won: int
    best_single_round_profit: float
    consistency_score: float
    leaderboard_points: float
    best_game: Optional[str] = None
    best_round: Optional[int] = None
    rank: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


def participation_factor(games_played: int, rounds_played: int) -> float:
    """Mean of games and rounds played, each as a fraction of its threshold, capped at 1."""
    game_scale = min(1.0, games_played / SCORING_WEIGHTS["MIN_GAMES_FOR_FULL_PROFIT"])
    round_scale = min(1.0, rounds_played / SCORING_WEIGHTS["MIN_ROUNDS_FOR_FULL_PROFIT"])
    return (game_scale + round_scale) / 2


def calculate_leaderboard_points(games_won: int, rounds_won: int, total_profit: float,
                                 max_profit: float, consistency_score: float,
                                 games_played: int, rounds_played: int) -> float:
    w = SCORING_WEIGHTS
    factor = participation_factor(games_played, rounds_played)

    profit_points = 0.0
    if max_profit > 0:
        profit_points = (total_profit / max_profit) * w["PROFIT_SCALE"] * factor
    consistency_points = consistency_score * w["CONSISTENCY_SCALE"] * factor

    return (
        games_won * w["GAME_WIN"]
        + rounds_won * w["ROUND_WIN"]
        + games_played * w["GAME_PLAYED"]
        + rounds_played * w["ROUND_PLAYED"]
        + profit_points
        + consistency_points
    )


def _leader(totals: Dict[str, float]) -> Optional[str]:
    """Key with the highest value; the first one seen wins ties."""
    best, best_value = None, -math.inf
    for player, value in totals.items():
        if value > best_value:
            best, best_value = player, value
    return best


def game_winner(history: List[RoundResult]) -> Optional[str]:
    """Player with the highest cumulative profit over a session."""
    totals: Dict[str, float] = {}
    for result in history:
        for player, round_profit in result.profits.items():
            totals[player] = totals.get(player, 0.0) + round_profit
    return _leader(totals)


def aggregate(histories: Dict[str, List[RoundResult]]) -> Dict[str, PlayerAggregator]:
    """Fold every completed session's rounds into per-player totals."""
    aggregator: Dict[str, PlayerAggregator] = {}

    for session_id, history in histories.items():
        winner = game_winner(history)

        for result in history:
            profits = result.profits
            if not profits:
                continue
            round_winner = _leader(profits)
            ranked = sorted(profits.values(), reverse=True)
            total_players = len(ranked)

            for player, round_profit in profits.items():
                stats = aggregator.setdefault(player, PlayerAggregator())
                stats.total_profit += round_profit
                stats.total_share += result.market_shares.get(player, 0.0)
                stats.rounds_played += 1
                stats.games_played.add(session_id)

                if player == round_winner:
                    stats.rounds_won += 1
                if player == winner:
                    stats.games_won.add(session_id)

                if round_profit > stats.best_single_round_profit:
                    stats.best_single_round_profit = round_profit
                    stats.best_game_round = (session_id, result.round)

                # Ties share the best rank among them
                rank = ranked.index(round_profit) + 1
                percentile = 1 - (rank - 1) / total_players
                stats.consistency_score += (percentile - stats.consistency_score) / stats.rounds_played

    return aggregator


def build_leaderboard(histories: Dict[str, List[RoundResult]]) -> List[LeaderboardEntry]:
    """Leaderboard entries sorted by points, highest first, with ranks set."""
    aggregator = aggregate(histories)
    if not aggregator:
        return []

    max_profit = max(stats.total_profit for stats in aggregator.values())
    entries = []
    for player, stats in aggregator.items():
        best_game, best_round = stats.best_game_round or (None, None)
        entries.append(LeaderboardEntry(
            username=player,
            total_profit=stats.total_profit,
            average_market_share=stats.total_share / stats.rounds_played if stats.rounds_played else 0.0,
            rounds_played=stats.rounds_played,
            rounds_won=stats.rounds_won,
            games_played=len(stats.games_played),
            games_won=len(stats.games_won),
            best_single_round_profit=stats.best_single_round_profit,
            best_game=best_game,
            best_round=best_round,
            consistency_score=stats.consistency_score,
            leaderboard_points=calculate_leaderboard_points(
                len(stats.games_won),
                stats.rounds_won,
                stats.total_profit,
                max_profit,
                stats.consistency_score,
                len(stats.games_played),
                stats.rounds_played,
            ),
        ))

    return sort_leaderboard(entries)


def sort_leaderboard(entries: Iterable[LeaderboardEntry], order_by: str = "leaderboard_points",
                     descending: bool = True) -> List[LeaderboardEntry]:
    """Sort by any column and renumber ranks to match; 'rank' sorts by points."""
    if order_by not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort leaderboard by: {order_by}")
    key = "leaderboard_points" if order_by == "rank" else order_by
    ordered = sorted(entries, key=lambda e: getattr(e, key), reverse=descending)
    return [replace(entry, rank=i + 1) for i, entry in enumerate(ordered)]
