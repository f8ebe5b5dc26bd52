"""
Round settlement: turns one round's simultaneous bids into market shares,
profits and the next game state.

Settlement never fails on missing data. Absent bids count as 0, players who
never bid on an autopilot deadline are charged the maximum bid, and a zero
bidder pays the best rival's profit as an opportunity cost.
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Tuple

from .demand import get_demand_model
from .models import AutopilotState, GameState, PlayerStats, RoundResult


@dataclass(frozen=True)
class Settlement:
    """Result of settling a round: next state plus summary counts."""
    state: GameState
    result: RoundResult
    player_count: int
    processed_bids: int
    timeout_bids: int

    @property
    def is_final(self) -> bool:
        return self.state.is_ended


def resolve_bids(state: GameState, resolve_timeouts: bool) -> Tuple[Dict[str, float], int]:
    """
    Complete the bid map for every registered player.

    With resolve_timeouts, players who are not timed out and never bid are
    assigned max_bid. Everyone else without a bid is recorded as 0.
    """
    bids: Dict[str, float] = {}
    timeouts = 0
    for name, player in state.players.items():
        if name in state.round_bids:
            bids[name] = state.round_bids[name]
        elif resolve_timeouts and not player.is_timed_out and not player.has_submitted_bid:
            bids[name] = state.max_bid
            timeouts += 1
        else:
            bids[name] = 0
    return bids, timeouts


def rivals_of(state: GameState, player: str) -> List[str]:
    """Named rivals; a game with no rivalry graph at all is round-robin."""
    if not state.rivalries:
        return [other for other in state.players if other != player]
    return [r for r in state.rivalries.get(player, []) if r in state.players]


def compute_round(state: GameState, bids: Dict[str, float]) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Market shares and profits for a complete bid map."""
    model = get_demand_model(state.demand_model, state.alpha, state.market_size)
    rivals = {name: rivals_of(state, name) for name in bids}

    shares: Dict[str, float] = {}
    for name, bid in bids.items():
        rival_bids = [bids.get(r, 0) for r in rivals[name]]
        shares[name] = model.share(bid, rival_bids)

    profits: Dict[str, float] = {}
    for name, bid in bids.items():
        if bid > 0:
            profits[name] = model.profit(bid, shares[name], state.cost_per_unit)

    # Zero bidders forfeit the round and pay the best rival's profit
    for name, bid in bids.items():
        if bid > 0:
            continue
        rival_profits = [profits[r] for r in rivals[name] if bids.get(r, 0) > 0]
        profits[name] = -max(rival_profits) if rival_profits else 0.0

    return shares, profits


def update_stats(stats: Dict[str, PlayerStats], result: RoundResult) -> Dict[str, PlayerStats]:
    """Fold one round into every player's running totals."""
    updated = dict(stats)
    for name, round_profit in result.profits.items():
        current = updated.get(name, PlayerStats())
        is_best = current.rounds_played == 0 or round_profit > current.best_round_profit
        updated[name] = PlayerStats(
            total_profit=current.total_profit + round_profit,
            total_market_share=current.total_market_share + result.market_shares.get(name, 0.0),
            rounds_played=current.rounds_played + 1,
            best_round=result.round if is_best else current.best_round,
            best_round_profit=round_profit if is_best else current.best_round_profit,
        )
    return updated


def settle_round(state: GameState, now: int, resolve_timeouts: bool = False) -> Settlement:
    """
    Settle the round in flight and return the next full state.

    The caller guarantees the round is in flight; clearing round_start_time
    here is what keeps a second settlement of the same round from running.
    """
    bids, timeouts = resolve_bids(state, resolve_timeouts)
    shares, profits = compute_round(state, bids)

    result = RoundResult(
        round=state.current_round,
        bids=bids,
        market_shares=shares,
        profits=profits,
        timestamp=now,
    )

    players = {
        name: replace(player, has_submitted_bid=False, current_bid=None)
        for name, player in state.players.items()
    }
    next_round = state.current_round + 1
    is_final = next_round > state.total_rounds

    autopilot = state.autopilot
    if autopilot.enabled:
        autopilot = AutopilotState(enabled=not is_final, last_update_time=now)

    next_state = replace(
        state,
        round_history=state.round_history + [result],
        round_bids={},
        players=players,
        player_stats=update_stats(state.player_stats, result),
        round_start_time=None,
        current_round=next_round,
        is_active=state.is_active and not is_final,
        is_ended=state.is_ended or is_final,
        autopilot=autopilot,
    )

    return Settlement(
        state=next_state,
        result=result,
        player_count=len(state.players),
        processed_bids=len(bids),
        timeout_bids=timeouts,
    )
