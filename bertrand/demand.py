"""
Demand models for the repeated Bertrand game.

Each round every player names a price (their bid). Consumers split between
a player and that player's rivals according to a demand model:

- Logit demand: share_i = exp(-alpha * p_i) / sum_j exp(-alpha * p_j)
- Linear demand: share_i = p_i / sum_j p_j (the older scheduled settlement)

A bid of 0 means the player sat the round out: it captures nothing and is
left out of everyone else's denominator.
"""

from dataclasses import dataclass
import math
from typing import Dict, List


DEFAULT_ALPHA = 0.1  # Price sensitivity
DEFAULT_MARKET_SIZE = 1000  # Total market size Q

LOGIT = "logit"
LINEAR = "linear"


def market_share(bid: float, rival_bids: List[float], alpha: float = DEFAULT_ALPHA) -> float:
    """
    Logit market share of a bid against its rivals.

    share = exp(-alpha * b) / (exp(-alpha * b) + sum over non-zero r of exp(-alpha * r))

    A zero bid gets nothing. A non-zero bid facing no rivals, or only
    zero-bid rivals, takes the whole market.
    """
    if bid == 0:
        return 0.0

    active_rivals = [r for r in rival_bids if r != 0]
    if not active_rivals:
        return 1.0

    player_exp = math.exp(-alpha * bid)
    total_exp = player_exp + sum(math.exp(-alpha * r) for r in active_rivals)
    return player_exp / total_exp


def profit(bid: float, share: float, cost: float, market_size: float = DEFAULT_MARKET_SIZE) -> float:
    """Profit = quantity sold * margin, with quantity = market_size * share."""
    quantity_sold = market_size * share
    return quantity_sold * (bid - cost)


def linear_market_share(bid: float, rival_bids: List[float]) -> float:
    """Bid-proportional share; same zero-bid and sole-bidder rules as logit."""
    if bid == 0:
        return 0.0

    active_rivals = [r for r in rival_bids if r != 0]
    if not active_rivals:
        return 1.0

    return bid / (bid + sum(active_rivals))


def linear_profit(bid: float, share: float, cost: float, market_size: float = DEFAULT_MARKET_SIZE) -> float:
    """Revenue from the captured market less a per-unit cost on the bid."""
    return share * market_size - bid * cost


@dataclass(frozen=True)
class DemandModel:
    """A named share/profit pair. Sessions pick one and keep it."""
    name: str
    alpha: float = DEFAULT_ALPHA
    market_size: float = DEFAULT_MARKET_SIZE

    def share(self, bid: float, rival_bids: List[float]) -> float:
        if self.name == LINEAR:
            return linear_market_share(bid, rival_bids)
        return market_share(bid, rival_bids, self.alpha)

    def profit(self, bid: float, share: float, cost: float) -> float:
        if self.name == LINEAR:
            return linear_profit(bid, share, cost, self.market_size)
        return profit(bid, share, cost, self.market_size)


DEMAND_MODELS = (LOGIT, LINEAR)


def get_demand_model(name: str, alpha: float = DEFAULT_ALPHA,
                     market_size: float = DEFAULT_MARKET_SIZE) -> DemandModel:
    """Look up a demand model by name."""
    if name not in DEMAND_MODELS:
        raise ValueError(f"Unknown demand model: {name}")
    return DemandModel(name=name, alpha=alpha, market_size=market_size)


def all_market_shares(bids: Dict[str, float], alpha: float = DEFAULT_ALPHA) -> Dict[str, float]:
    """Logit share of every bidder against all the other bidders."""
    shares = {}
    for player_id, bid in bids.items():
        rival_bids = [b for other, b in bids.items() if other != player_id]
        shares[player_id] = market_share(bid, rival_bids, alpha)
    return shares


def all_profits(bids: Dict[str, float], shares: Dict[str, float], cost: float,
                market_size: float = DEFAULT_MARKET_SIZE) -> Dict[str, float]:
    """Profit of every bidder given precomputed shares."""
    return {
        player_id: profit(bid, shares.get(player_id, 0.0), cost, market_size)
        for player_id, bid in bids.items()
    }
