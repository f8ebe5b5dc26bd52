"""
LLM bot bidders: automated seats that price like any other player.

A bot reads the market rules and its own recent rounds, answers with a
price, and the last number in its reply becomes its bid, clamped into the
session's bid range.
"""

from dataclasses import dataclass, field
import logging
import re
from typing import Optional

from shared.llm_player import LLMPlayer
from .models import GameState


logger = logging.getLogger(__name__)

NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")


def get_prompt(name: str, state: GameState) -> str:
    """Standing instructions for a bot seated in a session."""
    return f"""You are {name}, a firm in a repeated price competition.

MARKET STRUCTURE:
- Your marginal cost is ${state.cost_per_unit:.2f} per unit
- Each round every firm simultaneously names a price between ${state.min_bid:.2f} and ${state.max_bid:.2f}
- Customers split between you and your rivals by a logit rule: lower prices win more customers
- The market holds {state.market_size:.0f} customers per round
- Profit = customers won * (your price - cost), so pricing below cost loses money
- Naming a price of 0 means sitting out: you win nothing and are charged your best rival's profit

YOUR GOAL:
Maximize YOUR total profit over {state.total_rounds} rounds.

RESPONSE FORMAT:
Reason briefly, then end your response with your price as a plain number on its own line."""


def format_history(state: GameState, name: str, last_n: int = 5) -> str:
    """Recent rounds from one player's point of view."""
    if not state.round_history:
        return "No rounds played yet. This is the first round."

    recent = state.round_history[-last_n:]
    lines = [f"Recent rounds (showing last {len(recent)} of {len(state.round_history)}):"]
    for result in recent:
        if name not in result.bids:
            continue
        rival_prices = ", ".join(
            f"${result.bids[r]:.2f}" for r in state.rivalries.get(name, []) if r in result.bids
        ) or "none"
        lines.append(
            f"  R{result.round}: You=${result.bids[name]:.2f}, Rivals={rival_prices} -> "
            f"Share={result.market_shares.get(name, 0.0):.1%}, Profit=${result.profits.get(name, 0.0):.2f}"
        )

    stats = state.player_stats.get(name)
    if stats:
        lines.append(f"\nCumulative profit: ${stats.total_profit:.2f}")
    return "\n".join(lines)


def parse_bid(raw: str, min_bid: float, max_bid: float) -> float:
    """Last number in the final lines of a reply, clamped to the bid range."""
    lines = raw.strip().split("\n")
    for line in reversed(lines[-5:]):
        matches = NUMBER_PATTERN.findall(line.replace(",", "").replace("$", ""))
        if matches:
            value = float(matches[-1])
            return min(max_bid, max(min_bid, value))

    # Default to the middle of the range
    return (min_bid + max_bid) / 2


@dataclass
class BotBidder:
    """One LLM-driven seat in one session."""
    name: str
    model_id: str
    player: Optional[LLMPlayer] = field(default=None, repr=False)

    def choose_bid(self, state: GameState) -> float:
        if self.player is None:
            self.player = LLMPlayer(self.model_id, get_prompt(self.name, state))

        message = (
            f"{format_history(state, self.name)}\n\n"
            f"Round {state.current_round} of {state.total_rounds}. "
            f"Name your price ({state.min_bid:.2f}-{state.max_bid:.2f}):"
        )
        response = self.player.get_response(message)
        bid = parse_bid(response.raw_response, state.min_bid, state.max_bid)
        logger.info("Bot %s (%s) bids %.2f in round %d", self.name, self.model_id, bid, state.current_round)
        return bid
