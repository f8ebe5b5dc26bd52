import pytest

from bertrand.leaderboard import (
    SCORING_WEIGHTS, build_leaderboard, calculate_leaderboard_points, game_winner,
    participation_factor, sort_leaderboard
)
from bertrand.models import RoundResult


def result(round_num, profits, shares=None):
    shares = shares or {name: 1 / len(profits) for name in profits}
    return RoundResult(
        round=round_num,
        bids={name: 50 for name in profits},
        market_shares=shares,
        profits=profits,
        timestamp=round_num * 1000,
    )


# Alice wins round 1 big, then loses heavily; Bob ends ahead overall
COMEBACK = [
    result(1, {"Alice": 100, "Bob": 50}),
    result(2, {"Alice": -200, "Bob": 10}),
]


def test_participation_factor():
    assert participation_factor(3, 15) == 1
    assert participation_factor(6, 40) == 1
    assert participation_factor(0, 0) == 0
    assert participation_factor(1, 2) == pytest.approx((1 / 3 + 2 / 15) / 2)


def test_points_formula():
    points = calculate_leaderboard_points(
        games_won=1, rounds_won=2, total_profit=50, max_profit=100,
        consistency_score=0.8, games_played=3, rounds_played=15,
    )
    w = SCORING_WEIGHTS
    expected = (w["GAME_WIN"] + 2 * w["ROUND_WIN"] + 3 * w["GAME_PLAYED"]
                + 15 * w["ROUND_PLAYED"] + 0.5 * w["PROFIT_SCALE"] + 0.8 * w["CONSISTENCY_SCALE"])
    assert points == pytest.approx(expected)


def test_no_profit_points_when_nobody_made_money():
    points = calculate_leaderboard_points(0, 0, -50, -10, 0, 1, 1)
    assert points == pytest.approx(SCORING_WEIGHTS["GAME_PLAYED"] + SCORING_WEIGHTS["ROUND_PLAYED"])


def test_game_winner_uses_final_totals():
    assert game_winner(COMEBACK) == "Bob"
    assert game_winner([]) is None


def test_build_leaderboard():
    entries = build_leaderboard({"s1": COMEBACK})
    assert [e.username for e in entries] == ["Bob", "Alice"]
    assert [e.rank for e in entries] == [1, 2]

    bob, alice = entries
    assert bob.games_won == 1 and alice.games_won == 0
    assert bob.rounds_won == 1 and alice.rounds_won == 1
    assert bob.games_played == alice.games_played == 1
    assert bob.rounds_played == 2
    assert bob.total_profit == pytest.approx(60)
    assert alice.total_profit == pytest.approx(-100)
    assert alice.best_single_round_profit == 100
    assert (alice.best_game, alice.best_round) == ("s1", 1)
    assert bob.consistency_score == pytest.approx(0.75)
    assert alice.consistency_score == pytest.approx(0.75)
    assert bob.average_market_share == pytest.approx(0.5)

    factor = participation_factor(1, 2)
    assert bob.leaderboard_points == pytest.approx(10 + 2 + 5 + 1 + 10 * factor + 0.75 * 5 * factor)
    assert alice.leaderboard_points == pytest.approx(
        2 + 5 + 1 + (-100 / 60) * 10 * factor + 0.75 * 5 * factor
    )


def test_ties_share_the_best_rank():
    entries = build_leaderboard({"s1": [result(1, {"A": 10, "B": 10, "C": 5})]})
    by_name = {e.username: e for e in entries}
    assert by_name["A"].consistency_score == 1
    assert by_name["B"].consistency_score == 1
    assert by_name["C"].consistency_score == pytest.approx(1 / 3)
    # First player seen takes a tied round
    assert by_name["A"].rounds_won == 1
    assert by_name["B"].rounds_won == 0


def test_players_across_sessions():
    histories = {
        "s1": COMEBACK,
        "s2": [result(1, {"Alice": 300, "Carol": 20})],
    }
    by_name = {e.username: e for e in build_leaderboard(histories)}
    assert by_name["Alice"].games_played == 2
    assert by_name["Alice"].games_won == 1
    assert by_name["Alice"].total_profit == pytest.approx(200)
    assert by_name["Alice"].best_game == "s2"
    assert by_name["Carol"].games_played == 1


def test_empty_leaderboard():
    assert build_leaderboard({}) == []


def test_sort_leaderboard():
    entries = build_leaderboard({"s1": COMEBACK})

    by_profit = sort_leaderboard(entries, "total_profit", descending=False)
    assert [(e.username, e.rank) for e in by_profit] == [("Alice", 1), ("Bob", 2)]

    by_rank = sort_leaderboard(by_profit, "rank")
    assert [e.username for e in by_rank] == ["Bob", "Alice"]

    with pytest.raises(ValueError):
        sort_leaderboard(entries, "password")
