import pytest

from bertrand.engine import GameEngine
from bertrand.models import GameConfig, GameState, Player
from bertrand.rivalries import round_robin
from bertrand.store import InMemoryGameStore


START_MS = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


def round_state(bids, players=None, rivalries=None, timed_out=(), **overrides):
    """A state with a round in flight and the given bids already submitted."""
    names = list(players or bids)
    player_map = {
        name: Player(
            name=name,
            current_bid=bids.get(name),
            has_submitted_bid=name in bids,
            is_timed_out=name in timed_out,
        )
        for name in names
    }
    fields = dict(
        has_game_started=True,
        is_active=True,
        current_round=1,
        total_rounds=3,
        round_time_limit=60,
        round_start_time=START_MS,
        min_bid=0,
        max_bid=100,
        cost_per_unit=50,
        players=player_map,
        round_bids=dict(bids),
        rivalries=rivalries if rivalries is not None else round_robin(names),
    )
    fields.update(overrides)
    return GameState(**fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryGameStore(clock=clock)


@pytest.fixture
def engine(store, clock):
    return GameEngine(store, clock=clock)


@pytest.fixture
def config():
    return GameConfig(
        total_rounds=2,
        round_time_limit=60,
        min_bid=1,
        max_bid=100,
        cost_per_unit=50,
        max_players=10,
    )


@pytest.fixture
def session(engine, config):
    """A session with two registered players, Alice and Bob."""
    session = engine.create_session("Test Game", config)
    engine.register_player(session.id, "Alice")
    engine.register_player(session.id, "Bob")
    return session
