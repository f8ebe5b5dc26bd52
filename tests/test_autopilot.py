import asyncio

import pytest

from bertrand.autopilot import AutopilotScheduler
from bertrand.errors import NotFoundError
from bertrand.monitoring import DAY_MS, FAILURE, SUCCESS, AutopilotLogEntry, AutopilotMonitor, InMemoryLogSink


@pytest.fixture
def scheduler(engine):
    return AutopilotScheduler(engine, interval=0.01)


def entries(scheduler, action=None):
    return [e for e in scheduler.monitor.sink.entries if action is None or e.action == action]


def test_toggle_is_logged(scheduler, session):
    state = scheduler.toggle_autopilot(session.id, True)
    assert state.autopilot.enabled

    (entry,) = entries(scheduler, "toggle")
    assert entry.session_id == session.id
    assert entry.status == SUCCESS
    assert entry.details == {"enabled": True}


def test_toggle_failure_is_logged(scheduler):
    with pytest.raises(NotFoundError):
        scheduler.toggle_autopilot("missing", True)
    (entry,) = entries(scheduler, "toggle")
    assert entry.status == FAILURE


def test_nothing_due_before_deadline(scheduler, engine, session, clock):
    scheduler.toggle_autopilot(session.id, True)
    engine.start_round(session.id)
    clock.advance(59)

    assert scheduler.due_sessions() == []
    assert scheduler.run_once() == []
    assert engine.get_state(session.id).round_active


def test_sessions_without_autopilot_are_left_alone(scheduler, engine, session, clock):
    engine.start_round(session.id)
    clock.advance(600)
    assert scheduler.due_sessions() == []


def test_expired_round_is_settled_with_timeouts(scheduler, engine, session, clock):
    scheduler.toggle_autopilot(session.id, True)
    engine.start_round(session.id)
    engine.submit_bid(session.id, "Alice", 60)
    clock.advance(60)

    assert scheduler.due_sessions() == [session.id]
    (settlement,) = scheduler.run_once()

    assert settlement.result.bids == {"Alice": 60, "Bob": 100}
    state = engine.get_state(session.id)
    assert not state.round_active
    assert state.current_round == 2
    assert state.autopilot.enabled

    (entry,) = entries(scheduler, "process_round")
    assert entry.status == SUCCESS
    assert entry.details == {
        "round": 1,
        "total_rounds": 2,
        "player_count": 2,
        "processed_bids": 2,
        "timeout_bids": 1,
    }


def test_extended_round_is_not_due(scheduler, engine, session, clock):
    scheduler.toggle_autopilot(session.id, True)
    engine.start_round(session.id)
    engine.extend_round_time(session.id, 30)
    clock.advance(75)
    assert scheduler.due_sessions() == []
    clock.advance(15)
    assert scheduler.due_sessions() == [session.id]


def test_final_round_turns_autopilot_off(scheduler, engine, session, clock):
    scheduler.toggle_autopilot(session.id, True)
    for _ in range(2):
        engine.start_round(session.id)
        clock.advance(61)
        scheduler.run_once()

    state = engine.get_state(session.id)
    assert state.is_ended
    assert not state.autopilot.enabled
    assert len(state.round_history) == 2
    assert scheduler.run_once() == []


def test_already_settled_round_is_a_noop(scheduler, engine, session, clock):
    scheduler.toggle_autopilot(session.id, True)
    engine.start_round(session.id)
    engine.submit_bid(session.id, "Alice", 60)
    engine.submit_bid(session.id, "Bob", 40)
    engine.end_current_round(session.id)

    assert scheduler.process_session(session.id) is None
    assert entries(scheduler, "process_round") == []


def test_one_failing_session_does_not_stop_the_scan(scheduler, engine, config, clock, monkeypatch):
    sessions = []
    for name in ("First", "Second"):
        session = engine.create_session(name, config)
        engine.register_player(session.id, "Alice")
        engine.register_player(session.id, "Bob")
        scheduler.toggle_autopilot(session.id, True)
        engine.start_round(session.id)
        sessions.append(session.id)
    clock.advance(61)

    real_end = engine.end_current_round

    def flaky_end(session_id, autopilot=False):
        if session_id == "first":
            raise RuntimeError("store unavailable")
        return real_end(session_id, autopilot=autopilot)

    monkeypatch.setattr(engine, "end_current_round", flaky_end)
    settled = scheduler.run_once()

    assert [s.result.round for s in settled] == [1]
    assert not engine.get_state("second").round_active
    assert engine.get_state("first").round_active

    failures = [e for e in entries(scheduler, "process_round") if e.status == FAILURE]
    assert [e.session_id for e in failures] == ["first"]
    assert failures[0].details == {"round": 1, "error": "store unavailable"}


def test_run_forever_settles_in_the_background(scheduler, engine, session, clock):
    scheduler.toggle_autopilot(session.id, True)
    engine.start_round(session.id)
    clock.advance(61)

    async def run():
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

    asyncio.run(run())
    assert scheduler.task is None
    assert engine.get_state(session.id).current_round == 2


def test_monitor_cleanup(clock):
    monitor = AutopilotMonitor(clock=clock)
    monitor.log_event("old", "process_round", SUCCESS)
    clock.advance(31 * DAY_MS / 1000)
    monitor.log_event("new", "process_round", SUCCESS)

    assert monitor.cleanup(retention_days=30) == 1
    assert [e.session_id for e in monitor.sink.entries] == ["new"]
    assert monitor.cleanup(retention_days=30) == 0


def test_scan_runs_cleanup_once_a_day(scheduler, clock):
    scheduler.monitor.log_event("old", "process_round", SUCCESS)
    scheduler.run_once()
    clock.advance(40 * DAY_MS / 1000)
    scheduler.run_once()
    assert entries(scheduler) == []


def test_failing_sink_is_swallowed(clock):
    class BrokenSink(InMemoryLogSink):
        def write(self, entry: AutopilotLogEntry) -> None:
            raise IOError("disk full")

        def delete_before(self, cutoff: int) -> int:
            raise IOError("disk full")

    monitor = AutopilotMonitor(sink=BrokenSink(), clock=clock)
    monitor.log_event("s", "toggle", SUCCESS, {"enabled": True})
    assert monitor.cleanup() == 0
