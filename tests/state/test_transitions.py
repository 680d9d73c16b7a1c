import threading
from datetime import datetime, timedelta, timezone

import pytest

from flowstate.errors import ExecutionCancelled, InvalidTransitionError, ListenerError
from flowstate.state import transitions as tr
from flowstate.state.manager import StateManager
from flowstate.state.transitions import (
    TRANSITIONS,
    ExecutionEvent,
    ExecutionStateMachine,
    can_transition,
    next_status,
)
from flowstate.state.types import (
    ExecutionStatus,
    check_invariants,
    create_default_execution_state,
)


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# --------------------------------------------------
# Helpers
# --------------------------------------------------

def ticking_clock(start=T0, step=timedelta(milliseconds=250)):
    ticks = {"now": start - step}

    def clock():
        ticks["now"] += step
        return ticks["now"]

    return clock


def make_machine(**kwargs):
    manager = StateManager(create_default_execution_state(), listener_faults="raise")
    machine = ExecutionStateMachine(manager, clock=ticking_clock(), **kwargs)
    seen = []
    manager.subscribe(seen.append)
    return machine, seen


# --------------------------------------------------
# Table
# --------------------------------------------------

def test_table_matches_lifecycle():
    S, E = ExecutionStatus, ExecutionEvent

    assert next_status(S.IDLE, E.START) == S.RUNNING
    assert next_status(S.RUNNING, E.STEP_ADVANCE) == S.RUNNING
    assert next_status(S.RUNNING, E.PAUSE) == S.PAUSED
    assert next_status(S.PAUSED, E.RESUME) == S.RUNNING
    assert next_status(S.RUNNING, E.FINISH_OK) == S.COMPLETED
    assert next_status(S.RUNNING, E.FINISH_ERROR) == S.ERROR
    assert next_status(S.PAUSED, E.FINISH_ERROR) == S.ERROR
    assert next_status(S.COMPLETED, E.RESET) == S.IDLE
    assert next_status(S.ERROR, E.RESET) == S.IDLE
    assert len(TRANSITIONS) == 9


@pytest.mark.parametrize(
    "status,event",
    [
        (ExecutionStatus.IDLE, ExecutionEvent.PAUSE),
        (ExecutionStatus.IDLE, ExecutionEvent.RESET),
        (ExecutionStatus.COMPLETED, ExecutionEvent.START),
        (ExecutionStatus.COMPLETED, ExecutionEvent.RESUME),
        (ExecutionStatus.PAUSED, ExecutionEvent.FINISH_OK),
        (ExecutionStatus.PAUSED, ExecutionEvent.STEP_ADVANCE),
        (ExecutionStatus.ERROR, ExecutionEvent.STEP_ADVANCE),
    ],
)
def test_unlisted_transitions_are_rejected(status, event):
    assert not can_transition(status, event)

    with pytest.raises(InvalidTransitionError) as exc_info:
        next_status(status, event)

    assert exc_info.value.from_status == status
    assert exc_info.value.event == event


# --------------------------------------------------
# Pure functions
# --------------------------------------------------

def test_start_sets_start_time_and_clears_outcome():
    state = tr.start(create_default_execution_state(), step_count=3, first_step="a", now=T0)

    assert state.status == ExecutionStatus.RUNNING
    assert state.current_step == "a"
    assert state.metadata.start_time == T0
    assert state.metadata.step_count == 3
    assert state.result is None and state.error is None
    assert check_invariants(state) == []


def test_advance_cannot_pass_step_count():
    state = tr.start(create_default_execution_state(), step_count=1, now=T0)
    state = tr.advance(state)

    with pytest.raises(InvalidTransitionError):
        tr.advance(state)


def test_complete_records_duration_in_milliseconds():
    state = tr.start(create_default_execution_state(), now=T0)
    state = tr.complete(state, "done", now=T0 + timedelta(seconds=1.5))

    assert state.metadata.duration == 1500.0
    assert state.current_step is None
    assert check_invariants(state) == []


# --------------------------------------------------
# State machine
# --------------------------------------------------

def test_full_lifecycle_through_state_machine():
    machine, seen = make_machine()

    machine.start(step_count=2, first_step="s1")
    machine.advance("s2")
    machine.pause()
    assert machine.state.current_step == "s2"

    machine.resume()
    assert machine.state.current_step == "s2"

    machine.advance()
    final = machine.complete(42)

    assert [s.status.value for s in seen] == [
        "running", "running", "paused", "running", "running", "completed",
    ]
    assert final.result == 42
    assert final.metadata.completed_steps == 2
    assert final.metadata.end_time is not None
    assert final.metadata.duration > 0
    assert all(check_invariants(s) == [] for s in seen)


def test_fail_from_paused():
    machine, _ = make_machine()
    machine.start()
    machine.pause()

    state = machine.fail(RuntimeError("io"))

    assert state.status == ExecutionStatus.ERROR
    assert isinstance(state.error, RuntimeError)
    assert state.result is None
    assert state.metadata.end_time is not None


def test_invalid_transition_never_reaches_container():
    machine, seen = make_machine()

    with pytest.raises(InvalidTransitionError):
        machine.pause()

    assert seen == []
    assert machine.status == ExecutionStatus.IDLE


def test_terminal_state_requires_reset():
    machine, seen = make_machine()
    machine.start()
    machine.complete("ok")

    with pytest.raises(InvalidTransitionError):
        machine.start()

    state = machine.reset()

    assert state == create_default_execution_state()
    assert seen[-1].status == ExecutionStatus.IDLE

    machine.start()
    assert machine.status == ExecutionStatus.RUNNING


def test_cancel_marks_context_and_error():
    machine, _ = make_machine()
    machine.start(context={"user": "x"})

    state = machine.cancel("stopped by user")

    assert state.status == ExecutionStatus.ERROR
    assert isinstance(state.error, ExecutionCancelled)
    assert state.error.reason == "stopped by user"
    assert state.context == {"user": "x", "cancelled": True}


def test_listener_fault_surfaces_after_commit():
    machine, _ = make_machine()

    def bad(state):
        raise RuntimeError("render failed")

    machine.subscribe(bad)

    with pytest.raises(ListenerError):
        machine.start()

    assert machine.status == ExecutionStatus.RUNNING


def test_view_exposes_reads_and_subscribe_only():
    machine, _ = make_machine()
    view = machine.view()
    seen = []
    view.subscribe(seen.append)

    machine.start()

    assert view.get_state().status == ExecutionStatus.RUNNING
    assert view.snapshot() is machine.state
    assert seen[-1] is machine.state
    assert not hasattr(view, "set_state")
    assert not hasattr(view, "reset")


def test_concurrent_resets_commit_exactly_once():
    machine, seen = make_machine()
    machine.start()
    machine.complete("ok")
    outcomes = []
    barrier = threading.Barrier(4)

    def worker():
        barrier.wait()
        try:
            machine.reset()
            outcomes.append("reset")
        except InvalidTransitionError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["rejected", "rejected", "rejected", "reset"]
    assert [s.status for s in seen].count(ExecutionStatus.IDLE) == 1
    assert machine.status == ExecutionStatus.IDLE
