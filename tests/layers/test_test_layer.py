import pytest

from flowstate.errors import ListenerError
from flowstate.layers.test import RecordingListener, TestLayer
from flowstate.state.types import ExecutionStatus


def test_recording_listener_captures_lifecycle():
    layer = TestLayer()

    layer.machine.start(step_count=1, first_step="only")
    layer.machine.advance()
    layer.machine.complete("ok")

    layer.assert_statuses("running", "running", "completed")
    assert layer.recorder.last.result == "ok"


def test_assert_statuses_reports_mismatch():
    layer = TestLayer()
    layer.machine.start()

    with pytest.raises(AssertionError):
        layer.assert_statuses(ExecutionStatus.COMPLETED)


def test_unsubscribe_detaches_recorder():
    layer = TestLayer()
    layer.unsubscribe()

    layer.machine.start()

    assert layer.recorder.states == []


def test_first_listener_fault_does_not_starve_second():
    """
    The first subscriber raises; the recorder subscribed after it
    still sees the committed value.
    """
    layer = TestLayer()
    layer.unsubscribe()

    def bad(state):
        raise RuntimeError("boom")

    layer.manager.subscribe(bad)
    second = RecordingListener()
    layer.manager.subscribe(second)

    with pytest.raises(ListenerError):
        layer.machine.start()

    assert second.statuses == [ExecutionStatus.RUNNING]
    assert layer.manager.get_state().status == ExecutionStatus.RUNNING


def test_clear_resets_recording():
    layer = TestLayer(listener_faults="log")
    layer.machine.start()
    layer.recorder.clear()

    assert layer.recorder.last is None
