"""
Test layer.

Fresh execution state containers with a recording listener already
attached, for asserting on the exact sequence of emitted states.
"""

from __future__ import annotations

from typing import List, Optional

from flowstate.config import ListenerFaultPolicy
from flowstate.state.manager import StateManager
from flowstate.state.transitions import Clock, ExecutionStateMachine, utc_now
from flowstate.state.types import (
    ExecutionState,
    ExecutionStatus,
    create_default_execution_state,
)


class RecordingListener:
    def __init__(self) -> None:
        self.states: List[ExecutionState] = []

    def __call__(self, state: ExecutionState) -> None:
        self.states.append(state)

    @property
    def statuses(self) -> List[ExecutionStatus]:
        return [s.status for s in self.states]

    @property
    def last(self) -> Optional[ExecutionState]:
        return self.states[-1] if self.states else None

    def clear(self) -> None:
        self.states.clear()


class TestLayer:
    # not a pytest test class
    __test__ = False

    def __init__(
        self,
        *,
        listener_faults: ListenerFaultPolicy = "raise",
        clock: Clock = utc_now,
    ) -> None:
        self.manager: StateManager[ExecutionState] = StateManager(
            create_default_execution_state(),
            listener_faults=listener_faults,
        )
        self.machine = ExecutionStateMachine(self.manager, clock=clock)
        self.recorder = RecordingListener()
        self.unsubscribe = self.manager.subscribe(self.recorder)

    def assert_statuses(self, *expected: ExecutionStatus | str) -> None:
        wanted = [ExecutionStatus(s) for s in expected]
        assert self.recorder.statuses == wanted, (
            f"expected {[s.value for s in wanted]}, "
            f"got {[s.value for s in self.recorder.statuses]}"
        )
