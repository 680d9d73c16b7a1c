"""
flowstate.state

Observable state container and the execution-state model it hosts.

Public API:
- StateManager: generic observable box (get/set/update/subscribe/snapshot/reset)
- ReadOnlyStateView: narrow view handed to observers
- ExecutionState, ExecutionStatus, ExecutionMetadata: the run payload
- create_default_execution_state: idle seed value for a fresh container
- ExecutionStateMachine: lifecycle-validating wrapper over a container
"""

from flowstate.state.manager import StateListener, StateManager, Unsubscribe
from flowstate.state.types import (
    ExecutionMetadata,
    ExecutionState,
    ExecutionStatus,
    check_invariants,
    create_default_execution_state,
)
from flowstate.state.view import ReadOnlyStateView
from flowstate.state.transitions import (
    TRANSITIONS,
    ExecutionEvent,
    ExecutionStateMachine,
    can_transition,
    next_status,
)

__all__ = [
    "StateListener",
    "StateManager",
    "Unsubscribe",
    "ExecutionMetadata",
    "ExecutionState",
    "ExecutionStatus",
    "check_invariants",
    "create_default_execution_state",
    "ReadOnlyStateView",
    "TRANSITIONS",
    "ExecutionEvent",
    "ExecutionStateMachine",
    "can_transition",
    "next_status",
]
