"""
flowstate

Observable state container and execution-state model for step-wise
interpreters.
"""

from flowstate.errors import (
    ExecutionCancelled,
    ExecutorError,
    FlowStateError,
    InvalidTransitionError,
    ListenerError,
    StepFailed,
)
from flowstate.state import (
    ExecutionEvent,
    ExecutionMetadata,
    ExecutionState,
    ExecutionStateMachine,
    ExecutionStatus,
    ReadOnlyStateView,
    StateManager,
    create_default_execution_state,
)

__all__ = [
    "ExecutionCancelled",
    "ExecutorError",
    "FlowStateError",
    "InvalidTransitionError",
    "ListenerError",
    "StepFailed",
    "ExecutionEvent",
    "ExecutionMetadata",
    "ExecutionState",
    "ExecutionStateMachine",
    "ExecutionStatus",
    "ReadOnlyStateView",
    "StateManager",
    "create_default_execution_state",
]
