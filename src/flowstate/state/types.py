"""
Execution State Contract
========================

Defines the payload an executor keeps inside a StateManager.

Key guarantees:
- Values are immutable; every change is a replacement
- A default state is always idle with zeroed counters
- Terminal statuses are explicit (completed, error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Lifecycle status
# ---------------------------------------------------------------------------

class ExecutionStatus(str, Enum):
    IDLE      = "idle"
    RUNNING   = "running"
    PAUSED    = "paused"      # step in flight is retained
    COMPLETED = "completed"   # terminal
    ERROR     = "error"       # terminal

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.ERROR)

    @property
    def is_active(self) -> bool:
        return self in (ExecutionStatus.RUNNING, ExecutionStatus.PAUSED)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExecutionMetadata:
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    # milliseconds between start_time and end_time
    duration: Optional[float] = None

    step_count: int = 0
    completed_steps: int = 0


# ---------------------------------------------------------------------------
# Execution state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExecutionState:
    """
    Snapshot of one interpreter run.

    Rules:
    - current_step only while running or paused
    - result only when completed, error only when failed
    - end_time set exactly when the status is terminal
    - context is never mutated in place; build a new dict instead
    """

    status: ExecutionStatus = ExecutionStatus.IDLE
    current_step: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[BaseException] = None
    metadata: ExecutionMetadata = field(default_factory=ExecutionMetadata)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


def create_default_execution_state() -> ExecutionState:
    return ExecutionState(
        status=ExecutionStatus.IDLE,
        context={},
        metadata=ExecutionMetadata(step_count=0, completed_steps=0),
    )


# ---------------------------------------------------------------------------
# Invariant checks
# ---------------------------------------------------------------------------

def check_invariants(state: ExecutionState) -> List[str]:
    """
    Return every invariant the state violates (empty when consistent).
    """
    problems: List[str] = []
    meta = state.metadata

    if meta.step_count < 0 or meta.completed_steps < 0:
        problems.append("step counters must be non-negative")

    if meta.step_count > 0 and meta.completed_steps > meta.step_count:
        problems.append(
            f"completed_steps ({meta.completed_steps}) exceeds "
            f"step_count ({meta.step_count})"
        )

    if state.status.is_terminal != (meta.end_time is not None):
        problems.append("end_time must be set exactly when status is terminal")

    if state.current_step is not None and not state.status.is_active:
        problems.append("current_step is only allowed while running or paused")

    if state.result is not None and state.error is not None:
        problems.append("result and error are mutually exclusive")

    if state.result is not None and state.status != ExecutionStatus.COMPLETED:
        problems.append("result requires status 'completed'")

    if state.error is not None and state.status != ExecutionStatus.ERROR:
        problems.append("error requires status 'error'")

    return problems
