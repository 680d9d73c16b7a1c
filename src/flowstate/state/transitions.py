"""
Execution Lifecycle Transitions
===============================

Purpose:
- Encode the legal lifecycle moves of an ExecutionState
- Reject illegal moves before anything reaches the container
- Provide pure transition functions usable as container updaters

This module:
- DOES NOT run steps
- DOES NOT notify anyone itself (the container does)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from flowstate.errors import ExecutionCancelled, InvalidTransitionError
from flowstate.state.manager import StateListener, StateManager, Unsubscribe
from flowstate.state.types import (
    ExecutionState,
    ExecutionStatus,
    create_default_execution_state,
)
from flowstate.state.view import ReadOnlyStateView


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ExecutionEvent(str, Enum):
    START        = "start"
    STEP_ADVANCE = "step-advance"
    PAUSE        = "pause"
    RESUME       = "resume"
    FINISH_OK    = "finish-ok"
    FINISH_ERROR = "finish-error"
    RESET        = "reset"


_S = ExecutionStatus
_E = ExecutionEvent

TRANSITIONS: Dict[Tuple[ExecutionStatus, ExecutionEvent], ExecutionStatus] = {
    (_S.IDLE,      _E.START):        _S.RUNNING,
    (_S.RUNNING,   _E.STEP_ADVANCE): _S.RUNNING,
    (_S.RUNNING,   _E.PAUSE):        _S.PAUSED,
    (_S.PAUSED,    _E.RESUME):       _S.RUNNING,
    (_S.RUNNING,   _E.FINISH_OK):    _S.COMPLETED,
    (_S.RUNNING,   _E.FINISH_ERROR): _S.ERROR,
    (_S.PAUSED,    _E.FINISH_ERROR): _S.ERROR,
    (_S.COMPLETED, _E.RESET):        _S.IDLE,
    (_S.ERROR,     _E.RESET):        _S.IDLE,
}


def can_transition(status: ExecutionStatus, event: ExecutionEvent) -> bool:
    return (status, event) in TRANSITIONS


def next_status(status: ExecutionStatus, event: ExecutionEvent) -> ExecutionStatus:
    """
    Target status for (status, event).

    Raises:
        InvalidTransitionError when the pair is not in the table.
    """
    try:
        return TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(status, event) from None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _duration_ms(start: Optional[datetime], end: datetime) -> Optional[float]:
    if start is None:
        return None
    return (end - start).total_seconds() * 1000.0


# ---------------------------------------------------------------------------
# Pure transition functions (ExecutionState -> ExecutionState)
# ---------------------------------------------------------------------------

def start(
    state: ExecutionState,
    *,
    step_count: int = 0,
    first_step: Optional[str] = None,
    context: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> ExecutionState:
    status = next_status(state.status, _E.START)
    if step_count < 0:
        raise InvalidTransitionError(state.status, _E.START, "step_count must be >= 0")

    return replace(
        state,
        status=status,
        current_step=first_step,
        context=dict(context) if context is not None else dict(state.context),
        result=None,
        error=None,
        metadata=replace(
            state.metadata,
            start_time=now or utc_now(),
            end_time=None,
            duration=None,
            step_count=step_count,
            completed_steps=0,
        ),
    )


def advance(
    state: ExecutionState,
    next_step: Optional[str] = None,
    *,
    context: Optional[Mapping[str, Any]] = None,
) -> ExecutionState:
    """
    Count the step in flight as completed and move to next_step.
    """
    status = next_status(state.status, _E.STEP_ADVANCE)
    meta = state.metadata
    completed = meta.completed_steps + 1

    if meta.step_count > 0 and completed > meta.step_count:
        raise InvalidTransitionError(
            state.status,
            _E.STEP_ADVANCE,
            f"all {meta.step_count} steps already completed",
        )

    return replace(
        state,
        status=status,
        current_step=next_step,
        context=dict(context) if context is not None else state.context,
        metadata=replace(meta, completed_steps=completed),
    )


def pause(state: ExecutionState) -> ExecutionState:
    return replace(state, status=next_status(state.status, _E.PAUSE))


def resume(state: ExecutionState) -> ExecutionState:
    return replace(state, status=next_status(state.status, _E.RESUME))


def complete(
    state: ExecutionState,
    result: Any = None,
    *,
    now: Optional[datetime] = None,
) -> ExecutionState:
    status = next_status(state.status, _E.FINISH_OK)
    end = now or utc_now()
    return replace(
        state,
        status=status,
        current_step=None,
        result=result,
        error=None,
        metadata=replace(
            state.metadata,
            end_time=end,
            duration=_duration_ms(state.metadata.start_time, end),
        ),
    )


def fail(
    state: ExecutionState,
    error: BaseException,
    *,
    context: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> ExecutionState:
    status = next_status(state.status, _E.FINISH_ERROR)
    end = now or utc_now()
    return replace(
        state,
        status=status,
        current_step=None,
        context=dict(context) if context is not None else state.context,
        result=None,
        error=error,
        metadata=replace(
            state.metadata,
            end_time=end,
            duration=_duration_ms(state.metadata.start_time, end),
        ),
    )


def cancel(
    state: ExecutionState,
    reason: str = "cancelled",
    *,
    now: Optional[datetime] = None,
) -> ExecutionState:
    """
    Cancellation is a finish-error carrying ExecutionCancelled.
    """
    return fail(
        state,
        ExecutionCancelled(reason),
        context={**state.context, "cancelled": True},
        now=now,
    )


# ---------------------------------------------------------------------------
# Validating wrapper
# ---------------------------------------------------------------------------

class ExecutionStateMachine:
    """
    Guards a StateManager[ExecutionState] with the lifecycle table.

    Every method checks the transition against the committed state
    first and only then calls update_state, so rejected moves never
    reach the container or its listeners. The updater checks again
    under the container lock, which makes check and commit atomic
    when several threads share one machine.
    """

    def __init__(
        self,
        manager: Optional[StateManager[ExecutionState]] = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.manager: StateManager[ExecutionState] = (
            manager if manager is not None
            else StateManager(create_default_execution_state())
        )
        self.clock = clock

    @property
    def state(self) -> ExecutionState:
        return self.manager.get_state()

    @property
    def status(self) -> ExecutionStatus:
        return self.state.status

    def subscribe(self, listener: StateListener[ExecutionState]) -> Unsubscribe:
        return self.manager.subscribe(listener)

    def view(self) -> ReadOnlyStateView[ExecutionState]:
        return ReadOnlyStateView(self.manager)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        *,
        step_count: int = 0,
        first_step: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionState:
        self._guard(_E.START)
        now = self.clock()
        return self._commit(
            lambda s: start(
                s, step_count=step_count, first_step=first_step,
                context=context, now=now,
            )
        )

    def advance(
        self,
        next_step: Optional[str] = None,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionState:
        self._guard(_E.STEP_ADVANCE)
        return self._commit(lambda s: advance(s, next_step, context=context))

    def pause(self) -> ExecutionState:
        self._guard(_E.PAUSE)
        return self._commit(pause)

    def resume(self) -> ExecutionState:
        self._guard(_E.RESUME)
        return self._commit(resume)

    def complete(self, result: Any = None) -> ExecutionState:
        self._guard(_E.FINISH_OK)
        now = self.clock()
        return self._commit(lambda s: complete(s, result, now=now))

    def fail(
        self,
        error: BaseException,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionState:
        self._guard(_E.FINISH_ERROR)
        now = self.clock()
        return self._commit(lambda s: fail(s, error, context=context, now=now))

    def cancel(self, reason: str = "cancelled") -> ExecutionState:
        self._guard(_E.FINISH_ERROR)
        now = self.clock()
        return self._commit(lambda s: cancel(s, reason, now=now))

    def reset(self) -> ExecutionState:
        """
        Back to the container's initial value, one notification pass.

        Same effect as manager.reset(), but the terminal check runs
        inside the commit so a concurrent transition cannot slip in
        between check and reset.
        """
        self._guard(_E.RESET)
        initial = self.manager.initial

        def to_initial(state: ExecutionState) -> ExecutionState:
            next_status(state.status, _E.RESET)
            return initial

        return self._commit(to_initial)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _guard(self, event: ExecutionEvent) -> None:
        status = self.status
        if not can_transition(status, event):
            logger.warning(f"Rejected transition '{event.value}' from '{status.value}'")
            raise InvalidTransitionError(status, event)

    def _commit(self, updater: Callable[[ExecutionState], ExecutionState]) -> ExecutionState:
        before = self.status
        self.manager.update_state(updater)
        logger.debug(f"execution {before.value} -> {self.status.value}")
        return self.state
