"""
Step Executor
=============

Responsibilities:
- Run an ordered program of opaque steps
- Drive the ExecutionState lifecycle through the state machine
- Honor cooperative pause / resume / cancel between steps
- Record step faults as an error state

Non-responsibilities:
- No instruction set (a step is any callable)
- No scheduling beyond strict program order
- No persistence of state
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from flowstate.errors import ExecutorError, ListenerError, StepFailed
from flowstate.state.manager import StateManager
from flowstate.state.transitions import ExecutionStateMachine
from flowstate.state.types import ExecutionState, ExecutionStatus
from flowstate.state.view import ReadOnlyStateView


logger = logging.getLogger(__name__)

StepID = str
StepFn = Callable[[Dict[str, Any]], Optional[Mapping[str, Any]]]


@dataclass(frozen=True)
class Step:
    """
    One program step.

    run receives a private copy of the context. A returned mapping is
    merged into the context once the step has succeeded.
    """

    step_id: StepID
    run: StepFn


@dataclass(frozen=True)
class Program:
    steps: Tuple[Step, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        self._validate_step_ids_unique()

    def __len__(self) -> int:
        return len(self.steps)

    def _validate_step_ids_unique(self) -> None:
        seen = set()
        for step in self.steps:
            if step.step_id in seen:
                raise ExecutorError(f"Duplicate step_id: '{step.step_id}'")
            seen.add(step.step_id)


class StepExecutor:
    """
    Deterministic executor for step programs.
    """

    def __init__(
        self,
        program: Program,
        manager: Optional[StateManager[ExecutionState]] = None,
        *,
        state_machine: Optional[ExecutionStateMachine] = None,
    ) -> None:
        if manager is not None and state_machine is not None:
            raise ExecutorError("Pass either a manager or a state_machine, not both")

        self.program = program
        self.state_machine = state_machine or ExecutionStateMachine(manager)
        self._cursor = 0
        self._pause_requested = False
        self._listener_faults: List[BaseException] = []

    @property
    def manager(self) -> StateManager[ExecutionState]:
        return self.state_machine.manager

    @property
    def state(self) -> ExecutionState:
        return self.state_machine.state

    def view(self) -> ReadOnlyStateView[ExecutionState]:
        return self.state_machine.view()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run(self, context: Optional[Mapping[str, Any]] = None) -> ExecutionState:
        """
        Execute the program from the first step.

        Returns the state the run stopped in: completed, error, or
        paused when a pause was requested. Listener faults raised while
        committing do not stop the run; they are re-raised together as
        one ListenerError once it has stopped.
        """
        if self.state_machine.status != ExecutionStatus.IDLE:
            raise ExecutorError(
                f"Cannot run while '{self.state_machine.status.value}'; reset first"
            )

        self._cursor = 0
        self._pause_requested = False
        self._listener_faults = []

        steps = self.program.steps
        self._commit(
            self.state_machine.start,
            step_count=len(steps),
            first_step=steps[0].step_id if steps else None,
            context=context,
        )
        logger.debug(f"run started with {len(steps)} steps")
        return self._finish(self._drive())

    def resume(self) -> ExecutionState:
        if self.state_machine.status != ExecutionStatus.PAUSED:
            raise ExecutorError(
                f"Cannot resume while '{self.state_machine.status.value}'"
            )
        self._pause_requested = False
        self._listener_faults = []
        self._commit(self.state_machine.resume)
        logger.debug(f"run resumed at step {self._cursor}")
        return self._finish(self._drive())

    def request_pause(self) -> None:
        """
        Ask the run to pause before its next step.

        Safe to call from inside a step or a listener.
        """
        self._pause_requested = True

    def cancel(self, reason: str = "cancelled") -> ExecutionState:
        self._pause_requested = False
        return self.state_machine.cancel(reason)

    def reset(self) -> ExecutionState:
        state = self.state_machine.reset()
        self._cursor = 0
        self._pause_requested = False
        return state

    # ------------------------------------------------------------------
    # Internal loop
    # ------------------------------------------------------------------

    def _drive(self) -> ExecutionState:
        steps = self.program.steps

        while self._cursor < len(steps):
            if self._pause_requested:
                self._pause_requested = False
                return self._commit(self.state_machine.pause)

            # a listener or step may have cancelled the run
            if self.state_machine.status != ExecutionStatus.RUNNING:
                return self.state

            step = steps[self._cursor]
            try:
                updates = self._execute_step(step)
            except StepFailed as e:
                logger.debug(f"step '{step.step_id}' failed: {e.cause!r}")
                # the step may have cancelled the run before raising
                if self.state_machine.status != ExecutionStatus.RUNNING:
                    return self.state
                return self._commit(self.state_machine.fail, e)

            if self.state_machine.status != ExecutionStatus.RUNNING:
                return self.state

            self._cursor += 1
            next_step = steps[self._cursor].step_id if self._cursor < len(steps) else None
            context = {**self.state.context, **updates} if updates else None
            self._commit(self.state_machine.advance, next_step, context=context)

        if self.state_machine.status != ExecutionStatus.RUNNING:
            return self.state

        return self._commit(self.state_machine.complete, self.state.context.get("result"))

    def _commit(
        self,
        transition: Callable[..., ExecutionState],
        *args: Any,
        **kwargs: Any,
    ) -> ExecutionState:
        # A failing listener must not strand the run mid-flight: the
        # state is already committed, so keep driving and report later.
        try:
            return transition(*args, **kwargs)
        except ListenerError as e:
            self._listener_faults.extend(e.errors)
            return self.state

    def _finish(self, state: ExecutionState) -> ExecutionState:
        if self._listener_faults:
            faults, self._listener_faults = self._listener_faults, []
            raise ListenerError(faults, state)
        return state

    def _execute_step(self, step: Step) -> Optional[Mapping[str, Any]]:
        try:
            updates = step.run(dict(self.state.context))
        except Exception as e:
            raise StepFailed(step.step_id, e) from e

        if updates is not None and not isinstance(updates, Mapping):
            raise StepFailed(
                step.step_id,
                TypeError(f"step returned {type(updates).__name__}, expected a mapping"),
            )
        return updates
