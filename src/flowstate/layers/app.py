"""
Application layer.

Wires execution state containers into a registry of named runs,
starts runs from registered programs, and exposes their current state
over HTTP. Runs are reported from the container, not the executor.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import APIRouter, FastAPI, HTTPException

from flowstate.api.schemas import (
    ExecutionListResponse,
    ExecutionStateSchema,
    HealthResponse,
    SubmitRunRequest,
)
from flowstate.config import configure_logging, settings
from flowstate.engine.executor import Program, StepExecutor
from flowstate.errors import InvalidTransitionError
from flowstate.state.transitions import ExecutionStateMachine
from flowstate.state.types import ExecutionState, ExecutionStatus


logger = logging.getLogger(__name__)


class ExecutionRegistry:
    """
    Named runs and the programs they can be started from.

    The registry lock only guards its own dicts. Machines are shared
    with request threads and rely on their container lock.
    """

    def __init__(self):
        self._runs: Dict[str, ExecutionStateMachine] = {}
        self._executors: Dict[str, StepExecutor] = {}
        self._programs: Dict[str, Program] = {}
        self._lock = threading.Lock()

    def create(self, run_id: Optional[str] = None) -> Tuple[str, ExecutionStateMachine]:
        run_id = run_id or str(uuid.uuid4())
        machine = ExecutionStateMachine()
        with self._lock:
            if run_id in self._runs:
                raise ValueError(f"Run '{run_id}' already exists")
            self._runs[run_id] = machine
        logger.debug(f"registered run {run_id}")
        return run_id, machine

    def get(self, run_id: str) -> ExecutionStateMachine:
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(run_id)
            return self._runs[run_id]

    def list(self) -> List[Tuple[str, ExecutionStateMachine]]:
        with self._lock:
            return list(self._runs.items())

    def remove(self, run_id: str) -> None:
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(run_id)
            del self._runs[run_id]
            self._executors.pop(run_id, None)

    # ----------------------------
    # Programs and submitted runs
    # ----------------------------

    def register_program(self, name: str, program: Program) -> None:
        with self._lock:
            self._programs[name] = program

    def get_program(self, name: str) -> Program:
        with self._lock:
            if name not in self._programs:
                raise KeyError(name)
            return self._programs[name]

    def get_executor(self, run_id: str) -> StepExecutor:
        with self._lock:
            if run_id not in self._executors:
                raise KeyError(run_id)
            return self._executors[run_id]

    def submit(
        self,
        program: Program,
        *,
        run_id: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        background: bool = True,
    ) -> Tuple[str, StepExecutor]:
        """
        Register a run for program and execute it.

        With background=True the run happens on a daemon thread and
        callers observe it through the registry.
        """
        run_id, machine = self.create(run_id)
        executor = StepExecutor(program, state_machine=machine)
        with self._lock:
            self._executors[run_id] = executor

        def worker():
            try:
                executor.run(context)
            except Exception:
                logger.exception(f"Run {run_id} raised while executing")

        if background:
            threading.Thread(target=worker, daemon=True).start()
        else:
            worker()

        return run_id, executor


class ProgressTracker:
    """
    Listener that turns execution states into progress lines.
    """

    def __init__(self) -> None:
        self.lines: List[str] = []
        self.progress: float = 0.0

    def __call__(self, state: ExecutionState) -> None:
        meta = state.metadata
        if state.status == ExecutionStatus.COMPLETED:
            self.progress = 1.0
        elif meta.step_count > 0:
            self.progress = meta.completed_steps / meta.step_count
        else:
            self.progress = 0.0

        line = f"[{state.status.value}] {meta.completed_steps}/{meta.step_count}"
        if state.current_step:
            line += f" step={state.current_step}"
        self.lines.append(line)


def create_router(registry: ExecutionRegistry, *, background: bool = True) -> APIRouter:
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(ok=True)

    @router.get("/executions", response_model=ExecutionListResponse)
    def list_executions():
        return ExecutionListResponse(
            ok=True,
            executions=[
                ExecutionStateSchema.from_state(machine.state, run_id=run_id)
                for run_id, machine in registry.list()
            ],
        )

    @router.get("/executions/{run_id}", response_model=ExecutionStateSchema)
    def get_execution(run_id: str):
        try:
            machine = registry.get(run_id)
        except KeyError:
            raise HTTPException(
                status_code=404,
                detail={"type": "NotFound", "message": "Execution not found"},
            )
        return ExecutionStateSchema.from_state(machine.state, run_id=run_id)

    @router.post("/programs/{name}/runs", response_model=ExecutionStateSchema)
    def submit_run(name: str, req: Optional[SubmitRunRequest] = None):
        try:
            program = registry.get_program(name)
        except KeyError:
            raise HTTPException(
                status_code=404,
                detail={"type": "NotFound", "message": "Program not found"},
            )

        context = req.context if req is not None else {}
        run_id, executor = registry.submit(program, context=context, background=background)
        return ExecutionStateSchema.from_state(executor.state, run_id=run_id)

    @router.post("/executions/{run_id}/reset", response_model=ExecutionStateSchema)
    def reset_execution(run_id: str):
        try:
            machine = registry.get(run_id)
        except KeyError:
            raise HTTPException(
                status_code=404,
                detail={"type": "NotFound", "message": "Execution not found"},
            )

        try:
            state = machine.reset()
        except InvalidTransitionError as e:
            raise HTTPException(
                status_code=409,
                detail={"type": e.__class__.__name__, "code": e.code, "message": e.message},
            )
        return ExecutionStateSchema.from_state(state, run_id=run_id)

    return router


def create_app(
    registry: Optional[ExecutionRegistry] = None,
    *,
    background: bool = True,
) -> FastAPI:
    configure_logging()
    registry = registry if registry is not None else ExecutionRegistry()

    app = FastAPI(title=settings.service_name)
    app.state.registry = registry
    app.include_router(create_router(registry, background=background))
    return app
