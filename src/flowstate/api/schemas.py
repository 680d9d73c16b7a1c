from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from flowstate.config import settings
from flowstate.state.types import ExecutionState


class HealthResponse(BaseModel):
    ok: bool = True
    service: str = Field(default_factory=lambda: settings.service_name)


class ExecutionMetadataSchema(BaseModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    step_count: int = Field(0, ge=0)
    completed_steps: int = Field(0, ge=0)


class ExecutionStateSchema(BaseModel):
    run_id: Optional[str] = None
    status: str  # idle|running|paused|completed|error
    current_step: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[dict[str, Any]] = None
    metadata: ExecutionMetadataSchema

    @classmethod
    def from_state(
        cls,
        state: ExecutionState,
        *,
        run_id: Optional[str] = None,
    ) -> "ExecutionStateSchema":
        error = None
        if state.error is not None:
            error = {
                "type": state.error.__class__.__name__,
                "message": str(state.error),
            }

        meta = state.metadata
        return cls(
            run_id=run_id,
            status=state.status.value,
            current_step=state.current_step,
            context=dict(state.context),
            result=state.result,
            error=error,
            metadata=ExecutionMetadataSchema(
                start_time=meta.start_time,
                end_time=meta.end_time,
                duration=meta.duration,
                step_count=meta.step_count,
                completed_steps=meta.completed_steps,
            ),
        )


class ExecutionListResponse(BaseModel):
    ok: bool = True
    executions: list[ExecutionStateSchema] = Field(default_factory=list)


class SubmitRunRequest(BaseModel):
    context: dict[str, Any] = Field(default_factory=dict)
