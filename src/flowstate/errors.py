from __future__ import annotations

from typing import Any, List, Optional


class FlowStateError(Exception):
    """
    Structured flowstate error.

    Carries a stable machine-readable code next to the human
    message so callers can branch on the code and show the message.
    """

    code = "FLOWSTATE"

    def __init__(self, message: str, *, code: Optional[str] = None):
        self.code = code or self.code
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ListenerError(FlowStateError):
    """
    One or more listeners raised during a notification pass.

    The state that triggered the pass is already committed.
    """

    code = "LISTENER_FAULT"

    def __init__(self, errors: List[BaseException], state: Any):
        self.errors = list(errors)
        self.state = state
        noun = "listener" if len(self.errors) == 1 else "listeners"
        super().__init__(
            f"{len(self.errors)} {noun} failed: "
            + "; ".join(f"{type(e).__name__}: {e}" for e in self.errors)
        )


class InvalidTransitionError(FlowStateError):
    code = "INVALID_TRANSITION"

    def __init__(self, from_status: Any, event: Any, detail: str = ""):
        self.from_status = from_status
        self.event = event
        message = f"Cannot apply '{_value(event)}' while '{_value(from_status)}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ExecutionCancelled(FlowStateError):
    code = "CANCELLED"

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(reason)


class StepFailed(FlowStateError):
    code = "STEP_FAILED"

    def __init__(self, step_id: str, cause: BaseException):
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"Step '{step_id}' failed: {type(cause).__name__}: {cause}")


class ExecutorError(FlowStateError):
    code = "EXECUTOR"


def _value(obj: Any) -> Any:
    return getattr(obj, "value", obj)
