from __future__ import annotations

from typing import Generic, TypeVar

from flowstate.state.manager import StateListener, StateManager, Unsubscribe


T = TypeVar("T")


class ReadOnlyStateView(Generic[T]):
    """Observer-facing view of a StateManager: read and subscribe only."""

    __slots__ = ("_manager",)

    def __init__(self, manager: StateManager[T]) -> None:
        self._manager = manager

    def get_state(self) -> T:
        return self._manager.get_state()

    def snapshot(self) -> T:
        return self._manager.snapshot()

    def subscribe(self, listener: StateListener[T]) -> Unsubscribe:
        return self._manager.subscribe(listener)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._manager!r})"
