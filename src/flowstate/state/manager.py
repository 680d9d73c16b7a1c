"""
Observable State Container
==========================

Responsibilities:
- Hold exactly one committed value of type T
- Commit atomically (updater faults leave the value untouched)
- Notify listeners synchronously, in subscription order
- Reset to the value captured at construction

Non-responsibilities:
- No transition rules (the container commits whatever it is given)
- No defensive copies (snapshot returns the committed reference)
- No locking across calls (one lock guards each commit; listeners
  run after it is released)
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

from flowstate.config import ListenerFaultPolicy, settings
from flowstate.errors import ListenerError


logger = logging.getLogger(__name__)

T = TypeVar("T")

StateListener = Callable[[T], None]
Unsubscribe = Callable[[], None]


class _Subscription(Generic[T]):
    """
    One entry in the listener list.

    Wrapping the callable gives every subscribe() call its own
    identity, so the same function subscribed twice is removed
    one entry at a time.
    """

    __slots__ = ("listener",)

    def __init__(self, listener: StateListener[T]) -> None:
        self.listener = listener


class StateManager(Generic[T]):
    """
    Generic observable box around a single value.
    """

    def __init__(
        self,
        initial: T,
        *,
        listener_faults: Optional[ListenerFaultPolicy] = None,
    ) -> None:
        self._initial: T = initial
        self._current: T = initial
        self._subscriptions: List[_Subscription[T]] = []
        self._lock = threading.RLock()
        self.listener_faults: ListenerFaultPolicy = (
            listener_faults or settings.listener_faults
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> T:
        return self._current

    def snapshot(self) -> T:
        """
        Point-in-time capture of the committed value.

        Mutable payloads are not copied; copy-on-read is the caller's job.
        """
        return self.get_state()

    @property
    def initial(self) -> T:
        return self._initial

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_state(self, state: T) -> None:
        with self._lock:
            pass_listeners = self._commit(state)
        self._notify(state, pass_listeners)

    def update_state(self, updater: Callable[[T], T]) -> None:
        """
        Commit updater(current).

        The updater must be a pure function of the current value.
        If it raises, nothing is committed, no listener runs, and the
        exception reaches the caller unchanged.
        """
        with self._lock:
            next_state = updater(self._current)
            pass_listeners = self._commit(next_state)
        self._notify(next_state, pass_listeners)

    def reset(self) -> None:
        self.set_state(self._initial)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener[T]) -> Unsubscribe:
        subscription = _Subscription(listener)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            # identity match, not equality: only this entry goes
            with self._lock:
                for idx, entry in enumerate(self._subscriptions):
                    if entry is subscription:
                        del self._subscriptions[idx]
                        return

        return unsubscribe

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------

    def _commit(self, state: T) -> Tuple[_Subscription[T], ...]:
        # Caller holds the lock. The listener tuple is frozen with the
        # commit: subscribe/unsubscribe from inside a listener only
        # affects later passes.
        self._current = state
        return tuple(self._subscriptions)

    def _notify(self, state: T, pass_listeners: Tuple[_Subscription[T], ...]) -> None:
        errors: List[BaseException] = []

        for entry in pass_listeners:
            try:
                entry.listener(state)
            except Exception as e:
                name = getattr(entry.listener, "__qualname__", repr(entry.listener))
                logger.exception(f"State listener {name} failed")
                errors.append(e)

        if errors and self.listener_faults == "raise":
            raise ListenerError(errors, state)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(state={self._current!r}, "
            f"listeners={len(self._subscriptions)})"
        )
