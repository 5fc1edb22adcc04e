"""Connection readiness state machine and READY/SYNC notification registry."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Callback = Callable[[], Any]
Dispatch = Callable[[Callable[[], None]], Any]


class ReadinessState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


def _run_inline(fn: Callable[[], None]) -> None:
    fn()


class ReadinessController:
    """Tracks whether a connection is usable and notifies observers.

    State moves CONNECTING -> READY or CONNECTING -> FAILED, never back.
    READY observers fire once; SYNC observers fire on every sync event, in
    registration order. Transitions and registry changes happen under one
    lock, and callbacks run after it is released through ``dispatch``
    (inline unless the async façade posts them to its worker).
    """

    def __init__(self, dispatch: Dispatch | None = None) -> None:
        self._lock = threading.Lock()
        self._ready_event = threading.Event()
        self._state = ReadinessState.CONNECTING
        self._error: BaseException | None = None
        self._on_ready: list[Callback] = []
        self._on_sync: list[Callback] = []
        self._dispatch: Dispatch = dispatch or _run_inline

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        return self._error

    def is_ready(self) -> bool:
        # Snapshot read; the state field is replaced atomically
        return self._state is ReadinessState.READY

    def set_dispatch(self, dispatch: Dispatch | None) -> None:
        with self._lock:
            self._dispatch = dispatch or _run_inline

    def on_ready(self, callback: Callback) -> None:
        """Fire ``callback`` once the connection is ready, or right away if it already is."""
        with self._lock:
            if self._state is not ReadinessState.READY:
                if self._state is ReadinessState.CONNECTING:
                    self._on_ready.append(callback)
                return
            dispatch = self._dispatch
        self._fire(dispatch, [callback], "ready")

    def on_sync(self, callback: Callback) -> None:
        with self._lock:
            self._on_sync.append(callback)

    def mark_ready(self) -> bool:
        """Move to READY and fire pending READY observers. Returns False if already settled."""
        with self._lock:
            if self._state is not ReadinessState.CONNECTING:
                return False
            self._state = ReadinessState.READY
            pending, self._on_ready = self._on_ready, []
            dispatch = self._dispatch
        self._ready_event.set()
        logger.info("Connection ready")
        self._fire(dispatch, pending, "ready")
        return True

    def mark_failed(self, error: BaseException) -> bool:
        """Move to FAILED, dropping pending READY observers. Returns False if already settled."""
        with self._lock:
            if self._state is not ReadinessState.CONNECTING:
                return False
            self._state = ReadinessState.FAILED
            self._error = error
            self._on_ready = []
        self._ready_event.set()
        logger.warning("Connection failed: %s", error)
        return True

    def notify_sync(self) -> None:
        with self._lock:
            observers = list(self._on_sync)
            dispatch = self._dispatch
        logger.debug("Sync event, %d observer(s)", len(observers))
        self._fire(dispatch, observers, "sync")

    def wait_ready(self, timeout: float | None = None) -> bool:
        """Block until the state settles; True if READY. There is no implicit timeout."""
        self._ready_event.wait(timeout)
        return self._state is ReadinessState.READY

    def _fire(self, dispatch: Dispatch, callbacks: list[Callback], event: str) -> None:
        for callback in callbacks:
            dispatch(self._guarded(callback, event))

    @staticmethod
    def _guarded(callback: Callback, event: str) -> Callable[[], None]:
        def run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Error in %s callback %r", event, callback)

        return run
