"""Single-slot progress reporter for user-initiated operations.

Only the latest operation is shown.  Success and error outcomes clear
themselves after a delay: a timer on the running event loop does it when one
is available, and reads past the deadline report the slot as hidden in any
case.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal

logger = logging.getLogger(__name__)

Phase = Literal["pending", "success", "error"]


@dataclass(slots=True, frozen=True)
class OperationStatus:
    visible: bool = False
    phase: Phase = "pending"
    message: str = ""


HIDDEN = OperationStatus()

StatusListener = Callable[[OperationStatus], None]


class OperationStatusTracker:
    def __init__(
        self,
        *,
        success_clear_ms: int = 2000,
        error_clear_ms: int = 3000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._success_clear_ms = success_clear_ms
        self._error_clear_ms = error_clear_ms
        self._clock = clock
        self._current = HIDDEN
        self._expires_at: float | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._generation = 0
        self._listeners: list[StatusListener] = []

    @property
    def status(self) -> OperationStatus:
        if self._expires_at is not None and self._clock() >= self._expires_at:
            self._set(HIDDEN, None)
        return self._current

    def begin(self, message: str) -> None:
        self._set(OperationStatus(visible=True, phase="pending", message=message), None)

    def succeed(self, message: str, auto_clear_ms: int | None = None) -> None:
        delay = self._success_clear_ms if auto_clear_ms is None else auto_clear_ms
        self._set(OperationStatus(visible=True, phase="success", message=message), delay)

    def fail(self, message: str, auto_clear_ms: int | None = None) -> None:
        delay = self._error_clear_ms if auto_clear_ms is None else auto_clear_ms
        self._set(OperationStatus(visible=True, phase="error", message=message), delay)

    def dismiss(self) -> None:
        self._set(HIDDEN, None)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener called on every change; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _set(self, status: OperationStatus, clear_after_ms: int | None) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._generation += 1
        self._current = status
        self._expires_at = None

        if clear_after_ms is not None:
            delay = max(clear_after_ms, 0) / 1000
            self._expires_at = self._clock() + delay
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._handle = loop.call_later(delay, self._clear, self._generation)

        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:  # noqa: BLE001
                logger.exception("Operation status listener failed")

    def _clear(self, generation: int) -> None:
        # a newer status replaced the one this timer was scheduled for
        if generation != self._generation:
            return
        self._handle = None
        self._set(HIDDEN, None)


__all__ = ["HIDDEN", "OperationStatus", "OperationStatusTracker"]
