"""
Timer Primitives
================

Timers are the only concurrency primitive of the canvas: one recurring timer
per playing player card, plus one shared timer for the task scheduler.

Two interchangeable factories are provided:

- ``ThreadTimerFactory``: each timer runs on its own daemon thread. Callers are
  expected to guard shared state (``CanvasState`` does this with its lock).
- ``TkTimerFactory``: schedules callbacks on a Tk event loop through
  ``widget.after`` / ``widget.after_cancel``; everything runs on the UI thread.

``TimerRegistry`` owns timers keyed by an entity id and guarantees at most one
live timer per key.
"""

import logging
import threading
from typing import Callable, Dict, Hashable, List, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellation token for a scheduled callback."""

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        raise NotImplementedError


class _ThreadTimer(TimerHandle):
    def __init__(self, interval_ms: int, callback: Callable[[], None], repeat: bool, name: str):
        self._interval = max(interval_ms, 0) / 1000.0
        self._callback = callback
        self._repeat = repeat
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._callback()
            except Exception as e:
                logger.error(f"Timer callback failed: {type(e).__name__}: {e}", exc_info=True)
            if not self._repeat:
                self._stopped.set()

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()


class ThreadTimerFactory:
    """Timers backed by daemon threads."""

    def __init__(self, name: str = "Timer"):
        self.name = name
        self._count = 0
        self._lock = threading.Lock()

    def _next_name(self) -> str:
        with self._lock:
            self._count += 1
            return f"{self.name}-{self._count}"

    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> TimerHandle:
        return _ThreadTimer(interval_ms, callback, repeat=True, name=self._next_name())

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        return _ThreadTimer(delay_ms, callback, repeat=False, name=self._next_name())


class _TkTimer(TimerHandle):
    def __init__(self, widget, interval_ms: int, callback: Callable[[], None], repeat: bool):
        self._widget = widget
        self._interval = interval_ms
        self._callback = callback
        self._repeat = repeat
        self._after_id = None
        self._active = True
        self._schedule()

    def _schedule(self) -> None:
        self._after_id = self._widget.after(self._interval, self._fire)

    def _fire(self) -> None:
        self._after_id = None
        if not self._active:
            return
        if not self._repeat:
            self._active = False
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Timer callback failed: {type(e).__name__}: {e}", exc_info=True)
        # The callback may have cancelled us
        if self._active and self._repeat:
            self._schedule()

    def cancel(self) -> None:
        self._active = False
        if self._after_id is not None:
            self._widget.after_cancel(self._after_id)
            self._after_id = None

    @property
    def active(self) -> bool:
        return self._active


class TkTimerFactory:
    """
    Timers scheduled on a Tk widget's event loop.

    Args:
        widget: Any object exposing Tk's ``after(ms, fn)`` and
            ``after_cancel(id)`` (a root window or frame).
    """

    def __init__(self, widget):
        self.widget = widget

    def call_every(self, interval_ms: int, callback: Callable[[], None]) -> TimerHandle:
        return _TkTimer(self.widget, interval_ms, callback, repeat=True)

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        return _TkTimer(self.widget, delay_ms, callback, repeat=False)


class TimerRegistry:
    """
    Recurring timers indexed by entity id.

    Starting a timer for a key that already has one cancels the old timer
    first, so each key has at most one live timer.
    """

    def __init__(self, factory=None):
        self.factory = factory or ThreadTimerFactory(name="PlaybackTimer")
        self._timers: Dict[Hashable, TimerHandle] = {}
        self._lock = threading.RLock()

    def start(self, key: Hashable, interval_ms: int, callback: Callable[[], None]) -> TimerHandle:
        with self._lock:
            self.cancel(key)
            handle = self.factory.call_every(interval_ms, callback)
            self._timers[key] = handle
            return handle

    def cancel(self, key: Hashable) -> bool:
        """Cancel the timer for ``key``. Returns False if there was none."""
        with self._lock:
            handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug(f"Cancelled timer {key!r}")
        return True

    def cancel_all(self) -> None:
        with self._lock:
            keys = list(self._timers)
        for key in keys:
            self.cancel(key)

    def get(self, key: Hashable) -> Optional[TimerHandle]:
        return self._timers.get(key)

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._timers)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._timers

    def __len__(self) -> int:
        return len(self._timers)
