"""
Per-engine request spacing for batch fan-out.
"""

from __future__ import annotations

import threading
import time
from typing import Callable


class EngineRateLimiter:
    """
    Enforces a minimum delay between successive calls to the same engine.

    Each engine has its own lock, so workers calling different engines never
    wait on each other while calls to one engine are serialized and spaced.
    """

    def __init__(
        self,
        *,
        delay_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._delay_seconds = max(0.0, delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_call_by_engine: dict[str, float] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, engine: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(engine)
            if lock is None:
                lock = threading.Lock()
                self._locks[engine] = lock
            return lock

    def wait(self, engine: str) -> None:
        """
        Sleep as needed so calls to ``engine`` are at least the delay apart.

        The first call to an engine never waits.
        """

        if self._delay_seconds <= 0:
            return

        with self._lock_for(engine):
            last_time = self._last_call_by_engine.get(engine)
            if last_time is not None:
                wait_seconds = self._delay_seconds - (self._clock() - last_time)
                if wait_seconds > 0:
                    self._sleep(wait_seconds)
            self._last_call_by_engine[engine] = self._clock()
