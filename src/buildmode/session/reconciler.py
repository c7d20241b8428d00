"""Periodic reconciliation timer.

Runs a callback (normally ``SessionManager.reconcile``) every
``interval_seconds`` on a daemon thread.  The timer never touches session
state itself.

Classes
-------
- ReconciliationLoop  — start/stop/restart-able periodic runner
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ReconciliationLoop:
    """Calls ``callback`` every ``interval_seconds`` until stopped.

    Each start creates its own stop event, so a restart never lets the old
    thread observe the new thread's state.  A callback that raises is logged
    and the loop keeps running.

    Parameters
    ----------
    callback:
        Zero-argument callable run on every tick.
    interval_seconds:
        Delay between ticks.  The first tick happens one interval after
        ``start``.
    name:
        Thread name, useful in thread dumps.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        interval_seconds: float,
        name: str = "buildmode-reconcile",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds!r}")
        self._callback = callback
        self._interval = interval_seconds
        self._name = name
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking.  Does nothing if already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event, self._interval),
                name=self._name,
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()
        logger.debug("Reconciliation loop started (interval=%ss)", self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop ticking and wait up to ``timeout`` seconds for the thread."""
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is None or thread is None:
            return
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Reconciliation loop stopped")

    def restart(self, interval_seconds: float | None = None) -> None:
        """Stop, optionally change the interval, and start again."""
        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError(
                    f"interval_seconds must be positive, got {interval_seconds!r}"
                )
            self._interval = interval_seconds
        self.stop()
        self.start()

    def _run(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("Reconciliation tick failed")

    def __repr__(self) -> str:
        return f"ReconciliationLoop(interval={self._interval!r}, running={self.running})"
