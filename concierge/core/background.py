"""
Fixed-interval background loops.

Used for hygiene work that must never block message processing (the
session expiry sweep, scheduled delivery hooks). Each loop runs on its own
daemon thread. A tick that is still running when the next one is due is
skipped, not queued.
"""

import threading
from typing import Callable, Optional

from concierge.core.logger import get_logger


class IntervalLoop:
    """Run tick() every interval_sec on a daemon thread."""

    def __init__(self, name: str, interval_sec: float, tick: Callable[[], object]):
        """
        Args:
            name: Thread name and log label
            interval_sec: Seconds between tick starts (minimum 0.05)
            tick: Callable run each interval; exceptions are logged, never raised
        """
        self.name = name
        self.interval_sec = max(0.05, float(interval_sec))
        self._tick = tick

        self._lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self.ticks_run = 0
        self.ticks_skipped = 0
        self.ticks_failed = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def start(self) -> None:
        """Start the loop thread (no-op if already running)."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._stop_event.clear()

        self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()
        get_logger().debug(f"[LOOP] {self.name} started (interval={self.interval_sec}s)")

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the loop thread."""
        with self._lock:
            self._running = False
        self._stop_event.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        get_logger().debug(f"[LOOP] {self.name} stopped")

    def tick_once(self) -> bool:
        """
        Run one tick now unless one is already in flight.

        Returns:
            True if the tick ran (even if it raised), False if it was skipped
        """
        if not self._tick_lock.acquire(blocking=False):
            self.ticks_skipped += 1
            get_logger().debug(f"[LOOP] {self.name} tick skipped (previous still running)")
            return False
        try:
            self._tick()
            self.ticks_run += 1
        except Exception as e:
            self.ticks_failed += 1
            get_logger().error(f"[LOOP] {self.name} tick error: {e}")
        finally:
            self._tick_lock.release()
        return True

    def _run_loop(self) -> None:
        """Background thread loop."""
        while not self._stop_event.wait(self.interval_sec):
            with self._lock:
                if not self._running:
                    break
            # overrunning ticks are skipped by tick_once, not queued
            worker = threading.Thread(target=self.tick_once, name=f"{self.name}-tick", daemon=True)
            worker.start()
