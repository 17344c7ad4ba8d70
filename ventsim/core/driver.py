"""
Real-time driver for the simulation engine.

Wakes up periodically on a background thread, converts elapsed wall-clock
time into whole fixed-size engine steps and reports the latest snapshot.
Because only whole `dt` steps are taken, driver-advanced runs perform the
same per-tick arithmetic as calling `engine.tick(dt)` directly.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .constants import DRIVER_MAX_FRAME_SEC, DRIVER_MAX_STEPS

logger = logging.getLogger(__name__)


class RealTimeDriver:
    def __init__(self, engine, on_tick: Optional[Callable] = None,
                 interval: float = 0.05, speed: float = 1.0,
                 clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.on_tick = on_tick
        self.interval = interval
        self.speed = speed
        self.clock = clock

        self.time_accumulator = 0.0
        self.last_real_time = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start ticking; no-op if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self.time_accumulator = 0.0
        self.last_real_time = self.clock()
        self._thread = threading.Thread(target=self._run, name="ventsim-driver", daemon=True)
        self._thread.start()
        logger.info("Real-time driver started (interval %.3fs, speed %.1fx)", self.interval, self.speed)

    def stop(self):
        """Stop ticking; safe to call repeatedly. No tick fires after return."""
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join()
        self._thread = None
        logger.info("Real-time driver stopped")

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.advance()
            except Exception:
                logger.exception("Simulation tick failed; stopping driver")
                self._stop_event.set()
                raise

    def advance(self, now: float = None) -> int:
        """
        Consume elapsed wall-clock time in fixed engine steps.

        Returns the number of steps taken.
        """
        now = self.clock() if now is None else now
        if self.last_real_time is None:
            self.last_real_time = now
        dt_real = now - self.last_real_time
        self.last_real_time = now

        if dt_real > DRIVER_MAX_FRAME_SEC:
            dt_real = DRIVER_MAX_FRAME_SEC
        self.time_accumulator += max(0.0, dt_real) * self.speed

        sim_step = self.engine.config.dt
        steps_taken = 0
        snapshot = None
        while self.time_accumulator >= sim_step:
            if self._stop_event.is_set():
                break
            snapshot = self.engine.tick(sim_step)
            self.time_accumulator -= sim_step
            steps_taken += 1
            if steps_taken >= DRIVER_MAX_STEPS:
                self.time_accumulator = 0.0
                break

        if snapshot is not None and self.on_tick is not None:
            self.on_tick(snapshot)
        return steps_taken
