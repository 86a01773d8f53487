import logging
import threading
from typing import Callable, Optional

# Configure logger for this module
logger = logging.getLogger(__name__)


class RecurringTask:
    """
    Runs `func` on a daemon thread: once after `initial_delay` seconds, then
    every `interval` seconds until `stop()` is called.

    Ticks never overlap since they run sequentially on the one thread. An
    exception raised by `func` is logged and the schedule carries on.
    """

    def __init__(self, func: Callable[[], object], interval: float, initial_delay: float = 0.0, name: str = "recurring-task"):
        self.func = func
        self.interval = interval
        self.initial_delay = initial_delay
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            logger.debug(f"RecurringTask: '{self.name}' already running.")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"RecurringTask: Started '{self.name}' (delay={self.initial_delay}s, interval={self.interval}s).")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info(f"RecurringTask: Stopped '{self.name}'.")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Blocks until the task's thread exits (after stop()) or the timeout passes."""
        if self._thread is not None:
            self._thread.join(timeout)

    def _loop(self) -> None:
        if self._stop_event.wait(self.initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                self.func()
            except Exception as e:
                logger.error(f"RecurringTask: '{self.name}' tick failed: {e}", exc_info=True)
            if self._stop_event.wait(self.interval):
                return
