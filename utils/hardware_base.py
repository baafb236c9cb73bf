"""
Worker thread and retry helpers for location sources and collaborators.

FixWorker serialises location fixes from any producer thread into a single
consumer, preserving FIFO order so fixes reach the pipeline in the order
they were delivered. ExponentialBackoff spaces out retries of flaky
collaborators such as reverse geocoding.
"""

import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger('timeattack.worker')


class ExponentialBackoff:
    """
    Tracks consecutive failures and the delay before the next attempt.

    The first failure waits initial_delay, each further failure multiplies
    the delay by multiplier up to max_delay. A success resets everything.
    """

    def __init__(self, initial_delay: float = 1.0, multiplier: float = 2.0,
                 max_delay: float = 60.0):
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.consecutive_failures = 0
        self.current_delay = 0.0
        self._next_attempt = 0.0

    def record_failure(self):
        """Register a failed attempt and extend the delay."""
        self.consecutive_failures += 1
        if self.consecutive_failures == 1:
            delay = self.initial_delay
        else:
            delay = self.current_delay * self.multiplier
        self.current_delay = min(delay, self.max_delay)
        self._next_attempt = time.monotonic() + self.current_delay

    def record_success(self):
        self.reset()

    def reset(self):
        """Clear failures and delay."""
        self.consecutive_failures = 0
        self.current_delay = 0.0
        self._next_attempt = 0.0

    def should_skip(self) -> bool:
        """True while the current backoff delay has not yet expired."""
        if self.consecutive_failures == 0:
            return False
        return time.monotonic() < self._next_attempt


class FixWorker:
    """
    Single consumer thread for an unbounded FIFO of location fixes.

    Producers call submit() from any thread; the worker hands each item to
    the handler in arrival order. Nothing is dropped. Handler exceptions
    are logged and counted and do not stop the worker.
    """

    def __init__(self, handler: Callable[[Any], Any], name: str = "fix-worker"):
        """
        Initialise the worker.

        Args:
            handler: Called with each submitted item on the worker thread
            name: Thread name
        """
        self.handler = handler
        self.name = name
        self.items: "queue.Queue[Any]" = queue.Queue()
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.processed = 0
        self.errors = 0

    def start(self):
        """Start the worker thread."""
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._worker_loop, name=self.name, daemon=True)
        self.thread.start()
        logger.info("%s worker thread started", self.name)

    def stop(self, timeout: float = 5.0):
        """Stop the worker after the items already queued are handled."""
        if not self.running:
            return
        self.running = False
        self.items.put(None)
        if self.thread:
            self.thread.join(timeout=timeout)
        logger.info("%s worker thread stopped", self.name)

    def submit(self, item: Any):
        """Queue an item for the handler."""
        if item is None:
            return
        self.items.put(item)

    def join(self):
        """Block until every queued item has been handled."""
        self.items.join()

    def pending(self) -> int:
        return self.items.qsize()

    def _worker_loop(self):
        while True:
            item = self.items.get()
            try:
                if item is None:
                    if not self.running:
                        return
                    continue
                self.handler(item)
                self.processed += 1
            except Exception as e:
                self.errors += 1
                logger.warning("%s handler error: %s", self.name, e, exc_info=True)
            finally:
                self.items.task_done()
