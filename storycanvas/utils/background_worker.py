"""
Background Worker Utility
=========================

Single-thread task queue for work that must not block the caller, such as
writing the canvas state to disk.

Key Features:
-------------
- Single Persistent Thread: one worker thread runs every submitted task
- Coalescing: ``submit_replacing`` drops a pending task when a newer one with
  the same id arrives, so a burst of saves results in one write
- Drain: ``wait_idle`` blocks until the queue is empty
- Graceful Shutdown: drains the queue and joins the thread

Usage:
------
    >>> worker = BackgroundWorker(name="StateWriter")
    >>> worker.submit_replacing("save", write_state)
    >>> worker.shutdown()
"""

import logging
import queue
import threading
from typing import Callable, Dict


class BackgroundWorker:
    """
    Single-thread task executor.

    Attributes:
        name: Identifier for logging purposes
    """

    def __init__(self, name: str = "BackgroundWorker"):
        self.name = name
        self.logger = logging.getLogger(__name__)

        self._queue: queue.Queue = queue.Queue()
        self._running = True
        self._lock = threading.Lock()

        # task_id -> marker of the latest submission with that id
        self._pending_replaceable: Dict[str, int] = {}
        self._marker_counter = 0

        self._thread = threading.Thread(target=self._process_queue, name=f"{name}-Thread", daemon=True)
        self._thread.start()
        self.logger.debug(f"BackgroundWorker '{name}' started")

    def submit(self, task: Callable, *args, **kwargs) -> None:
        """Queue ``task`` to run after every task submitted before it."""
        if not self._running:
            self.logger.warning(f"Worker '{self.name}' is shut down, ignoring task submission")
            return
        self._queue.put((None, None, task, args, kwargs))

    def submit_replacing(self, task_id: str, task: Callable, *args, **kwargs) -> None:
        """
        Queue ``task``, superseding any not-yet-started task with ``task_id``.

        Only the latest submission for an id runs; older ones are skipped when
        they reach the front of the queue.
        """
        if not self._running:
            self.logger.warning(f"Worker '{self.name}' is shut down, ignoring task submission")
            return

        with self._lock:
            self._marker_counter += 1
            marker = self._marker_counter
            self._pending_replaceable[task_id] = marker

        self._queue.put((task_id, marker, task, args, kwargs))

    def wait_idle(self) -> None:
        """Block until every queued task has been processed."""
        self._queue.join()

    def shutdown(self, timeout: float = 2.0) -> None:
        """Run the remaining tasks, then stop the worker thread."""
        if not self._running:
            return

        self.logger.debug(f"Worker '{self.name}' shutting down...")
        self._running = False
        self._queue.put(None)

        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                self.logger.warning(f"Worker '{self.name}' thread did not terminate within {timeout}s")

    def _is_superseded(self, task_id, marker) -> bool:
        if task_id is None:
            return False
        with self._lock:
            return self._pending_replaceable.get(task_id) != marker

    def _process_queue(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                break

            task_id, marker, task, args, kwargs = item
            try:
                if self._is_superseded(task_id, marker):
                    continue
                task(*args, **kwargs)
            except Exception as e:
                self.logger.error(
                    f"Worker '{self.name}' task failed: {type(e).__name__}: {e}",
                    exc_info=True,
                )
            finally:
                if task_id is not None:
                    with self._lock:
                        if self._pending_replaceable.get(task_id) == marker:
                            del self._pending_replaceable[task_id]
                self._queue.task_done()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()
