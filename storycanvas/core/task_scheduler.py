"""
Async Workflow Task Scheduler
=============================

Tracks long-running remote workflow jobs until they finish.

Asynchronous workflows answer immediately with an execute id; the result has
to be fetched later. Every pending job is registered here as an
``AsyncTask`` and one shared timer polls all of them each cycle (one timer for
the whole queue, not one per task).

Outcomes are routed back to whoever enqueued the task through the callbacks
given at enqueue time:

- ``Success``: task removed, ``on_success(result)``
- ``Failed``: task removed, ``on_error(WorkflowExecutionError)``
- poll budget exhausted: task removed, ``on_timeout()``
- network/parse failure: logged, task kept for the next cycle

The poll budget advances on every cycle, whether the job reported
``Running`` or the poll itself failed.

The scheduler does not own a network client. The status check is injected
with ``set_status_poller`` (typically ``WorkflowClient.get_workflow_run_history``).
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from . import config
from .timers import ThreadTimerFactory, TimerHandle
from ..integrations.workflow_client import ExecuteStatus, WorkflowExecutionError

TaskKey = Tuple[str, str]
StatusPoller = Callable[[str, str], Any]


class TaskTimeoutError(Exception):
    """Raised into a tracked future when a task exhausts its poll budget."""
    pass


@dataclass
class AsyncTask:
    """
    One pending remote job.

    Attributes:
        workflow_id: Remote workflow id
        execute_id: Remote execution id of this run
        max_poll_count: Poll cycles granted before timing out
        workflow_key: Registry key of the workflow, for log and notification text
        added_at: Enqueue time (epoch seconds)
        poll_count: Poll cycles consumed so far
    """
    workflow_id: str
    execute_id: str
    max_poll_count: int = config.DEFAULT_MAX_POLL_COUNT
    on_success: Optional[Callable[[Any], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    on_timeout: Optional[Callable[[], None]] = None
    workflow_key: Optional[str] = None
    added_at: float = field(default_factory=time.time)
    poll_count: int = 0

    @property
    def key(self) -> TaskKey:
        return (self.workflow_id, self.execute_id)

    @property
    def label(self) -> str:
        return f"{self.workflow_key or self.workflow_id}/{self.execute_id}"


def _status_of(result: Any) -> Optional[str]:
    if isinstance(result, dict):
        status = result.get("execute_status", result.get("status"))
    else:
        status = getattr(result, "execute_status", None)
    if isinstance(status, ExecuteStatus):
        return status.value
    return status


def _error_message_of(result: Any) -> Optional[str]:
    if isinstance(result, dict):
        return result.get("error_message")
    return getattr(result, "error_message", None)


class TaskScheduler:
    """
    Queue of pending remote jobs polled by one shared timer.

    Args:
        status_poller: ``fn(workflow_id, execute_id)`` returning an object (or
            dict) with ``execute_status`` and, on failure, ``error_message``
        timer_factory: Source of the shared polling timer
        poll_interval_ms: Delay between two poll cycles
    """

    def __init__(self, status_poller: Optional[StatusPoller] = None, timer_factory=None,
                 poll_interval_ms: int = config.POLL_INTERVAL_MS):
        self.logger = logging.getLogger(__name__)
        self._status_poller = status_poller
        self._timer_factory = timer_factory or ThreadTimerFactory(name="TaskPoller")
        self.poll_interval_ms = poll_interval_ms

        self._tasks: Dict[TaskKey, AsyncTask] = {}
        self._lock = threading.RLock()
        self._poll_timer: Optional[TimerHandle] = None

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    def set_status_poller(self, poller: StatusPoller) -> None:
        self._status_poller = poller

    def add_task(self, workflow_id: str, execute_id: str,
                 max_poll_count: int = config.DEFAULT_MAX_POLL_COUNT,
                 on_success: Optional[Callable[[Any], None]] = None,
                 on_error: Optional[Callable[[Exception], None]] = None,
                 on_timeout: Optional[Callable[[], None]] = None,
                 workflow_key: Optional[str] = None) -> AsyncTask:
        """
        Enqueue a job and make sure the shared timer is running.

        Re-adding the same (workflow_id, execute_id) replaces the earlier
        entry, callbacks and poll budget included.
        """
        task = AsyncTask(
            workflow_id=workflow_id,
            execute_id=execute_id,
            max_poll_count=max_poll_count,
            on_success=on_success,
            on_error=on_error,
            on_timeout=on_timeout,
            workflow_key=workflow_key,
        )
        with self._lock:
            replaced = task.key in self._tasks
            self._tasks[task.key] = task
            self.logger.info(
                f"{'Replaced' if replaced else 'Added'} async task {task.label} "
                f"(budget {max_poll_count} polls, {len(self._tasks)} pending)"
            )
            if self._poll_timer is None:
                self.start_polling()
        return task

    def track(self, workflow_id: str, execute_id: str,
              max_poll_count: int = config.DEFAULT_MAX_POLL_COUNT,
              workflow_key: Optional[str] = None) -> Future:
        """
        Enqueue a job and return a future for its outcome.

        The future resolves with the run-history result, or fails with
        ``WorkflowExecutionError`` / ``TaskTimeoutError``.
        """
        future: Future = Future()

        def _on_timeout():
            future.set_exception(TaskTimeoutError(
                f"Workflow {workflow_key or workflow_id} run {execute_id} "
                f"did not finish within {max_poll_count} polls"
            ))

        self.add_task(
            workflow_id,
            execute_id,
            max_poll_count=max_poll_count,
            on_success=future.set_result,
            on_error=future.set_exception,
            on_timeout=_on_timeout,
            workflow_key=workflow_key,
        )
        return future

    def remove_task(self, workflow_id: str, execute_id: str) -> Optional[AsyncTask]:
        with self._lock:
            task = self._tasks.pop((workflow_id, execute_id), None)
            if task is not None:
                self.logger.debug(f"Removed async task {task.label}")
            if not self._tasks:
                self.stop_polling()
        return task

    def get_task(self, workflow_id: str, execute_id: str) -> Optional[AsyncTask]:
        return self._tasks.get((workflow_id, execute_id))

    def clear_all_tasks(self) -> None:
        with self._lock:
            self._tasks.clear()
            self.stop_polling()
        self.logger.info("Cleared all async tasks")

    @property
    def pending_task_count(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Shared timer
    # ------------------------------------------------------------------

    @property
    def is_polling(self) -> bool:
        return self._poll_timer is not None

    def start_polling(self) -> None:
        with self._lock:
            if self._poll_timer is not None:
                return
            self.logger.debug(f"Starting poll timer ({self.poll_interval_ms} ms)")
            self._poll_timer = self._timer_factory.call_every(self.poll_interval_ms, self.poll_all_tasks)

    def stop_polling(self) -> None:
        with self._lock:
            if self._poll_timer is None:
                return
            self._poll_timer.cancel()
            self._poll_timer = None
            self.logger.debug("Stopped poll timer")

    def set_poll_interval(self, interval_ms: int) -> None:
        """Change the poll interval, restarting the timer if it is running."""
        with self._lock:
            self.poll_interval_ms = interval_ms
            if self._poll_timer is not None:
                self.stop_polling()
                self.start_polling()

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    def poll_all_tasks(self) -> None:
        """Run one poll cycle over a snapshot of the pending tasks."""
        if self._status_poller is None:
            self.logger.warning("No status poller injected; skipping poll cycle")
            return

        with self._lock:
            tasks = list(self._tasks.values())

        for task in tasks:
            # Replaced or removed since the snapshot
            if self._tasks.get(task.key) is not task:
                continue
            self._poll_task(task)

    def _poll_task(self, task: AsyncTask) -> None:
        task.poll_count += 1

        if task.poll_count > task.max_poll_count:
            self.logger.warning(f"Async task {task.label} timed out after {task.max_poll_count} polls")
            self.remove_task(task.workflow_id, task.execute_id)
            self._invoke(task, task.on_timeout)
            return

        try:
            result = self._status_poller(task.workflow_id, task.execute_id)
        except Exception as e:
            self.logger.error(
                f"Polling async task {task.label} failed (attempt {task.poll_count}/{task.max_poll_count}): "
                f"{type(e).__name__}: {e}"
            )
            return

        status = _status_of(result)
        self.logger.debug(f"Async task {task.label} status: {status}")

        if status == ExecuteStatus.SUCCESS.value:
            self.logger.info(f"Async task {task.label} succeeded")
            self.remove_task(task.workflow_id, task.execute_id)
            self._invoke(task, task.on_success, result)
        elif status == ExecuteStatus.FAILED.value:
            message = _error_message_of(result) or "Workflow execution failed"
            self.logger.error(f"Async task {task.label} failed: {message}")
            self.remove_task(task.workflow_id, task.execute_id)
            self._invoke(task, task.on_error, WorkflowExecutionError(message))

    def _invoke(self, task: AsyncTask, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(
                f"Callback for async task {task.label} raised {type(e).__name__}: {e}",
                exc_info=True,
            )
