"""
Canvas Services
===============

Workflow-backed operations used by the canvas: splitting scripts into shots,
listing projects and their shots, generating videos, uploading reference
images and resolving uploaded file ids to URLs.

Also home of ``bind_scheduler``, which connects a ``WorkflowClient`` to a
``TaskScheduler`` so that every asynchronous run is polled to completion and
reported to the user.
"""

import logging
import math
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import config
from .cards import ProjectInfo
from .task_scheduler import TaskScheduler
from .timers import ThreadTimerFactory, TimerHandle
from ..integrations.workflow_client import (
    AsyncTaskCreated,
    WorkflowAPIError,
    WorkflowClient,
    WorkflowRunResult,
)
from ..utils.image_compression import compress_image
from ..utils.notify import Notifier


def _file_refs(file_ids: Iterable[str]) -> List[Dict[str, str]]:
    return [{"file_id": file_id} for file_id in file_ids]


def _output_list(result: Optional[WorkflowRunResult]) -> List[Any]:
    data = result.data_json if result is not None else None
    output = data.get("output") if isinstance(data, dict) else None
    return output if isinstance(output, list) else []


def _order_of(item: Dict[str, Any]) -> float:
    value = item.get("order_index", item.get("orderIndex"))
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.inf


class CanvasService:
    """Thin, typed layer over the workflows the canvas uses."""

    def __init__(self, client: WorkflowClient):
        self.client = client
        self.logger = logging.getLogger(__name__)

    def text_to_video_shots(self, prompt: str, **options) -> WorkflowRunResult:
        """Start the asynchronous script-to-shots split."""
        return self.client.run_workflow("TEXT_TO_VIDEO_SHOTS", {"prompt": prompt, **options})

    def image_file_id_to_url(self, file_ids: List[str]) -> WorkflowRunResult:
        self.logger.debug(f"Resolving {len(file_ids)} file id(s) to URLs")
        return self.client.run_workflow("IMAGE_FILEID_TO_URL", {"images": _file_refs(file_ids)})

    def get_list(self, book_id: str = "", group: bool = False) -> WorkflowRunResult:
        return self.client.run_workflow("GET_LIST", {"book_id": book_id or "", "group": group})

    def generate_video(self, image: List[Any], book_id: str, shot_id: str,
                       prompt: str = "", size: str = "") -> WorkflowRunResult:
        """
        Start the asynchronous video render for one shot.

        ``image`` items are file ids (wrapped as file references) or URLs.
        """
        images = [
            item if isinstance(item, dict) or str(item).startswith(("http://", "https://")) else {"file_id": item}
            for item in image
        ]
        params = {"image": images, "book_id": book_id, "id": shot_id}
        if prompt:
            params["prompt"] = prompt
        if size:
            params["size"] = size
        return self.client.run_workflow("GENERATE_VIDEO", params)

    def delete_data(self, shot_id: str = "", book_id: str = "") -> WorkflowRunResult:
        """Delete one shot (``shot_id``) or a whole project (``book_id``)."""
        return self.client.run_workflow("DELETE_DATA", {"id": shot_id, "book_id": book_id})

    def get_all_data_grouped_by_book_id(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Fetch every shot and group by book id.

        Each group is sorted by numeric ``order_index``; items without a
        usable index go last. Returns an empty mapping on API errors.
        """
        try:
            items = _output_list(self.get_list("", False))
        except WorkflowAPIError as e:
            self.logger.error(f"Failed to fetch shot data: {e}")
            return {}

        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for item in items:
            book_id = item.get("book_id") or item.get("bookId") or "default"
            grouped.setdefault(book_id, []).append(item)

        for book_id in grouped:
            grouped[book_id].sort(key=_order_of)
        return grouped

    def get_all_projects(self) -> List[ProjectInfo]:
        try:
            items = _output_list(self.get_list("", True))
        except WorkflowAPIError as e:
            self.logger.error(f"Failed to fetch project list: {e}")
            return []

        return [
            ProjectInfo(
                book_id=item.get("book_id") or item.get("bookId") or "",
                title=item.get("title") or item.get("book_id") or "Untitled project",
                count=int(item.get("count") or 0),
            )
            for item in items
        ]

    def get_project_shots(self, book_id: str) -> List[Dict[str, Any]]:
        try:
            return _output_list(self.get_list(book_id))
        except WorkflowAPIError as e:
            self.logger.error(f"Failed to fetch shots for book {book_id!r}: {e}")
            return []

    def upload_images(self, paths: Iterable[Any]) -> List[str]:
        """Compress and upload images; returns their file ids in order."""
        file_ids = []
        for path in paths:
            name = Path(path).name
            data = compress_image(path)
            file_ids.append(self.client.upload_file(data, filename=name).id)
        return file_ids


class DebouncedImageUrlFetcher:
    """
    Batches file-id-to-URL lookups.

    Every ``fetch`` restarts a short timer; when it fires, all ids requested
    in the meantime are resolved with a single workflow call. Each caller
    gets a future that resolves to the URL, or None when the lookup failed.
    """

    def __init__(self, service: CanvasService, timer_factory=None,
                 delay_ms: int = config.IMAGE_URL_BATCH_DELAY_MS):
        self.service = service
        self.delay_ms = delay_ms
        self._timer_factory = timer_factory or ThreadTimerFactory(name="UrlBatch")
        self._pending: Dict[str, List[Future]] = {}
        self._timer: Optional[TimerHandle] = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def fetch(self, file_id: str) -> Future:
        future: Future = Future()
        with self._lock:
            self._pending.setdefault(file_id, []).append(future)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory.call_later(self.delay_ms, self.execute_batch)
        return future

    def execute_batch(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, {}
            self._timer = None

        if not pending:
            return

        file_ids = list(pending)
        self.logger.debug(f"Resolving batch of {len(file_ids)} file id(s)")
        try:
            urls = _output_list(self.service.image_file_id_to_url(file_ids))
        except WorkflowAPIError as e:
            self.logger.error(f"Batch URL lookup failed: {e}")
            urls = []

        for index, file_id in enumerate(file_ids):
            url = urls[index] if index < len(urls) and urls[index] else None
            for future in pending[file_id]:
                future.set_result(url)


def bind_scheduler(client: WorkflowClient, scheduler: TaskScheduler, notifier: Optional[Notifier] = None,
                   max_poll_count: int = config.DEFAULT_MAX_POLL_COUNT,
                   on_success: Optional[Callable[[Any], None]] = None,
                   on_error: Optional[Callable[[Exception], None]] = None,
                   on_timeout: Optional[Callable[[], None]] = None) -> None:
    """
    Route every asynchronous run started by ``client`` into ``scheduler``.

    The scheduler polls with the client's run-history call. Outcomes are
    announced through ``notifier`` and then forwarded to the optional
    callbacks.
    """
    notifier = notifier or Notifier()
    logger = logging.getLogger(__name__)

    def _enqueue(created: AsyncTaskCreated) -> None:
        label = created.workflow_key or "Workflow"

        def _success(result):
            notifier.success("Async task finished", label)
            if on_success is not None:
                on_success(result)

        def _error(error: Exception):
            notifier.error(str(error), "Async task failed")
            if on_error is not None:
                on_error(error)

        def _timeout():
            notifier.warning("The task is taking too long; refresh later to see the result", "Async task timed out")
            if on_timeout is not None:
                on_timeout()

        logger.debug(f"Queueing async run {created.execute_id} of {label}")
        scheduler.add_task(
            created.workflow_id,
            created.execute_id,
            max_poll_count=max_poll_count,
            on_success=_success,
            on_error=_error,
            on_timeout=_timeout,
            workflow_key=created.workflow_key,
        )

    client.on_async_task_created = _enqueue
    scheduler.set_status_poller(client.get_workflow_run_history)
