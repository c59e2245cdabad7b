"""
Workflow API Client
===================

Wrapper around the remote workflow platform's REST API: running workflows,
reading the run history of asynchronous runs, and uploading files.

Workflows are addressed by their key in ``config.WORKFLOWS`` (which carries
the remote id, the async flag and the required inputs) or directly by remote
workflow id.

Asynchronous workflows return immediately with an ``execute_id``. When a
``on_async_task_created`` callback is configured, the client reports every
such run to it; ``canvas_service.bind_scheduler`` uses this to feed the
``TaskScheduler``.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Optional, Union

import requests

from ..core import config
from ..utils.logger import log_api_request, log_api_response


# ============================================================================
# ERRORS
# ============================================================================

class WorkflowAPIError(Exception):
    """Base exception for workflow API errors."""
    pass


class WorkflowAuthenticationError(WorkflowAPIError):
    """Raised when the token is missing, invalid or lacks permission."""
    pass


class WorkflowNetworkError(WorkflowAPIError):
    """Raised on connection failures and timeouts."""
    pass


class WorkflowExecutionError(WorkflowAPIError):
    """Raised (or reported) when a remote workflow run ends in failure."""
    pass


# ============================================================================
# RESULT TYPES
# ============================================================================

class ExecuteStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    RUNNING = "Running"


@dataclass
class WorkflowRunResult:
    """Answer of a workflow run. ``data_json`` is ``data`` decoded."""
    execute_id: Optional[str] = None
    status: Optional[str] = None
    data: Optional[str] = None
    data_json: Any = None
    debug_url: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


@dataclass
class WorkflowRunHistory:
    """State of one asynchronous run, as polled by the task scheduler."""
    execute_status: str
    execute_id: Optional[str] = None
    debug_url: Optional[str] = None
    error_message: Optional[str] = None
    output: Any = None
    raw: Optional[Dict[str, Any]] = None


@dataclass
class AsyncTaskCreated:
    """Emitted when an asynchronous run has been accepted by the platform."""
    workflow_id: str
    execute_id: str
    workflow_key: Optional[str]
    result: WorkflowRunResult


@dataclass
class FileUploadResult:
    id: str
    file_name: str = ""
    bytes: int = 0
    created_at: int = 0


FileInput = Union[str, Path, bytes, BinaryIO]


class WorkflowClient:
    """
    Client for the workflow platform.

    Attributes:
        token: Personal access token (falls back to $STORYCANVAS_API_TOKEN)
        base_url: API root, e.g. https://api.coze.cn
        on_async_task_created: Callback receiving ``AsyncTaskCreated``
    """

    def __init__(self, token: Optional[str] = None, base_url: Optional[str] = None,
                 on_async_task_created: Optional[Callable[[AsyncTaskCreated], None]] = None,
                 timeout: float = config.NETWORK_TIMEOUT_SECONDS):
        self.token = token or os.environ.get(config.API_TOKEN_ENV, "")
        self.base_url = (base_url or config.API_BASE_URL).rstrip('/')
        self.on_async_task_created = on_async_task_created
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session = requests.Session()
        if self.token:
            self.session.headers.update({"Authorization": f"Bearer {self.token}"})

    def is_available(self) -> bool:
        """Check if a token is configured."""
        return bool(self.token)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        log_api_request(self.logger, method, url, data=kwargs.get("json"), params=kwargs.get("params"))
        kwargs.setdefault("timeout", self.timeout)

        start = time.time()
        try:
            resp = self.session.request(method, url, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise WorkflowNetworkError(f"Network error calling {path}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise WorkflowAPIError(f"Request to {path} failed: {e}") from e

        elapsed = time.time() - start

        if resp.status_code in (401, 403):
            log_api_response(self.logger, resp.status_code, elapsed_time=elapsed)
            raise WorkflowAuthenticationError(f"Authentication failed ({resp.status_code}) for {path}")

        try:
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            log_api_response(self.logger, resp.status_code, elapsed_time=elapsed)
            raise WorkflowAPIError(f"API request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise WorkflowAPIError(f"Invalid JSON response from {path}: {e}") from e

        log_api_response(self.logger, resp.status_code, payload, elapsed)

        if payload.get("code", 0) != 0:
            raise WorkflowAPIError(f"API Error {payload.get('code')}: {payload.get('msg', 'unknown error')}")

        return payload

    @staticmethod
    def _resolve(workflow_key_or_id: str):
        """Return (workflow_id, key, definition) for a registry key or a raw id."""
        definition = config.WORKFLOWS.get(workflow_key_or_id)
        if definition is not None:
            return definition.id, workflow_key_or_id, definition

        key = config.WORKFLOW_KEYS_BY_ID.get(workflow_key_or_id)
        return workflow_key_or_id, key, config.WORKFLOWS.get(key) if key else None

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def run_workflow(self, workflow_key: str, params: Optional[Dict[str, Any]] = None,
                     is_async: Optional[bool] = None) -> WorkflowRunResult:
        """
        Run a workflow.

        Args:
            workflow_key: Key in ``config.WORKFLOWS`` or a raw workflow id
            params: Workflow input parameters
            is_async: Overrides the registry's async flag

        Raises:
            ValueError: If a required input is missing.
            WorkflowAPIError: On transport or API failures.
        """
        workflow_id, key, definition = self._resolve(workflow_key)
        parameters = dict(params or {})

        if definition is not None:
            missing = [
                name for name in definition.required_inputs
                if parameters.get(name) in (None, "", [], {})
            ]
            if missing:
                raise ValueError(f"Workflow {key} is missing required inputs: {', '.join(missing)}")
            if definition.system_prompt and not parameters.get("system_prompt"):
                parameters["system_prompt"] = definition.system_prompt
            if is_async is None:
                is_async = definition.is_async

        is_async = bool(is_async)

        payload = self._request(
            "POST",
            "/v1/workflow/run",
            json={"workflow_id": workflow_id, "parameters": parameters, "is_async": is_async},
        )

        data = payload.get("data")
        try:
            data_json = json.loads(data) if data else {}
        except (TypeError, ValueError):
            self.logger.warning(f"Workflow {key or workflow_id} returned non-JSON data")
            data_json = {}

        result = WorkflowRunResult(
            execute_id=payload.get("execute_id"),
            status=payload.get("status"),
            data=data,
            data_json=data_json,
            debug_url=payload.get("debug_url"),
            raw=payload,
        )

        if is_async and result.execute_id and self.on_async_task_created is not None:
            self.logger.info(f"Async run {result.execute_id} created for workflow {key or workflow_id}")
            self.on_async_task_created(AsyncTaskCreated(
                workflow_id=workflow_id,
                execute_id=result.execute_id,
                workflow_key=key,
                result=result,
            ))

        return result

    def get_workflow_run_history(self, workflow_key_or_id: str, execute_id: str) -> WorkflowRunHistory:
        """
        Fetch the state of an asynchronous run.

        The run's output is a JSON string whose ``Output`` member is itself a
        JSON string; the inner ``output`` value is returned.
        """
        workflow_id, _, _ = self._resolve(workflow_key_or_id)
        payload = self._request("GET", f"/v1/workflows/{workflow_id}/run_histories/{execute_id}")

        items = payload.get("data") or []
        if not items:
            raise WorkflowAPIError("Workflow run history is empty")
        item = items[0]

        output = None
        raw_output = item.get("output")
        if raw_output:
            try:
                outer = json.loads(raw_output)
                output = json.loads(outer["Output"]).get("output")
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                raise WorkflowAPIError(f"Could not decode workflow output: {e}") from e

        return WorkflowRunHistory(
            execute_status=item.get("execute_status", ExecuteStatus.RUNNING.value),
            execute_id=item.get("execute_id", execute_id),
            debug_url=item.get("debug_url"),
            error_message=item.get("error_message") or None,
            output=output,
            raw=item,
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upload_file(self, file: FileInput, filename: Optional[str] = None) -> FileUploadResult:
        """
        Upload a file and return its platform file id.

        Args:
            file: Path, raw bytes, or a binary file object
            filename: Name sent with the upload (defaults to the path name)
        """
        if isinstance(file, (str, Path)):
            path = Path(file)
            if not path.exists():
                raise FileNotFoundError(f"File not found: {path}")
            content = path.read_bytes()
            filename = filename or path.name
        elif isinstance(file, bytes):
            content = file
        else:
            content = file.read()
            filename = filename or os.path.basename(getattr(file, "name", "") or "")

        filename = filename or "upload.bin"
        payload = self._request(
            "POST",
            "/v1/files/upload",
            files={"file": (filename, content)},
            timeout=config.UPLOAD_TIMEOUT_SECONDS,
        )

        data = payload.get("data") or {}
        if not data.get("id"):
            raise WorkflowAPIError("Upload response did not contain a file id")

        self.logger.info(f"Uploaded {filename} ({len(content)} bytes) as {data['id']}")
        return FileUploadResult(
            id=data["id"],
            file_name=data.get("file_name", filename),
            bytes=data.get("bytes", len(content)),
            created_at=data.get("created_at", 0),
        )
