"""
Centralized Logging and Security Filtering
==========================================

Logging setup for the StoryCanvas application. All diagnostic output goes
through the standard ``logging`` module; this module configures the handlers
once at startup and makes sure API tokens never reach a log file.

Key Features:
-------------
- Sensitive Data Masking: Bearer tokens, personal access tokens (``pat_...``)
  and credential-named fields are redacted by a filter on every handler.
- API Instrumentation: Helpers for logging workflow requests/responses with
  timing and truncated bodies.
- Contextual Logging: Timestamps, module origin and line numbers.
"""

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Project root is two levels up from this file: utils -> storycanvas -> root
PROJECT_ROOT = Path(__file__).parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs"

# Field names whose values are always masked
SENSITIVE_FIELDS = {
    'password', 'secret', 'token', 'api_key', 'apikey',
    'auth', 'authorization', 'credentials',
}

# Patterns for secrets embedded in free text
SENSITIVE_PATTERNS = [
    (re.compile(r'(Bearer\s+[a-zA-Z0-9\-._~+/]+=*)'), 'Bearer ***'),
    (re.compile(r'\b(pat_[a-zA-Z0-9]{8,})'), lambda m: f"pat_***{m.group(1)[-4:]}"),
    (re.compile(r'\b(sk-[a-zA-Z0-9]{20,})'), '***'),
]

MAX_LOGGED_BODY_CHARS = 1000


def _mask_string(text: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """
    Redacts credentials from log records before any handler writes them.

    Attached to both the file and console handlers.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _mask_string(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = mask_sensitive_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    mask_sensitive_data(arg) if isinstance(arg, (dict, str)) else arg
                    for arg in record.args
                )
        return True


def mask_sensitive_data(data: Any, mask_value: str = "***") -> Any:
    """
    Recursively redact sensitive fields from nested dicts, lists and strings.

    Keys naming a token or key keep their last four characters so that
    different credentials stay distinguishable in the logs.

    Args:
        data: The structure to scrub.
        mask_value: Replacement text.

    Returns:
        A masked copy of ``data``.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                if ('key' in key_lower or 'token' in key_lower) and isinstance(value, str) and len(value) > 4:
                    masked[key] = f"{mask_value}{value[-4:]}"
                else:
                    masked[key] = mask_value
            else:
                masked[key] = mask_sensitive_data(value, mask_value)
        return masked

    if isinstance(data, (list, tuple)):
        return type(data)(mask_sensitive_data(item, mask_value) for item in data)

    if isinstance(data, str):
        return _mask_string(data)

    return data


def setup_logging(
    log_level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    log_format: Optional[str] = None,
) -> Path:
    """
    Configure the root logger once for the whole application.

    - File handler: detailed DEBUG log in ``<log_dir>/storycanvas.log``,
      overwritten on each run.
    - Console handler: INFO and above on stdout.

    Args:
        log_level: Level for the log file.
        console_level: Level for the console.
        log_dir: Directory for the log file (defaults to ``<project>/logs``).
        log_format: Optional custom format string.

    Returns:
        Path of the log file.
    """
    log_dir = Path(log_dir) if log_dir else LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "storycanvas.log"

    if log_format is None:
        log_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )
    formatter = logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    # urllib3 is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.INFO)

    logging.info("=" * 80)
    logging.info(f"StoryCanvas started - Log file: {log_file}")
    logging.info("=" * 80)

    return log_file


def shutdown_logging() -> None:
    """Flush and close every root handler. Call before exit."""
    logging.info("Shutting down logging system...")
    for handler in list(logging.root.handlers):
        handler.flush()
        handler.close()


def log_config(config_name: str, config_data: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """Log a configuration mapping with sensitive values masked."""
    if logger is None:
        logger = logging.getLogger(__name__)

    logger.info(f"Configuration: {config_name}")
    logger.debug(f"{config_name} details: {json.dumps(mask_sensitive_data(config_data), indent=2, default=str)}")


def log_api_request(
    logger: logging.Logger,
    method: str,
    endpoint: str,
    headers: Optional[Dict] = None,
    data: Optional[Any] = None,
    params: Optional[Dict] = None,
):
    """Log an outgoing API request with masked headers and body."""
    logger.info(f"API Request: {method} {endpoint}")

    if headers:
        logger.debug(f"Request headers: {mask_sensitive_data(headers)}")
    if params:
        logger.debug(f"Request params: {mask_sensitive_data(params)}")
    if data:
        logger.debug(f"Request body: {json.dumps(mask_sensitive_data(data), indent=2, default=str)}")


def log_api_response(
    logger: logging.Logger,
    status_code: int,
    response_data: Optional[Any] = None,
    elapsed_time: Optional[float] = None,
):
    """Log an API response; bodies longer than 1000 characters are truncated."""
    timing_info = f" ({elapsed_time:.3f}s)" if elapsed_time else ""
    logger.info(f"API Response: {status_code}{timing_info}")

    if response_data:
        response_str = json.dumps(mask_sensitive_data(response_data), indent=2, default=str)
        if len(response_str) > MAX_LOGGED_BODY_CHARS:
            response_str = response_str[:MAX_LOGGED_BODY_CHARS] + "\n... (truncated)"
        logger.debug(f"Response body: {response_str}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
