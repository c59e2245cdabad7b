"""
User notifications.

Fire-and-forget: the core reports success, error, warning and info events to
a handler supplied by the host (a toast widget, a status bar). Without a
handler, notifications are written to the log. A failing handler is logged
and never propagates into the caller.
"""

import logging
from typing import Callable, Optional

NotifyHandler = Callable[[str, str, Optional[str]], None]

KINDS = ("success", "error", "warning", "info")

_LOG_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier:
    def __init__(self, handler: Optional[NotifyHandler] = None):
        self.logger = logging.getLogger(__name__)
        self.handler = handler

    def notify(self, kind: str, message: str, title: Optional[str] = None) -> None:
        if kind not in KINDS:
            self.logger.debug(f"Unknown notification kind {kind!r}, using 'info'")
            kind = "info"

        if self.handler is None:
            prefix = f"[{title}] " if title else ""
            self.logger.log(_LOG_LEVELS[kind], f"{prefix}{message}")
            return

        try:
            self.handler(kind, message, title)
        except Exception as e:
            self.logger.error(f"Notification handler failed: {type(e).__name__}: {e}", exc_info=True)

    def success(self, message: str, title: Optional[str] = None) -> None:
        self.notify("success", message, title)

    def error(self, message: str, title: Optional[str] = None) -> None:
        self.notify("error", message, title)

    def warning(self, message: str, title: Optional[str] = None) -> None:
        self.notify("warning", message, title)

    def info(self, message: str, title: Optional[str] = None) -> None:
        self.notify("info", message, title)
