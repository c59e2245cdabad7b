"""
Canvas State Persistence
========================

Keeps the canvas between application runs.

``StatePersistence`` is a small key/value store backed by one JSON file. The
file is read once when the store is created; ``set`` updates memory and hands
the disk write to a background worker, where consecutive writes are coalesced
into one.

``save_canvas`` / ``load_canvas`` map the persisted part of a ``CanvasState``
(storyboards, pan, zoom, id counters) onto that store, and
``attach_autosave`` saves after every canvas mutation.

Playback is runtime state: players always come back stopped.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..core import config
from ..core.canvas import CanvasState, Point
from ..core.cards import PlayerCard, Storyboard
from .background_worker import BackgroundWorker
from .logger import log_config

logger = logging.getLogger(__name__)

KEY_STORYBOARDS = "storyboards"
KEY_PAN = "pan"
KEY_ZOOM = "zoom"
KEY_NEXT_STORYBOARD_ID = "next_storyboard_id"
KEY_NEXT_CARD_ID = "next_card_id"


class StatePersistence:
    """
    JSON-file key/value store with coalesced background writes.

    Args:
        path: File holding the state (defaults to ``config.STATE_PATH``)
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else config.STATE_PATH
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._worker = BackgroundWorker(name="StateWriter")
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.info(f"No existing state file found at {self.path}")
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level JSON value is not an object")
            self._data = data
            logger.info(f"Loaded state from {self.path} ({len(data)} keys)")
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"State file is corrupted, starting empty: {e}", exc_info=True)
        except OSError as e:
            logger.error(f"Failed to read state file: {e}", exc_info=True)

    def get(self, name: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(name, default)

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._data[name] = value
        self._worker.submit_replacing("write", self._write)

    def update(self, values: Dict[str, Any]) -> None:
        with self._lock:
            self._data.update(values)
        self._worker.submit_replacing("write", self._write)

    def flush(self) -> None:
        """Block until pending writes have reached the disk."""
        self._worker.wait_idle()

    def close(self) -> None:
        self.flush()
        self._worker.shutdown()

    def _write(self) -> None:
        with self._lock:
            payload = json.dumps(self._data, indent=2, ensure_ascii=False)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic replace
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        logger.debug(f"State written to {self.path}")


def save_canvas(canvas: CanvasState, persistence: StatePersistence) -> None:
    """Store the persisted part of ``canvas``."""
    persistence.update(canvas.snapshot())


def load_canvas(canvas: CanvasState, persistence: StatePersistence) -> None:
    """
    Replace the canvas contents with the stored state.

    Stored players are reset to idle; unreadable storyboards are skipped.
    """
    storyboards = []
    for raw in persistence.get(KEY_STORYBOARDS, []) or []:
        try:
            storyboard = Storyboard.from_dict(raw)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            logger.error(f"Skipping unreadable storyboard entry: {e}")
            continue
        for card in storyboard.cards:
            if isinstance(card, PlayerCard):
                card.is_playing = False
                card.current_frame = 0
        storyboards.append(storyboard)

    pan = persistence.get(KEY_PAN) or {}
    highest_card = max((c.id for sb in storyboards for c in sb.cards), default=-1)
    highest_storyboard = max((sb.id for sb in storyboards), default=-1)

    with canvas.lock:
        canvas.playback_timers.cancel_all()
        canvas.storyboards = storyboards
        canvas.pan = Point(pan.get("x", 0), pan.get("y", 0))
        canvas.zoom = persistence.get(KEY_ZOOM, 1.0)
        # Counters never go backwards, even if the stored ones are stale
        canvas.next_storyboard_id = max(persistence.get(KEY_NEXT_STORYBOARD_ID, 0), highest_storyboard + 1)
        canvas.next_card_id = max(persistence.get(KEY_NEXT_CARD_ID, 0), highest_card + 1)

    log_config("Loaded Canvas", {
        "storyboards": len(storyboards),
        "zoom": canvas.zoom,
        "next_storyboard_id": canvas.next_storyboard_id,
        "next_card_id": canvas.next_card_id,
    }, logger)


def attach_autosave(canvas: CanvasState, persistence: StatePersistence) -> Callable[[CanvasState], None]:
    """
    Save the canvas after every mutation.

    Returns:
        The listener, for ``canvas.remove_listener``.
    """
    def _autosave(state: CanvasState) -> None:
        save_canvas(state, persistence)

    canvas.add_listener(_autosave)
    return _autosave
