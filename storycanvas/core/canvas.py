"""
Canvas State Module
===================

``CanvasState`` is the single owner of all graph and playback data: the
ordered storyboards, their cards and connections, the id counters, the
viewport and the playback timer registry.

It is created once at application start and handed to every consumer
(playback engine, reconciler, persistence). Nothing else keeps a private copy
of the graph. Multiple independent instances are fine, which is what the
tests rely on.

Mutations never raise for stale references: removing, updating or connecting
something that no longer exists is a logged no-op, so UI callbacks survive
racing against deletions. Every public method holds a re-entrant lock, which
makes each mutation atomic with respect to timer callbacks running on other
threads.
"""

import contextlib
import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from . import config
from . import connections as connection_rules
from .cards import Card, CardType, Connection, PlayerCard, Storyboard
from .timers import TimerRegistry


@dataclass
class Point:
    x: float = 0
    y: float = 0


@dataclass
class ConnectionStart:
    """Source end of a connection being dragged in the UI."""
    card_id: int
    storyboard_id: int


def _locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            return method(self, *args, **kwargs)
    return wrapper


class CanvasState:
    """
    Owner of every storyboard, card and connection on the canvas.

    Attributes:
        pan: Viewport translation
        zoom: Viewport scale, clamped to [MIN_ZOOM, MAX_ZOOM]
        storyboards: Storyboards in creation order
        next_storyboard_id: Next id handed out by ``create_storyboard``
        next_card_id: Next id handed out by ``add_card``
        active_modify_card_id: Card whose edit dialog is open, if any
        active_execute_storyboard_id: Storyboard whose run dialog is open, if any
        is_connecting: True while the user drags a new connection
        connection_start: Source of that connection
        playback_timers: Recurring playback timers keyed by player card id
    """

    def __init__(self, timer_factory=None):
        self.logger = logging.getLogger(__name__)
        self.lock = threading.RLock()

        self.pan = Point()
        self.zoom = 1.0
        self._pan_start = Point()
        self.is_panning = False

        self.storyboards: List[Storyboard] = []
        self.next_storyboard_id = 0
        self.next_card_id = 0

        self.active_modify_card_id: Optional[int] = None
        self.active_execute_storyboard_id: Optional[int] = None

        self.is_connecting = False
        self.connection_start: Optional[ConnectionStart] = None

        self.playback_timers = TimerRegistry(timer_factory)

        self._listeners: List[Callable[["CanvasState"], None]] = []
        self._batch_depth = 0
        self._changes_pending = False

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_listener(self, listener: Callable[["CanvasState"], None]) -> None:
        """Register a callback invoked after each persisted-state mutation."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[["CanvasState"], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_changed(self) -> None:
        if self._batch_depth:
            self._changes_pending = True
            return
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"Canvas listener failed: {type(e).__name__}: {e}", exc_info=True)

    @contextlib.contextmanager
    def batch_changes(self):
        """
        Hold the lock and collapse all notifications inside the block into
        one, sent when the outermost block exits.
        """
        with self.lock:
            self._batch_depth += 1
            try:
                yield self
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._changes_pending:
                    self._changes_pending = False
                    self.notify_changed()

    # ------------------------------------------------------------------
    # Storyboards
    # ------------------------------------------------------------------

    @_locked
    def create_storyboard(self, storyboard: Optional[Storyboard] = None, **fields) -> Storyboard:
        """
        Append a storyboard and assign it the next storyboard id.

        Accepts either a prepared ``Storyboard`` (its id is overwritten) or
        keyword fields.
        """
        if storyboard is None:
            storyboard = Storyboard(**fields)
        storyboard.id = self.next_storyboard_id
        self.next_storyboard_id += 1
        self.storyboards.append(storyboard)
        self.logger.info(f"Created storyboard {storyboard.id} ({storyboard.title!r}, book {storyboard.book_id!r})")
        self.notify_changed()
        return storyboard

    @_locked
    def update_storyboard(self, storyboard_id: int, **updates) -> Optional[Storyboard]:
        storyboard = self.find_storyboard_by_id(storyboard_id)
        if storyboard is None:
            self.logger.debug(f"update_storyboard: storyboard {storyboard_id} not found")
            return None
        for key, value in updates.items():
            if key == "id" or key not in Storyboard.field_names():
                self.logger.debug(f"update_storyboard: ignoring field {key!r}")
                continue
            setattr(storyboard, key, value)
        self.notify_changed()
        return storyboard

    @_locked
    def remove_storyboard(self, storyboard_id: int) -> bool:
        """Remove a storyboard, cancelling playback of every player inside it."""
        storyboard = self.find_storyboard_by_id(storyboard_id)
        if storyboard is None:
            return False

        for card in storyboard.player_cards():
            self.playback_timers.cancel(card.id)

        self.storyboards.remove(storyboard)
        self.logger.info(f"Removed storyboard {storyboard_id}")
        self.notify_changed()
        return True

    @_locked
    def find_storyboard_by_id(self, storyboard_id: int) -> Optional[Storyboard]:
        for storyboard in self.storyboards:
            if storyboard.id == storyboard_id:
                return storyboard
        return None

    @_locked
    def find_storyboard_by_card_id(self, card_id: int) -> Optional[Storyboard]:
        for storyboard in self.storyboards:
            if storyboard.find_card(card_id) is not None:
                return storyboard
        return None

    @_locked
    def find_storyboard_by_book_id(self, book_id: str) -> Optional[Storyboard]:
        for storyboard in self.storyboards:
            if storyboard.book_id == book_id:
                return storyboard
        return None

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    @_locked
    def add_card(self, storyboard_id: int, card: Card) -> Optional[Card]:
        """
        Append ``card`` to a storyboard under the next card id.

        Returns:
            The stored card, or None if the storyboard does not exist.
        """
        storyboard = self.find_storyboard_by_id(storyboard_id)
        if storyboard is None:
            self.logger.debug(f"add_card: storyboard {storyboard_id} not found")
            return None

        card.id = self.next_card_id
        self.next_card_id += 1
        storyboard.cards.append(card)
        self.logger.debug(f"Added {card.type.value} card {card.id} to storyboard {storyboard_id}")
        self.notify_changed()
        return card

    @_locked
    def remove_card(self, card_id: int) -> bool:
        """Remove a card together with its connections and playback timer."""
        storyboard = self.find_storyboard_by_card_id(card_id)
        if storyboard is None:
            return False

        storyboard.connections = [
            conn for conn in storyboard.connections
            if conn.from_id != card_id and conn.to_id != card_id
        ]
        self.playback_timers.cancel(card_id)
        storyboard.cards = [c for c in storyboard.cards if c.id != card_id]

        self.logger.debug(f"Removed card {card_id} from storyboard {storyboard.id}")
        self.notify_changed()
        return True

    @_locked
    def update_card(self, card_id: int, **updates) -> Optional[Card]:
        """
        Shallow-merge ``updates`` into a card.

        Only fields declared by the card's variant are applied; ``id`` and
        ``type`` are fixed for the card's lifetime, and a player's playlist
        fields are left to ``apply_playlist``. Changes that touch playback
        state only do not notify listeners.
        """
        card = self.find_card_by_id(card_id)
        if card is None:
            return None

        allowed = card.field_names() - {"id"} - card.derived_fields
        applied = set()
        for key, value in updates.items():
            if key not in allowed:
                self.logger.debug(f"update_card: ignoring field {key!r} for {card.type.value} card {card_id}")
                continue
            setattr(card, key, value)
            applied.add(key)

        if applied - card.runtime_fields:
            self.notify_changed()
        return card

    @_locked
    def apply_playlist(self, player_id: int, playlist: List[Card]) -> Optional[PlayerCard]:
        """Store a resolved playlist on a player (see ``playlist.prepare_player``)."""
        player = self.find_player(player_id)
        if player is None:
            return None

        player.playlist = playlist
        player.is_ready = bool(playlist)
        player.thumbnail_url = playlist[0].image_url if playlist else None
        self.notify_changed()
        return player

    @_locked
    def find_card_by_id(self, card_id: int) -> Optional[Card]:
        storyboard = self.find_storyboard_by_card_id(card_id)
        if storyboard is None:
            return None
        return storyboard.find_card(card_id)

    @_locked
    def find_player(self, player_id: int) -> Optional[PlayerCard]:
        card = self.find_card_by_id(player_id)
        if card is None or card.type is not CardType.PLAYER:
            return None
        return card

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    @_locked
    def add_connection(self, storyboard_id: int, connection: Connection) -> bool:
        changed = connection_rules.add_connection(self, storyboard_id, connection)
        if changed:
            self.notify_changed()
        return changed

    @_locked
    def remove_connection(self, storyboard_id: int, from_id: int, to_id: int) -> bool:
        changed = connection_rules.remove_connection(self, storyboard_id, from_id, to_id)
        if changed:
            self.notify_changed()
        return changed

    def start_connecting(self, card_id: int, storyboard_id: int) -> None:
        self.is_connecting = True
        self.connection_start = ConnectionStart(card_id, storyboard_id)

    @_locked
    def end_connecting(self, target_card_id: Optional[int] = None) -> bool:
        """Finish a drag: connect the drag source to ``target_card_id``."""
        changed = False
        start = self.connection_start
        if start is not None and target_card_id is not None and start.card_id != target_card_id:
            changed = self.add_connection(start.storyboard_id, Connection(start.card_id, target_card_id))
        self.cancel_connecting()
        return changed

    def cancel_connecting(self) -> None:
        self.is_connecting = False
        self.connection_start = None

    # ------------------------------------------------------------------
    # Dialog targets
    # ------------------------------------------------------------------

    def set_active_modify_card_id(self, card_id: Optional[int]) -> None:
        self.active_modify_card_id = card_id

    def set_active_execute_storyboard_id(self, storyboard_id: Optional[int]) -> None:
        self.active_execute_storyboard_id = storyboard_id

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    def _clamp_zoom(self, value: float) -> float:
        return min(config.MAX_ZOOM, max(config.MIN_ZOOM, value))

    def zoom_in(self) -> None:
        self.zoom = self._clamp_zoom(self.zoom * config.ZOOM_IN_FACTOR)
        self.notify_changed()

    def zoom_out(self) -> None:
        self.zoom = self._clamp_zoom(self.zoom * config.ZOOM_OUT_FACTOR)
        self.notify_changed()

    def zoom_at(self, delta: float, mouse_x: float, mouse_y: float) -> None:
        """Wheel zoom that keeps the point under the pointer fixed."""
        old_zoom = self.zoom
        if delta < 0:
            self.zoom = self._clamp_zoom(self.zoom * config.ZOOM_WHEEL_FACTOR)
        else:
            self.zoom = self._clamp_zoom(self.zoom / config.ZOOM_WHEEL_FACTOR)

        ratio = self.zoom / old_zoom
        self.pan.x = mouse_x - (mouse_x - self.pan.x) * ratio
        self.pan.y = mouse_y - (mouse_y - self.pan.y) * ratio
        self.notify_changed()

    def start_panning(self, client_x: float, client_y: float) -> None:
        self.is_panning = True
        self._pan_start = Point(client_x - self.pan.x, client_y - self.pan.y)

    def pan_to(self, client_x: float, client_y: float) -> None:
        if not self.is_panning:
            return
        self.pan.x = client_x - self._pan_start.x
        self.pan.y = client_y - self._pan_start.y

    def stop_panning(self) -> None:
        if self.is_panning:
            self.is_panning = False
            self.notify_changed()

    def reset_view(self) -> None:
        self.zoom = 1.0
        self.pan = Point()
        self.notify_changed()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the persisted part of the state."""
        with self.lock:
            return {
                "storyboards": [sb.to_dict() for sb in self.storyboards],
                "pan": {"x": self.pan.x, "y": self.pan.y},
                "zoom": self.zoom,
                "next_storyboard_id": self.next_storyboard_id,
                "next_card_id": self.next_card_id,
            }

    def shutdown(self) -> None:
        """Cancel every playback timer."""
        self.playback_timers.cancel_all()
        self.logger.debug("Canvas state shut down")
