"""
Playback Engine
===============

Timer-driven slideshow for player cards.

Each player card is either idle (``is_playing=False``, ``current_frame=0``)
or playing. While playing, one recurring timer advances ``current_frame``
every ``frame_rate_ms``. At the end of the playlist the card either loops back
to frame 0 or returns to idle.

Timers live in the canvas's ``playback_timers`` registry under the player's
card id, so at most one timer drives a card, and removing the card (or its
storyboard) cancels playback immediately.
"""

import logging
from typing import Callable, Optional

from . import config
from .cards import PlayerCard
from .timers import TimerHandle

FrameCallback = Callable[[int], None]


class PlaybackEngine:
    """
    Starts, advances and stops player slideshows on a ``CanvasState``.

    Args:
        canvas: The canvas owning the player cards and the timer registry
        frame_rate_ms: Milliseconds between two frames
        loop: Restart at frame 0 instead of stopping when the playlist ends
    """

    def __init__(self, canvas, frame_rate_ms: Optional[int] = None, loop: Optional[bool] = None):
        self.logger = logging.getLogger(__name__)
        self.canvas = canvas
        self.frame_rate_ms = config.PLAYER_FRAME_RATE_MS if frame_rate_ms is None else frame_rate_ms
        self.loop = config.PLAYER_LOOP if loop is None else loop

    def start_playback(self, player_id: int, on_frame: Optional[FrameCallback] = None) -> bool:
        """
        Start the slideshow of a ready player from frame 0.

        Returns:
            False (and does nothing) when the card is missing, not a player,
            not ready, or has an empty playlist.
        """
        with self.canvas.lock:
            card = self.canvas.find_player(player_id)
            if card is None or not card.is_ready or not card.playlist:
                self.logger.debug(f"start_playback: player {player_id} is not playable")
                return False

            self.canvas.update_card(player_id, is_playing=True, current_frame=0)
            handle = None

            def tick():
                # Resolve the handle only once the lock is ours
                with self.canvas.lock:
                    self._tick(player_id, on_frame, handle)

            handle = self.canvas.playback_timers.start(player_id, self.frame_rate_ms, tick)

        self.logger.info(f"Playback started for player {player_id} ({len(card.playlist)} frames)")
        return True

    def stop_playback(self, player_id: int) -> None:
        """Cancel the player's timer (if any) and reset it to idle."""
        with self.canvas.lock:
            self.canvas.playback_timers.cancel(player_id)
            self.canvas.update_card(player_id, is_playing=False, current_frame=0)

    def is_playing(self, player_id: int) -> bool:
        card = self.canvas.find_player(player_id)
        return bool(card and card.is_playing)

    def stop_all(self) -> None:
        for player_id in self.canvas.playback_timers.keys():
            self.stop_playback(player_id)

    def _tick(self, player_id: int, on_frame: Optional[FrameCallback], handle: TimerHandle) -> None:
        with self.canvas.lock:
            # A cancelled timer's thread may already be waiting on the lock
            if self.canvas.playback_timers.get(player_id) is not handle:
                return

            card: Optional[PlayerCard] = self.canvas.find_player(player_id)
            if card is None or not card.is_playing:
                self.stop_playback(player_id)
                return

            next_frame = card.current_frame + 1
            if next_frame < len(card.playlist):
                self.canvas.update_card(player_id, current_frame=next_frame)
            elif self.loop:
                next_frame = 0
                self.canvas.update_card(player_id, current_frame=0)
            else:
                self.logger.debug(f"Player {player_id} reached the end of its playlist")
                self.stop_playback(player_id)
                return

            if on_frame is not None:
                try:
                    on_frame(next_frame)
                except Exception as e:
                    self.logger.error(
                        f"Frame callback for player {player_id} failed: {type(e).__name__}: {e}",
                        exc_info=True,
                    )
