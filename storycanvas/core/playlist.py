"""
Playlist resolution for player cards.

A player's playlist is the chain of image cards feeding it, found by walking
incoming connections backwards from the player. Because every card has at
most one incoming connection the walk is linear. A visited set stops the walk
if a cycle ever sneaks into the graph.
"""

import copy
import logging
from typing import List

from .cards import CardType, ImageCard
from .connections import incoming

logger = logging.getLogger(__name__)


def prepare_player(canvas, player_id: int) -> List[ImageCard]:
    """
    Recompute the playlist of a player card.

    Image cards without an image URL are skipped but the walk continues
    through them. A non-empty playlist marks the player ready and uses the
    first frame as thumbnail; an empty one resets it.

    Returns:
        The stored playlist (empty when the player cannot be found).
    """
    with canvas.lock:
        storyboard = canvas.find_storyboard_by_card_id(player_id)
        if storyboard is None:
            return []

        player = storyboard.find_card(player_id)
        if player is None or player.type is not CardType.PLAYER:
            return []

        playlist: List[ImageCard] = []
        visited = {player_id}
        current = player_id

        while True:
            edge = incoming(storyboard, current)
            if edge is None:
                break

            if edge.from_id in visited:
                logger.warning(f"Cycle detected while resolving player {player_id} at card {edge.from_id}")
                break
            visited.add(edge.from_id)

            source = storyboard.find_card(edge.from_id)
            if isinstance(source, ImageCard) and source.image_url:
                playlist.insert(0, copy.deepcopy(source))
            current = edge.from_id

        canvas.apply_playlist(player_id, playlist)

        logger.debug(f"Player {player_id} resolved {len(playlist)} frame(s)")
        return playlist
