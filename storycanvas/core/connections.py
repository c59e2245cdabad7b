"""
Connection rules: every card has at most one outgoing and at most one
incoming connection.

Adding an edge never fails because of cardinality; it rewires instead. The
previous edge leaving the same source and the previous edge entering the same
target are dropped before the new one is inserted. This is what keeps the
backward playlist walk a simple linear traversal.
"""

import logging
from typing import Optional

from .cards import Connection, Storyboard

logger = logging.getLogger(__name__)


def incoming(storyboard: Storyboard, card_id: int) -> Optional[Connection]:
    for conn in storyboard.connections:
        if conn.to_id == card_id:
            return conn
    return None


def outgoing(storyboard: Storyboard, card_id: int) -> Optional[Connection]:
    for conn in storyboard.connections:
        if conn.from_id == card_id:
            return conn
    return None


def add_connection(canvas, storyboard_id: int, connection: Connection) -> bool:
    """
    Insert ``connection`` into a storyboard, rewiring to keep fan-in/out <= 1.

    No-op (returns False) when the storyboard is missing, the edge already
    exists, the edge is a self-loop, or either endpoint is not a card of
    this storyboard.
    """
    storyboard = canvas.find_storyboard_by_id(storyboard_id)
    if storyboard is None:
        logger.debug(f"add_connection: storyboard {storyboard_id} not found")
        return False

    if connection in storyboard.connections:
        return False

    if connection.from_id == connection.to_id:
        logger.debug(f"add_connection: rejecting self-loop on card {connection.from_id}")
        return False

    if storyboard.find_card(connection.from_id) is None or storyboard.find_card(connection.to_id) is None:
        logger.debug(
            f"add_connection: {connection.from_id} -> {connection.to_id} "
            f"does not join two cards of storyboard {storyboard_id}"
        )
        return False

    # Single fan-out, then single fan-in
    storyboard.connections = [c for c in storyboard.connections if c.from_id != connection.from_id]
    storyboard.connections = [c for c in storyboard.connections if c.to_id != connection.to_id]
    storyboard.connections.append(connection)

    logger.debug(f"Connected {connection.from_id} -> {connection.to_id} in storyboard {storyboard_id}")
    return True


def remove_connection(canvas, storyboard_id: int, from_id: int, to_id: int) -> bool:
    """Delete the exact edge ``from_id -> to_id`` if present."""
    storyboard = canvas.find_storyboard_by_id(storyboard_id)
    if storyboard is None:
        return False

    target = Connection(from_id, to_id)
    if target not in storyboard.connections:
        return False

    storyboard.connections = [c for c in storyboard.connections if c != target]
    return True
