"""
Storyboard Reconciliation and Layout
====================================

Brings a storyboard in line with an authoritative dataset fetched from the
remote list workflow, without throwing away what the user arranged by hand.

Reconciliation rules:

1. Descriptive metadata is overwritten; position and width are not.
2. Image cards are matched to incoming shots by ``shot_id``. Matches are
   updated in place (same card id, same x/y).
3. Unmatched incoming shots become new image cards in the next free grid slot.
4. Image cards whose shot disappeared are removed, connections included.
5. Exactly one player card remains afterwards.

``merge_or_create_storyboard`` never creates the storyboard itself. It
returns None and leaves creation to the caller; ``sync_storyboard`` is the
caller-side helper that does both.

Each of these runs as one batch on the canvas, so listeners (autosave) see
one change per merge rather than one per card.
"""

import logging
from typing import Dict, Optional, Tuple

from . import config
from .cards import Connection, ImageCard, PlayerCard, ShotRecord, Storyboard, StoryboardData
from .playlist import prepare_player

logger = logging.getLogger(__name__)


# ============================================================================
# LAYOUT
# ============================================================================

def storyboard_width(per_row: int = config.IMAGE_CARDS_PER_ROW) -> float:
    grid = per_row * (config.IMAGE_CARD_WIDTH + config.CARD_PADDING)
    return config.CARD_PADDING + grid + config.PLAYER_CARD_WIDTH + config.CARD_PADDING


def image_card_position(storyboard: Storyboard, index: int) -> Tuple[float, float]:
    """Grid slot ``index`` (row-major) inside a storyboard."""
    row, col = divmod(index, config.IMAGE_CARDS_PER_ROW)
    x = storyboard.x + config.CARD_PADDING + col * (config.IMAGE_CARD_WIDTH + config.CARD_PADDING)
    y = storyboard.y + config.CARD_PADDING + row * (config.IMAGE_CARD_HEIGHT + config.CARD_PADDING)
    return x, y


def player_card_position(storyboard: Storyboard) -> Tuple[float, float]:
    """The player sits to the right of the image grid, top aligned."""
    grid_width = config.IMAGE_CARDS_PER_ROW * (config.IMAGE_CARD_WIDTH + config.CARD_PADDING)
    return storyboard.x + config.CARD_PADDING + grid_width, storyboard.y + config.CARD_PADDING


def _next_free_slot(storyboard: Storyboard) -> int:
    taken = {(card.x, card.y) for card in storyboard.image_cards()}
    index = 0
    while image_card_position(storyboard, index) in taken:
        index += 1
    return index


def _image_card_for(shot: ShotRecord, x: float, y: float) -> ImageCard:
    return ImageCard(
        x=x,
        y=y,
        title=shot.title,
        description=shot.description,
        camera_movement=shot.camera_movement,
        image_url=shot.image_url,
        shot_id=shot.shot_id,
        raw_data=shot.raw_data,
    )


def _ensure_single_player(canvas, storyboard: Storyboard) -> PlayerCard:
    players = storyboard.player_cards()
    for extra in players[1:]:
        logger.info(f"Removing surplus player card {extra.id} from storyboard {storyboard.id}")
        canvas.remove_card(extra.id)
    if players:
        return players[0]

    x, y = player_card_position(storyboard)
    return canvas.add_card(storyboard.id, PlayerCard(x=x, y=y))


# ============================================================================
# RECONCILIATION
# ============================================================================

def merge_or_create_storyboard(canvas, book_id: str, new_data: StoryboardData) -> Optional[Storyboard]:
    """
    Merge ``new_data`` into the storyboard bound to ``book_id``.

    Returns:
        The updated storyboard, or None when no storyboard has this book id
        and the caller has to create one.
    """
    with canvas.batch_changes():
        storyboard = canvas.find_storyboard_by_book_id(book_id)
        if storyboard is None:
            logger.debug(f"No storyboard for book {book_id!r}; caller must create it")
            return None

        canvas.update_storyboard(
            storyboard.id,
            title=new_data.title,
            script_text=new_data.script_text,
            character_reference_image_file_ids=new_data.character_reference_image_file_ids,
            scene_reference_image_file_id=new_data.scene_reference_image_file_id,
        )

        existing: Dict[str, ImageCard] = {
            card.shot_id: card for card in storyboard.image_cards() if card.shot_id
        }
        kept = set()
        created = updated = 0

        for shot in new_data.shots:
            if not shot.shot_id:
                continue

            card = existing.get(shot.shot_id)
            if card is not None:
                updates = dict(
                    title=shot.title,
                    description=shot.description,
                    camera_movement=shot.camera_movement,
                    raw_data=shot.raw_data,
                )
                if shot.image_url:
                    updates["image_url"] = shot.image_url
                canvas.update_card(card.id, **updates)
                kept.add(card.id)
                updated += 1
            else:
                x, y = image_card_position(storyboard, _next_free_slot(storyboard))
                new_card = canvas.add_card(storyboard.id, _image_card_for(shot, x, y))
                existing[shot.shot_id] = new_card
                kept.add(new_card.id)
                created += 1

        stale = [card.id for card in storyboard.image_cards() if card.id not in kept]
        for card_id in stale:
            canvas.remove_card(card_id)

        _ensure_single_player(canvas, storyboard)

        logger.info(
            f"Merged book {book_id!r} into storyboard {storyboard.id}: "
            f"{updated} updated, {created} created, {len(stale)} removed"
        )
        return storyboard


def create_storyboard_from_data(canvas, book_id: str, data: StoryboardData,
                                x: float = 0, y: float = 0) -> Storyboard:
    """
    Create a storyboard for ``book_id`` with one image card per shot, chained
    in order into a single player card.
    """
    with canvas.batch_changes():
        storyboard = canvas.create_storyboard(
            title=data.title,
            x=x,
            y=y,
            width=storyboard_width(),
            book_id=book_id,
            script_text=data.script_text,
            character_reference_image_file_ids=data.character_reference_image_file_ids,
            scene_reference_image_file_id=data.scene_reference_image_file_id,
        )

        chain = []
        for index, shot in enumerate(data.shots):
            cx, cy = image_card_position(storyboard, index)
            chain.append(canvas.add_card(storyboard.id, _image_card_for(shot, cx, cy)))

        px, py = player_card_position(storyboard)
        player = canvas.add_card(storyboard.id, PlayerCard(x=px, y=py))
        chain.append(player)

        for source, target in zip(chain, chain[1:]):
            canvas.add_connection(storyboard.id, Connection(source.id, target.id))

        prepare_player(canvas, player.id)
        return storyboard


def sync_storyboard(canvas, book_id: str, data: StoryboardData,
                    x: float = 0, y: float = 0) -> Storyboard:
    """Merge into the existing storyboard for ``book_id`` or create it."""
    with canvas.batch_changes():
        storyboard = merge_or_create_storyboard(canvas, book_id, data)
        if storyboard is None:
            return create_storyboard_from_data(canvas, book_id, data, x=x, y=y)

        for player in storyboard.player_cards():
            prepare_player(canvas, player.id)
        return storyboard
