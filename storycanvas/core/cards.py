"""
Canvas Data Model
=================

Dataclasses for everything that lives on the canvas: storyboards, the cards
inside them and the directed connections between cards.

A card is one of two variants:

- ``ImageCard``: a shot with a title, description and (once generated) an
  image URL. Image cards are the content of a playlist.
- ``PlayerCard``: the sink of a chain of image cards. Its playlist is derived
  from the graph and is never edited directly.

The variant tag is a class attribute, so a card can never disagree with its
own type. ``card_from_dict`` is the only way serialized cards come back in,
and it rejects unknown tags.
"""

import copy
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


class CardType(str, Enum):
    IMAGE = "image"
    PLAYER = "player"


@dataclass
class Card:
    """Fields shared by every card variant."""
    id: int = -1
    x: float = 0
    y: float = 0

    type: ClassVar[CardType]
    # Written only by playlist resolution, never through update_card
    derived_fields: ClassVar[frozenset] = frozenset()
    # Playback state; reset on load, so changing it does not notify listeners
    runtime_fields: ClassVar[frozenset] = frozenset()

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)}

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: copy.deepcopy(getattr(self, f.name)) for f in fields(self)}
        data["type"] = self.type.value
        return data


@dataclass
class ImageCard(Card):
    """A single shot. ``shot_id`` links the card to its remote record."""
    title: str = ""
    description: str = ""
    camera_movement: Optional[str] = None
    is_loading: bool = False
    image_url: Optional[str] = None
    shot_id: Optional[str] = None
    raw_data: Any = None

    type: ClassVar[CardType] = CardType.IMAGE


@dataclass
class PlayerCard(Card):
    """
    Slideshow sink for a chain of image cards.

    Attributes:
        is_ready: True once a non-empty playlist has been resolved
        is_playing: True while a playback timer is driving the card
        playlist: Snapshots (copies) of the image cards feeding this player
        current_frame: Index into ``playlist`` of the frame on screen
        thumbnail_url: Image URL of the first frame, if any
    """
    is_ready: bool = False
    is_playing: bool = False
    playlist: List[ImageCard] = field(default_factory=list)
    current_frame: int = 0
    thumbnail_url: Optional[str] = None

    type: ClassVar[CardType] = CardType.PLAYER
    derived_fields: ClassVar[frozenset] = frozenset({"is_ready", "playlist", "thumbnail_url"})
    runtime_fields: ClassVar[frozenset] = frozenset({"is_playing", "current_frame"})

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["playlist"] = [frame.to_dict() for frame in self.playlist]
        return data


CARD_CLASSES = {
    CardType.IMAGE: ImageCard,
    CardType.PLAYER: PlayerCard,
}


def card_from_dict(data: Dict[str, Any]) -> Card:
    """
    Build the card variant named by ``data["type"]``.

    Keys that the variant does not declare are dropped.

    Raises:
        ValueError: If the type tag is missing or unknown.
    """
    try:
        card_type = CardType(data.get("type"))
    except ValueError:
        raise ValueError(f"Unknown card type: {data.get('type')!r}") from None

    cls = CARD_CLASSES[card_type]
    kwargs = {k: v for k, v in data.items() if k in cls.field_names()}

    if cls is PlayerCard:
        playlist = kwargs.get("playlist") or []
        kwargs["playlist"] = [
            frame if isinstance(frame, ImageCard) else card_from_dict({**frame, "type": CardType.IMAGE.value})
            for frame in playlist
        ]

    return cls(**kwargs)


@dataclass(frozen=True)
class Connection:
    """Directed edge ``from_id -> to_id`` between two cards of one storyboard."""
    from_id: int
    to_id: int

    def to_dict(self) -> Dict[str, int]:
        return {"from": self.from_id, "to": self.to_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        return cls(from_id=int(data["from"]), to_id=int(data["to"]))


@dataclass
class Storyboard:
    """
    A canvas region holding one connected set of cards.

    ``book_id`` ties the storyboard to its remote project. ``x``, ``y`` and
    ``width`` are user layout and are never touched by reconciliation.
    """
    id: int = -1
    title: str = ""
    x: float = 0
    y: float = 0
    width: float = 0
    book_id: str = ""
    script_text: Optional[str] = None
    character_reference_image_file_ids: Optional[List[str]] = None
    scene_reference_image_file_id: Optional[str] = None
    cards: List[Card] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)}

    def find_card(self, card_id: int) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def image_cards(self) -> List[ImageCard]:
        return [c for c in self.cards if isinstance(c, ImageCard)]

    def player_cards(self) -> List[PlayerCard]:
        return [c for c in self.cards if isinstance(c, PlayerCard)]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            f.name: copy.deepcopy(getattr(self, f.name))
            for f in fields(self)
            if f.name not in ("cards", "connections")
        }
        data["cards"] = [card.to_dict() for card in self.cards]
        data["connections"] = [conn.to_dict() for conn in self.connections]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Storyboard":
        kwargs = {
            k: v for k, v in data.items()
            if k in cls.field_names() and k not in ("cards", "connections")
        }
        kwargs["cards"] = [card_from_dict(c) for c in data.get("cards", [])]
        kwargs["connections"] = [Connection.from_dict(c) for c in data.get("connections", [])]
        return cls(**kwargs)


# ============================================================================
# INCOMING REMOTE DATA
# ============================================================================

def _first(item: Dict[str, Any], *keys, default=None):
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return default


@dataclass
class ShotRecord:
    """One shot as returned by the remote list workflow."""
    shot_id: Optional[str]
    title: str = ""
    description: str = ""
    camera_movement: Optional[str] = None
    image_url: Optional[str] = None
    raw_data: Any = None
    order_index: Optional[float] = None

    @classmethod
    def from_raw(cls, item: Dict[str, Any], index: int = 0) -> "ShotRecord":
        """
        Normalize a remote list item.

        The remote records are loosely shaped; both snake_case and camelCase
        spellings are accepted, and a missing title falls back to the shot's
        position in the list.
        """
        shot_id = _first(item, "shot_id", "shotId", "id")
        order = _first(item, "order_index", "orderIndex")
        try:
            order = float(order) if order is not None else None
        except (TypeError, ValueError):
            order = None

        return cls(
            shot_id=str(shot_id) if shot_id is not None else None,
            title=_first(item, "title", default=f"Shot {index + 1}"),
            description=_first(item, "description", "prompt", default=""),
            camera_movement=_first(item, "camera_movement", "cameraMovement"),
            image_url=_first(item, "image_url", "imageUrl", "image"),
            raw_data=item,
            order_index=order,
        )


@dataclass
class StoryboardData:
    """Authoritative dataset for one book id, merged into a storyboard."""
    title: str = ""
    script_text: Optional[str] = None
    character_reference_image_file_ids: Optional[List[str]] = None
    scene_reference_image_file_id: Optional[str] = None
    shots: List[ShotRecord] = field(default_factory=list)

    @classmethod
    def from_items(cls, items: List[Dict[str, Any]], title: str = "", **metadata) -> "StoryboardData":
        return cls(
            title=title,
            shots=[ShotRecord.from_raw(item, i) for i, item in enumerate(items)],
            **metadata,
        )


@dataclass
class ProjectInfo:
    """Aggregated project entry (one per book id)."""
    book_id: str
    title: str = ""
    count: int = 0
