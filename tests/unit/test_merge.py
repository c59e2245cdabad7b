import unittest
from unittest.mock import MagicMock

from storycanvas.core.canvas import CanvasState
from storycanvas.core.cards import ImageCard, PlayerCard, ShotRecord, StoryboardData
from storycanvas.core.merge import (
    create_storyboard_from_data,
    image_card_position,
    merge_or_create_storyboard,
    sync_storyboard,
)

from fakes import ManualTimerFactory


def dataset(*shot_ids, title="Book", **shot_fields):
    return StoryboardData(
        title=title,
        shots=[ShotRecord(shot_id=sid, title=f"Shot {sid}", image_url=f"http://img/{sid}", **shot_fields)
               for sid in shot_ids],
    )


class TestMerge(unittest.TestCase):
    def setUp(self):
        self.canvas = CanvasState(timer_factory=ManualTimerFactory())

    def test_unknown_book_returns_none(self):
        self.assertIsNone(merge_or_create_storyboard(self.canvas, "missing", dataset("1")))
        self.assertEqual(self.canvas.storyboards, [])

    def test_create_chains_shots_into_player(self):
        sb = create_storyboard_from_data(self.canvas, "b1", dataset("1", "2", "3"))
        images, players = sb.image_cards(), sb.player_cards()

        self.assertEqual(len(images), 3)
        self.assertEqual(len(players), 1)
        self.assertEqual(len(sb.connections), 3)
        self.assertEqual([c.image_url for c in players[0].playlist],
                         ["http://img/1", "http://img/2", "http://img/3"])
        self.assertEqual((images[1].x, images[1].y), image_card_position(sb, 1))

    def test_merge_updates_adds_and_removes(self):
        sb = create_storyboard_from_data(self.canvas, "b1", dataset("1", "2", "3"))
        by_shot = {c.shot_id: c for c in sb.image_cards()}
        kept_id, kept_pos = by_shot["2"].id, (by_shot["2"].x, by_shot["2"].y)
        self.canvas.update_card(by_shot["2"].id, x=999, y=888)
        removed_id = by_shot["1"].id
        self.canvas.update_storyboard(sb.id, x=50, width=1234)

        merged = merge_or_create_storyboard(self.canvas, "b1", dataset("2", "3", "4", title="Renamed"))

        self.assertIs(merged, sb)
        self.assertEqual(sorted(c.shot_id for c in sb.image_cards()), ["2", "3", "4"])
        self.assertIsNone(self.canvas.find_card_by_id(removed_id))
        self.assertFalse(any(removed_id in (c.from_id, c.to_id) for c in sb.connections))

        card2 = self.canvas.find_card_by_id(kept_id)
        self.assertEqual((card2.x, card2.y), (999, 888))
        self.assertNotEqual((card2.x, card2.y), kept_pos)

        self.assertEqual(sb.title, "Renamed")
        self.assertEqual((sb.x, sb.width), (50, 1234))
        self.assertEqual(len(sb.player_cards()), 1)

    def test_merge_keeps_image_url_when_incoming_is_empty(self):
        sb = create_storyboard_from_data(self.canvas, "b1", dataset("1"))
        data = StoryboardData(title="Book", shots=[ShotRecord(shot_id="1", title="New title")])

        merge_or_create_storyboard(self.canvas, "b1", data)
        card = sb.image_cards()[0]
        self.assertEqual(card.title, "New title")
        self.assertEqual(card.image_url, "http://img/1")

    def test_merge_restores_single_player(self):
        sb = create_storyboard_from_data(self.canvas, "b1", dataset("1"))
        self.canvas.add_card(sb.id, PlayerCard())
        merge_or_create_storyboard(self.canvas, "b1", dataset("1"))
        self.assertEqual(len(sb.player_cards()), 1)

        self.canvas.remove_card(sb.player_cards()[0].id)
        merge_or_create_storyboard(self.canvas, "b1", dataset("1"))
        self.assertEqual(len(sb.player_cards()), 1)

    def test_new_cards_fill_free_slot(self):
        sb = create_storyboard_from_data(self.canvas, "b1", dataset("1", "2"))
        merge_or_create_storyboard(self.canvas, "b1", dataset("1", "2", "3"))
        new_card = next(c for c in sb.image_cards() if c.shot_id == "3")
        self.assertEqual((new_card.x, new_card.y), image_card_position(sb, 2))

    def test_manual_cards_without_shot_id_are_removed(self):
        sb = create_storyboard_from_data(self.canvas, "b1", dataset("1"))
        manual = self.canvas.add_card(sb.id, ImageCard(title="manual"))
        merge_or_create_storyboard(self.canvas, "b1", dataset("1"))
        self.assertIsNone(self.canvas.find_card_by_id(manual.id))

    def test_sync_creates_then_merges(self):
        first = sync_storyboard(self.canvas, "b1", dataset("1", "2"))
        second = sync_storyboard(self.canvas, "b1", dataset("2"))
        self.assertIs(first, second)
        self.assertEqual(len(self.canvas.storyboards), 1)

        player = second.player_cards()[0]
        self.assertEqual([c.image_url for c in player.playlist], ["http://img/2"])

    def test_sync_notifies_listeners_once(self):
        listener = MagicMock()
        self.canvas.add_listener(listener)

        sync_storyboard(self.canvas, "b1", dataset("1", "2", "3"))
        listener.assert_called_once_with(self.canvas)

        listener.reset_mock()
        sync_storyboard(self.canvas, "b1", dataset("2", "3", "4", "5"))
        listener.assert_called_once_with(self.canvas)


if __name__ == '__main__':
    unittest.main()
