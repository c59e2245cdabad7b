import unittest
from unittest.mock import MagicMock

from fakes import ManualTimerFactory

from storycanvas.core import config
from storycanvas.core.canvas import CanvasState
from storycanvas.core.cards import Connection, ImageCard, PlayerCard


class TestCanvasState(unittest.TestCase):
    def setUp(self):
        self.timers = ManualTimerFactory()
        self.canvas = CanvasState(timer_factory=self.timers)
        self.sb = self.canvas.create_storyboard(title="Board", book_id="b1")

    def test_ids_are_monotonic_and_never_reused(self):
        a = self.canvas.add_card(self.sb.id, ImageCard())
        b = self.canvas.add_card(self.sb.id, ImageCard())
        self.canvas.remove_card(b.id)
        c = self.canvas.add_card(self.sb.id, ImageCard())
        self.assertEqual((a.id, b.id, c.id), (0, 1, 2))

        second = self.canvas.create_storyboard(title="Other")
        self.assertEqual(second.id, 1)

    def test_add_card_to_missing_storyboard(self):
        self.assertIsNone(self.canvas.add_card(99, ImageCard()))
        self.assertEqual(self.canvas.next_card_id, 0)

    def test_stale_references_are_noops(self):
        self.assertFalse(self.canvas.remove_card(42))
        self.assertIsNone(self.canvas.update_card(42, title="x"))
        self.assertIsNone(self.canvas.update_storyboard(42, title="x"))
        self.assertFalse(self.canvas.remove_storyboard(42))

    def test_update_card_ignores_id_and_undeclared_fields(self):
        card = self.canvas.add_card(self.sb.id, ImageCard(title="old"))
        self.canvas.update_card(card.id, id=77, title="new", is_playing=True)
        self.assertEqual(card.id, 0)
        self.assertEqual(card.title, "new")
        self.assertFalse(hasattr(card, "is_playing"))

    def test_update_storyboard_keeps_id(self):
        self.canvas.update_storyboard(self.sb.id, id=5, title="Renamed", bogus=1)
        self.assertEqual(self.sb.id, 0)
        self.assertEqual(self.sb.title, "Renamed")

    def test_remove_card_drops_touching_connections(self):
        a = self.canvas.add_card(self.sb.id, ImageCard())
        b = self.canvas.add_card(self.sb.id, ImageCard())
        p = self.canvas.add_card(self.sb.id, PlayerCard())
        self.canvas.add_connection(self.sb.id, Connection(a.id, b.id))
        self.canvas.add_connection(self.sb.id, Connection(b.id, p.id))

        self.canvas.remove_card(b.id)
        self.assertEqual(self.sb.connections, [])

    def test_remove_storyboard_cancels_player_timers(self):
        p = self.canvas.add_card(self.sb.id, PlayerCard())
        self.canvas.playback_timers.start(p.id, 100, lambda: None)
        timer = self.timers.timers[0]

        self.assertTrue(self.canvas.remove_storyboard(self.sb.id))
        self.assertTrue(timer.cancelled)
        self.assertNotIn(p.id, self.canvas.playback_timers)

    def test_find_helpers(self):
        card = self.canvas.add_card(self.sb.id, ImageCard())
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        self.assertIs(self.canvas.find_storyboard_by_card_id(card.id), self.sb)
        self.assertIs(self.canvas.find_storyboard_by_book_id("b1"), self.sb)
        self.assertIsNone(self.canvas.find_player(card.id))
        self.assertIs(self.canvas.find_player(player.id), player)

    def test_listeners_are_notified_and_isolated(self):
        failing = MagicMock(side_effect=RuntimeError("boom"))
        listener = MagicMock()
        self.canvas.add_listener(failing)
        self.canvas.add_listener(listener)

        self.canvas.add_card(self.sb.id, ImageCard())
        listener.assert_called_once_with(self.canvas)

        self.canvas.remove_listener(listener)
        self.canvas.add_card(self.sb.id, ImageCard())
        listener.assert_called_once()

    def test_connect_drag(self):
        a = self.canvas.add_card(self.sb.id, ImageCard())
        b = self.canvas.add_card(self.sb.id, ImageCard())

        self.canvas.start_connecting(a.id, self.sb.id)
        self.assertTrue(self.canvas.is_connecting)
        self.assertFalse(self.canvas.end_connecting(a.id))
        self.assertFalse(self.canvas.is_connecting)

        self.canvas.start_connecting(a.id, self.sb.id)
        self.assertTrue(self.canvas.end_connecting(b.id))
        self.assertEqual(self.sb.connections, [Connection(a.id, b.id)])
        self.assertIsNone(self.canvas.connection_start)

    def test_zoom_is_clamped(self):
        for _ in range(30):
            self.canvas.zoom_in()
        self.assertEqual(self.canvas.zoom, config.MAX_ZOOM)
        for _ in range(30):
            self.canvas.zoom_out()
        self.assertEqual(self.canvas.zoom, config.MIN_ZOOM)

    def test_zoom_at_keeps_pointer_fixed(self):
        self.canvas.zoom_at(-1, 100, 50)
        self.assertAlmostEqual(self.canvas.zoom, 1.1)
        self.assertAlmostEqual(self.canvas.pan.x, 100 - 100 * 1.1)
        self.assertAlmostEqual(self.canvas.pan.y, 50 - 50 * 1.1)

    def test_panning(self):
        self.canvas.pan_to(10, 10)
        self.assertEqual((self.canvas.pan.x, self.canvas.pan.y), (0, 0))

        self.canvas.start_panning(5, 5)
        self.canvas.pan_to(25, 15)
        self.canvas.stop_panning()
        self.assertEqual((self.canvas.pan.x, self.canvas.pan.y), (20, 10))

        self.canvas.reset_view()
        self.assertEqual((self.canvas.pan.x, self.canvas.zoom), (0, 1.0))

    def test_player_playlist_fields_are_not_writable_through_update_card(self):
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        self.canvas.update_card(player.id, playlist=[ImageCard(image_url="u")], is_ready=True,
                                thumbnail_url="u", x=40)

        self.assertEqual(player.playlist, [])
        self.assertFalse(player.is_ready)
        self.assertIsNone(player.thumbnail_url)
        self.assertEqual(player.x, 40)

    def test_apply_playlist(self):
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        listener = MagicMock()
        self.canvas.add_listener(listener)

        self.canvas.apply_playlist(player.id, [ImageCard(image_url="first"), ImageCard(image_url="second")])
        self.assertTrue(player.is_ready)
        self.assertEqual(player.thumbnail_url, "first")
        listener.assert_called_once_with(self.canvas)

        self.canvas.apply_playlist(player.id, [])
        self.assertFalse(player.is_ready)
        self.assertIsNone(player.thumbnail_url)
        self.assertIsNone(self.canvas.apply_playlist(999, []))

    def test_runtime_only_updates_do_not_notify(self):
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        listener = MagicMock()
        self.canvas.add_listener(listener)

        self.canvas.update_card(player.id, is_playing=True, current_frame=2)
        listener.assert_not_called()

        self.canvas.update_card(player.id, current_frame=0, y=10)
        listener.assert_called_once_with(self.canvas)

    def test_batch_changes_notifies_once(self):
        listener = MagicMock()
        self.canvas.add_listener(listener)

        with self.canvas.batch_changes():
            with self.canvas.batch_changes():
                self.canvas.add_card(self.sb.id, ImageCard())
            self.canvas.add_card(self.sb.id, ImageCard())
            self.canvas.update_storyboard(self.sb.id, title="Batched")
            listener.assert_not_called()

        listener.assert_called_once_with(self.canvas)

        with self.canvas.batch_changes():
            pass
        listener.assert_called_once()

    def test_snapshot(self):
        self.canvas.add_card(self.sb.id, ImageCard(title="a"))
        snap = self.canvas.snapshot()
        self.assertEqual(snap["next_card_id"], 1)
        self.assertEqual(snap["storyboards"][0]["cards"][0]["title"], "a")
        self.assertEqual(snap["pan"], {"x": 0, "y": 0})


if __name__ == '__main__':
    unittest.main()
