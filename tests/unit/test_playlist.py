import unittest

from storycanvas.core.canvas import CanvasState
from storycanvas.core.cards import Connection, ImageCard, PlayerCard
from storycanvas.core.playlist import prepare_player

from fakes import ManualTimerFactory


class TestPreparePlayer(unittest.TestCase):
    def setUp(self):
        self.canvas = CanvasState(timer_factory=ManualTimerFactory())
        self.sb = self.canvas.create_storyboard(title="Board")

    def add_image(self, url):
        return self.canvas.add_card(self.sb.id, ImageCard(title=url or "blank", image_url=url))

    def chain(self, *cards):
        for source, target in zip(cards, cards[1:]):
            self.canvas.add_connection(self.sb.id, Connection(source.id, target.id))

    def test_chain_resolves_in_order(self):
        a, b, c = self.add_image("A"), self.add_image("B"), self.add_image("C")
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        self.chain(a, b, c, player)

        playlist = prepare_player(self.canvas, player.id)
        self.assertEqual([card.image_url for card in playlist], ["A", "B", "C"])
        self.assertTrue(player.is_ready)
        self.assertEqual(player.thumbnail_url, "A")

    def test_playlist_holds_copies(self):
        a = self.add_image("A")
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        self.chain(a, player)
        prepare_player(self.canvas, player.id)

        self.canvas.update_card(a.id, image_url="changed")
        self.assertEqual(player.playlist[0].image_url, "A")
        self.assertIsNot(player.playlist[0], a)

    def test_cards_without_url_are_skipped_but_walked_through(self):
        a, blank = self.add_image("A"), self.add_image(None)
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        self.chain(a, blank, player)

        playlist = prepare_player(self.canvas, player.id)
        self.assertEqual([card.image_url for card in playlist], ["A"])

    def test_unconnected_player_is_reset(self):
        player = self.canvas.add_card(self.sb.id, PlayerCard(is_ready=True, thumbnail_url="old"))
        self.assertEqual(prepare_player(self.canvas, player.id), [])
        self.assertFalse(player.is_ready)
        self.assertIsNone(player.thumbnail_url)

    def test_cycle_terminates(self):
        a, b = self.add_image("A"), self.add_image("B")
        player = self.canvas.add_card(self.sb.id, PlayerCard())
        self.chain(a, b, player)
        # Inject a loop directly, bypassing the connection rules
        self.sb.connections.append(Connection(b.id, a.id))

        playlist = prepare_player(self.canvas, player.id)
        self.assertEqual([card.image_url for card in playlist], ["A", "B"])

    def test_non_player_and_missing_ids(self):
        a = self.add_image("A")
        self.assertEqual(prepare_player(self.canvas, a.id), [])
        self.assertEqual(prepare_player(self.canvas, 1234), [])


if __name__ == '__main__':
    unittest.main()
