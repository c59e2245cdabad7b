import threading
import unittest
from unittest.mock import MagicMock

from storycanvas.core.timers import ThreadTimerFactory, TimerRegistry, TkTimerFactory

from fakes import FakeTkWidget, ManualTimerFactory


class TestTimerRegistry(unittest.TestCase):
    def setUp(self):
        self.factory = ManualTimerFactory()
        self.registry = TimerRegistry(self.factory)

    def test_one_timer_per_key(self):
        self.registry.start(1, 100, lambda: None)
        self.registry.start(1, 100, lambda: None)
        self.assertEqual(len(self.registry), 1)
        self.assertTrue(self.factory.timers[0].cancelled)
        self.assertIs(self.registry.get(1), self.factory.timers[1])

    def test_cancel(self):
        self.registry.start("a", 100, lambda: None)
        self.assertTrue(self.registry.cancel("a"))
        self.assertFalse(self.registry.cancel("a"))
        self.assertNotIn("a", self.registry)

    def test_cancel_all(self):
        for key in range(3):
            self.registry.start(key, 100, lambda: None)
        self.registry.cancel_all()
        self.assertEqual(self.registry.keys(), [])
        self.assertEqual(self.factory.active, [])


class TestTkTimerFactory(unittest.TestCase):
    def setUp(self):
        self.widget = FakeTkWidget()
        self.factory = TkTimerFactory(self.widget)

    def test_repeating_timer_reschedules(self):
        callback = MagicMock()
        self.factory.call_every(250, callback)
        self.widget.run_pending()
        self.widget.run_pending()
        self.assertEqual(callback.call_count, 2)
        self.assertEqual(len(self.widget.scheduled), 1)

    def test_cancel_from_inside_callback(self):
        holder = {}

        def callback():
            holder["timer"].cancel()

        holder["timer"] = self.factory.call_every(250, callback)
        self.widget.run_pending()
        self.assertEqual(self.widget.scheduled, {})
        self.assertFalse(holder["timer"].active)

    def test_call_later_fires_once(self):
        callback = MagicMock()
        timer = self.factory.call_later(10, callback)
        self.widget.run_pending()
        self.widget.run_pending()
        callback.assert_called_once()
        self.assertFalse(timer.active)

    def test_cancel_before_fire(self):
        callback = MagicMock()
        timer = self.factory.call_every(10, callback)
        timer.cancel()
        self.widget.run_pending()
        callback.assert_not_called()


class TestThreadTimerFactory(unittest.TestCase):
    def test_call_later_runs_on_thread(self):
        fired = threading.Event()
        timer = ThreadTimerFactory("Test").call_later(10, fired.set)
        self.assertTrue(fired.wait(2))
        timer.cancel()

    def test_call_every_stops_after_cancel(self):
        count = {"n": 0}
        reached = threading.Event()

        def callback():
            count["n"] += 1
            if count["n"] >= 2:
                reached.set()

        timer = ThreadTimerFactory("Test").call_every(10, callback)
        self.assertTrue(reached.wait(2))
        timer.cancel()
        self.assertFalse(timer.active)


if __name__ == '__main__':
    unittest.main()
