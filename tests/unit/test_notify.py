import unittest
from unittest.mock import MagicMock

from storycanvas.utils.notify import Notifier


class TestNotifier(unittest.TestCase):
    def test_handler_receives_kind_message_title(self):
        handler = MagicMock()
        notifier = Notifier(handler)
        notifier.success("Saved", "Canvas")
        notifier.warning("Slow")
        handler.assert_any_call("success", "Saved", "Canvas")
        handler.assert_any_call("warning", "Slow", None)

    def test_unknown_kind_becomes_info(self):
        handler = MagicMock()
        Notifier(handler).notify("fanfare", "hello")
        handler.assert_called_once_with("info", "hello", None)

    def test_without_handler_logs(self):
        with self.assertLogs("storycanvas.utils.notify", level="ERROR") as logs:
            Notifier().error("Upload failed", "Images")
        self.assertIn("[Images] Upload failed", logs.output[0])

    def test_failing_handler_is_contained(self):
        notifier = Notifier(MagicMock(side_effect=RuntimeError("toast widget gone")))
        with self.assertLogs("storycanvas.utils.notify", level="ERROR"):
            notifier.info("still fine")


if __name__ == '__main__':
    unittest.main()
