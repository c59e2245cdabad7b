"""
Unit tests for application configuration.
"""

import unittest
from storycanvas.core import config


class TestConfig(unittest.TestCase):
    """Test cases for global configuration constants."""

    def test_workflow_reverse_mapping(self):
        """Every registered workflow id maps back to its key."""
        for key, definition in config.WORKFLOWS.items():
            self.assertEqual(config.WORKFLOW_KEYS_BY_ID[definition.id], key)

    def test_async_workflows(self):
        """Only the long-running workflows are polled."""
        async_keys = {key for key, wf in config.WORKFLOWS.items() if wf.is_async}
        self.assertEqual(async_keys, {"TEXT_TO_VIDEO_SHOTS", "GENERATE_VIDEO"})

    def test_zoom_bounds(self):
        self.assertLess(config.MIN_ZOOM, 1.0)
        self.assertGreater(config.MAX_ZOOM, 1.0)

    def test_poll_budget(self):
        """Default budget is two minutes of polling."""
        self.assertEqual(config.DEFAULT_MAX_POLL_COUNT * config.POLL_INTERVAL_MS, 120_000)


if __name__ == "__main__":
    unittest.main()
