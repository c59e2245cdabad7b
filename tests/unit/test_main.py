import io
import json
import logging
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

import main
from storycanvas.core import config
from storycanvas.integrations.workflow_client import WorkflowRunResult


@patch('main.shutdown_logging')
@patch('main.setup_logging')
class TestCli(unittest.TestCase):
    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp())
        self.state = self.tmp / "state.json"

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def run_cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main.main(["--state", str(self.state), "--token", "pat_test", *argv])
        return code, out.getvalue()

    def test_show_empty_canvas(self, mock_setup, mock_shutdown):
        code, out = self.run_cli("show")
        self.assertEqual(code, 0)
        self.assertIn("Canvas is empty", out)
        mock_shutdown.assert_called_once()

    @patch('storycanvas.integrations.workflow_client.WorkflowClient.run_workflow')
    def test_sync_creates_and_persists_storyboard(self, mock_run, mock_setup, mock_shutdown):
        mock_run.return_value = WorkflowRunResult(data_json={"output": [
            {"id": "s1", "title": "Opening", "image_url": "http://img/1"},
            {"id": "s2", "title": "Chase"},
        ]})

        code, out = self.run_cli("sync", "b1", "--title", "My Book")

        self.assertEqual(code, 0)
        self.assertIn("2 image card(s)", out)
        saved = json.loads(self.state.read_text(encoding="utf-8"))
        self.assertEqual(saved["storyboards"][0]["book_id"], "b1")
        self.assertEqual(saved["storyboards"][0]["title"], "My Book")

        code, out = self.run_cli("show")
        self.assertIn("My Book", out)
        self.assertIn("player #2 ready, 1 frame(s)", out)

    @patch('storycanvas.integrations.workflow_client.WorkflowClient.run_workflow')
    def test_projects(self, mock_run, mock_setup, mock_shutdown):
        mock_run.return_value = WorkflowRunResult(data_json={"output": [{"book_id": "b1", "title": "One", "count": 3}]})
        code, out = self.run_cli("projects")
        self.assertEqual(code, 0)
        self.assertIn("b1", out)
        self.assertEqual(mock_run.call_args[0][0], "GET_LIST")

    def test_default_state_path(self, mock_setup, mock_shutdown):
        args = main.build_parser().parse_args(["show"])
        self.assertEqual(args.state, str(config.STATE_PATH))

    def test_console_logging_level(self, mock_setup, mock_shutdown):
        self.run_cli("show")
        mock_setup.assert_called_once_with(console_level=logging.WARNING)

        mock_setup.reset_mock()
        self.run_cli("--verbose", "show")
        mock_setup.assert_called_once_with(console_level=logging.DEBUG)


if __name__ == '__main__':
    unittest.main()
