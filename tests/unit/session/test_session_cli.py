"""Tests for session wiring and the command-line front door."""

from __future__ import annotations

import contextlib
import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from gitsense import cli
from gitsense.config import TrackerConfig
from gitsense.scheduler import Scheduler
from gitsense.session import create_session
from gitsense.tracking import StateUpdated


class SessionTests(unittest.TestCase):
    def test_session_components_share_scheduler_and_settings(self) -> None:
        scheduler = Scheduler()
        config = TrackerConfig(job_timeout_seconds=3.0, debounce_seconds=0.2, watch_poll_seconds=0.5)
        session = create_session(config, scheduler=scheduler, has_git=True)

        self.assertIs(session.runner.scheduler, scheduler)
        self.assertIs(session.watcher.scheduler, scheduler)
        self.assertEqual(session.runner.default_timeout_seconds, 3.0)
        self.assertEqual(session.watcher.debounce_seconds, 0.2)
        self.assertEqual(session.watcher.poll_seconds, 0.5)
        self.assertIs(session.cache.notify, session.notify)
        session.close()

    def test_missing_git_warns_and_disables_tracking(self) -> None:
        messages: list[str] = []
        config = TrackerConfig(git_executable="gitsense-no-such-git-xyz")
        session = create_session(config, sink=lambda message, _level: messages.append(message))

        self.assertFalse(session.cache.has_git)
        self.assertEqual(messages, ["(gitsense) There is no `gitsense-no-such-git-xyz` executable"])
        with tempfile.NamedTemporaryFile() as handle:
            session.cache.enable(1, handle.name)
        self.assertFalse(session.cache.is_resolving(1))


class CliTests(unittest.TestCase):
    def test_parser_rejects_non_positive_lines(self) -> None:
        parser = cli.build_parser()
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                parser.parse_args(["source", "diff.txt", "0"])

    def test_format_state_line(self) -> None:
        event = StateUpdated(
            handle="a.txt",
            repo=Path("/p/.git"),
            root=Path("/p"),
            head="abc",
            head_name="main",
            status=" M",
            in_progress=("merge", "rebase"),
        )
        self.assertEqual(cli.format_state_line(event), "a.txt main ' M' merge,rebase")

    def test_source_prints_unresolved_warning(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            diff_path = Path(tmp) / "out.diff"
            diff_path.write_text("just text\n", encoding="utf-8")
            stderr = io.StringIO()
            with mock.patch("gitsense.cli.load_tracker_config", return_value=TrackerConfig()):
                with contextlib.redirect_stderr(stderr):
                    code = cli.main(["source", str(diff_path), "1"])

        self.assertEqual(code, 1)
        self.assertIn("(gitsense) Could not find diff source", stderr.getvalue())

    def test_source_prints_worktree_view(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            Path(tmp, "x.txt").write_text("new\n", encoding="utf-8")
            diff_path = Path(tmp) / "out.diff"
            diff_path.write_text("--- a/x.txt\n+++ b/x.txt\n@@ -1 +1 @@\n-old\n+new\n", encoding="utf-8")
            stdout = io.StringIO()
            with mock.patch("gitsense.cli.load_tracker_config", return_value=TrackerConfig()):
                with contextlib.redirect_stdout(stdout):
                    code = cli.main(["source", str(diff_path), "5", "--origin", "diff", "--cwd", tmp])

        self.assertEqual(code, 0)
        self.assertEqual(stdout.getvalue().splitlines(), ["==> worktree (line 1)", "new"])


if __name__ == "__main__":
    unittest.main()
