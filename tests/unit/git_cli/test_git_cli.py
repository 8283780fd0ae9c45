from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from gitsense import git_cli
from gitsense.git_cli import SubcommandKind


class GitArgsTests(unittest.TestCase):
    def test_git_cmd_disables_auto_gc(self) -> None:
        self.assertEqual(
            git_cli.git_cmd("git", ["status"]),
            ["git", "-c", "gc.auto=0", "status"],
        )

    def test_status_args_end_with_pathspec_separator_and_paths(self) -> None:
        args = git_cli.status_args(["a.txt", "dir/b.txt"])
        self.assertEqual(args[0], "status")
        self.assertIn("--porcelain", args)
        self.assertIn("-z", args)
        self.assertEqual(args[-3:], ["--", "a.txt", "dir/b.txt"])


class OutputParserTests(unittest.TestCase):
    def test_parse_repo_output_returns_repo_and_root(self) -> None:
        parsed = git_cli.parse_repo_output("/work/proj/.git\n/work/proj")
        self.assertEqual(parsed, (Path("/work/proj/.git"), Path("/work/proj")))

    def test_parse_repo_output_rejects_single_line_or_blank(self) -> None:
        self.assertIsNone(git_cli.parse_repo_output("/work/proj/.git"))
        self.assertIsNone(git_cli.parse_repo_output(""))
        self.assertIsNone(git_cli.parse_repo_output("\n/work/proj"))

    def test_parse_head_output_returns_sha_and_name(self) -> None:
        self.assertEqual(git_cli.parse_head_output("abc123\nmain"), ("abc123", "main"))
        self.assertEqual(git_cli.parse_head_output("abc123\nHEAD"), ("abc123", "HEAD"))
        self.assertIsNone(git_cli.parse_head_output("fatal"))

    def test_iter_porcelain_records_skips_rename_sources(self) -> None:
        output = "M  a.txt\0R  new.txt\0old.txt\0?? untracked.txt\0!! ignored.log\0"
        self.assertEqual(
            git_cli.iter_porcelain_records(output),
            [("M ", "a.txt"), ("R ", "new.txt"), ("??", "untracked.txt"), ("!!", "ignored.log")],
        )

    def test_iter_porcelain_records_keeps_paths_with_spaces(self) -> None:
        self.assertEqual(git_cli.iter_porcelain_records(" M my file.txt\0"), [(" M", "my file.txt")])
        self.assertEqual(git_cli.iter_porcelain_records(""), [])


class InProgressTests(unittest.TestCase):
    def test_detect_in_progress_reports_markers_in_fixed_order(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = Path(tmp)
            self.assertEqual(git_cli.detect_in_progress(repo), ())

            (repo / "rebase-merge").mkdir()
            (repo / "MERGE_HEAD").write_text("abc\n", encoding="utf-8")
            (repo / "BISECT_LOG").write_text("", encoding="utf-8")

            self.assertEqual(git_cli.detect_in_progress(repo), ("bisect", "merge", "rebase"))

    def test_rebase_apply_is_reported_as_apply(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = Path(tmp)
            (repo / "rebase-apply").mkdir()
            self.assertEqual(git_cli.detect_in_progress(repo), ("apply",))


class SubcommandTests(unittest.TestCase):
    def test_parse_subcommand_skips_global_options(self) -> None:
        self.assertEqual(git_cli.parse_subcommand(["git", "-c", "gc.auto=0", "--no-pager", "log", "-p"]), "log")
        self.assertEqual(git_cli.parse_subcommand(["git", "-C", "/tmp", "commit", "-m", "x"]), "commit")

    def test_subcommand_index_skips_option_values(self) -> None:
        self.assertEqual(git_cli.subcommand_index(["git", "-C", "diff", "log", "--", "diff"]), 3)
        self.assertIsNone(git_cli.subcommand_index(["git", "--no-pager"]))

    def test_parse_subcommand_unknown_word_returns_none(self) -> None:
        self.assertIsNone(git_cli.parse_subcommand(["git", "frobnicate"]))
        self.assertIsNone(git_cli.parse_subcommand(["git", "--version"]))

    def test_parse_subcommand_expands_aliases(self) -> None:
        aliases = git_cli.parse_alias_config(
            [
                "alias.lg log --oneline --graph",
                "alias.co checkout",
                "alias.weird !echo hi",
                "user.name Someone",
            ]
        )
        self.assertEqual(aliases, {"lg": "log", "co": "checkout"})
        self.assertEqual(git_cli.parse_subcommand(["git", "lg"], aliases), "log")

    def test_classify_subcommand(self) -> None:
        self.assertIs(git_cli.classify_subcommand("log"), SubcommandKind.INFO)
        self.assertIs(git_cli.classify_subcommand("status"), SubcommandKind.INFO)
        self.assertIs(git_cli.classify_subcommand("commit"), SubcommandKind.ACTION)
        self.assertIs(git_cli.classify_subcommand(None), SubcommandKind.ACTION)


if __name__ == "__main__":
    unittest.main()
