from __future__ import annotations

import unittest

from gitsense.diff_source import INDEX, WORKTREE, DiffOrigin, DiffSource, fold_levels, resolve

LOG_PATCH = [
    "commit abc123def",
    "",
    "--- a/foo.txt",
    "+++ b/foo.txt",
    "@@ -10,3 +12,4 @@",
    " line",
    "+added1",
    "+added2",
]


class ResolveTests(unittest.TestCase):
    def test_log_patch_cursor_on_added_line(self) -> None:
        source = resolve(LOG_PATCH, 8)

        self.assertEqual(
            source,
            DiffSource(
                path_after="foo.txt",
                commit_after="abc123def",
                lnum_after=14,
                init_prefix="+",
                path_before="foo.txt",
                commit_before="abc123def~",
                lnum_before=10,
            ),
        )

    def test_cursor_on_path_marker_points_at_first_line(self) -> None:
        for cursor in (3, 4):
            source = resolve(LOG_PATCH, cursor)
            assert source is not None
            self.assertEqual((source.path_before, source.path_after), ("foo.txt", "foo.txt"))
            self.assertEqual((source.lnum_before, source.lnum_after), (1, 1))

    def test_removed_lines_count_toward_before_side(self) -> None:
        lines = [
            "commit 0123abcd",
            "--- a/src/app.py",
            "+++ b/src/app.py",
            "@@ -20,4 +20,3 @@ def main():",
            " keep",
            "-gone1",
            "-gone2",
            " keep2",
        ]
        source = resolve(lines, 7)
        assert source is not None
        self.assertEqual(source.init_prefix, "-")
        self.assertEqual(source.lnum_before, 22)
        self.assertEqual(source.lnum_after, 20)

    def test_mnemonic_prefixes_are_accepted(self) -> None:
        lines = ["commit 0123abcd", "--- i/a.txt", "+++ w/a.txt", "@@ -1 +1 @@", "-x", "+y"]
        source = resolve(lines, 6)
        assert source is not None
        self.assertEqual(source.path_after, "a.txt")

    def test_new_file_has_no_before_path(self) -> None:
        lines = [
            "commit 0123abcd",
            "--- /dev/null",
            "+++ b/new.txt",
            "@@ -0,0 +1,2 @@",
            "+one",
            "+two",
        ]
        source = resolve(lines, 6)
        assert source is not None
        self.assertIsNone(source.path_before)
        self.assertEqual(source.path_after, "new.txt")
        self.assertEqual(source.lnum_after, 2)
        self.assertEqual(source.lnum_before, 1)

    def test_removed_line_resembling_path_marker_is_hunk_content(self) -> None:
        lines = ["commit abc1234", "--- a/x.lua", "+++ b/x.lua", "@@ -1,2 +1,1 @@", " keep", "--- see a/b"]
        source = resolve(lines, 6)
        assert source is not None
        self.assertEqual(source.path_after, "x.lua")
        self.assertEqual((source.lnum_before, source.lnum_after), (2, 1))
        self.assertEqual(source.init_prefix, "-")

    def test_added_line_resembling_path_marker_is_hunk_content(self) -> None:
        lines = [
            "commit abc1234",
            "--- a/x.lua",
            "+++ b/x.lua",
            "@@ -1,1 +1,3 @@",
            " keep",
            "+++ http://example.com",
            "+after",
        ]
        for cursor, after_line in ((6, 2), (7, 3)):
            source = resolve(lines, cursor)
            assert source is not None
            self.assertEqual(source.path_after, "x.lua")
            self.assertEqual(source.lnum_after, after_line)

    def test_plain_diff_without_commit_or_origin_is_unresolved(self) -> None:
        lines = ["--- a/x", "+++ b/x", "@@ -1 +1 @@", "-a", "+b"]
        self.assertIsNone(resolve(lines, 5))

    def test_origin_supplies_commits_for_plain_diff(self) -> None:
        lines = ["--- a/x", "+++ b/x", "@@ -1 +1 @@", "-a", "+b"]

        worktree = resolve(lines, 5, DiffOrigin())
        assert worktree is not None
        self.assertEqual((worktree.commit_before, worktree.commit_after), (INDEX, WORKTREE))

        cached = resolve(lines, 5, DiffOrigin(("--cached",)))
        assert cached is not None
        self.assertEqual((cached.commit_before, cached.commit_after), ("HEAD", INDEX))

        against_rev = resolve(lines, 5, DiffOrigin(("HEAD~2",)))
        assert against_rev is not None
        self.assertEqual((against_rev.commit_before, against_rev.commit_after), ("HEAD~2", WORKTREE))

    def test_unrecognized_origin_is_unresolved(self) -> None:
        lines = ["--- a/x", "+++ b/x", "@@ -1 +1 @@", "-a", "+b"]
        self.assertIsNone(resolve(lines, 5, DiffOrigin(("--stat", "HEAD"))))

    def test_out_of_order_headers_are_rejected(self) -> None:
        lines = ["--- a/x", "+++ b/x", "commit abc123", "@@ -1,2 +1,2 @@", " ctx"]
        self.assertIsNone(resolve(lines, 5))

    def test_cursor_outside_any_hunk_is_unresolved(self) -> None:
        lines = ["commit abc123", "Author: someone", "", "    message"]
        self.assertIsNone(resolve(lines, 4))

    def test_cursor_out_of_range(self) -> None:
        self.assertIsNone(resolve(LOG_PATCH, 0))
        self.assertIsNone(resolve(LOG_PATCH, len(LOG_PATCH) + 1))
        self.assertIsNone(resolve([], 1))

    def test_nearest_commit_wins_in_multi_entry_log(self) -> None:
        lines = [
            "commit 1111111",
            "--- a/one.txt",
            "+++ b/one.txt",
            "@@ -1 +1 @@",
            "+first",
            "commit 2222222",
            "--- a/two.txt",
            "+++ b/two.txt",
            "@@ -5 +5 @@",
            "+second",
        ]
        source = resolve(lines, 10)
        assert source is not None
        self.assertEqual(source.commit_after, "2222222")
        self.assertEqual(source.path_after, "two.txt")
        self.assertEqual(source.lnum_after, 5)


class DiffOriginTests(unittest.TestCase):
    def test_from_argv_keeps_arguments_after_diff(self) -> None:
        self.assertEqual(DiffOrigin.from_argv(["git", "diff", "--cached"]), DiffOrigin(("--cached",)))
        self.assertEqual(DiffOrigin.from_argv(["git", "diff"]), DiffOrigin(()))
        self.assertIsNone(DiffOrigin.from_argv(["git", "log", "-p"]))

    def test_from_argv_only_accepts_diff_as_subcommand(self) -> None:
        self.assertIsNone(DiffOrigin.from_argv(["git", "log", "--", "diff"]))
        self.assertIsNone(DiffOrigin.from_argv(["git", "-C", "diff", "status"]))
        self.assertEqual(
            DiffOrigin.from_argv(["git", "-c", "color.ui=never", "diff", "HEAD~1"]),
            DiffOrigin(("HEAD~1",)),
        )


class FoldLevelTests(unittest.TestCase):
    def test_levels_follow_entry_file_and_hunk_headers(self) -> None:
        lines = [
            "commit a1b2c3d",
            "Author: someone",
            "",
            "diff --git a/x b/x",
            "--- a/x",
            "+++ b/x",
            "@@ -1 +1 @@",
            "-a",
            "+b",
            "commit d4e5f6a",
        ]
        self.assertEqual(fold_levels(lines), [0, 0, 0, 1, 1, 1, 2, 3, 0, 0])


if __name__ == "__main__":
    unittest.main()
