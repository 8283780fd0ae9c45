"""Map a cursor position inside unified diff / log text to file coordinates.

Given the lines of ``git log --patch`` or ``git diff`` output and a cursor
line, find which file, at which commit, and at which line the cursor refers
to, both before and after the change. Everything here is a pure function of
its arguments.

Lines are addressed 1-based, like editor cursor positions.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from .git_cli import subcommand_index

# One-letter prefix, so ``diff.mnemonicPrefix`` output (i/, w/, c/) works.
_PATH_BEFORE_RE = re.compile(r"^--- (?:[A-Za-z]/(.+)|/dev/null)$")
_PATH_AFTER_RE = re.compile(r"^\+\+\+ (?:[A-Za-z]/(.+)|/dev/null)$")
_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+),?\d* \+(\d+),?\d* @@")
_HUNK_ANY_RE = re.compile(r"^@@.*@@")
_COMMIT_RE = re.compile(r"^commit ([0-9a-fA-F]+)$")
_HUNK_PREFIXES = (" ", "-", "+")


class SourceState(Enum):
    """Non-commit file states a diff side can refer to."""

    WORKTREE = "worktree"


WORKTREE = SourceState.WORKTREE
INDEX = ":0"

Commit = str | SourceState


@dataclass(frozen=True)
class DiffSource:
    """Resolved coordinates of the cursor line on both sides of a diff."""

    path_after: str
    commit_after: Commit
    lnum_after: int
    init_prefix: str
    path_before: str | None = None
    commit_before: Commit | None = None
    lnum_before: int | None = None


@dataclass(frozen=True)
class DiffOrigin:
    """The ``git diff`` invocation that produced a text buffer.

    ``args`` are the arguments after the ``diff`` subcommand.
    """

    args: tuple[str, ...] = ()

    @classmethod
    def from_argv(cls, argv: Sequence[str]) -> DiffOrigin | None:
        """Build from a full git argv; ``None`` when it is not a diff call."""
        parts = list(argv)
        index = subcommand_index(parts)
        if index is None or parts[index] != "diff":
            return None
        return cls(args=tuple(part for part in parts[index + 1:] if part))

    def infer_commits(self) -> tuple[Commit, Commit] | None:
        """``(before, after)`` for the recognized shapes, else ``None``.

        Only plain ``diff``, ``diff --cached`` and ``diff <rev>`` are known;
        ranges, path limits and other options stay unresolved.
        """
        if not self.args:
            return INDEX, WORKTREE
        if self.args == ("--cached",):
            return "HEAD", INDEX
        if len(self.args) == 1 and not self.args[0].startswith("-"):
            return self.args[0], WORKTREE
        return None


@dataclass
class _Scan:
    """Mutable accumulator filled by the three upward scans."""

    init_prefix: str
    path_before: str | None = None
    path_after: str | None = None
    lnum_before: int | None = None
    lnum_after: int | None = None
    commit_before: Commit | None = None
    commit_after: Commit | None = None


def _line(lines: Sequence[str], lnum: int) -> str:
    if 1 <= lnum <= len(lines):
        return lines[lnum - 1]
    return ""


def _match_path(pattern: re.Pattern[str], line: str) -> str | None:
    """Path named by a marker line; ``None`` for ``/dev/null``."""
    match = pattern.match(line)
    if match is None:
        return None
    return match.group(1)


def _is_before_marker(lines: Sequence[str], lnum: int) -> bool:
    # A file header is always a "---" line directly followed by "+++".
    return (
        _PATH_BEFORE_RE.match(_line(lines, lnum)) is not None
        and _PATH_AFTER_RE.match(_line(lines, lnum + 1)) is not None
    )


def _is_after_marker(lines: Sequence[str], lnum: int) -> bool:
    return _is_before_marker(lines, lnum - 1)


def _parse_paths(scan: _Scan, lines: Sequence[str], lnum: int) -> int:
    on_before = _is_before_marker(lines, lnum)
    on_after = _is_after_marker(lines, lnum)
    if on_before or on_after:
        before_lnum = lnum if on_before else lnum - 1
        scan.path_before = _match_path(_PATH_BEFORE_RE, _line(lines, before_lnum))
        scan.path_after = _match_path(_PATH_AFTER_RE, _line(lines, before_lnum + 1))
        scan.lnum_before, scan.lnum_after = 1, 1
        return lnum

    found_after = False
    while not found_after and lnum > 0:
        if _is_after_marker(lines, lnum):
            found_after = True
            scan.path_after = _match_path(_PATH_AFTER_RE, _line(lines, lnum))
        lnum -= 1
    if found_after:
        scan.path_before = _match_path(_PATH_BEFORE_RE, _line(lines, lnum))
    return lnum


def _parse_hunk(scan: _Scan, lines: Sequence[str], lnum: int) -> int:
    if scan.lnum_after is not None:
        return lnum

    offsets = {prefix: 0 for prefix in _HUNK_PREFIXES}
    while lnum > 0:
        prefix = _line(lines, lnum)[:1]
        if prefix not in offsets:
            break
        offsets[prefix] += 1
        lnum -= 1

    match = _HUNK_HEADER_RE.match(_line(lines, lnum))
    if match is not None:
        start_before, start_after = int(match.group(1)), int(match.group(2))
        scan.lnum_before = max(1, start_before + offsets[" "] + offsets["-"] - 1)
        scan.lnum_after = max(1, start_after + offsets[" "] + offsets["+"] - 1)
    return lnum


def _parse_commits(scan: _Scan, lines: Sequence[str], lnum: int, origin: DiffOrigin | None) -> int:
    while lnum > 0:
        match = _COMMIT_RE.match(_line(lines, lnum))
        if match is not None:
            commit = match.group(1)
            scan.commit_after, scan.commit_before = commit, commit + "~"
            return lnum
        lnum -= 1

    if origin is not None:
        inferred = origin.infer_commits()
        if inferred is not None:
            scan.commit_before, scan.commit_after = inferred
    return lnum


def resolve(
    lines: Sequence[str],
    cursor_line: int,
    origin: DiffOrigin | None = None,
) -> DiffSource | None:
    """Resolve the diff source under ``cursor_line`` or return ``None``.

    Paths, hunk position and commit are each found by scanning upward from
    the cursor. The answer is accepted only when the "after" side is complete
    and the matches nest as commit header, then file header, then hunk
    header; anything else means the cursor is outside a coherent diff.
    """
    if not 1 <= cursor_line <= len(lines):
        return None

    scan = _Scan(init_prefix=_line(lines, cursor_line)[:1])
    paths_lnum = _parse_paths(scan, lines, cursor_line)
    hunk_lnum = _parse_hunk(scan, lines, cursor_line)
    commits_lnum = _parse_commits(scan, lines, cursor_line, origin)

    if scan.commit_after is None or scan.path_after is None or scan.lnum_after is None:
        return None
    if not (commits_lnum <= paths_lnum <= hunk_lnum):
        return None

    return DiffSource(
        path_after=scan.path_after,
        commit_after=scan.commit_after,
        lnum_after=scan.lnum_after,
        init_prefix=scan.init_prefix,
        path_before=scan.path_before,
        commit_before=scan.commit_before,
        lnum_before=scan.lnum_before,
    )


def is_hunk_header(line: str) -> bool:
    return _HUNK_ANY_RE.match(line) is not None


def is_log_entry_header(line: str) -> bool:
    return line.startswith("commit ")


def is_file_entry_header(line: str) -> bool:
    return line.startswith("diff --git")


def fold_levels(lines: Sequence[str]) -> list[int]:
    """Fold level per line of diff/log text.

    Level 0 shows one line per log entry, 1 one line per file, 2 one line per
    hunk, and 3 folds nothing.
    """
    levels: list[int] = []
    previous = 0
    for lnum in range(1, len(lines) + 1):
        line = _line(lines, lnum)
        if is_log_entry_header(_line(lines, lnum + 1)) or is_log_entry_header(line):
            level = 0
        elif is_file_entry_header(line):
            level = 1
        elif is_hunk_header(line):
            level = 2
        elif is_hunk_header(_line(lines, lnum - 1)):
            level = 3
        else:
            level = previous
        levels.append(level)
        previous = level
    return levels


__all__ = [
    "DiffOrigin",
    "DiffSource",
    "INDEX",
    "SourceState",
    "WORKTREE",
    "fold_levels",
    "resolve",
]
