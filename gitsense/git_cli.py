"""git command lines, output parsers, and classification tables.

Everything here is either a pure function over strings or a thin wrapper
around ``JobRunner``; no tracking state lives in this module.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from pathlib import Path

from .jobs import JobRunner

# Marker paths inside the git dir, in reporting order.
IN_PROGRESS_MARKERS: tuple[tuple[str, str], ...] = (
    ("BISECT_LOG", "bisect"),
    ("CHERRY_PICK_HEAD", "cherry-pick"),
    ("MERGE_HEAD", "merge"),
    ("REVERT_HEAD", "revert"),
    ("rebase-apply", "apply"),
    ("rebase-merge", "rebase"),
)

UNMODIFIED_STATUS = "  "

# Make output as machine readable as possible.
MACHINE_READABLE_ENV: dict[str, str] = {"GIT_PAGER": "", "NO_COLOR": "1", "TERM": "dumb"}


class SubcommandKind(Enum):
    """How a finished git command's stdout is meant to be presented."""

    INFO = "info"
    ACTION = "action"


INFO_SUBCOMMANDS: frozenset[str] = frozenset(
    {
        "blame",
        "bisect",
        "cat-file",
        "diff",
        "diff-files",
        "diff-index",
        "diff-tree",
        "for-each-ref",
        "grep",
        "help",
        "log",
        "ls-files",
        "ls-remote",
        "ls-tree",
        "reflog",
        "rev-list",
        "rev-parse",
        "shortlog",
        "show",
        "show-branch",
        "show-ref",
        "status",
        "whatchanged",
    }
)

BASIC_SUBCOMMANDS: tuple[str, ...] = (
    "add",
    "bisect",
    "blame",
    "branch",
    "checkout",
    "cherry-pick",
    "clone",
    "commit",
    "config",
    "diff",
    "fetch",
    "grep",
    "help",
    "init",
    "log",
    "merge",
    "mv",
    "pull",
    "push",
    "rebase",
    "reflog",
    "reset",
    "restore",
    "revert",
    "rev-parse",
    "rm",
    "show",
    "stash",
    "status",
    "switch",
    "tag",
    "worktree",
)


def git_cmd(git_executable: str, args: Sequence[str]) -> list[str]:
    """Full argv for a git call; ``gc.auto=0`` keeps "Auto packing" off stderr."""
    return [git_executable, "-c", "gc.auto=0", *args]


def resolve_repo_args() -> list[str]:
    return ["rev-parse", "--path-format=absolute", "--git-dir", "--show-toplevel"]


def head_args() -> list[str]:
    return ["rev-parse", "HEAD", "--abbrev-ref", "HEAD"]


def status_args(rel_paths: Iterable[str]) -> list[str]:
    return [
        "status",
        "--verbose",
        "--untracked-files=all",
        "--ignored",
        "--porcelain",
        "-z",
        "--",
        *rel_paths,
    ]


def _split_two_lines(output: str) -> tuple[str, str] | None:
    first, sep, rest = output.partition("\n")
    if not sep:
        return None
    return first, rest


def parse_repo_output(output: str) -> tuple[Path, Path] | None:
    """Parse ``rev-parse --git-dir --show-toplevel`` into ``(repo, root)``."""
    parts = _split_two_lines(output)
    if parts is None:
        return None
    repo_text, root_text = parts
    if not repo_text or not root_text:
        return None
    return Path(repo_text), Path(root_text)


def parse_head_output(output: str) -> tuple[str, str] | None:
    """Parse ``rev-parse HEAD --abbrev-ref HEAD`` into ``(sha, short name)``."""
    parts = _split_two_lines(output)
    if parts is None:
        return None
    head, head_name = parts
    if not head or not head_name:
        return None
    return head, head_name


def iter_porcelain_records(output: str) -> list[tuple[str, str]]:
    """Split ``status --porcelain -z`` output into ``(XY, path)`` records."""
    records: list[tuple[str, str]] = []
    tokens = output.split("\0")
    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1
        if len(token) < 4 or token[2] != " ":
            continue

        status = token[:2]
        records.append((status, token[3:]))

        # Renamed/copied entries carry the source path as an extra token.
        if "R" in status or "C" in status:
            index += 1

    return records


def detect_in_progress(repo: Path) -> tuple[str, ...]:
    """Names of multi-step operations whose marker exists in ``repo``."""
    return tuple(name for marker, name in IN_PROGRESS_MARKERS if os.path.lexists(repo / marker))


def subcommand_index(argv: Sequence[str]) -> int | None:
    """Index of the first non-option word after ``argv[0]``.

    Options (and the value of ``-c``/``-C``) are skipped, so in
    ``git -c gc.auto=0 log`` the subcommand sits at index 3.
    """
    skip_next = False
    for index in range(1, len(argv)):
        part = argv[index]
        if skip_next:
            skip_next = False
            continue
        if part in {"-c", "-C"}:
            skip_next = True
            continue
        if part.startswith("-"):
            continue
        return index
    return None


def parse_subcommand(argv: Sequence[str], aliases: Mapping[str, str] | None = None) -> str | None:
    """Known subcommand of ``argv``, with simple aliases expanded."""
    index = subcommand_index(argv)
    if index is None:
        return None
    part = argv[index]
    if aliases and part in aliases:
        return aliases[part]
    if part in INFO_SUBCOMMANDS or part in BASIC_SUBCOMMANDS:
        return part
    return None


def classify_subcommand(subcommand: str | None) -> SubcommandKind:
    if subcommand is not None and subcommand in INFO_SUBCOMMANDS:
        return SubcommandKind.INFO
    return SubcommandKind.ACTION


def parse_alias_config(lines: Iterable[str]) -> dict[str, str]:
    """Map ``alias.xxx subcommand ...`` config lines to ``{xxx: subcommand}``.

    Only aliases pointing at a known subcommand are kept.
    """
    known = set(BASIC_SUBCOMMANDS) | INFO_SUBCOMMANDS
    aliases: dict[str, str] = {}
    for line in lines:
        if not line.startswith("alias."):
            continue
        name, _, value = line[len("alias."):].partition(" ")
        target = value.split(" ", 1)[0] if value else ""
        if name and target in known:
            aliases[name] = target
    return aliases


def git_output(
    runner: JobRunner,
    git_executable: str,
    args: Sequence[str],
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, object] | None = None,
) -> list[str]:
    """Run git synchronously and return stdout lines (empty on no output).

    A ``cwd`` that is not a directory yields an empty list without spawning.
    """
    if cwd is not None and not os.path.isdir(cwd):
        return []
    result = runner.run_sync(git_cmd(git_executable, ["--no-pager", *args]), cwd=cwd, env=env)
    if not result.stdout:
        return []
    return result.stdout.split("\n")


__all__ = [
    "IN_PROGRESS_MARKERS",
    "INFO_SUBCOMMANDS",
    "MACHINE_READABLE_ENV",
    "SubcommandKind",
    "UNMODIFIED_STATUS",
    "classify_subcommand",
    "detect_in_progress",
    "git_cmd",
    "git_output",
    "head_args",
    "iter_porcelain_records",
    "parse_alias_config",
    "parse_head_output",
    "parse_repo_output",
    "parse_subcommand",
    "resolve_repo_args",
    "status_args",
    "subcommand_index",
]
