"""History navigation built on resolved diff sources.

Loads file contents for a ``DiffSource`` and computes line-range history
with ``git log -L``. Results are plain line lists; showing them is up to the
caller.
"""

from __future__ import annotations

import os
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .diff_source import Commit, DiffSource, SourceState
from .git_cli import MACHINE_READABLE_ENV, git_output
from .jobs import JobRunner
from .notify import Notifier

_COMMIT_WORD_RE = re.compile(r"^[0-9a-f]{7,}$")


class DiffTarget(Enum):
    """Which side of a diff source to show."""

    AUTO = "auto"
    BEFORE = "before"
    AFTER = "after"
    BOTH = "both"

    @classmethod
    def parse(cls, value: str | DiffTarget) -> DiffTarget:
        if isinstance(value, DiffTarget):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError('target should be one of "auto", "before", "after", "both"') from None


@dataclass(frozen=True)
class SourceView:
    """File contents at one side of a diff, plus the line to place the cursor on."""

    title: str
    lines: list[str]
    line: int
    is_worktree: bool = False


def is_commit_like(word: str) -> bool:
    """Whether ``word`` looks like an abbreviated lowercase commit hash."""
    return _COMMIT_WORD_RE.match(word) is not None


def show_commit_args(commit: str) -> list[str]:
    return ["show", "--stat", "--patch", commit]


def effective_target(source: DiffSource, target: str | DiffTarget) -> DiffTarget:
    """Resolve ``auto``: a removed line shows "before", anything else "after"."""
    parsed = DiffTarget.parse(target)
    if parsed is not DiffTarget.AUTO:
        return parsed
    return DiffTarget.BEFORE if source.init_prefix == "-" else DiffTarget.AFTER


def _read_worktree_lines(path: Path) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return []
    return text.splitlines()


def _load_view(
    runner: JobRunner,
    git_executable: str,
    cwd: Path,
    commit: Commit,
    path: str,
    line: int,
    notify: Notifier,
) -> SourceView | None:
    if commit is SourceState.WORKTREE:
        target = cwd / path
        return SourceView(title=f"edit {target}", lines=_read_worktree_lines(target), line=line, is_worktree=True)

    args = ["show", f"{commit}:{path}"]
    lines = git_output(runner, git_executable, args, cwd, env=MACHINE_READABLE_ENV)
    if not lines:
        notify.warn(f"Can not show {path} at commit {commit}")
        return None
    return SourceView(title=" ".join(args), lines=lines, line=line)


def load_diff_source_views(
    runner: JobRunner,
    source: DiffSource,
    cwd: str | os.PathLike[str],
    target: str | DiffTarget = DiffTarget.AUTO,
    *,
    git_executable: str = "git",
    notify: Notifier | None = None,
) -> list[SourceView]:
    """Contents of the file on the requested side(s) of ``source``.

    ``cwd`` must be the worktree root so the diff's relative paths resolve.
    The "before" view is listed first when both are requested.
    """
    notify = notify if notify is not None else runner.notify
    root = Path(cwd)
    side = effective_target(source, target)
    views: list[SourceView] = []

    if side is not DiffTarget.AFTER:
        # Absent for hunks of newly added files.
        if source.path_before is None or source.commit_before is None:
            notify.warn('Could not find "before" file')
        else:
            view = _load_view(
                runner,
                git_executable,
                root,
                source.commit_before,
                source.path_before,
                source.lnum_before or 1,
                notify,
            )
            if view is not None:
                views.append(view)

    if side is not DiffTarget.BEFORE:
        view = _load_view(
            runner,
            git_executable,
            root,
            source.commit_after,
            source.path_after,
            source.lnum_after,
            notify,
        )
        if view is not None:
            views.append(view)
    return views


def normalize_range_lines(line_start: int, line_end: int) -> tuple[int, int]:
    if line_start < 1 or line_end < 1:
        raise ValueError("range lines should be positive")
    if line_start > line_end:
        raise ValueError("line_start should be less than or equal to line_end")
    return line_start, line_end


def range_history_args(
    rel_path: str,
    line_start: int,
    line_end: int,
    commit: str = "HEAD",
    log_args: Sequence[str] = (),
) -> list[str]:
    line_start, line_end = normalize_range_lines(line_start, line_end)
    return ["log", f"-L{line_start},{line_end}:{rel_path}", commit, *log_args]


def range_history(
    runner: JobRunner,
    cwd: str | os.PathLike[str],
    rel_path: str,
    line_start: int,
    line_end: int,
    *,
    commit: str = "HEAD",
    log_args: Sequence[str] = (),
    git_executable: str = "git",
    notify: Notifier | None = None,
) -> list[str]:
    """``git log -L`` output for a line range of ``rel_path``.

    Uncommitted changes make the range ambiguous against ``HEAD``, so in that
    case nothing is computed and a warning is issued instead.
    """
    notify = notify if notify is not None else runner.notify
    args = range_history_args(rel_path, line_start, line_end, commit, log_args)

    if commit == "HEAD":
        diff = git_output(runner, git_executable, ["diff", "-U0", "HEAD", "--", rel_path], cwd, env=MACHINE_READABLE_ENV)
        if diff:
            notify.warn("Current file has uncommitted lines. Commit or stash before exploring history.")
            return []

    history = git_output(runner, git_executable, args, cwd, env=MACHINE_READABLE_ENV)
    if not history:
        notify.warn("Could not get range history")
    return history


__all__ = [
    "DiffTarget",
    "SourceView",
    "effective_target",
    "is_commit_like",
    "load_diff_source_views",
    "range_history",
    "range_history_args",
    "show_commit_args",
]
