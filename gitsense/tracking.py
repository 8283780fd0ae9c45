"""Per-file git state cache driven by jobs and repository watches.

Lifecycle per handle: untracked -> resolving -> tracked -> untracked. Refresh
jobs (HEAD, in-progress, status) each own a disjoint set of ``FileState``
fields and only ever write those, so completions can land in any order.
Disabling does not cancel jobs; every completion re-checks that the handle is
still tracked under the same generation before touching state.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from . import git_cli
from .config import TrackerConfig
from .jobs import JobResult, JobRunner
from .notify import Notifier
from .repo_watch import RepoWatcher

logger = logging.getLogger(__name__)

_HEAD_FIELDS = frozenset({"head", "head_name"})
_IN_PROGRESS_FIELDS = frozenset({"in_progress"})
_STATUS_FIELDS = frozenset({"status"})
_LOCATION_FIELDS = frozenset({"repo", "root"})


@dataclass(frozen=True)
class FileState:
    """Snapshot of what is known about one tracked file.

    ``None`` means "not known yet"; each refresh fills its own fields.
    """

    handle: Hashable
    path: Path
    repo: Path | None = None
    root: Path | None = None
    head: str | None = None
    head_name: str | None = None
    status: str | None = None
    in_progress: tuple[str, ...] | None = None

    @property
    def in_progress_text(self) -> str:
        return ",".join(self.in_progress or ())


@dataclass(frozen=True)
class StateUpdated:
    """Emitted after every successful merge into a ``FileState``."""

    handle: Hashable
    repo: Path | None
    root: Path | None
    head: str | None
    head_name: str | None
    status: str | None
    in_progress: tuple[str, ...] | None


StateListener = Callable[[StateUpdated], None]


@dataclass
class _Entry:
    state: FileState
    generation: int
    tracked: bool = False


class BufferStateCache:
    """Registry of tracked files keyed by an opaque, hashable handle."""

    def __init__(
        self,
        runner: JobRunner,
        watcher: RepoWatcher,
        config: TrackerConfig | None = None,
        *,
        notify: Notifier | None = None,
        has_git: bool | None = None,
    ) -> None:
        self.runner = runner
        self.watcher = watcher
        self.config = config or TrackerConfig()
        self.notify = notify if notify is not None else runner.notify
        if has_git is None:
            has_git = shutil.which(self.config.git_executable) is not None
            if not has_git:
                self.notify.warn(f"There is no `{self.config.git_executable}` executable")
        self.has_git = has_git
        self.disabled = False
        self._entries: dict[Hashable, _Entry] = {}
        self._generation = 0
        self._listeners: list[StateListener] = []
        watcher.add_listener(self._on_repo_change)

    # Queries -----------------------------------------------------------

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def is_tracked(self, handle: Hashable) -> bool:
        entry = self._entries.get(handle)
        return entry is not None and entry.tracked

    def is_resolving(self, handle: Hashable) -> bool:
        entry = self._entries.get(handle)
        return entry is not None and not entry.tracked

    def get_data(self, handle: Hashable) -> FileState | None:
        entry = self._entries.get(handle)
        if entry is None or not entry.tracked:
            return None
        return entry.state

    def tracked_handles(self) -> list[Hashable]:
        return [handle for handle, entry in self._entries.items() if entry.tracked]

    # Lifecycle ---------------------------------------------------------

    def enable(self, handle: Hashable, path: str | os.PathLike[str]) -> None:
        """Start tracking ``path`` under ``handle``; no-op when not applicable."""
        if handle in self._entries or self.disabled or not self.has_git:
            return
        file_path = Path(path)
        if not file_path.is_file() or not os.access(file_path, os.R_OK):
            return

        self._generation += 1
        generation = self._generation
        self._entries[handle] = _Entry(state=FileState(handle=handle, path=file_path.absolute()), generation=generation)

        def on_done(result: JobResult) -> None:
            self._on_resolved(handle, generation, result)

        self.runner.run(
            self._git(git_cli.resolve_repo_args()),
            cwd=file_path.absolute().parent,
            timeout=self.config.job_timeout_seconds,
            on_done=on_done,
        )

    def disable(self, handle: Hashable) -> None:
        entry = self._entries.pop(handle, None)
        if entry is None:
            return
        repo = entry.state.repo
        if entry.tracked and repo is not None:
            self.watcher.unsubscribe(repo, handle)

    def toggle(self, handle: Hashable, path: str | os.PathLike[str]) -> None:
        if handle in self._entries:
            self.disable(handle)
            return
        self.enable(handle, path)

    def close(self) -> None:
        for handle in list(self._entries):
            self.disable(handle)

    def notify_renamed(self, handle: Hashable, new_path: str | os.PathLike[str] | None = None) -> None:
        """Re-resolve ``handle`` from scratch; repo and root may have changed."""
        entry = self._entries.get(handle)
        if entry is None or not entry.tracked:
            return
        path = Path(new_path) if new_path is not None else entry.state.path
        self.disable(handle)
        self.enable(handle, path)

    def notify_written(self, handle: Hashable) -> None:
        state = self.get_data(handle)
        if state is None or state.root is None:
            return
        self.refresh_status(state.root, [handle])

    def notify_reloaded(self, handle: Hashable) -> None:
        state = self.get_data(handle)
        if state is None or state.root is None or state.repo is None:
            return
        self.refresh_head(state.root, [handle])
        self.refresh_in_progress(state.repo, [handle])

    # Resolution --------------------------------------------------------

    def _git(self, args: list[str]) -> list[str]:
        return git_cli.git_cmd(self.config.git_executable, args)

    def _current(self, handle: Hashable, generation: int) -> _Entry | None:
        entry = self._entries.get(handle)
        if entry is None or entry.generation != generation:
            return None
        return entry

    def _on_resolved(self, handle: Hashable, generation: int, result: JobResult) -> None:
        entry = self._current(handle, generation)
        if entry is None or entry.tracked:
            return
        # Not inside a repository (or unusable answer): stay untracked quietly.
        parsed = git_cli.parse_repo_output(result.stdout) if result.exit_code == 0 else None
        if parsed is None:
            del self._entries[handle]
            logger.debug("not tracking %s: %s", entry.state.path, result.stderr or result.stdout)
            return
        if result.stderr:
            self.notify.warn(result.stderr)
        repo, root = parsed

        entry.tracked = True
        self._merge(handle, {"repo": repo, "root": root}, _LOCATION_FIELDS)
        self.watcher.subscribe(repo, handle)

        self.refresh_head(root, [handle])
        self.refresh_in_progress(repo, [handle])
        self.refresh_status(root, [handle])

    # Refreshes ---------------------------------------------------------

    def _generations(self, handles: Iterable[Hashable]) -> dict[Hashable, int]:
        targets: dict[Hashable, int] = {}
        for handle in handles:
            entry = self._entries.get(handle)
            if entry is not None and entry.tracked:
                targets[handle] = entry.generation
        return targets

    def refresh_head(self, root: Path, handles: Iterable[Hashable]) -> None:
        targets = self._generations(handles)
        if not targets:
            return

        def on_done(result: JobResult) -> None:
            # Already reported by the runner; state stays as it was.
            if result.timed_out:
                return
            if self.notify.command_output(result.exit_code, result.stdout, result.stderr):
                return
            parsed = git_cli.parse_head_output(result.stdout)
            if parsed is None:
                self.notify.warn(f"Could not parse HEAD data for root {root}\n{result.stdout}")
                return
            head, head_name = parsed
            for handle, generation in targets.items():
                if self._current(handle, generation) is not None:
                    self._merge(handle, {"head": head, "head_name": head_name}, _HEAD_FIELDS)

        self.runner.run(
            self._git(git_cli.head_args()),
            cwd=root,
            timeout=self.config.job_timeout_seconds,
            on_done=on_done,
        )

    def refresh_in_progress(self, repo: Path, handles: Iterable[Hashable]) -> None:
        in_progress = git_cli.detect_in_progress(repo)
        for handle, generation in self._generations(handles).items():
            if self._current(handle, generation) is not None:
                self._merge(handle, {"in_progress": in_progress}, _IN_PROGRESS_FIELDS)

    def refresh_status(self, root: Path, handles: Iterable[Hashable]) -> None:
        targets = self._generations(handles)
        rel_to_handle: dict[str, tuple[Hashable, int]] = {}
        for handle, generation in targets.items():
            rel_path = _relative_to_root(self._entries[handle].state.path, root)
            if rel_path is None:
                logger.debug("%s is outside root %s", self._entries[handle].state.path, root)
                continue
            rel_to_handle[rel_path] = (handle, generation)
        if not rel_to_handle:
            return

        def on_done(result: JobResult) -> None:
            # Already reported by the runner; state stays as it was.
            if result.timed_out:
                return
            if self.notify.command_output(result.exit_code, result.stdout, result.stderr):
                return
            statuses = {rel_path: git_cli.UNMODIFIED_STATUS for rel_path in rel_to_handle}
            for status, rel_path in git_cli.iter_porcelain_records(result.stdout):
                if rel_path in statuses:
                    statuses[rel_path] = status
            for rel_path, status in statuses.items():
                handle, generation = rel_to_handle[rel_path]
                if self._current(handle, generation) is not None:
                    self._merge(handle, {"status": status}, _STATUS_FIELDS)

        self.runner.run(
            self._git(git_cli.status_args(rel_to_handle)),
            cwd=root,
            timeout=self.config.job_timeout_seconds,
            on_done=on_done,
        )

    def _on_repo_change(self, repo: Path, subscribers: frozenset[Hashable]) -> None:
        root_handles: dict[Path, list[Hashable]] = {}
        live: list[Hashable] = []
        for handle in subscribers:
            entry = self._entries.get(handle)
            if entry is None or not entry.tracked or entry.state.repo != repo:
                self.watcher.unsubscribe(repo, handle)
                continue
            live.append(handle)
            root = entry.state.root
            if root is not None:
                root_handles.setdefault(root, []).append(handle)

        if not live:
            return
        self.refresh_in_progress(repo, live)
        for root, handles in root_handles.items():
            self.refresh_head(root, handles)
            # Status depends on the index, which may have changed too.
            self.refresh_status(root, handles)

    # Merging -----------------------------------------------------------

    def _merge(self, handle: Hashable, new_data: dict[str, object], owned: frozenset[str]) -> None:
        entry = self._entries.get(handle)
        if entry is None or not entry.tracked:
            return
        fields = {key: value for key, value in new_data.items() if key in owned}
        entry.state = replace(entry.state, **fields)
        state = entry.state
        event = StateUpdated(
            handle=handle,
            repo=state.repo,
            root=state.root,
            head=state.head,
            head_name=state.head_name,
            status=state.status,
            in_progress=state.in_progress,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("state listener failed")


def _relative_to_root(path: Path, root: Path) -> str | None:
    """Path of ``path`` relative to ``root`` in git's ``/``-separated form."""
    for candidate_path, candidate_root in ((path, root), (path.resolve(), root.resolve())):
        try:
            return candidate_path.relative_to(candidate_root).as_posix()
        except ValueError:
            continue
    return None


__all__ = ["BufferStateCache", "FileState", "StateUpdated"]
