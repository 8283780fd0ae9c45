"""Per-repository watches with debounced change fan-out.

Each git dir gets one ``RepoRecord`` owning a poll-based watch and a debounce
timer. The watch compares stat signatures of the git dir's top-level entries
(plus the ref file HEAD points to) on every poll and reports changed names;
names ending in ``lock`` are transient and ignored. Each reported change
restarts the debounce timer, and only the timer firing notifies subscribers.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.05
DEFAULT_POLL_SECONDS = 0.25

StatSignature = tuple[str, int, int, int]
ChangeCallback = Callable[[Path, frozenset[Hashable]], None]


def _path_stat_signature(path: Path) -> StatSignature:
    """Return a stable stat tuple describing ``path`` existence and metadata."""
    try:
        st = path.lstat()
    except FileNotFoundError:
        return ("missing", 0, 0, 0)
    except OSError:
        return ("error", 0, 0, 0)
    return ("ok", st.st_mtime_ns, st.st_size, st.st_mode)


def _head_ref_name(repo: Path) -> str:
    try:
        head_text = (repo / "HEAD").read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        return ""
    if head_text.startswith("ref: "):
        return head_text[5:].strip()
    return ""


def snapshot_git_dir(repo: Path) -> dict[str, StatSignature]:
    """Stat signatures for top-level entries of ``repo`` and HEAD's ref file."""
    snapshot: dict[str, StatSignature] = {}
    try:
        with os.scandir(repo) as entries:
            for entry in entries:
                snapshot[entry.name] = _path_stat_signature(Path(entry.path))
    except OSError:
        return snapshot

    ref_name = _head_ref_name(repo)
    if ref_name and ref_name not in snapshot:
        snapshot[ref_name] = _path_stat_signature(repo / ref_name)
    return snapshot


def changed_names(previous: dict[str, StatSignature], current: dict[str, StatSignature]) -> list[str]:
    names = set(previous) | set(current)
    return sorted(name for name in names if previous.get(name) != current.get(name))


def is_transient_name(filename: str) -> bool:
    return filename.endswith("lock")


class RepoWatch(Protocol):
    """A started filesystem watch that can be stopped once."""

    @property
    def active(self) -> bool: ...

    def stop(self) -> None: ...


WatchFactory = Callable[[Path, Callable[[str], None]], RepoWatch]


class PollingRepoWatch:
    """Poll ``repo`` on the scheduler and report changed entry names."""

    def __init__(
        self,
        repo: Path,
        scheduler: Scheduler,
        on_event: Callable[[str], None],
        poll_seconds: float = DEFAULT_POLL_SECONDS,
    ) -> None:
        self.repo = repo
        self.scheduler = scheduler
        self.on_event = on_event
        self.poll_seconds = poll_seconds
        self._snapshot: dict[str, StatSignature] = {}
        self._timer: TimerHandle | None = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._snapshot = snapshot_git_dir(self.repo)
        self._active = True
        self._arm()

    def _arm(self) -> None:
        self._timer = self.scheduler.call_later(self.poll_seconds, self.poll)

    def poll(self) -> None:
        if not self._active:
            return
        current = snapshot_git_dir(self.repo)
        previous, self._snapshot = self._snapshot, current
        for name in changed_names(previous, current):
            if not self._active:
                return
            self.on_event(name)
        if self._active:
            self._arm()

    def stop(self) -> None:
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


@dataclass
class RepoRecord:
    """Watch state for one git dir and the handles subscribed to it."""

    repo: Path
    watch: RepoWatch | None = None
    timer: TimerHandle | None = None
    subscribers: set[Hashable] = field(default_factory=set)


class RepoWatcher:
    """Registry of ``RepoRecord`` objects keyed by git dir path."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        watch_factory: WatchFactory | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.debounce_seconds = debounce_seconds
        self.poll_seconds = poll_seconds
        self._watch_factory = watch_factory or self._start_polling_watch
        self._records: dict[Path, RepoRecord] = {}
        self._listeners: list[ChangeCallback] = []

    def _start_polling_watch(self, repo: Path, on_event: Callable[[str], None]) -> RepoWatch:
        watch = PollingRepoWatch(repo, self.scheduler, on_event, self.poll_seconds)
        watch.start()
        return watch

    def add_listener(self, listener: ChangeCallback) -> None:
        self._listeners.append(listener)

    def record(self, repo: Path) -> RepoRecord | None:
        return self._records.get(repo)

    def repos(self) -> list[Path]:
        return list(self._records)

    def subscribe(self, repo: Path, handle: Hashable) -> RepoRecord:
        """Register ``handle`` for change signals of ``repo``.

        The watch is (re)started when the record has none or it went
        inactive.
        """
        record = self._records.get(repo)
        if record is None:
            record = RepoRecord(repo=repo)
            self._records[repo] = record

        if record.watch is None or not record.watch.active:
            self._teardown(record)
            record.watch = self._watch_factory(repo, lambda filename: self.handle_event(repo, filename))
            logger.debug("watching %s", repo)

        record.subscribers.add(handle)
        return record

    def unsubscribe(self, repo: Path, handle: Hashable) -> None:
        record = self._records.get(repo)
        if record is None:
            return
        record.subscribers.discard(handle)
        if not record.subscribers:
            self._teardown(record)
            del self._records[repo]
            logger.debug("stopped watching %s", repo)

    def _teardown(self, record: RepoRecord) -> None:
        if record.watch is not None:
            record.watch.stop()
            record.watch = None
        if record.timer is not None:
            record.timer.cancel()
            record.timer = None

    def handle_event(self, repo: Path, filename: str) -> None:
        """Restart the debounce timer for ``repo`` unless ``filename`` is transient."""
        if is_transient_name(filename):
            return
        record = self._records.get(repo)
        if record is None:
            return
        if record.timer is not None:
            record.timer.cancel()
        record.timer = self.scheduler.call_later(self.debounce_seconds, lambda: self._fire(repo))

    def _fire(self, repo: Path) -> None:
        record = self._records.get(repo)
        if record is None:
            return
        record.timer = None
        subscribers = frozenset(record.subscribers)
        for listener in list(self._listeners):
            listener(repo, subscribers)

    def close(self) -> None:
        for record in list(self._records.values()):
            self._teardown(record)
        self._records.clear()


__all__ = [
    "PollingRepoWatch",
    "RepoRecord",
    "RepoWatcher",
    "changed_names",
    "is_transient_name",
    "snapshot_git_dir",
]
