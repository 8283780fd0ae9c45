"""Session bootstrap: one scheduler, runner, watcher and cache wired together."""

from __future__ import annotations

from dataclasses import dataclass

from .config import TrackerConfig, load_tracker_config
from .jobs import JobRunner
from .notify import NotificationSink, Notifier
from .repo_watch import RepoWatcher, WatchFactory
from .scheduler import Scheduler
from .tracking import BufferStateCache


@dataclass
class Session:
    """Everything one editor integration needs; sessions share no state."""

    config: TrackerConfig
    scheduler: Scheduler
    notify: Notifier
    runner: JobRunner
    watcher: RepoWatcher
    cache: BufferStateCache

    def close(self) -> None:
        self.cache.close()
        self.watcher.close()


def create_session(
    config: TrackerConfig | None = None,
    *,
    scheduler: Scheduler | None = None,
    sink: NotificationSink | None = None,
    watch_factory: WatchFactory | None = None,
    has_git: bool | None = None,
) -> Session:
    """Build a ``Session``; ``config`` defaults to the persisted settings."""
    config = config if config is not None else load_tracker_config()
    scheduler = scheduler if scheduler is not None else Scheduler()
    notify = Notifier(sink)
    runner = JobRunner(
        scheduler,
        notify=notify,
        default_timeout_seconds=config.job_timeout_seconds,
        sync_grace_seconds=config.sync_grace_seconds,
    )
    watcher = RepoWatcher(
        scheduler,
        debounce_seconds=config.debounce_seconds,
        poll_seconds=config.watch_poll_seconds,
        watch_factory=watch_factory,
    )
    cache = BufferStateCache(runner, watcher, config, notify=notify, has_git=has_git)
    return Session(
        config=config,
        scheduler=scheduler,
        notify=notify,
        runner=runner,
        watcher=watcher,
        cache=cache,
    )
