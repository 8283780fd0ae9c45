"""External command execution with captured output and a bounded lifetime.

A job is spawned with ``subprocess.Popen``; two reader threads drain stdout
and stderr, and the finished result is posted back to the ``Scheduler`` so
completion callbacks always run on the scheduler's owner thread. The timeout
timer lives on the same scheduler, which makes exit and timeout race-free:
whichever callback runs first completes the job, the other is a no-op.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from .notify import Notifier
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_SYNC_GRACE_SECONDS = 0.01
TIMEOUT_EXIT_CODE = 1
SPAWN_FAILURE_EXIT_CODE = 127

_CARRIAGE_RETURNS_RE = re.compile(r"\r+")
_BLANK_RUN_RE = re.compile(r"\n\s+\n")
_TRAILING_NEWLINES_RE = re.compile(r"\n+$")


@dataclass(frozen=True)
class JobResult:
    """Outcome of one job. A timeout is ``exit_code == 1`` with ``timed_out``."""

    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True)
class CommandFinished:
    """Observability payload emitted after every job."""

    argv: tuple[str, ...]
    cwd: str
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False


JobCallback = Callable[[JobResult], None]
CommandListener = Callable[[CommandFinished], None]


def stream_to_text(chunks: Sequence[bytes]) -> str:
    """Join captured chunks and drop trailing newlines."""
    text = b"".join(chunks).decode("utf-8", errors="replace")
    return _TRAILING_NEWLINES_RE.sub("", text)


def normalize_stderr(text: str) -> str:
    """Make progress-style stderr readable as plain lines."""
    return _BLANK_RUN_RE.sub("\n\n", _CARRIAGE_RETURNS_RE.sub("\n", text))


def make_spawn_env(overrides: Mapping[str, object] | None) -> dict[str, str] | None:
    """Merge ``overrides`` over the inherited environment."""
    if not overrides:
        return None
    env = dict(os.environ)
    for key, value in overrides.items():
        env[str(key)] = str(value)
    return env


def _read_stream(stream, chunks: list[bytes]) -> None:
    try:
        while True:
            chunk = stream.read1(65536) if hasattr(stream, "read1") else stream.read(65536)
            if not chunk:
                break
            chunks.append(chunk)
    except (OSError, ValueError):
        pass
    finally:
        try:
            stream.close()
        except OSError:
            pass


class _RunningJob:
    """Book-keeping for one spawned process; finishes at most once."""

    def __init__(
        self,
        runner: JobRunner,
        argv: tuple[str, ...],
        cwd: str,
        on_done: JobCallback | None,
    ) -> None:
        self.runner = runner
        self.argv = argv
        self.cwd = cwd
        self.on_done = on_done
        self.process: subprocess.Popen[bytes] | None = None
        self.timer: TimerHandle | None = None
        self.done = False
        self.posted = threading.Event()

    def finish(self, result: JobResult) -> None:
        if self.done:
            return
        self.done = True
        if self.timer is not None:
            self.timer.cancel()
        self.runner._complete(self, result)

    def on_timeout(self) -> None:
        if self.done:
            return
        process = self.process
        if self.posted.is_set():
            # Exited and collected; its natural completion is queued behind us.
            return
        # Still running, or exited while a descendant holds the pipes open.
        self.runner.notify.warn("PROCESS REACHED TIMEOUT")
        if process is not None and process.poll() is None:
            try:
                process.kill()
            except OSError:
                pass
        self.finish(JobResult(TIMEOUT_EXIT_CODE, "", "", timed_out=True))

    def collect(self, process: subprocess.Popen[bytes]) -> None:
        """Reader-thread body: drain both pipes, wait, post the result."""
        out: list[bytes] = []
        err: list[bytes] = []
        stderr_reader = threading.Thread(
            target=_read_stream,
            args=(process.stderr, err),
            name="gitsense-job-stderr",
            daemon=True,
        )
        stderr_reader.start()
        _read_stream(process.stdout, out)
        stderr_reader.join()
        exit_code = process.wait()

        result = JobResult(
            exit_code=exit_code,
            stdout=stream_to_text(out),
            stderr=normalize_stderr(stream_to_text(err)),
        )
        self.posted.set()
        self.runner.scheduler.call_soon_threadsafe(lambda: self.finish(result))


class JobRunner:
    """Spawn external commands and deliver their results on the scheduler."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        notify: Notifier | None = None,
        default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        sync_grace_seconds: float = DEFAULT_SYNC_GRACE_SECONDS,
    ) -> None:
        self.scheduler = scheduler
        self.notify = notify if notify is not None else Notifier()
        self.default_timeout_seconds = default_timeout_seconds
        self.sync_grace_seconds = sync_grace_seconds
        self._listeners: list[CommandListener] = []

    def add_listener(self, listener: CommandListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: CommandListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def run(
        self,
        argv: Sequence[str],
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, object] | None = None,
        timeout: float | None = None,
        on_done: JobCallback | None = None,
    ) -> None:
        """Start ``argv`` without blocking; ``on_done`` receives the result."""
        argv_t = tuple(str(part) for part in argv)
        cwd_str = os.fspath(cwd) if cwd is not None else os.getcwd()
        job = _RunningJob(self, argv_t, cwd_str, on_done)
        timeout_seconds = self.default_timeout_seconds if timeout is None else timeout

        try:
            process = subprocess.Popen(
                list(argv_t),
                cwd=cwd_str,
                env=make_spawn_env(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            logger.debug("spawn failed for %s: %s", argv_t, exc)
            failure = JobResult(SPAWN_FAILURE_EXIT_CODE, "", str(exc))
            self.scheduler.call_soon_threadsafe(lambda: job.finish(failure))
            return

        job.process = process
        job.timer = self.scheduler.call_later(timeout_seconds, job.on_timeout)
        collector = threading.Thread(
            target=job.collect,
            args=(process,),
            name="gitsense-job-stdout",
            daemon=True,
        )
        collector.start()

    def run_sync(
        self,
        argv: Sequence[str],
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, object] | None = None,
        timeout: float | None = None,
    ) -> JobResult:
        """Run ``argv`` and wait cooperatively for its result.

        The scheduler keeps pumping while waiting, for at most
        ``timeout + sync_grace_seconds``.
        """
        box: list[JobResult] = []
        timeout_seconds = self.default_timeout_seconds if timeout is None else timeout
        self.run(argv, cwd=cwd, env=env, timeout=timeout_seconds, on_done=box.append)
        self.scheduler.wait_until(lambda: bool(box), timeout_seconds + self.sync_grace_seconds)
        if box:
            return box[0]
        return JobResult(TIMEOUT_EXIT_CODE, "", "", timed_out=True)

    def _complete(self, job: _RunningJob, result: JobResult) -> None:
        event = CommandFinished(
            argv=job.argv,
            cwd=job.cwd,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            timed_out=result.timed_out,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("command listener failed")
        if job.on_done is not None:
            job.on_done(result)


__all__ = [
    "CommandFinished",
    "JobResult",
    "JobRunner",
    "make_spawn_env",
    "normalize_stderr",
    "stream_to_text",
]
