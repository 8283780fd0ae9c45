"""Command-line front door for gitsense.

``track`` follows git state of files as it changes, ``source`` resolves a
position inside saved diff/log text, ``history`` prints range history, and
``show`` prints one commit.
"""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
import time
from pathlib import Path

from . import git_cli
from .config import load_tracker_config
from .diff_source import DiffOrigin, resolve
from .history import DiffTarget, is_commit_like, load_diff_source_views, range_history, show_commit_args
from .jobs import CommandFinished
from .session import Session, create_session
from .tracking import StateUpdated


def _positive_int(value: str) -> int:
    """argparse type for positive integer values."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def format_state_line(event: StateUpdated) -> str:
    in_progress = ",".join(event.in_progress or ())
    parts = [
        str(event.handle),
        event.head_name or "-",
        repr(event.status) if event.status is not None else "-",
    ]
    if in_progress:
        parts.append(in_progress)
    return " ".join(parts)


def _log_command(aliases: dict[str, str]):
    logger = logging.getLogger("gitsense.commands")

    def listener(event: CommandFinished) -> None:
        subcommand = git_cli.parse_subcommand(event.argv, aliases)
        kind = git_cli.classify_subcommand(subcommand)
        logger.debug(
            "%s finished in %s (exit %d, %s)",
            shlex.join(event.argv),
            event.cwd,
            event.exit_code,
            kind.value,
        )

    return listener


def _run_track(session: Session, paths: list[Path], seconds: float | None) -> int:
    aliases = git_cli.parse_alias_config(
        git_cli.git_output(session.runner, session.config.git_executable, ["config", "--get-regexp", "alias.*"])
    )
    session.runner.add_listener(_log_command(aliases))
    session.cache.add_listener(lambda event: print(format_state_line(event), flush=True))

    for path in paths:
        session.cache.enable(str(path), path)

    deadline = None if seconds is None else time.monotonic() + seconds
    try:
        while deadline is None or time.monotonic() < deadline:
            session.scheduler.run_once(block_seconds=0.05)
    except KeyboardInterrupt:
        pass
    finally:
        session.close()
    return 0


def _run_source(session: Session, args: argparse.Namespace) -> int:
    text_path = Path(args.diff_file)
    lines = text_path.read_text(encoding="utf-8", errors="replace").splitlines()
    origin = DiffOrigin.from_argv(["git", *shlex.split(args.origin)]) if args.origin else None
    source = resolve(lines, args.line, origin)
    if source is None:
        session.notify.warn("Could not find diff source. Ensure that cursor is inside a valid diff lines of git log.")
        return 1

    cwd = Path(args.cwd) if args.cwd else Path.cwd()
    views = load_diff_source_views(
        session.runner,
        source,
        cwd,
        args.target,
        git_executable=session.config.git_executable,
    )
    for view in views:
        header = "worktree" if view.is_worktree else view.title
        print(f"==> {header} (line {view.line})")
        print("\n".join(view.lines))
    return 0 if views else 1


def _run_history(session: Session, args: argparse.Namespace) -> int:
    path = Path(args.path)
    cwd = Path(args.cwd) if args.cwd else path.absolute().parent
    root_lines = git_cli.git_output(
        session.runner, session.config.git_executable, ["rev-parse", "--show-toplevel"], cwd
    )
    if not root_lines:
        session.notify.warn(f"{path} is not inside a git repository")
        return 1
    root = Path(root_lines[0])
    try:
        rel_path = path.absolute().relative_to(root).as_posix()
    except ValueError:
        rel_path = path.resolve().relative_to(root.resolve()).as_posix()
    history = range_history(
        session.runner,
        root,
        rel_path,
        args.start,
        args.end,
        commit=args.commit,
        git_executable=session.config.git_executable,
    )
    if history:
        print("\n".join(history))
    return 0 if history else 1


def _run_show(session: Session, args: argparse.Namespace) -> int:
    if not is_commit_like(args.commit):
        session.notify.warn(f"{args.commit!r} does not look like a commit")
        return 1
    cwd = Path(args.cwd) if args.cwd else Path.cwd()
    lines = git_cli.git_output(session.runner, session.config.git_executable, show_commit_args(args.commit), cwd)
    if not lines:
        session.notify.warn(f"Can not show commit {args.commit} in repo {cwd}")
        return 1
    print("\n".join(lines))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gitsense", description="Track git state of files and navigate diff history.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every git command and watch event.")
    parser.add_argument("--git", default=None, help="git executable (default: from config, else 'git').")
    sub = parser.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", help="Print git state updates for files until interrupted.")
    track.add_argument("paths", nargs="+", help="Files to track.")
    track.add_argument("--seconds", type=float, default=None, help="Stop after this many seconds.")

    source = sub.add_parser("source", help="Show the file behind a line of saved diff/log output.")
    source.add_argument("diff_file", help="File holding diff or log --patch output.")
    source.add_argument("line", type=_positive_int, help="1-based cursor line inside diff_file.")
    source.add_argument("--origin", default=None, help="git diff invocation that produced diff_file, e.g. 'diff --cached'.")
    source.add_argument(
        "--target",
        choices=[target.value for target in DiffTarget],
        default=DiffTarget.AUTO.value,
        help="Which side to show.",
    )
    source.add_argument("--cwd", default=None, help="Worktree root the diff paths are relative to.")

    history = sub.add_parser("history", help="Show how a line range evolved (git log -L).")
    history.add_argument("path", help="Tracked file.")
    history.add_argument("start", type=_positive_int)
    history.add_argument("end", type=_positive_int)
    history.add_argument("--commit", default="HEAD")
    history.add_argument("--cwd", default=None)

    show = sub.add_parser("show", help="Show one commit with stat and patch.")
    show.add_argument("commit")
    show.add_argument("--cwd", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch one subcommand."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    config = load_tracker_config().with_overrides(git_executable=args.git)
    session = create_session(config, sink=lambda message, _level: print(message, file=sys.stderr))

    if args.command == "track":
        return _run_track(session, [Path(p) for p in args.paths], args.seconds)
    try:
        if args.command == "source":
            return _run_source(session, args)
        if args.command == "history":
            return _run_history(session, args)
        return _run_show(session, args)
    except (OSError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        session.close()


if __name__ == "__main__":
    raise SystemExit(main())
