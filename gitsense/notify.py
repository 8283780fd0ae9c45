"""User-facing notifications.

Warnings and errors the user should see (timeouts, git stderr, unparsable
output) are logged and forwarded to an optional sink, typically the editor
integration's message area.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger("gitsense")

NotificationSink = Callable[[str, int], None]

MESSAGE_PREFIX = "(gitsense) "


class Notifier:
    """Log a message at ``level`` and hand it to the sink, if any."""

    def __init__(self, sink: NotificationSink | None = None) -> None:
        self.sink = sink

    def __call__(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, "%s", message)
        if self.sink is None:
            return
        try:
            self.sink(MESSAGE_PREFIX + message, level)
        except Exception:
            logger.exception("notification sink failed")

    def info(self, message: str) -> None:
        self(message, logging.INFO)

    def warn(self, message: str) -> None:
        self(message, logging.WARNING)

    def error(self, message: str) -> None:
        self(message, logging.ERROR)

    def command_output(self, exit_code: int, stdout: str, stderr: str) -> bool:
        """Report git stderr; return ``True`` when the command failed.

        A failed command reports stderr (plus stdout, when present) as an
        error. A successful one only warns about leftover stderr.
        """
        if exit_code != 0:
            message = stderr if not stdout else f"{stderr}\n{stdout}"
            self.error(message)
            return True
        if stderr:
            self.warn(stderr)
        return False
