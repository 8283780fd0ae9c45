"""Public package surface for gitsense.

Exports ``main`` for programmatic CLI invocation and ``create_session`` for
embedding the tracker. Implementation lives in submodules under ``gitsense``.
"""

from __future__ import annotations

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)


def create_session(*args, **kwargs):
    """Lazily import the session bootstrap; see ``gitsense.session``."""
    from .session import create_session as _create_session

    return _create_session(*args, **kwargs)


__all__ = ["__version__", "create_session", "main"]
