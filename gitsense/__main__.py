"""Module entrypoint for ``python -m gitsense``.

This keeps module-mode execution behavior identical to the CLI script.
All argument parsing and session setup happen in ``gitsense.cli``.
"""

from .cli import main


if __name__ == "__main__":
    raise SystemExit(main())
