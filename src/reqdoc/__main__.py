"""Module entrypoint for ``python -m reqdoc``."""

from __future__ import annotations

from reqdoc.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
