"""Module entry point: python -m earthlord ..."""

from __future__ import annotations

from earthlord.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
