"""Entry point for `python -m autoheal`.

Usage:
    python -m autoheal
    uv run python -m autoheal
"""

from __future__ import annotations

import asyncio

from autoheal.app import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
