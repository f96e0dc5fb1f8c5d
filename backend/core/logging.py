"""Shared logging helpers for the detection backend."""

from __future__ import annotations

import logging
import os


def configure_logging(*, level: int | str | None = None, force: bool = False) -> None:
    """Initialise the root logger once with a terse format.

    ``level`` defaults to the ``LOG_LEVEL`` environment variable, then INFO.
    Pass ``force=True`` to reconfigure from tests or the CLI.
    """

    if level is None:
        level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
