# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Set up a logger with optional rich formatting, and the live-tail output logger."""

from __future__ import annotations

import logging

from typing import Any

from rich.console import Console
from rich.logging import RichHandler


LIVE_TAIL_LOGGER = "saltstudy.live"


def get_rich_handler(**kwargs: Any) -> RichHandler:
    return RichHandler(
        console=Console(markup=True, soft_wrap=True, emoji=True), markup=False, **kwargs
    )


def setup_logger(
    name: str | None = "saltstudy",
    *,
    level: int = logging.WARNING,
    rich: bool = True,
    rich_options: dict[str, Any] | None = None,
) -> logging.Logger:
    """Set up a logger with optional rich formatting."""
    if not rich:
        logging.basicConfig(level=level)
        return logging.getLogger(name)
    handler = get_rich_handler(**(rich_options or {}))
    logger = logging.getLogger(name)
    logger.setLevel(level)
    # Clear existing handlers to prevent duplication
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def get_live_tail_logger() -> logging.Logger:
    """Logger that receives every line written to the study log.

    Hosts attach their own handler (for example an editor output channel) to
    show the stream. It does not propagate, so study records never end up in
    the application log.
    """
    logger = logging.getLogger(LIVE_TAIL_LOGGER)
    logger.propagate = False
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    return logger


def attach_live_tail(handler: logging.Handler) -> logging.Logger:
    """Route the live-tail stream to `handler`, formatted as the bare JSON line."""
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger = get_live_tail_logger()
    logger.addHandler(handler)
    return logger


__all__ = ("LIVE_TAIL_LOGGER", "attach_live_tail", "get_live_tail_logger", "setup_logger")
