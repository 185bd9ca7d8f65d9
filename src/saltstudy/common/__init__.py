# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""Cross-cutting infrastructure for saltstudy."""

from saltstudy.common.logging import (
    LIVE_TAIL_LOGGER,
    attach_live_tail,
    get_live_tail_logger,
    setup_logger,
)


SALT_PREFIX = "[bold magenta]salt[/bold magenta] [dim]»[/dim]"

__all__ = (
    "LIVE_TAIL_LOGGER",
    "SALT_PREFIX",
    "attach_live_tail",
    "get_live_tail_logger",
    "setup_logger",
)
