# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""Configuration for saltstudy."""

from saltstudy.config.settings import (
    TWO_WEEKS,
    YEAR,
    SaltSettings,
    get_settings,
    reset_settings,
)


__all__ = ("TWO_WEEKS", "YEAR", "SaltSettings", "get_settings", "reset_settings")
