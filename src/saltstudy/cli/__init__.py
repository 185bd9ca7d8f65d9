# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""Command line interface for saltstudy."""

from saltstudy.cli.app import app, main


__all__ = ("app", "main")
