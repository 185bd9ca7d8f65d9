# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""One-way, fixed-width anonymization of free-text identifiers."""

from __future__ import annotations

import hashlib
import re

from typing import Annotated, Final

from pydantic import Field


HASH_LENGTH: Final[int] = 8

HashToken = Annotated[
    str,
    Field(
        description="Truncated SHA-256 hex digest of a de-identified value",
        pattern=rf"^[0-9a-f]{{{HASH_LENGTH}}}$",
    ),
]

_HASH_TOKEN_RE = re.compile(rf"^[0-9a-f]{{{HASH_LENGTH}}}$")


def hash_string(value: str) -> str:
    """Hash a string with SHA-256 and keep the first eight hex characters.

    The truncation bounds log size; the result is meant to prevent
    re-identification in the study data, not to resist a targeted attacker.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def is_hash_token(value: str) -> bool:
    """Check whether `value` has the shape of a `hash_string` result."""
    return bool(_HASH_TOKEN_RE.match(value))


__all__ = ("HASH_LENGTH", "HashToken", "hash_string", "is_hash_token")
