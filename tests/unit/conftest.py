# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Unit test fixtures."""

from __future__ import annotations

import os

from collections.abc import Iterator
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_test_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Ensure all tests run in isolated environment.

    - Sets a temporary HOME directory
    - Removes SALT_* variables and runs from a directory without a .env file
    - Resets the cached settings before and after each test
    """
    from saltstudy.config.settings import reset_settings

    fake_home = tmp_path / "home"
    fake_home.mkdir(exist_ok=True)
    monkeypatch.setenv("HOME", str(fake_home))
    for name in [n for n in os.environ if n.startswith("SALT_")]:
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)

    reset_settings()
    yield
    reset_settings()
