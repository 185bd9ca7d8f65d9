# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Shared test fixtures for saltstudy.

The editor is replaced by `FakeHost`, an in-memory implementation of the
`Host` protocol, and PostHog by `RecordingTransport`. Time is a `FakeClock`
the tests advance by hand.
"""

from __future__ import annotations

import asyncio
import json
import random

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from saltstudy.config.settings import SaltSettings
from saltstudy.core.diagnostics import Diagnostic, Document, Severity
from saltstudy.session import TelemetrySession


T0 = 1_700_000_000
DAY = 86_400


# ===========================================================================
# *                    Fakes
# ===========================================================================


class MemoryState:
    """In-memory `StateStore`."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self.data.get(key)

    def update(self, key: str, value: Any | None) -> None:
        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value


class FakeHost:
    """In-memory editor host."""

    def __init__(
        self,
        *,
        workspace_name: str = "acme-secret-project",
        telemetry_enabled: bool = True,
        state: MemoryState | None = None,
    ) -> None:
        self.state = state or MemoryState()
        self.workspace_name = workspace_name
        self.telemetry_enabled = telemetry_enabled
        self.logging_setting = False
        self.diagnostics: dict[str, list[Diagnostic]] = {}
        self.file_count = 7
        self.count_delay = 0.0
        self.warnings: list[str] = []
        self.overlay_refreshes: list[tuple[Document, list[Diagnostic]]] = []

    def get_diagnostics(self, document: Document) -> Sequence[Diagnostic]:
        return list(self.diagnostics.get(document.identifier, []))

    async def count_files(self, pattern: str) -> int:
        if self.count_delay:
            await asyncio.sleep(self.count_delay)
        return self.file_count

    def get_logging_setting(self) -> bool:
        return self.logging_setting

    def set_logging_setting(self, enabled: bool) -> None:
        self.logging_setting = enabled

    def show_warning(self, message: str) -> None:
        self.warnings.append(message)

    def refresh_overlay(self, document: Document, diagnostics: Sequence[Diagnostic]) -> None:
        self.overlay_refreshes.append((document, list(diagnostics)))


class RecordingTransport:
    """Transport that records every send instead of uploading."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.closed = False

    def send(self, user_id: str, payload: str) -> None:
        self.sent.append((user_id, payload))

    def shutdown(self) -> None:
        self.closed = True


class FakeClock:
    """Callable clock returning Unix seconds."""

    def __init__(self, now: float = T0) -> None:
        self.start = now
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fixed_rng(value: float) -> random.Random:
    """A random source whose `random()` always returns `value`."""
    rng = MagicMock(spec=random.Random)
    rng.random.return_value = value
    return rng


def _error(
    message: str,
    code: Any = None,
    *,
    line: int = 3,
    related: Sequence[str] = (),
    severity: Severity = Severity.ERROR,
    source: str | None = "rustc",
) -> Diagnostic:
    return Diagnostic.from_host(
        severity=severity,
        message=message,
        start_line=line,
        end_line=line,
        code=code,
        source=source,
        related=related,
    )


def _read_records(path: Path) -> list[dict[str, Any]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


# ===========================================================================
# *                    Fixtures
# ===========================================================================


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def settings(storage_dir: Path) -> SaltSettings:
    """Settings with short timers and small files so tests run fast."""
    return SaltSettings(
        storage_dir=storage_dir,
        capture_debounce_ms=40,
        overlay_debounce_ms=10,
        send_interval=5,
        rotation_threshold=20,
    )


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rust_document() -> Document:
    return Document(
        identifier="file:///home/alice/acme-secret-project/src/main.rs",
        language_id="rust",
        line_count=42,
    )


@pytest.fixture
def make_session(
    host: FakeHost, settings: SaltSettings, transport: RecordingTransport, clock: FakeClock
) -> Callable[..., TelemetrySession]:
    """Factory for sessions sharing the fixture host, settings, transport and clock.

    `delayed` chooses the study arm the coin flip lands on.
    """

    def factory(*, delayed: bool = False, session_host: FakeHost | None = None) -> TelemetrySession:
        return TelemetrySession(
            session_host or host,
            settings,
            transport=transport,
            clock=clock,
            rng=fixed_rng(0.1 if delayed else 0.9),
        )

    return factory


@pytest.fixture
def enrolled_session(make_session: Callable[..., TelemetrySession]) -> TelemetrySession:
    """An activated session whose participant has just accepted the consent form."""
    session = make_session()
    session.activate()
    session.handle_consent(True)
    return session


@pytest.fixture
def make_error() -> Callable[..., Diagnostic]:
    """Build an error diagnostic the way the editor reports it."""
    return _error


@pytest.fixture
def read_records() -> Callable[[Path], list[dict[str, Any]]]:
    """Parse a log file into its JSON records."""
    return _read_records
