# sourcery skip: avoid-global-variables
# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""Operator CLI for inspecting and uploading local study data, using cyclopts."""

from __future__ import annotations

import sys
import time

from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import cyclopts

from rich.console import Console
from rich.table import Table

from saltstudy import __version__
from saltstudy.common import SALT_PREFIX, setup_logger
from saltstudy.config.settings import SaltSettings, get_settings
from saltstudy.enrollment import EnrollmentManager
from saltstudy.exceptions import SaltError
from saltstudy.host import JsonStateStore
from saltstudy.log_store import LogStore, count_lines
from saltstudy.upload import PostHogTransport


STATE_FILE = "state.json"
LOGGING_SETTING_KEY = "salt.errorLogging"

console = Console(markup=True, emoji=True)

app = cyclopts.App(
    name="saltstudy",
    help="Inspect and upload the local SALT study telemetry.",
    version=__version__,
    console=console,
)

StorageOption = Annotated[Path | None, cyclopts.Parameter(name=["--storage", "-s"])]


def _settings(storage: Path | None) -> SaltSettings:
    return get_settings(storage_dir=storage) if storage else get_settings()


def _enrollment(settings: SaltSettings) -> EnrollmentManager:
    state = JsonStateStore(settings.storage_dir / STATE_FILE)
    return EnrollmentManager(
        state,
        settings.storage_dir,
        get_logging_setting=lambda: bool(state.get(LOGGING_SETTING_KEY)),
        set_logging_setting=lambda enabled: state.update(LOGGING_SETTING_KEY, enabled),
        reenable_window=settings.reenable_window_seconds,
        study_period=settings.study_period_seconds,
    )


def _fail(error: SaltError) -> None:
    console.print(f"{SALT_PREFIX} [bold red]{error}[/bold red]")
    for suggestion in error.suggestions:
        console.print(f"  • {suggestion}")
    sys.exit(1)


@app.command
def status(*, storage: StorageOption = None) -> None:
    """Show this installation's enrollment state."""
    try:
        settings = _settings(storage)
        enrollment = _enrollment(settings)
    except SaltError as e:
        _fail(e)
        return
    record = enrollment.record
    now = int(time.time())

    table = Table(title="Study enrollment", show_header=False)
    table.add_column("field", style="cyan")
    table.add_column("value")
    table.add_row("participation", record.participation_status.value)
    table.add_row("user id", record.user_id or "-")
    table.add_row("delayed visualization arm", str(enrollment.is_study_arm_active))
    table.add_row("visualization enabled now", str(enrollment.is_feature_currently_enabled(now)))
    table.add_row("capture enabled", str(enrollment.is_capture_enabled))
    if record.enrollment_start is not None:
        started = datetime.fromtimestamp(record.enrollment_start, UTC)
        table.add_row("enrolled at", started.isoformat(timespec="seconds"))
    table.add_row("storage", str(settings.storage_dir))
    console.print(table)


@app.command
def logs(*, storage: StorageOption = None) -> None:
    """List rotation files with their line counts."""
    try:
        settings = _settings(storage)
        files = LogStore(settings.storage_dir).log_files()
    except SaltError as e:
        _fail(e)
        return
    if not files:
        console.print(f"{SALT_PREFIX} [yellow]No study logs in {settings.storage_dir}[/yellow]")
        return
    table = Table(title=f"Study logs in {settings.storage_dir}")
    table.add_column("file", style="cyan")
    table.add_column("lines", justify="right")
    table.add_column("size", justify="right")
    for path in files:
        table.add_row(path.name, str(count_lines(path)), f"{path.stat().st_size:,} B")
    console.print(table)


@app.command
def upload(*, storage: StorageOption = None) -> None:
    """Send the newest log file now, outside the regular schedule."""
    try:
        settings = _settings(storage)
        enrollment = _enrollment(settings)
        files = LogStore(settings.storage_dir).log_files()
    except SaltError as e:
        _fail(e)
        return
    if enrollment.user_id is None:
        console.print(f"{SALT_PREFIX} [yellow]Not enrolled; nothing to upload.[/yellow]")
        return
    if not files:
        console.print(f"{SALT_PREFIX} [yellow]No study logs to upload.[/yellow]")
        return
    if not settings.uploads_configured:
        console.print(f"{SALT_PREFIX} [red]No PostHog project key configured (SALT_POSTHOG_PROJECT_KEY).[/red]")
        sys.exit(1)
    with PostHogTransport(settings.posthog_project_key, settings.posthog_host) as transport:
        transport.send(enrollment.user_id, files[-1].read_text(encoding="utf-8"))
    console.print(f"{SALT_PREFIX} [green]Uploaded {files[-1].name}[/green]")


def main() -> None:
    """Main CLI entry point."""
    try:
        settings = get_settings()
    except SaltError as e:
        _fail(e)
        return
    setup_logger(level=settings.log_level, rich=settings.rich_logging)
    app()


__all__ = ("LOGGING_SETTING_KEY", "STATE_FILE", "app", "main")
