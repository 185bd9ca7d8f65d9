# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Debounced capture of compiler diagnostics into study log entries.

The editor reports diagnostic changes in bursts (one per compiler re-check).
Each notification restarts two independent timers: a short one that redraws
the inline visualization and a longer one that captures a log entry once the
diagnostics have settled. Only the last notification in a burst fires.

A capture reads the active document's errors, reduces them to codes, hashed
messages, line ranges and recognized compiler suggestions, and appends one
`CaptureEntry` to the log store. No path, message text or other content from
the user's code is written.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time

from collections.abc import Awaitable, Callable, Sequence
from typing import Final

from saltstudy.config.settings import SaltSettings
from saltstudy.core.diagnostics import (
    AbsentCode,
    Diagnostic,
    Document,
    PrimitiveCode,
    StructuredCode,
)
from saltstudy.core.entries import (
    CaptureEntry,
    ErrorLineRange,
    ErrorRecord,
    SaveEntry,
    format_seconds,
)
from saltstudy.core.hashing import hash_string
from saltstudy.enrollment import EnrollmentManager
from saltstudy.exceptions import UnsupportedDiagnosticError
from saltstudy.host import Host
from saltstudy.log_store import LogStore
from saltstudy.upload import UploadScheduler


logger = logging.getLogger(__name__)

# Compiler suggestions that correspond to a fix the visualizations explain.
HINT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(p)
    for p in (
        r"consider adding a leading",
        r"consider dereferencing here",
        r"consider removing deref here",
        r"consider dereferencing",
        r"consider borrowing here",
        r"consider \w+ borrowing here",
        r"consider removing the",
        r"unboxing the value",
        r"dereferencing the borrow",
        r"dereferencing the type",
    )
)


def find_hint(diagnostic: Diagnostic) -> str:
    """Return the first known suggestion phrase in the diagnostic's related messages.

    Only the matched phrase is returned, never the rest of the message, which
    may quote the user's code.
    """
    for info in diagnostic.related_information:
        for pattern in HINT_PATTERNS:
            if match := pattern.search(info.message):
                return match.group(0)
    return ""


class Debouncer:
    """Runs an action after a quiet period; a new schedule replaces the pending one.

    Once the quiet period has elapsed the action is running and no longer
    pending: later schedules start their own cycle rather than cancelling it.
    """

    def __init__(self, delay: float, *, name: str) -> None:
        self.delay = delay
        self.name = name
        self._pending: asyncio.Task[None] | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self, action: Callable[[], Awaitable[object]]) -> asyncio.Task[None]:
        self.cancel()
        task = asyncio.get_running_loop().create_task(
            self._fire(action), name=f"debounce-{self.name}"
        )
        self._pending = task
        return task

    def cancel(self) -> None:
        """Drop the pending action, if any."""
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def shutdown(self) -> None:
        """Drop the pending action and abandon any that are still running."""
        self.cancel()
        for task in tuple(self._running):
            task.cancel()
        self._running.clear()

    async def _fire(self, action: Callable[[], Awaitable[object]]) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        if self._pending is task:
            self._pending = None
        if task is not None:
            self._running.add(task)
        try:
            await action()
        except Exception:
            logger.exception("Debounced %s action failed", self.name)
        finally:
            if task is not None:
                self._running.discard(task)


class CapturePipeline:
    """Turns diagnostic-change notifications into study log entries."""

    def __init__(
        self,
        host: Host,
        enrollment: EnrollmentManager,
        store: LogStore,
        scheduler: UploadScheduler,
        settings: SaltSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.host = host
        self.enrollment = enrollment
        self.store = store
        self.scheduler = scheduler
        self.settings = settings
        self._clock = clock
        self._overlay = Debouncer(settings.overlay_debounce_ms / 1000, name="overlay")
        self._capture = Debouncer(settings.capture_debounce_ms / 1000, name="capture")
        self._clean_build_logged = False
        self.visualization_toggled = False

    @property
    def enabled(self) -> bool:
        """Capture runs for consenting participants with an open log."""
        return self.enrollment.is_capture_enabled and self.store.is_open

    @property
    def capture_pending(self) -> bool:
        return self._capture.pending

    def elapsed(self) -> str:
        return format_seconds(self.enrollment.elapsed(self._clock()))

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    def on_diagnostics_changed(self, document: Document) -> asyncio.Task[None] | None:
        """Debounce a diagnostics change. Returns the scheduled capture, if any."""
        if document.language_id != self.settings.language_id:
            return None
        self._overlay.schedule(lambda: self._refresh_overlay(document))
        if not self.enabled:
            return None
        # the entry is stamped with the notification time, not the fire time
        elapsed = self.elapsed()
        return self._capture.schedule(lambda: self.capture(document, elapsed))

    def on_active_editor_changed(self, document: Document) -> None:
        if document.language_id == self.settings.language_id:
            self._refresh_now(document)

    def on_document_saved(self, document: Document) -> SaveEntry | None:
        if not self.enabled:
            return None
        entry = SaveEntry(file_hash=hash_string(document.identifier), saved_at=self.elapsed())
        self.scheduler.maybe_flush(self.store.append(entry))
        return entry

    def mark_visualization_toggled(self) -> None:
        """Note that the participant opened or closed a visualization."""
        self.visualization_toggled = True

    def close(self) -> None:
        """Cancel both timers and any capture still composing its entry."""
        self._overlay.shutdown()
        self._capture.shutdown()

    # ------------------------------------------------------------------
    # Capture cycle
    # ------------------------------------------------------------------

    async def capture(self, document: Document, elapsed: str) -> CaptureEntry | None:
        """Compose and append one entry from the document's current errors.

        Returns the appended entry, or None when the cycle was skipped.
        """
        if not self.enabled:
            return None
        diagnostics = [d for d in self.host.get_diagnostics(document) if d.is_error]
        try:
            errors = tuple(self._error_record(d) for d in diagnostics)
        except UnsupportedDiagnosticError as e:
            logger.warning("Skipping capture cycle: %s", e)
            return None

        if not errors:
            if self._clean_build_logged:
                return None
            self._clean_build_logged = True
        else:
            self._clean_build_logged = False

        file_count = await self.host.count_files(self.settings.source_glob)
        entry = CaptureEntry(
            file_hash=hash_string(document.identifier),
            workspace_hash=hash_string(self.host.workspace_name),
            elapsed_seconds=elapsed,
            visualization_toggled=self.visualization_toggled,
            document_line_count=document.line_count,
            project_file_count=file_count,
            errors=errors,
        )
        line_count = self.store.append(entry)
        self.visualization_toggled = False
        logger.debug(
            "Captured %s (%d errors)", "clean build" if entry.is_clean_build else "errors", len(errors)
        )
        self.scheduler.maybe_flush(line_count)
        return entry

    def _error_record(self, diagnostic: Diagnostic) -> ErrorRecord:
        match diagnostic.code:
            case StructuredCode(value=value):
                code = str(value)
            case PrimitiveCode() | AbsentCode():
                raise UnsupportedDiagnosticError(
                    "unexpected diagnostic code shape",
                    details={"code_type": type(diagnostic.code).__name__},
                    suggestions=["Set rust-analyzer.diagnostics.useRustcErrorCode to true"],
                )
        if not code.startswith(self.settings.error_code_prefix):
            # lexer and parser errors have no stable code
            code = self.settings.syntax_code
        return ErrorRecord(
            code=code,
            message_hash=hash_string(diagnostic.message),
            source=diagnostic.source,
            hint=find_hint(diagnostic),
            range=ErrorLineRange(start=diagnostic.range.start, end=diagnostic.range.end),
        )

    # ------------------------------------------------------------------
    # Visualization overlay
    # ------------------------------------------------------------------

    async def _refresh_overlay(self, document: Document) -> None:
        self._refresh_now(document)

    def _refresh_now(self, document: Document) -> None:
        if not self.enrollment.is_feature_currently_enabled(int(self._clock())):
            return
        errors: Sequence[Diagnostic] = [
            d for d in self.host.get_diagnostics(document) if d.is_error
        ]
        self.host.refresh_overlay(document, errors)


__all__ = ("HINT_PATTERNS", "CapturePipeline", "Debouncer", "find_hint")
