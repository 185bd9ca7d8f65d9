# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
The telemetry session: everything that lives between activation and deactivation.

A host builds one `TelemetrySession` when the add-on activates, forwards editor
events to it, and calls `deactivate` on shutdown. All mutable state (the open
log file, its line count, the debounce timers, the enrollment record) hangs
off this object; there are no module-level globals.

Example:
    >>> session = TelemetrySession(host)
    >>> session.activate()
    >>> if session.needs_consent:
    ...     host.show_consent_form(on_answer=session.handle_consent)
"""

from __future__ import annotations

import logging
import random
import time

from collections.abc import Callable

from saltstudy.capture import CapturePipeline
from saltstudy.config.settings import SaltSettings, get_settings
from saltstudy.core.diagnostics import Document
from saltstudy.core.entries import FileHeader, ReloadMarker, SurveyRecord
from saltstudy.enrollment import EnrollmentManager
from saltstudy.exceptions import EnrollmentError, StorageUnavailableError
from saltstudy.host import Host
from saltstudy.log_store import LogStore
from saltstudy.upload import PostHogTransport, TelemetryTransport, UploadScheduler


logger = logging.getLogger(__name__)

TELEMETRY_DISABLED_WARNING = (
    "Please enable telemetry to participate in the study. Do this by going to "
    "Code > Settings > Settings and searching for 'telemetry'."
)


class TelemetrySession:
    """Session context for the consent-gated diagnostic telemetry pipeline."""

    def __init__(
        self,
        host: Host,
        settings: SaltSettings | None = None,
        *,
        transport: TelemetryTransport | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self.host = host
        self.settings = settings or get_settings()
        self._clock = clock
        self.transport = transport or PostHogTransport(
            self.settings.posthog_project_key,
            self.settings.posthog_host,
            enabled=self.settings.uploads_configured,
        )
        self.enrollment = EnrollmentManager(
            host.state,
            self.settings.storage_dir,
            get_logging_setting=host.get_logging_setting,
            set_logging_setting=host.set_logging_setting,
            rng=rng,
            reenable_window=self.settings.reenable_window_seconds,
            study_period=self.settings.study_period_seconds,
        )
        self.store = LogStore(
            self.settings.storage_dir, rotation_threshold=self.settings.rotation_threshold
        )
        self.scheduler = UploadScheduler(
            self.store,
            self.transport,
            user_id=lambda: self.enrollment.user_id,
            make_header=self._file_header,
            send_interval=self.settings.send_interval,
        )
        self.pipeline = CapturePipeline(
            host, self.enrollment, self.store, self.scheduler, self.settings, clock=clock
        )
        self.active = False

    def now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self) -> None:
        """Bring the session up.

        Raises:
            StorageUnavailableError: If the storage directory or log file cannot
                be prepared. The pipeline stays inactive for this session.
        """
        try:
            self.settings.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(
                "Could not create the study storage directory",
                details={"error": str(e)},
                suggestions=[f"Check that {self.settings.storage_dir} is writable"],
            ) from e

        self.enrollment.load()
        self.enrollment.migrate_logging_setting()
        now = self.now()
        if self.enrollment.is_accepted:
            # expiry applies whether or not logging is switched on
            self.enrollment.check_expiry(now)
        if self.enrollment.is_capture_enabled:
            self.enrollment.check_reenable(now)
            self.store.open_existing(self._reload_marker(), self._file_header())
            self._warn_if_host_telemetry_off()
        self.active = True
        logger.info(
            "Telemetry session active (enrolled: %s, capturing: %s)",
            self.enrollment.is_accepted,
            self.pipeline.enabled,
        )

    def deactivate(self) -> None:
        """Tear the session down. Pending captures are dropped, never half-written."""
        self.pipeline.close()
        self.store.close()
        self.transport.shutdown()
        self.active = False

    # ------------------------------------------------------------------
    # Consent and survey
    # ------------------------------------------------------------------

    @property
    def needs_consent(self) -> bool:
        """The host should show the consent form."""
        return self.enrollment.needs_consent

    def handle_consent(self, accepted: bool) -> None:
        """Apply the participant's answer from the consent form."""
        if not accepted:
            self.enrollment.decline()
            return
        self.enrollment.accept(self.now())
        if not self.store.is_open:
            self.store.open_new(self._file_header())
        self._warn_if_host_telemetry_off()

    def record_survey(self, response: str) -> None:
        """Store the survey answer and add it to the latest log file.

        The file is only uploaded while the logging setting is on.
        """
        if not self.enrollment.is_accepted:
            raise EnrollmentError("The survey is only available after agreeing to the consent form")
        self.enrollment.record_survey(response)
        if not self.store.is_open:
            self.store.open_existing(self._reload_marker(), self._file_header())
        line_count = self.store.append(SurveyRecord(survey=response))
        if self.enrollment.is_capture_enabled:
            self.scheduler.maybe_flush(line_count)

    # ------------------------------------------------------------------
    # Status queries for the UI layer
    # ------------------------------------------------------------------

    @property
    def is_accepted(self) -> bool:
        return self.enrollment.is_accepted

    @property
    def is_study_arm_active(self) -> bool:
        return self.enrollment.is_study_arm_active

    def is_feature_currently_enabled(self) -> bool:
        return self.enrollment.is_feature_currently_enabled(self.now())

    # ------------------------------------------------------------------
    # Event forwarding
    # ------------------------------------------------------------------

    def on_diagnostics_changed(self, document: Document) -> None:
        self.pipeline.on_diagnostics_changed(document)

    def on_active_editor_changed(self, document: Document | None) -> None:
        if document is not None:
            self.pipeline.on_active_editor_changed(document)

    def on_document_saved(self, document: Document) -> None:
        self.pipeline.on_document_saved(document)

    def on_visualization_toggled(self) -> None:
        self.pipeline.mark_visualization_toggled()

    # ------------------------------------------------------------------

    def _file_header(self) -> FileHeader:
        return FileHeader(
            user_id=self.enrollment.user_id or "",
            visualization_enabled=self.is_feature_currently_enabled(),
            elapsed_seconds=self.pipeline.elapsed(),
        )

    def _reload_marker(self) -> ReloadMarker:
        return ReloadMarker(
            visualization_enabled=self.is_feature_currently_enabled(),
            elapsed_seconds=self.pipeline.elapsed(),
        )

    def _warn_if_host_telemetry_off(self) -> None:
        if not self.host.telemetry_enabled:
            self.host.show_warning(TELEMETRY_DISABLED_WARNING)


__all__ = ("TELEMETRY_DISABLED_WARNING", "TelemetrySession")
