# sourcery skip: name-type-suffix
# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Batched upload of the study log.

Every `send_interval` appended lines the whole current log file is sent as
the payload of a single PostHog event. Sending is fire-and-forget: delivery
failures are logged by the transport and the next flush sends the file again,
which gives at-least-once delivery of every line.
"""

from __future__ import annotations

import logging

from collections.abc import Callable
from types import TracebackType
from typing import Protocol, Self

from posthog import Posthog
from pydantic import SecretStr

from saltstudy.core.entries import FileHeader
from saltstudy.log_store import LogStore


logger = logging.getLogger(__name__)

LOG_EVENT = "salt_log"


class TelemetryTransport(Protocol):
    """Sends one batch of log content to the study backend."""

    def send(self, user_id: str, payload: str) -> None: ...

    def shutdown(self) -> None: ...


class PostHogTransport:
    """
    PostHog-backed transport.

    Example:
        >>> transport = PostHogTransport(api_key="phc_...")
        >>> if transport.enabled:
        ...     transport.send(user_id, log_text)
    """

    def __init__(
        self,
        api_key: SecretStr | str | None = None,
        host: str = "https://us.i.posthog.com",
        *,
        enabled: bool = True,
    ) -> None:
        """
        Initialize the transport.

        Args:
            api_key: PostHog project key (required if enabled)
            host: PostHog host URL
            enabled: Enable sending
        """
        self.enabled = bool(enabled and api_key)
        self._client: Posthog | None = None

        if self.enabled and api_key:
            try:
                self._client = Posthog(
                    project_api_key=api_key
                    if isinstance(api_key, str)
                    else api_key.get_secret_value(),
                    host=host,
                    debug=False,
                )
                logger.info("PostHog transport initialized")
            except Exception:
                logger.exception("Failed to initialize PostHog client")
                self.enabled = False
                self._client = None
        else:
            logger.info("Uploads disabled: no PostHog project key configured")

    def send(self, user_id: str, payload: str) -> None:
        """Send `payload` as one event. Never raises."""
        if not self.enabled or not self._client:
            logger.debug("Uploads disabled, skipping %d bytes", len(payload))
            return
        try:
            _ = self._client.capture(
                distinct_id=user_id, event=LOG_EVENT, properties={"log": payload}
            )
            logger.debug("Uploaded %d bytes of study log", len(payload))
        except Exception:
            # uploads never interrupt capture; the next flush resends the file
            logger.exception("Failed to upload study log")

    def shutdown(self) -> None:
        """Flush pending events and close the client."""
        if self._client:
            try:
                self._client.shutdown()
                logger.info("PostHog transport shut down")
            except Exception:
                logger.exception("Error during PostHog client shutdown")

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()


class UploadScheduler:
    """Decides when to upload the current log file and when to rotate it."""

    def __init__(
        self,
        store: LogStore,
        transport: TelemetryTransport,
        *,
        user_id: Callable[[], str | None],
        make_header: Callable[[], FileHeader],
        send_interval: int = 25,
    ) -> None:
        self.store = store
        self.transport = transport
        self.send_interval = send_interval
        self._user_id = user_id
        self._make_header = make_header

    def is_due(self, line_count: int) -> bool:
        return line_count % self.send_interval == 0 or self.store.should_rotate

    def maybe_flush(self, line_count: int) -> bool:
        """Call after every append. Uploads when due, then rotates a full file.

        Returns:
            True if a flush happened.
        """
        if not self.is_due(line_count):
            return False
        self.flush()
        if self.store.should_rotate:
            self.store.rotate(self._make_header())
        return True

    def flush(self) -> None:
        """Send the current file's full content."""
        user_id = self._user_id()
        if user_id is None:
            logger.debug("Not enrolled; skipping upload")
            return
        self.transport.send(user_id, self.store.read_current())


__all__ = ("LOG_EVENT", "PostHogTransport", "TelemetryTransport", "UploadScheduler")
