# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Study and telemetry configuration settings.

Configuration sources (priority order):
1. Explicit keyword arguments (highest priority)
2. Environment variables
3. `.env` file in the working directory
4. Defaults below

Environment Variables:
    SALT_STORAGE_DIR: Directory holding uuid.txt and the log<N>.json files
    SALT_SEND_INTERVAL: Lines appended between uploads (default: 25)
    SALT_ROTATION_THRESHOLD: Lines per log file before rotation (default: 1000)
    SALT_POSTHOG_PROJECT_KEY: PostHog project key; uploads are disabled without it
    SALT_POSTHOG_HOST: PostHog host (default: https://us.i.posthog.com)
"""

from __future__ import annotations

import logging

from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, PositiveInt, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from saltstudy.exceptions import ConfigurationError


TWO_WEEKS = 1_209_600
YEAR = 31_536_000


def _default_storage_dir() -> Path:
    return Path.home() / ".local" / "share" / "saltstudy"


class SaltSettings(BaseSettings):
    """Settings for the diagnostic telemetry pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="SALT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage_dir: Annotated[
        Path,
        Field(
            default_factory=_default_storage_dir,
            description="Per-installation directory for uuid.txt and the rotation log files.",
        ),
    ]

    language_id: Annotated[
        str,
        Field(default="rust", description="Language id of documents whose diagnostics are captured."),
    ]

    source_glob: Annotated[
        str,
        Field(
            default="**/*.rs",
            description="Glob counted in the workspace as a project-size proxy.",
        ),
    ]

    error_code_prefix: Annotated[
        str,
        Field(default="E", description="Prefix of the compiler's structured error codes."),
    ]

    syntax_code: Annotated[
        str,
        Field(
            default="Syntax",
            description="Code recorded for errors whose code lacks the structured prefix.",
        ),
    ]

    send_interval: Annotated[
        PositiveInt,
        Field(default=25, description="Number of appended lines between uploads."),
    ]

    rotation_threshold: Annotated[
        PositiveInt,
        Field(default=1000, description="Line count at which a log file is rotated."),
    ]

    capture_debounce_ms: Annotated[
        PositiveInt,
        Field(
            default=2000,
            description="Quiet period after a diagnostics change before a capture fires.",
        ),
    ]

    overlay_debounce_ms: Annotated[
        PositiveInt,
        Field(
            default=200,
            description="Quiet period after a diagnostics change before the overlay refreshes.",
        ),
    ]

    reenable_window_seconds: Annotated[
        PositiveInt,
        Field(
            default=TWO_WEEKS,
            description="How long the visualization stays suppressed for the delayed study arm.",
        ),
    ]

    study_period_seconds: Annotated[
        PositiveInt,
        Field(default=YEAR, description="Length of the study for one installation."),
    ]

    posthog_project_key: Annotated[
        SecretStr | None,
        Field(default=None, description="PostHog project key. Uploads are disabled without one."),
    ]

    posthog_host: Annotated[
        str,
        Field(default="https://us.i.posthog.com", description="PostHog host URL."),
    ]

    log_level: Annotated[
        int,
        Field(default=logging.WARNING, description="Level for the saltstudy logger."),
    ]

    rich_logging: Annotated[
        bool,
        Field(default=True, description="Format log output with rich."),
    ]

    @model_validator(mode="after")
    def _check_intervals(self) -> SaltSettings:
        if self.send_interval > self.rotation_threshold:
            raise ValueError("send_interval must not exceed rotation_threshold")
        if self.overlay_debounce_ms > self.capture_debounce_ms:
            raise ValueError("overlay_debounce_ms must not exceed capture_debounce_ms")
        return self

    @property
    def uploads_configured(self) -> bool:
        """Check if a PostHog project key is available."""
        return self.posthog_project_key is not None


_settings: SaltSettings | None = None


def get_settings(**overrides: Any) -> SaltSettings:
    """Get the cached settings instance, building it on first use.

    Raises:
        ConfigurationError: If the configured values fail validation.
    """
    global _settings
    if _settings is None or overrides:
        try:
            _settings = SaltSettings(**overrides)
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid saltstudy settings",
                details={"errors": e.error_count()},
                suggestions=[
                    "Check SALT_* environment variables and your .env file",
                    "send_interval must be at most rotation_threshold",
                ],
            ) from e
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next `get_settings` call rebuilds them."""
    global _settings
    _settings = None


__all__ = (
    "TWO_WEEKS",
    "YEAR",
    "SaltSettings",
    "get_settings",
    "reset_settings",
)
