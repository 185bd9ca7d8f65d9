# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""Exception hierarchy for saltstudy.

Every error raised by the telemetry core derives from `SaltError`, which carries
structured details and suggestions the host can surface to the user.
"""

from __future__ import annotations

from typing import Any, ClassVar


class SaltError(Exception):
    """Base exception for all saltstudy errors.

    Provides structured error information including details and suggestions
    for resolution.
    """

    _issue_information: ClassVar[tuple[str, ...]] = (
        "If you believe this is a bug in the SALT study extension, please report it to the study team.",
        "",
        "Never attach your log files to a public issue; they are tied to your study id.",
    )

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        """Initialize a saltstudy error.

        Args:
            message: Human-readable error message
            details: Additional context about the error
            suggestions: Actionable suggestions for resolving the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def __str__(self) -> str:
        """Return descriptive error message with context details."""
        parts = [self.message]
        if self.details:
            detail_parts = [f"{key.replace('_', ' ')}: {value}" for key, value in self.details.items()]
            parts.append(f"({', '.join(detail_parts)})")
        return " ".join(parts)

    @property
    def report(self) -> str:
        """Generate a full error report including reporting information."""
        about = "\n".join(type(self)._issue_information)
        suggestions = (
            "- Suggestions: " + ", ".join(self.suggestions)
            if self.suggestions
            else "- No suggestions provided."
        )
        return f"{about}\n\n- Error Message: {self.message}\n{suggestions}"


class ConfigurationError(SaltError):
    """Configuration and settings errors.

    Raised when settings fail validation or reference unusable values.
    """


class StorageUnavailableError(SaltError):
    """Local storage errors.

    Raised when the storage directory cannot be created, or a log or state file
    cannot be opened or written. Fatal to pipeline activation for the session.
    """


class LogStoreClosedError(StorageUnavailableError):
    """Raised when writing to a log store that has no open file."""


class EnrollmentError(SaltError):
    """Raised on an invalid enrollment transition or a corrupt enrollment record."""


class UnsupportedDiagnosticError(SaltError):
    """Raised when a diagnostic's code is missing or not a structured value.

    The capture pipeline recovers by abandoning the current cycle.
    """


__all__ = (
    "ConfigurationError",
    "EnrollmentError",
    "LogStoreClosedError",
    "SaltError",
    "StorageUnavailableError",
    "UnsupportedDiagnosticError",
)
