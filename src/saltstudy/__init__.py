# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""saltstudy: consent-gated compiler-diagnostic telemetry for the SALT study."""

from saltstudy._version import __version__
from saltstudy.exceptions import (
    ConfigurationError,
    EnrollmentError,
    LogStoreClosedError,
    SaltError,
    StorageUnavailableError,
    UnsupportedDiagnosticError,
)


__all__ = (
    "ConfigurationError",
    "EnrollmentError",
    "LogStoreClosedError",
    "SaltError",
    "StorageUnavailableError",
    "UnsupportedDiagnosticError",
    "__version__",
)
