# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""Core data types: hashing, diagnostic snapshots, and study log records."""

from saltstudy.core.diagnostics import (
    AbsentCode,
    Diagnostic,
    DiagnosticCode,
    Document,
    LineRange,
    PrimitiveCode,
    RelatedInformation,
    Severity,
    StructuredCode,
    parse_code,
)
from saltstudy.core.entries import (
    CaptureEntry,
    ErrorLineRange,
    ErrorRecord,
    FileHeader,
    ReloadMarker,
    SaveEntry,
    StudyRecord,
    SurveyRecord,
    format_seconds,
)
from saltstudy.core.hashing import HASH_LENGTH, HashToken, hash_string, is_hash_token


__all__ = (
    "HASH_LENGTH",
    "AbsentCode",
    "CaptureEntry",
    "Diagnostic",
    "DiagnosticCode",
    "Document",
    "ErrorLineRange",
    "ErrorRecord",
    "FileHeader",
    "HashToken",
    "LineRange",
    "PrimitiveCode",
    "RelatedInformation",
    "ReloadMarker",
    "SaveEntry",
    "Severity",
    "StructuredCode",
    "StudyRecord",
    "SurveyRecord",
    "format_seconds",
    "hash_string",
    "is_hash_token",
    "parse_code",
)
