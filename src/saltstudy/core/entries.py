# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Records written to the study log.

Every record is one JSON line. Field names are Pythonic; the serialized keys
are the short keys the study's analysis scripts read (`file`, `msg`,
`revis`, ...). Anything derived from user content is a `HashToken`, so a
record holding raw text fails validation before it can be written.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

from saltstudy.core.hashing import HashToken


def format_seconds(seconds: float) -> str:
    """Render elapsed seconds with millisecond precision, as the study logs expect."""
    return f"{seconds:.3f}"


class StudyRecord(BaseModel):
    """Base class for one line of the study log."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    def to_line(self) -> str:
        """Serialize to a single JSON line, without the trailing newline."""
        return self.model_dump_json(by_alias=True)


class FileHeader(StudyRecord):
    """First line of a freshly created log file."""

    user_id: Annotated[str, Field(serialization_alias="uuid")]
    visualization_enabled: Annotated[bool, Field(serialization_alias="revis")]
    elapsed_seconds: Annotated[str, Field(serialization_alias="seconds")]


class ReloadMarker(StudyRecord):
    """First line written when an existing log file is reopened by a new session."""

    reload: bool = True
    visualization_enabled: Annotated[bool, Field(serialization_alias="revis")]
    elapsed_seconds: Annotated[str, Field(serialization_alias="seconds")]


class ErrorLineRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: NonNegativeInt
    end: NonNegativeInt


class ErrorRecord(BaseModel):
    """One compiler error inside a capture entry."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: str
    message_hash: Annotated[HashToken, Field(serialization_alias="msg")]
    source: str | None = None
    hint: str = ""
    range: ErrorLineRange


class CaptureEntry(StudyRecord):
    """The state of the active document's errors after one capture cycle."""

    file_hash: Annotated[HashToken, Field(serialization_alias="file")]
    workspace_hash: Annotated[HashToken, Field(serialization_alias="workspace")]
    elapsed_seconds: Annotated[str, Field(serialization_alias="seconds")]
    visualization_toggled: Annotated[bool, Field(serialization_alias="revis")]
    document_line_count: Annotated[NonNegativeInt, Field(serialization_alias="length")]
    project_file_count: Annotated[NonNegativeInt, Field(serialization_alias="numfiles")]
    errors: tuple[ErrorRecord, ...] = ()

    @property
    def is_clean_build(self) -> bool:
        return not self.errors


class SaveEntry(StudyRecord):
    """A document save."""

    file_hash: Annotated[HashToken, Field(serialization_alias="file")]
    saved_at: Annotated[str, Field(serialization_alias="savedAt")]


class SurveyRecord(StudyRecord):
    """The participant's answer to the study survey form."""

    survey: str


__all__ = (
    "CaptureEntry",
    "ErrorLineRange",
    "ErrorRecord",
    "FileHeader",
    "ReloadMarker",
    "SaveEntry",
    "StudyRecord",
    "SurveyRecord",
    "format_seconds",
)
