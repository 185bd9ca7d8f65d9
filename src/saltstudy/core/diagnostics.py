# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Diagnostic snapshots as reported by the host editor.

A diagnostic's code arrives from the editor in one of three shapes: an object
carrying a `value` (what rustc codes look like when rust-analyzer is set to
report them), a bare string or number, or nothing at all. `DiagnosticCode`
models those as a tagged variant so the capture pipeline can match on it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import IntEnum
from typing import Annotated, Any

from pydantic import Field
from pydantic.dataclasses import dataclass


class Severity(IntEnum):
    """Diagnostic severity, numbered like the editor's own enum."""

    ERROR = 0
    WARNING = 1
    INFORMATION = 2
    HINT = 3


@dataclass(frozen=True)
class StructuredCode:
    """A code object with a `value`, e.g. `{"value": "E0502", "target": ...}`."""

    value: str | int


@dataclass(frozen=True)
class PrimitiveCode:
    """A bare string or number code."""

    value: str | int


@dataclass(frozen=True)
class AbsentCode:
    """The diagnostic carries no code."""


type DiagnosticCode = StructuredCode | PrimitiveCode | AbsentCode


def parse_code(raw: Any) -> DiagnosticCode:
    """Classify a code value as received from the host."""
    match raw:
        case None:
            return AbsentCode()
        case StructuredCode() | PrimitiveCode() | AbsentCode():
            return raw
        case Mapping() if isinstance(raw.get("value"), str | int):
            return StructuredCode(value=raw["value"])
        case bool():
            return AbsentCode()
        case str() | int():
            return PrimitiveCode(value=raw)
        case _:
            return AbsentCode()


@dataclass(frozen=True)
class LineRange:
    """Zero-based start and end lines of a diagnostic."""

    start: Annotated[int, Field(ge=0)]
    end: Annotated[int, Field(ge=0)]


@dataclass(frozen=True)
class RelatedInformation:
    """A secondary message attached to a diagnostic (notes, suggestions)."""

    message: str


@dataclass(frozen=True)
class Diagnostic:
    """Point-in-time snapshot of one diagnostic."""

    severity: Severity
    message: str
    range: LineRange
    code: StructuredCode | PrimitiveCode | AbsentCode = Field(default_factory=AbsentCode)
    source: str | None = None
    related_information: tuple[RelatedInformation, ...] = ()

    @classmethod
    def from_host(
        cls,
        *,
        severity: Severity | int,
        message: str,
        start_line: int,
        end_line: int,
        code: Any = None,
        source: str | None = None,
        related: Sequence[str] = (),
    ) -> Diagnostic:
        """Build a snapshot from loosely typed host values."""
        return cls(
            severity=Severity(severity),
            message=message,
            range=LineRange(start=start_line, end=end_line),
            code=parse_code(code),
            source=source,
            related_information=tuple(RelatedInformation(message=m) for m in related),
        )

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR


@dataclass(frozen=True)
class Document:
    """The parts of an open editor document the pipeline looks at."""

    identifier: str
    language_id: str
    line_count: Annotated[int, Field(ge=0)] = 0


__all__ = (
    "AbsentCode",
    "Diagnostic",
    "DiagnosticCode",
    "Document",
    "LineRange",
    "PrimitiveCode",
    "RelatedInformation",
    "Severity",
    "StructuredCode",
    "parse_code",
)
