# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Capabilities the telemetry core needs from the host editor.

The editor is an external collaborator. It hands the core a `Host`, an object
implementing the protocols below, and forwards its own events to the session.
`JsonStateStore` and `WorkspaceFileCounter` are ready-made implementations of
the persistence and file-count capabilities for hosts without their own.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile

from collections.abc import Sequence
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Any, Protocol, runtime_checkable

import rignore

from pydantic_core import from_json, to_json

from saltstudy.core.diagnostics import Diagnostic, Document
from saltstudy.exceptions import StorageUnavailableError


logger = logging.getLogger(__name__)


@runtime_checkable
class StateStore(Protocol):
    """Durable key/value storage that survives editor restarts."""

    def get(self, key: str) -> Any | None: ...

    def update(self, key: str, value: Any | None) -> None:
        """Write `value` under `key`; `None` removes the key."""
        ...


class Host(Protocol):
    """Everything the core reads from, or pushes to, the editor."""

    @property
    def state(self) -> StateStore: ...

    @property
    def workspace_name(self) -> str: ...

    @property
    def telemetry_enabled(self) -> bool:
        """The editor's own telemetry switch."""
        ...

    def get_diagnostics(self, document: Document) -> Sequence[Diagnostic]: ...

    async def count_files(self, pattern: str) -> int: ...

    def get_logging_setting(self) -> bool: ...

    def set_logging_setting(self, enabled: bool) -> None: ...

    def show_warning(self, message: str) -> None: ...

    def refresh_overlay(self, document: Document, diagnostics: Sequence[Diagnostic]) -> None:
        """Redraw the inline error visualizations for `document`."""
        ...


class JsonStateStore:
    """A `StateStore` persisted as one JSON object on disk.

    Every update rewrites the file through a temporary file and `os.replace`,
    so a crash leaves either the old or the new state, never a torn file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._data: dict[str, Any] = {}
        if path.exists():
            try:
                self._data = from_json(path.read_bytes())
            except (OSError, ValueError) as e:
                raise StorageUnavailableError(
                    "Could not read the saved study state",
                    details={"error": str(e)},
                    suggestions=["Delete the state file to start over with a new consent prompt"],
                ) from e

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def update(self, key: str, value: Any | None) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        self._flush()

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".state-", suffix=".json")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(to_json(self._data, indent=2))
                os.replace(tmp, self.path)
            except OSError:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageUnavailableError(
                "Could not persist the study state", details={"error": str(e)}
            ) from e


def glob_match(parts: Sequence[str], pattern: Sequence[str]) -> bool:
    """Match path segments against glob segments; `**` spans zero or more directories."""
    if not pattern:
        return not parts
    head, *rest = pattern
    if head == "**":
        return any(glob_match(parts[i:], rest) for i in range(len(parts) + 1))
    return bool(parts) and fnmatch(parts[0], head) and glob_match(parts[1:], rest)


class WorkspaceFileCounter:
    """Counts workspace files matching a glob, honoring .gitignore rules."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _count(self, pattern: str) -> int:
        pattern_parts = PurePosixPath(pattern).parts
        count = 0
        for entry in rignore.walk(self.root, read_git_ignore=True, ignore_hidden=True):
            path = Path(entry)
            if not path.is_file():
                continue
            with contextlib.suppress(ValueError):
                if glob_match(path.relative_to(self.root).parts, pattern_parts):
                    count += 1
        return count

    async def count(self, pattern: str) -> int:
        return await asyncio.to_thread(self._count, pattern)


__all__ = ("Host", "JsonStateStore", "StateStore", "WorkspaceFileCounter", "glob_match")
