# SPDX-FileCopyrightText: 2025 Knitli Inc.
# SPDX-FileContributor: Adam Poulemanos <adam@knit.li>
#
# SPDX-License-Identifier: MIT OR Apache-2.0
"""
Append-only, rotating JSON-lines log files.

Files are named `log<N>.json` with `N` counting up from 1. Exactly one file is
open for append at a time; older files are never written again and can be
uploaded or removed. The next index is always re-derived from the directory
listing, so a restarted session picks up where the previous one stopped.
"""

from __future__ import annotations

import logging
import re
import threading

from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from saltstudy.common.logging import get_live_tail_logger
from saltstudy.core.entries import FileHeader, ReloadMarker, StudyRecord
from saltstudy.exceptions import LogStoreClosedError, StorageUnavailableError


logger = logging.getLogger(__name__)

LOG_FILE_RE = re.compile(r"^log(\d+)\.json$")


def log_file_name(index: int) -> str:
    return f"log{index}.json"


def _indices(listing: Iterable[str]) -> list[int]:
    return [int(m.group(1)) for name in listing if (m := LOG_FILE_RE.match(name))]


def derive_current_index(listing: Iterable[str]) -> int | None:
    """Index of the newest rotation file in `listing`, or None if there is none."""
    return max(_indices(listing), default=None)


def derive_next_index(listing: Iterable[str]) -> int:
    """Index the next rotation file should get.

    A pure function of the directory listing: one past the highest existing
    index, so re-deriving it after a restart agrees with the writer.
    """
    return (derive_current_index(listing) or 0) + 1


def count_lines(path: Path) -> int:
    with path.open("rb") as f:
        return sum(1 for _ in f)


def drop_partial_line(path: Path) -> int:
    """Truncate a final line that has no newline; returns the bytes removed.

    A process that dies mid-write leaves such a fragment. It cannot be parsed
    and anything appended after it would be glued onto it.
    """
    data = path.read_bytes()
    keep = data.rfind(b"\n") + 1
    if keep == len(data):
        return 0
    with path.open("r+b") as f:
        f.truncate(keep)
    return len(data) - keep


class LogStore:
    """Owns the study log files in one storage directory.

    `append` and `rotate` hold the same lock, so a line is never split by a
    concurrent rotation, even when a host drives the store from several
    threads.
    """

    def __init__(self, directory: Path, *, rotation_threshold: int = 1000) -> None:
        self.directory = directory
        self.rotation_threshold = rotation_threshold
        self.line_count = 0
        self._path: Path | None = None
        self._stream: TextIO | None = None
        self._lock = threading.Lock()
        self._live = get_live_tail_logger()

    # ------------------------------------------------------------------

    def listing(self) -> list[str]:
        try:
            return [p.name for p in self.directory.iterdir() if p.is_file()]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageUnavailableError(
                "Could not list the log directory", details={"error": str(e)}
            ) from e

    def log_files(self) -> list[Path]:
        """Rotation files in index order."""
        return [self.directory / log_file_name(i) for i in sorted(_indices(self.listing()))]

    def current_path(self) -> Path:
        if self._path is None:
            raise LogStoreClosedError("No log file is open")
        return self._path

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def should_rotate(self) -> bool:
        return self.line_count >= self.rotation_threshold

    # ------------------------------------------------------------------

    def open_new(self, header: FileHeader) -> Path:
        """Open a fresh rotation file and write its header line."""
        with self._lock:
            self._open_next()
            self._write_line(header.to_line())
        logger.info("Opened new study log %s", self._path)
        return self.current_path()

    def open_existing(self, marker: ReloadMarker, header: FileHeader) -> Path:
        """Reopen the newest rotation file for a new session.

        Writes `marker` so the file shows where a session restarted. When there
        is no file yet, or the newest one cannot take another line without
        passing the rotation threshold, a new file is started with `header`.
        """
        with self._lock:
            index = derive_current_index(self.listing())
            if index is not None:
                path = self.directory / log_file_name(index)
                lines = self._recover(path)
                if lines + 1 < self.rotation_threshold:
                    self._open(path, lines)
                    self._write_line(marker.to_line())
                    logger.info("Reopened study log %s at line %d", path, lines)
                    return path
            self._open_next()
            self._write_line(header.to_line())
        logger.info("Opened new study log %s", self._path)
        return self.current_path()

    def append(self, record: StudyRecord) -> int:
        """Write one record as a JSON line; returns the file's new line count.

        The line is serialized before anything touches the file, so a record
        that fails to serialize never leaves a partial line behind.
        """
        line = record.to_line()
        with self._lock:
            self._write_line(line)
            return self.line_count

    def rotate(self, header: FileHeader) -> Path:
        """Close the current file and continue in the next one."""
        with self._lock:
            previous = self._path
            self._open_next()
            self._write_line(header.to_line())
        logger.info("Rotated study log %s -> %s", previous, self._path)
        return self.current_path()

    def read_current(self) -> str:
        path = self.current_path()
        with self._lock:
            if self._stream is not None:
                self._stream.flush()
            try:
                return path.read_text(encoding="utf-8")
            except OSError as e:
                raise StorageUnavailableError(
                    "Could not read the current log file", details={"error": str(e)}
                ) from e

    def close(self) -> None:
        with self._lock:
            self._close()

    # ------------------------------------------------------------------

    def _recover(self, path: Path) -> int:
        try:
            if dropped := drop_partial_line(path):
                logger.warning("Dropped %d bytes of an unfinished line from %s", dropped, path)
            return count_lines(path)
        except OSError as e:
            raise StorageUnavailableError(
                "Could not read the existing log file", details={"error": str(e)}
            ) from e

    def _open_next(self) -> None:
        self._close()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(
                "Could not create the log directory",
                details={"error": str(e)},
                suggestions=[f"Check that {self.directory} is writable"],
            ) from e
        path = self.directory / log_file_name(derive_next_index(self.listing()))
        self._open(path, 0)

    def _open(self, path: Path, line_count: int) -> None:
        self._close()
        try:
            self._stream = path.open("a", encoding="utf-8")
        except OSError as e:
            raise StorageUnavailableError(
                "Could not open the log file", details={"error": str(e)}
            ) from e
        self._path = path
        self.line_count = line_count

    def _close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def _write_line(self, line: str) -> None:
        if self._stream is None:
            raise LogStoreClosedError("No log file is open", details={"line_count": self.line_count})
        try:
            self._stream.write(f"{line}\n")
            self._stream.flush()
        except OSError as e:
            raise StorageUnavailableError(
                "Could not write to the log file", details={"error": str(e)}
            ) from e
        self.line_count += 1
        self._live.info(line)


__all__ = (
    "LOG_FILE_RE",
    "LogStore",
    "count_lines",
    "derive_current_index",
    "derive_next_index",
    "drop_partial_line",
    "log_file_name",
)
