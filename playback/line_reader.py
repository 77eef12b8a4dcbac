# playback/line_reader.py
from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, List, Optional


class LineReader:
    """Random-access line reader over a recording.

    Line offsets are indexed once on open(); afterwards every read is a
    single buffered readline() and go_to_line() is a seek.

    current_line is the index of the next line read_line() will return,
    so 0 means "at the start" and line_count means "at end of file".
    """

    def __init__(self) -> None:
        self.path: Optional[Path] = None
        self._fh: Optional[BinaryIO] = None
        self._offsets: List[int] = []
        self._next = 0

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    @property
    def line_count(self) -> int:
        return len(self._offsets)

    @property
    def current_line(self) -> int:
        return self._next

    @property
    def eof(self) -> bool:
        return self._next >= len(self._offsets)

    def open(self, path: str | os.PathLike) -> None:
        """Open and index path. Raises OSError if the file can't be read."""
        self.close()
        p = Path(path)
        fh = open(p, "rb")
        offsets: List[int] = []
        pos = 0
        for raw in fh:
            offsets.append(pos)
            pos += len(raw)
        fh.seek(0)
        self.path = p
        self._fh = fh
        self._offsets = offsets
        self._next = 0

    def close(self) -> None:
        fh = self._fh
        self._fh = None
        self._offsets = []
        self._next = 0
        if fh is not None:
            fh.close()

    def go_to_line(self, index: int) -> None:
        if self._fh is None:
            return
        index = max(0, min(int(index), len(self._offsets)))
        self._next = index
        if index < len(self._offsets):
            self._fh.seek(self._offsets[index])

    def read_line(self) -> Optional[str]:
        """Next raw line without its line terminator, or None at end of file."""
        if self._fh is None or self.eof:
            return None
        raw = self._fh.readline()
        self._next += 1
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def next_non_empty_line(self, from_start: bool = False) -> str:
        """Next stripped line that is neither blank nor a '#' comment.

        Returns "" once the end of the file is reached.
        """
        if from_start:
            self.go_to_line(0)
        while True:
            line = self.read_line()
            if line is None:
                return ""
            line = line.strip()
            if line and not line.startswith("#"):
                return line
