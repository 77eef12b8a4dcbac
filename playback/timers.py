# playback/timers.py
from __future__ import annotations

from typing import Callable, Optional, Protocol

from PyQt6.QtCore import QObject, QTimer


class OneShotTimer(Protocol):
    """Single outstanding delayed callback.

    start() replaces any pending shot; stop() guarantees the callback will
    not run until start() is called again.
    """

    def start(self, delay_ms: int) -> None: ...

    def stop(self) -> None: ...

    def is_active(self) -> bool: ...


class QtOneShotTimer:
    """OneShotTimer backed by a single-shot QTimer on the caller's event loop."""

    def __init__(self, callback: Callable[[], None], parent: Optional[QObject] = None):
        self._timer = QTimer(parent)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(callback)

    def start(self, delay_ms: int) -> None:
        # QTimer.start() on an active timer restarts it
        self._timer.start(max(0, int(delay_ms)))

    def stop(self) -> None:
        self._timer.stop()

    def is_active(self) -> bool:
        return self._timer.isActive()
