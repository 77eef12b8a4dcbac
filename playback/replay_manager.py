# playback/replay_manager.py
from __future__ import annotations

import logging
import os
import time
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Callable, Deque, Dict, Optional, Tuple

from config import (
    BATCH_INTERVAL_MS,
    BATCH_SIZE,
    DEFAULT_SPEED_MULTIPLIER,
    MAX_BUFFER_SIZE,
    SPEED_MAX,
    SPEED_MIN,
    USE_PRIMARY_SOURCE,
)
from schema.vdr_common import (
    DateCache,
    PlaybackState,
    ReplayRecord,
    ScanResult,
    TimeSource,
    TimeSourceDetails,
)
from parsing.timestamp_parser import TimestampParser, parse_csv_line
from playback.file_scanner import FileClock, FileScanner
from playback.line_reader import LineReader
from playback.timers import OneShotTimer, QtOneShotTimer

logger = logging.getLogger(__name__)

TimerFactory = Callable[[Callable[[], None]], OneShotTimer]


class ReplayManager:
    """Replays a VDR recording at its original pace.

    Driven by a single one-shot timer: every notify() reads records until one
    is due in the future, hands everything read so far to the sink, then
    re-arms the timer for that record's wall-clock target. Recordings
    without a usable clock are replayed in fixed-size batches instead.

    Collaborators (all injected):
      sink(record)      receives every replayed record, in file order
      update_ui()       called after every state-relevant change
      timer_factory(cb) builds the one-shot timer that calls notify()
      clock()           monotonic wall clock in seconds
    """

    def __init__(
        self,
        sink: Optional[Callable[[ReplayRecord], None]] = None,
        update_ui: Optional[Callable[[], None]] = None,
        *,
        timer_factory: Optional[TimerFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        speed_multiplier: float = DEFAULT_SPEED_MULTIPLIER,
        batch_size: int = BATCH_SIZE,
        batch_interval_ms: int = BATCH_INTERVAL_MS,
        max_buffer_size: int = MAX_BUFFER_SIZE,
        use_primary_source: bool = USE_PRIMARY_SOURCE,
    ):
        self.sink = sink
        self.update_ui = update_ui
        self._now = clock

        self.batch_size = int(batch_size)
        self.batch_interval_ms = int(batch_interval_ms)
        self.max_buffer_size = int(max_buffer_size)
        self._speed = min(max(float(speed_multiplier), SPEED_MIN), SPEED_MAX)

        self._reader = LineReader()
        self._parser = TimestampParser()
        self._clock = FileClock()
        self._scanner = FileScanner(self._reader, self._parser, self._clock, use_primary_source=use_primary_source)
        self._timer = (timer_factory or QtOneShotTimer)(self.notify)

        self._state = PlaybackState.IDLE
        self._input_file: Optional[Path] = None
        self._buffer: Deque[ReplayRecord] = deque()
        self._messages_dropped = False
        self._playback_base_time: Optional[float] = None

    # --- state -----------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def input_file(self) -> Optional[Path]:
        return self._input_file

    def is_playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    def is_paused(self) -> bool:
        return self._state == PlaybackState.PAUSED

    def is_at_file_end(self) -> bool:
        return self._state == PlaybackState.AT_END

    def is_error(self) -> bool:
        return self._state == PlaybackState.ERROR

    def is_csv_file(self) -> bool:
        return self._clock.is_csv

    def has_valid_timestamps(self) -> bool:
        return self._clock.has_valid_timestamps

    @property
    def time_sources(self) -> Dict[TimeSource, TimeSourceDetails]:
        return self._clock.inventory.as_dict()

    @property
    def primary_time_source(self) -> Optional[TimeSource]:
        return self._clock.primary_source

    def get_first_timestamp(self) -> Optional[datetime]:
        return self._clock.first_timestamp

    def get_last_timestamp(self) -> Optional[datetime]:
        return self._clock.last_timestamp

    def get_current_timestamp(self) -> Optional[datetime]:
        return self._clock.current_timestamp

    @property
    def speed_multiplier(self) -> float:
        return self._speed

    def set_speed_multiplier(self, value: float) -> None:
        self._speed = min(max(float(value), SPEED_MIN), SPEED_MAX)
        if self.is_playing():
            self.adjust_playback_base_time()
        self._notify_ui()

    # --- file ------------------------------------------------------------

    def load_file(self, path: str | os.PathLike) -> Tuple[bool, str]:
        """Open path for playback. Clears all scan and clock state; does not scan."""
        if self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            self.stop()

        self._timer.stop()
        self._reader.close()
        self._clock.reset()
        self._parser.reset()
        self._buffer.clear()
        self._playback_base_time = None
        self._state = PlaybackState.IDLE
        self._input_file = Path(path)

        try:
            self._reader.open(self._input_file)
        except OSError as e:
            logger.warning("Failed to open %s: %s", self._input_file, e)
            self._notify_ui()
            return False, f"Failed to open file: {path}"

        self._notify_ui()
        return True, ""

    def scan_file_timestamps(self) -> ScanResult:
        if self._state == PlaybackState.PLAYING:
            self._timer.stop()
            self._state = PlaybackState.PAUSED
        # the scan rewinds the cursor, anything still buffered belongs to the old position
        self._buffer.clear()
        try:
            result = self._scanner.scan()
        except OSError:
            logger.exception("Scanning %s failed", self._input_file)
            self._clock.reset()
            self._fail()
            result = ScanResult(ok=False, has_valid_timestamps=False, error=f"Failed to read file: {self._input_file}")
        self._notify_ui()
        return result

    # --- transport -------------------------------------------------------

    def start(self) -> str:
        """Start or resume playback. Returns a status message, "" on success."""
        if self._input_file is None:
            return "No file selected."
        if not self._input_file.exists():
            return "File does not exist."
        if self._state == PlaybackState.PLAYING:
            return ""
        if self._state in (PlaybackState.AT_END, PlaybackState.ERROR):
            return "Reload the file to play it again."

        if not self._reader.is_open:
            try:
                self._reader.open(self._input_file)
            except OSError as e:
                logger.warning("Failed to open %s: %s", self._input_file, e)
                return "Failed to open file."

        self._messages_dropped = False
        self._state = PlaybackState.PLAYING
        self.adjust_playback_base_time()

        logger.info(
            "Start playback from file: %s. Progress: %.2f. Has timestamps: %d",
            self._input_file,
            self.get_progress_fraction(),
            self._clock.has_timestamps,
        )
        self._notify_ui()
        self.notify()
        return ""

    def pause(self) -> None:
        if self._state != PlaybackState.PLAYING:
            return
        self._timer.stop()
        self._state = PlaybackState.PAUSED
        logger.info("Pause playback at %.2f", self.get_progress_fraction())
        self._notify_ui()

    def stop(self) -> None:
        """Cancel the pending tick and release the file. Progress returns to 0."""
        if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED, PlaybackState.AT_END):
            return
        self._timer.stop()
        self._reader.close()
        self._buffer.clear()
        self._clock.current_timestamp = self._clock.first_timestamp
        self._state = PlaybackState.IDLE
        logger.info("Stop playback of %s", self._input_file)
        self._notify_ui()

    # --- timing ----------------------------------------------------------

    def _elapsed_scaled(self) -> Optional[float]:
        first, current = self._clock.first_timestamp, self._clock.current_timestamp
        if first is None or current is None:
            return None
        return (current - first).total_seconds() / self._speed

    def adjust_playback_base_time(self) -> None:
        """Re-anchor the log-time to wall-clock mapping at the current position."""
        elapsed = self._elapsed_scaled()
        if elapsed is None:
            return
        self._playback_base_time = self._now() - elapsed

    def next_playback_time(self) -> Optional[float]:
        """Wall-clock time (clock() units) at which current_timestamp is due."""
        elapsed = self._elapsed_scaled()
        if elapsed is None or self._playback_base_time is None:
            return None
        return self._playback_base_time + elapsed

    # --- tick ------------------------------------------------------------

    def notify(self) -> None:
        """Timer callback: emit whatever is due and schedule the next wake-up."""
        if self._state != PlaybackState.PLAYING or not self._reader.is_open:
            return

        now = self._now()
        try:
            while True:
                record, timestamp = self._read_record()
                if record is None:
                    self._finish()
                    return

                self._buffer.append(record)

                if timestamp is not None and self._clock.has_valid_timestamps:
                    self._clock.current_timestamp = timestamp
                    target = self.next_playback_time()
                    self._flush_buffer()
                    if target is not None and target > now:
                        self._timer.start(int((target - now) * 1000))
                        break
                elif not self._clock.has_valid_timestamps and len(self._buffer) >= self.batch_size:
                    self._flush_buffer()
                    self._timer.start(int(self.batch_interval_ms / self._speed))
                    break

                if len(self._buffer) > self.max_buffer_size:
                    if not self._messages_dropped:
                        logger.warning(
                            "Playback dropping messages to maintain timing at %.0fx speed",
                            self._speed,
                        )
                        self._messages_dropped = True
                    self._buffer.popleft()
        except OSError:
            logger.exception("Playback of %s failed", self._input_file)
            self._fail()

        self._notify_ui()

    def _fail(self) -> None:
        self._timer.stop()
        self._reader.close()
        self._buffer.clear()
        self._state = PlaybackState.ERROR

    def _finish(self) -> None:
        self._flush_buffer()
        self._timer.stop()
        self._state = PlaybackState.AT_END
        logger.info("Playback of %s reached end of file", self._input_file)
        self._notify_ui()

    def _flush_buffer(self) -> None:
        while self._buffer:
            record = self._buffer.popleft()
            if self.sink is not None:
                self.sink(record)

    def _read_record(self) -> Tuple[Optional[ReplayRecord], Optional[datetime]]:
        """Next record at the cursor with its usable timestamp, or (None, None) at EOF."""
        reader, clock = self._reader, self._clock

        if reader.current_line == 0:
            # dates seen further into the file must not leak back to its top
            self._parser.date_cache = DateCache()
            line = self._scanner.detect_format()
        elif clock.is_csv and reader.current_line <= clock.header_line:
            reader.go_to_line(clock.header_line + 1)
            line = reader.next_non_empty_line()
        else:
            line = reader.next_non_empty_line()

        while line:
            if clock.is_csv and clock.csv_layout is not None:
                rec = parse_csv_line(line, clock.csv_layout)
                if rec is not None:
                    return ReplayRecord(rec.message, rec.record_type), rec.timestamp
            else:
                parsed = self._parser.parse_timestamp(line)
                return ReplayRecord(line), parsed[0] if parsed else None
            line = reader.next_non_empty_line()
        return None, None

    # --- seek / progress -------------------------------------------------

    def seek_to_fraction(self, fraction: float) -> bool:
        """Move playback to fraction (0..1) of the recording.

        With a clock, the fraction is of the time span and the cursor lands
        on the first record at or after the target time. Without one, it is
        a fraction of the line count. When no record reaches the target the
        cursor stays put; a read error moves playback to ERROR.
        """
        if not 0.0 <= fraction <= 1.0:
            logger.warning("Invalid seek fraction: %f", fraction)
            return False
        if not self._reader.is_open:
            logger.warning("Cannot seek, no file open")
            return False

        playing = self._state == PlaybackState.PLAYING
        # a stale tick must not read from the new position
        self._timer.stop()

        saved_line = self._reader.current_line
        saved_date = self._parser.date_cache
        if not self._clock.has_valid_timestamps:
            total_lines = self._reader.line_count
            ok = total_lines > 0
            if ok:
                self._buffer.clear()
                self._reader.go_to_line(round(fraction * total_lines))
        else:
            try:
                ok = self._seek_to_time(fraction)
            except OSError:
                logger.exception("Seek in %s failed", self._input_file)
                ok = False
                self._fail()
            if not ok:
                self._reader.go_to_line(saved_line)
                self._parser.date_cache = saved_date

        if self._state == PlaybackState.ERROR:
            self._notify_ui()
            return False

        if ok and playing:
            self.adjust_playback_base_time()
        if playing:
            self._timer.start(0)
        self._notify_ui()
        return ok

    def _seek_to_time(self, fraction: float) -> bool:
        clock = self._clock
        assert clock.first_timestamp is not None and clock.last_timestamp is not None
        target = clock.first_timestamp + (clock.last_timestamp - clock.first_timestamp) * fraction

        self._reader.go_to_line(0)
        while True:
            position = self._reader.current_line
            record, timestamp = self._read_record()
            if record is None:
                return False
            if timestamp is not None and timestamp >= target:
                # replay resumes with this record
                self._reader.go_to_line(position)
                clock.current_timestamp = timestamp
                self._buffer.clear()
                return True

    def get_progress_fraction(self) -> float:
        clock = self._clock
        if clock.has_valid_timestamps:
            total = (clock.last_timestamp - clock.first_timestamp).total_seconds()
            if total <= 0:
                return 0.0
            current = (clock.current_timestamp - clock.first_timestamp).total_seconds()
            return min(max(current / total, 0.0), 1.0)

        if self._reader.is_open:
            total_lines = self._reader.line_count
            if total_lines > 0:
                return min(max(self._reader.current_line / total_lines, 0.0), 1.0)
        return 0.0

    def _notify_ui(self) -> None:
        if self.update_ui is not None:
            self.update_ui()
