# playback/file_scanner.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from schema.vdr_common import ScanResult, TimeSource, TimeSourceDetails
from parsing.sentence_validator import parse_nmea_components
from parsing.timestamp_parser import (
    CsvLayout,
    TimestampParser,
    format_iso_datetime,
    parse_csv_header,
    parse_csv_line,
)
from playback.line_reader import LineReader
from playback.time_sources import TimeSourceInventory, select_primary_time_source

logger = logging.getLogger(__name__)

ERR_FILE_NOT_OPEN = "File not open"
ERR_NOT_CHRONOLOGICAL = "Timestamps not in chronological order"
ERR_INVALID_FILE = "Invalid file"


@dataclass
class FileClock:
    """Playback clock of the loaded file. Rebuilt from scratch on every scan."""

    is_csv: bool = False
    csv_layout: Optional[CsvLayout] = None
    header_line: int = -1
    has_timestamps: bool = False
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None
    current_timestamp: Optional[datetime] = None
    primary_source: Optional[TimeSource] = None
    inventory: TimeSourceInventory = field(default_factory=TimeSourceInventory)

    @property
    def has_primary_source(self) -> bool:
        return self.primary_source is not None

    @property
    def has_valid_timestamps(self) -> bool:
        return (
            self.has_timestamps
            and self.first_timestamp is not None
            and self.last_timestamp is not None
            and self.current_timestamp is not None
        )

    def reset_timestamps(self) -> None:
        self.has_timestamps = False
        self.first_timestamp = None
        self.last_timestamp = None
        self.current_timestamp = None

    def reset(self) -> None:
        self.reset_timestamps()
        self.is_csv = False
        self.csv_layout = None
        self.header_line = -1
        self.primary_source = None
        self.inventory.clear()


class FileScanner:
    """One full pass over a recording to establish its playback clock.

    CSV recordings must be strictly ordered; an out-of-order row aborts the
    scan. Raw sentence recordings are inventoried per clock identity and the
    best chronological identity becomes the primary time source.
    """

    def __init__(
        self,
        reader: LineReader,
        parser: TimestampParser,
        clock: FileClock,
        *,
        use_primary_source: bool = True,
    ):
        self.reader = reader
        self.parser = parser
        self.clock = clock
        self.use_primary_source = bool(use_primary_source)

        self.valid_sentences = 0
        self.invalid_sentences = 0

    def detect_format(self) -> str:
        """Read the first meaningful line from the top and classify the file.

        Returns the first data line: the line after the header for CSV, the
        first sentence otherwise. "" for an empty file.
        """
        line = self.reader.next_non_empty_line(from_start=True)
        layout = parse_csv_header(line) if line else None
        self.clock.is_csv = layout is not None
        self.clock.csv_layout = layout
        if layout is not None:
            self.clock.header_line = self.reader.current_line - 1
            return self.reader.next_non_empty_line()
        self.clock.header_line = -1
        return line

    def scan(self) -> ScanResult:
        if not self.reader.is_open:
            logger.info("File not open")
            self.clock.reset()
            return ScanResult(ok=False, has_valid_timestamps=False, error=ERR_FILE_NOT_OPEN)

        logger.info("Scanning timestamps in %s", self.reader.path)
        self.clock.reset()
        self.parser.reset()
        self.valid_sentences = 0
        self.invalid_sentences = 0

        line = self.detect_format()
        if not line and not self.clock.is_csv:
            logger.info("File is empty or contains only empty lines")
            self.reader.go_to_line(0)
            return ScanResult(ok=True, has_valid_timestamps=False)

        if self.clock.is_csv:
            result = self._scan_csv(line)
        else:
            result = self._scan_sentences(line)

        self.reader.go_to_line(0)
        return result

    # --- CSV -------------------------------------------------------------

    def _scan_csv(self, line: str) -> ScanResult:
        clock = self.clock
        layout = clock.csv_layout
        assert layout is not None
        previous: Optional[datetime] = None

        while line:
            rec = parse_csv_line(line, layout)
            ts = rec.timestamp if rec is not None else None
            if ts is not None:
                if previous is not None and ts < previous:
                    logger.info(
                        "CSV file contains non-chronological timestamps. Previous: %s, Current: %s",
                        format_iso_datetime(previous),
                        format_iso_datetime(ts),
                    )
                    clock.reset_timestamps()
                    return ScanResult(ok=False, has_valid_timestamps=False, error=ERR_NOT_CHRONOLOGICAL)
                previous = ts
                clock.last_timestamp = ts
                if clock.first_timestamp is None:
                    clock.first_timestamp = ts
                    clock.current_timestamp = ts
                clock.has_timestamps = True
            line = self.reader.next_non_empty_line()

        if not clock.has_timestamps:
            logger.info("No timestamps found in CSV file %s", self.reader.path)
        return ScanResult(ok=True, has_valid_timestamps=clock.has_valid_timestamps)

    # --- raw sentences ---------------------------------------------------

    def _scan_sentences(self, line: str) -> ScanResult:
        clock = self.clock
        combined: Optional[TimeSourceDetails] = None

        while line:
            comps = parse_nmea_components(line)
            if comps is None:
                self.invalid_sentences += 1
                line = self.reader.next_non_empty_line()
                continue
            self.valid_sentences += 1

            if comps.has_timestamp:
                parsed = self.parser.parse_timestamp(line)
                if parsed is not None:
                    ts, precision = parsed
                    clock.inventory.observe(TimeSource(comps.talker_id, comps.sentence_id, precision), ts)
                    if combined is None:
                        combined = TimeSourceDetails(start_time=ts, current_time=ts, end_time=ts)
                    else:
                        if ts < combined.current_time:
                            combined.is_chronological = False
                        combined.current_time = ts
                        combined.end_time = ts
                    clock.has_timestamps = True
            line = self.reader.next_non_empty_line()

        logger.info(
            "Found %d valid and %d invalid sentences in %s",
            self.valid_sentences,
            self.invalid_sentences,
            self.reader.path,
        )
        if self.valid_sentences == 0:
            clock.reset_timestamps()
            return ScanResult(ok=False, has_valid_timestamps=False, error=ERR_INVALID_FILE)

        if not clock.has_timestamps:
            logger.info("No timestamps found in NMEA file %s", self.reader.path)
            return ScanResult(ok=True, has_valid_timestamps=False)

        clock.inventory.log_summary()

        if self.use_primary_source:
            clock.primary_source = select_primary_time_source(clock.inventory)
            details = clock.inventory.get(clock.primary_source) if clock.primary_source else None
            if details is None:
                logger.info("No chronological time source found in %s", self.reader.path)
                return ScanResult(ok=True, has_valid_timestamps=False)
            self.parser.set_primary_time_source(clock.primary_source)
            logger.info(
                "Using %s%s (precision=%d) as primary time source. Start=%s. End=%s",
                clock.primary_source.talker_id,
                clock.primary_source.sentence_id,
                clock.primary_source.precision,
                format_iso_datetime(details.start_time),
                format_iso_datetime(details.end_time),
            )
        else:
            # every time-bearing sentence drives the clock; the combined stream must be ordered
            details = combined
            if details is None or not details.is_chronological:
                logger.info("Timestamps in %s are not in chronological order", self.reader.path)
                return ScanResult(ok=True, has_valid_timestamps=False)

        clock.first_timestamp = details.start_time
        clock.current_timestamp = details.start_time
        clock.last_timestamp = details.end_time
        return ScanResult(ok=True, has_valid_timestamps=clock.has_valid_timestamps)
