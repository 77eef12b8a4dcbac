# parsing/timestamp_parser.py
"""Timestamp extraction for recorded NMEA 0183 sentences and CSV rows.

Sentence layouts handled (field 0 is the $ttKKK header):

    RMC  time in field 1, date (DDMMYY) in field 9
    ZDA  time in field 1, day/month/year in fields 2-4
    GLL  time in field 5, date borrowed from the last RMC/ZDA
    GGA  time in field 1, date borrowed from the last RMC/ZDA
    GBS  time in field 1, date borrowed from the last RMC/ZDA

The borrowed date lives in a DateCache owned by the parser instance. Call
reset() before scanning a new file so dates never leak between recordings.
"""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from schema.vdr_common import DateCache, NmeaTimeInfo, SentenceKind, TimeSource
from parsing.sentence_validator import is_nmea0183_or_ais

# Two-digit RMC years below this are 20xx, the rest 19xx.
CENTURY_PIVOT_YEAR = 70

_FIELD_SPLIT = re.compile(r"[,*]")

_ISO_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"(Z|[+-]\d{2}:?\d{2})?$"
)


def _to_int(s: str) -> Optional[int]:
    s = s.strip()
    if not s or not s.isdigit():
        return None
    return int(s)


def parse_time_field(time_str: str, info: NmeaTimeInfo) -> Optional[int]:
    """Parse HHMMSS[.s+] into info. Returns the precision, or None if invalid."""
    if len(time_str) < 6:
        return None

    hour = _to_int(time_str[0:2])
    minute = _to_int(time_str[2:4])
    second = _to_int(time_str[4:6])
    if hour is None or minute is None or second is None:
        return None

    millisecond = 0
    precision = 0
    if len(time_str) > 7:
        if time_str[6] != ".":
            return None
        subsec = time_str[7:]
        if not subsec.isdigit():
            return None
        precision = len(subsec)
        # truncate to milliseconds
        millisecond = int(subsec[:3].ljust(3, "0"))

    if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59 and 0 <= millisecond < 1000):
        return None

    info.hour = hour
    info.minute = minute
    info.second = second
    info.millisecond = millisecond
    info.has_time = True
    return precision


def parse_iso8601_timestamp(time_str: str) -> Optional[datetime]:
    """Parse YYYY-MM-DDThh:mm:ss[.sss][Z|+hh:mm] into an aware UTC datetime.

    The fractional part is optional. A missing zone designator means UTC.
    """
    m = _ISO_RE.match(time_str.strip())
    if not m:
        return None
    year, month, day, hour, minute, second = (int(g) for g in m.groups()[:6])
    frac, zone = m.group(7), m.group(8)
    microsecond = int(frac[:6].ljust(6, "0")) if frac else 0

    tz = timezone.utc
    if zone and zone != "Z":
        sign = -1 if zone[0] == "-" else 1
        digits = zone[1:].replace(":", "")
        offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
        tz = timezone(sign * offset)

    try:
        ts = datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)
    except ValueError:
        return None
    return ts.astimezone(timezone.utc)


def format_iso_datetime(ts: Optional[datetime]) -> str:
    """YYYY-MM-DDTHH:MM:SS.mmmZ, or '-' for a missing timestamp."""
    if ts is None:
        return "-"
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


# ---------------------------------------------------------------------------
# CSV recordings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CsvLayout:
    timestamp_idx: int
    message_idx: int
    type_idx: Optional[int] = None


@dataclass(frozen=True)
class CsvRecord:
    message: str
    timestamp: Optional[datetime]
    record_type: str = ""


def split_csv_line(line: str) -> List[str]:
    """Split on commas, honouring double quotes and "" escapes."""
    return next(csv.reader([line]), None) or [""]


def parse_csv_header(header: str) -> Optional[CsvLayout]:
    """Locate the timestamp/message columns of a CSV header line.

    Column names are matched case-insensitively by substring. A line that
    starts like a sentence is never a header.
    """
    if is_nmea0183_or_ais(header):
        return None

    timestamp_idx: Optional[int] = None
    message_idx: Optional[int] = None
    type_idx: Optional[int] = None
    for idx, name in enumerate(header.split(",")):
        field = name.strip().lower()
        if "timestamp" in field:
            timestamp_idx = idx
        elif "message" in field:
            message_idx = idx
        elif field == "type":
            type_idx = idx

    if timestamp_idx is None or message_idx is None:
        return None
    return CsvLayout(timestamp_idx=timestamp_idx, message_idx=message_idx, type_idx=type_idx)


def parse_csv_line(line: str, layout: CsvLayout) -> Optional[CsvRecord]:
    """Split one data row. None when the row has no message column.

    A row whose timestamp column is missing or malformed still yields its
    message, with timestamp None.
    """
    fields = split_csv_line(line)
    if layout.message_idx >= len(fields):
        return None

    timestamp = None
    if layout.timestamp_idx < len(fields):
        timestamp = parse_iso8601_timestamp(fields[layout.timestamp_idx])

    record_type = ""
    if layout.type_idx is not None and layout.type_idx < len(fields):
        record_type = fields[layout.type_idx].strip()

    return CsvRecord(message=fields[layout.message_idx], timestamp=timestamp, record_type=record_type)


# ---------------------------------------------------------------------------
# NMEA 0183 sentences
# ---------------------------------------------------------------------------


class TimestampParser:
    """Extracts UTC timestamps from time-bearing NMEA 0183 sentences.

    Holds two pieces of per-file session state:
      - the date cache, fed by RMC/ZDA and consumed by GLL/GGA/GBS
      - an optional primary time source; when set, sentences from any other
        (talker, kind, precision) identity are rejected
    """

    def __init__(self) -> None:
        self._date = DateCache()
        self._primary_source: Optional[TimeSource] = None
        self._use_only_primary_source = False

        self._strategies: Dict[SentenceKind, Callable[[List[str], NmeaTimeInfo], Optional[int]]] = {
            SentenceKind.RMC: self._parse_rmc,
            SentenceKind.ZDA: self._parse_zda,
            SentenceKind.GLL: self._parse_gll,
            SentenceKind.GGA: self._parse_time_first,
            SentenceKind.GBS: self._parse_time_first,
        }

    @property
    def date_cache(self) -> DateCache:
        return self._date

    @date_cache.setter
    def date_cache(self, value: DateCache) -> None:
        self._date = value

    @property
    def primary_source(self) -> Optional[TimeSource]:
        return self._primary_source if self._use_only_primary_source else None

    def reset(self) -> None:
        self._date = DateCache()
        self._use_only_primary_source = False

    def set_primary_time_source(self, source: TimeSource) -> None:
        self._primary_source = source
        self._use_only_primary_source = True

    def disable_primary_time_source(self) -> None:
        self._use_only_primary_source = False

    def parse_timestamp(self, sentence: str) -> Optional[Tuple[datetime, int]]:
        """Return (UTC timestamp, precision) or None.

        None covers: not a sentence, not a time-bearing kind, malformed
        time/date, no date known yet, or a sentence from a different
        identity than the locked primary source.
        """
        if not sentence or not is_nmea0183_or_ais(sentence):
            return None

        fields = _FIELD_SPLIT.split(sentence)
        header = fields[0]
        if len(header) != 6:
            return None
        talker_id = header[1:3]
        kind = SentenceKind.lookup(header[3:6])
        if kind is None:
            return None

        info = NmeaTimeInfo()
        precision = self._strategies[kind](fields, info)
        if precision is None or not info.is_complete:
            return None

        if self._use_only_primary_source and self._primary_source != TimeSource(talker_id, kind.value, precision):
            return None

        try:
            ts = datetime(
                info.year, info.month, info.day,
                info.hour, info.minute, info.second,
                info.millisecond * 1000,
                tzinfo=timezone.utc,
            )
        except ValueError:
            # e.g. 31st of a 30-day month
            return None
        return ts, precision

    # --- per-kind strategies -------------------------------------------

    def _parse_rmc(self, fields: List[str], info: NmeaTimeInfo) -> Optional[int]:
        # $GPRMC,092211.00,A,5759.09700,N,01144.34344,E,5.257,28.27,200715,,,A*58
        if len(fields) < 10:
            return None
        precision = parse_time_field(fields[1], info)
        if precision is None:
            return None

        date_str = fields[9]
        if len(date_str) < 6:
            return None
        day = _to_int(date_str[0:2])
        month = _to_int(date_str[2:4])
        yy = _to_int(date_str[4:6])
        if day is None or month is None or yy is None:
            return None
        year = 1900 + yy if yy >= CENTURY_PIVOT_YEAR else 2000 + yy
        if not self._validate_and_set_date(info, year, month, day):
            return None
        return precision

    def _parse_zda(self, fields: List[str], info: NmeaTimeInfo) -> Optional[int]:
        # $GPZDA,201530.00,04,07,2002,00,00*60
        if len(fields) < 5:
            return None
        precision = parse_time_field(fields[1], info)
        if precision is None:
            return None

        day, month, year = _to_int(fields[2]), _to_int(fields[3]), _to_int(fields[4])
        if day is None or month is None or year is None:
            return None
        if not self._validate_and_set_date(info, year, month, day):
            return None
        return precision

    def _parse_gll(self, fields: List[str], info: NmeaTimeInfo) -> Optional[int]:
        # $GPGLL,4916.45,N,12311.12,W,225444,A*31
        if len(fields) < 6:
            return None
        precision = parse_time_field(fields[5], info)
        if precision is None:
            return None
        self._apply_cached_date(info)
        return precision

    def _parse_time_first(self, fields: List[str], info: NmeaTimeInfo) -> Optional[int]:
        if len(fields) < 2:
            return None
        precision = parse_time_field(fields[1], info)
        if precision is None:
            return None
        self._apply_cached_date(info)
        return precision

    # --- date cache ------------------------------------------------------

    def _validate_and_set_date(self, info: NmeaTimeInfo, year: int, month: int, day: int) -> bool:
        if not (1 <= month <= 12) or not (1 <= day <= 31) or year < 1900:
            return False
        self._date = DateCache(year=year, month=month, day=day)
        info.apply_date(self._date)
        return True

    def _apply_cached_date(self, info: NmeaTimeInfo) -> None:
        if self._date.is_set:
            info.apply_date(self._date)
