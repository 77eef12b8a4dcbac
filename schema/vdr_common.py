# schema/vdr_common.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class SentenceKind(str, Enum):
    """Sentence kinds that carry a UTC time field."""

    RMC = "RMC"
    ZDA = "ZDA"
    GLL = "GLL"
    GGA = "GGA"
    GBS = "GBS"

    @property
    def has_date(self) -> bool:
        # RMC and ZDA carry their own date; the rest borrow the cached one.
        return self in (SentenceKind.RMC, SentenceKind.ZDA)

    @classmethod
    def lookup(cls, sentence_id: str) -> Optional["SentenceKind"]:
        try:
            return cls(sentence_id)
        except ValueError:
            return None


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    AT_END = "at_end"
    ERROR = "error"


@dataclass(frozen=True)
class TimeSource:
    """One clock identity in a recording: talker + sentence kind + precision.

    precision is the number of digits after the decimal point of the time
    field (0 when the field has no fractional part).
    """

    talker_id: str
    sentence_id: str
    precision: int = 0

    def __str__(self) -> str:
        return f"{self.talker_id}{self.sentence_id}(precision={self.precision})"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TimeSourceDetails:
    start_time: datetime
    current_time: datetime
    end_time: datetime
    is_chronological: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "current_time": self.current_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "is_chronological": self.is_chronological,
        }


@dataclass(frozen=True)
class DateCache:
    """Last date seen in an RMC/ZDA sentence."""

    year: int = 0
    month: int = 0
    day: int = 0

    @property
    def is_set(self) -> bool:
        return self.year > 0


@dataclass
class NmeaTimeInfo:
    has_date: bool = False
    has_time: bool = False
    year: int = 0
    month: int = 0
    day: int = 0
    hour: int = 0
    minute: int = 0
    second: int = 0
    millisecond: int = 0

    @property
    def is_complete(self) -> bool:
        return self.has_date and self.has_time

    def apply_date(self, date: DateCache) -> None:
        self.year = date.year
        self.month = date.month
        self.day = date.day
        self.has_date = True


@dataclass(frozen=True)
class ReplayRecord:
    """One replayed record as handed to the sink.

    text is the raw sentence (or the CSV message column). record_type is
    the CSV type column ("NMEA0183", "AIS", "NMEA2000", ...) when known.
    """

    text: str
    record_type: str = ""


@dataclass(frozen=True)
class ScanResult:
    ok: bool
    has_valid_timestamps: bool
    error: str = ""
