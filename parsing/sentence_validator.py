# parsing/sentence_validator.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from schema.vdr_common import SentenceKind

# Talkers allowed on encapsulated ("!") sentences: AIS mobile, AIS base, base station.
AIS_TALKERS = ("AI", "AB", "BS")

_FIELD_SPLIT = re.compile(r"[,*]")


@dataclass(frozen=True)
class NmeaComponents:
    talker_id: str
    sentence_id: str
    has_timestamp: bool


def is_nmea0183_or_ais(line: str) -> bool:
    return line.startswith("$") or line.startswith("!")


def _is_upper_alpha(s: str) -> bool:
    return s.isascii() and s.isalpha() and s.isupper()


def parse_nmea_components(line: str) -> Optional[NmeaComponents]:
    """Structurally validate one line and split out its header.

    Returns None when the line is not a plausible NMEA 0183 / AIS sentence:
    wrong start marker, header token not 6 characters, talker or sentence id
    not upper-case ASCII letters, unknown AIS talker, or no comma before the
    checksum marker.
    """
    if not line or not is_nmea0183_or_ais(line):
        return None

    header = _FIELD_SPLIT.split(line, maxsplit=1)[0]
    if len(header) != 6:
        return None

    talker_id = header[1:3]
    sentence_id = header[3:6]

    if line[0] == "!":
        if talker_id not in AIS_TALKERS:
            return None
    elif not _is_upper_alpha(talker_id):
        return None

    if not _is_upper_alpha(sentence_id):
        return None

    comma = line.find(",")
    checksum = line.find("*")
    if comma < 0 or checksum < 0 or checksum < comma:
        return None

    return NmeaComponents(
        talker_id=talker_id,
        sentence_id=sentence_id,
        has_timestamp=SentenceKind.lookup(sentence_id) is not None,
    )
