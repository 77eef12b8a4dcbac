# playback/time_sources.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from schema.vdr_common import SentenceKind, TimeSource, TimeSourceDetails
from parsing.timestamp_parser import format_iso_datetime

logger = logging.getLogger(__name__)

# Score bonus for sentence kinds that carry their own date.
DATE_BEARING_BONUS = 10
PRECISION_WEIGHT = 2


class TimeSourceInventory:
    """Every clock identity seen during one scan, in first-seen order."""

    def __init__(self) -> None:
        self._sources: Dict[TimeSource, TimeSourceDetails] = {}

    def clear(self) -> None:
        self._sources.clear()

    def observe(self, source: TimeSource, timestamp: datetime) -> TimeSourceDetails:
        details = self._sources.get(source)
        if details is None:
            details = TimeSourceDetails(start_time=timestamp, current_time=timestamp, end_time=timestamp)
            self._sources[source] = details
            return details

        if timestamp < details.current_time:
            # sticky for the rest of the scan
            details.is_chronological = False
        details.current_time = timestamp
        details.end_time = timestamp
        return details

    def get(self, source: TimeSource) -> Optional[TimeSourceDetails]:
        return self._sources.get(source)

    def items(self) -> Iterator[Tuple[TimeSource, TimeSourceDetails]]:
        return iter(self._sources.items())

    def as_dict(self) -> Dict[TimeSource, TimeSourceDetails]:
        return dict(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source: object) -> bool:
        return source in self._sources

    def log_summary(self) -> None:
        for source, details in self._sources.items():
            logger.info(
                "  %s%s: precision=%d. is_chronological=%d. Start=%s. End=%s",
                source.talker_id,
                source.sentence_id,
                source.precision,
                details.is_chronological,
                format_iso_datetime(details.start_time),
                format_iso_datetime(details.end_time),
            )


def score_time_source(source: TimeSource) -> int:
    score = 0
    kind = SentenceKind.lookup(source.sentence_id)
    if kind is not None and kind.has_date:
        score += DATE_BEARING_BONUS
    score += PRECISION_WEIGHT * source.precision
    return score


def select_primary_time_source(inventory: TimeSourceInventory) -> Optional[TimeSource]:
    """Pick the highest scoring chronological source.

    Ties go to the source seen first in the file (sorted() is stable over the
    inventory's insertion order).
    """
    candidates: List[TimeSource] = [s for s, d in inventory.items() if d.is_chronological]
    if not candidates:
        return None
    ranked = sorted(candidates, key=score_time_source, reverse=True)
    return ranked[0]
