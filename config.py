"""
Global-ish config for VDR playback.

You can import this from anywhere:

    from config import DEFAULT_SPEED_MULTIPLIER, NMEA0183_PUB_ENDPOINT
"""

import os


def _env_bool(var: str, default: str = "0") -> bool:
    return os.environ.get(var, default).strip().lower() in ("1", "true", "yes")


def _env_float(var: str, default: float) -> float:
    s = os.environ.get(var, "").strip()
    if not s:
        return float(default)
    try:
        return float(s)
    except ValueError:
        return float(default)


def _env_int(var: str, default: int) -> int:
    s = os.environ.get(var, "").strip()
    if not s:
        return int(default)
    try:
        return int(s)
    except ValueError:
        return int(default)


# Speed slider range. 1.0 = real time.
SPEED_MIN = 1.0
SPEED_MAX = 1000.0
DEFAULT_SPEED_MULTIPLIER = min(max(_env_float("VDR_SPEED_MULTIPLIER", 1.0), SPEED_MIN), SPEED_MAX)

# Files without a usable clock are replayed in fixed batches:
# BATCH_SIZE records every BATCH_INTERVAL_MS (divided by the speed multiplier).
BATCH_SIZE = _env_int("VDR_BATCH_SIZE", 10)
BATCH_INTERVAL_MS = _env_int("VDR_BATCH_INTERVAL_MS", 1000)

# Hard cap for records waiting to be emitted. Oldest records are dropped first.
MAX_BUFFER_SIZE = _env_int("VDR_MAX_BUFFER", 1000)

# Lock playback onto the selected primary time source.
#
# Some recordings carry several clocks (e.g. GPRMC + IIRMC + AIRMC) that
# disagree with each other. With this enabled, only the best-scoring
# chronological source drives the playback clock.
#   VDR_USE_PRIMARY_SOURCE=0 python -m tools.replay_vdr track.txt
USE_PRIMARY_SOURCE = _env_bool("VDR_USE_PRIMARY_SOURCE", "1")

# ZMQ endpoints the CLI publishes replayed records on.
NMEA0183_PUB_ENDPOINT = os.environ.get("VDR_NMEA0183_PUB_EP", "tcp://*:10111")
N2K_PUB_ENDPOINT = os.environ.get("VDR_N2K_PUB_EP", "tcp://*:10112")

# Optional diagnostic logging.
VDR_DEBUG = _env_bool("VDR_DEBUG")
