"""network/sentence_publisher.py

ZMQ PUB fan-out for replayed records.

Two optional PUB sockets, one per protocol family:
  - nmea0183: any "$" / "!" sentence (NMEA 0183 and AIS)
  - n2k:      NMEA 2000 text encapsulations ($PCDIN, $MXPGN, $YDRAW) and
              CSV rows recorded with type NMEA2000

When both are enabled, sentences go to nmea0183 first (an encapsulated
$PCDIN is still a valid 0183 sentence).

Sockets are created in start() and must be used from that thread only.
"""
from __future__ import annotations

import logging
from typing import Optional

import zmq

from schema.vdr_common import ReplayRecord

logger = logging.getLogger(__name__)

N2K_PREFIXES = ("$PCDIN", "$MXPGN", "$YDRAW", "!AIVDM")
N2K_RECORD_TYPE = "NMEA2000"

STREAM_NMEA0183 = "nmea0183"
STREAM_N2K = "n2k"


def _set(sock: zmq.Socket, opt_name: str, val) -> None:
    opt = getattr(zmq, opt_name, None)
    if opt is None:
        return
    try:
        sock.setsockopt(opt, val)
    except zmq.ZMQError:
        pass


def classify_stream(record: ReplayRecord, *, nmea0183_enabled: bool = True, n2k_enabled: bool = True) -> Optional[str]:
    text = record.text
    if nmea0183_enabled and (text.startswith("$") or text.startswith("!")):
        return STREAM_NMEA0183
    if n2k_enabled and (text.startswith(N2K_PREFIXES) or record.record_type.upper() == N2K_RECORD_TYPE):
        return STREAM_N2K
    return None


class SentencePublisher:
    """Sink that publishes every replayed record on a ZMQ PUB socket."""

    def __init__(
        self,
        nmea0183_endpoint: Optional[str] = None,
        n2k_endpoint: Optional[str] = None,
        *,
        bind: bool = True,
        snd_hwm: int = 10_000,
        debug: bool = False,
    ):
        self.nmea0183_endpoint = nmea0183_endpoint
        self.n2k_endpoint = n2k_endpoint
        self.bind = bool(bind)
        self.snd_hwm = int(snd_hwm)
        self.debug = bool(debug)

        self._socks: dict[str, zmq.Socket] = {}
        self.sent = 0
        self.unrouted = 0

    @property
    def is_running(self) -> bool:
        return bool(self._socks)

    def start(self) -> None:
        if self._socks:
            return
        ctx = zmq.Context.instance()
        for stream, ep in ((STREAM_NMEA0183, self.nmea0183_endpoint), (STREAM_N2K, self.n2k_endpoint)):
            if not ep:
                continue
            sock = ctx.socket(zmq.PUB)
            _set(sock, "LINGER", 0)
            _set(sock, "SNDHWM", self.snd_hwm)
            # Reduce latency for small sentence frames (best-effort)
            _set(sock, "TCP_NODELAY", 1)
            if self.bind:
                sock.bind(ep)
            else:
                sock.connect(ep)
            self._socks[stream] = sock
            logger.info("Started %s publisher on %s", stream, ep)

    def stop(self) -> None:
        socks = self._socks
        self._socks = {}
        for stream, sock in socks.items():
            try:
                sock.close(0)
            except zmq.ZMQError as e:
                logger.warning("Failed to close %s publisher: %s", stream, e)
            else:
                logger.info("Stopped %s publisher", stream)

    def __call__(self, record: ReplayRecord) -> None:
        self.publish(record)

    def publish(self, record: ReplayRecord) -> bool:
        stream = classify_stream(
            record,
            nmea0183_enabled=STREAM_NMEA0183 in self._socks,
            n2k_enabled=STREAM_N2K in self._socks,
        )
        if stream is None:
            self.unrouted += 1
            return False

        text = record.text if record.text.endswith("\r\n") else record.text + "\r\n"
        try:
            self._socks[stream].send_string(text, flags=zmq.NOBLOCK)
        except zmq.Again:
            # HWM reached: drop rather than stall the replay timer
            if self.debug:
                logger.debug("[%s] dropped: %s", stream, record.text)
            return False

        self.sent += 1
        if self.debug:
            logger.debug("[%s] %s", stream, record.text)
        return True
