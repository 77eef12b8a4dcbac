#!/usr/bin/env python3
"""Replay a VDR recording (raw NMEA 0183 or timestamped CSV) at its original pace.

Example:
  python -m tools.replay_vdr recordings/vdr_20250101T101010Z.txt \
      --nmea0183-endpoint tcp://*:10111 --n2k-endpoint tcp://*:10112

By default replays with original timing. Use --speed 10 for 10x faster.
Use --scan-only to print the time sources found in the file and exit.
"""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from config import (
    DEFAULT_SPEED_MULTIPLIER,
    N2K_PUB_ENDPOINT,
    NMEA0183_PUB_ENDPOINT,
    USE_PRIMARY_SOURCE,
    VDR_DEBUG,
)
from network.sentence_publisher import SentencePublisher
from parsing.timestamp_parser import format_iso_datetime
from playback.replay_manager import ReplayManager
from schema.vdr_common import ReplayRecord, ScanResult

logger = logging.getLogger("replay_vdr")


def _print_time_sources(mgr: ReplayManager) -> None:
    sources = mgr.time_sources
    if not sources:
        print("No time sources found.")
        return
    primary = mgr.primary_time_source
    print("Time sources:")
    for src, d in sources.items():
        mark = "*" if src == primary else " "
        print(
            f" {mark} {src.talker_id}{src.sentence_id} precision={src.precision} "
            f"chronological={d.is_chronological} start={format_iso_datetime(d.start_time)} "
            f"end={format_iso_datetime(d.end_time)}"
        )


def _scan_report(mgr: ReplayManager, result: ScanResult) -> dict:
    primary = mgr.primary_time_source
    return {
        "file": str(mgr.input_file),
        "ok": result.ok,
        "has_valid_timestamps": result.has_valid_timestamps,
        "error": result.error,
        "is_csv": mgr.is_csv_file(),
        "first_timestamp": format_iso_datetime(mgr.get_first_timestamp()),
        "last_timestamp": format_iso_datetime(mgr.get_last_timestamp()),
        "primary_time_source": primary.to_dict() if primary else None,
        "time_sources": [{**src.to_dict(), **d.to_dict()} for src, d in mgr.time_sources.items()],
    }


def main() -> int:
    ap = argparse.ArgumentParser(description="Replay a recorded NMEA/CSV VDR file")
    ap.add_argument("file", help="Path to the recording (.txt raw sentences or .csv)")
    ap.add_argument("--speed", type=float, default=DEFAULT_SPEED_MULTIPLIER, help="Playback speed (1.0 = real time)")
    ap.add_argument("--seek", type=float, default=None, help="Start at this fraction of the recording (0..1)")
    ap.add_argument("--nmea0183-endpoint", default=NMEA0183_PUB_ENDPOINT, help="PUB endpoint for NMEA 0183/AIS ('' = off)")
    ap.add_argument("--n2k-endpoint", default=N2K_PUB_ENDPOINT, help="PUB endpoint for NMEA 2000 text formats ('' = off)")
    ap.add_argument("--stdout", action="store_true", help="Also print each replayed record")
    ap.add_argument("--no-primary-source", action="store_true", help="Use every time-bearing sentence as clock")
    ap.add_argument("--scan-only", action="store_true", help="Scan the file, print its time sources and exit")
    ap.add_argument("--json", action="store_true", help="With --scan-only, print the scan result as JSON")
    ap.add_argument("--debug", action="store_true", default=VDR_DEBUG, help="Enable debug logs")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    app = QCoreApplication(sys.argv[:1])
    # let Ctrl-C terminate the Qt loop
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    publisher = None
    if args.nmea0183_endpoint or args.n2k_endpoint:
        publisher = SentencePublisher(args.nmea0183_endpoint or None, args.n2k_endpoint or None, debug=args.debug)

    def sink(record: ReplayRecord) -> None:
        if publisher is not None:
            publisher(record)
        if args.stdout:
            print(record.text, flush=True)

    mgr: ReplayManager

    def on_update() -> None:
        if mgr.is_at_file_end() or mgr.is_error():
            QTimer.singleShot(0, app.quit)

    mgr = ReplayManager(
        sink=sink,
        update_ui=on_update,
        speed_multiplier=args.speed,
        use_primary_source=USE_PRIMARY_SOURCE and not args.no_primary_source,
    )

    ok, err = mgr.load_file(args.file)
    if not ok:
        print(err, file=sys.stderr)
        return 1

    result = mgr.scan_file_timestamps()
    if args.scan_only and args.json:
        print(json.dumps(_scan_report(mgr, result), indent=2))
        return 0 if result.ok else 1
    if args.scan_only:
        print(f"ok={result.ok} has_valid_timestamps={result.has_valid_timestamps} error={result.error!r}")
        _print_time_sources(mgr)
        return 0 if result.ok else 1

    if not result.ok:
        if not mgr.is_csv_file():
            print(result.error, file=sys.stderr)
            return 1
        logger.warning("%s; replaying at a fixed rate", result.error)
    elif not result.has_valid_timestamps:
        logger.info("No usable clock in %s; replaying at a fixed rate", args.file)

    if args.seek is not None and not mgr.seek_to_fraction(args.seek):
        logger.warning("Seek to %.3f failed; starting from the beginning", args.seek)

    if publisher is not None:
        publisher.start()

    status = mgr.start()
    if status:
        print(status, file=sys.stderr)
        if publisher is not None:
            publisher.stop()
        return 1

    rc = app.exec()
    mgr.stop()
    if publisher is not None:
        publisher.stop()
    print("Replay finished.")
    return 0 if rc == 0 and not mgr.is_error() else 1


if __name__ == "__main__":
    sys.exit(main())
