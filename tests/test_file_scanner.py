from datetime import datetime, timezone
from pathlib import Path

from parsing.timestamp_parser import TimestampParser
from playback.file_scanner import FileClock, FileScanner
from playback.line_reader import LineReader
from schema.vdr_common import ScanResult, TimeSource


def rmc(talker: str, hhmmss: str, ddmmyy: str = "150325") -> str:
    return f"${talker}RMC,{hhmmss},A,5759.097,N,01144.343,E,5.2,28.2,{ddmmyy},,,A*00"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _scanner(path: Path, use_primary_source: bool = True) -> FileScanner:
    reader = LineReader()
    reader.open(path)
    return FileScanner(reader, TimestampParser(), FileClock(), use_primary_source=use_primary_source)


def _write(tmp_path: Path, name: str, lines: list[str]) -> Path:
    p = tmp_path / name
    p.write_text("\r\n".join(lines) + "\r\n")
    return p


def test_no_timestamps(tmp_path: Path):
    p = _write(tmp_path, "no_timestamps.txt", ["$IIMWV,120.0,R,10.5,N,A*00", "$SDDBT,10.0,f,3.0,M,1.6,F*00"] * 5)
    sc = _scanner(p)
    assert sc.scan() == ScanResult(True, False, "")
    assert sc.clock.has_valid_timestamps is False
    assert sc.clock.first_timestamp is None
    assert sc.valid_sentences == 10
    assert sc.reader.current_line == 0


def test_invalid_file(tmp_path: Path):
    p = _write(tmp_path, "junk.txt", ["hello", "world", "$gprmc,not,valid*00"])
    sc = _scanner(p)
    result = sc.scan()
    assert result == ScanResult(False, False, "Invalid file")
    assert sc.invalid_sentences == 3
    assert sc.clock.has_valid_timestamps is False


def test_empty_file(tmp_path: Path):
    p = _write(tmp_path, "empty.txt", ["", "# nothing here", ""])
    assert _scanner(p).scan() == ScanResult(True, False, "")


def test_scan_without_open_file():
    sc = FileScanner(LineReader(), TimestampParser(), FileClock())
    assert sc.scan() == ScanResult(False, False, "File not open")


def test_primary_source_picks_chronological_rmc(tmp_path: Path):
    lines = [
        rmc("GP", "120000"),
        rmc("AI", "120005.00"),
        "$IIMWV,120.0,R,10.5,N,A*00",
        rmc("GP", "120001"),
        rmc("AI", "120001.00"),  # goes backwards
        rmc("GP", "120002"),
        rmc("AI", "120006.00"),
        "garbage line",
    ]
    sc = _scanner(_write(tmp_path, "mixed.txt", lines))
    assert sc.scan() == ScanResult(True, True, "")

    clock = sc.clock
    assert clock.primary_source == TimeSource("GP", "RMC", 0)
    assert clock.inventory.get(TimeSource("AI", "RMC", 2)).is_chronological is False
    assert clock.inventory.get(TimeSource("GP", "RMC", 0)).is_chronological is True
    assert clock.first_timestamp == clock.current_timestamp == utc(2025, 3, 15, 12, 0, 0)
    assert clock.last_timestamp == utc(2025, 3, 15, 12, 0, 2)
    assert sc.parser.primary_source == TimeSource("GP", "RMC", 0)
    assert sc.invalid_sentences == 1


def test_all_sources_out_of_order(tmp_path: Path):
    lines = [
        rmc("II", "120005"),
        rmc("II", "120001"),
        "$IIGLL,5759.097,N,01144.343,E,120003,A*00",
        "$IIGLL,5759.097,N,01144.343,E,120002,A*00",
    ]
    sc = _scanner(_write(tmp_path, "not_chronological.txt", lines))
    assert sc.scan() == ScanResult(True, False, "")
    assert sc.clock.has_timestamps is True
    assert sc.clock.primary_source is None
    assert sc.clock.has_valid_timestamps is False
    assert sc.parser.primary_source is None


def test_time_only_sentences_use_cached_date(tmp_path: Path):
    lines = [
        "$GPGGA,115959,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47",  # no date yet
        rmc("GP", "120000", "311224"),
        "$GPGGA,120001,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47",
        "$GPGLL,5759.097,N,01144.343,E,120002,A*00",
    ]
    sc = _scanner(_write(tmp_path, "cached.txt", lines))
    sc.scan()
    gga = sc.clock.inventory.get(TimeSource("GP", "GGA", 0))
    assert gga.start_time == utc(2024, 12, 31, 12, 0, 1)
    assert sc.clock.inventory.get(TimeSource("GP", "GLL", 0)).end_time == utc(2024, 12, 31, 12, 0, 2)


def test_scan_is_repeatable(tmp_path: Path):
    lines = [rmc("GP", "120000"), "$GPZDA,120000.5,15,03,2025,00,00*00", rmc("GP", "120001"), "$GPZDA,120001.5,15,03,2025,00,00*00"]
    sc = _scanner(_write(tmp_path, "twice.txt", lines))
    first = sc.scan()
    sources_a = sc.clock.inventory.as_dict()
    primary_a = sc.clock.primary_source

    second = sc.scan()
    assert first == second
    assert sc.clock.inventory.as_dict() == sources_a
    assert sc.clock.primary_source == primary_a == TimeSource("GP", "ZDA", 1)


def test_primary_source_disabled_uses_combined_stream(tmp_path: Path):
    lines = [rmc("GP", "120000"), rmc("II", "120001"), rmc("GP", "120002")]
    sc = _scanner(_write(tmp_path, "combined.txt", lines), use_primary_source=False)
    assert sc.scan() == ScanResult(True, True, "")
    assert sc.clock.primary_source is None
    assert sc.clock.last_timestamp == utc(2025, 3, 15, 12, 0, 2)

    lines = [rmc("GP", "120002"), rmc("II", "120001")]
    sc = _scanner(_write(tmp_path, "combined_bad.txt", lines), use_primary_source=False)
    assert sc.scan() == ScanResult(True, False, "")


def test_comment_lines_are_skipped(tmp_path: Path):
    lines = ["# recorded by vdr", "", rmc("GP", "120000"), "# mid-file note", rmc("II", "120001")]
    sc = _scanner(_write(tmp_path, "data_with_comments.txt", lines))
    assert sc.detect_format().startswith("$GPRMC")
    assert sc.reader.next_non_empty_line().startswith("$IIRMC")
    assert sc.reader.next_non_empty_line() == ""
    assert sc.scan().ok
    assert sc.invalid_sentences == 0


def test_csv_in_order(tmp_path: Path):
    lines = [
        "timestamp,type,id,message",
        '2025-03-15T12:00:00.000Z,NMEA0183,,"' + rmc("GP", "120000") + '"',
        '2025-03-15T12:00:01.000Z,NMEA2000,129026,0A0B0C',
        'bad-time,NMEA0183,,"$IIMWV,1*00"',
        '2025-03-15T12:00:03.500Z,AIS,,"!AIVDM,1,1,,A,13aEOK,0*26"',
    ]
    sc = _scanner(_write(tmp_path, "test_recording.csv", lines))
    assert sc.scan() == ScanResult(True, True, "")
    assert sc.clock.is_csv
    assert sc.clock.header_line == 0
    assert sc.clock.first_timestamp == sc.clock.current_timestamp == utc(2025, 3, 15, 12, 0, 0)
    assert sc.clock.last_timestamp == utc(2025, 3, 15, 12, 0, 3, 500_000)
    assert len(sc.clock.inventory) == 0


def test_csv_out_of_order_aborts(tmp_path: Path):
    lines = [
        "Timestamp,Type,ID,Message",
        '2025-03-15T12:00:02.000Z,NMEA0183,,"$IIMWV,1*00"',
        '2025-03-15T12:00:01.000Z,NMEA0183,,"$IIMWV,2*00"',
        '2025-03-15T12:00:03.000Z,NMEA0183,,"$IIMWV,3*00"',
    ]
    sc = _scanner(_write(tmp_path, "backwards.csv", lines))
    assert sc.scan() == ScanResult(False, False, "Timestamps not in chronological order")
    assert sc.clock.first_timestamp is None
    assert sc.clock.has_valid_timestamps is False
    assert sc.reader.current_line == 0
