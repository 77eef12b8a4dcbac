from pathlib import Path

import pytest

from playback.line_reader import LineReader


def _reader(tmp_path: Path, content: bytes) -> LineReader:
    p = tmp_path / "lines.txt"
    p.write_bytes(content)
    r = LineReader()
    r.open(p)
    return r


def test_reads_lines_without_terminators(tmp_path: Path):
    r = _reader(tmp_path, b"one\r\ntwo\nthree")
    assert r.line_count == 3
    assert r.read_line() == "one"
    assert r.read_line() == "two"
    assert r.current_line == 2
    assert r.read_line() == "three"
    assert r.eof
    assert r.read_line() is None


def test_go_to_line_is_clamped(tmp_path: Path):
    r = _reader(tmp_path, b"a\nb\nc\n")
    r.go_to_line(2)
    assert r.read_line() == "c"
    r.go_to_line(99)
    assert r.current_line == 3 and r.eof
    r.go_to_line(-5)
    assert r.read_line() == "a"


def test_next_non_empty_line_skips_blank_and_comment_lines(tmp_path: Path):
    r = _reader(tmp_path, b"# header\n\n   \n$IIMWV,1*00\n#x\n  $IIMWV,2*00  \n")
    assert r.next_non_empty_line() == "$IIMWV,1*00"
    assert r.next_non_empty_line() == "$IIMWV,2*00"
    assert r.next_non_empty_line() == ""
    assert r.next_non_empty_line(from_start=True) == "$IIMWV,1*00"


def test_close_and_missing_file(tmp_path: Path):
    r = _reader(tmp_path, b"a\n")
    r.close()
    assert not r.is_open
    assert r.read_line() is None
    assert r.line_count == 0

    with pytest.raises(OSError):
        r.open(tmp_path / "missing.txt")
    assert not r.is_open
