# Author: evm-deployer developers

from pathlib import Path

from evm_deployer.coverage.source_map import LineBoundary, SourceMap


def test_boundaries() -> None:
    source_map = SourceMap(b"ab\ncd\n")
    assert source_map.boundaries == [LineBoundary(0, 3), LineBoundary(3, 6)]
    assert len(source_map) == 2


def test_pos_to_line() -> None:
    source_map = SourceMap(b"ab\ncd\n")
    assert source_map.pos_to_line(0) == (1, 1)
    # The terminator belongs to the line it ends.
    assert source_map.pos_to_line(2) == (1, 3)
    assert source_map.pos_to_line(3) == (2, 1)
    assert source_map.pos_to_line(5) == (2, 3)


def test_out_of_range() -> None:
    source_map = SourceMap(b"ab\ncd\n")
    assert source_map.pos_to_line(6) == (-1, -1)
    assert source_map.pos_to_line(-1) == (-1, -1)
    assert SourceMap(b"").pos_to_line(0) == (-1, -1)


def test_no_trailing_newline() -> None:
    source_map = SourceMap(b"ab\ncd")
    assert len(source_map) == 2
    assert source_map.pos_to_line(4) == (2, 2)


def test_columns_are_bytes() -> None:
    source_map = SourceMap("éx\ny\n".encode("utf-8"))
    assert source_map.pos_to_line(2) == (1, 3)
    assert source_map.pos_to_line(4) == (2, 1)


def test_line_count_matches_newlines() -> None:
    data: bytes = b"a\n\n\nbb\nccc\n"
    source_map = SourceMap(data)
    assert len(source_map) == data.count(b"\n")
    for pos in range(len(data)):
        line, _ = source_map.pos_to_line(pos)
        assert line == data[:pos].count(b"\n") + 1


def test_from_file(counter_source: Path) -> None:
    source_map = SourceMap.from_file(counter_source)
    assert len(source_map) == 5
    assert source_map.pos_to_line(34) == (3, 5)
