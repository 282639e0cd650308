# Author: evm-deployer developers

"""Maps byte offsets from the compiler's src fields to line and column."""

from pathlib import Path
from typing import NamedTuple


class LineBoundary(NamedTuple):
    start: int
    """Offset of the first byte of the line."""
    end: int
    """Offset one past the line terminator."""


class SourceMap:
    """Line index of one source file. Offsets are byte offsets, the same unit
    solc uses in the AST."""

    def __init__(self, data: bytes) -> None:
        self.boundaries: list[LineBoundary] = []

        lines: list[bytes] = data.split(b"\n")
        # A trailing terminator does not start another line.
        if lines and lines[-1] == b"":
            lines.pop()

        pos: int = 0
        for line in lines:
            end: int = pos + len(line) + 1
            self.boundaries.append(LineBoundary(pos, end))
            pos = end

    @classmethod
    def from_file(cls, path: Path) -> "SourceMap":
        return cls(Path(path).read_bytes())

    def __len__(self) -> int:
        return len(self.boundaries)

    def pos_to_line(self, pos: int) -> tuple[int, int]:
        """Returns the 1-based (line, column) of an offset, or (-1, -1) when the
        offset lies outside the file."""
        for idx, boundary in enumerate(self.boundaries):
            if boundary.start <= pos < boundary.end:
                return idx + 1, pos - boundary.start + 1
        return -1, -1
