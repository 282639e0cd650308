# Author: evm-deployer developers

"""Aggregates statement hit counts from coverage events and tagged reverts."""

from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from threading import Condition, Lock
from typing import Any, Iterator, Mapping, NamedTuple, TextIO

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from pydantic import BaseModel, Field
import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.compiler.instrumenter import COVERAGE_TAG
from evm_deployer.contract import Contract
from evm_deployer.coverage.source_map import SourceMap
from evm_deployer.errors import (
    ContractSourcesNotFoundError,
    CoverageParseError,
    EventParseError,
    NoCoverageError,
)
from evm_deployer.log_categories import LogCategories


class CoverageMode(str, Enum):
    COUNT = "count"
    SET = "set"


class StatementDescriptor(NamedTuple):
    source_path: str
    line_start: int
    col_start: int
    line_end: int
    col_end: int
    contract_name: str

    def __str__(self) -> str:
        return (
            f"{self.source_path}:{self.line_start}.{self.col_start},"
            f"{self.line_end}.{self.col_end}"
        )


class CoverageBlock(BaseModel):
    line_start: int
    col_start: int
    line_end: int
    col_end: int
    num_stmt: int = 1
    count: int = 0


class CoverageProfile(BaseModel):
    """Coverage blocks of one source file."""

    file_name: str
    mode: CoverageMode
    blocks: list[CoverageBlock] = Field(default_factory=list)

    @property
    def covered(self) -> int:
        return sum(1 for block in self.blocks if block.count > 0)

    @property
    def percent(self) -> float:
        if not self.blocks:
            return 0.0
        return 100.0 * self.covered / len(self.blocks)


class ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self) -> None:
        self._cond: Condition = Condition(Lock())
        self._readers: int = 0
        self._writing: bool = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: not self._writing)
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._cond.wait_for(lambda: not self._writing and self._readers == 0)
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def has_coverage_report(message: str) -> bool:
    return COVERAGE_TAG in message


def trim_coverage_report(message: str) -> str:
    """Strips the coverage tag, and everything after it, from a message."""
    idx: int = message.rfind(COVERAGE_TAG)
    if idx < 0:
        return message
    return message[:idx]


def parse_coverage_report(message: str) -> tuple[int, int, int]:
    """Parses the last `@coverage,<start>,<end>,<file>` tag of a message."""
    idx: int = message.rfind(COVERAGE_TAG)
    if idx < 0:
        raise CoverageParseError("not a @coverage revert message")

    parts: list[str] = message[idx + len(COVERAGE_TAG) + 1 :].split(",")
    if len(parts) != 3:
        raise CoverageParseError("@coverage revert message contains wrong location")
    try:
        start, end, file = (int(part.strip()) for part in parts)
    except ValueError as e:
        raise CoverageParseError(
            "@coverage revert message contains wrong location"
        ) from e
    return start, end, file


class CoverageCollector:
    """Process-wide registry of contract sources and statement hit counts.
    Safe to use from several threads."""

    def __init__(self, mode: CoverageMode = CoverageMode.COUNT) -> None:
        self.mode: CoverageMode = mode
        self._lock: ReadWriteLock = ReadWriteLock()
        self._paths: dict[str, list[str]] = {}
        self._source_maps: dict[str, SourceMap] = {}
        self._statements: dict[StatementDescriptor, int] = {}
        self._logger: BoundLogger = structlog.get_logger(
            self.__class__.__name__
        ).bind(category=LogCategories.COVERAGE)

    def load_contract(self, contract: Contract) -> None:
        """Registers and indexes the sources of a coverage-compiled contract.
        Loading the same contract name again does nothing."""
        if not contract.coverage:
            raise NoCoverageError("contract was not compiled with coverage")
        if not contract.all_paths:
            raise ContractSourcesNotFoundError(
                f"contract {contract.name} has no source file paths"
            )

        with self._lock.write():
            if contract.name in self._paths:
                return

            errors: list[Exception] = []
            for path in contract.all_paths:
                if path in self._source_maps:
                    continue
                try:
                    self._source_maps[path] = SourceMap.from_file(Path(path))
                except OSError as e:
                    errors.append(e)

            if errors:
                raise ExceptionGroup(
                    f"failed to read sources of {contract.name}", errors
                )

            self._paths[contract.name] = list(contract.all_paths)
        self._logger.debug(
            "Loaded contract sources",
            contract=contract.name,
            files=len(contract.all_paths),
        )

    def _descriptor(
        self, contract_name: str, start: int, end: int, file: int
    ) -> StatementDescriptor:
        paths: list[str] | None = self._paths.get(contract_name)
        if paths is None:
            raise ContractSourcesNotFoundError(
                f"contract sources not found: {contract_name}"
            )
        if not 0 <= file < len(paths):
            raise ContractSourcesNotFoundError(
                f"contract {contract_name} has no source file with index {file}"
            )

        path: str = paths[file]
        source_map: SourceMap = self._source_maps[path]
        line_start, col_start = source_map.pos_to_line(start)
        line_end, col_end = source_map.pos_to_line(start + end)
        return StatementDescriptor(
            path, line_start, col_start, line_end, col_end, contract_name
        )

    def add_statement(self, contract_name: str, start: int, end: int, file: int) -> None:
        with self._lock.write():
            descriptor = self._descriptor(contract_name, start, end, file)
            self._statements.setdefault(descriptor, 0)

    def _hit(self, contract_name: str, start: int, end: int, file: int) -> None:
        with self._lock.write():
            descriptor = self._descriptor(contract_name, start, end, file)
            self._statements[descriptor] = self._statements.get(descriptor, 0) + 1

    def collect_coverage_event(
        self,
        contract_name: str,
        event_abi: Mapping[str, Any],
        log: Mapping[str, Any],
    ) -> None:
        types: list[str] = [arg["type"] for arg in event_abi["inputs"]]
        try:
            start, end, file = decode(types, HexBytes(log["data"]))
        except (DecodingError, ValueError) as e:
            raise EventParseError(f"failed to decode coverage event: {e}") from e
        self._hit(contract_name, start, end, file)

    def collect_coverage_revert(
        self, contract_name: str, err: BaseException | str
    ) -> None:
        """Counts the statement named by the coverage tag of a revert message.
        Negative coordinates mean there is no location and are skipped."""
        start, end, file = parse_coverage_report(str(err))
        if start < 0 or end < 0 or file < 0:
            return
        self._hit(contract_name, start, end, file)

    def _snapshot(self, contract_names: tuple[str, ...]) -> dict[StatementDescriptor, int]:
        with self._lock.read():
            return {
                descriptor: count
                for descriptor, count in self._statements.items()
                if not contract_names or descriptor.contract_name in contract_names
            }

    def _value(self, count: int) -> int:
        if self.mode == CoverageMode.SET:
            return 1 if count > 0 else 0
        return count

    def statements(self, *contract_names: str) -> dict[StatementDescriptor, int]:
        """Hit counts by statement, optionally limited to some contracts."""
        return self._snapshot(contract_names)

    def report_text_coverfile(self, out: TextIO, *contract_names: str) -> None:
        """Writes the cover profile text format, one row per statement."""
        out.write(f"mode: {self.mode.value}\n")
        snapshot = self._snapshot(contract_names)
        for descriptor in sorted(snapshot):
            out.write(f"{descriptor} 1 {self._value(snapshot[descriptor])}\n")

    def profiles(self, *contract_names: str) -> list[CoverageProfile]:
        """Statements grouped by source file. A statement shared by several
        contracts is counted once with the total hits."""
        blocks: dict[str, dict[tuple[int, int, int, int], int]] = {}
        for descriptor, count in self._snapshot(contract_names).items():
            key = (
                descriptor.line_start,
                descriptor.col_start,
                descriptor.line_end,
                descriptor.col_end,
            )
            per_file = blocks.setdefault(descriptor.source_path, {})
            per_file[key] = per_file.get(key, 0) + count

        return [
            CoverageProfile(
                file_name=file_name,
                mode=self.mode,
                blocks=[
                    CoverageBlock(
                        line_start=key[0],
                        col_start=key[1],
                        line_end=key[2],
                        col_end=key[3],
                        count=self._value(count),
                    )
                    for key, count in sorted(per_file.items())
                ],
            )
            for file_name, per_file in sorted(blocks.items())
        ]

    def report_text_summary(self, out: TextIO, *contract_names: str) -> None:
        for profile in self.profiles(*contract_names):
            out.write(
                f"{profile.file_name}\t{profile.covered}/{len(profile.blocks)}"
                f"\t{profile.percent:.1f}%\n"
            )
