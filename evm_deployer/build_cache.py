# Author: evm-deployer developers

"""Cache of compiled contracts keyed by the keccak256 of the source file."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from eth_utils import keccak
from platformdirs import user_cache_dir
from pydantic import BaseModel, Field, ValidationError
import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.contract import Contract
from evm_deployer.errors import CacheMismatchError, NoCacheError
from evm_deployer.log_categories import LogCategories


def default_cache_dir() -> Path:
    return Path(user_cache_dir("evm-deployer", "evm-deployer")) / "build"


class BuildCacheEntry(BaseModel):
    """On-disk layout of one cached contract."""

    timestamp: int
    code_hash: str = Field(alias="codeHash")
    all_paths: list[str] = Field(alias="allPaths")
    contract_name: str = Field(alias="contractName")
    compiler_version: str = Field(alias="compilerVersion")
    coverage: bool = False
    statements: list[tuple[int, int, int]] = Field(default_factory=list)
    abi: list[dict[str, Any]] = Field(default_factory=list)
    bin: str = ""


class BuildCache:
    """Stores one JSON file per (source hash, contract name, coverage) triple.
    Only the bytes of the main source file are hashed, changes in imported
    files are not detected."""

    def __init__(self, cache_dir: Path | None = None) -> None:
        self.cache_dir: Path = Path(cache_dir or default_cache_dir()).expanduser()
        self._logger: BoundLogger = structlog.get_logger(
            self.__class__.__name__
        ).bind(category=LogCategories.CACHE)

    @staticmethod
    def code_hash(source_path: Path) -> str:
        return keccak(Path(source_path).read_bytes()).hex()

    def entry_path(self, source_path: Path, name: str, coverage: bool) -> Path:
        suffix: str = "_coverage.json" if coverage else ".json"
        filename: str = f"sol_{name.lower()}_{self.code_hash(source_path)}{suffix}"
        return self.cache_dir / filename

    def store_contract(self, source_path: Path, contract: Contract) -> Path:
        entry = BuildCacheEntry(
            timestamp=int(datetime.now(timezone.utc).timestamp()),
            codeHash=self.code_hash(source_path),
            allPaths=contract.all_paths,
            contractName=contract.name,
            compilerVersion=contract.compiler_version,
            coverage=contract.coverage,
            statements=contract.statements,
            abi=contract.abi,
            bin=contract.bin,
        )

        path: Path = self.entry_path(source_path, contract.name, contract.coverage)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(entry.model_dump_json(by_alias=True, indent=2), "utf-8")
        self._logger.debug("Stored contract", contract=contract.name, path=str(path))
        return path

    def load_contract(self, source_path: Path, name: str, coverage: bool) -> Contract:
        """Loads a cached build of `name` from `source_path`. Raises NoCacheError
        if the source changed or nothing was stored yet."""
        path: Path = self.entry_path(source_path, name, coverage)
        if not path.is_file():
            raise NoCacheError(f"no cache entry for {name} ({path.name})")

        try:
            entry = BuildCacheEntry.model_validate_json(path.read_text("utf-8"))
        except ValidationError as e:
            raise CacheMismatchError(f"corrupted cache entry {path}: {e}") from e

        if entry.contract_name != name:
            raise CacheMismatchError(
                f"cache entry {path.name} holds {entry.contract_name}, expected {name}"
            )

        self._logger.debug("Loaded contract", contract=name, path=str(path))
        return Contract(
            name=entry.contract_name,
            source_path=str(source_path),
            all_paths=entry.all_paths,
            compiler_version=entry.compiler_version,
            coverage=entry.coverage,
            statements=entry.statements,
            abi=entry.abi,
            bin=entry.bin,
        )

    def clear(self) -> int:
        """Removes every cached entry. Returns the number of files removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed: int = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink()
            removed += 1
        self._logger.info(f"Cleared {removed} cache entries")
        return removed
