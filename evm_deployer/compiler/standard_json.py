# Author: evm-deployer developers

"""Builds solc standard-JSON input from a list of source files. Used by the
build command to produce an artifact for block explorer verification."""

from enum import Enum
from pathlib import Path

from eth_utils import keccak
from pydantic import BaseModel, Field


class EVMVersion(str, Enum):
    TANGERINE_WHISTLE = "tangerineWhistle"
    SPURIOUS_DRAGON = "spuriousDragon"
    BYZANTIUM = "byzantium"
    CONSTANTINOPLE = "constantinople"
    PETERSBURG = "petersburg"
    ISTANBUL = "istanbul"
    BERLIN = "berlin"
    LONDON = "london"
    PARIS = "paris"
    SHANGHAI = "shanghai"
    CANCUN = "cancun"


class ContractContent(BaseModel):
    keccak256: str
    content: str


class OptimizerSettings(BaseModel):
    enabled: bool = False
    runs: int = 200


class StandardJSONSettings(BaseModel):
    remappings: list[str] = Field(default_factory=list)
    optimizer: OptimizerSettings = Field(default_factory=OptimizerSettings)
    evm_version: EVMVersion = Field(
        default=EVMVersion.BERLIN, serialization_alias="evmVersion"
    )


class StandardJSONInput(BaseModel):
    language: str = "Solidity"
    sources: dict[str, ContractContent] = Field(default_factory=dict)
    settings: StandardJSONSettings = Field(default_factory=StandardJSONSettings)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=4)


def collect_paths_to_standard_json(
    paths: list[str | Path],
    optimizer: bool = False,
    optimizer_runs: int = 200,
    evm_version: EVMVersion = EVMVersion.BERLIN,
    cwd: Path | None = None,
) -> StandardJSONInput:
    """Reads every path and records its content and keccak256. Paths below
    the working directory are made relative to it."""
    cwd = cwd or Path.cwd()

    result = StandardJSONInput(
        settings=StandardJSONSettings(
            optimizer=OptimizerSettings(enabled=optimizer, runs=optimizer_runs),
            evm_version=evm_version,
        )
    )

    for path in paths:
        content: bytes = Path(path).read_bytes()
        key: str = str(path).replace(str(cwd), ".", 1)
        result.sources[key] = ContractContent(
            keccak256="0x" + keccak(content).hex(),
            content=content.decode("utf-8"),
        )
    return result
