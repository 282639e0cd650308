# Author: evm-deployer developers

"""The compiled contract artifact."""

from typing import Any

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, field_validator

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"


class Contract(BaseModel):
    """A compiled contract. Only the address changes after compilation, it is
    assigned on deployment or supplied by the caller for existing contracts."""

    model_config = ConfigDict(validate_assignment=True)

    name: str
    """Contract name as declared in the source."""
    source_path: str
    """Path of the file that declares the contract."""
    all_paths: list[str] = Field(default_factory=list)
    """Every source file of the compilation unit. The file component of a
    source location is an index into this list."""
    compiler_version: str = ""
    address: str = ZERO_ADDRESS
    coverage: bool = False
    """True when compiled with coverage markers."""
    statements: list[tuple[int, int, int]] = Field(default_factory=list)
    """Recorded (start, end, file) statement locations of a coverage build."""
    abi: list[dict[str, Any]] = Field(default_factory=list)
    bin: str = ""
    """Creation bytecode as hex, without 0x prefix."""

    @field_validator("address", mode="before")
    @classmethod
    def on_set_address(cls, value: str) -> str:
        if not is_address(value):
            raise ValueError(f"invalid address: {value}")
        return to_checksum_address(value)

    @field_validator("bin", mode="before")
    @classmethod
    def on_set_bin(cls, value: str) -> str:
        return value.removeprefix("0x")

    @property
    def bytecode(self) -> bytes:
        return bytes.fromhex(self.bin)

    def find_function(self, name: str) -> dict[str, Any] | None:
        for entry in self.abi:
            if entry.get("type") == "function" and entry.get("name") == name:
                return entry
        return None

    def find_event(self, name: str) -> dict[str, Any] | None:
        for entry in self.abi:
            if entry.get("type") == "event" and entry.get("name") == name:
                return entry
        return None

    @property
    def constructor(self) -> dict[str, Any] | None:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return entry
        return None
