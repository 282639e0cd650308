# Author: evm-deployer developers

"""Per-operation options and results of the deployer."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from evm_deployer.contract import Contract
from evm_deployer.signers import Signer


class ContractOpts(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: Path
    """Solidity file that declares the contract."""
    contract_name: str
    from_address: str | None = None
    """Sender. Defaults to the address of the signer."""
    private_key: str | None = None
    signer: Signer | None = None
    """Takes precedence over private_key."""


class ContractDeployOpts(ContractOpts):
    bytecode_only: bool = False
    """Return the creation bytecode with encoded constructor args instead of
    sending it."""
    await_tx: bool = False
    value: int = 0


class ContractTxOpts(ContractOpts):
    contract: str
    """Address of the deployed contract."""
    bytecode_only: bool = False
    await_tx: bool = False
    value: int = 0


class ContractCallOpts(ContractOpts):
    contract: str


class ContractLogsOpts(ContractOpts):
    contract: str


class DeployResult(BaseModel):
    contract: Contract
    tx_hash: str | None = None
    bytecode: bytes = b""
    block_number: int | None = None


class TxResult(BaseModel):
    tx_hash: str | None = None
    calldata: bytes = b""
    block_number: int | None = None


class CallResult(BaseModel):
    outputs: list[Any] = Field(default_factory=list)
    output_abi: list[dict[str, Any]] = Field(default_factory=list)

    def named(self) -> dict[str, Any] | list[Any]:
        """Outputs keyed by their ABI names when every output is named."""
        names: list[str] = [out.get("name", "") for out in self.output_abi]
        if names and all(names):
            return dict(zip(names, self.outputs))
        return list(self.outputs)
