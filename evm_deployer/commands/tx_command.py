# Author: evm-deployer developers

"""Contains the tx command."""

from typing import Any
from typing_extensions import override

from evm_deployer.abi_args import string_args_mapper
from evm_deployer.commands.command_result import CommandResult
from evm_deployer.commands.deployer_command import DeployerCommand
from evm_deployer.config import Config
from evm_deployer.deployer import ContractTxOpts, Deployer, TxResult


class TxCommandResult(CommandResult):
    def __init__(self, result: TxResult, bytecode_only: bool) -> None:
        super().__init__()
        self.result: TxResult = result
        self.bytecode_only: bool = bytecode_only

    @property
    @override
    def successful(self) -> bool:
        return self.bytecode_only or self.result.tx_hash is not None

    @override
    def to_dict(self) -> dict[str, Any]:
        if self.bytecode_only:
            return super().to_dict() | {"calldata": self.result.calldata}
        return super().to_dict() | {
            "tx": self.result.tx_hash,
            "block_number": self.result.block_number,
        }

    @override
    def __str__(self) -> str:
        if self.bytecode_only:
            return "0x" + self.result.calldata.hex()
        text: str = f"Tx: {self.result.tx_hash}"
        if self.result.block_number is not None:
            text += f"\nBlock: {self.result.block_number}"
        return text


class TxCommand(DeployerCommand):
    def __init__(self) -> None:
        super().__init__(
            command_name="tx",
            help_message="Send a transaction calling a method of a deployed contract.",
            usage="<address> <method> [args...]",
        )

    @override
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> TxCommandResult:
        self.expect_args(args, 2)
        address, method, method_args = args[0], args[1], args[2:]

        key_options: dict[str, Any] = (
            {} if config.bytecode else self.key_options(config, deployer)
        )
        opts = ContractTxOpts(
            source=config.source,
            contract_name=config.contract_name,
            contract=address,
            bytecode_only=config.bytecode,
            await_tx=config.await_tx,
            **key_options,
        )
        result: TxResult = deployer.tx(opts, method, string_args_mapper(method_args))
        if not config.bytecode:
            self.report_coverage(config, deployer)
        return TxCommandResult(result, config.bytecode)
