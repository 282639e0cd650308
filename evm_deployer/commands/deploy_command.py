# Author: evm-deployer developers

"""Contains the deploy command."""

from typing import Any
from typing_extensions import override

from evm_deployer.abi_args import string_args_mapper
from evm_deployer.commands.command_result import CommandResult
from evm_deployer.commands.deployer_command import DeployerCommand
from evm_deployer.config import Config
from evm_deployer.deployer import ContractDeployOpts, DeployResult, Deployer


class DeployCommandResult(CommandResult):
    def __init__(self, result: DeployResult, bytecode_only: bool) -> None:
        super().__init__()
        self.result: DeployResult = result
        self.bytecode_only: bool = bytecode_only

    @property
    @override
    def successful(self) -> bool:
        return self.bytecode_only or self.result.tx_hash is not None

    @override
    def to_dict(self) -> dict[str, Any]:
        if self.bytecode_only:
            return super().to_dict() | {"bytecode": self.result.bytecode}
        return super().to_dict() | {
            "contract": self.result.contract.name,
            "address": self.result.contract.address,
            "tx": self.result.tx_hash,
            "block_number": self.result.block_number,
        }

    @override
    def __str__(self) -> str:
        if self.bytecode_only:
            return "0x" + self.result.bytecode.hex()
        text: str = (
            f"Contract {self.result.contract.name} deployed at "
            f"{self.result.contract.address}\nTx: {self.result.tx_hash}"
        )
        if self.result.block_number is not None:
            text += f"\nBlock: {self.result.block_number}"
        return text


class DeployCommand(DeployerCommand):
    """Deploys the configured contract. The positional args are the
    constructor arguments."""

    def __init__(self) -> None:
        super().__init__(
            command_name="deploy",
            help_message="Deploy the contract, passing the args to the constructor.",
            usage="[constructor args...]",
        )

    @override
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> DeployCommandResult:
        key_options: dict[str, Any] = (
            {} if config.bytecode else self.key_options(config, deployer)
        )
        opts = ContractDeployOpts(
            source=config.source,
            contract_name=config.contract_name,
            bytecode_only=config.bytecode,
            await_tx=config.await_tx,
            **key_options,
        )
        result: DeployResult = deployer.deploy(opts, string_args_mapper(args))
        if not config.bytecode:
            self.report_coverage(config, deployer)
        return DeployCommandResult(result, config.bytecode)
