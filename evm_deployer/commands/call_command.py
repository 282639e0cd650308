# Author: evm-deployer developers

"""Contains the call command."""

from typing import Any
from typing_extensions import override

from evm_deployer.abi_args import string_args_mapper
from evm_deployer.commands.command_result import CommandResult
from evm_deployer.commands.deployer_command import DeployerCommand
from evm_deployer.config import Config
from evm_deployer.deployer import CallResult, ContractCallOpts, Deployer


class CallCommandResult(CommandResult):
    def __init__(self, method: str, result: CallResult) -> None:
        super().__init__()
        self.method: str = method
        self.result: CallResult = result

    @property
    @override
    def successful(self) -> bool:
        return True

    @override
    def to_dict(self) -> dict[str, Any]:
        return super().to_dict() | {
            "method": self.method,
            "outputs": self.result.named(),
        }

    @override
    def __str__(self) -> str:
        if not self.result.outputs:
            return f"{self.method}: no outputs"
        lines: list[str] = []
        for idx, (out, value) in enumerate(
            zip(self.result.output_abi, self.result.outputs)
        ):
            name: str = out.get("name") or str(idx)
            if isinstance(value, (bytes, bytearray)):
                value = "0x" + bytes(value).hex()
            lines.append(f"{name} ({out['type']}): {value}")
        return "\n".join(lines)


class CallCommand(DeployerCommand):
    """Calls a method without sending a transaction. With coverage enabled
    the call is also sent as a transaction so its statements are counted."""

    def __init__(self) -> None:
        super().__init__(
            command_name="call",
            help_message="Call a method of a deployed contract and print its outputs.",
            usage="<address> <method> [args...]",
        )

    @override
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> CallCommandResult:
        self.expect_args(args, 2)
        address, method, method_args = args[0], args[1], args[2:]

        opts = ContractCallOpts(
            source=config.source,
            contract_name=config.contract_name,
            contract=address,
            **self.key_options(config, deployer),
        )
        result: CallResult = deployer.call(
            opts, method, string_args_mapper(method_args)
        )
        self.report_coverage(config, deployer)
        return CallCommandResult(method, result)
