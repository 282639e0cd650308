# Author: evm-deployer developers

"""Contains the logs command."""

from typing import Any
from typing_extensions import override

from evm_deployer.commands.command_result import CommandResult
from evm_deployer.commands.deployer_command import DeployerCommand
from evm_deployer.config import Config
from evm_deployer.deployer import ContractLogsOpts, Deployer
from evm_deployer.deployer.events import to_jsonable


class LogsCommandResult(CommandResult):
    def __init__(self, event_name: str, events: list[Any]) -> None:
        super().__init__()
        self.event_name: str = event_name
        self.events: list[Any] = events

    @property
    @override
    def successful(self) -> bool:
        return True

    @override
    def to_dict(self) -> dict[str, Any]:
        return super().to_dict() | {"event": self.event_name, "logs": self.events}

    @override
    def __str__(self) -> str:
        if not self.events:
            return f"No {self.event_name} logs"
        return "\n".join(
            f"{self.event_name}: {to_jsonable(event)}" for event in self.events
        )


class LogsCommand(DeployerCommand):
    def __init__(self) -> None:
        super().__init__(
            command_name="logs",
            help_message="Print the decoded event logs of a mined transaction.",
            usage="<address> <tx hash> <event>",
        )

    @override
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> LogsCommandResult:
        self.expect_args(args, 3)
        address, tx_hash, event_name = args[0], args[1], args[2]

        opts = ContractLogsOpts(
            source=config.source,
            contract_name=config.contract_name,
            contract=address,
            from_address=config.key.from_address,
        )
        events: list[Any] = deployer.logs(opts, tx_hash, event_name)
        self.report_coverage(config, deployer)
        return LogsCommandResult(event_name, events)
