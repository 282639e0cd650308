# Author: evm-deployer developers

"""Contains the help command."""

from typing_extensions import override

from evm_deployer.commands.deployer_command import DeployerCommand
from evm_deployer.config import Config
from evm_deployer.deployer import Deployer


class HelpCommand(DeployerCommand):
    """Command that prints helpful information about other commands."""

    commands: list[DeployerCommand] = []

    def __init__(self) -> None:
        super().__init__(
            command_name="help",
            help_message="Print this help message.",
        )

    @override
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> None:
        print("Commands:")
        for command in self.commands:
            usage: str = f" {command.usage}" if command.usage else ""
            print(f"* {command.command_name}{usage}: {command.help_message}")
        print("\nRun with --help to list the configuration options.")
