# Author: evm-deployer developers

"""Contains the base class of CLI commands."""

from abc import ABC, abstractmethod
from io import StringIO
from pathlib import Path
from typing import Any

import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.commands.command_result import CommandResult
from evm_deployer.config import Config
from evm_deployer.coverage.report import write_coverage_reports
from evm_deployer.deployer import Deployer
from evm_deployer.errors import ArgumentError
from evm_deployer.log_categories import LogCategories
from evm_deployer.signers import Signer, init_signer


class DeployerCommand(ABC):
    """Abstract Base Class for implementing commands."""

    def __init__(
        self,
        command_name: str = "",
        help_message: str = "",
        usage: str = "",
    ) -> None:
        super().__init__()
        self._name: str = command_name
        self.help_message: str = help_message
        self.usage: str = usage
        self._logger: BoundLogger = structlog.get_logger(command_name).bind(
            category=LogCategories.COMMAND
        )

    @classmethod
    def create(cls) -> "DeployerCommand":
        return cls()

    @property
    def command_name(self) -> str:
        return self._name

    @property
    def logger(self) -> BoundLogger:
        return self._logger

    def expect_args(self, args: list[str], count: int) -> None:
        """Checks that at least `count` positional args were given."""
        if len(args) < count:
            raise ArgumentError(
                f"{self.command_name} expects at least {count} arguments, "
                f"usage: {self.command_name} {self.usage}"
            )

    @staticmethod
    def key_options(config: Config, deployer: Deployer) -> dict[str, Any]:
        """Sender options for the deployer from the key config group. A
        keystore needs the chain id, so the backend is dialed for it."""
        options: dict[str, Any] = {"from_address": config.key.from_address}
        if config.key.private_key is not None:
            options["private_key"] = config.key.private_key.get_secret_value()
        elif config.key.keystore_dir is not None:
            signer: Signer = init_signer(
                chain_id=deployer.backend().chain_id(),
                signer_type=config.tx.signer_type,
                from_address=config.key.from_address,
                keystore_dir=config.key.keystore_dir,
                passphrase=(
                    config.key.passphrase.get_secret_value()
                    if config.key.passphrase is not None
                    else None
                ),
            )
            options["signer"] = signer
        return options

    def report_coverage(self, config: Config, deployer: Deployer) -> None:
        """Logs the coverage summary and writes the configured reports."""
        if deployer.coverage is None:
            return
        summary = StringIO()
        deployer.coverage.report_text_summary(summary)
        for line in summary.getvalue().splitlines():
            self.logger.info(f"Coverage: {line}")
        written: list[Path] = write_coverage_reports(
            deployer.coverage,
            output=config.coverage.output,
            html_output=config.coverage.html_output,
            json_output=config.coverage.json_output,
        )
        for path in written:
            self.logger.info(f"Wrote coverage report {path}")

    @abstractmethod
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> CommandResult | None:
        """The main entrypoint of the command."""
        raise NotImplementedError(f"Command {self.command_name} is not implemented.")
