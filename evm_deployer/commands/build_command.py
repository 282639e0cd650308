# Author: evm-deployer developers

"""Contains the build command."""

from pathlib import Path
from typing import Any
from typing_extensions import override

from evm_deployer.commands.command_result import CommandResult
from evm_deployer.commands.deployer_command import DeployerCommand
from evm_deployer.compiler.standard_json import collect_paths_to_standard_json
from evm_deployer.config import Config
from evm_deployer.contract import Contract
from evm_deployer.deployer import Deployer


class BuildCommandResult(CommandResult):
    def __init__(self, contract: Contract, standard_json: Path | None = None) -> None:
        super().__init__()
        self.contract: Contract = contract
        self.standard_json: Path | None = standard_json

    @property
    @override
    def successful(self) -> bool:
        return True

    @override
    def to_dict(self) -> dict[str, Any]:
        return super().to_dict() | {
            "contract": self.contract.name,
            "source": self.contract.source_path,
            "coverage": self.contract.coverage,
            "compiler_version": self.contract.compiler_version,
            "all_paths": self.contract.all_paths,
            "abi": self.contract.abi,
            "bin": "0x" + self.contract.bin,
            "standard_json": str(self.standard_json) if self.standard_json else None,
        }

    @override
    def __str__(self) -> str:
        lines: list[str] = [
            f"Built {self.contract.name} from {self.contract.source_path}",
            f"Bytecode: {len(self.contract.bytecode)} bytes",
        ]
        if self.contract.coverage:
            lines.append(
                f"Coverage statements: {len(self.contract.statements)}"
            )
        if self.standard_json:
            lines.append(f"Standard JSON input: {self.standard_json}")
        return "\n".join(lines)


class BuildCommand(DeployerCommand):
    """Compiles the configured contract, through the build cache."""

    def __init__(self) -> None:
        super().__init__(
            command_name="build",
            help_message="Compile the contract and store it in the build cache.",
        )

    @override
    def execute(
        self, *, config: Config, deployer: Deployer, args: list[str]
    ) -> BuildCommandResult:
        contract: Contract = deployer.build(config.source, config.contract_name)
        self.logger.info(
            "Built contract", contract=contract.name, coverage=contract.coverage
        )

        if config.standard_json is None:
            return BuildCommandResult(contract)

        standard_json = collect_paths_to_standard_json(
            list(contract.all_paths) or [contract.source_path],
            optimizer=config.solc.optimizer_runs > 0,
            optimizer_runs=config.solc.optimizer_runs or 200,
        )
        config.standard_json.write_text(standard_json.to_json(), encoding="utf-8")
        return BuildCommandResult(contract, config.standard_json)
