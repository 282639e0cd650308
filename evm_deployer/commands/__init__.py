"""This module contains the commands of the evm-deployer CLI."""

from .build_command import BuildCommand, BuildCommandResult
from .call_command import CallCommand, CallCommandResult
from .command_result import CommandResult
from .deploy_command import DeployCommand, DeployCommandResult
from .deployer_command import DeployerCommand
from .help_command import HelpCommand
from .logs_command import LogsCommand, LogsCommandResult
from .tx_command import TxCommand, TxCommandResult

__all__ = [
    "BuildCommand",
    "BuildCommandResult",
    "CallCommand",
    "CallCommandResult",
    "CommandResult",
    "DeployCommand",
    "DeployCommandResult",
    "DeployerCommand",
    "HelpCommand",
    "LogsCommand",
    "LogsCommandResult",
    "TxCommand",
    "TxCommandResult",
]
