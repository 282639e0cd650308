#!/usr/bin/env python3

# Author: evm-deployer developers

import argparse
import sys

from pydantic import ValidationError
from pydantic_core import ErrorDetails
from pydantic_settings import CliApp, CliSettingsSource
from structlog import get_logger
from structlog.stdlib import BoundLogger

from evm_deployer import Config, Deployer, __author__, __version__
from evm_deployer.commands import CommandResult, DeployerCommand, HelpCommand
from evm_deployer.errors import DeployerError
from evm_deployer.log_categories import LogCategories
from evm_deployer.log_utils import get_log_level, init_logging
import evm_deployer.commands


def _init_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-h",
        "--help",
        action="store_true",
        help="Show this help message and exit.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s {version}".format(version=__version__),
        help="Show version information.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help=(
            "Show up to 3 levels of verbose output. Level 1: warnings only."
            " Level 2: progress information. Level 3: RPC and compiler details."
        ),
    )


def _load_config(parser: argparse.ArgumentParser) -> Config:
    help_requested = "--help" in sys.argv or "-h" in sys.argv

    verbose_level: int = 0
    if not help_requested:
        # -v has action="count", which the settings source cannot express.
        args, _ = parser.parse_known_args()
        verbose_level = min(args.verbose, 3)

    cli_settings: CliSettingsSource = CliSettingsSource(
        Config, cli_parse_args=True, root_parser=parser, cli_implicit_flags=True
    )

    try:
        config: Config = CliApp.run(Config, cli_settings_source=cli_settings)
    except ValidationError as e:
        if help_requested:
            parser.print_help()
            sys.exit(0)

        print(f"evm-deployer: validation error while loading {e.title}\n")
        errs: list[ErrorDetails] = e.errors(
            include_context=True,
            include_input=True,
        )
        for idx, err in enumerate(errs):
            print(
                f"* Error {idx}: "
                f'{err["type"]}: {err["loc"]} cannot accept '
                f'"{err["input"]}" (type {type(err["input"]).__name__}) '
                f'because: {err["msg"]}'
            )
        sys.exit(1)

    if help_requested:
        parser.print_help()
        sys.exit(0)

    config.verbose_level = verbose_level
    return config


def _init_commands() -> dict[str, DeployerCommand]:
    """Creates every command exported by evm_deployer.commands."""
    commands: dict[str, DeployerCommand] = {}
    for cmd_classname in getattr(evm_deployer.commands, "__all__"):
        cmd_type: type = getattr(evm_deployer.commands, cmd_classname)
        if not isinstance(cmd_type, type) or not issubclass(cmd_type, DeployerCommand):
            continue
        if cmd_type is DeployerCommand:
            continue
        cmd: DeployerCommand = cmd_type.create()
        commands[cmd.command_name] = cmd

    HelpCommand.commands = list(commands.values())
    return commands


def _init_logging(config: Config) -> None:
    init_logging(
        level=get_log_level(config.verbose_level),
        file_handlers=config.log.logging_handlers,
    )


def main() -> None:
    """Entry point function"""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="evm-deployer",
        description="""Deploy, call and send transactions to Solidity contracts, optionally collecting statement coverage. To view the commands, run with the command "help".

Configuration Precedence (highest to lowest):
  * CLI args > TOML config > Environment variables > .env file > Defaults
  * NOTE: Nested config values can be set via environment variables using double underscores
    (e.g., DEPLOYER_RPC__ENDPOINT for rpc.endpoint)""",
        epilog=f"Made by {__author__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )

    _init_args(parser=parser)
    config: Config = _load_config(parser=parser)

    _init_logging(config)
    logger: BoundLogger = get_logger().bind(category=LogCategories.SYSTEM)
    logger.debug("Initialized logging")
    get_logger().bind(category=LogCategories.CONFIG).debug(
        "Configuration loaded",
        contract=config.contract_name,
        source=str(config.source),
        endpoint=config.rpc.endpoint,
        coverage=config.coverage.enabled,
    )

    commands: dict[str, DeployerCommand] = _init_commands()
    command_name: str = config.command_name
    if command_name not in commands:
        logger.error(
            f"Error: Unknown command: {command_name}. Choose from: "
            + ", ".join(commands)
        )
        sys.exit(1)

    logger.info(f"Running Command: {command_name}")
    deployer = Deployer(config)
    try:
        result: CommandResult | None = commands[command_name].execute(
            config=config, deployer=deployer, args=list(config.command_args)
        )
    except DeployerError as e:
        logger.error(str(e), error=type(e).__name__)
        sys.exit(1)

    if result:
        print(result.to_json() if config.use_json else result)
    sys.exit(0 if result is None or result.successful else 1)


if __name__ == "__main__":
    main()
