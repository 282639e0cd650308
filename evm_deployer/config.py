# Author: evm-deployer developers

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    DirectoryPath,
    Field,
    SecretStr,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    CliPositionalArg,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from evm_deployer.build_cache import default_cache_dir
from evm_deployer.coverage.collector import CoverageMode
from evm_deployer.log_handlers import CategoryFileHandler
from evm_deployer.signers import SignerType

MIN_GAS_LIMIT: int = 21000


def _alias_choice(value: str) -> AliasChoices:
    """Accepts the field name, its dashed form and the prefixed env var."""
    return AliasChoices(
        value,
        value.replace("_", "-"),
        f"DEPLOYER_{value.upper()}",
    )


class LogConfig(BaseModel):
    output: Path | None = Field(
        default=None,
        description="Save the output logs to a location. Do not add "
        ".log suffix, it will be added automatically.",
    )

    append: bool = Field(
        default=False,
        description="Will append to the logs rather than replace them.",
    )

    by_cat: bool = Field(
        default=False,
        description="Also split the logs by category into files next to "
        "log.output.",
    )

    @property
    def logging_handlers(self) -> list[logging.Handler]:
        handlers: list[logging.Handler] = []
        if self.output:
            if self.by_cat:
                handlers.append(
                    CategoryFileHandler(
                        self.output, append=self.append, skip_uncategorized=True
                    )
                )
            handlers.append(
                logging.FileHandler(
                    str(self.output) + ".log", mode="a" if self.append else "w"
                )
            )
        return handlers


class SolcConfig(BaseModel):
    path: Path | None = Field(
        default=None,
        description="Path to the solc binary. Looked up in $PATH when unset.",
    )

    @field_validator("path", mode="before")
    @classmethod
    def on_set_path(cls, value: str | Path | None) -> Path | None:
        if not value:
            return None
        return Path(value).expanduser()

    allowed_paths: list[Path] = Field(
        default_factory=list,
        description="Paths solc is allowed to import from.",
    )

    @field_validator("allowed_paths", mode="before")
    @classmethod
    def on_set_allowed_paths(cls, value: str | list) -> list[Path]:
        if isinstance(value, str):
            value = [part for part in value.split(",") if part.strip()]
        return [Path(p).expanduser().absolute() for p in value]

    optimizer_runs: int = Field(
        default=200,
        ge=0,
        description="Optimizer runs for normal builds, 0 disables the optimizer.",
    )


class RPCConfig(BaseModel):
    endpoint: str = Field(
        default="http://localhost:8545",
        description="Ethereum JSON-RPC endpoint.",
    )

    @field_validator("endpoint", mode="after")
    @classmethod
    def on_set_endpoint(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"failed to parse endpoint URL: {value}")
        return value

    rpc_timeout: float = Field(
        default=10,
        gt=0,
        description="Timeout of single RPC requests, in seconds.",
    )

    tx_timeout: float = Field(
        default=30,
        gt=0,
        description="How long to wait for a transaction to be mined, in seconds.",
    )

    call_timeout: float = Field(
        default=10,
        gt=0,
        description="Timeout of contract calls, in seconds.",
    )


class TxConfig(BaseModel):
    gas_price: int | None = Field(
        default=None,
        description="Gas price in wei. Unset or -1 asks the node for a price.",
    )

    @field_validator("gas_price", mode="after")
    @classmethod
    def on_set_gas_price(cls, value: int | None) -> int | None:
        if value is None or value < 0:
            return None
        return value

    gas_limit: int | None = Field(
        default=5_000_000,
        description="Gas limit of transactions. 0 estimates it with the node.",
    )

    @field_validator("gas_limit", mode="after")
    @classmethod
    def on_set_gas_limit(cls, value: int | None) -> int | None:
        if not value:
            return None
        if value < MIN_GAS_LIMIT:
            raise ValueError(f"gas limit must be at least {MIN_GAS_LIMIT}")
        return value

    signer_type: SignerType = Field(
        default=SignerType.EIP155,
        description="Signature scheme: eip155 or homestead.",
    )


class CacheConfig(BaseModel):
    dir: Path = Field(
        default_factory=default_cache_dir,
        description="Directory of the build cache.",
    )

    disabled: bool = Field(
        default=False,
        description="Always compile and never touch the build cache.",
    )


class CoverageConfig(BaseModel):
    enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("enabled", "cover"),
        description="Compile contracts with coverage markers and collect "
        "statement coverage of deploy, tx and call.",
    )

    mode: CoverageMode = Field(
        default=CoverageMode.COUNT,
        description="count reports hit counts, set reports hit or not hit.",
    )

    output: Path | None = Field(
        default=None,
        description="Write the text cover profile to this file.",
    )

    html_output: Path | None = Field(
        default=None,
        description="Write an HTML coverage report to this file.",
    )

    json_output: Path | None = Field(
        default=None,
        description="Write the coverage profiles as JSON to this file.",
    )


class KeyConfig(BaseModel):
    from_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("from_address", "from"),
        description="The from address. Must match the private key or exist "
        "in the keystore.",
    )

    private_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("private_key", "pk"),
        description="Hex encoded private key of the sender.",
    )

    keystore_dir: DirectoryPath | None = Field(
        default=None,
        description="Geth or Clef keystore directory.",
    )

    passphrase: SecretStr | None = Field(
        default=None,
        description="Passphrase of the keystore account. Prompted for when unset.",
    )


class Config(BaseSettings):
    """Configuration of evm-deployer."""

    config_file: Path | None = Field(
        default=None,
        exclude=True,
        description="Path to configuration file (TOML format). Can be set via "
        "DEPLOYER_CONFIG_FILE environment variable.",
    )

    contract_name: str = Field(
        default="Counter",
        validation_alias=_alias_choice("contract_name"),
        description="Name of the contract to build and use.",
    )

    source: Path = Field(
        default=Path("contracts/Counter.sol"),
        validation_alias=_alias_choice("source"),
        description="Solidity file that declares the contract.",
    )

    command_name: CliPositionalArg[str] = Field(
        default="help",
        exclude=True,
        description="The command to run: build, deploy, tx, call, logs or help.",
    )

    command_args: CliPositionalArg[list[str]] = Field(
        default_factory=list,
        exclude=True,
        description="Arguments of the command.",
    )

    verbose_level: int = Field(
        default=0,
        ge=0,
        le=3,
        exclude=True,
        description="Show up to 3 levels of verbose output.",
    )

    use_json: bool = Field(
        default=False,
        alias="json",
        description="Print the result of the command as JSON.",
    )

    bytecode: bool = Field(
        default=False,
        description="deploy and tx: print the transaction data instead of "
        "sending it.",
    )

    await_tx: bool = Field(
        default=True,
        validation_alias=AliasChoices("await_tx", "await"),
        description="deploy and tx: wait for the transaction to be mined.",
    )

    standard_json: Path | None = Field(
        default=None,
        description="build: also write the solc standard-JSON input of the "
        "contract sources to this file.",
    )

    solc: SolcConfig = Field(
        default_factory=SolcConfig, description="Compiler config group."
    )

    rpc: RPCConfig = Field(default_factory=RPCConfig, description="RPC config group.")

    tx: TxConfig = Field(
        default_factory=TxConfig, description="Transaction config group."
    )

    cache: CacheConfig = Field(
        default_factory=CacheConfig, description="Build cache config group."
    )

    coverage: CoverageConfig = Field(
        default_factory=CoverageConfig, description="Coverage config group."
    )

    key: KeyConfig = Field(default_factory=KeyConfig, description="Key config group.")

    log: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration group."
    )

    model_config = SettingsConfigDict(
        env_prefix="DEPLOYER_",
        env_file=".env",
        env_file_encoding="utf-8",
        # e.g. DEPLOYER_RPC__ENDPOINT
        env_nested_delimiter="__",
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from dotenv import load_dotenv

        load_dotenv(".env", override=False)

        sources: list[PydanticBaseSettingsSource] = [init_settings]

        config_file_path: str | None = os.getenv("DEPLOYER_CONFIG_FILE")
        if config_file_path:
            config_file = Path(config_file_path).expanduser()
            if config_file.exists():
                sources.append(TomlConfigSettingsSource(settings_cls, config_file))

        sources.extend([env_settings, dotenv_settings, file_secret_settings])

        # Priority order: init/CLI > TOML > env > dotenv > file_secret
        return tuple(sources)
