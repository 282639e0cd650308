# Author: evm-deployer developers

"""Exceptions raised by the deployer. Everything derives from DeployerError so
that the CLI can report a single cause and exit."""


class DeployerError(Exception):
    """Base class of all deployer errors."""


# Compiler


class CompilerNotFoundError(DeployerError):
    """solc binary is missing or is not the Solidity compiler."""


class CompilationFailedError(DeployerError):
    """solc exited with an error or produced unusable output."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output: str = output


# Cache


class NoCacheError(DeployerError):
    """No cache entry exists for the given source hash."""


class CacheMismatchError(DeployerError):
    """The cache entry does not describe the requested contract."""


# RPC


class EndpointUnreachableError(DeployerError):
    pass


class NoChainIDError(DeployerError):
    pass


class NoNonceError(DeployerError):
    pass


class NoCodeError(DeployerError):
    """No contract code at the target address, gas cannot be estimated."""


class GasEstimationError(DeployerError):
    """eth_estimateGas failed. `reason` is the node message, which may carry a
    coverage tag when the estimate reverted on a tagged require."""

    def __init__(self, message: str, reason: str = "") -> None:
        super().__init__(message)
        self.reason: str = reason


class SendTransactionError(DeployerError):
    """The node rejected the raw transaction."""


class TxNotFoundError(DeployerError):
    pass


class AwaitTimeoutError(DeployerError):
    """The transaction was not mined before the deadline."""


class TransactionRevertedError(DeployerError):
    """A mined transaction has status 0. This is an on-chain outcome, not a
    transport failure."""

    def __init__(
        self,
        message: str = "transaction reverted",
        block_number: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.block_number: int | None = block_number
        self.reason: str | None = reason


class NoRevertReasonError(DeployerError):
    """The replayed call did not return an Error(string) payload."""


# ABI


class MethodNotFoundError(DeployerError):
    pass


class EventNotFoundError(DeployerError):
    pass


class EventParseError(DeployerError):
    pass


class ArgumentError(DeployerError):
    """A string argument cannot be mapped to its ABI type."""


# Signing


class SignerError(DeployerError):
    pass


# Coverage


class NoCoverageError(DeployerError):
    """Coverage is not enabled, or the contract was not compiled with it."""

    def __init__(self, message: str = "coverage not enabled") -> None:
        super().__init__(message)


class NoCoverageInContractError(DeployerError):
    """The deployed contract does not expose a coverage definition id."""

    def __init__(self, message: str = "no coverage in contract") -> None:
        super().__init__(message)


class StatementNoSrcError(DeployerError):
    def __init__(self, message: str = "statement without src reference") -> None:
        super().__init__(message)


class ContractSourcesNotFoundError(DeployerError):
    pass


class CoverageParseError(DeployerError):
    """A @coverage revert tag is malformed."""
