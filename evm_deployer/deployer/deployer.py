# Author: evm-deployer developers

"""The transaction orchestrator. Resolves the contract artifact, the RPC
backend, the signer and nonce, submits deploy/tx/call operations, awaits
their receipts and feeds coverage data into a CoverageCollector."""

from functools import partial
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Mapping

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_utils import encode_hex, function_abi_to_4byte_selector
from hexbytes import HexBytes
import structlog
from structlog.stdlib import BoundLogger
from web3.exceptions import ContractLogicError, TransactionNotFound
from web3.types import TxReceipt

from evm_deployer.abi_args import ArgsMapper, AbiValue, encode_values
from evm_deployer.build_cache import BuildCache
from evm_deployer.client import Client
from evm_deployer.compiler.solc import SolcCompiler, which_solc
from evm_deployer.config import Config
from evm_deployer.contract import ZERO_ADDRESS, Contract
from evm_deployer.coverage.collector import (
    CoverageCollector,
    has_coverage_report,
    trim_coverage_report,
)
from evm_deployer.coverage.event import (
    CoverageEventInfo,
    coverage_event_info,
    coverage_id_calldata,
    decode_coverage_id,
)
from evm_deployer.deployer.events import EventDecoder, decode_event_log, event_topic
from evm_deployer.deployer.options import (
    CallResult,
    ContractCallOpts,
    ContractDeployOpts,
    ContractLogsOpts,
    ContractOpts,
    ContractTxOpts,
    DeployResult,
    TxResult,
)
from evm_deployer.deployer.transact import (
    TransactionContext,
    await_tx,
    create_address,
    get_revert_reason,
    transact,
)
from evm_deployer.errors import (
    ArgumentError,
    CompilationFailedError,
    CoverageParseError,
    DeployerError,
    EndpointUnreachableError,
    EventNotFoundError,
    GasEstimationError,
    MethodNotFoundError,
    NoChainIDError,
    NoCoverageError,
    NoCoverageInContractError,
    NoNonceError,
    NoRevertReasonError,
    SignerError,
    TransactionRevertedError,
    TxNotFoundError,
)
from evm_deployer.log_categories import LogCategories
from evm_deployer.signers import PrivateKeySigner, Signer


class Deployer:
    """Entry point for build, deploy, tx, call and logs.

    The RPC backend is dialed on first use and shared by all later operations.
    A failed dial is not remembered, the next operation dials again."""

    def __init__(
        self,
        config: Config,
        *,
        compiler: SolcCompiler | None = None,
        cache: BuildCache | None = None,
        collector: CoverageCollector | None = None,
        client_factory: Callable[[], Client] | None = None,
    ) -> None:
        self.config: Config = config
        self._compiler: SolcCompiler | None = compiler
        self.cache: BuildCache | None = (
            None if config.cache.disabled else cache or BuildCache(config.cache.dir)
        )
        self.coverage: CoverageCollector | None = collector
        if self.coverage is None and config.coverage.enabled:
            self.coverage = CoverageCollector(config.coverage.mode)

        self._client_factory: Callable[[], Client] = client_factory or partial(
            Client.dial,
            config.rpc.endpoint,
            max(config.rpc.rpc_timeout, config.rpc.call_timeout),
        )
        self._client: Client | None = None
        self._client_lock: Lock = Lock()

        self._logger: BoundLogger = structlog.get_logger(
            self.__class__.__name__
        ).bind(category=LogCategories.TX)

    # Collaborators

    @property
    def compiler(self) -> SolcCompiler:
        if self._compiler is None:
            solc_path: Path = self.config.solc.path or which_solc()
            self._compiler = SolcCompiler(solc_path, self.config.solc.allowed_paths)
        return self._compiler

    def backend(self) -> Client:
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = self._client_factory()
                except EndpointUnreachableError:
                    raise
                except Exception as e:
                    raise EndpointUnreachableError(
                        f"failed to dial {self.config.rpc.endpoint}: {e}"
                    ) from e
                self._logger.debug("Dialed RPC endpoint", endpoint=self.config.rpc.endpoint)
            return self._client

    # Build

    def build(self, source: Path, contract_name: str) -> Contract:
        """Loads the contract from the build cache or compiles it. Coverage
        builds are used when coverage is enabled."""
        source = Path(source).absolute()
        coverage: bool = self.config.coverage.enabled

        if self.cache is not None:
            try:
                contract: Contract = self.cache.load_contract(
                    source, contract_name, coverage
                )
                self._logger.debug("Using cached build", contract=contract_name)
                return contract
            except FileNotFoundError as e:
                raise CompilationFailedError(f"source file not found: {source}") from e
            except DeployerError as e:
                self._logger.debug(f"Cache miss: {e}")
            except OSError as e:
                self._logger.warning(f"Failed to read build cache: {e}")

        if coverage:
            contracts = self.compiler.compile_with_coverage(source.parent, source.name)
        else:
            contracts = self.compiler.compile(
                source.parent, source.name, self.config.solc.optimizer_runs
            )

        contract = contracts.get(contract_name)
        if contract is None:
            raise CompilationFailedError(
                f"contract {contract_name} not found in {source}, compiled: "
                + ", ".join(sorted(contracts))
            )

        if self.cache is not None:
            try:
                self.cache.store_contract(source, contract)
            except OSError as e:
                self._logger.warning(f"Failed to store build in cache: {e}")
        return contract

    # Shared steps

    @staticmethod
    def _map_args(
        inputs: list[dict[str, Any]], args_mapper: ArgsMapper | None
    ) -> list[AbiValue]:
        if args_mapper is None:
            if inputs:
                raise ArgumentError(
                    f"method expects {len(inputs)} arguments, none given"
                )
            return []
        return args_mapper(inputs)

    @staticmethod
    def _method(contract: Contract, method_name: str) -> dict[str, Any]:
        method: dict[str, Any] | None = contract.find_function(method_name)
        if method is None:
            raise MethodNotFoundError(
                f"method not found: {method_name} in {contract.name}"
            )
        return method

    def _chain_id(self, client: Client) -> int:
        try:
            return client.chain_id()
        except Exception as e:
            raise NoChainIDError(f"failed to get chain id: {e}") from e

    def _nonce(self, client: Client, address: str) -> int:
        try:
            return client.pending_nonce_at(address)
        except Exception as e:
            raise NoNonceError(f"failed to get nonce of {address}: {e}") from e

    def _signer(self, opts: ContractOpts, chain_id: int) -> Signer:
        if opts.signer is not None:
            return opts.signer
        if opts.private_key:
            return PrivateKeySigner(
                opts.private_key,
                signer_type=self.config.tx.signer_type,
                chain_id=chain_id,
            )
        raise SignerError("no signer or private key provided")

    def _context(
        self,
        client: Client,
        opts: ContractOpts,
        contract: Contract,
        method: str,
        value: int,
    ) -> TransactionContext:
        chain_id: int = self._chain_id(client)
        signer: Signer = self._signer(opts, chain_id)
        from_address: str = opts.from_address or signer.address
        return TransactionContext(
            contract=contract,
            method=method,
            from_address=from_address,
            chain_id=chain_id,
            nonce=self._nonce(client, from_address),
            signer=signer,
            value=value,
            gas_price=self.config.tx.gas_price,
            gas_limit=self.config.tx.gas_limit,
        )

    def _receipt(self, client: Client, tx_hash: str) -> TxReceipt:
        try:
            return client.transaction_receipt(tx_hash)
        except TransactionNotFound as e:
            raise TxNotFoundError(f"transaction not found: {tx_hash}") from e

    def _reverted(
        self,
        client: Client,
        ctx: TransactionContext,
        data: bytes,
        to: str | None,
        error: TransactionRevertedError,
        collect_coverage: bool,
    ) -> TransactionRevertedError:
        """Decodes the reason of a reverted transaction, hands a coverage tag
        to the collector and returns the error to raise."""
        try:
            reason: str = get_revert_reason(client, ctx, data, to, error.block_number)
        except NoRevertReasonError as e:
            self._logger.debug(f"No revert reason: {e}")
            return TransactionRevertedError(
                f"transaction {ctx.tx_hash} reverted without a reason",
                block_number=error.block_number,
            )

        if collect_coverage:
            reason = self._collect_revert(ctx.contract, reason)
        else:
            reason = trim_coverage_report(reason)
        return TransactionRevertedError(
            f"transaction {ctx.tx_hash} reverted: {reason}",
            block_number=error.block_number,
            reason=reason,
        )

    def _transact(
        self,
        client: Client,
        ctx: TransactionContext,
        data: bytes,
        to: str | None = None,
    ) -> None:
        """Runs transact. A tagged revert hit while estimating gas is handed
        to the collector and its tag is removed from the error."""
        try:
            transact(client, ctx, data, to=to)
        except GasEstimationError as e:
            reason: str = self._collect_revert(ctx.contract, e.reason)
            raise GasEstimationError(
                f"failed to estimate gas needed: {reason}", reason=reason
            ) from e

    # Coverage

    def get_coverage_event_info(
        self, from_address: str, contract: Contract
    ) -> CoverageEventInfo:
        """Calls `___coverage_id_<name>()` on the deployed contract to learn
        which coverage event it emits."""
        if self.coverage is None:
            raise NoCoverageError()

        msg: dict[str, Any] = {
            "from": from_address,
            "to": contract.address,
            "data": encode_hex(coverage_id_calldata(contract.name)),
        }
        try:
            result: bytes = self.backend().call_contract(msg)
        except ContractLogicError as e:
            raise NoCoverageInContractError() from e
        return coverage_event_info(decode_coverage_id(result))

    def _discover_coverage(
        self, contract: Contract, from_address: str
    ) -> CoverageEventInfo | None:
        """Resolves the coverage event of a contract and registers its
        statements. Returns None when no coverage can be collected."""
        if self.coverage is None or not contract.coverage:
            return None

        try:
            info: CoverageEventInfo = self.get_coverage_event_info(
                from_address, contract
            )
        except NoCoverageInContractError:
            self._logger.warning(
                "Contract has no coverage markers, coverage disabled",
                contract=contract.name,
                address=contract.address,
            )
            return None

        try:
            self.coverage.load_contract(contract)
        except (DeployerError, ExceptionGroup) as e:
            self._logger.error(
                f"failed to open referenced sources for coverage reporting: {e}"
            )
            return info

        for start, end, file in contract.statements:
            if start < 0 or end < 0 or file < 0:
                continue
            try:
                self.coverage.add_statement(contract.name, start, end, file)
            except DeployerError as e:
                self._logger.warning(f"Failed to register statement: {e}")
        return info

    def _harvest(
        self,
        contract: Contract,
        info: CoverageEventInfo,
        logs: list[Mapping[str, Any]],
    ) -> list[Mapping[str, Any]]:
        """Routes coverage logs to the collector. Returns the other logs."""
        assert self.coverage is not None
        rest: list[Mapping[str, Any]] = []
        for log in logs:
            topics = log.get("topics") or []
            if not topics or HexBytes(topics[0]) != info.topic:
                rest.append(log)
                continue
            try:
                self.coverage.collect_coverage_event(contract.name, info.abi, log)
            except DeployerError as e:
                self._logger.warning(
                    f"failed to collect coverage event from contract: {e}",
                    contract=contract.name,
                )
        return rest

    def _collect_revert(self, contract: Contract, message: str) -> str:
        """Counts the statement of a tagged revert message and returns the
        message without the tag. Malformed tags raise CoverageParseError."""
        if (
            self.coverage is None
            or not contract.coverage
            or not has_coverage_report(message)
        ):
            return trim_coverage_report(message)
        try:
            self.coverage.load_contract(contract)
        except (DeployerError, ExceptionGroup) as e:
            self._logger.warning(f"failed to load sources for coverage: {e}")
            return trim_coverage_report(message)
        try:
            self.coverage.collect_coverage_revert(contract.name, message)
        except CoverageParseError:
            raise
        except DeployerError as e:
            self._logger.warning(f"failed to collect coverage from revert: {e}")
        return trim_coverage_report(message)

    # Operations

    def deploy(
        self, opts: ContractDeployOpts, args_mapper: ArgsMapper | None = None
    ) -> DeployResult:
        contract: Contract = self.build(opts.source, opts.contract_name)

        constructor = contract.constructor
        values: list[AbiValue] = self._map_args(
            constructor.get("inputs", []) if constructor else [], args_mapper
        )
        data: bytes = contract.bytecode + encode_values(values)

        if opts.bytecode_only:
            return DeployResult(contract=contract, bytecode=data)

        client: Client = self.backend()
        ctx: TransactionContext = self._context(
            client, opts, contract, "", opts.value
        )
        contract.address = create_address(ctx.from_address, ctx.nonce)
        self._transact(client, ctx, data)
        assert ctx.tx_hash is not None
        self._logger.info(
            "Deployed contract", contract=contract.name, address=contract.address
        )

        result = DeployResult(contract=contract, tx_hash=ctx.tx_hash, bytecode=data)
        awaiting_coverage: bool = self.coverage is not None and contract.coverage
        if not (opts.await_tx or awaiting_coverage):
            return result

        try:
            result.block_number = await_tx(
                client, ctx.tx_hash, self.config.rpc.tx_timeout
            )
        except TransactionRevertedError as e:
            raise self._reverted(
                client, ctx, data, None, e, awaiting_coverage
            ) from e

        info: CoverageEventInfo | None = self._discover_coverage(
            contract, ctx.from_address
        )
        if info is not None:
            receipt: TxReceipt = self._receipt(client, ctx.tx_hash)
            self._harvest(contract, info, list(receipt["logs"]))
        return result

    def tx(
        self,
        opts: ContractTxOpts,
        method_name: str,
        args_mapper: ArgsMapper | None = None,
    ) -> TxResult:
        contract: Contract = self.build(opts.source, opts.contract_name)
        contract.address = opts.contract

        method: dict[str, Any] = self._method(contract, method_name)
        values: list[AbiValue] = self._map_args(method.get("inputs", []), args_mapper)
        data: bytes = function_abi_to_4byte_selector(method) + encode_values(values)

        if opts.bytecode_only:
            return TxResult(calldata=data)

        client: Client = self.backend()
        ctx: TransactionContext = self._context(
            client, opts, contract, method_name, opts.value
        )
        info: CoverageEventInfo | None = self._discover_coverage(
            contract, ctx.from_address
        )

        self._transact(client, ctx, data, to=contract.address)
        assert ctx.tx_hash is not None
        result = TxResult(tx_hash=ctx.tx_hash, calldata=data)
        if not (opts.await_tx or info is not None):
            return result

        try:
            result.block_number = await_tx(
                client, ctx.tx_hash, self.config.rpc.tx_timeout
            )
        except TransactionRevertedError as e:
            raise self._reverted(
                client, ctx, data, contract.address, e, info is not None
            ) from e

        if info is not None:
            receipt: TxReceipt = self._receipt(client, ctx.tx_hash)
            self._harvest(contract, info, list(receipt["logs"]))
        return result

    def call(
        self,
        opts: ContractCallOpts,
        method_name: str,
        args_mapper: ArgsMapper | None = None,
    ) -> CallResult:
        """Calls a method and decodes its outputs. Under coverage the call is
        first sent as a mined transaction so that its markers are observable,
        then the outputs are read at the block it was mined in."""
        contract: Contract = self.build(opts.source, opts.contract_name)
        contract.address = opts.contract

        method: dict[str, Any] = self._method(contract, method_name)
        values: list[AbiValue] = self._map_args(method.get("inputs", []), args_mapper)
        data: bytes = function_abi_to_4byte_selector(method) + encode_values(values)

        from_address: str = opts.from_address or ZERO_ADDRESS
        if not opts.from_address and opts.signer is not None:
            from_address = opts.signer.address
        elif not opts.from_address and opts.private_key:
            from_address = Account.from_key(opts.private_key).address

        client: Client = self.backend()
        block_number: int | None = None

        info: CoverageEventInfo | None = self._discover_coverage(contract, from_address)
        if info is not None:
            if opts.signer is None and not opts.private_key:
                raise SignerError(
                    "call with enabled coverage, but no private key provided (for tx)"
                )
            tx_opts = ContractTxOpts(
                source=opts.source,
                contract_name=opts.contract_name,
                contract=opts.contract,
                from_address=from_address,
                private_key=opts.private_key,
                signer=opts.signer,
                await_tx=True,
            )
            block_number = self.tx(tx_opts, method_name, args_mapper).block_number

        msg: dict[str, Any] = {
            "from": from_address,
            "to": contract.address,
            "data": encode_hex(data),
        }
        try:
            result: bytes = client.call_contract(msg, block_number)
        except ContractLogicError as e:
            message: str = self._collect_revert(contract, str(e.message or e))
            raise DeployerError(f"failed to call contract method: {message}") from e

        output_abi: list[dict[str, Any]] = method.get("outputs", [])
        try:
            outputs = decode([out["type"] for out in output_abi], result)
        except DecodingError as e:
            raise DeployerError(f"failed to decode call outputs: {e}") from e
        return CallResult(outputs=list(outputs), output_abi=output_abi)

    def logs(
        self,
        opts: ContractLogsOpts,
        tx_hash: str,
        event_name: str,
        event_decoder: EventDecoder | None = None,
    ) -> list[Any]:
        """Returns the logs of a mined transaction. Logs of `event_name` are
        decoded, without such event in the ABI the raw logs are returned."""
        contract: Contract = self.build(opts.source, opts.contract_name)
        contract.address = opts.contract

        client: Client = self.backend()
        info: CoverageEventInfo | None = self._discover_coverage(
            contract, opts.from_address or ZERO_ADDRESS
        )

        receipt: TxReceipt = self._receipt(client, tx_hash)
        if receipt["status"] != 1:
            raise TransactionRevertedError(
                "transaction reverted without logs",
                block_number=receipt.get("blockNumber"),
            )

        logs: list[Mapping[str, Any]] = list(receipt["logs"])
        if info is not None:
            logs = self._harvest(contract, info, logs)

        event_abi: dict[str, Any] | None = contract.find_event(event_name)
        if event_decoder is not None and event_abi is None:
            raise EventNotFoundError(f"event not found: {event_name}")
        decoder: EventDecoder = event_decoder or decode_event_log

        events: list[Any] = []
        for log in logs:
            topics = log.get("topics") or []
            if not topics:
                continue
            if event_abi is None:
                events.append(dict(log))
                continue
            if HexBytes(topics[0]) != event_topic(event_abi):
                continue
            events.append(decoder(event_abi, log))
        return events
