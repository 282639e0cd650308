# Author: evm-deployer developers

from pathlib import Path
from threading import Thread
import time

from eth_abi import encode
from eth_account import Account
from eth_utils import encode_hex
from hexbytes import HexBytes
import pytest
from web3.exceptions import ContractLogicError, Web3RPCError

from conftest import (
    CONTRACT_ADDRESS,
    COVERAGE_ID,
    PRIVATE_KEY,
    SENDER,
    FakeClient,
    coverage_log,
    selector,
)
from evm_deployer.abi_args import string_args_mapper
from evm_deployer.contract import Contract
from evm_deployer.coverage.event import coverage_id_calldata
from evm_deployer.deployer import (
    ContractCallOpts,
    ContractDeployOpts,
    ContractLogsOpts,
    ContractTxOpts,
    Deployer,
)
from evm_deployer.deployer.events import event_topic
from evm_deployer.deployer.transact import (
    ERROR_STRING_SELECTOR,
    await_tx,
    create_address,
    decode_revert_reason,
)
from evm_deployer.errors import (
    ArgumentError,
    AwaitTimeoutError,
    DeployerError,
    EndpointUnreachableError,
    EventNotFoundError,
    GasEstimationError,
    MethodNotFoundError,
    NoCodeError,
    NoRevertReasonError,
    SendTransactionError,
    SignerError,
    TransactionRevertedError,
)


def _error(reason: str) -> bytes:
    return ERROR_STRING_SELECTOR + encode(["string"], [reason])


def _tx_opts(contract: Contract, **kwargs) -> ContractTxOpts:
    return ContractTxOpts(
        source=Path(contract.source_path),
        contract_name=contract.name,
        contract=CONTRACT_ADDRESS,
        private_key=PRIVATE_KEY,
        **kwargs,
    )


def _enable_coverage_id(client: FakeClient, name: str = "Counter") -> None:
    client.call_results[coverage_id_calldata(name)] = encode(["uint64"], [COVERAGE_ID])


def test_create_address() -> None:
    # Well known first contract address of this sender.
    address: str = create_address("0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0", 0)
    assert address.lower() == "0xcd234a471b72ba2f1ccf0a70fcaba648a5eecd8d"


def test_decode_revert_reason() -> None:
    assert decode_revert_reason(_error("too big")) == "too big"
    with pytest.raises(NoRevertReasonError):
        decode_revert_reason(b"\x00\x01")


def test_await_timeout(fake_client: FakeClient) -> None:
    start: float = time.monotonic()
    with pytest.raises(AwaitTimeoutError):
        await_tx(fake_client, "0x01", timeout=0.05, poll_interval=0.01)  # type: ignore[arg-type]
    assert time.monotonic() - start < 1


def test_deploy_bytecode_only(make_deployer, counter_contract: Contract) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    opts = ContractDeployOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        bytecode_only=True,
    )
    result = deployer.deploy(opts, string_args_mapper(["42"]))
    assert result.bytecode == bytes.fromhex("6080") + encode(["uint256"], [42])
    assert result.tx_hash is None


def test_deploy_requires_constructor_args(
    make_deployer, counter_contract: Contract
) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    opts = ContractDeployOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        bytecode_only=True,
    )
    with pytest.raises(ArgumentError):
        deployer.deploy(opts)
    with pytest.raises(ArgumentError, match="wrong args count"):
        deployer.deploy(opts, string_args_mapper([]))


def test_deploy(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    opts = ContractDeployOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        private_key=PRIVATE_KEY,
        await_tx=True,
    )
    result = deployer.deploy(opts, string_args_mapper(["1"]))

    assert result.contract.address == create_address(SENDER, fake_client.nonce)
    assert result.block_number == fake_client.block_number
    (signed,) = fake_client.sent
    assert result.tx_hash == encode_hex(signed.hash)
    assert Account.recover_transaction(signed.raw_transaction) == SENDER


def test_deploy_timeout(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.mine = False
    deployer: Deployer = make_deployer(counter_contract, rpc={"tx_timeout": 0.1})
    opts = ContractDeployOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        private_key=PRIVATE_KEY,
        await_tx=True,
    )
    with pytest.raises(AwaitTimeoutError):
        deployer.deploy(opts, string_args_mapper(["1"]))


def test_tx_bytecode_only(make_deployer, counter_contract: Contract) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    result = deployer.tx(_tx_opts(counter_contract, bytecode_only=True), "inc")
    assert result.calldata == selector(counter_contract.abi, "inc")

    with pytest.raises(MethodNotFoundError):
        deployer.tx(_tx_opts(counter_contract, bytecode_only=True), "dec")


def test_tx(make_deployer, fake_client: FakeClient, counter_contract: Contract) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    result = deployer.tx(_tx_opts(counter_contract, await_tx=True), "inc")
    assert result.block_number == fake_client.block_number
    assert fake_client.estimated == []


def test_tx_without_signer(make_deployer, counter_contract: Contract) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    opts = _tx_opts(counter_contract).model_copy(update={"private_key": None})
    with pytest.raises(SignerError):
        deployer.tx(opts, "inc")


def test_tx_estimates_gas(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    deployer: Deployer = make_deployer(counter_contract, tx={"gas_limit": 0})
    with pytest.raises(NoCodeError):
        deployer.tx(_tx_opts(counter_contract), "inc")

    fake_client.code[CONTRACT_ADDRESS] = b"\x60\x80"
    deployer.tx(_tx_opts(counter_contract), "inc")
    assert len(fake_client.estimated) == 1
    assert fake_client.sent[-1].raw_transaction


def test_tx_gas_estimate_failure(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.code[CONTRACT_ADDRESS] = b"\x60\x80"
    fake_client.estimate_error = ContractLogicError(
        message="execution reverted: too big", data="0x"
    )
    deployer: Deployer = make_deployer(counter_contract, tx={"gas_limit": 0})

    with pytest.raises(GasEstimationError, match="too big") as e:
        deployer.tx(_tx_opts(counter_contract), "inc")
    assert e.value.reason == "execution reverted: too big"
    assert fake_client.sent == []


def test_tx_gas_estimate_failure_coverage(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    _enable_coverage_id(fake_client)
    fake_client.code[CONTRACT_ADDRESS] = b"\x60\x80"
    fake_client.estimate_error = ContractLogicError(
        message="execution reverted: too big @coverage,34,6,0", data="0x"
    )
    deployer: Deployer = make_deployer(
        counter_contract, coverage=True, tx={"gas_limit": 0}
    )

    with pytest.raises(GasEstimationError) as e:
        deployer.tx(_tx_opts(counter_contract), "inc")
    assert e.value.reason == "execution reverted: too big"
    assert "@coverage" not in str(e.value)
    assert deployer.coverage is not None
    assert list(deployer.coverage.statements().values()) == [1]


def test_deploy_gas_estimate_failure_trims_tag(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.estimate_error = ContractLogicError(
        message="execution reverted: bad start @coverage,34,6,0", data="0x"
    )
    deployer: Deployer = make_deployer(counter_contract, tx={"gas_limit": 0})
    opts = ContractDeployOpts(
        source=Path(counter_contract.source_path),
        contract_name=counter_contract.name,
        private_key=PRIVATE_KEY,
    )

    with pytest.raises(DeployerError, match="bad start$"):
        deployer.deploy(opts, string_args_mapper(["42"]))


def test_tx_send_failure(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.send_error = Web3RPCError("insufficient funds for gas * price + value")
    deployer: Deployer = make_deployer(counter_contract)

    # The locally computed hash names the rejected transaction.
    with pytest.raises(
        SendTransactionError,
        match=r"failed to send transaction 0x[0-9a-f]{64}: insufficient funds",
    ):
        deployer.tx(_tx_opts(counter_contract, await_tx=True), "inc")
    assert fake_client.sent == []
    assert fake_client.receipts == {}


def test_tx_revert_reason(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.status = 0
    fake_client.call_results[selector(counter_contract.abi, "inc")] = _error("too big")
    deployer: Deployer = make_deployer(counter_contract)

    with pytest.raises(TransactionRevertedError, match="too big") as e:
        deployer.tx(_tx_opts(counter_contract, await_tx=True), "inc")
    assert e.value.reason == "too big"
    assert e.value.block_number == fake_client.block_number
    # The replay runs at the block the transaction was mined in.
    assert fake_client.calls[-1][1] == fake_client.block_number


def test_tx_revert_message(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.status = 0
    fake_client.call_results[selector(counter_contract.abi, "inc")] = (
        ContractLogicError(message="execution reverted: nope", data=None)
    )
    deployer: Deployer = make_deployer(counter_contract)
    with pytest.raises(TransactionRevertedError) as e:
        deployer.tx(_tx_opts(counter_contract, await_tx=True), "inc")
    assert e.value.reason == "nope"


def test_tx_revert_without_reason(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.status = 0
    deployer: Deployer = make_deployer(counter_contract)
    with pytest.raises(TransactionRevertedError, match="without a reason") as e:
        deployer.tx(_tx_opts(counter_contract, await_tx=True), "inc")
    assert e.value.reason is None


def test_tx_coverage(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    _enable_coverage_id(fake_client)
    other_log = {"topics": [HexBytes(b"\x11" * 32)], "data": HexBytes(b"")}
    fake_client.receipt_logs = [coverage_log(34, 6, 0), other_log]
    deployer: Deployer = make_deployer(counter_contract, coverage=True)

    deployer.tx(_tx_opts(counter_contract), "inc")
    deployer.tx(_tx_opts(counter_contract), "inc")

    assert deployer.coverage is not None
    assert list(deployer.coverage.statements().values()) == [2]


def test_tx_coverage_from_revert(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    _enable_coverage_id(fake_client)
    fake_client.status = 0
    fake_client.call_results[selector(counter_contract.abi, "inc")] = _error(
        "too big @coverage,34,6,0"
    )
    deployer: Deployer = make_deployer(counter_contract, coverage=True)

    with pytest.raises(TransactionRevertedError) as e:
        deployer.tx(_tx_opts(counter_contract), "inc")
    assert e.value.reason == "too big"
    assert deployer.coverage is not None
    assert list(deployer.coverage.statements().values()) == [1]


def test_tx_contract_without_coverage(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.receipt_logs = [coverage_log(34, 6, 0)]
    deployer: Deployer = make_deployer(counter_contract, coverage=True)

    result = deployer.tx(_tx_opts(counter_contract), "inc")
    assert result.tx_hash is not None
    assert deployer.coverage is not None
    assert deployer.coverage.statements() == {}


def test_deploy_coverage(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    _enable_coverage_id(fake_client)
    fake_client.receipt_logs = [coverage_log(34, 6, 0)]
    deployer: Deployer = make_deployer(counter_contract, coverage=True)
    opts = ContractDeployOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        private_key=PRIVATE_KEY,
    )

    result = deployer.deploy(opts, string_args_mapper(["1"]))
    assert result.block_number == fake_client.block_number
    coverage_call, _ = fake_client.calls[0]
    assert coverage_call["to"] == result.contract.address
    assert deployer.coverage is not None
    assert list(deployer.coverage.statements().values()) == [1]


def test_call(make_deployer, fake_client: FakeClient, counter_contract: Contract) -> None:
    fake_client.call_results[selector(counter_contract.abi, "get")] = encode(
        ["uint256"], [7]
    )
    deployer: Deployer = make_deployer(counter_contract)
    opts = ContractCallOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        contract=CONTRACT_ADDRESS,
        private_key=PRIVATE_KEY,
    )

    result = deployer.call(opts, "get")
    assert result.outputs == [7]
    assert result.named() == {"value": 7}
    msg, block = fake_client.calls[-1]
    assert msg["from"] == SENDER
    assert block is None
    assert fake_client.sent == []


def test_call_revert(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.call_results[selector(counter_contract.abi, "get")] = (
        ContractLogicError(message="execution reverted: empty", data=None)
    )
    deployer: Deployer = make_deployer(counter_contract)
    opts = ContractCallOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        contract=CONTRACT_ADDRESS,
    )
    with pytest.raises(DeployerError, match="failed to call contract method"):
        deployer.call(opts, "get")


def test_call_coverage(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    _enable_coverage_id(fake_client)
    fake_client.call_results[selector(counter_contract.abi, "get")] = encode(
        ["uint256"], [7]
    )
    fake_client.receipt_logs = [coverage_log(34, 6, 0)]
    fake_client.block_number = 12
    deployer: Deployer = make_deployer(counter_contract, coverage=True)
    opts = ContractCallOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        contract=CONTRACT_ADDRESS,
        private_key=PRIVATE_KEY,
    )

    result = deployer.call(opts, "get")
    assert result.outputs == [7]
    assert len(fake_client.sent) == 1
    _, block = fake_client.calls[-1]
    assert block == 12
    assert deployer.coverage is not None
    assert list(deployer.coverage.statements().values()) == [1]


def test_call_coverage_requires_key(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    _enable_coverage_id(fake_client)
    deployer: Deployer = make_deployer(counter_contract, coverage=True)
    opts = ContractCallOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        contract=CONTRACT_ADDRESS,
    )
    with pytest.raises(SignerError, match="no private key provided"):
        deployer.call(opts, "get")


def test_logs(make_deployer, fake_client: FakeClient, counter_contract: Contract) -> None:
    event = next(item for item in counter_contract.abi if item.get("name") == "Incremented")

    fake_client.receipt_logs = [
        {
            "topics": [HexBytes(event_topic(event))],
            "data": HexBytes(encode(["uint256"], [3])),
        },
        {"topics": [HexBytes(b"\x22" * 32)], "data": HexBytes(b"")},
    ]
    deployer: Deployer = make_deployer(counter_contract)
    tx_hash = deployer.tx(_tx_opts(counter_contract), "inc").tx_hash
    assert tx_hash is not None

    opts = ContractLogsOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        contract=CONTRACT_ADDRESS,
    )
    assert deployer.logs(opts, tx_hash, "Incremented") == [{"value": 3}]

    raw = deployer.logs(opts, tx_hash, "Missing")
    assert len(raw) == 2

    with pytest.raises(EventNotFoundError):
        deployer.logs(opts, tx_hash, "Missing", lambda abi, log: log)

    decoded = deployer.logs(opts, tx_hash, "Incremented", lambda abi, log: abi["name"])
    assert decoded == ["Incremented"]


def test_logs_of_reverted_tx(
    make_deployer, fake_client: FakeClient, counter_contract: Contract
) -> None:
    fake_client.receipts["0xaa"] = {"status": 0, "blockNumber": 3, "logs": []}
    deployer: Deployer = make_deployer(counter_contract)
    opts = ContractLogsOpts(
        source=Path(counter_contract.source_path),
        contract_name="Counter",
        contract=CONTRACT_ADDRESS,
    )
    with pytest.raises(TransactionRevertedError, match="without logs"):
        deployer.logs(opts, "0xaa", "Incremented")


def test_backend_dialed_once(counter_contract: Contract, make_deployer) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    dials: list[int] = []

    def dial() -> FakeClient:
        dials.append(1)
        time.sleep(0.05)
        return FakeClient()

    deployer._client_factory = dial  # type: ignore[assignment]
    clients: list[object] = []
    threads = [Thread(target=lambda: clients.append(deployer.backend())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(dials) == 1
    assert len(clients) == 8
    assert all(client is clients[0] for client in clients)


def test_failed_dial_is_retried(counter_contract: Contract, make_deployer) -> None:
    deployer: Deployer = make_deployer(counter_contract)
    attempts: list[int] = []

    def dial() -> FakeClient:
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("connection refused")
        return FakeClient()

    deployer._client_factory = dial  # type: ignore[assignment]
    with pytest.raises(EndpointUnreachableError, match="connection refused"):
        deployer.backend()
    assert isinstance(deployer.backend(), FakeClient)
