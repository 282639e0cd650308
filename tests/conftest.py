# Author: evm-deployer developers

from pathlib import Path
from typing import Any, Callable

from eth_abi import encode
from eth_utils import encode_hex, function_abi_to_4byte_selector
from hexbytes import HexBytes
import pytest
import structlog
from web3.exceptions import ContractLogicError, TransactionNotFound

from evm_deployer.config import Config
from evm_deployer.contract import Contract
from evm_deployer.coverage.event import coverage_event_info
from evm_deployer.deployer import Deployer

COUNTER_SOURCE: str = """contract A {
  function f() {
    x = 1;
  }
}
"""


@pytest.fixture(autouse=True, scope="session")
def silence_structlog() -> None:
    structlog.configure(
        logger_factory=structlog.ReturnLoggerFactory(),
        processors=[],
    )


@pytest.fixture
def counter_source(tmp_path: Path) -> Path:
    path: Path = tmp_path / "A.sol"
    path.write_text(COUNTER_SOURCE)
    return path


@pytest.fixture
def coverage_contract(counter_source: Path) -> Contract:
    """Coverage build of contract A with one statement, `x = 1;`, at bytes
    34 to 40 of A.sol (line 3, columns 5 to 11)."""
    return Contract(
        name="A",
        source_path=str(counter_source),
        all_paths=[str(counter_source)],
        coverage=True,
        statements=[(34, 6, 0)],
        abi=[],
        bin="0x6080",
    )


COVERAGE_ID: int = 1_234_567_890
PRIVATE_KEY: str = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
SENDER: str = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
CONTRACT_ADDRESS: str = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

COUNTER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"name": "start", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "constructor",
    },
    {
        "inputs": [],
        "name": "inc",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "get",
        "outputs": [{"name": "value", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [{"indexed": False, "name": "value", "type": "uint256"}],
        "name": "Incremented",
        "type": "event",
    },
]


def selector(abi: list[dict[str, Any]], name: str) -> bytes:
    return function_abi_to_4byte_selector(
        next(item for item in abi if item.get("name") == name)
    )


def coverage_log(start: int, end: int, file: int) -> dict[str, Any]:
    return {
        "topics": [HexBytes(coverage_event_info(COVERAGE_ID).topic)],
        "data": HexBytes(encode(["uint64"] * 3, [start, end, file])),
    }


class FakeClient:
    """In-memory node. Every sent transaction is mined at once into
    `block_number` with `status` and `receipt_logs`, unless `mine` is False."""

    def __init__(self) -> None:
        self.chain: int = 1337
        self.nonce: int = 5
        self.gas_price: int = 1_000_000_000
        self.block_number: int = 7
        self.status: int = 1
        self.mine: bool = True
        self.receipt_logs: list[dict[str, Any]] = []
        self.code: dict[str, bytes] = {}
        self.sent: list[Any] = []
        self.receipts: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[dict[str, Any], int | None]] = []
        self.call_results: dict[bytes, bytes | Exception] = {}
        self.estimated: list[dict[str, Any]] = []
        self.estimate_error: Exception | None = None
        self.send_error: Exception | None = None

    def chain_id(self) -> int:
        return self.chain

    def pending_nonce_at(self, address: str) -> int:
        return self.nonce

    def suggest_gas_price(self) -> int:
        return self.gas_price

    def pending_code_at(self, address: str) -> bytes:
        return self.code.get(address, b"")

    def estimate_gas(self, msg: dict[str, Any]) -> int:
        self.estimated.append(msg)
        if self.estimate_error is not None:
            raise self.estimate_error
        return 90_000

    def call_contract(
        self, msg: dict[str, Any], block_number: int | None = None
    ) -> bytes:
        self.calls.append((msg, block_number))
        result = self.call_results.get(bytes(HexBytes(msg["data"])[:4]))
        if result is None:
            raise ContractLogicError(message="execution reverted", data="0x")
        if isinstance(result, Exception):
            raise result
        return result

    def transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        if tx_hash not in self.receipts:
            raise TransactionNotFound(f"transaction {tx_hash} not found")
        return self.receipts[tx_hash]

    def send_transaction_with_ret(self, signed: Any) -> str:
        if self.send_error is not None:
            raise self.send_error
        tx_hash: str = encode_hex(signed.hash)
        self.sent.append(signed)
        if self.mine:
            self.receipts[tx_hash] = {
                "transactionHash": HexBytes(signed.hash),
                "status": self.status,
                "blockNumber": self.block_number,
                "logs": list(self.receipt_logs),
            }
        return tx_hash


class FakeCompiler:
    """Returns a fresh copy of `contract` for every build."""

    def __init__(self, contract: Contract) -> None:
        self.contract: Contract = contract
        self.builds: int = 0

    def _build(self) -> dict[str, Contract]:
        self.builds += 1
        return {self.contract.name: self.contract.model_copy(deep=True)}

    def compile(
        self, source_dir: Path, source_file: str, optimizer_runs: int = 0
    ) -> dict[str, Contract]:
        return self._build()

    def compile_with_coverage(
        self, source_dir: Path, source_file: str, instrumenter: Any = None
    ) -> dict[str, Contract]:
        return self._build()


@pytest.fixture
def counter_contract(counter_source: Path) -> Contract:
    return Contract(
        name="Counter",
        source_path=str(counter_source),
        all_paths=[str(counter_source)],
        abi=COUNTER_ABI,
        bin="6080",
    )


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def make_deployer(
    fake_client: FakeClient,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[..., Deployer]:
    """Builds a Deployer over the fake node. Keyword args become config
    groups, coverage=True compiles with coverage."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DEPLOYER_CONFIG_FILE", raising=False)

    def factory(
        contract: Contract, coverage: bool = False, **groups: Any
    ) -> Deployer:
        if coverage:
            contract = contract.model_copy(
                update={"coverage": True, "statements": [(34, 6, 0)]}
            )
        config = Config(
            contract_name=contract.name,
            source=Path(contract.source_path),
            cache={"disabled": True},
            coverage={"enabled": coverage},
            **groups,
        )
        return Deployer(
            config,
            compiler=FakeCompiler(contract),  # type: ignore[arg-type]
            client_factory=lambda: fake_client,  # type: ignore[return-value]
        )

    return factory
