# Author: evm-deployer developers

"""Thin JSON-RPC client over web3 with the calls the deployer needs."""

from typing import Any

from eth_account.datastructures import SignedTransaction
from eth_utils import encode_hex
from hexbytes import HexBytes
from web3 import Web3
from web3.types import BlockIdentifier, TxParams, TxReceipt
import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.errors import EndpointUnreachableError
from evm_deployer.log_categories import LogCategories


class Client:
    """RPC calls used by the deployer. Errors raised by web3 are passed
    through, `transaction_receipt` raises web3's TransactionNotFound while a
    transaction is pending."""

    def __init__(self, w3: Web3) -> None:
        self.w3: Web3 = w3
        self._logger: BoundLogger = structlog.get_logger(
            self.__class__.__name__
        ).bind(category=LogCategories.RPC)

    @classmethod
    def dial(cls, endpoint: str, timeout: float) -> "Client":
        w3 = Web3(Web3.HTTPProvider(endpoint, request_kwargs={"timeout": timeout}))
        if not w3.is_connected():
            raise EndpointUnreachableError(f"failed to dial {endpoint}")
        return cls(w3)

    def chain_id(self) -> int:
        return self.w3.eth.chain_id

    def pending_nonce_at(self, address: str) -> int:
        return self.w3.eth.get_transaction_count(
            Web3.to_checksum_address(address), "pending"
        )

    def suggest_gas_price(self) -> int:
        return self.w3.eth.gas_price

    def pending_code_at(self, address: str) -> bytes:
        return bytes(
            self.w3.eth.get_code(Web3.to_checksum_address(address), "pending")
        )

    def estimate_gas(self, msg: TxParams) -> int:
        return self.w3.eth.estimate_gas(msg)

    def call_contract(
        self, msg: TxParams, block_number: BlockIdentifier | None = None
    ) -> bytes:
        return bytes(
            self.w3.eth.call(msg, "latest" if block_number is None else block_number)
        )

    def transaction_receipt(self, tx_hash: str) -> TxReceipt:
        return self.w3.eth.get_transaction_receipt(HexBytes(tx_hash))

    def send_transaction_with_ret(self, signed: SignedTransaction) -> str:
        """Submits a signed transaction as raw RLP and returns the hash the
        node reports for it."""
        tx_hash: Any = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        self._logger.debug("Sent raw transaction", tx_hash=encode_hex(tx_hash))
        return encode_hex(tx_hash)
