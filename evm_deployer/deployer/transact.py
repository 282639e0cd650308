# Author: evm-deployer developers

"""Building blocks shared by deploy, tx and call: building and submitting a
signed transaction, awaiting its receipt and decoding revert reasons."""

import time
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_account.datastructures import SignedTransaction
from eth_utils import encode_hex, keccak, to_canonical_address, to_checksum_address
from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict
import rlp
import structlog
from structlog.stdlib import BoundLogger
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from evm_deployer.client import Client
from evm_deployer.contract import Contract
from evm_deployer.errors import (
    AwaitTimeoutError,
    GasEstimationError,
    NoCodeError,
    NoRevertReasonError,
    SendTransactionError,
    TransactionRevertedError,
)
from evm_deployer.log_categories import LogCategories
from evm_deployer.signers import Signer

ERROR_STRING_SELECTOR: bytes = bytes.fromhex("08c379a0")
REVERT_REPLAY_GAS: int = 1_000_000
POLL_INTERVAL: float = 1.0

_logger: BoundLogger = structlog.get_logger(__name__).bind(category=LogCategories.TX)


class TransactionContext(BaseModel):
    """State of one state-changing operation. tx_hash is filled in by
    transact as soon as the transaction is signed, so it is known even when
    submission fails."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    contract: Contract
    method: str = ""
    """Empty for deployments."""
    from_address: str
    chain_id: int
    nonce: int
    signer: Signer
    value: int = 0
    gas_price: int | None = None
    gas_limit: int | None = None
    tx_hash: str | None = None


def web3_error_message(error: Web3Exception) -> str:
    """The node message of a web3 error, without the exception tuple repr."""
    message: Any = getattr(error, "message", None)
    return str(message) if message else str(error)


def create_address(sender: str, nonce: int) -> str:
    """Address of a contract created by `sender` with `nonce`."""
    encoded: bytes = rlp.encode([to_canonical_address(sender), nonce])
    return to_checksum_address(keccak(encoded)[12:])


def transact(
    client: Client, ctx: TransactionContext, data: bytes, to: str | None = None
) -> SignedTransaction:
    """Signs and submits a call to `to`, or a contract creation when `to` is
    None. Gas price and gas limit are asked from the node when unset."""
    gas_price: int = (
        ctx.gas_price if ctx.gas_price is not None else client.suggest_gas_price()
    )

    gas_limit: int | None = ctx.gas_limit
    if gas_limit is None:
        if to is not None and not client.pending_code_at(to):
            raise NoCodeError(f"no contract code at {to}")
        msg: dict[str, Any] = {
            "from": ctx.from_address,
            "value": ctx.value,
            "gasPrice": gas_price,
            "data": encode_hex(data),
        }
        if to is not None:
            msg["to"] = to
        try:
            gas_limit = client.estimate_gas(msg)
        except Web3Exception as e:
            reason: str = web3_error_message(e)
            raise GasEstimationError(
                f"failed to estimate gas needed: {reason}", reason=reason
            ) from e

    tx: dict[str, Any] = {
        "nonce": ctx.nonce,
        "gasPrice": gas_price,
        "gas": gas_limit,
        "value": ctx.value,
        "data": data,
    }
    if to is not None:
        tx["to"] = to_checksum_address(to)

    signed: SignedTransaction = ctx.signer.sign(ctx.from_address, tx)
    # The locally computed hash stays in ctx when the node rejects the tx.
    ctx.tx_hash = encode_hex(signed.hash)
    try:
        ctx.tx_hash = client.send_transaction_with_ret(signed)
    except Web3Exception as e:
        raise SendTransactionError(
            f"failed to send transaction {ctx.tx_hash}: {web3_error_message(e)}"
        ) from e

    _logger.info(
        "Sent transaction",
        tx_hash=ctx.tx_hash,
        method=ctx.method or "constructor",
        nonce=ctx.nonce,
        gas=gas_limit,
    )
    return signed


def await_tx(
    client: Client,
    tx_hash: str,
    timeout: float,
    poll_interval: float = POLL_INTERVAL,
) -> int:
    """Polls for the receipt until it is mined. Returns the block number.

    Raises AwaitTimeoutError once `timeout` seconds have passed, and
    TransactionRevertedError when the receipt has status 0."""
    deadline: float = time.monotonic() + timeout
    while True:
        try:
            receipt = client.transaction_receipt(tx_hash)
        except TransactionNotFound:
            remaining: float = deadline - time.monotonic()
            if remaining <= 0:
                raise AwaitTimeoutError(
                    f"transaction {tx_hash} not mined within {timeout}s"
                )
            time.sleep(min(poll_interval, remaining))
            continue

        block_number: int = receipt["blockNumber"]
        if receipt["status"] == 0:
            raise TransactionRevertedError(
                f"transaction {tx_hash} reverted", block_number=block_number
            )
        _logger.debug("Transaction mined", tx_hash=tx_hash, block=block_number)
        return block_number


def decode_revert_reason(result: bytes) -> str:
    """Decodes an Error(string) payload."""
    result = bytes(result)
    if not result.startswith(ERROR_STRING_SELECTOR):
        raise NoRevertReasonError("no revert reason")
    try:
        (reason,) = decode(["string"], result[4:])
    except DecodingError as e:
        raise NoRevertReasonError(f"failed to decode revert reason: {e}") from e
    return reason


def get_revert_reason(
    client: Client,
    ctx: TransactionContext,
    data: bytes,
    to: str | None,
    block_number: int | None,
) -> str:
    """Replays a reverted transaction as a call at the block it was mined in
    and returns the revert reason."""
    msg: dict[str, Any] = {
        "from": ctx.from_address,
        "gasPrice": 0,
        "gas": max(ctx.gas_limit or 0, REVERT_REPLAY_GAS),
        "value": ctx.value,
        "data": encode_hex(data),
    }
    if to is not None:
        msg["to"] = to

    try:
        result: bytes = client.call_contract(msg, block_number)
    except ContractLogicError as e:
        if isinstance(e.data, str) and e.data.startswith("0x"):
            return decode_revert_reason(HexBytes(e.data))
        message: str = str(e.message or e)
        prefix: str = "execution reverted: "
        if message.startswith(prefix):
            return message[len(prefix) :]
        raise NoRevertReasonError(message) from e
    return decode_revert_reason(result)
