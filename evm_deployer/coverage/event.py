# Author: evm-deployer developers

"""ABI pieces of the coverage event and the coverage id getter."""

from typing import Any, NamedTuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic, function_abi_to_4byte_selector

from evm_deployer.compiler.instrumenter import coverage_event_name, coverage_id_name
from evm_deployer.errors import NoCoverageInContractError


class CoverageEventInfo(NamedTuple):
    name: str
    abi: dict[str, Any]
    topic: bytes


def coverage_event_abi(definition_id: int) -> dict[str, Any]:
    return {
        "anonymous": False,
        "inputs": [
            {"indexed": False, "internalType": "uint64", "name": name, "type": "uint64"}
            for name in ("start", "end", "file")
        ],
        "name": coverage_event_name(definition_id),
        "type": "event",
    }


def coverage_event_info(definition_id: int) -> CoverageEventInfo:
    abi: dict[str, Any] = coverage_event_abi(definition_id)
    return CoverageEventInfo(abi["name"], abi, event_abi_to_log_topic(abi))


def coverage_id_abi(contract_name: str) -> dict[str, Any]:
    return {
        "inputs": [],
        "name": coverage_id_name(contract_name),
        "outputs": [{"internalType": "uint64", "name": "", "type": "uint64"}],
        "stateMutability": "view",
        "type": "function",
    }


def coverage_id_calldata(contract_name: str) -> bytes:
    return function_abi_to_4byte_selector(coverage_id_abi(contract_name))


def decode_coverage_id(result: bytes) -> int:
    """Decodes the getter's return data. An empty, undecodable or zero result
    means the contract was not compiled with coverage."""
    try:
        (definition_id,) = decode(["uint64"], bytes(result))
    except (DecodingError, ValueError) as e:
        raise NoCoverageInContractError() from e
    if definition_id == 0:
        raise NoCoverageInContractError()
    return definition_id
