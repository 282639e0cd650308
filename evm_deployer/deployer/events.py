# Author: evm-deployer developers

"""Decoding of receipt logs into plain dicts."""

from typing import Any, Callable, Mapping

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, event_abi_to_log_topic
from hexbytes import HexBytes

from evm_deployer.errors import EventParseError

EventDecoder = Callable[[Mapping[str, Any], Mapping[str, Any]], Any]
"""Turns (event ABI, log) into the value returned for that log."""


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in ("string", "bytes") or abi_type.endswith("]")


def event_topic(event_abi: Mapping[str, Any]) -> bytes:
    return event_abi_to_log_topic(dict(event_abi))


def decode_event_log(
    event_abi: Mapping[str, Any], log: Mapping[str, Any]
) -> dict[str, Any]:
    """Decodes one log of `event_abi`. Indexed values come from the topics,
    dynamic indexed values are only available as their hash."""
    inputs: list[dict[str, Any]] = list(event_abi["inputs"])
    topics: list[HexBytes] = [HexBytes(topic) for topic in log.get("topics", [])]
    indexed: list[dict[str, Any]] = [arg for arg in inputs if arg.get("indexed")]
    plain: list[dict[str, Any]] = [arg for arg in inputs if not arg.get("indexed")]

    if len(topics) != len(indexed) + 1:
        raise EventParseError(
            f"log has {len(topics)} topics, event {event_abi['name']} "
            f"expects {len(indexed) + 1}"
        )

    result: dict[str, Any] = {}
    try:
        for arg, topic in zip(indexed, topics[1:]):
            if _is_dynamic(arg["type"]):
                result[arg["name"]] = encode_hex(topic)
            else:
                (result[arg["name"]],) = decode([arg["type"]], bytes(topic))

        values = decode([arg["type"] for arg in plain], HexBytes(log.get("data", b"")))
    except (DecodingError, ValueError) as e:
        raise EventParseError(f"unable to unmarshal log: {e}") from e

    for arg, value in zip(plain, values):
        result[arg["name"]] = value
    return result


def to_jsonable(value: Any) -> Any:
    """Converts web3 and eth-abi values into JSON friendly ones. Bytes become
    0x hex strings."""
    if isinstance(value, (bytes, bytearray)):
        return encode_hex(bytes(value))
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value
