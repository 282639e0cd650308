# Author: evm-deployer developers

from eth_abi import decode
import pytest

from evm_deployer.abi_args import (
    AddressValue,
    ArrayValue,
    BoolValue,
    BytesValue,
    IntValue,
    StringValue,
    UintValue,
    encode_values,
    hex_to_bytes,
    map_string_args,
    map_value,
    string_args_mapper,
)
from evm_deployer.errors import ArgumentError

ADDRESS: str = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


def test_integers() -> None:
    assert map_value("uint256", "42") == UintValue("uint256", 42)
    assert map_value("uint", "42") == UintValue("uint256", 42)
    assert map_value("int8", "-128") == IntValue("int8", -128)
    with pytest.raises(ArgumentError, match="out of range"):
        map_value("uint8", "256")
    with pytest.raises(ArgumentError, match="out of range"):
        map_value("uint64", "-1")
    with pytest.raises(ArgumentError, match="failed to parse"):
        map_value("uint256", "0x10")
    with pytest.raises(ArgumentError, match="wrong size"):
        map_value("uint7", "1")


def test_scalars() -> None:
    assert map_value("bool", "true") == BoolValue("bool", True)
    assert map_value("bool", "TRUE") == BoolValue("bool", True)
    assert map_value("bool", "yes") == BoolValue("bool", False)
    assert map_value("string", "hello, world") == StringValue("string", "hello, world")
    assert map_value("address", ADDRESS.lower()) == AddressValue("address", ADDRESS)
    with pytest.raises(ArgumentError, match="invalid address"):
        map_value("address", "0x1234")


def test_bytes() -> None:
    assert hex_to_bytes("0xabc") == b"\x0a\xbc"
    assert map_value("bytes", "0x0102") == BytesValue("bytes", b"\x01\x02")
    assert map_value("bytes4", "0x01") == BytesValue("bytes4", b"\x01\x00\x00\x00")
    assert map_value("bytes2", "0x010203") == BytesValue("bytes2", b"\x01\x02")
    with pytest.raises(ArgumentError, match="invalid hex"):
        map_value("bytes", "zz")


def test_arrays() -> None:
    assert map_value("uint256[]", "1, 2,3") == ArrayValue(
        "uint256[]",
        [UintValue("uint256", 1), UintValue("uint256", 2), UintValue("uint256", 3)],
    )
    assert map_value("uint256[]", "") == ArrayValue("uint256[]", [])
    with pytest.raises(ArgumentError, match="expects 2 elements"):
        map_value("uint256[2]", "1,2,3")
    with pytest.raises(ArgumentError, match="nested arrays unsupported"):
        map_value("uint256[][]", "1")


def test_unsupported_type() -> None:
    with pytest.raises(ArgumentError, match="unsupported argument type"):
        map_value("tuple", "1")


def test_args_count() -> None:
    inputs = [{"name": "a", "type": "uint256"}]
    with pytest.raises(ArgumentError, match="wrong args count, expected 1 but got 2"):
        map_string_args(inputs, ["1", "2"])


def test_argument_position_in_error() -> None:
    inputs = [{"name": "a", "type": "uint256"}, {"name": "b", "type": "uint8"}]
    with pytest.raises(ArgumentError, match=r"argument b \(idx 1\)"):
        map_string_args(inputs, ["1", "300"])


def test_mapper_encoding() -> None:
    inputs = [
        {"name": "amount", "type": "uint256"},
        {"name": "to", "type": "address"},
        {"name": "ids", "type": "uint64[]"},
    ]
    values = string_args_mapper(["42", ADDRESS, "7,8"])(inputs)
    data: bytes = encode_values(values)
    amount, to, ids = decode(["uint256", "address", "uint64[]"], data)
    assert amount == 42
    assert to.lower() == ADDRESS.lower()
    assert tuple(ids) == (7, 8)
    assert encode_values([]) == b""
