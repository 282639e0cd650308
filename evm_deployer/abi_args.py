# Author: evm-deployer developers

"""Maps command line string arguments to typed ABI values.

Supported types are signed and unsigned integers (8 to 256 bits), bool,
string, address, dynamic and fixed bytes, and one level of arrays of those.
Nested arrays and tuples are not supported."""

import re
from typing import Any, Callable, NamedTuple, Sequence

from eth_abi import encode
from eth_utils import is_address, to_checksum_address

from evm_deployer.errors import ArgumentError


class IntValue(NamedTuple):
    abi_type: str
    value: int


class UintValue(NamedTuple):
    abi_type: str
    value: int


class BoolValue(NamedTuple):
    abi_type: str
    value: bool


class StringValue(NamedTuple):
    abi_type: str
    value: str


class AddressValue(NamedTuple):
    abi_type: str
    value: str


class BytesValue(NamedTuple):
    abi_type: str
    value: bytes


class ArrayValue(NamedTuple):
    abi_type: str
    value: list["AbiValue"]


AbiValue = IntValue | UintValue | BoolValue | StringValue | AddressValue | BytesValue | ArrayValue

ArgsMapper = Callable[[Sequence[dict[str, Any]]], list[AbiValue]]
"""Maps the ABI inputs of a method to the values to call it with."""

_ARRAY_RE = re.compile(r"^(?P<elem>.+)\[(?P<size>\d*)\]$")
_SIZED_RE = re.compile(r"^(?P<base>u?int|bytes)(?P<bits>\d*)$")


def hex_to_bytes(arg: str) -> bytes:
    text: str = arg.strip().removeprefix("0x").removeprefix("0X")
    if len(text) % 2:
        text = "0" + text
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise ArgumentError(f"invalid hex value: {arg}") from e


def to_bool(arg: str) -> bool:
    return arg.strip().lower() == "true"


def _map_integer(abi_type: str, base: str, bits: str, arg: str) -> AbiValue:
    size: int = int(bits) if bits else 256
    if size % 8 or not 8 <= size <= 256:
        raise ArgumentError(f"type {abi_type} has wrong size: {size}")
    try:
        value: int = int(arg.strip(), 10)
    except ValueError as e:
        raise ArgumentError(f"type {abi_type} failed to parse: {arg}") from e

    canonical: str = f"{base}{size}"
    if base == "uint":
        if not 0 <= value < 2**size:
            raise ArgumentError(f"value {arg} out of range for {abi_type}")
        return UintValue(canonical, value)
    if not -(2 ** (size - 1)) <= value < 2 ** (size - 1):
        raise ArgumentError(f"value {arg} out of range for {abi_type}")
    return IntValue(canonical, value)


def map_value(abi_type: str, arg: str, nested: bool = False) -> AbiValue:
    """Maps one string to a value of the given canonical ABI type name."""
    array_match = _ARRAY_RE.match(abi_type)
    if array_match:
        if nested:
            raise ArgumentError("nested arrays unsupported")
        elem_type: str = array_match.group("elem")
        if _ARRAY_RE.match(elem_type):
            raise ArgumentError("nested arrays unsupported")
        items: list[str] = [item for item in arg.split(",")] if arg.strip() else []
        size: str = array_match.group("size")
        if size and len(items) != int(size):
            raise ArgumentError(
                f"type {abi_type} expects {size} elements but got {len(items)}"
            )
        return ArrayValue(
            abi_type, [map_value(elem_type, item.strip(), nested=True) for item in items]
        )

    if abi_type == "bool":
        return BoolValue(abi_type, to_bool(arg))
    if abi_type == "string":
        return StringValue(abi_type, arg)
    if abi_type == "address":
        if not is_address(arg.strip()):
            raise ArgumentError(f"invalid address: {arg}")
        return AddressValue(abi_type, to_checksum_address(arg.strip()))

    sized = _SIZED_RE.match(abi_type)
    if sized is None:
        raise ArgumentError(f"unsupported argument type: {abi_type}")

    base, bits = sized.group("base"), sized.group("bits")
    if base == "bytes":
        data: bytes = hex_to_bytes(arg)
        if not bits:
            return BytesValue(abi_type, data)
        size_bytes: int = int(bits)
        if not 1 <= size_bytes <= 32:
            raise ArgumentError(f"type {abi_type} has wrong size: {size_bytes}")
        return BytesValue(abi_type, data[:size_bytes].ljust(size_bytes, b"\x00"))
    return _map_integer(abi_type, base, bits, arg)


def map_string_args(
    inputs: Sequence[dict[str, Any]], args: Sequence[str]
) -> list[AbiValue]:
    if len(inputs) != len(args):
        raise ArgumentError(
            f"wrong args count, expected {len(inputs)} but got {len(args)}"
        )

    values: list[AbiValue] = []
    for idx, (abi_input, arg) in enumerate(zip(inputs, args)):
        try:
            values.append(map_value(abi_input["type"], arg))
        except ArgumentError as e:
            raise ArgumentError(
                f"argument {abi_input.get('name') or '?'} (idx {idx}): {e}"
            ) from e
    return values


def string_args_mapper(args: Sequence[str]) -> ArgsMapper:
    """Returns a mapper that binds `args` to whatever inputs it is given."""

    def mapper(inputs: Sequence[dict[str, Any]]) -> list[AbiValue]:
        return map_string_args(inputs, args)

    return mapper


def _plain(value: AbiValue) -> Any:
    if isinstance(value, ArrayValue):
        return [_plain(item) for item in value.value]
    return value.value


def encode_values(values: Sequence[AbiValue]) -> bytes:
    return encode([value.abi_type for value in values], [_plain(value) for value in values])
