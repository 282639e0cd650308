# Author: evm-deployer developers

"""Typed view over the compact JSON AST that solc emits.

Every JSON object carrying a `nodeType` becomes an AstNode. Known node kinds
get their own subclass with helpers for the fields the instrumenter reads or
rewrites, unknown kinds fall back to the base class. The tree converts back
to the exact JSON shape with to_json, so anything the instrumenter does not
touch is passed through unchanged."""

from typing import Any, Callable, ClassVar, Iterator, NamedTuple

from eth_utils import keccak

from evm_deployer.errors import StatementNoSrcError


class SourceLocation(NamedTuple):
    """Parsed `start:length:file` src field."""

    start: int
    length: int
    file: int

    @classmethod
    def parse(cls, src: str) -> "SourceLocation":
        parts: list[str] = src.split(":")
        if len(parts) != 3:
            raise ValueError(f"malformed src field: {src!r}")
        start, length, file = (int(part) for part in parts)
        return cls(start, length, file)

    def __str__(self) -> str:
        return f"{self.start}:{self.length}:{self.file}"


_node_classes: dict[str, type["AstNode"]] = {}


def register_node(name: str) -> Callable[[type["AstNode"]], type["AstNode"]]:
    """Class decorator that binds a subclass to a nodeType value."""

    def decorator(cls: type["AstNode"]) -> type["AstNode"]:
        cls.node_type = name
        _node_classes[name] = cls
        return cls

    return decorator


def _from_json(value: Any) -> Any:
    if isinstance(value, dict):
        if "nodeType" in value:
            return AstNode.from_json(value)
        return {key: _from_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_from_json(item) for item in value]
    return value


def _to_json(value: Any) -> Any:
    if isinstance(value, AstNode):
        return value.to_json()
    if isinstance(value, dict):
        return {key: _to_json(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    return value


def _nodes_in(value: Any) -> Iterator["AstNode"]:
    if isinstance(value, AstNode):
        yield value
    elif isinstance(value, list):
        for item in value:
            yield from _nodes_in(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _nodes_in(item)


class AstNode:
    node_type: ClassVar[str] = ""
    opaque_fields: ClassVar[tuple[str, ...]] = ()
    """Fields kept as raw JSON and never walked."""

    def __init__(self, fields: dict[str, Any]) -> None:
        self.fields: dict[str, Any] = fields

    @staticmethod
    def from_json(data: dict[str, Any]) -> "AstNode":
        cls: type[AstNode] = _node_classes.get(data.get("nodeType", ""), AstNode)
        fields: dict[str, Any] = {
            key: value if key in cls.opaque_fields else _from_json(value)
            for key, value in data.items()
        }
        return cls(fields)

    def to_json(self) -> dict[str, Any]:
        return {key: _to_json(value) for key, value in self.fields.items()}

    def __repr__(self) -> str:
        return f"<{self.kind} id={self.id} src={self.src}>"

    @property
    def kind(self) -> str:
        return self.fields.get("nodeType", "")

    @property
    def id(self) -> int | None:
        return self.fields.get("id")

    @property
    def src(self) -> str | None:
        return self.fields.get("src")

    @property
    def location(self) -> SourceLocation:
        """Parsed src field. Raises StatementNoSrcError when it is missing."""
        if not self.src:
            raise StatementNoSrcError()
        return SourceLocation.parse(self.src)

    def children(self) -> Iterator["AstNode"]:
        """Direct child nodes, in field order."""
        for key, value in self.fields.items():
            if key not in self.opaque_fields:
                yield from _nodes_in(value)

    def walk(self) -> Iterator["AstNode"]:
        """Pre-order traversal including this node."""
        yield self
        for child in self.children():
            yield from child.walk()


@register_node("SourceUnit")
class SourceUnit(AstNode):
    @property
    def nodes(self) -> list[AstNode]:
        return self.fields.setdefault("nodes", [])

    def contracts(self) -> Iterator["ContractDefinition"]:
        for node in self.nodes:
            if isinstance(node, ContractDefinition):
                yield node


@register_node("ContractDefinition")
class ContractDefinition(AstNode):
    @property
    def name(self) -> str:
        return self.fields["name"]

    @property
    def contract_kind(self) -> str:
        return self.fields.get("contractKind", "contract")

    @property
    def nodes(self) -> list[AstNode]:
        return self.fields.setdefault("nodes", [])

    def append_node(self, node: AstNode) -> None:
        self.nodes.append(node)


@register_node("Block")
class Block(AstNode):
    @property
    def statements(self) -> list[AstNode]:
        statements = self.fields.get("statements")
        if statements is None:
            statements = self.fields["statements"] = []
        return statements

    def insert_statement(self, index: int, node: AstNode) -> None:
        self.statements.insert(index, node)

    def remove_statement(self, index: int) -> AstNode:
        return self.statements.pop(index)


@register_node("ExpressionStatement")
class ExpressionStatement(AstNode):
    @property
    def expression(self) -> AstNode | None:
        return self.fields.get("expression")


@register_node("EmitStatement")
class EmitStatement(AstNode):
    @property
    def event_call(self) -> AstNode | None:
        return self.fields.get("eventCall")


@register_node("Identifier")
class Identifier(AstNode):
    @property
    def name(self) -> str:
        return self.fields.get("name", "")


@register_node("FunctionCall")
class FunctionCall(AstNode):
    @property
    def expression(self) -> AstNode | None:
        return self.fields.get("expression")

    @property
    def arguments(self) -> list[AstNode]:
        return self.fields.get("arguments") or []

    @property
    def callee_name(self) -> str | None:
        """Name of a plain identifier callee, None for member access and
        other callee shapes."""
        callee = self.expression
        if isinstance(callee, Identifier):
            return callee.name
        return None


@register_node("Literal")
class Literal(AstNode):
    @property
    def literal_kind(self) -> str:
        return self.fields.get("kind", "")

    @property
    def value(self) -> str | None:
        return self.fields.get("value")

    def set_string_value(self, text: str) -> dict[str, str]:
        """Replaces the value of a string literal and recomputes the fields
        derived from it. Returns the new type descriptions."""
        type_descriptions: dict[str, str] = string_literal_type(text)
        self.fields["value"] = text
        self.fields["hexValue"] = text.encode("utf-8").hex()
        self.fields["typeDescriptions"] = type_descriptions
        return type_descriptions


@register_node("InlineAssembly")
class InlineAssembly(AstNode):
    opaque_fields = ("AST",)


def string_literal_type(text: str) -> dict[str, str]:
    return {
        "typeIdentifier": "t_stringliteral_" + keccak(text=text).hex(),
        "typeString": f'literal_string "{text}"',
    }


def nested_blocks(node: AstNode) -> Iterator[Block]:
    """Yields the outermost blocks below a node. Blocks nested inside those
    are left for the caller to reach through them."""
    for child in node.children():
        if isinstance(child, Block):
            yield child
        else:
            yield from nested_blocks(child)
