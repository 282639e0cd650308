# Author: evm-deployer developers

"""Rewrites a solc AST so that executing it reports statement coverage.

Each executable statement is preceded by an `emit ___coverage_<id>(start,
end, file)` marker. A `require(cond, "msg")` is not preceded by a marker,
instead its message is tagged with ` @coverage,<start>,<end>,<file>` so that
a failing require can be attributed from the revert reason. Note that this
means a require that passes is never counted.

Every non-interface contract gets the event declaration and a public
constant `___coverage_id_<ContractName>` holding the definition id, which is
how the deployer discovers the event topic of a deployed contract."""

import random
from typing import Any, NamedTuple

import structlog
from structlog.stdlib import BoundLogger

from evm_deployer.compiler.ast_nodes import (
    AstNode,
    Block,
    ContractDefinition,
    ExpressionStatement,
    FunctionCall,
    Literal,
    SourceLocation,
    SourceUnit,
    nested_blocks,
)
from evm_deployer.log_categories import LogCategories

COVERAGE_TAG: str = " @coverage"
COVERAGE_EVENT_PREFIX: str = "___coverage_"
COVERAGE_ID_PREFIX: str = "___coverage_id_"

_ID_LOW: int = 1_000_000_000
_ID_HIGH: int = 10_000_000_000

_NO_SRC: str = "-1:-1:-1"
_UINT64_TYPE: dict[str, str] = {"typeIdentifier": "t_uint64", "typeString": "uint64"}


def coverage_event_name(definition_id: int) -> str:
    return f"{COVERAGE_EVENT_PREFIX}{definition_id}"


def coverage_id_name(contract_name: str) -> str:
    return f"{COVERAGE_ID_PREFIX}{contract_name}"


def coverage_tag(start: int, end: int, file: int) -> str:
    return f"{COVERAGE_TAG},{start},{end},{file}"


class InstrumentedSource(NamedTuple):
    ast: dict[str, Any]
    """The rewritten AST as JSON."""
    statements: list[tuple[int, int, int]]
    """Recorded (start, end, file) triples in processing order."""


class CoverageInstrumenter:
    """Instruments the ASTs of one compilation unit. A single instance should
    be used for all files of the unit so that they share the definition id."""

    def __init__(
        self,
        definition_id: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._rng: random.Random = rng or random.Random()
        self.definition_id: int = (
            definition_id if definition_id is not None else self._random_id()
        )
        self._logger: BoundLogger = structlog.get_logger(
            self.__class__.__name__
        ).bind(category=LogCategories.COMPILER)

    def _random_id(self) -> int:
        return self._rng.randrange(_ID_LOW, _ID_HIGH)

    def event_id(self, file_index: int) -> int:
        """Definition id used by the contracts of one file."""
        return self.definition_id + file_index

    def instrument(self, ast: dict[str, Any], file_index: int) -> InstrumentedSource:
        unit: AstNode = AstNode.from_json(ast)
        statements: list[tuple[int, int, int]] = []

        event_id: int = self.event_id(file_index)
        contracts: list[tuple[ContractDefinition, int]] = []
        if isinstance(unit, SourceUnit):
            for contract in unit.contracts():
                if contract.contract_kind == "interface":
                    continue
                event_node_id: int = self._random_id()
                contract.append_node(
                    AstNode.from_json(self._event_definition(event_id, event_node_id))
                )
                contract.append_node(
                    AstNode.from_json(self._coverage_id_constant(contract, event_id))
                )
                contracts.append((contract, event_node_id))

        self._make_nonpayable(unit)

        for contract, event_node_id in contracts:
            for block in nested_blocks(contract):
                self._instrument_block(
                    block, event_id, event_node_id, file_index, statements
                )

        self._logger.debug(
            "Instrumented source unit",
            file_index=file_index,
            contracts=len(contracts),
            statements=len(statements),
        )
        return InstrumentedSource(unit.to_json(), statements)

    @staticmethod
    def _make_nonpayable(unit: AstNode) -> None:
        for node in unit.walk():
            if node.fields.get("stateMutability") in ("view", "pure"):
                node.fields["stateMutability"] = "nonpayable"

    def _instrument_block(
        self,
        block: Block,
        event_id: int,
        event_node_id: int,
        file_index: int,
        statements: list[tuple[int, int, int]],
    ) -> None:
        # Iterate over a snapshot, markers are spliced into the live list.
        index: int = 0
        for statement in list(block.statements):
            start, end = self._statement_span(statement)
            statements.append((start, end, file_index))

            inner: list[Block] = (
                [statement]
                if isinstance(statement, Block)
                else list(nested_blocks(statement))
            )
            for inner_block in inner:
                self._instrument_block(
                    inner_block, event_id, event_node_id, file_index, statements
                )

            if not self._tag_require(statement, file_index):
                marker: dict[str, Any] = self._coverage_marker(
                    event_id, event_node_id, start, end, file_index
                )
                block.insert_statement(index, AstNode.from_json(marker))
                index += 1
            index += 1

    @staticmethod
    def _statement_span(statement: AstNode) -> tuple[int, int]:
        """Returns (start, length) of a statement. A block only spans up to
        its first child statement."""
        location: SourceLocation = statement.location
        if isinstance(statement, Block) and statement.statements:
            first: SourceLocation = statement.statements[0].location
            if first.file != location.file:
                raise ValueError(
                    f"block {location} and its first statement {first} "
                    "are in different files"
                )
            return location.start, first.start - location.start
        return location.start, location.length

    @staticmethod
    def _tag_require(statement: AstNode, file_index: int) -> bool:
        """Appends the coverage tag to the message of a `require(cond, "msg")`
        statement. Returns False for anything else."""
        if not isinstance(statement, ExpressionStatement):
            return False
        call = statement.expression
        if not isinstance(call, FunctionCall) or call.callee_name != "require":
            return False
        if len(call.arguments) < 2:
            return False
        message = call.arguments[1]
        if (
            not isinstance(message, Literal)
            or message.literal_kind != "string"
            or message.value is None
        ):
            return False

        location: SourceLocation = statement.location
        tagged: str = message.value + coverage_tag(
            location.start, location.length, file_index
        )
        type_descriptions: dict[str, str] = message.set_string_value(tagged)

        callee = call.expression
        assert callee is not None
        argument_types: list[Any] | None = callee.fields.get("argumentTypes")
        if argument_types and len(argument_types) > 1:
            argument_types[1] = dict(type_descriptions)
        return True

    # Node templates. Synthetic nodes carry no source location.

    def _uint64_parameter(self, name: str, scope: int) -> dict[str, Any]:
        return {
            "constant": False,
            "id": self._random_id(),
            "indexed": False,
            "mutability": "mutable",
            "name": name,
            "nameLocation": _NO_SRC,
            "nodeType": "VariableDeclaration",
            "scope": scope,
            "src": _NO_SRC,
            "stateVariable": False,
            "storageLocation": "default",
            "typeDescriptions": dict(_UINT64_TYPE),
            "typeName": {
                "id": self._random_id(),
                "name": "uint64",
                "nodeType": "ElementaryTypeName",
                "src": _NO_SRC,
                "typeDescriptions": dict(_UINT64_TYPE),
            },
            "visibility": "internal",
        }

    def _event_definition(self, event_id: int, event_node_id: int) -> dict[str, Any]:
        return {
            "anonymous": False,
            "id": event_node_id,
            "name": coverage_event_name(event_id),
            "nameLocation": _NO_SRC,
            "nodeType": "EventDefinition",
            "parameters": {
                "id": self._random_id(),
                "nodeType": "ParameterList",
                "parameters": [
                    self._uint64_parameter(name, event_node_id)
                    for name in ("start", "end", "file")
                ],
                "src": _NO_SRC,
            },
            "src": _NO_SRC,
        }

    def _number_literal(self, value: int) -> dict[str, Any]:
        return {
            "hexValue": str(value).encode().hex(),
            "id": self._random_id(),
            "isConstant": False,
            "isLValue": False,
            "isPure": True,
            "kind": "number",
            "lValueRequested": False,
            "nodeType": "Literal",
            "src": _NO_SRC,
            "typeDescriptions": _rational_type(value),
            "value": str(value),
        }

    def _coverage_id_constant(
        self, contract: ContractDefinition, event_id: int
    ) -> dict[str, Any]:
        return {
            "constant": True,
            "id": self._random_id(),
            "mutability": "constant",
            "name": coverage_id_name(contract.name),
            "nameLocation": _NO_SRC,
            "nodeType": "VariableDeclaration",
            "scope": contract.id,
            "src": _NO_SRC,
            "stateVariable": True,
            "storageLocation": "default",
            "typeDescriptions": dict(_UINT64_TYPE),
            "typeName": {
                "id": self._random_id(),
                "name": "uint64",
                "nodeType": "ElementaryTypeName",
                "src": _NO_SRC,
                "typeDescriptions": dict(_UINT64_TYPE),
            },
            "value": self._number_literal(event_id),
            "visibility": "public",
        }

    def _coverage_marker(
        self,
        event_id: int,
        event_node_id: int,
        start: int,
        end: int,
        file: int,
    ) -> dict[str, Any]:
        values: tuple[int, int, int] = (start, end, file)
        return {
            "eventCall": {
                "arguments": [self._number_literal(value) for value in values],
                "expression": {
                    "argumentTypes": [_rational_type(value) for value in values],
                    "id": self._random_id(),
                    "name": coverage_event_name(event_id),
                    "nodeType": "Identifier",
                    "overloadedDeclarations": [],
                    "referencedDeclaration": event_node_id,
                    "src": _NO_SRC,
                    "typeDescriptions": {
                        "typeIdentifier": "t_function_event_nonpayable"
                        "$_t_uint64_$_t_uint64_$_t_uint64_$returns$__$",
                        "typeString": "function (uint64,uint64,uint64)",
                    },
                },
                "id": self._random_id(),
                "isConstant": False,
                "isLValue": False,
                "isPure": False,
                "kind": "functionCall",
                "lValueRequested": False,
                "names": [],
                "nodeType": "FunctionCall",
                "src": _NO_SRC,
                "tryCall": False,
                "typeDescriptions": {
                    "typeIdentifier": "t_tuple$__$",
                    "typeString": "tuple()",
                },
            },
            "id": self._random_id(),
            "nodeType": "EmitStatement",
            "src": _NO_SRC,
        }


def _rational_type(value: int) -> dict[str, str]:
    return {
        "typeIdentifier": f"t_rational_{value}_by_1",
        "typeString": f"int_const {value}",
    }

