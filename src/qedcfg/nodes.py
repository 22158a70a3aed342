# -----------------------------------------------------------------------------
# Expression AST
# Purpose:
#   Immutable node types produced by the parser and walked by the evaluator
#   and the symbolic renderer. Nodes never hold values, only structure.
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Tuple, Union


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class UnitLiteral:
    # A number directly followed by a unit/constant name, e.g. "0.5 micro"
    value: float
    unit: str


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class BinOp:
    op: str                # one of + - * / ^
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class UnaryOp:
    op: str                # + or -
    operand: "Node"


@dataclass(frozen=True)
class Call:
    func: str
    args: Tuple["Node", ...]


Node = Union[Number, UnitLiteral, Name, BinOp, UnaryOp, Call]


def free_names(node: Node) -> FrozenSet[str]:
    """Identifiers the node reads from the symbol table (function names excluded)."""
    if isinstance(node, Name):
        return frozenset([node.id])
    if isinstance(node, UnitLiteral):
        return frozenset([node.unit])
    if isinstance(node, BinOp):
        return free_names(node.left) | free_names(node.right)
    if isinstance(node, UnaryOp):
        return free_names(node.operand)
    if isinstance(node, Call):
        out: FrozenSet[str] = frozenset()
        for a in node.args:
            out = out | free_names(a)
        return out
    return frozenset()


@dataclass(frozen=True)
class Expression:
    # Parsed expression together with its source text
    text: str
    root: Node
    names: FrozenSet[str] = field(default=frozenset())

    @staticmethod
    def of(text: str, root: Node) -> "Expression":
        return Expression(text=text, root=root, names=free_names(root))

    def __str__(self) -> str:
        return self.text
