# -----------------------------------------------------------------------------
# Symbolic rendering (SymPy)
# Purpose:
#   Convert parsed expressions to SymPy so traces and reports can show a
#   canonical form, optionally with resolved constants substituted in
#   (e.g. "2*a0*initial_gamma*photon_energy/(c**2*me)").
# -----------------------------------------------------------------------------

from __future__ import annotations
from typing import Callable, Dict, Mapping, Optional, Union

import sympy as sp

from .errors import EvaluationError
from .nodes import BinOp, Call, Expression, Name, Node, Number, UnaryOp, UnitLiteral

_FUNCS: Dict[str, Callable[..., sp.Expr]] = {
    "sqrt": sp.sqrt, "exp": sp.exp, "ln": sp.log, "log": sp.log,
    "log10": lambda x: sp.log(x, 10),
    "sin": sp.sin, "cos": sp.cos, "tan": sp.tan,
    "asin": sp.asin, "acos": sp.acos, "atan": sp.atan, "atan2": sp.atan2,
    "sinh": sp.sinh, "cosh": sp.cosh, "tanh": sp.tanh,
    "abs": sp.Abs, "min": sp.Min, "max": sp.Max,
    "floor": sp.floor, "ceil": sp.ceiling,
}


def _num(value: float) -> sp.Expr:
    return sp.Integer(int(value)) if float(value).is_integer() else sp.Float(value)


def to_sympy(expr: Union[Expression, Node]) -> sp.Expr:
    """Build the SymPy expression for a parsed AST (names become Symbols)."""
    node = expr.root if isinstance(expr, Expression) else expr
    if isinstance(node, Number):
        return _num(node.value)
    if isinstance(node, UnitLiteral):
        return _num(node.value) * sp.Symbol(node.unit)
    if isinstance(node, Name):
        return sp.Symbol(node.id)
    if isinstance(node, UnaryOp):
        inner = to_sympy(node.operand)
        return -inner if node.op == "-" else inner
    if isinstance(node, BinOp):
        a, b = to_sympy(node.left), to_sympy(node.right)
        if node.op == "+":
            return a + b
        if node.op == "-":
            return a - b
        if node.op == "*":
            return a * b
        if node.op == "/":
            return a / b
        if node.op == "^":
            return a ** b
    if isinstance(node, Call):
        return _FUNCS[node.func](*[to_sympy(a) for a in node.args])
    raise EvaluationError(f"Cannot render node: {type(node).__name__}")


def render(expr: Union[Expression, Node], values: Optional[Mapping[str, float]] = None) -> str:
    """
    Canonical text of an expression.
    - values: if given, every name found there is replaced by its number
      (the closed-form substitution used in traces).
    """
    out = to_sympy(expr)
    if values:
        subs = {s: sp.Float(values[s.name]) for s in out.free_symbols if s.name in values}
        out = out.xreplace(subs)
    return str(out)
