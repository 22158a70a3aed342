# -----------------------------------------------------------------------------
# Safe expression evaluator (tree-walk over a whitelisted function registry)
# Purpose:
#   Evaluate a parsed expression against a caller-supplied symbol table,
#   using only the functions registered below. No Python eval, no globals.
# Safety:
#   - Pure: nothing is cached or mutated, so one AST can be evaluated from many
#     threads with different tables (constants, or constants + particle fields).
#   - Every intermediate result must be finite; NaN/inf never leak out.
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
from typing import Callable, Dict, Mapping, Tuple, Union

from .errors import DivisionByZeroError, DomainError, EvaluationError, UndefinedSymbolError
from .nodes import BinOp, Call, Expression, Name, Node, Number, UnaryOp, UnitLiteral

# name -> (callable, number of arguments)
FUNCTIONS: Dict[str, Tuple[Callable[..., float], int]] = {
    "sqrt": (math.sqrt, 1),
    "exp": (math.exp, 1),
    "ln": (math.log, 1),       # natural log
    "log": (math.log, 1),      # alias for natural log
    "log10": (math.log10, 1),
    "sin": (math.sin, 1),
    "cos": (math.cos, 1),
    "tan": (math.tan, 1),
    "asin": (math.asin, 1),
    "acos": (math.acos, 1),
    "atan": (math.atan, 1),
    "atan2": (math.atan2, 2),
    "sinh": (math.sinh, 1),
    "cosh": (math.cosh, 1),
    "tanh": (math.tanh, 1),
    "abs": (abs, 1),
    "min": (min, 2),
    "max": (max, 2),
    "floor": (math.floor, 1),
    "ceil": (math.ceil, 1),
}


def _finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise DomainError(f"Non-finite result ({value}) from {what}")
    return value


def _lookup(name: str, table: Mapping[str, float]) -> float:
    try:
        value = table[name]
    except KeyError:
        raise UndefinedSymbolError(name) from None
    return _finite(float(value), f"symbol '{name}'")


def _power(base: float, exponent: float) -> float:
    if base == 0.0 and exponent < 0.0:
        raise DivisionByZeroError(f"0 raised to negative power {exponent}")
    if base < 0.0 and not float(exponent).is_integer():
        raise DomainError(f"Negative base {base} with non-integer exponent {exponent}")
    try:
        return base ** exponent
    except OverflowError:
        raise DomainError(f"Overflow in {base} ^ {exponent}") from None


def _binop(op: str, left: float, right: float) -> float:
    if op == "+":
        out = left + right
    elif op == "-":
        out = left - right
    elif op == "*":
        out = left * right
    elif op == "/":
        if right == 0.0:
            raise DivisionByZeroError(f"Division of {left} by zero")
        out = left / right
    elif op == "^":
        out = _power(left, right)
    else:
        raise EvaluationError(f"Unsupported operator: {op}")
    return _finite(out, f"{left} {op} {right}")


def _call(name: str, args: Tuple[float, ...]) -> float:
    if name not in FUNCTIONS:
        raise EvaluationError(f"Unsupported function: {name}")
    fn, arity = FUNCTIONS[name]
    if len(args) != arity:
        raise EvaluationError(f"{name}() expects {arity} argument(s), got {len(args)}")
    try:
        out = float(fn(*args))
    except ValueError:
        raise DomainError(f"{name}{args} is outside the function's domain") from None
    except OverflowError:
        raise DomainError(f"Overflow in {name}{args}") from None
    return _finite(out, f"{name}{args}")


def _eval(node: Node, table: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, UnitLiteral):
        return _binop("*", node.value, _lookup(node.unit, table))
    if isinstance(node, Name):
        return _lookup(node.id, table)
    if isinstance(node, UnaryOp):
        val = _eval(node.operand, table)
        return -val if node.op == "-" else val
    if isinstance(node, BinOp):
        return _binop(node.op, _eval(node.left, table), _eval(node.right, table))
    if isinstance(node, Call):
        return _call(node.func, tuple(_eval(a, table) for a in node.args))
    raise EvaluationError(f"Unsupported node: {type(node).__name__}")


def evaluate(expr: Union[Expression, Node], table: Mapping[str, float]) -> float:
    """
    Evaluate a parsed expression to a float (SI units).

    Parameters
    ----------
    expr : Expression or Node
        Output of `qedcfg.parser.parse` (or its root node).
    table : Mapping[str, float]
        Symbol values; usually a ChainMap of particle fields over user
        constants over the built-in table.

    Raises
    ------
    UndefinedSymbolError, DivisionByZeroError, DomainError
    """
    node = expr.root if isinstance(expr, Expression) else expr
    return _eval(node, table)
