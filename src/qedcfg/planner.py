# -----------------------------------------------------------------------------
# Planner: constant dependency graph and evaluation order
# Goal: Given the user's `constants` section (name -> literal or expression)
#       and the built-in table, order the constants so each one is evaluated
#       after everything it references, then evaluate them once.
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
from collections import ChainMap
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from .errors import (
    CyclicDependencyError, ErrorEntry, EvaluationError, ExpressionSyntaxError,
    FieldError, SymbolCollisionError, UndefinedSymbolError,
)
from .nodes import Expression, Number
from .parser import parse
from .safe_eval import evaluate
from .units import builtin_table

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass
class PlanStep:
    # One constant to evaluate, and the user constants it reads.
    name: str
    expression: Expression
    depends_on: Set[str]


@dataclass
class Plan:
    # Steps in evaluation order, plus everything that could not be planned.
    steps: List[PlanStep]
    errors: List[ErrorEntry] = field(default_factory=list)
    failed: Set[str] = field(default_factory=set)


@dataclass
class Resolution:
    values: Dict[str, float]
    errors: List[ErrorEntry]
    failed: Set[str]
    order: List[str]
    expressions: Dict[str, Expression] = field(default_factory=dict)


class Planner:
    """
    Depth-first, three-colour topological sort over user constants:
      - white: not visited; gray: on the current DFS path; black: done.
      - Meeting a gray node closes a cycle; the whole cycle is reported once.
      - Names are visited in sorted order, so the plan does not depend on the
        order constants were written in the file.
    """
    def __init__(self, constants: Mapping[str, Any], builtins: Optional[Mapping[str, float]] = None,
                 location: str = "constants"):
        self.raw = dict(constants or {})
        self.builtins = builtins if builtins is not None else builtin_table()
        self.location = location

    def _where(self, name: str) -> str:
        return f"{self.location}.{name}"

    def _to_expression(self, name: str, raw: Any) -> Expression:
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            raise FieldError(f"Constant '{name}' must be a number or an expression, got {type(raw).__name__}")
        if isinstance(raw, str):
            return parse(raw)
        return Expression.of(repr(raw), Number(float(raw)))

    def plan(self) -> Plan:
        errors: List[ErrorEntry] = []
        failed: Set[str] = set()
        parsed: Dict[str, Expression] = {}
        deps: Dict[str, Set[str]] = {}

        # ---- Parse each constant and collect its edges ----------------------
        for name in sorted(self.raw):
            if name in self.builtins:
                errors.append(ErrorEntry(self._where(name), SymbolCollisionError(name)))
                failed.add(name)
                continue
            try:
                parsed[name] = self._to_expression(name, self.raw[name])
            except (ExpressionSyntaxError, FieldError) as e:
                errors.append(ErrorEntry(self._where(name), e))
                failed.add(name)
                continue
            names = parsed[name].names
            deps[name] = {n for n in names if n in self.raw and n not in self.builtins}
            for missing in sorted(n for n in names if n not in self.raw and n not in self.builtins):
                errors.append(ErrorEntry(self._where(name), UndefinedSymbolError(missing, referenced_by=name)))
                failed.add(name)

        # ---- Topological order with cycle detection -------------------------
        color = {n: _WHITE for n in parsed}
        order: List[str] = []
        path: List[str] = []

        def visit(n: str) -> None:
            color[n] = _GRAY
            path.append(n)
            for d in sorted(deps[n]):
                if d not in color:
                    continue  # failed before planning; reported already
                if color[d] == _GRAY:
                    cycle = path[path.index(d):] + [d]
                    errors.append(ErrorEntry(self._where(d), CyclicDependencyError(cycle)))
                    failed.update(cycle)
                elif color[d] == _WHITE:
                    visit(d)
            path.pop()
            color[n] = _BLACK
            order.append(n)

        for n in sorted(parsed):
            if color[n] == _WHITE:
                visit(n)

        # ---- Anything downstream of a failure fails silently ----------------
        for n in order:
            if n not in failed and any(d in failed or d not in parsed for d in deps[n]):
                failed.add(n)

        steps = [PlanStep(n, parsed[n], deps[n]) for n in order if n not in failed]
        logger.debug("constant evaluation order: %s", [s.name for s in steps])
        return Plan(steps=steps, errors=errors, failed=failed)

    def resolve(self) -> Resolution:
        """
        Evaluate every plannable constant in order.
        Returns the values and every error found (nothing is raised here).
        """
        plan = self.plan()
        values: Dict[str, float] = {}
        table = ChainMap(values, self.builtins)
        errors = list(plan.errors)
        failed = set(plan.failed)
        for step in plan.steps:
            if step.depends_on & failed:
                failed.add(step.name)
                continue
            try:
                values[step.name] = evaluate(step.expression, table)
            except EvaluationError as e:
                errors.append(ErrorEntry(self._where(step.name), e))
                failed.add(step.name)
        return Resolution(values=values, errors=errors, failed=failed, order=[s.name for s in plan.steps],
                          expressions={s.name: s.expression for s in plan.steps})
