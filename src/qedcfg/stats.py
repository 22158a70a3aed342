# -----------------------------------------------------------------------------
# Statistics descriptor compiler
# Purpose:
#   Turn the `stats` section into StatisticSpec descriptors.
# Line formats:
#   species lines:     <aggregate> <variable>[`<weight>] [<unit>] [in <lo>, <hi>]
#                      e.g. "variance angle_x`energy", "mean energy MeV"
#   expression lines:  <name>[`<label>] <expression> [<unit>]
#                      e.g. "quantum_chi 2.*initial_gamma*a0*(photon_energy/(me*c^2))"
# The aggregate keyword is mapped to its AggregateKind here, once; nothing at
# run time looks anything up by string.
# -----------------------------------------------------------------------------

# src/qedcfg/stats.py
from __future__ import annotations
import logging
import re
from typing import Any, List, Mapping, Optional, Tuple

from .aggregate import AggregateKind
from .errors import ErrorEntry, QedConfigError, UnknownVariableError
from .fields import (
    DYNAMIC_FIELDS, Species, compile_bound, compile_variable, parse_species, split_top_level,
)
from .nodes import Expression
from .parser import parse
from .safe_eval import evaluate
from .types import Predicate, StatisticSpec
from .units import Dimension, UnitSystem, display_factor, system_unit

logger = logging.getLogger(__name__)

EXPRESSION_KEY = "expression"
_IN = re.compile(r"\s+in\s+")

_SPECIES_USAGE = "expected '<aggregate> <variable>[`<weight>] [<unit>] [in <lo>, <hi>]'"
_EXPRESSION_USAGE = "expected '<name>[`<label>] <expression> [<unit>]'"


class StatsCompiler:
    def __init__(self, table: Mapping[str, float], unit_system: UnitSystem = UnitSystem.SI):
        # `table`: resolved constants layered over the built-in table
        self.table = table
        self.unit_system = unit_system

    # ---------------- helpers ----------------

    def _aggregate(self, keyword: str) -> AggregateKind:
        try:
            kind = AggregateKind(keyword)
        except ValueError:
            raise UnknownVariableError(
                f"Unknown aggregate '{keyword}'; expected one of "
                f"{[k.value for k in AggregateKind if k is not AggregateKind.FORMULA]}"
            ) from None
        if kind is AggregateKind.FORMULA:
            raise UnknownVariableError("'formula' entries belong in the 'expression' list")
        return kind

    def _display(self, kind: AggregateKind, dimension: Optional[Dimension],
                 unit: Optional[str]) -> Tuple[float, str]:
        if kind is AggregateKind.CIRCVAR:
            return 1.0, ""
        if unit is not None:
            return display_factor(dimension, unit), unit
        return system_unit(self.unit_system, dimension)

    def _window(self, variable: Expression, text: str) -> Predicate:
        bounds = split_top_level(text)
        if len(bounds) != 2:
            raise UnknownVariableError(f"Window '{text}' must be '<lo>, <hi>'")
        lo, hi = (compile_bound(b, self.table, UnknownVariableError) for b in bounds)
        return Predicate(variable, lo, hi)

    # ---------------- entry points ----------------

    def compile_line(self, species: Species, line: str) -> StatisticSpec:
        """Compile one per-species line into a StatisticSpec."""
        text = " ".join(str(line).split())
        parts = _IN.split(text, maxsplit=1)
        words = parts[0].split()
        if len(words) not in (2, 3):
            raise UnknownVariableError(f"Malformed statistics line '{text}': {_SPECIES_USAGE}")
        kind = self._aggregate(words[0])

        var_tok, tick, weight_tok = words[1].partition("`")
        if tick and not weight_tok:
            raise UnknownVariableError(f"Missing conditioning variable after '`' in '{text}'")
        variable, dimension = compile_variable(var_tok, species, self.table, UnknownVariableError)
        weight = None
        if weight_tok:
            weight, _ = compile_variable(weight_tok, species, self.table, UnknownVariableError)

        unit = words[2] if len(words) == 3 else None
        window = self._window(variable, parts[1]) if len(parts) == 2 else None
        factor, label = self._display(kind, dimension, unit)

        spec = StatisticSpec(
            name=parts[0], kind=kind, variable=variable, species=species, weight=weight,
            unit=unit, window=window, dimension=dimension, display_factor=factor,
            display_label=label, source=text, table=self.table,
        )
        logger.debug("compiled statistic %s for %s", spec.name, species.value)
        return spec

    def compile_expression(self, line: str) -> StatisticSpec:
        """
        Compile a run-level entry: evaluated once from constants, right now.
        The optional unit is a label only; the expression itself decides scale.
        """
        text = " ".join(str(line).split())
        words = text.split()
        if len(words) not in (2, 3):
            raise UnknownVariableError(f"Malformed expression line '{text}': {_EXPRESSION_USAGE}")
        name = words[0].partition("`")[0]
        expr = parse(words[1])
        for n in sorted(expr.names):
            if n in DYNAMIC_FIELDS and n not in self.table:
                raise UnknownVariableError(
                    f"'{n}' is a per-particle field and cannot be used in expression entry '{name}'"
                )
        unit = words[2] if len(words) == 3 else None
        value = evaluate(expr, self.table)
        logger.debug("expression entry %s = %r", name, value)
        return StatisticSpec(
            name=name, kind=AggregateKind.FORMULA, variable=expr, unit=unit,
            display_label=unit or "", value=value, source=text, table=self.table,
        )

    def compile_section(self, section: Mapping[str, Any],
                        location: str = "stats") -> Tuple[List[StatisticSpec], List[ErrorEntry]]:
        """
        Compile every entry of the stats section, collecting (not raising)
        errors so all of them can be reported together.
        """
        specs: List[StatisticSpec] = []
        errors: List[ErrorEntry] = []
        for key, lines in (section or {}).items():
            if isinstance(lines, str):
                lines = [lines]
            if not isinstance(lines, list):
                errors.append(ErrorEntry(f"{location}.{key}",
                                         UnknownVariableError("Expected a list of statistics lines")))
                continue
            species = None
            if key != EXPRESSION_KEY:
                try:
                    species = parse_species(key)
                except QedConfigError as e:
                    errors.append(ErrorEntry(f"{location}.{key}", e))
                    continue
            for i, line in enumerate(lines):
                try:
                    if species is None:
                        specs.append(self.compile_expression(line))
                    else:
                        specs.append(self.compile_line(species, line))
                except QedConfigError as e:
                    errors.append(ErrorEntry(f"{location}.{key}[{i}]", e))
        return specs, errors
