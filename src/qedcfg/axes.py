# -----------------------------------------------------------------------------
# Output axis descriptor compiler
# Purpose:
#   Turn output entries such as
#     "energy"
#     "p^-:(pol_x)"
#     "angle_x:angle_y:(auto; auto; angle in 0, 20 * micro)"
#     "r_x:r_y:(-1 * micro, 1 * micro, auto, auto; pol_y)"
#   into OutputAxisSpec descriptors (1-3 axes, range, weight, restriction).
# Element rules inside the parentheses (';'-separated, at most three):
#   1 element  -> range if it looks like one ('auto', 'log', or a comma outside
#                 parentheses), else weight
#   2 elements -> range; weight
#   3 elements -> range; weight; restriction
# "auto" bounds are recorded as deferred; no data pass happens here.
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import re
from typing import Any, List, Mapping, Optional, Tuple

from .errors import AxisSpecError, ErrorEntry, QedConfigError
from .fields import Species, compile_bound, compile_variable, parse_species, split_top_level
from .nodes import Expression
from .types import (
    AutoRange, AutoWithPredicate, Axis, BinStrategy, FixedRange, OutputAxisSpec,
    PartialRange, Predicate,
)

logger = logging.getLogger(__name__)

MAX_AXES = 3
MAX_ELEMENTS = 3

_RANGE_TOKEN = re.compile(r"^(auto|log)(?:\s+(\d+))?$")
_IN = re.compile(r"\s+in\s+")

Bounds = Tuple[Optional[float], Optional[float]]


def _looks_like_range(element: str) -> bool:
    return bool(_RANGE_TOKEN.match(element)) or len(split_top_level(element)) > 1


class AxisCompiler:
    def __init__(self, table: Mapping[str, float]):
        self.table = table

    # ---------------- element parsers ----------------

    def _range(self, element: Optional[str], naxes: int) -> Tuple[List[Bounds], BinStrategy, Optional[int]]:
        if element is None:
            return [(None, None)] * naxes, BinStrategy.LINEAR, None
        m = _RANGE_TOKEN.match(element)
        if m:
            strategy = BinStrategy.LOG if m.group(1) == "log" else BinStrategy.LINEAR
            bins = int(m.group(2)) if m.group(2) else None
            if bins is not None and bins < 1:
                raise AxisSpecError(f"Bin count must be positive in '{element}'")
            return [(None, None)] * naxes, strategy, bins
        values = split_top_level(element)
        if len(values) != 2 * naxes:
            raise AxisSpecError(
                f"Range '{element}' has {len(values)} value(s); expected {2 * naxes} "
                f"(lower and upper bound for each of {naxes} axis/axes)"
            )
        bounds = [compile_bound(v, self.table, AxisSpecError) for v in values]
        pairs = [(bounds[2 * i], bounds[2 * i + 1]) for i in range(naxes)]
        for lo, hi in pairs:
            if lo is not None and hi is not None and lo >= hi:
                raise AxisSpecError(f"Lower bound {lo} is not below upper bound {hi} in '{element}'")
        return pairs, BinStrategy.LINEAR, None

    def _weight(self, element: Optional[str], species: Species) -> Optional[Expression]:
        if element is None or element == "auto":
            return None
        expr, _ = compile_variable(element, species, self.table, AxisSpecError)
        return expr

    def _restriction(self, element: Optional[str], species: Species) -> Optional[Predicate]:
        if element is None:
            return None
        parts = _IN.split(element, maxsplit=1)
        if len(parts) != 2:
            raise AxisSpecError(f"Restriction '{element}' must read '<variable> in <lo>, <hi>'")
        variable, _ = compile_variable(parts[0], species, self.table, AxisSpecError)
        bounds = split_top_level(parts[1])
        if len(bounds) != 2:
            raise AxisSpecError(f"Restriction '{element}' needs exactly two bounds")
        lo, hi = (compile_bound(b, self.table, AxisSpecError) for b in bounds)
        return Predicate(variable, lo, hi)

    # ---------------- entry points ----------------

    def compile_entry(self, species: Species, entry: str) -> OutputAxisSpec:
        """Compile one output entry for one species."""
        text = " ".join(str(entry).split())
        idx = text.find(":(")
        if idx >= 0:
            if not text.endswith(")"):
                raise AxisSpecError(f"Unbalanced parentheses in '{text}'")
            head, inner = text[:idx], text[idx + 2:-1]
            elements = [e.strip() for e in inner.split(";")]
            if len(elements) > MAX_ELEMENTS:
                raise AxisSpecError(f"At most {MAX_ELEMENTS} ';'-separated elements allowed in '{text}'")
            if any(not e for e in elements):
                raise AxisSpecError(f"Empty element in '{text}'")
        else:
            head, elements = text, []

        names = [n.strip() for n in head.split(":")]
        if not head or not 1 <= len(names) <= MAX_AXES:
            raise AxisSpecError(f"Expected 1 to {MAX_AXES} ':'-separated variables in '{text}'")
        compiled = [compile_variable(n, species, self.table, AxisSpecError) for n in names]

        rng_el = weight_el = restr_el = None
        if len(elements) == 1:
            if _looks_like_range(elements[0]):
                rng_el = elements[0]
            else:
                weight_el = elements[0]
        elif len(elements) == 2:
            rng_el, weight_el = elements
        elif len(elements) == 3:
            rng_el, weight_el, restr_el = elements

        pairs, strategy, bins = self._range(rng_el, len(names))
        weight = self._weight(weight_el, species)
        predicate = self._restriction(restr_el, species)

        axes = []
        for (expr, dim), (lo, hi) in zip(compiled, pairs):
            if lo is not None and hi is not None:
                rng = FixedRange(lo, hi)
            elif lo is None and hi is None:
                if predicate is not None and predicate.variable.root == expr.root:
                    rng = AutoWithPredicate(predicate)
                else:
                    rng = AutoRange()
            else:
                rng = PartialRange(lo, hi)
            axes.append(Axis(variable=expr, range=rng, strategy=strategy, bins=bins, dimension=dim))

        spec = OutputAxisSpec(species=species, axes=tuple(axes), weight=weight,
                              predicate=predicate, source=text, table=self.table)
        logger.debug("compiled %d-axis output '%s' for %s", spec.ndim, text, species.value)
        return spec

    def compile_section(self, entries_by_species: Mapping[str, Any],
                        location: str = "output") -> Tuple[List[OutputAxisSpec], List[ErrorEntry]]:
        specs: List[OutputAxisSpec] = []
        errors: List[ErrorEntry] = []
        for key, entries in entries_by_species.items():
            try:
                species = parse_species(key)
            except QedConfigError as e:
                errors.append(ErrorEntry(f"{location}.{key}", e))
                continue
            if isinstance(entries, str):
                entries = [entries]
            if not isinstance(entries, list):
                errors.append(ErrorEntry(f"{location}.{key}", AxisSpecError("Expected a list of output entries")))
                continue
            for i, entry in enumerate(entries):
                try:
                    specs.append(self.compile_entry(species, entry))
                except QedConfigError as e:
                    errors.append(ErrorEntry(f"{location}.{key}[{i}]", e))
        return specs, errors
