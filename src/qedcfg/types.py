# -----------------------------------------------------------------------------
# Types module: compiled descriptors handed to the simulation/output side
# Purpose:
#   Immutable statistics and output-axis descriptors. Each one carries its
#   parsed expressions plus a reference to the resolved constant table, so the
#   runtime can evaluate it per particle without re-parsing anything.
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
from collections import ChainMap
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union

from .aggregate import REDUCERS, Accumulator, AggregateKind
from .fields import Species
from .nodes import Expression
from .safe_eval import evaluate
from .units import Dimension

Particle = Mapping[str, float]


# fields every particle has even when the runtime does not list them
_PARTICLE_DEFAULTS: Mapping[str, float] = MappingProxyType({"number": 1.0})


def _scope(table: Mapping[str, float], particle: Particle) -> Mapping[str, float]:
    # particle fields shadow constants of the same name
    return ChainMap(dict(particle), _PARTICLE_DEFAULTS, table)


@dataclass(frozen=True)
class Predicate:
    """
    Inclusion window on a variable: lo <= variable <= hi.
    A None bound is open on that side.
    """
    variable: Expression
    lo: Optional[float] = None
    hi: Optional[float] = None

    def admits(self, value: float) -> bool:
        if self.lo is not None and value < self.lo:
            return False
        if self.hi is not None and value > self.hi:
            return False
        return True

    def admits_particle(self, particle: Particle, table: Mapping[str, float]) -> bool:
        return self.admits(evaluate(self.variable, _scope(table, particle)))


@dataclass(frozen=True)
class StatisticSpec:
    """
    One compiled statistics entry.
    - species: None for run-level formula entries
    - variable / weight: primary and conditioning expressions
    - window: optional inclusion bounds on the primary variable
    - display_factor / display_label: SI -> reported unit
    - value: formula entries only, evaluated once at compile time
    """
    name: str
    kind: AggregateKind
    variable: Expression
    species: Optional[Species] = None
    weight: Optional[Expression] = None
    unit: Optional[str] = None
    window: Optional[Predicate] = None
    dimension: Optional[Dimension] = None
    display_factor: float = 1.0
    display_label: str = ""
    value: Optional[float] = None
    source: str = ""
    table: Mapping[str, float] = field(default_factory=dict, compare=False, repr=False)

    def sample(self, particle: Particle) -> Optional[Tuple[float, float]]:
        """(value, effective weight) for one particle, or None if outside the window."""
        scope = _scope(self.table, particle)
        x = evaluate(self.variable, scope)
        if self.window is not None and not self.window.admits(x):
            return None
        w = float(particle.get("weight", 1.0))
        if self.weight is not None:
            w *= evaluate(self.weight, scope)
        return x, w

    def accumulate(self, acc: Accumulator, particle: Particle) -> None:
        s = self.sample(particle)
        if s is not None:
            acc.add(*s)

    def finalize(self, acc: Optional[Accumulator] = None) -> float:
        """SI result of the aggregate (formula entries return their value)."""
        if self.kind is AggregateKind.FORMULA:
            return self.value
        return REDUCERS[self.kind](acc if acc is not None else Accumulator())

    def report(self, acc: Optional[Accumulator] = None) -> Tuple[float, str]:
        """Result converted to the display unit, with its label."""
        value = self.finalize(acc)
        if self.kind is AggregateKind.VARIANCE:
            return value / self.display_factor ** 2, f"({self.display_label})^2" if self.display_label else ""
        if self.kind is AggregateKind.CIRCVAR:
            return value, ""
        return value / self.display_factor, self.display_label


class BinStrategy(str, Enum):
    LINEAR = "linear"
    LOG = "log"


@dataclass(frozen=True)
class FixedRange:
    lo: float
    hi: float
    deferred = False

    def bounds(self, data_lo: float = math.nan, data_hi: float = math.nan) -> Tuple[float, float]:
        return self.lo, self.hi


@dataclass(frozen=True)
class AutoRange:
    deferred = True

    def bounds(self, data_lo: float, data_hi: float) -> Tuple[float, float]:
        return data_lo, data_hi


@dataclass(frozen=True)
class AutoWithPredicate:
    # Auto range on a variable that also carries a hard inclusion window;
    # the empirical extrema are clipped to that window.
    predicate: Predicate
    deferred = True

    def bounds(self, data_lo: float, data_hi: float) -> Tuple[float, float]:
        lo = data_lo if self.predicate.lo is None else max(data_lo, self.predicate.lo)
        hi = data_hi if self.predicate.hi is None else min(data_hi, self.predicate.hi)
        return lo, hi


@dataclass(frozen=True)
class PartialRange:
    # One bound fixed, the other taken from the data
    lo: Optional[float]
    hi: Optional[float]
    deferred = True

    def bounds(self, data_lo: float, data_hi: float) -> Tuple[float, float]:
        return (data_lo if self.lo is None else self.lo,
                data_hi if self.hi is None else self.hi)


AxisRange = Union[FixedRange, AutoRange, AutoWithPredicate, PartialRange]


@dataclass(frozen=True)
class Axis:
    variable: Expression
    range: Any = AutoRange()            # one of AxisRange
    strategy: BinStrategy = BinStrategy.LINEAR
    bins: Optional[int] = None          # None: chosen by the output writer
    dimension: Optional[Dimension] = None

    @property
    def label(self) -> str:
        return self.variable.text


@dataclass(frozen=True)
class OutputAxisSpec:
    species: Species
    axes: Tuple[Axis, ...]
    weight: Optional[Expression] = None
    predicate: Optional[Predicate] = None
    source: str = ""
    table: Mapping[str, float] = field(default_factory=dict, compare=False, repr=False)

    @property
    def ndim(self) -> int:
        return len(self.axes)

    @property
    def deferred(self) -> bool:
        return any(a.range.deferred for a in self.axes)

    def evaluate(self, particle: Particle) -> Optional[Tuple[Tuple[float, ...], float]]:
        """(coordinates, weight) of one particle, or None if the restriction rejects it."""
        scope = _scope(self.table, particle)
        if self.predicate is not None and not self.predicate.admits(evaluate(self.predicate.variable, scope)):
            return None
        coords = tuple(evaluate(a.variable, scope) for a in self.axes)
        w = float(particle.get("weight", 1.0))
        if self.weight is not None:
            w *= evaluate(self.weight, scope)
        return coords, w
