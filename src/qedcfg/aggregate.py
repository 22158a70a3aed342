# -----------------------------------------------------------------------------
# Aggregation kinds and mergeable accumulators
# Purpose:
#   The reductions a statistics entry can ask for (mean, variance, circular
#   mean, ...), each a pure function over a worker-local Accumulator.
# Merging:
#   Accumulator.merge is associative and commutative up to rounding (sums,
#   Chan's pairwise mean/M2 update, and a sum of unit vectors), so partial
#   results from many workers can be combined in any order.
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple

_NAN = float("nan")


class AggregateKind(str, Enum):
    TOTAL = "total"
    MEAN = "mean"
    VARIANCE = "variance"
    MINIMUM = "minimum"
    MAXIMUM = "maximum"
    CIRCMEAN = "circmean"
    CIRCVAR = "circvar"
    CIRCSTD = "circstd"
    FORMULA = "formula"       # evaluated once from constants, never accumulated

    @property
    def is_circular(self) -> bool:
        return self in (AggregateKind.CIRCMEAN, AggregateKind.CIRCVAR, AggregateKind.CIRCSTD)


@dataclass
class Accumulator:
    count: int = 0
    weight: float = 0.0                 # sum of weights
    total: float = 0.0                  # sum of weight * x
    mean: float = 0.0                   # weighted running mean
    m2: float = 0.0                     # weighted sum of squared deviations
    minimum: float = math.inf
    maximum: float = -math.inf
    ref: Optional[float] = None         # reference angle for the circular sums
    cos_sum: float = 0.0                # sum of weight * cos(x - ref)
    sin_sum: float = 0.0                # sum of weight * sin(x - ref)

    def add(self, x: float, w: float = 1.0) -> None:
        """Fold one weighted sample in (West's weighted update)."""
        self.count += 1
        self.total += w * x
        self.minimum = min(self.minimum, x)
        self.maximum = max(self.maximum, x)
        new_weight = self.weight + w
        if new_weight != 0.0:
            delta = x - self.mean
            self.mean += delta * (w / new_weight)
            self.m2 += w * delta * (x - self.mean)
        self.weight = new_weight
        if self.ref is None:
            self.ref = x
        d = x - self.ref
        self.cos_sum += w * math.cos(d)
        self.sin_sum += w * math.sin(d)

    def extend(self, samples: Iterable[Tuple[float, float]]) -> "Accumulator":
        for x, w in samples:
            self.add(x, w)
        return self

    def merge(self, other: "Accumulator") -> "Accumulator":
        """Combine two partial results into a new accumulator."""
        if other.count == 0:
            return replace(self)
        if self.count == 0:
            return replace(other)
        weight = self.weight + other.weight
        delta = other.mean - self.mean
        if weight != 0.0:
            mean = self.mean + delta * (other.weight / weight)
            m2 = self.m2 + other.m2 + delta * delta * self.weight * other.weight / weight
        else:
            mean, m2 = self.mean, self.m2 + other.m2
        # rotate the other resultant into this reference frame
        s = other.ref - self.ref
        cos_s, sin_s = math.cos(s), math.sin(s)
        return Accumulator(
            count=self.count + other.count,
            weight=weight,
            total=self.total + other.total,
            mean=mean,
            m2=m2,
            minimum=min(self.minimum, other.minimum),
            maximum=max(self.maximum, other.maximum),
            ref=self.ref,
            cos_sum=self.cos_sum + other.cos_sum * cos_s - other.sin_sum * sin_s,
            sin_sum=self.sin_sum + other.cos_sum * sin_s + other.sin_sum * cos_s,
        )

    def resultant_length(self) -> float:
        if self.weight <= 0.0:
            return _NAN
        return min(math.hypot(self.cos_sum, self.sin_sum) / self.weight, 1.0)


def _total(acc: Accumulator) -> float:
    return acc.total


def _mean(acc: Accumulator) -> float:
    return acc.mean if acc.weight > 0.0 else _NAN


def _variance(acc: Accumulator) -> float:
    return max(acc.m2 / acc.weight, 0.0) if acc.weight > 0.0 else _NAN


def _minimum(acc: Accumulator) -> float:
    return acc.minimum if acc.count else _NAN


def _maximum(acc: Accumulator) -> float:
    return acc.maximum if acc.count else _NAN


def _circmean(acc: Accumulator) -> float:
    if acc.weight <= 0.0:
        return _NAN
    return math.remainder(acc.ref + math.atan2(acc.sin_sum, acc.cos_sum), 2.0 * math.pi)


def _circvar(acc: Accumulator) -> float:
    return 1.0 - acc.resultant_length()


def _circstd(acc: Accumulator) -> float:
    r = acc.resultant_length()
    if math.isnan(r):
        return _NAN
    if r == 0.0:
        return math.inf
    return math.sqrt(max(0.0, -2.0 * math.log(r)))


REDUCERS: Dict[AggregateKind, Callable[[Accumulator], float]] = {
    AggregateKind.TOTAL: _total,
    AggregateKind.MEAN: _mean,
    AggregateKind.VARIANCE: _variance,
    AggregateKind.MINIMUM: _minimum,
    AggregateKind.MAXIMUM: _maximum,
    AggregateKind.CIRCMEAN: _circmean,
    AggregateKind.CIRCVAR: _circvar,
    AggregateKind.CIRCSTD: _circstd,
}


def reduce(kind: AggregateKind, samples: Iterable[Tuple[float, float]]) -> float:
    """One-shot helper: fold (value, weight) pairs and finalise."""
    return REDUCERS[kind](Accumulator().extend(samples))
