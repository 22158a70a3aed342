# -----------------------------------------------------------------------------
# Dynamic (per-particle) fields
# Purpose:
#   Names that statistics and output entries may reference but that only have
#   values during a run (energy, angle_x, gamma, ...), with their dimension
#   so results can be shown in display units.
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, List, Mapping, Optional, Tuple, Type

from .errors import (
    EvaluationError, ExpressionSyntaxError, FieldError, QedConfigError, UndefinedSymbolError,
)
from .nodes import Expression, Name
from .parser import parse
from .safe_eval import evaluate
from .units import Dimension


class Species(str, Enum):
    ELECTRON = "electron"
    POSITRON = "positron"
    PHOTON = "photon"


LEPTONS = frozenset([Species.ELECTRON, Species.POSITRON])
ALL_SPECIES = frozenset(Species)


@dataclass(frozen=True)
class DynamicField:
    name: str
    dimension: Dimension
    description: str
    species: FrozenSet[Species] = ALL_SPECIES

    def applies_to(self, species: Species) -> bool:
        return species in self.species


def _f(name, dimension, description, species=ALL_SPECIES) -> DynamicField:
    return DynamicField(name, dimension, description, frozenset(species))


_D = Dimension
DYNAMIC_FIELDS: Mapping[str, DynamicField] = MappingProxyType({f.name: f for f in [
    _f("number", _D.DIMENSIONLESS, "1 for every particle (use with 'total' to count)"),
    _f("weight", _D.DIMENSIONLESS, "number of real particles represented"),
    _f("energy", _D.ENERGY, "kinetic energy (photons: total energy)"),
    _f("gamma", _D.DIMENSIONLESS, "Lorentz factor", LEPTONS),
    _f("px", _D.MOMENTUM, "x-component of momentum"),
    _f("py", _D.MOMENTUM, "y-component of momentum"),
    _f("pz", _D.MOMENTUM, "z-component of momentum"),
    _f("p_perp", _D.MOMENTUM, "transverse momentum"),
    _f("p^-", _D.MOMENTUM, "lightfront momentum (E - pz c) / c"),
    _f("p^+", _D.MOMENTUM, "lightfront momentum (E + pz c) / c"),
    _f("r_x", _D.LENGTH, "x position"),
    _f("r_y", _D.LENGTH, "y position"),
    _f("r_z", _D.LENGTH, "z position"),
    _f("r_perp", _D.LENGTH, "transverse distance from the axis"),
    _f("t", _D.TIME, "time coordinate"),
    _f("angle_x", _D.ANGLE, "horizontal angle atan(px/pz)"),
    _f("angle_y", _D.ANGLE, "vertical angle atan(py/pz)"),
    _f("theta", _D.ANGLE, "polar angle from the propagation axis"),
    _f("angle", _D.ANGLE, "polar angle from the propagation axis (alias of theta)"),
    _f("phi", _D.ANGLE, "azimuthal angle"),
    _f("rapidity", _D.DIMENSIONLESS, "longitudinal rapidity"),
    _f("chi", _D.DIMENSIONLESS, "quantum parameter at creation"),
    _f("a_eff", _D.DIMENSIONLESS, "effective a0 at creation"),
    _f("pol_x", _D.DIMENSIONLESS, "projection of polarization onto x", [Species.PHOTON]),
    _f("pol_y", _D.DIMENSIONLESS, "projection of polarization onto y", [Species.PHOTON]),
    _f("helicity", _D.DIMENSIONLESS, "circular polarization degree", [Species.PHOTON]),
    _f("S_1", _D.DIMENSIONLESS, "Stokes parameter S1"),
    _f("S_2", _D.DIMENSIONLESS, "Stokes parameter S2"),
    _f("S_3", _D.DIMENSIONLESS, "Stokes parameter S3"),
]})


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on `sep` only outside parentheses, so 'max(a, b)' stays one piece."""
    parts, depth, start = [], 0, 0
    for i, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def parse_species(raw: str) -> Species:
    try:
        return Species(str(raw).strip())
    except ValueError:
        raise FieldError(f"Unknown species '{raw}'; expected one of {[s.value for s in Species]}") from None


# ---------------------------------------------------------------------------
# Shared helpers for the statistics and output compilers
# ---------------------------------------------------------------------------

def compile_variable(token: str, species: Species, table: Mapping[str, float],
                     error_cls: Type[QedConfigError]) -> Tuple[Expression, Optional[Dimension]]:
    """
    Compile a variable reference for one species.
    - A bare field name (including names like "p^-") maps straight to that field.
    - Anything else is parsed as an expression whose names must be fields of
      this species or resolved constants/built-ins.
    Returns (expression, dimension); dimension is None when it cannot be known.
    """
    token = token.strip()
    if not token:
        raise error_cls("Missing variable")
    f = DYNAMIC_FIELDS.get(token)
    if f is not None:
        if not f.applies_to(species):
            raise error_cls(f"Field '{token}' is not available for {species.value}")
        return Expression.of(token, Name(token)), f.dimension
    try:
        expr = parse(token)
    except ExpressionSyntaxError as e:
        raise error_cls(f"Cannot parse variable '{token}': {e}") from e
    for n in sorted(expr.names):
        known = DYNAMIC_FIELDS.get(n)
        if known is not None and not known.applies_to(species):
            raise error_cls(f"Field '{n}' is not available for {species.value}")
        if known is None and n not in table:
            raise error_cls(f"Unknown variable '{n}' in '{token}'")
    return expr, None


def compile_bound(text: str, table: Mapping[str, float],
                  error_cls: Type[QedConfigError]) -> Optional[float]:
    """A range bound: 'auto' gives None, anything else must evaluate from constants."""
    text = text.strip()
    if text == "auto":
        return None
    try:
        return evaluate(parse(text), table)
    except (ExpressionSyntaxError, UndefinedSymbolError, EvaluationError) as e:
        raise error_cls(f"Bound '{text}' is neither 'auto' nor a constant expression: {e}") from e
