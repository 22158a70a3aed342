# -----------------------------------------------------------------------------
# Built-in Units & Physical Constants
# Purpose:
#   The fixed symbol table every configuration file can rely on (e, me, c, eV,
#   GeV, micro, degree, ...), stored as SI magnitudes, plus conversion of SI
#   results into display units for reporting.
# Scope:
#   - Resolution is dimension-free: each name is a plain SI float.
#   - Dimension tags are kept for display-unit checks only.
# Safety:
#   - The table is read-only once built; configuration files are portable only
#     while TABLE_VERSION and the values below stay fixed.
# -----------------------------------------------------------------------------

# src/qedcfg/units.py
from __future__ import annotations
import math
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from pint import UnitRegistry
from pint.errors import DimensionalityError, PintError

from .errors import UnitError

TABLE_VERSION = "codata-2018/1"


class Dimension(str, Enum):
    DIMENSIONLESS = "dimensionless"
    LENGTH = "length"
    ENERGY = "energy"
    MASS = "mass"
    TIME = "time"
    ANGLE = "angle"
    CHARGE = "charge"
    VELOCITY = "velocity"
    MOMENTUM = "momentum"
    ACTION = "action"
    PERMITTIVITY = "permittivity"


@dataclass(frozen=True)
class Unit:
    name: str
    factor: float          # SI magnitude of one `name`
    dimension: Dimension
    description: str = ""


_ELEMENTARY_CHARGE = 1.602176634e-19

# name -> (SI magnitude, dimension, description)
_DEFINITIONS: Dict[str, Tuple[float, Dimension, str]] = {
    # mathematical
    "pi": (math.pi, Dimension.DIMENSIONLESS, "ratio of circumference to diameter"),

    # physical constants (CODATA 2018)
    "e": (_ELEMENTARY_CHARGE, Dimension.CHARGE, "elementary charge [C]"),
    "me": (9.1093837015e-31, Dimension.MASS, "electron mass [kg]"),
    "mp": (1.67262192369e-27, Dimension.MASS, "proton mass [kg]"),
    "c": (299792458.0, Dimension.VELOCITY, "speed of light [m/s]"),
    "hbar": (1.054571817e-34, Dimension.ACTION, "reduced Planck constant [J s]"),
    "alpha": (7.2973525693e-3, Dimension.DIMENSIONLESS, "fine-structure constant"),
    "eps0": (8.8541878128e-12, Dimension.PERMITTIVITY, "vacuum permittivity [F/m]"),

    # energies
    "eV": (_ELEMENTARY_CHARGE, Dimension.ENERGY, "electronvolt [J]"),
    "keV": (_ELEMENTARY_CHARGE * 1e3, Dimension.ENERGY, "kiloelectronvolt [J]"),
    "MeV": (_ELEMENTARY_CHARGE * 1e6, Dimension.ENERGY, "megaelectronvolt [J]"),
    "GeV": (_ELEMENTARY_CHARGE * 1e9, Dimension.ENERGY, "gigaelectronvolt [J]"),
    "TeV": (_ELEMENTARY_CHARGE * 1e12, Dimension.ENERGY, "teraelectronvolt [J]"),

    # SI prefixes, used as multipliers: 0.5 * micro -> 5e-7
    "femto": (1e-15, Dimension.DIMENSIONLESS, "1e-15"),
    "pico": (1e-12, Dimension.DIMENSIONLESS, "1e-12"),
    "nano": (1e-9, Dimension.DIMENSIONLESS, "1e-9"),
    "micro": (1e-6, Dimension.DIMENSIONLESS, "1e-6"),
    "milli": (1e-3, Dimension.DIMENSIONLESS, "1e-3"),
    "kilo": (1e3, Dimension.DIMENSIONLESS, "1e3"),
    "mega": (1e6, Dimension.DIMENSIONLESS, "1e6"),

    # angles (radians internally)
    "degree": (math.pi / 180.0, Dimension.ANGLE, "degree [rad]"),
    "mrad": (1e-3, Dimension.ANGLE, "milliradian [rad]"),
    "urad": (1e-6, Dimension.ANGLE, "microradian [rad]"),
}

UNITS: Mapping[str, Unit] = MappingProxyType({
    name: Unit(name, factor, dim, desc) for name, (factor, dim, desc) in _DEFINITIONS.items()
})


@lru_cache(maxsize=None)
def builtin_table() -> Mapping[str, float]:
    """
    Process-wide, read-only name -> SI value table.
    Built on first use; `builtin_table.cache_clear()` resets it.
    """
    return MappingProxyType({name: u.factor for name, u in UNITS.items()})


def is_builtin(name: str) -> bool:
    return name in UNITS


# ---------------------------------------------------------------------------
# Display units (pint)
# ---------------------------------------------------------------------------

class UnitSystem(str, Enum):
    SI = "si"
    HEP = "hep"


# pint spelling of the SI unit for each dimension tag
_SI_UNITS: Dict[Dimension, str] = {
    Dimension.DIMENSIONLESS: "dimensionless",
    Dimension.LENGTH: "meter",
    Dimension.ENERGY: "joule",
    Dimension.MASS: "kilogram",
    Dimension.TIME: "second",
    Dimension.ANGLE: "radian",
    Dimension.CHARGE: "coulomb",
    Dimension.VELOCITY: "meter / second",
    Dimension.MOMENTUM: "kilogram * meter / second",
    Dimension.ACTION: "joule * second",
    Dimension.PERMITTIVITY: "farad / meter",
}

# (pint spelling, label) of the default display unit per system and dimension
_SYSTEM_UNITS: Dict[UnitSystem, Dict[Dimension, Tuple[str, str]]] = {
    UnitSystem.SI: {
        Dimension.DIMENSIONLESS: ("dimensionless", ""),
        Dimension.LENGTH: ("meter", "m"),
        Dimension.ENERGY: ("joule", "J"),
        Dimension.MASS: ("kilogram", "kg"),
        Dimension.TIME: ("second", "s"),
        Dimension.ANGLE: ("radian", "rad"),
        Dimension.CHARGE: ("coulomb", "C"),
        Dimension.VELOCITY: ("meter / second", "m/s"),
        Dimension.MOMENTUM: ("kilogram * meter / second", "kg m/s"),
    },
    UnitSystem.HEP: {
        Dimension.DIMENSIONLESS: ("dimensionless", ""),
        Dimension.LENGTH: ("micrometer", "um"),
        Dimension.ENERGY: ("MeV", "MeV"),
        Dimension.MASS: ("MeV / speed_of_light ** 2", "MeV/c^2"),
        Dimension.TIME: ("femtosecond", "fs"),
        Dimension.ANGLE: ("radian", "rad"),
        Dimension.CHARGE: ("nanocoulomb", "nC"),
        Dimension.VELOCITY: ("speed_of_light", "c"),
        Dimension.MOMENTUM: ("MeV / speed_of_light", "MeV/c"),
    },
}


@lru_cache(maxsize=None)
def _registry() -> UnitRegistry:
    # Building a registry parses pint's definition files; do it once.
    return UnitRegistry()


def display_factor(dimension: Dimension | None, unit: str) -> float:
    """
    SI magnitude of one `unit`, so that value_display = value_si / factor.
    - dimension: expected dimension of the value (None skips the check)
    - Raises UnitError for unknown or dimensionally incompatible units.
    """
    ur = _registry()
    try:
        qty = ur.Quantity(1.0, unit)
    except (PintError, AttributeError, ValueError, SyntaxError) as e:
        raise UnitError(f"Unknown display unit: {unit}") from e
    if dimension is not None:
        expected = ur.Quantity(1.0, _SI_UNITS[dimension])
        if qty.dimensionality != expected.dimensionality:
            raise UnitError(f"Unit '{unit}' is not a unit of {dimension.value}")
    try:
        return float(qty.to_base_units().magnitude)
    except DimensionalityError as e:
        raise UnitError(f"Cannot convert '{unit}' to SI") from e


def system_unit(system: UnitSystem, dimension: Dimension | None) -> Tuple[float, str]:
    """
    Default display (factor, label) for a dimension in a unit system.
    Dimensions without an entry (or unknown dimension) are reported in SI.
    """
    if dimension is None:
        return 1.0, ""
    spelled = _SYSTEM_UNITS[system].get(dimension)
    if spelled is None:
        return 1.0, _SI_UNITS[dimension]
    pint_name, label = spelled
    return display_factor(dimension, pint_name), label
