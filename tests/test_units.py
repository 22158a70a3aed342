import math
import pytest

from qedcfg.errors import UnitError
from qedcfg.units import (
    TABLE_VERSION, UNITS, Dimension, UnitSystem, builtin_table, display_factor, is_builtin, system_unit,
)


def test_table_is_read_only():
    table = builtin_table()
    with pytest.raises(TypeError):
        table["c"] = 1.0
    assert builtin_table() is table


def test_core_values():
    t = builtin_table()
    assert t["c"] == 299792458.0
    assert t["eV"] == pytest.approx(1.602176634e-19)
    assert t["GeV"] == pytest.approx(1e9 * t["eV"])
    assert t["micro"] == 1e-6
    assert t["degree"] == pytest.approx(math.pi / 180)
    assert TABLE_VERSION


def test_every_unit_has_a_dimension():
    for name, unit in UNITS.items():
        assert unit.name == name
        assert isinstance(unit.dimension, Dimension)
    assert is_builtin("me") and not is_builtin("a0")


def test_display_factor_checks_dimension():
    assert display_factor(Dimension.ENERGY, "MeV") == pytest.approx(1e6 * builtin_table()["eV"])
    with pytest.raises(UnitError):
        display_factor(Dimension.ENERGY, "meter")
    with pytest.raises(UnitError):
        display_factor(None, "not_a_unit")


def test_system_units():
    factor, label = system_unit(UnitSystem.HEP, Dimension.LENGTH)
    assert label == "um" and factor == pytest.approx(1e-6)
    assert system_unit(UnitSystem.SI, Dimension.ENERGY) == (pytest.approx(1.0), "J")
    assert system_unit(UnitSystem.SI, None) == (1.0, "")
