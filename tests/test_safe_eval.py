import math
import pytest

from qedcfg.errors import DivisionByZeroError, DomainError, UndefinedSymbolError
from qedcfg.parser import parse
from qedcfg.safe_eval import evaluate
from qedcfg.units import builtin_table


def ev(text, **extra):
    table = dict(builtin_table())
    table.update(extra)
    return evaluate(parse(text), table)


def test_unit_literal_and_explicit_product_agree():
    assert ev("0.5 * micro") == pytest.approx(5.0e-7, rel=1e-15)
    assert ev("0.5 micro") == ev("0.5 * micro")


def test_gamma_from_energy_matches_closed_form():
    got = ev("1.0 * GeV / (0.510999 * 1.0e6 * eV)")
    assert got == pytest.approx(1.0e9 / 0.510999e6, rel=1e-9)


def test_functions():
    assert ev("sqrt(16)") == 4.0
    assert ev("atan2(1, 1)") == pytest.approx(math.pi / 4)
    assert ev("ln(exp(2))") == pytest.approx(2.0)
    assert ev("max(2, 3) - min(2, 3)") == 1.0
    assert ev("-2^2") == 4.0


def test_undefined_symbol():
    with pytest.raises(UndefinedSymbolError) as ei:
        ev("gamma0 * 2")
    assert ei.value.name == "gamma0"


@pytest.mark.parametrize("text", ["1 / 0", "0^-1", "x / (x - x)"])
def test_division_by_zero(text):
    with pytest.raises(DivisionByZeroError):
        ev(text, x=2.0)


@pytest.mark.parametrize("text", ["sqrt(-1)", "ln(0)", "(-8)^(1/3)", "exp(1000)", "acos(2)"])
def test_domain_errors(text):
    with pytest.raises(DomainError):
        ev(text)


def test_domain_error_is_also_value_error():
    with pytest.raises(ValueError):
        ev("sqrt(-4)")
