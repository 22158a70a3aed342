import pytest
from collections import ChainMap

from qedcfg.axes import AxisCompiler
from qedcfg.errors import AxisSpecError
from qedcfg.fields import Species
from qedcfg.types import AutoRange, AutoWithPredicate, BinStrategy, FixedRange, PartialRange
from qedcfg.units import builtin_table


@pytest.fixture
def compiler():
    return AxisCompiler(ChainMap({"max_theta": 4e-4}, builtin_table()))


def test_single_variable_is_all_auto(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "energy")
    assert spec.ndim == 1
    assert isinstance(spec.axes[0].range, AutoRange)
    assert spec.deferred
    assert spec.weight is None and spec.predicate is None


def test_lone_weight_element(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "p^-:(pol_x)")
    assert spec.axes[0].variable.text == "p^-"
    assert spec.weight.text == "pol_x"


def test_range_weight_restriction(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "r_x:r_y:(auto; pol_x; theta in 0, max_theta)")
    assert spec.ndim == 2
    assert all(isinstance(a.range, AutoRange) for a in spec.axes)
    assert spec.predicate.lo == 0.0
    assert spec.predicate.hi == pytest.approx(4e-4)


def test_auto_range_on_restricted_variable(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "angle:(auto; auto; angle in 0, 20 * micro)")
    rng = spec.axes[0].range
    assert isinstance(rng, AutoWithPredicate)
    assert rng.bounds(-1.0, 1e-5) == (0.0, 1e-5)
    assert rng.bounds(0.0, 1.0)[1] == pytest.approx(2e-5)


def test_fixed_and_partial_ranges(compiler):
    spec = compiler.compile_entry(Species.ELECTRON, "r_x:r_y:(-1 * micro, 1 * micro, auto, 2 * micro)")
    x, y = spec.axes
    assert isinstance(x.range, FixedRange) and x.range.bounds() == (pytest.approx(-1e-6), pytest.approx(1e-6))
    assert isinstance(y.range, PartialRange) and y.range.bounds(-5.0, 5.0) == (-5.0, pytest.approx(2e-6))


def test_log_bins(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "energy:(log 100)")
    assert spec.axes[0].strategy is BinStrategy.LOG
    assert spec.axes[0].bins == 100


def test_evaluate_applies_restriction_and_weight(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "energy:(auto; pol_x; theta in 0, max_theta)")
    assert spec.evaluate({"energy": 2.0, "pol_x": 0.5, "theta": 1e-4, "weight": 4.0}) == ((2.0,), 2.0)
    assert spec.evaluate({"energy": 2.0, "pol_x": 0.5, "theta": 1e-3}) is None


@pytest.mark.parametrize("entry", [
    "r_x:r_y:(0, 1)",                           # two bounds for two axes
    "energy:(0, 1, 2)",                         # odd bound count
    "a:b:c:d",                                  # too many axes
    "energy:(auto; auto; theta in 0)",          # one-sided restriction
    "energy:(auto; auto; auto; auto)",          # too many elements
    "energy:(1, 0)",                            # lo above hi
    "energy:(0, 1; auto; theta in 0, nope)",    # unresolvable bound
    "energy:(0, nope)",                         # unresolvable bound
    "energy:(auto; auto; theta 0, 1)",          # restriction without 'in'
    "unknown_field",                            # not a field or constant
    "energy:(auto",                             # unbalanced
])
def test_bad_entries(compiler, entry):
    with pytest.raises(AxisSpecError):
        compiler.compile_entry(Species.PHOTON, entry)


def test_species_mismatch(compiler):
    with pytest.raises(AxisSpecError):
        compiler.compile_entry(Species.ELECTRON, "pol_x")


def test_section_locations(compiler):
    specs, errors = compiler.compile_section({"photon": ["energy", "r_x:r_y:(0, 1)"], "muon": ["energy"]})
    assert len(specs) == 1
    assert [e.location for e in errors] == ["output.photon[1]", "output.muon"]


def test_lone_call_with_comma_is_a_weight(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "energy:(max(pol_x, 0))")
    assert isinstance(spec.axes[0].range, AutoRange)
    assert spec.weight.text == "max(pol_x, 0)"
    assert spec.evaluate({"energy": 1.0, "pol_x": -0.5}) == ((1.0,), 0.0)
    assert spec.evaluate({"energy": 1.0, "pol_x": 0.5, "weight": 2.0}) == ((1.0,), 1.0)


def test_bounds_may_call_two_argument_functions(compiler):
    spec = compiler.compile_entry(Species.PHOTON, "energy:(auto; auto; theta in 0, max(max_theta, 1e-3))")
    assert spec.predicate.lo == 0.0
    assert spec.predicate.hi == pytest.approx(1e-3)
    spec = compiler.compile_entry(Species.PHOTON, "r_x:(min(1, 2), max(3, 4))")
    assert spec.axes[0].range.bounds() == (1.0, 4.0)
