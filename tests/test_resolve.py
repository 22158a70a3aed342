import json
import logging
import math

import pytest

from qedcfg.document import ConfigDocument
from qedcfg.errors import (
    AxisSpecError, ConfigurationError, CyclicDependencyError, FieldError, UndefinedSymbolError,
    UnknownVariableError,
)
from qedcfg.models import ResolvedConfig
from qedcfg.resolve import ConfigResolver, resolve_config, resolve_file
from qedcfg.settings import Settings
from qedcfg.types import OutputAxisSpec, StatisticSpec
from qedcfg.units import UnitSystem, builtin_table

T = builtin_table()


def test_bundled_examples_resolve(examples_dir):
    paths = sorted(examples_dir.glob("*.yml"))
    assert len(paths) >= 4
    for path in paths:
        config = resolve_file(str(path))
        assert isinstance(config, ResolvedConfig)
        assert config.laser is not None and config.beam is not None


def test_stats_example_end_to_end(examples_dir):
    config = resolve_file(str(examples_dir / "stats.yml"))
    chi = config.statistic("quantum_chi")
    initial_gamma = 16.5e9 * T["eV"] / (T["me"] * T["c"] ** 2)
    expected = 2.0 * initial_gamma * 5.0 * (1.55 * T["eV"] / (T["me"] * T["c"] ** 2))
    assert chi.value == pytest.approx(expected, rel=1e-12)
    assert config.output.ident == "stats"
    assert config.output.units is UnitSystem.HEP
    assert config.output.discard_background is True
    assert config.beam.radial_distribution == "uniformly_distributed"
    assert config.beam.radius == pytest.approx(5e-7)
    assert config.beam.charge == pytest.approx(1.5e9 * T["e"])
    assert config.laser.envelope == "flattop"
    assert config.laser.polarization.kind == "linear"
    assert all(isinstance(s, StatisticSpec) for s in config.stats)


def test_laser_photon_energy_and_wavelength_are_linked(examples_dir):
    config = resolve_file(str(examples_dir / "polarized_spectra.yml"))
    laser = config.laser
    assert laser.omega == pytest.approx(1.5498 * T["eV"])
    assert laser.wavelength == pytest.approx(2 * math.pi * T["hbar"] * T["c"] / laser.omega)
    assert config.beam.n == 1000000
    assert config.output.ident == "2.5x0.1"
    assert len(config.distributions) == 4
    assert all(isinstance(d, OutputAxisSpec) for d in config.distributions)


def test_hdf5_stage(examples_dir):
    config = resolve_file(str(examples_dir / "pair_production.yml"))
    assert config.control.increase_pair_rate_by == 1.0e4
    assert config.beam.species == "photon"
    assert config.beam.n is None and config.beam.charge is None
    assert config.beam.from_hdf5.max_angle == pytest.approx(1e-4)
    assert config.laser.envelope == "gaussian"
    assert config.laser.focused


def test_quantum_chi_without_laser_or_beam():
    tree = {
        "constants": {
            "a0": 5.0,
            "initial_gamma": "16.5*GeV/(me*c^2)",
            "photon_energy": "1.55*eV",
        },
        "stats": {"expression": ["quantum_chi 2.*initial_gamma*a0*(photon_energy/(me*c^2))"]},
    }
    config = resolve_config(tree)
    assert config.laser is None and config.beam is None
    closed_form = 2.0 * 16.5e9 * 5.0 * 1.55 * T["eV"] ** 2 / (T["me"] * T["c"] ** 2) ** 2
    assert config.statistic("quantum_chi").value == pytest.approx(closed_form, rel=1e-12)


def test_declaration_order_does_not_matter(minimal_tree):
    constants = [("g", "E / (me * c^2)"), ("E", "2 * GeV"), ("a", "g / 2")]
    one = resolve_config({**minimal_tree, "constants": dict(constants)})
    two = resolve_config({**minimal_tree, "constants": dict(reversed(constants))})
    assert one.constants == two.constants
    assert one == two


def test_defaults(minimal_tree):
    config = resolve_config(minimal_tree)
    assert config.control.dt_multiplier == 1.0
    assert config.control.radiation_reaction and config.control.pair_creation
    assert config.laser.envelope == "cos^2"
    assert config.laser.polarization.kind == "circular"
    assert config.beam.species == "electron"
    assert config.beam.charge == pytest.approx(100 * T["e"])
    assert config.output.coordinate_system == "laser"
    assert config.output.units is UnitSystem.SI


def test_polarization_angle(minimal_tree):
    minimal_tree["laser"]["polarization"] = "linear @ 30 * degree"
    config = resolve_config(minimal_tree)
    assert config.laser.polarization.angle == pytest.approx(math.pi / 6)


def test_radius_with_cutoff(minimal_tree):
    minimal_tree["beam"]["radius"] = ["2 * micro", "normally_distributed", "6 * micro"]
    config = resolve_config(minimal_tree)
    assert config.beam.radius == pytest.approx(2e-6)
    assert config.beam.radius_max == pytest.approx(6e-6)


def test_ident_auto_uses_source_name(minimal_tree):
    minimal_tree["output"] = {"ident": "auto"}
    assert resolve_config(minimal_tree, source_name="run7").output.ident == "run7"


def test_all_errors_reported_together(minimal_tree):
    tree = {
        **minimal_tree,
        "constants": {"a": "b + 1", "b": "a + 1", "k": 2.0},
        "laser": {"a0": "a", "wavelength": "0.8 * micro", "n_cycles": 10, "polarization": "elliptical"},
        "stats": {"photon": ["median energy", "mean energy in a, auto"]},
        "output": {"photon": ["r_x:r_y:(0, 1)"]},
    }
    with pytest.raises(ConfigurationError) as ei:
        resolve_config(tree)
    entries = ei.value.entries
    assert [e.location for e in entries] == [
        "constants.a", "laser.polarization", "stats.photon[0]", "output.photon[0]",
    ]
    assert ei.value.kinds() == [CyclicDependencyError, FieldError, UnknownVariableError, AxisSpecError]
    assert "4 configuration error(s)" in str(ei.value)


def test_failed_constant_is_reported_once(minimal_tree):
    minimal_tree["constants"] = {"x": "nope * 2"}
    minimal_tree["laser"]["a0"] = "x"
    minimal_tree["beam"]["gamma"] = "x * 10"
    with pytest.raises(ConfigurationError) as ei:
        resolve_config(minimal_tree)
    (entry,) = ei.value.entries
    assert entry.location == "constants.x"
    assert isinstance(entry.error, UndefinedSymbolError)


def test_unknown_name_in_field(minimal_tree):
    minimal_tree["beam"]["gamma"] = "gamma0 * 2"
    with pytest.raises(ConfigurationError) as ei:
        resolve_config(minimal_tree)
    (entry,) = ei.value.entries
    assert entry.location == "beam.gamma"
    assert entry.error.name == "gamma0"


@pytest.mark.parametrize("section, key, value, location", [
    ("control", "radiation_reaction", "yes", "control.radiation_reaction"),
    ("control", "increase_pair_rate_by", 0.5, "control.increase_pair_rate_by"),
    ("control", "rng_seed", 1.5, "control.rng_seed"),
    ("laser", "envelope", "sawtooth", "laser.envelope"),
    ("laser", "omega", "1.55 * eV", "laser"),
    ("laser", "fwhm_duration", "30 * femto", "laser"),
    ("beam", "species", "muon", "beam.species"),
    ("beam", "stokes_pars", [1.0, 1.0, 0.0], "beam"),
    ("beam", "offset", [0.0, 1.0], "beam.offset"),
    ("output", "units", "cgs", "output.units"),
])
def test_field_violations(minimal_tree, section, key, value, location):
    minimal_tree.setdefault(section, {})[key] = value
    with pytest.raises(ConfigurationError) as ei:
        resolve_config(minimal_tree)
    assert [e.location for e in ei.value.entries] == [location]
    assert ei.value.kinds() == [FieldError]


def test_missing_required_fields():
    with pytest.raises(ConfigurationError) as ei:
        resolve_config({"laser": {"wavelength": 8e-7, "n_cycles": 5}, "beam": {"gamma": 10.0}})
    locations = [e.location for e in ei.value.entries]
    assert locations == ["laser.a0", "beam"]


def test_hdf5_source_needs_file(minimal_tree):
    minimal_tree["beam"] = {"species": "photon", "from_hdf5": {"distance_bt_ips": 0.5}}
    with pytest.raises(ConfigurationError) as ei:
        resolve_config(minimal_tree)
    assert [e.location for e in ei.value.entries] == ["beam.from_hdf5.file"]


def test_unknown_keys_are_warned_about(minimal_tree, caplog):
    minimal_tree["laser"]["colour"] = "green"
    with caplog.at_level(logging.WARNING, logger="qedcfg.resolve"):
        resolve_config(minimal_tree)
    assert "laser.colour" in caplog.text


def test_particle_fields_shadow_constants(minimal_tree):
    minimal_tree["constants"] = {"energy": "1 * GeV"}
    minimal_tree["stats"] = {"photon": ["mean energy"]}
    spec = resolve_config(minimal_tree).statistic("mean energy")
    assert spec.sample({"energy": 3.0}) == (3.0, 1.0)


def test_default_units_come_from_settings(minimal_tree):
    minimal_tree["stats"] = {"photon": ["mean energy"]}
    config = resolve_config(minimal_tree, settings=Settings(units=UnitSystem.HEP))
    assert config.statistic("mean energy").display_label == "MeV"


def test_trace_records_canonical_forms(minimal_tree):
    minimal_tree["constants"] = {"g": "16.5 * GeV / (me * c^2)"}
    resolver = ConfigResolver(ConfigDocument.from_yaml_dict(minimal_tree))
    resolver.resolve()
    (step,) = resolver.trace.of_kind("constant_resolved")
    assert step["name"] == "g"
    assert "GeV" in step["canonical"] and "me" in step["canonical"]
    assert "GeV" not in step["substituted"]
    assert step["value"] == pytest.approx(16.5e9 * T["eV"] / (T["me"] * T["c"] ** 2))


def test_trace_dump(minimal_tree, tmp_path):
    settings = Settings(trace_dir=str(tmp_path / "traces"))
    resolve_config(minimal_tree, source_name="demo", settings=settings)
    (path,) = (tmp_path / "traces").glob("resolve_demo_*.json")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["meta"]["source"] == "demo"
    assert data["errors"] == []
    assert any(s["kind"] == "field_resolved" for s in data["steps"])


def test_trace_dump_on_failure(minimal_tree, tmp_path):
    minimal_tree["constants"] = {"a": "a"}
    with pytest.raises(ConfigurationError):
        resolve_config(minimal_tree, settings=Settings(trace_dir=str(tmp_path)))
    (path,) = tmp_path.glob("resolve_*.json")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert len(data["errors"]) == 1 and "Cyclic" in data["errors"][0]
