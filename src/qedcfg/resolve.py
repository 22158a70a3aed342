# -----------------------------------------------------------------------------
# Resolver: end-to-end configuration pipeline
# Responsibilities:
#   • Resolve the constant graph once (Planner) on top of the built-in table
#   • Evaluate every scalar field of control/laser/beam/output against it
#   • Derive dependent laser/beam values (omega <-> wavelength, charge, ident)
#   • Compile stats and output species entries into descriptors
#   • Collect every problem with its location and raise them together
#   • Trace each step (sympy canonical forms) and optionally dump the trace
# -----------------------------------------------------------------------------

# src/qedcfg/resolve.py
from __future__ import annotations
import logging
import math
import re
from collections import ChainMap
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, ValidationError

from .axes import AxisCompiler
from .document import ConfigDocument
from .errors import (
    ConfigurationError, ErrorEntry, EvaluationError, ExpressionSyntaxError, FieldError,
    QedConfigError, UndefinedSymbolError,
)
from .fields import Species
from .models import (
    BeamConfig, ControlConfig, LaserConfig, OutputConfig, Polarization, ResolvedConfig,
)
from .nodes import Expression, Number
from .parser import parse
from .planner import Planner
from .safe_eval import evaluate
from .settings import Settings
from .stats import StatsCompiler
from .symbolic import render
from .tracer import Tracer
from .tracing import save_trace
from .units import TABLE_VERSION, UnitSystem, builtin_table

logger = logging.getLogger(__name__)

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class _Downstream(Exception):
    # A field reads a constant that already failed; its error is reported there.
    pass


# ---------------- field kinds ----------------
NUMBER, INTEGER, FLAG, TEXT = "number", "integer", "flag", "text"

_CONTROL: Dict[str, str] = {
    "dt_multiplier": NUMBER,
    "radiation_reaction": FLAG,
    "pair_creation": FLAG,
    "lcfa": FLAG,
    "pol_resolved": FLAG,
    "classical": FLAG,
    "increase_pair_rate_by": NUMBER,
    "rng_seed": INTEGER,
}

_LASER: Dict[str, str] = {
    "a0": NUMBER,
    "wavelength": NUMBER,
    "omega": NUMBER,
    "n_cycles": NUMBER,
    "fwhm_duration": NUMBER,
    "envelope": TEXT,
    "waist": NUMBER,
}

_BEAM: Dict[str, str] = {
    "species": TEXT,
    "n": INTEGER,
    "charge": NUMBER,
    "gamma": NUMBER,
    "sigma": NUMBER,
    "bremsstrahlung_source": FLAG,
    "gamma_min": NUMBER,
    "length": NUMBER,
    "collision_angle": NUMBER,
    "collision_plane": NUMBER,
    "rms_divergence": NUMBER,
    "energy_chirp": NUMBER,
}

_HDF5: Dict[str, str] = {
    "file": TEXT,
    "distance_bt_ips": NUMBER,
    "max_angle": NUMBER,
    "min_energy": NUMBER,
    "auto_timing": FLAG,
}

_OUTPUT: Dict[str, str] = {
    "discard_background": FLAG,
    "coordinate_system": TEXT,
    "units": TEXT,
    "file_format": TEXT,
    "dump_all_particles": TEXT,
    "min_energy": NUMBER,
}

# Alternative spellings accepted in input files
_ALIASES: Dict[str, Dict[str, str]] = {
    "beam": {"ne": "n"},
    "output": {"discard_background_e": "discard_background"},
}


class ConfigResolver:
    def __init__(self, document: ConfigDocument, settings: Optional[Settings] = None):
        self.document = document
        self.settings = settings if settings is not None else Settings.from_env(load_env_file=False)
        self.trace = Tracer()
        self.errors: List[ErrorEntry] = []
        self.failed: Set[str] = set()
        self.builtins = builtin_table()
        self.constants: Dict[str, float] = {}
        self.table: Mapping[str, float] = self.builtins

    # ---------------- error bookkeeping ----------------

    def _error(self, location: str, error: QedConfigError) -> None:
        self.errors.append(ErrorEntry(location, error))
        self.trace.add("error", {"location": location, "kind": type(error).__name__, "message": str(error)})

    def _model(self, section: str, cls: type, values: Dict[str, Any]) -> Optional[BaseModel]:
        """Build a pydantic section model; each validation problem becomes a FieldError."""
        try:
            return cls(**values)
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(p) for p in err["loc"])
                self._error(f"{section}.{loc}" if loc else section, FieldError(err["msg"]))
            return None

    # ---------------- scalar evaluation ----------------

    def _expression(self, raw: Any) -> Expression:
        if isinstance(raw, str):
            expr = parse(raw)
            if expr.names & self.failed:
                raise _Downstream()
            return expr
        return Expression.of(repr(raw), Number(float(raw)))

    def _number(self, key: str, raw: Any) -> float:
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            raise FieldError(f"'{key}' must be a number or an expression, got {type(raw).__name__}")
        expr = self._expression(raw)
        value = evaluate(expr, self.table)
        if isinstance(raw, str):
            self.trace.add("field_resolved", {
                "field": key, "expr": raw, "canonical": render(expr),
                "substituted": render(expr, self.table), "value": value,
            })
        return value

    def _integer(self, key: str, raw: Any) -> int:
        value = self._number(key, raw)
        if not value.is_integer():
            raise FieldError(f"'{key}' must be a whole number, got {value!r}")
        return int(value)

    @staticmethod
    def _flag(key: str, raw: Any) -> bool:
        if not isinstance(raw, bool):
            raise FieldError(f"'{key}' must be true or false, got {raw!r}")
        return raw

    @staticmethod
    def _text(key: str, raw: Any) -> str:
        if isinstance(raw, (dict, list)):
            raise FieldError(f"'{key}' must be a single value, got {type(raw).__name__}")
        return str(raw).strip()

    def _convert(self, kind: str, key: str, raw: Any) -> Any:
        if kind == NUMBER:
            return self._number(key, raw)
        if kind == INTEGER:
            return self._integer(key, raw)
        if kind == FLAG:
            return self._flag(key, raw)
        return self._text(key, raw)

    def _field(self, location: str, convert: Callable[[], Any]) -> Tuple[bool, Any]:
        """Run one conversion, recording its error. Returns (ok, value)."""
        try:
            return True, convert()
        except _Downstream:
            return False, None
        except (ExpressionSyntaxError, UndefinedSymbolError, EvaluationError, FieldError) as e:
            self._error(location, e)
            return False, None

    def _section(self, section: str, raw: Mapping[str, Any], schema: Dict[str, str],
                 special: Tuple[str, ...] = ()) -> Tuple[Dict[str, Any], bool]:
        """
        Evaluate every scalar key of a section listed in `schema`.
        Keys in `special` are left to the caller; anything else is ignored
        with a warning. Returns (values, all_ok).
        """
        values: Dict[str, Any] = {}
        ok = True
        aliases = _ALIASES.get(section, {})
        for key, value in raw.items():
            key = str(key)
            name = aliases.get(key, key)
            if name in special:
                continue
            kind = schema.get(name)
            if kind is None:
                logger.warning("ignoring unknown key '%s.%s'", section, key)
                continue
            if name in values:
                self._error(f"{section}.{key}", FieldError(f"'{key}' duplicates '{name}'"))
                ok = False
                continue
            good, v = self._field(f"{section}.{key}", lambda: self._convert(kind, name, value))
            if good:
                values[name] = v
            ok = ok and good
        return values, ok

    # ---------------- sections ----------------

    def _constants(self) -> None:
        res = Planner(self.document.constants, self.builtins).resolve()
        for e in res.errors:
            self._error(e.location, e.error)
        self.failed = set(res.failed)
        self.constants = dict(res.values)
        self.table = ChainMap(self.constants, self.builtins)
        for name in res.order:
            if name not in self.constants:
                continue
            expr = res.expressions[name]
            self.trace.add("constant_resolved", {
                "name": name, "expr": expr.text, "canonical": render(expr),
                "substituted": render(expr, self.table), "value": self.constants[name],
            })

    def _control(self) -> ControlConfig:
        values, ok = self._section("control", self.document.control, _CONTROL)
        model = self._model("control", ControlConfig, values) if ok else None
        return model if model is not None else ControlConfig()

    def _polarization(self, raw: Any) -> Polarization:
        kind, at, angle = self._text("polarization", raw).partition("@")
        kind = kind.strip()
        if at and kind != "linear":
            raise FieldError(f"Only linear polarization takes an angle, got '{raw}'")
        if kind not in ("linear", "circular"):
            raise FieldError(f"Unknown polarization '{kind}'; expected 'linear' or 'circular'")
        theta = self._number("polarization", angle.strip()) if at else 0.0
        return Polarization(kind=kind, angle=theta)

    def _laser(self) -> Optional[LaserConfig]:
        raw = self.document.laser
        values, ok = self._section("laser", raw, _LASER, special=("polarization",))
        if "polarization" in raw:
            good, pol = self._field("laser.polarization", lambda: self._polarization(raw["polarization"]))
            ok = ok and good
            if good:
                values["polarization"] = pol
        if not ok:
            return None

        # omega is the photon energy: omega = 2 pi hbar c / wavelength
        hc = 2.0 * math.pi * self.builtins["hbar"] * self.builtins["c"]
        if ("wavelength" in values) == ("omega" in values):
            self._error("laser", FieldError("exactly one of 'wavelength' and 'omega' is required"))
            return None
        if "wavelength" in values and values["wavelength"] > 0:
            values["omega"] = hc / values["wavelength"]
        elif "omega" in values and values["omega"] > 0:
            values["wavelength"] = hc / values["omega"]

        if "envelope" not in values:
            values["envelope"] = "gaussian" if "fwhm_duration" in values else "cos^2"
        return self._model("laser", LaserConfig, values)

    def _radius(self, raw: Any) -> Dict[str, Any]:
        if not isinstance(raw, list):
            return {"radius": self._number("radius", raw)}
        if not 2 <= len(raw) <= 3:
            raise FieldError("'radius' must be r, [r, distribution] or [r, normally_distributed, r_max]")
        out: Dict[str, Any] = {
            "radius": self._number("radius", raw[0]),
            "radial_distribution": self._text("radius", raw[1]),
        }
        if len(raw) == 3:
            out["radius_max"] = self._number("radius", raw[2])
        return out

    def _vector(self, key: str, raw: Any) -> Tuple[float, float, float]:
        if not isinstance(raw, list) or len(raw) != 3:
            raise FieldError(f"'{key}' must be a list of three values")
        return tuple(self._number(key, v) for v in raw)

    def _hdf5(self, raw: Any) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise FieldError("'from_hdf5' must be a mapping")
        values, ok = self._section("beam.from_hdf5", raw, _HDF5)
        if not ok:
            raise _Downstream()
        return values

    def _beam(self) -> Optional[BeamConfig]:
        raw = self.document.beam
        special = ("radius", "offset", "stokes_pars", "from_hdf5")
        values, ok = self._section("beam", raw, _BEAM, special=special)
        for key in special:
            if key not in raw:
                continue
            if key == "radius":
                good, v = self._field("beam.radius", lambda: self._radius(raw["radius"]))
                if good:
                    values.update(v)
            elif key == "from_hdf5":
                good, v = self._field("beam.from_hdf5", lambda: self._hdf5(raw["from_hdf5"]))
                if good:
                    values["from_hdf5"] = v
            else:
                good, v = self._field(f"beam.{key}", lambda k=key: self._vector(k, raw[k]))
                if good:
                    values[key] = v
            ok = ok and good
        if not ok:
            return None
        if values.get("charge") is None and values.get("n") is not None:
            values["charge"] = values["n"] * self.builtins["e"]
        return self._model("beam", BeamConfig, values)

    def _output(self) -> Tuple[OutputConfig, Dict[str, Any]]:
        raw = self.document.output
        species_keys = [k for k in raw if str(k) in {s.value for s in Species}]
        values, ok = self._section("output", raw, _OUTPUT, special=tuple(species_keys) + ("ident",))
        if "ident" in raw:
            good, ident = self._field("output.ident", lambda: self._text("ident", raw["ident"]))
            if good:
                values["ident"] = (self.document.source_name or "") if ident == "auto" else ident
            ok = ok and good
        values.setdefault("units", self.settings.units)
        model = self._model("output", OutputConfig, values) if ok else None
        entries = {str(k): raw[k] for k in species_keys}
        return (model if model is not None else OutputConfig(units=self.settings.units)), entries

    # ---------------- descriptors ----------------

    def _mentions_failed(self, line: Any) -> bool:
        return bool(self.failed.intersection(_NAME.findall(str(line))))

    def _keep(self, location: str, section: Mapping[str, Any], errors: List[ErrorEntry]) -> None:
        """Record descriptor errors, except those caused by constants that already failed."""
        downstream = set()
        for key, lines in section.items():
            lines = [lines] if isinstance(lines, str) else lines
            if isinstance(lines, list):
                downstream.update(f"{location}.{key}[{i}]" for i, line in enumerate(lines)
                                  if self._mentions_failed(line))
        for e in errors:
            if e.location not in downstream:
                self._error(e.location, e.error)

    def _stats(self, units: UnitSystem) -> List[Any]:
        section = self.document.stats
        specs, errors = StatsCompiler(self.table, units).compile_section(section)
        self._keep("stats", section, errors)
        for s in specs:
            detail = {"name": s.name, "kind": s.kind.value, "species": s.species.value if s.species else None,
                      "canonical": render(s.variable)}
            if s.value is not None:
                detail["value"] = s.value
            self.trace.add("stat_compiled", detail)
        return specs

    def _distributions(self, entries: Mapping[str, Any]) -> List[Any]:
        specs, errors = AxisCompiler(self.table).compile_section(entries)
        self._keep("output", entries, errors)
        for d in specs:
            self.trace.add("axis_compiled", {"species": d.species.value, "entry": d.source,
                                             "ndim": d.ndim, "deferred": d.deferred})
        return specs

    # ---------------- public API ----------------

    def resolve(self) -> ResolvedConfig:
        """
        Resolve the whole document.
        Raises ConfigurationError listing every problem found; nothing partial
        is ever returned.
        """
        doc = self.document
        self._constants()
        control = self._control()
        laser = self._laser() if "laser" in doc.present else None
        beam = self._beam() if "beam" in doc.present else None
        output, entries = self._output()
        stats = self._stats(output.units)
        distributions = self._distributions(entries)

        meta = {
            "ident": output.ident or doc.source_name,
            "source": doc.source_name,
            "table_version": TABLE_VERSION,
        }
        if self.settings.trace_dir:
            path = save_trace(self.settings.trace_dir, meta, self.trace.steps(),
                              [e.describe() for e in self.errors])
            logger.debug("wrote resolution trace to %s", path)

        if self.errors:
            raise ConfigurationError(self.errors)

        config = ResolvedConfig(
            control=control, laser=laser, beam=beam, output=output,
            constants=self.constants, stats=tuple(stats), distributions=tuple(distributions),
        )
        logger.info("resolved %s: %d constant(s), %d statistic(s), %d distribution(s)",
                    meta["ident"] or "<config>", len(self.constants), len(stats), len(distributions))
        return config


def resolve_config(tree: Any, source_name: Optional[str] = None,
                   settings: Optional[Settings] = None) -> ResolvedConfig:
    """Resolve an already-parsed document tree (mappings, lists, scalars)."""
    doc = ConfigDocument.from_yaml_dict(tree, source_name=source_name)
    return ConfigResolver(doc, settings).resolve()


def resolve_file(path: str, settings: Optional[Settings] = None) -> ResolvedConfig:
    return ConfigResolver(ConfigDocument.from_file(path), settings).resolve()
