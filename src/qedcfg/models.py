# -----------------------------------------------------------------------------
# Resolved configuration models (pydantic)
# Purpose:
#   Immutable, validated form of the control/laser/beam/output sections once
#   every expression has been evaluated. All physical values are SI floats
#   (energies in joules, lengths in metres, angles in radians).
# Rules that need more than one field (e.g. "flattop needs n_cycles") are
# model validators, so pydantic reports them with the other violations.
# -----------------------------------------------------------------------------

from __future__ import annotations
import math
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .types import OutputAxisSpec, StatisticSpec
from .units import UnitSystem

Envelope = Literal["cos^2", "flattop", "gaussian"]
PolarizationKind = Literal["linear", "circular"]
SpeciesName = Literal["electron", "positron", "photon"]
RadialDistribution = Literal["normally_distributed", "uniformly_distributed"]
CoordinateSystem = Literal["laser", "beam"]
FileFormat = Literal["ascii", "fits"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ControlConfig(_Frozen):
    dt_multiplier: float = Field(1.0, gt=0)
    radiation_reaction: bool = True
    pair_creation: bool = True
    lcfa: bool = False
    pol_resolved: bool = False
    classical: bool = False
    increase_pair_rate_by: float = Field(1.0, ge=1.0)
    rng_seed: int = Field(0, ge=0)


class Polarization(_Frozen):
    kind: PolarizationKind = "circular"
    angle: float = 0.0      # rotation of the linear polarization axis [rad]


class LaserConfig(_Frozen):
    """
    Laser pulse parameters.
    - wavelength and omega are always both present; the input gives one and
      the other follows from omega = 2 pi hbar c / wavelength (omega is the
      photon energy in joules)
    - exactly one of n_cycles / fwhm_duration sets the pulse length
    """
    a0: float = Field(gt=0)
    wavelength: float = Field(gt=0)
    omega: float = Field(gt=0)
    n_cycles: Optional[float] = Field(None, gt=0)
    fwhm_duration: Optional[float] = Field(None, gt=0)
    envelope: Envelope = "cos^2"
    waist: Optional[float] = Field(None, gt=0)
    polarization: Polarization = Polarization()

    @model_validator(mode="after")
    def _duration(self) -> "LaserConfig":
        if (self.n_cycles is None) == (self.fwhm_duration is None):
            raise ValueError("exactly one of 'n_cycles' and 'fwhm_duration' is required")
        if self.envelope == "flattop" and self.n_cycles is None:
            raise ValueError("a flattop envelope needs 'n_cycles'")
        return self

    @property
    def focused(self) -> bool:
        return self.waist is not None


class Hdf5Source(_Frozen):
    file: str
    distance_bt_ips: float = 0.0    # [m]
    max_angle: Optional[float] = Field(None, gt=0)
    min_energy: Optional[float] = Field(None, ge=0)
    auto_timing: bool = True


class BeamConfig(_Frozen):
    species: SpeciesName = "electron"
    n: Optional[int] = Field(None, ge=1)
    charge: Optional[float] = None                  # [C]; defaults to n * e
    gamma: Optional[float] = Field(None, gt=0)
    sigma: float = Field(0.0, ge=0)
    bremsstrahlung_source: bool = False
    gamma_min: Optional[float] = Field(None, gt=0)
    radius: float = Field(0.0, ge=0)                # [m]
    radial_distribution: RadialDistribution = "normally_distributed"
    radius_max: Optional[float] = Field(None, gt=0)
    length: float = Field(0.0, ge=0)                # [m]
    collision_angle: float = 0.0                    # [rad]
    collision_plane: float = 0.0                    # [rad]
    rms_divergence: float = Field(0.0, ge=0)        # [rad]
    energy_chirp: float = Field(0.0, ge=-1.0, le=1.0)
    offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    stokes_pars: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    from_hdf5: Optional[Hdf5Source] = None

    @model_validator(mode="after")
    def _required(self) -> "BeamConfig":
        if self.from_hdf5 is None:
            if self.n is None:
                raise ValueError("'n' is required unless the beam is loaded 'from_hdf5'")
            if self.gamma is None and not self.bremsstrahlung_source:
                raise ValueError("'gamma' is required unless the beam is loaded 'from_hdf5'")
        if self.bremsstrahlung_source:
            if self.species != "photon":
                raise ValueError("a bremsstrahlung source produces photons; set 'species: photon'")
            if self.gamma_min is None:
                raise ValueError("'bremsstrahlung_source' needs 'gamma_min'")
        if self.radius_max is not None and self.radial_distribution != "normally_distributed":
            raise ValueError("a radial cutoff only applies to 'normally_distributed' beams")
        if math.fsum(s * s for s in self.stokes_pars) > 1.0 + 1e-12:
            raise ValueError("'stokes_pars' must satisfy S1^2 + S2^2 + S3^2 <= 1")
        return self


class OutputConfig(_Frozen):
    ident: str = ""
    discard_background: bool = False
    coordinate_system: CoordinateSystem = "laser"
    units: UnitSystem = UnitSystem.SI
    file_format: FileFormat = "ascii"
    dump_all_particles: Optional[Literal["hdf5"]] = None
    min_energy: float = Field(0.0, ge=0)


class ResolvedConfig(_Frozen):
    """
    Everything the simulation needs, fully evaluated.
    A section missing from the input document is None here.
    """
    control: ControlConfig = ControlConfig()
    laser: Optional[LaserConfig] = None
    beam: Optional[BeamConfig] = None
    output: OutputConfig = OutputConfig()
    constants: Dict[str, float] = Field(default_factory=dict)
    stats: Tuple[Any, ...] = ()
    distributions: Tuple[Any, ...] = ()

    @field_validator("stats")
    @classmethod
    def _stats(cls, v: Tuple[Any, ...]) -> Tuple[Any, ...]:
        for s in v:
            if not isinstance(s, StatisticSpec):
                raise ValueError(f"expected StatisticSpec, got {type(s).__name__}")
        return v

    @field_validator("distributions")
    @classmethod
    def _distributions(cls, v: Tuple[Any, ...]) -> Tuple[Any, ...]:
        for d in v:
            if not isinstance(d, OutputAxisSpec):
                raise ValueError(f"expected OutputAxisSpec, got {type(d).__name__}")
        return v

    def statistic(self, name: str) -> StatisticSpec:
        for s in self.stats:
            if s.name == name:
                return s
        raise KeyError(name)
