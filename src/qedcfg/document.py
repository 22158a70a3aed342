# -----------------------------------------------------------------------------
# Document loader & accessor
# Purpose: Split a parsed configuration tree (control/laser/beam/output/stats/
# constants) into its sections, keeping every leaf value raw (literal or
# expression string) for the resolver.
# - YAML text/files are read with yaml.safe_load; any other loader works as
#   long as it hands over plain mappings, sequences and scalars.
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import DocumentError

logger = logging.getLogger(__name__)

SECTIONS = ("control", "laser", "beam", "output", "stats", "constants")


@dataclass
class ConfigDocument:
    # Raw sections exactly as loaded (values not yet evaluated)
    control: Dict[str, Any] = field(default_factory=dict)
    laser: Dict[str, Any] = field(default_factory=dict)
    beam: Dict[str, Any] = field(default_factory=dict)
    output: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
    constants: Dict[str, Any] = field(default_factory=dict)
    # Where the document came from (file stem), used for `ident: auto`
    source_name: Optional[str] = None
    # Which sections were actually present
    present: frozenset = frozenset()

    @staticmethod
    def from_yaml_dict(d: Any, source_name: Optional[str] = None) -> "ConfigDocument":
        """
        Build a ConfigDocument from a pre-parsed tree.
        Expected shape:
          control:   { dt_multiplier: 0.5, radiation_reaction: true, ... }
          laser:     { a0: a0, wavelength: 0.8 * micro, ... }
          beam:      { n: 10000, gamma: initial_gamma, ... }
          output:    { ident: auto, photon: ["energy", ...], ... }
          stats:     { expression: [...], photon: ["mean energy", ...] }
          constants: { a0: 5.0, initial_gamma: 16.5 * GeV / (me * c^2) }
        """
        if d is None:
            d = {}
        if not isinstance(d, dict):
            raise DocumentError(f"Configuration root must be a mapping, got {type(d).__name__}")
        sections: Dict[str, Dict[str, Any]] = {}
        for name in SECTIONS:
            value = d.get(name)
            if value is None:
                sections[name] = {}
            elif isinstance(value, dict):
                sections[name] = dict(value)
            else:
                raise DocumentError(f"Section '{name}' must be a mapping, got {type(value).__name__}")
        for extra in sorted(set(d) - set(SECTIONS)):
            logger.warning("ignoring unknown top-level section '%s'", extra)
        present = frozenset(k for k in SECTIONS if k in d)
        return ConfigDocument(source_name=source_name, present=present, **sections)

    @staticmethod
    def from_yaml_text(text: str, source_name: Optional[str] = None) -> "ConfigDocument":
        """
        Convenience: parse raw YAML string into a ConfigDocument.
        Uses yaml.safe_load for security (no arbitrary object constructors).
        """
        try:
            tree = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DocumentError(f"Invalid YAML: {e}") from e
        return ConfigDocument.from_yaml_dict(tree, source_name=source_name)

    @staticmethod
    def from_file(path: str) -> "ConfigDocument":
        """
        Convenience: open a YAML file from disk and parse into a ConfigDocument.
        The file stem becomes the source name.
        """
        stem = os.path.splitext(os.path.basename(path))[0]
        with open(path, "r", encoding="utf-8") as f:
            return ConfigDocument.from_yaml_text(f.read(), source_name=stem)
