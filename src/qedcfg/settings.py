# -----------------------------------------------------------------------------
# Settings: environment-driven knobs for the resolver
# Purpose:
#   Read .env / environment variables once (python-dotenv) and configure the
#   standard logging module. Nothing here touches configuration documents.
# Variables:
#   QEDCFG_LOG_LEVEL   logging level name (default WARNING)
#   QEDCFG_TRACE_DIR   directory for JSON resolution traces (unset: no dumps)
#   QEDCFG_UNITS       default display unit system when `output.units` is unset
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .units import UnitSystem


@dataclass(frozen=True)
class Settings:
    log_level: str = "WARNING"
    trace_dir: Optional[str] = None
    units: UnitSystem = UnitSystem.SI

    @staticmethod
    def from_env(load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()
        return Settings(
            log_level=os.getenv("QEDCFG_LOG_LEVEL", "WARNING").upper(),
            trace_dir=os.getenv("QEDCFG_TRACE_DIR") or None,
            units=UnitSystem(os.getenv("QEDCFG_UNITS", "si").lower()),
        )


def configure_logging(level: str | int = "WARNING") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.captureWarnings(True)
