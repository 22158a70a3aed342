# -----------------------------------------------------------------------------
# Resolution trace
# Purpose:
#   Append-only record of one configuration resolution: every constant and
#   field evaluated, every descriptor compiled, every error. Steps are numbered
#   in the order they happened and export as plain dicts for JSON dumps.
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List

# Step kinds written by the resolver
KINDS = ("constant_resolved", "field_resolved", "stat_compiled", "axis_compiled", "error")


@dataclass(frozen=True)
class TraceStep:
    seq: int
    kind: str
    detail: Dict[str, Any]


class Tracer:
    def __init__(self):
        self._steps: List[TraceStep] = []

    def __len__(self) -> int:
        return len(self._steps)

    def add(self, kind: str, detail: Dict[str, Any]) -> None:
        if kind not in KINDS:
            raise ValueError(f"Unknown trace step kind: {kind}")
        self._steps.append(TraceStep(len(self._steps), kind, dict(detail)))

    def of_kind(self, kind: str) -> List[Dict[str, Any]]:
        return [s.detail for s in self._steps if s.kind == kind]

    def steps(self) -> List[Dict[str, Any]]:
        return [{"seq": s.seq, "kind": s.kind, "detail": s.detail} for s in self._steps]
