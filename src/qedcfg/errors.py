# -----------------------------------------------------------------------------
# Error types for configuration resolution
# Purpose:
#   One exception class per failure kind so callers (and the aggregate report)
#   can tell a typo in an expression from a cycle in the constant graph.
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence


class QedConfigError(Exception): pass


class ExpressionSyntaxError(QedConfigError):
    """
    Malformed expression text.
    - text: the full expression that failed to parse
    - position: 0-based offset of the offending token
    - fragment: the offending substring (empty at end of input)
    """
    def __init__(self, message: str, text: str = "", position: int = 0, fragment: str = ""):
        self.text = text
        self.position = position
        self.fragment = fragment
        where = f" at position {position}" if text else ""
        near = f" near '{fragment}'" if fragment else ""
        super().__init__(f"{message}{where}{near}" + (f" in '{text}'" if text else ""))


class UndefinedSymbolError(QedConfigError):
    def __init__(self, name: str, referenced_by: str | None = None):
        self.name = name
        self.referenced_by = referenced_by
        by = f" (referenced by '{referenced_by}')" if referenced_by else ""
        super().__init__(f"Undefined symbol '{name}'{by}")


# Evaluator-facing name for the same failure
UnresolvedSymbolError = UndefinedSymbolError


class CyclicDependencyError(QedConfigError):
    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__("Cyclic dependency: " + " -> ".join(self.cycle))


class SymbolCollisionError(QedConfigError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"'{name}' is a built-in constant/unit and cannot be redefined")


class EvaluationError(QedConfigError): pass
class DomainError(EvaluationError, ValueError): pass
class DivisionByZeroError(EvaluationError, ZeroDivisionError): pass

class UnknownVariableError(QedConfigError): pass
class AxisSpecError(QedConfigError): pass
class UnitError(QedConfigError): pass
class FieldError(QedConfigError): pass
class DocumentError(QedConfigError): pass


@dataclass
class ErrorEntry:
    # Where the problem was found (e.g. "constants.gamma", "stats.photon[2]")
    location: str
    error: QedConfigError

    def describe(self) -> str:
        return f"{self.location}: {type(self.error).__name__}: {self.error}"


class ConfigurationError(QedConfigError):
    """
    Aggregate report raised once per resolution, listing every problem found.
    """
    def __init__(self, entries: List[ErrorEntry]):
        self.entries = list(entries)
        lines = [e.describe() for e in self.entries]
        super().__init__(f"{len(lines)} configuration error(s):\n  " + "\n  ".join(lines))

    def kinds(self) -> List[type]:
        return [type(e.error) for e in self.entries]
