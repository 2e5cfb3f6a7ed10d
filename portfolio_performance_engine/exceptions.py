"""Error taxonomy for the performance engine.

Input problems subclass ``ValueError`` so callers that already guard analysis
entrypoints with ``except ValueError`` keep working.
"""

from __future__ import annotations

from typing import Any, Optional


class EngineError(ValueError):
    """Base class for errors raised by the performance engine."""


class InputError(EngineError):
    """Malformed input; aborts the whole computation."""

    def __init__(self, message: str, *, row: Optional[int] = None, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.row = row
        self.field = field
        self.value = value


class InvalidDateError(InputError):
    """A date field could not be parsed."""


class SchemaError(InputError):
    """A required field is missing, non-numeric, or inconsistently signed."""


class DataFileError(InputError):
    """A transaction or price file could not be read or failed validation."""


class EmptyInputError(EngineError):
    """Not enough data to compute a result."""


class SolverNonConvergence(EngineError):
    """Newton-Raphson did not produce a usable rate."""

    def __init__(self, message: str, *, iterations: int = 0, reason: str = ""):
        super().__init__(message)
        self.iterations = iterations
        self.reason = reason
