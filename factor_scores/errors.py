"""
Error types for the factor score pipeline.

Three families are distinguished and never mixed:
- ConfigurationError: a scale definition or the dataset schema is wrong
- NonConvergenceError: semopy could not produce a stable solution
- FilesystemError: input unreadable or output unwritable
"""

from typing import Iterable, Optional


class FactorScoresError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(FactorScoresError, ValueError):
    """Missing column, malformed factor/constraint or bad column mapping."""

    def __init__(self, message: str, scale: Optional[str] = None,
                 factor: Optional[str] = None,
                 columns: Optional[Iterable[str]] = None):
        self.scale = scale
        self.factor = factor
        self.columns = list(columns) if columns is not None else []

        context = []
        if scale:
            context.append(f"scale={scale}")
        if factor:
            context.append(f"factor={factor}")
        if context:
            message = f"{message} [{', '.join(context)}]"
        super().__init__(message)


class ColumnCollisionError(ConfigurationError):
    """Score columns would overwrite existing dataset columns."""


class NonConvergenceError(FactorScoresError, RuntimeError):
    """The optimizer did not reach a solution for a scale."""

    def __init__(self, scale: str, message: str,
                 n_iterations: Optional[int] = None,
                 objective_value: Optional[float] = None):
        self.scale = scale
        self.solver_message = message
        self.n_iterations = n_iterations
        self.objective_value = objective_value

        details = [f"scale={scale}", f"solver message: {message}"]
        if n_iterations is not None:
            details.append(f"iterations={n_iterations}")
        if objective_value is not None:
            details.append(f"objective={objective_value:.4f}")
        super().__init__("Model did not converge (" + "; ".join(details) + ")")


class FilesystemError(FactorScoresError, OSError):
    """Input file unreadable or output file unwritable."""

    def __init__(self, message: str, path):
        self.path = str(path)
        super().__init__(f"{message}: {self.path}")

    def __str__(self) -> str:
        return self.args[0]
