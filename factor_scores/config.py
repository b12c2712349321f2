"""
Factor Scores Configuration Module

Estimation, scoring and reporting settings for the CFA factor score
pipeline, plus the logging setup shared by the command line entry points.
"""

import logging
import operator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


LOGGING_CONFIG = {
    "log_level": "INFO",
    "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}

# Comparisons a fit threshold may use
FIT_COMPARISONS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

# Acceptance bands cited for CFA fit: (comparison, cutoff), strict
DEFAULT_FIT_THRESHOLDS = {
    "CFI": (">", 0.95),
    "TLI": (">", 0.95),
    "RMSEA": ("<", 0.06),
    "SRMR": ("<", 0.08),
}


@dataclass
class FactorScoresConfig:
    """Settings for fitting, scoring and diagnostics"""

    # Estimation
    objective: str = 'FIML'  # full-information ML, tolerant of missing data
    optimizer: str = 'SLSQP'

    # Factor scores
    score_method: str = 'regression'
    score_position: str = 'append'

    # Diagnostics
    min_improvement: float = 10.0
    min_loading: float = 0.40
    max_factor_correlation: float = 0.85
    fit_thresholds: Dict[str, tuple] = field(
        default_factory=lambda: dict(DEFAULT_FIT_THRESHOLDS))

    # Batch behaviour
    continue_on_nonconvergence: bool = False

    def __post_init__(self):
        """Validate settings"""
        valid_objectives = ['FIML', 'MLW', 'ULS', 'GLS']
        if self.objective not in valid_objectives:
            raise ConfigurationError(f"Unsupported objective: {self.objective}")

        valid_optimizers = ['SLSQP', 'L-BFGS-B']
        if self.optimizer not in valid_optimizers:
            raise ConfigurationError(f"Unsupported optimizer: {self.optimizer}")

        if self.score_method not in ('regression', 'bartlett'):
            raise ConfigurationError(f"Unsupported score method: {self.score_method}")

        if self.score_position not in ('append', 'prepend'):
            raise ConfigurationError(f"Unsupported score position: {self.score_position}")

        if self.min_improvement < 0:
            raise ConfigurationError("min_improvement must be non-negative")

        for index, rule in self.fit_thresholds.items():
            if len(rule) != 2 or rule[0] not in FIT_COMPARISONS:
                raise ConfigurationError(f"Malformed fit threshold for {index}: {rule}")


def get_default_config() -> FactorScoresConfig:
    """Return the default configuration"""
    return FactorScoresConfig()


def create_custom_config(**kwargs) -> FactorScoresConfig:
    """Build a configuration from keyword overrides"""
    return FactorScoresConfig(**kwargs)


def setup_logging(level: Optional[str] = None,
                  log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Configure root logging for scripts and the CLI.

    Args:
        level (Optional[str]): Logging level name, defaults to LOGGING_CONFIG
        log_file (Optional[Union[str, Path]]): Optional file to mirror the log into
    """
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, (level or LOGGING_CONFIG["log_level"]).upper()),
        format=LOGGING_CONFIG["log_format"],
        handlers=handlers,
        force=True,
    )
