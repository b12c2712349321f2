"""
Factor Scores package

Confirmatory factor analysis with semopy for labelled survey datasets:
declarative scale definitions, FIML fitting, factor scores under missing
data and merging of the scores back into the dataset.

Author: Survey Factor Scores Team
Date: 2026-10-19
"""

from .errors import (
    FactorScoresError,
    ConfigurationError,
    ColumnCollisionError,
    NonConvergenceError,
    FilesystemError
)
from .config import FactorScoresConfig, get_default_config, create_custom_config, setup_logging
from .data_loader import SurveyDataset, load_dataset, read_dataset, coerce_numeric, from_frame
from .model_spec import (
    FactorSpec,
    ResidualCovariance,
    ScaleSpec,
    ScaleRegistry,
    define_factor,
    define_scale,
    derive_scale,
    items
)
from .fit_engine import CFAFitter, FittedScale, fit_scale
from .modification import ModificationAdvisor, modification_indices
from .scoring import extract_scores
from .merger import merge_scores, find_duplicate_columns
from .writer import write_dataset
from .reliability import reliability_table, discriminant_validity
from .report import format_fit_report, format_modification_report, export_diagnostics
from .pipeline import ScaleStep, ScorePipeline, PipelineResult, plan_columns, run_pipeline

__version__ = "1.0.0"
__author__ = "Survey Factor Scores Team"

__all__ = [
    # Errors
    'FactorScoresError',
    'ConfigurationError',
    'ColumnCollisionError',
    'NonConvergenceError',
    'FilesystemError',

    # Configuration
    'FactorScoresConfig',
    'get_default_config',
    'create_custom_config',
    'setup_logging',

    # Data loading
    'SurveyDataset',
    'load_dataset',
    'read_dataset',
    'coerce_numeric',
    'from_frame',

    # Model registry
    'FactorSpec',
    'ResidualCovariance',
    'ScaleSpec',
    'ScaleRegistry',
    'define_factor',
    'define_scale',
    'derive_scale',
    'items',

    # Fitting and scores
    'CFAFitter',
    'FittedScale',
    'fit_scale',
    'ModificationAdvisor',
    'modification_indices',
    'extract_scores',

    # Merge and write
    'merge_scores',
    'find_duplicate_columns',
    'write_dataset',

    # Diagnostics
    'reliability_table',
    'discriminant_validity',
    'format_fit_report',
    'format_modification_report',
    'export_diagnostics',

    # Pipeline
    'ScaleStep',
    'ScorePipeline',
    'PipelineResult',
    'plan_columns',
    'run_pipeline'
]
