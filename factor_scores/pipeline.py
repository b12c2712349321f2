"""
Score Pipeline Module

Runs a plan of scales over one dataset, strictly in order:

    fit -> report -> (optional) modification indices -> scores -> merge

Each step takes the current dataset snapshot and hands a new one to the
next step. The whole column plan is validated before anything is fitted.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from .config import FactorScoresConfig, get_default_config
from .data_loader import SurveyDataset
from .errors import ColumnCollisionError, ConfigurationError, NonConvergenceError
from .fit_engine import CFAFitter, FittedScale
from .merger import merge_scores, resolve_column_names
from .model_spec import ScaleSpec
from .modification import ModificationAdvisor
from .report import export_diagnostics, format_fit_report, format_modification_report
from .scoring import extract_scores

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScaleStep:
    """
    One scale of a run and where its scores go.

    Attributes:
        scale (ScaleSpec): Measurement model to fit
        column_map (Dict[str, str]): factor -> output column name
        position (Optional[str]): 'append' or 'prepend', default from config
        inspect_modifications (bool): Report modification indices for this scale
    """

    scale: ScaleSpec
    column_map: Dict[str, str] = field(default_factory=dict)
    position: Optional[str] = None
    inspect_modifications: bool = False

    @property
    def name(self) -> str:
        return self.scale.name

    def output_columns(self) -> List[str]:
        return list(resolve_column_names(self.scale.factor_names(), self.column_map).values())

    def score_labels(self) -> Dict[str, str]:
        resolved = resolve_column_names(self.scale.factor_names(), self.column_map)
        return {target: f"{self.scale.name} factor score: {factor}"
                for factor, target in resolved.items()}


@dataclass
class PipelineResult:
    """Outcome of a pipeline run."""

    dataset: SurveyDataset
    fits: Dict[str, FittedScale] = field(default_factory=dict)
    reports: Dict[str, str] = field(default_factory=dict)
    modifications: Dict[str, pd.DataFrame] = field(default_factory=dict)
    failures: Dict[str, NonConvergenceError] = field(default_factory=dict)
    exports: Dict[str, Dict[str, Path]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failures


def plan_columns(dataset: SurveyDataset, steps: Sequence[ScaleStep]) -> List[List[str]]:
    """
    Validate a whole run before fitting anything.

    A step may use as indicators the columns of the input dataset and the
    score columns of earlier steps. Output names must be new.

    Args:
        dataset (SurveyDataset): Input dataset
        steps (Sequence[ScaleStep]): Steps in run order

    Returns:
        List[List[str]]: Output columns of each step

    Raises:
        ConfigurationError: Missing indicator, bad column map, repeated scale
        ColumnCollisionError: An output name already exists at that point
    """
    known = set(dataset.columns)
    seen_scales = set()
    outputs = []

    for step in steps:
        if step.name in seen_scales:
            raise ConfigurationError("Scale appears twice in one run", scale=step.name)
        seen_scales.add(step.name)

        step.scale.validate_against(known)

        try:
            columns = step.output_columns()
        except ConfigurationError as e:
            raise ConfigurationError(str(e), scale=step.name, columns=e.columns) from e

        collisions = [col for col in columns if col in known]
        collisions += [col for col in dict.fromkeys(columns)
                       if columns.count(col) > 1 and col not in collisions]
        if collisions:
            logger.warning(f"{step.name}: score columns collide: {collisions}")
            raise ColumnCollisionError(
                f"Score columns would overwrite or duplicate existing columns: {collisions}",
                scale=step.name, columns=collisions)

        known.update(columns)
        outputs.append(columns)

    logger.info(f"Run plan validated: {len(steps)} scale(s), "
                f"{sum(len(cols) for cols in outputs)} score columns")
    return outputs


class ScorePipeline:
    """Sequential fit / score / merge over a list of ScaleSteps"""

    def __init__(self, config: Optional[FactorScoresConfig] = None,
                 fitter: Optional[CFAFitter] = None,
                 export_dir: Optional[Union[str, Path]] = None):
        """
        Args:
            config (Optional[FactorScoresConfig]): Run settings
            fitter (Optional[CFAFitter]): Fitting backend, built from config by default
            export_dir (Optional[Union[str, Path]]): Directory for diagnostic CSVs
        """
        self.config = config if config is not None else get_default_config()
        self.fitter = fitter if fitter is not None else CFAFitter(self.config)
        self.export_dir = Path(export_dir) if export_dir is not None else None

    def run(self, dataset: SurveyDataset, steps: Sequence[ScaleStep]) -> PipelineResult:
        """
        Run every step in order.

        Args:
            dataset (SurveyDataset): Input snapshot (left unchanged)
            steps (Sequence[ScaleStep]): Steps in run order

        Returns:
            PipelineResult: Final dataset plus per-scale fits and reports

        Raises:
            ConfigurationError: Invalid plan, or a step needs a failed scale's columns
            NonConvergenceError: A fit failed and the config does not continue past it
        """
        outputs = plan_columns(dataset, steps)
        producers = {col: step.name for step, columns in zip(steps, outputs) for col in columns}

        result = PipelineResult(dataset=dataset)
        current = dataset

        for step in steps:
            blocked = [col for col in step.scale.indicators()
                       if producers.get(col) in result.failures]
            if blocked:
                raise ConfigurationError(
                    f"Indicators come from a scale that did not converge: {blocked}",
                    scale=step.name, columns=blocked)

            logger.info(f"=== {step.name} ===")
            try:
                fitted = self.fitter.fit(step.scale, current)
            except NonConvergenceError as e:
                logger.error(f"{step.name}: no scores extracted or merged ({e})")
                if not self.config.continue_on_nonconvergence:
                    raise
                result.failures[step.name] = e
                continue

            result.fits[step.name] = fitted
            result.reports[step.name] = format_fit_report(fitted, self.config)
            logger.info("\n" + result.reports[step.name])

            if step.inspect_modifications:
                suggestions = ModificationAdvisor(fitted).suggest(self.config.min_improvement)
                result.modifications[step.name] = suggestions
                logger.info("\n" + format_modification_report(
                    suggestions, self.config.min_improvement, step.name))

            scores = extract_scores(fitted, self.config.score_method)
            current = merge_scores(current, scores, step.column_map,
                                   step.position or self.config.score_position,
                                   labels=step.score_labels())

            if self.export_dir is not None:
                result.exports[step.name] = export_diagnostics(
                    fitted, self.export_dir, self.config, result.modifications.get(step.name))

        result.dataset = current
        if result.failures:
            logger.warning(f"Scales without scores (did not converge): {list(result.failures)}")
        logger.info(f"Pipeline finished: {len(result.fits)} scale(s) scored, "
                    f"dataset {current.frame.shape}")
        return result


def run_pipeline(dataset: SurveyDataset, steps: Sequence[ScaleStep],
                 config: Optional[FactorScoresConfig] = None) -> PipelineResult:
    """Convenience wrapper around ``ScorePipeline(config).run``."""
    return ScorePipeline(config).run(dataset, steps)
