"""
Diagnostic Report Module

Human-readable fit reports and modification-index tables per scale, and
CSV export of the same diagnostics for reviewers.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from .config import FIT_COMPARISONS, FactorScoresConfig, get_default_config
from .errors import FilesystemError
from .fit_engine import FittedScale
from .reliability import reliability_table

logger = logging.getLogger(__name__)

REPORT_WIDTH = 60


def check_fit_index(index: str, value: float, thresholds: Dict[str, tuple]) -> Optional[bool]:
    """
    Whether ``value`` meets the acceptance band for ``index``.

    Returns:
        Optional[bool]: None when the index has no band or the value is missing
    """
    if index not in thresholds or value is None or pd.isna(value):
        return None
    direction, cutoff = thresholds[index]
    return bool(FIT_COMPARISONS[direction](value, cutoff))


def _fmt(value, digits: int = 3) -> str:
    if value is None or pd.isna(value):
        return "N/A"
    return f"{value:.{digits}f}"


def format_fit_report(fitted: FittedScale, config: Optional[FactorScoresConfig] = None) -> str:
    """
    Per-scale fit report.

    Args:
        fitted (FittedScale): Fit result
        config (Optional[FactorScoresConfig]): Thresholds for flags and bands

    Returns:
        str: Multi-line report
    """
    config = config if config is not None else get_default_config()
    scale = fitted.scale
    lines = []
    lines.append("=" * REPORT_WIDTH)
    lines.append(f"CFA FIT REPORT: {scale.name}")
    lines.append("=" * REPORT_WIDTH)
    if scale.description:
        lines.append(scale.description)
    if scale.base is not None:
        lines.append(f"Derived from: {' -> '.join(scale.lineage())}")
    lines.append(f"Sample Size: {fitted.n_observations} of {fitted.n_rows} rows")
    lines.append(f"Estimator: {fitted.objective}")
    if fitted.n_iterations is not None:
        lines.append(f"Iterations: {fitted.n_iterations}")
    lines.append("")

    # Global fit
    lines.append("FIT INDICES")
    lines.append("-" * 30)
    indices = fitted.fit_indices
    if 'chi2' in indices:
        lines.append(f"chi2: {_fmt(indices.get('chi2'))}  DoF: {_fmt(indices.get('DoF'), 0)}  "
                     f"p: {_fmt(indices.get('chi2 p-value'))}")
    for index, (direction, cutoff) in config.fit_thresholds.items():
        value = indices.get(index)
        passed = check_fit_index(index, value, config.fit_thresholds)
        verdict = {True: "PASS", False: "FAIL", None: "N/A"}[passed]
        lines.append(f"{index:<6} {_fmt(value):>8}  ({direction} {cutoff})  {verdict}")
    for index in ('AIC', 'BIC'):
        if index in indices:
            lines.append(f"{index:<6} {_fmt(indices[index], 2):>8}")
    lines.append("")

    # Loadings
    lines.append("STANDARDIZED LOADINGS")
    lines.append("-" * 30)
    loadings = fitted.loadings()
    for factor in scale.factors:
        lines.append(f"{factor.name}:")
        rows = loadings[loadings['Factor'] == factor.name]
        for row in rows.itertuples(index=False):
            flag = ""
            if pd.notna(row.Std_Loading) and abs(row.Std_Loading) < config.min_loading:
                flag = f"  < {config.min_loading}"
            lines.append(f"  {row.Item:<28} {_fmt(row.Std_Loading):>7}  "
                         f"(p={_fmt(row.P_value)}){flag}")
    lines.append("")

    # Factor correlations
    if len(scale.factors) > 1:
        lines.append("FACTOR CORRELATIONS")
        lines.append("-" * 30)
        corr = fitted.factor_correlation()
        names = scale.factor_names()
        for i, first in enumerate(names):
            for second in names[i + 1:]:
                r = corr.loc[first, second]
                flag = "" if abs(r) < config.max_factor_correlation else \
                    f"  >= {config.max_factor_correlation} (discriminant validity)"
                lines.append(f"  {first} ~~ {second}: {_fmt(r)}{flag}")
        lines.append("")

    if scale.residual_covariances:
        lines.append("RESIDUAL COVARIANCES")
        lines.append("-" * 30)
        added = {c.key for c in scale.added_constraints()} if scale.base is not None else set()
        for constraint in scale.residual_covariances:
            value = fitted.theta.loc[constraint.left, constraint.right]
            marker = "  (added)" if constraint.key in added else ""
            lines.append(f"  {constraint}: {_fmt(value)}{marker}")
        lines.append("")

    lines.append("RELIABILITY")
    lines.append("-" * 30)
    table = reliability_table(fitted)
    for row in table.itertuples(index=False):
        lines.append(f"  {row.Factor:<16} alpha={_fmt(row.Cronbach_Alpha)}  "
                     f"CR={_fmt(row.Composite_Reliability)}  AVE={_fmt(row.AVE)}")

    return "\n".join(lines)


def format_modification_report(suggestions: pd.DataFrame, threshold: float,
                               scale_name: Optional[str] = None) -> str:
    """
    Modification-index table for human review.

    Args:
        suggestions (pd.DataFrame): Output of ``ModificationAdvisor.suggest``
        threshold (float): Minimum improvement used for filtering
        scale_name (Optional[str]): Title

    Returns:
        str: Multi-line table
    """
    title = "MODIFICATION INDICES"
    if scale_name:
        title += f": {scale_name}"
    lines = [title, "-" * REPORT_WIDTH, f"Minimum improvement: {threshold}"]

    if suggestions.empty:
        lines.append("No modification index at or above the threshold.")
        return "\n".join(lines)

    lines.append(f"{'Parameter':<44} {'MI':>8} {'EPC':>8}")
    for row in suggestions.itertuples(index=False):
        parameter = f"{row.lval} {row.op} {row.rval}"
        lines.append(f"{parameter:<44} {row.mi:>8.2f} {row.epc:>8.3f} {row.significance}")
    lines.append("*** p<0.001, ** p<0.01, * p<0.05")
    return "\n".join(lines)


def _interpret_fit_index(index: str, value: float, thresholds: Dict[str, tuple]) -> str:
    passed = check_fit_index(index, value, thresholds)
    if passed is None:
        return ""
    return "Acceptable" if passed else "Poor"


def export_diagnostics(fitted: FittedScale, output_dir: Union[str, Path],
                       config: Optional[FactorScoresConfig] = None,
                       modifications: Optional[pd.DataFrame] = None) -> Dict[str, Path]:
    """
    Write loadings, fit indices, reliability and the text report as files.

    Args:
        fitted (FittedScale): Fit result
        output_dir (Union[str, Path]): Destination directory (created)
        config (Optional[FactorScoresConfig]): Thresholds for interpretation
        modifications (Optional[pd.DataFrame]): Modification indices to save too

    Returns:
        Dict[str, Path]: Saved file per kind

    Raises:
        FilesystemError: The directory or any of the files could not be written
    """
    config = config if config is not None else get_default_config()
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Cannot create diagnostics directory ({e})", output_dir) from e

    base = f"{fitted.name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    saved_files = {}

    loadings = fitted.loadings()
    loadings['Sample_Size'] = fitted.n_observations

    fit_df = pd.DataFrame([
        {'Fit_Index': index, 'Value': value,
         'Interpretation': _interpret_fit_index(index, value, config.fit_thresholds),
         'Sample_Size': fitted.n_observations}
        for index, value in fitted.fit_indices.items()
    ])

    tables = {
        'loadings': loadings,
        'fit_indices': fit_df,
        'reliability': reliability_table(fitted),
        'factor_correlations': fitted.factor_correlation(),
    }
    if modifications is not None:
        tables['modification_indices'] = modifications

    for kind, table in tables.items():
        file_path = output_dir / f"{base}_{kind}.csv"
        try:
            table.to_csv(file_path, index=(kind == 'factor_correlations'), encoding='utf-8-sig')
        except OSError as e:
            logger.error(f"{fitted.name}: {kind} not saved: {e}")
            raise FilesystemError(f"Cannot write {kind} table ({e})", file_path) from e
        saved_files[kind] = file_path

    report_path = output_dir / f"{base}_summary.txt"
    try:
        with open(report_path, 'w', encoding='utf-8') as f:
            f.write(format_fit_report(fitted, config))
    except OSError as e:
        logger.error(f"{fitted.name}: summary report not saved: {e}")
        raise FilesystemError(f"Cannot write summary report ({e})", report_path) from e
    saved_files['summary_report'] = report_path

    logger.info(f"{fitted.name}: diagnostics saved ({len(saved_files)} files) in {output_dir}")
    return saved_files
