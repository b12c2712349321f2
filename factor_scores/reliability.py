"""
Reliability and Validity Module

Per-factor reliability of a fitted scale:
- Cronbach's Alpha
- Composite Reliability (CR)
- Average Variance Extracted (AVE)
- Discriminant validity (Fornell-Larcker)
"""

import logging
from typing import Dict, List

import numpy as np
import pandas as pd

from .fit_engine import FittedScale

logger = logging.getLogger(__name__)

RELIABILITY_COLUMNS = ['Factor', 'N_Items', 'Cronbach_Alpha', 'Composite_Reliability',
                       'AVE', 'Sqrt_AVE', 'Mean_Loading', 'Min_Loading']


def cronbach_alpha(data: pd.DataFrame, items: List[str]) -> float:
    """
    Cronbach's alpha over complete rows of ``items``.

    Args:
        data (pd.DataFrame): Raw item data
        items (List[str]): Items of one factor

    Returns:
        float: alpha, NaN when it cannot be computed
    """
    item_data = data[items].dropna()
    k = len(items)
    if len(item_data) < 2 or k < 2:
        logger.warning(f"Not enough complete rows or items for alpha: {items}")
        return np.nan

    sum_item_var = item_data.var(ddof=1).sum()
    total_var = item_data.sum(axis=1).var(ddof=1)
    if total_var == 0:
        return np.nan
    return float((k / (k - 1)) * (1 - sum_item_var / total_var))


def composite_reliability(loadings, error_variances) -> float:
    """CR = (sum lambda)^2 / [(sum lambda)^2 + sum delta]"""
    loadings = np.asarray(loadings, dtype=float)
    numerator = np.sum(loadings) ** 2
    denominator = numerator + np.sum(error_variances)
    if denominator == 0:
        return np.nan
    return float(numerator / denominator)


def average_variance_extracted(loadings, error_variances) -> float:
    """AVE = sum lambda^2 / (sum lambda^2 + sum delta)"""
    loadings = np.asarray(loadings, dtype=float)
    sum_squared = np.sum(loadings ** 2)
    denominator = sum_squared + np.sum(error_variances)
    if denominator == 0:
        return np.nan
    return float(sum_squared / denominator)


def reliability_table(fitted: FittedScale) -> pd.DataFrame:
    """
    Reliability statistics for every factor of a fitted scale.

    Standardized loadings come from the fit; error variances are 1 - lambda^2.

    Args:
        fitted (FittedScale): Fit result

    Returns:
        pd.DataFrame: One row per factor, RELIABILITY_COLUMNS
    """
    loadings = fitted.loadings()
    rows = []
    for factor in fitted.scale.factors:
        std = loadings.loc[loadings['Factor'] == factor.name, 'Std_Loading'].to_numpy(dtype=float)
        if len(std) == 0 or np.isnan(std).all():
            logger.warning(f"{fitted.name}: no standardized loadings for {factor.name}")
            cr = ave = np.nan
        else:
            error_variances = 1 - std ** 2
            cr = composite_reliability(std, error_variances)
            ave = average_variance_extracted(std, error_variances)

        rows.append({
            'Factor': factor.name,
            'N_Items': len(factor.indicators),
            'Cronbach_Alpha': cronbach_alpha(fitted.data, list(factor.indicators)),
            'Composite_Reliability': cr,
            'AVE': ave,
            'Sqrt_AVE': np.sqrt(ave) if not np.isnan(ave) else np.nan,
            'Mean_Loading': float(np.nanmean(std)) if len(std) else np.nan,
            'Min_Loading': float(np.nanmin(std)) if len(std) else np.nan,
        })

    logger.info(f"{fitted.name}: reliability computed for {len(rows)} factor(s)")
    return pd.DataFrame(rows, columns=RELIABILITY_COLUMNS)


def discriminant_validity(fitted: FittedScale) -> Dict[str, Dict[str, bool]]:
    """
    Fornell-Larcker check: sqrt(AVE) of both factors exceeds their |r|.

    Returns:
        Dict[str, Dict[str, bool]]: factor -> other factor -> criterion met
    """
    table = reliability_table(fitted).set_index('Factor')
    correlations = fitted.factor_correlation()
    factors = list(table.index)

    results = {}
    for factor1 in factors:
        results[factor1] = {}
        for factor2 in factors:
            if factor1 == factor2:
                continue
            correlation = abs(correlations.loc[factor1, factor2])
            results[factor1][factor2] = bool(
                table.loc[factor1, 'Sqrt_AVE'] > correlation
                and table.loc[factor2, 'Sqrt_AVE'] > correlation
            )
    return results
