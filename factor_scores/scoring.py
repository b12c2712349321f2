"""
Score Extractor Module

Computes factor scores from a FittedScale. Rows are grouped by their
missingness pattern and scored from the observed indicators only, so
incomplete responses still get scores while a factor with none of its
indicators observed is left missing.
"""

import logging

import numpy as np
import pandas as pd

from .errors import ConfigurationError
from .fit_engine import FittedScale

logger = logging.getLogger(__name__)

SCORE_METHODS = ('regression', 'bartlett')


def _regression_weights(lam_o: np.ndarray, phi: np.ndarray, sigma_oo: np.ndarray) -> np.ndarray:
    """Thurstone weights  Phi Lambda_o' Sigma_oo^-1  (factors x observed)."""
    return phi @ lam_o.T @ np.linalg.pinv(sigma_oo)


def _bartlett_weights(lam_o: np.ndarray, theta_oo: np.ndarray) -> np.ndarray:
    """Bartlett weights  (Lambda_o' Theta^-1 Lambda_o)^-1 Lambda_o' Theta^-1."""
    theta_inv = np.linalg.pinv(theta_oo)
    return np.linalg.pinv(lam_o.T @ theta_inv @ lam_o) @ lam_o.T @ theta_inv


def extract_scores(fitted: FittedScale, method: str = 'regression') -> pd.DataFrame:
    """
    Factor scores for every row of the fitted dataset.

    Args:
        fitted (FittedScale): Fit result
        method (str): 'regression' (default) or 'bartlett'

    Returns:
        pd.DataFrame: One row per dataset row (same index), one column per
        factor in declaration order. A factor whose indicators are all
        missing in a row is NaN for that row.
    """
    if method not in SCORE_METHODS:
        raise ConfigurationError(f"Unknown score method: {method}")

    data = fitted.data
    factors = fitted.scale.factor_names()
    indicators = list(fitted.lambda_.index)

    lam = fitted.lambda_.values
    phi = fitted.phi.values
    theta = fitted.theta.loc[indicators, indicators].values
    sigma = fitted.implied_covariance().loc[indicators, indicators].values
    mu = fitted.means.loc[indicators].values

    values = data.loc[:, indicators].values
    observed = ~np.isnan(values)
    scores = np.full((len(data), len(factors)), np.nan)

    patterns, inverse = np.unique(observed, axis=0, return_inverse=True)
    inverse = np.asarray(inverse).reshape(-1)
    for pattern_id, pattern in enumerate(patterns):
        if not pattern.any():
            continue
        rows = np.where(inverse == pattern_id)[0]
        lam_o = lam[pattern]
        centered = values[np.ix_(rows, np.where(pattern)[0])] - mu[pattern]

        # factors with at least one observed indicator in this pattern
        covered = np.abs(lam_o).sum(axis=0) > 0

        if method == 'regression':
            weights = _regression_weights(lam_o, phi, sigma[np.ix_(pattern, pattern)])
            pattern_scores = centered @ weights.T
            scores[np.ix_(rows, np.where(covered)[0])] = pattern_scores[:, covered]
        else:
            weights = _bartlett_weights(lam_o[:, covered], theta[np.ix_(pattern, pattern)])
            scores[np.ix_(rows, np.where(covered)[0])] = centered @ weights.T

    result = pd.DataFrame(scores, index=data.index, columns=factors)

    n_missing = result.isna().sum()
    if n_missing.any():
        logger.info(f"{fitted.name}: rows without a score per factor: "
                    f"{n_missing[n_missing > 0].to_dict()}")
    logger.info(f"{fitted.name}: factor scores extracted ({method}) {result.shape}")
    return result
