"""
Modification Indices Module

Ranks candidate parameters that a fitted CFA leaves fixed (correlated
residuals between indicators, cross-loadings on other factors of the same
scale) by the expected drop in chi-square if each were freed.

MI is the univariate score (Lagrange multiplier) statistic of the ML
discrepancy at the fitted solution:

    g   = tr(Sigma^-1 (Sigma - S) Sigma^-1 D)
    MI  = N g^2 / (2 tr(Sigma^-1 D Sigma^-1 D))
    EPC = -g / tr(Sigma^-1 D Sigma^-1 D)

with D = dSigma/dtheta for the candidate parameter. S is the pairwise
observed covariance, so rows with partial responses contribute.

The advisor only reports. Adding a suggestion to the model means writing
a derived scale with ``derive_scale``.

    MI > 3.84 (p<0.05), MI > 6.63 (p<0.01), MI > 10.83 (p<0.001)
"""

import logging
from typing import List, Optional

import numpy as np
import pandas as pd
from scipy.stats import chi2

from .fit_engine import FittedScale
from .model_spec import ResidualCovariance

logger = logging.getLogger(__name__)

MI_COLUMNS = ['lval', 'op', 'rval', 'mi', 'epc', 'p_value', 'significance']


def _significance(mi: float) -> str:
    if mi >= 10.83:
        return "***"
    elif mi >= 6.63:
        return "**"
    elif mi >= 3.84:
        return "*"
    return ""


class ModificationAdvisor:
    """Modification indices for a fitted scale"""

    def __init__(self, fitted: FittedScale):
        """
        Args:
            fitted (FittedScale): Converged fit to inspect
        """
        self.fitted = fitted
        self.indicators = list(fitted.lambda_.index)
        self.factors = list(fitted.lambda_.columns)

        self.sigma = fitted.implied_covariance().loc[self.indicators, self.indicators].values
        self.observed = fitted.observed_covariance().loc[self.indicators, self.indicators].values
        self.sigma_inv = np.linalg.pinv(self.sigma)
        self.weight = self.sigma_inv @ (self.sigma - self.observed) @ self.sigma_inv
        self.n = fitted.n_observations

    def _score_test(self, d_sigma: np.ndarray):
        g = float(np.sum(self.weight * d_sigma))
        info = float(np.trace(self.sigma_inv @ d_sigma @ self.sigma_inv @ d_sigma))
        if info <= 0:
            return 0.0, 0.0
        return self.n * g ** 2 / (2 * info), -g / info

    def _residual_candidates(self):
        free = {c.key for c in self.fitted.scale.residual_covariances}
        p = len(self.indicators)
        for i in range(p):
            for j in range(i + 1, p):
                left, right = self.indicators[i], self.indicators[j]
                if frozenset((left, right)) in free:
                    continue
                d_sigma = np.zeros((p, p))
                d_sigma[i, j] = d_sigma[j, i] = 1.0
                yield left, '~~', right, d_sigma

    def _loading_candidates(self):
        if len(self.factors) < 2:
            return
        lam_phi = self.fitted.lambda_.values @ self.fitted.phi.values
        p = len(self.indicators)
        for k, factor in enumerate(self.factors):
            own = set(self.fitted.scale.get_factor(factor).indicators)
            a = lam_phi[:, k]
            for j, item in enumerate(self.indicators):
                if item in own:
                    continue
                e_j = np.zeros(p)
                e_j[j] = 1.0
                d_sigma = np.outer(e_j, a) + np.outer(a, e_j)
                yield factor, '=~', item, d_sigma

    def compute(self) -> pd.DataFrame:
        """
        Modification indices for every fixed candidate, unfiltered.

        Returns:
            pd.DataFrame: lval, op, rval, mi, epc, p_value, significance sorted by mi
        """
        rows = []
        for generator in (self._residual_candidates(), self._loading_candidates()):
            for lval, op, rval, d_sigma in generator:
                mi, epc = self._score_test(d_sigma)
                rows.append({
                    'lval': lval,
                    'op': op,
                    'rval': rval,
                    'mi': mi,
                    'epc': epc,
                    'p_value': float(chi2.sf(mi, df=1)),
                    'significance': _significance(mi),
                })

        mi_df = pd.DataFrame(rows, columns=MI_COLUMNS)
        if len(mi_df) > 0:
            mi_df = mi_df.sort_values('mi', ascending=False, kind='mergesort').reset_index(drop=True)
        return mi_df

    def suggest(self, min_improvement: float = 10.0) -> pd.DataFrame:
        """
        Candidates whose MI reaches ``min_improvement``, largest first.

        Args:
            min_improvement (float): Minimum expected chi-square reduction

        Returns:
            pd.DataFrame: Filtered modification indices
        """
        mi_df = self.compute()
        significant = mi_df[mi_df['mi'] >= min_improvement].reset_index(drop=True)
        logger.info(f"{self.fitted.name}: {len(significant)} modification indices >= "
                    f"{min_improvement} (of {len(mi_df)} candidates)")
        return significant

    def residual_suggestions(self, min_improvement: float = 10.0,
                             max_suggestions: Optional[int] = None) -> List[ResidualCovariance]:
        """Residual-covariance suggestions ready for ``derive_scale``."""
        mi_df = self.suggest(min_improvement)
        residuals = mi_df[mi_df['op'] == '~~']
        if max_suggestions is not None:
            residuals = residuals.head(max_suggestions)
        return [ResidualCovariance(row.lval, row.rval) for row in residuals.itertuples(index=False)]


def modification_indices(fitted: FittedScale, min_improvement: float = 10.0) -> pd.DataFrame:
    """Modification indices at or above ``min_improvement``, sorted descending."""
    return ModificationAdvisor(fitted).suggest(min_improvement)
