"""
Fit Engine Module using semopy

Fits a ScaleSpec to a dataset snapshot with semopy (full-information
maximum likelihood by default) and wraps the result in a read-only
FittedScale that exposes fit statistics, loadings and the model-implied
moments needed for factor scores and modification indices.
"""

import logging
import warnings
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

# semopy is the estimation backend
try:
    from semopy import Model, ModelMeans
    from semopy.stats import calc_stats
except ImportError as e:
    logging.error("semopy is required: pip install semopy")
    raise e

from .config import FactorScoresConfig, get_default_config
from .data_loader import SurveyDataset
from .errors import ConfigurationError, NonConvergenceError
from .model_spec import ScaleSpec

logger = logging.getLogger(__name__)

FIT_INDEX_KEYS = ['DoF', 'chi2', 'chi2 p-value', 'CFI', 'TLI', 'RMSEA', 'GFI', 'AIC', 'BIC']


@dataclass(frozen=True)
class FittedScale:
    """
    Result of fitting one scale to one dataset snapshot.

    Attributes:
        scale (ScaleSpec): The specification that was fitted
        model (semopy.Model): Fitted semopy handle
        data (pd.DataFrame): Indicator columns for every dataset row (original index)
        n_observations (int): Rows that entered estimation
        objective (str): semopy objective name
        lambda_ (pd.DataFrame): Loadings, indicators x factors
        phi (pd.DataFrame): Factor covariance matrix
        theta (pd.DataFrame): Residual covariance matrix, indicators x indicators
        means (pd.Series): Indicator means; estimated intercepts under FIML,
            observed-value means otherwise
        estimates (pd.DataFrame): semopy ``inspect(std_est=True)`` table
        fit_indices (Dict[str, float]): Global fit statistics
    """

    scale: ScaleSpec
    model: Any
    data: pd.DataFrame
    n_observations: int
    objective: str
    lambda_: pd.DataFrame
    phi: pd.DataFrame
    theta: pd.DataFrame
    means: pd.Series
    estimates: pd.DataFrame
    fit_indices: Dict[str, float] = field(default_factory=dict)
    converged: bool = True
    n_iterations: Optional[int] = None
    objective_value: Optional[float] = None

    @property
    def name(self) -> str:
        return self.scale.name

    @property
    def n_rows(self) -> int:
        return len(self.data)

    @property
    def factor_covariance(self) -> pd.DataFrame:
        return self.phi.copy()

    @property
    def residual_covariance(self) -> pd.DataFrame:
        return self.theta.copy()

    @property
    def indicator_means(self) -> pd.Series:
        return self.means.copy()

    def factor_correlation(self) -> pd.DataFrame:
        """Factor correlations (discriminant validity)."""
        sd = np.sqrt(np.diag(self.phi.values))
        corr = self.phi.values / np.outer(sd, sd)
        return pd.DataFrame(corr, index=self.phi.index, columns=self.phi.columns)

    def implied_covariance(self) -> pd.DataFrame:
        """Model-implied covariance  Sigma = Lambda Phi Lambda' + Theta."""
        lam = self.lambda_.values
        sigma = lam @ self.phi.values @ lam.T + self.theta.values
        return pd.DataFrame(sigma, index=self.theta.index, columns=self.theta.columns)

    def observed_covariance(self) -> pd.DataFrame:
        """Pairwise-complete sample covariance of the indicators used in estimation."""
        used = self.data[self.data.notna().any(axis=1)]
        return used.cov()

    def loadings(self) -> pd.DataFrame:
        """
        Loading table in declaration order.

        Returns:
            pd.DataFrame: Factor, Item, Loading, Std_Loading, SE, P_value
        """
        table = self.estimates
        rows = []
        for factor in self.scale.factors:
            for item in factor.indicators:
                match = table[(table['op'] == '~') & (table['lval'] == item)
                              & (table['rval'] == factor.name)]
                if match.empty:
                    continue
                row = match.iloc[0]
                rows.append({
                    'Factor': factor.name,
                    'Item': item,
                    'Loading': float(row['Estimate']),
                    'Std_Loading': _as_float(row.get('Est. Std')),
                    'SE': _as_float(row.get('Std. Err')),
                    'P_value': _as_float(row.get('p-value')),
                })
        return pd.DataFrame(rows, columns=['Factor', 'Item', 'Loading', 'Std_Loading',
                                           'SE', 'P_value'])


def _as_float(value) -> float:
    """semopy reports fixed parameters with '-' in SE/p-value columns."""
    converted = pd.to_numeric(pd.Series([value]), errors='coerce').iloc[0]
    return float(converted) if pd.notna(converted) else np.nan


def build_matrices(estimates: pd.DataFrame, scale: ScaleSpec):
    """
    Rebuild Lambda, Phi and Theta from a semopy parameter table.

    Args:
        estimates (pd.DataFrame): ``Model.inspect()`` output
        scale (ScaleSpec): Fitted scale, for variable order

    Returns:
        tuple: (lambda_, phi, theta) DataFrames
    """
    indicators = scale.indicators()
    factors = scale.factor_names()

    lambda_ = pd.DataFrame(0.0, index=indicators, columns=factors)
    phi = pd.DataFrame(0.0, index=factors, columns=factors)
    theta = pd.DataFrame(0.0, index=indicators, columns=indicators)

    values = pd.to_numeric(estimates['Estimate'], errors='coerce')
    for (lval, op, rval), value in zip(estimates[['lval', 'op', 'rval']].itertuples(index=False),
                                       values):
        if op == '~' and lval in indicators and rval in factors:
            lambda_.loc[lval, rval] = value
        elif op == '~~' and lval in factors and rval in factors:
            phi.loc[lval, rval] = value
            phi.loc[rval, lval] = value
        elif op == '~~' and lval in indicators and rval in indicators:
            theta.loc[lval, rval] = value
            theta.loc[rval, lval] = value

    if (np.diag(phi.values) <= 0).any():
        bad = [f for f in factors if phi.loc[f, f] <= 0]
        logger.warning(f"{scale.name}: non-positive factor variance for {bad}")

    return lambda_, phi, theta


def build_means(estimates: pd.DataFrame, scale: ScaleSpec,
                fallback: pd.Series) -> pd.Series:
    """
    Indicator intercepts (``item ~ 1`` rows of a ModelMeans table).

    Indicators without an intercept row take the value from ``fallback``.
    """
    indicators = scale.indicators()
    intercepts = estimates[(estimates['op'] == '~') & (estimates['rval'] == '1')]
    values = pd.Series(pd.to_numeric(intercepts['Estimate'], errors='coerce').values,
                       index=intercepts['lval'].values)
    means = fallback.loc[indicators].astype(float).copy()
    found = [item for item in indicators if item in values.index]
    means.loc[found] = values.loc[found].values
    return means


def calculate_srmr(observed: pd.DataFrame, implied: pd.DataFrame) -> float:
    """
    Standardized root mean square residual.

    Residual correlations are taken over the lower triangle including the
    diagonal (Bentler's definition).
    """
    s = observed.loc[implied.index, implied.columns].values
    sigma = implied.values
    s_sd = np.sqrt(np.diag(s))
    sigma_sd = np.sqrt(np.diag(sigma))
    residual = s / np.outer(s_sd, s_sd) - sigma / np.outer(sigma_sd, sigma_sd)
    lower = residual[np.tril_indices_from(residual)]
    return float(np.sqrt(np.nanmean(lower ** 2)))


class CFAFitter:
    """CFA fitting with semopy"""

    def __init__(self, config: Optional[FactorScoresConfig] = None):
        """
        Args:
            config (Optional[FactorScoresConfig]): Estimation settings
        """
        self.config = config if config is not None else get_default_config()

    def fit(self, scale: ScaleSpec, dataset: Union[SurveyDataset, pd.DataFrame]) -> FittedScale:
        """
        Fit ``scale`` to ``dataset``.

        Configuration problems are raised before semopy is called.

        Args:
            scale (ScaleSpec): Measurement model
            dataset (Union[SurveyDataset, pd.DataFrame]): Data snapshot

        Returns:
            FittedScale: Read-only fit result

        Raises:
            ConfigurationError: Missing, non-numeric or constant indicator columns
            NonConvergenceError: The optimizer did not reach a solution
        """
        frame = dataset.frame if isinstance(dataset, SurveyDataset) else dataset
        scale.validate_against(frame)

        data = self._prepare_data(scale, frame)
        usable = data.notna().any(axis=1)
        clean_data = data[usable]

        n_dropped = int((~usable).sum())
        if n_dropped:
            logger.info(f"{scale.name}: {n_dropped} rows have no observed indicator; "
                        f"excluded from estimation, scored as missing")

        logger.info(f"{scale.name}: fitting {len(scale.factors)} factor(s), "
                    f"{len(scale.indicators())} indicators, N={len(clean_data)} "
                    f"(obj={self.config.objective}, solver={self.config.optimizer})")
        logger.debug(f"Model description:\n{scale.to_semopy()}")

        model, objective = self._build_model(scale)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                result = model.fit(clean_data, obj=objective, solver=self.config.optimizer)
        except np.linalg.LinAlgError as e:
            logger.error(f"{scale.name}: numerical failure during estimation: {e}")
            raise NonConvergenceError(scale.name, f"linear algebra failure: {e}") from e

        n_iterations = getattr(result, 'n_it', getattr(result, 'nit', None))
        objective_value = getattr(result, 'fun', None)
        success = bool(getattr(result, 'success', True))
        if objective_value is not None and not np.isfinite(objective_value):
            success = False

        if not success:
            message = str(getattr(result, 'message', 'optimizer reported failure'))
            logger.error(f"{scale.name}: did not converge ({message})")
            raise NonConvergenceError(scale.name, message, n_iterations,
                                      None if objective_value is None else float(objective_value))

        logger.info(f"{scale.name}: converged"
                    + (f" in {n_iterations} iterations" if n_iterations is not None else ""))

        estimates = model.inspect(std_est=True)
        lambda_, phi, theta = build_matrices(estimates, scale)
        means = build_means(estimates, scale, clean_data.mean())

        fitted = FittedScale(
            scale=scale,
            model=model,
            data=data,
            n_observations=len(clean_data),
            objective=self.config.objective,
            lambda_=lambda_,
            phi=phi,
            theta=theta,
            means=means,
            estimates=estimates,
            converged=True,
            n_iterations=n_iterations,
            objective_value=None if objective_value is None else float(objective_value),
        )
        return replace(fitted, fit_indices=self._fit_indices(fitted))

    def _build_model(self, scale: ScaleSpec):
        """
        semopy model and objective name for the configured estimator.

        FIML needs a mean structure: ModelMeans with its 'ML' objective.
        Plain Model has none and is used only for complete-data objectives.
        """
        if self.config.objective == 'FIML':
            return ModelMeans(scale.to_semopy()), 'ML'
        return Model(scale.to_semopy()), self.config.objective

    def _prepare_data(self, scale: ScaleSpec, frame: pd.DataFrame) -> pd.DataFrame:
        """Indicator columns as float, every row kept."""
        data = frame.loc[:, scale.indicators()].astype(float)

        variances = data.var()
        constant = [col for col in data.columns
                    if not np.isfinite(variances[col]) or variances[col] == 0]
        if constant:
            raise ConfigurationError(
                f"Indicators without variance (constant or almost all missing): {constant}",
                scale=scale.name, columns=constant)

        missing_share = data.isna().mean()
        if missing_share.max() > 0:
            logger.info(f"{scale.name}: missing values per indicator up to "
                        f"{missing_share.max():.1%} ({missing_share.idxmax()})")
        return data

    def _fit_indices(self, fitted: FittedScale) -> Dict[str, float]:
        """Global fit statistics; failures here are reported, not fatal."""
        indices = {}
        try:
            fit_stats = calc_stats(fitted.model)
            for index in FIT_INDEX_KEYS:
                if index in fit_stats:
                    value = fit_stats[index]
                    # calc_stats returns one-row frames
                    if hasattr(value, 'iloc'):
                        value = value.iloc[0] if len(value) > 0 else np.nan
                    elif hasattr(value, 'item'):
                        value = value.item()
                    indices[index] = round(float(value), 4)
        except Exception as e:
            logger.warning(f"{fitted.name}: fit statistics unavailable: {e}")

        try:
            indices['SRMR'] = round(calculate_srmr(fitted.observed_covariance(),
                                                   fitted.implied_covariance()), 4)
        except (ValueError, KeyError, np.linalg.LinAlgError) as e:
            logger.warning(f"{fitted.name}: SRMR unavailable: {e}")

        return indices


def fit_scale(scale: ScaleSpec, dataset: Union[SurveyDataset, pd.DataFrame],
              config: Optional[FactorScoresConfig] = None) -> FittedScale:
    """Convenience wrapper around ``CFAFitter(config).fit``."""
    return CFAFitter(config).fit(scale, dataset)
