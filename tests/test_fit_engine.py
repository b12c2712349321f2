"""
Fit engine tests with semopy on simulated data.
"""

import numpy as np
import pandas as pd
import pytest

import factor_scores.fit_engine as fit_engine
from factor_scores import (
    CFAFitter,
    ConfigurationError,
    NonConvergenceError,
    create_custom_config,
    define_factor,
    define_scale,
    from_frame,
)
from factor_scores.fit_engine import calculate_srmr


class TestCFAFitter:

    def test_one_factor_fit(self, fitted_one):
        assert fitted_one.converged
        assert fitted_one.n_observations == 300
        assert fitted_one.n_rows == 300

        loadings = fitted_one.loadings()
        assert loadings['Item'].tolist() == ['A1', 'A2', 'A3', 'A4']
        assert (loadings['Std_Loading'].abs() > 0.6).all()

        assert 'SRMR' in fitted_one.fit_indices
        assert fitted_one.fit_indices['SRMR'] < 0.08

    def test_matrices(self, fitted_two):
        assert list(fitted_two.lambda_.columns) == ['F1', 'F2']
        assert fitted_two.lambda_.loc['X1', 'F2'] == 0.0
        assert fitted_two.lambda_.loc['Y1', 'F2'] != 0.0

        corr = fitted_two.factor_correlation()
        assert corr.loc['F1', 'F1'] == pytest.approx(1.0)
        assert 0.2 < corr.loc['F1', 'F2'] < 0.6

        sigma = fitted_two.implied_covariance()
        assert sigma.shape == (8, 8)
        assert np.allclose(sigma.values, sigma.values.T)

    def test_fiml_matches_complete_data_ml(self, two_factor_frame, two_factor_scale):
        """Without missing values FIML and MLW must agree on the factor structure."""
        fiml = CFAFitter().fit(two_factor_scale, from_frame(two_factor_frame))
        mlw = CFAFitter(create_custom_config(objective='MLW')).fit(
            two_factor_scale, from_frame(two_factor_frame))

        fiml_corr = fiml.factor_correlation().loc['F1', 'F2']
        mlw_corr = mlw.factor_correlation().loc['F1', 'F2']
        assert fiml_corr == pytest.approx(mlw_corr, abs=0.05)
        assert 0.2 < fiml_corr < 0.6
        # factor variances near the simulated loading squared, not inflated by item means
        assert (np.diag(fiml.phi.values) < 2.0).all()
        assert fiml.fit_indices['CFI'] > 0.95
        assert fiml.fit_indices['SRMR'] < 0.08

    def test_fiml_means_are_intercepts(self, fitted_two, two_factor_frame):
        means = fitted_two.indicator_means
        assert list(means.index) == list(fitted_two.lambda_.index)
        assert np.allclose(means.values, two_factor_frame[means.index].mean().values, atol=0.05)

    def test_result_is_read_only(self, fitted_one):
        with pytest.raises(Exception):
            fitted_one.n_observations = 1

    def test_missing_column_never_reaches_semopy(self, monkeypatch, one_factor_frame):
        def forbidden(*args, **kwargs):
            raise AssertionError("semopy must not be called")

        monkeypatch.setattr(fit_engine, 'Model', forbidden)
        monkeypatch.setattr(fit_engine, 'ModelMeans', forbidden)
        scale = define_scale('S', [define_factor('F', ['A1', 'A2', 'A5'])])

        with pytest.raises(ConfigurationError) as excinfo:
            CFAFitter().fit(scale, from_frame(one_factor_frame))
        assert excinfo.value.columns == ['A5']

    def test_constant_indicator(self, one_factor_frame, one_factor_scale):
        frame = one_factor_frame.copy()
        frame['A4'] = 1.0
        with pytest.raises(ConfigurationError) as excinfo:
            CFAFitter().fit(one_factor_scale, from_frame(frame))
        assert excinfo.value.columns == ['A4']

    def test_all_missing_row_excluded_from_estimation(self, one_factor_frame, one_factor_scale):
        frame = one_factor_frame.copy()
        frame.loc[3, ['A1', 'A2', 'A3', 'A4']] = np.nan
        fitted = CFAFitter().fit(one_factor_scale, from_frame(frame))

        assert fitted.n_observations == 299
        assert fitted.n_rows == 300
        assert fitted.data.index.equals(frame.index)

    def test_solver_failure_raises_non_convergence(self, monkeypatch, one_factor_frame,
                                                   one_factor_scale):
        class FailedResult:
            success = False
            message = 'Iteration limit reached'
            n_it = 1000
            fun = 12.5

        class FakeModel:
            def __init__(self, description):
                self.description = description

            def fit(self, data, obj, solver):
                return FailedResult()

        monkeypatch.setattr(fit_engine, 'ModelMeans', FakeModel)
        with pytest.raises(NonConvergenceError) as excinfo:
            CFAFitter().fit(one_factor_scale, from_frame(one_factor_frame))

        error = excinfo.value
        assert error.scale == 'Alpha'
        assert error.n_iterations == 1000
        assert 'Iteration limit reached' in str(error)

    def test_fitting_leaves_scale_untouched(self, one_factor_frame):
        scale = define_scale('S', [define_factor('F', ['A1', 'A2', 'A3', 'A4'])],
                             [('A1', 'A2')])
        before = scale.residual_covariances
        CFAFitter().fit(scale, from_frame(one_factor_frame))
        assert scale.residual_covariances == before


class TestSRMR:

    def test_zero_for_perfect_fit(self):
        cov = pd.DataFrame([[1.0, 0.5], [0.5, 1.0]], index=['a', 'b'], columns=['a', 'b'])
        assert calculate_srmr(cov, cov) == pytest.approx(0.0)

    def test_positive_for_misfit(self):
        observed = pd.DataFrame([[1.0, 0.5], [0.5, 1.0]], index=['a', 'b'], columns=['a', 'b'])
        implied = pd.DataFrame([[1.0, 0.2], [0.2, 1.0]], index=['a', 'b'], columns=['a', 'b'])
        # one off-diagonal residual of .3 over three lower-triangle elements
        assert calculate_srmr(observed, implied) == pytest.approx(np.sqrt(0.09 / 3))
