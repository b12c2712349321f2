"""
Shared fixtures: survey-like data simulated from known factor models.
"""

import logging

import numpy as np
import pandas as pd
import pytest

from factor_scores import (
    CFAFitter,
    define_factor,
    define_scale,
    from_frame,
)

logging.basicConfig(level=logging.INFO)


def simulate_items(structure, n=300, loading=0.8, factor_corr=0.3,
                   residual_pairs=(), seed=42):
    """
    Draw indicator data from a CFA population model.

    Args:
        structure: factor name -> list of item names
        n: number of respondents
        loading: standardized loading of every item
        factor_corr: correlation between factors
        residual_pairs: item pairs sharing extra residual variance
        seed: random seed

    Returns:
        pd.DataFrame with one column per item
    """
    rng = np.random.default_rng(seed)
    factors = list(structure)
    k = len(factors)
    phi = np.full((k, k), factor_corr)
    np.fill_diagonal(phi, 1.0)
    eta = rng.multivariate_normal(np.zeros(k), phi, size=n)

    data = {}
    residual_sd = np.sqrt(1 - loading ** 2)
    for j, factor in enumerate(factors):
        for item in structure[factor]:
            data[item] = 3.0 + loading * eta[:, j] + rng.normal(0, residual_sd, n)

    for left, right in residual_pairs:
        shared = rng.normal(0, 0.5, n)
        data[left] = data[left] + shared
        data[right] = data[right] + shared

    return pd.DataFrame(data)


@pytest.fixture(scope="session")
def simulate():
    return simulate_items


@pytest.fixture(scope="session")
def one_factor_frame():
    return simulate_items({'F': ['A1', 'A2', 'A3', 'A4']}, n=300, seed=1)


@pytest.fixture(scope="session")
def one_factor_scale():
    return define_scale('Alpha', [define_factor('F', ['A1', 'A2', 'A3', 'A4'])])


@pytest.fixture(scope="session")
def two_factor_frame():
    return simulate_items({'F1': ['X1', 'X2', 'X3', 'X4'],
                           'F2': ['Y1', 'Y2', 'Y3', 'Y4']},
                          n=400, factor_corr=0.4, seed=2)


@pytest.fixture(scope="session")
def two_factor_scale():
    return define_scale('Pair', [define_factor('F1', ['X1', 'X2', 'X3', 'X4']),
                                 define_factor('F2', ['Y1', 'Y2', 'Y3', 'Y4'])])


@pytest.fixture(scope="session")
def fitted_one(one_factor_frame, one_factor_scale):
    return CFAFitter().fit(one_factor_scale, from_frame(one_factor_frame))


@pytest.fixture(scope="session")
def fitted_two(two_factor_frame, two_factor_scale):
    return CFAFitter().fit(two_factor_scale, from_frame(two_factor_frame))
