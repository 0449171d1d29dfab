"""
Shared pytest fixtures for the listing pipeline, models and diagnostics.
"""

import matplotlib

matplotlib.use('Agg')

import numpy as np
import pandas as pd
import pytest

from rental_bayes.data.synthetic import make_regression_data, make_synthetic_listings
from rental_bayes.features.engineering import engineer_features
from rental_bayes.models.sampler import MarkovChainTrace, SamplerConfig


@pytest.fixture
def raw_listings():
    """Raw listing rows as read from file (all strings)."""
    return make_synthetic_listings(120, random_state=7)


@pytest.fixture
def feature_table(raw_listings):
    return engineer_features(raw_listings)


@pytest.fixture
def regression_data():
    """(X, y, names, true_beta) with known coefficients."""
    return make_regression_data(n=150, random_state=3)


@pytest.fixture
def small_sampler_config():
    """Fast sampler settings: 2 chains x 100 stored draws."""
    return SamplerConfig(n_chains=2, n_iterations=300, burn_in=100, thinning=2, random_state=1)


@pytest.fixture
def rules_frame():
    """Numeric listing rows, one per completeness rule plus two survivors."""
    return pd.DataFrame({
        'row_id': [0, 1, 2, 3, 4, 5, 6],
        'price': [100.0, -5.0, 0.0, 80.0, 90.0, np.nan, 50.0],
        'beds': [1.0, 2.0, 1.0, 7.0, 3.0, 2.0, 2.0],
        'accommodates': [2.0, 3.0, 4.0, 5.0, 20.0, 2.0, 6.0],
        'room_type': ['Private room'] * 7,
    })


@pytest.fixture
def divergent_traces():
    """Two chains stuck around different means."""
    rng = np.random.default_rng(0)
    return [
        MarkovChainTrace(0, ['a', 'b'], np.column_stack([rng.normal(0, 1, 400), rng.normal(0, 1, 400)])),
        MarkovChainTrace(1, ['a', 'b'], np.column_stack([rng.normal(10, 1, 400), rng.normal(0, 1, 400)])),
    ]


@pytest.fixture
def mixed_traces():
    """Three chains of independent draws from the same distribution."""
    rng = np.random.default_rng(11)
    return [
        MarkovChainTrace(i, ['a', 'b'], np.column_stack([rng.normal(2, 1, 1000), rng.normal(-1, 0.5, 1000)]))
        for i in range(3)
    ]
