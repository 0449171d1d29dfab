"""
Tests for model specification: priors, densities and full conditionals.
"""

import numpy as np
import pytest

from rental_bayes.config import DEFAULT_POINTS_OF_INTEREST
from rental_bayes.exceptions import ConfigError, DataError
from rental_bayes.features.engineering import FeatureConfig, engineer_features
from rental_bayes.models.specification import (
    ChainState,
    FlatPriorModel,
    GammaPrior,
    NormalPrior,
    ShrinkagePriorModel,
    UniformPrior,
    build_model,
    default_prior_means,
)


class TestModelConstruction:
    """Test model construction and input checks."""

    def test_flat_parameter_names(self, regression_data):
        """Test Model A parameter names and sizes."""
        X, y, names, _ = regression_data
        model = FlatPriorModel(X, y, names)
        assert model.parameter_names == ['intercept', 'x1', 'x2', 'x3', 'x4', 'sigma']
        assert model.n_coef == 5
        assert model.variant == 'A'

    def test_shrinkage_parameter_names(self, regression_data):
        """Test that Model B adds the shared precision parameter."""
        X, y, names, _ = regression_data
        model = ShrinkagePriorModel(X, y, names, prior_means={'intercept': 1.0})
        assert model.parameter_names[-2:] == ['sigma', 'shrinkage_precision']
        assert model.variant == 'B'

    def test_unknown_prior_mean_rejected(self, regression_data):
        """Test that a prior mean for an unknown coefficient is rejected."""
        X, y, names, _ = regression_data
        with pytest.raises(ConfigError):
            ShrinkagePriorModel(X, y, names, prior_means={'nope': 1.0})

    def test_invalid_shrinkage_prior(self, regression_data):
        """Test that a non-positive Gamma shape is rejected."""
        X, y, names, _ = regression_data
        with pytest.raises(ConfigError):
            ShrinkagePriorModel(X, y, names, prior_means={}, shrinkage_prior=GammaPrior(0.0, 1.0))

    def test_invalid_sigma_prior(self, regression_data):
        """Test that inverted sigma bounds are rejected."""
        X, y, names, _ = regression_data
        with pytest.raises(ConfigError):
            FlatPriorModel(X, y, names, sigma_prior=UniformPrior(5.0, 1.0))

    def test_shape_mismatch(self, regression_data):
        """Test that mismatched design, target and names raise DataError."""
        X, y, names, _ = regression_data
        with pytest.raises(DataError):
            FlatPriorModel(X, y[:-1], names)
        with pytest.raises(DataError):
            FlatPriorModel(X, y, names[:-1])

    def test_non_finite_design(self, regression_data):
        """Test that missing values in the design raise DataError."""
        X, y, names, _ = regression_data
        X = X.copy()
        X[0, 0] = np.nan
        with pytest.raises(DataError):
            FlatPriorModel(X, y, names)

    def test_too_few_observations(self):
        """Test that a single observation is rejected."""
        with pytest.raises(DataError):
            FlatPriorModel(np.ones((1, 1)), np.ones(1), ['x'])


class TestBuildModel:
    """Test building models from a feature table."""

    def test_variants(self, feature_table):
        """Test that variants A and B map to their model classes."""
        assert isinstance(build_model('A', feature_table), FlatPriorModel)
        assert isinstance(build_model('b', feature_table), ShrinkagePriorModel)

    def test_unknown_variant(self, feature_table):
        """Test that an unknown variant raises ConfigError."""
        with pytest.raises(ConfigError):
            build_model('C', feature_table)

    def test_informative_means(self, feature_table):
        """Test Model B's default informative prior means."""
        model = build_model('B', feature_table)
        assert model.prior_means == {'intercept': 4.5, 'inv_dist_space_needle': 0.5}
        assert model.coefficient_names[0] == 'intercept'
        assert model.coefficient_names[1:] == feature_table.predictor_cols

    def test_sigma_bound_covers_target(self, raw_listings):
        """Test that the sigma upper bound widens for raw-price targets."""
        table = engineer_features(raw_listings, FeatureConfig(log_target=False))
        model = build_model('A', table)
        _, y, _ = table.design_matrix()
        assert model.sigma_prior.upper >= 10 * np.std(y)

    def test_custom_pois_keep_distance_mean(self, raw_listings):
        """Test that a custom POI list still gets a distance prior mean."""
        config = FeatureConfig(points_of_interest=DEFAULT_POINTS_OF_INTEREST[1:3])
        model = build_model('B', engineer_features(raw_listings, config))
        assert model.prior_means == {'intercept': 4.5, 'inv_dist_pike_place_market': 0.5}

    def test_default_prior_means(self):
        """Test that the configured POI column wins over the first distance column."""
        assert default_prior_means(['x1', 'inv_dist_a', 'inv_dist_space_needle']) == {
            'intercept': 4.5,
            'inv_dist_space_needle': 0.5,
        }
        assert default_prior_means(['x1', 'inv_dist_a', 'inv_dist_b']) == {'intercept': 4.5, 'inv_dist_a': 0.5}

    def test_no_distance_predictor_warns(self, caplog):
        """Test that predictors without a distance column log a warning."""
        with caplog.at_level('WARNING', logger='rental_bayes.models.specification'):
            means = default_prior_means(['x1', 'x2'])
        assert means == {'intercept': 4.5}
        assert 'inverse-distance' in caplog.text


class TestDensities:
    """Test prior, likelihood and posterior densities."""

    def test_log_posterior_finite(self, regression_data):
        """Test that initial states have a finite log posterior."""
        X, y, names, _ = regression_data
        rng = np.random.default_rng(0)
        for model in (FlatPriorModel(X, y, names), ShrinkagePriorModel(X, y, names, prior_means={})):
            state = model.initial_state(rng)
            assert np.isfinite(model.log_posterior(state))
            assert len(model.as_vector(state)) == len(model.parameter_names)

    def test_flat_prior_is_weak_normal(self, regression_data):
        """Test that Model A uses independent Normal(0, 1e4) coefficient priors."""
        X, y, names, _ = regression_data
        model = FlatPriorModel(X, y, names)
        assert model.prior == NormalPrior(0.0, 1e4)

        state = ChainState(beta=np.arange(model.n_coef, dtype=float), sigma=1.0)
        expected = model.n_coef * -0.5 * np.log(2 * np.pi * 1e4) - np.sum(state.beta**2) / 2e4 - np.log(100.0)
        assert model.log_prior(state) == pytest.approx(expected)

    def test_sigma_outside_prior(self, regression_data):
        """Test that sigma outside its uniform prior has zero density."""
        X, y, names, _ = regression_data
        model = FlatPriorModel(X, y, names, sigma_prior=UniformPrior(0.0, 1.0))
        state = ChainState(beta=np.zeros(model.n_coef), sigma=2.0)
        assert model.log_prior(state) == -np.inf

    def test_posterior_prefers_truth(self, regression_data):
        """Test that the true coefficients score higher than shifted ones."""
        X, y, names, true_beta = regression_data
        model = FlatPriorModel(X, y, names)
        truth = ChainState(beta=true_beta, sigma=0.1)
        wrong = ChainState(beta=true_beta + 0.5, sigma=0.1)
        assert model.log_posterior(truth) > model.log_posterior(wrong)


class TestConditionals:
    """Test the Gibbs full conditional draws."""

    def test_coefficients_centered_on_least_squares(self, regression_data):
        """Test that coefficient draws under a weak prior center on least squares."""
        X, y, names, _ = regression_data
        model = FlatPriorModel(X, y, names)
        rng = np.random.default_rng(1)
        prior_mean = np.zeros(model.n_coef)
        prior_var = np.full(model.n_coef, 1e4)

        draws = np.array([model.draw_coefficients(0.1, prior_mean, prior_var, rng) for _ in range(2000)])
        ols = np.linalg.lstsq(model.X, y, rcond=None)[0]
        assert np.allclose(draws.mean(axis=0), ols, atol=0.01)

    def test_sigma_respects_bounds(self, regression_data):
        """Test that sigma draws stay inside the prior bounds."""
        X, y, names, true_beta = regression_data
        model = FlatPriorModel(X, y, names, sigma_prior=UniformPrior(0.5, 2.0))
        rng = np.random.default_rng(2)
        draws = [model.draw_sigma(true_beta, rng) for _ in range(50)]
        assert all(0.5 <= s <= 2.0 for s in draws)

    def test_sigma_near_noise_level(self, regression_data):
        """Test that sigma draws center on the true noise level."""
        X, y, names, true_beta = regression_data
        model = FlatPriorModel(X, y, names)
        rng = np.random.default_rng(3)
        draws = np.array([model.draw_sigma(true_beta, rng) for _ in range(500)])
        assert draws.mean() == pytest.approx(0.1, rel=0.2)

    def test_shrinkage_draws_positive(self, regression_data):
        """Test that shrinkage precision draws are positive."""
        X, y, names, true_beta = regression_data
        model = ShrinkagePriorModel(X, y, names, prior_means={})
        rng = np.random.default_rng(4)
        assert all(model.draw_shrinkage(true_beta, rng) > 0 for _ in range(20))

    def test_step_returns_full_state(self, regression_data):
        """Test that one sweep updates every parameter."""
        X, y, names, _ = regression_data
        model = ShrinkagePriorModel(X, y, names, prior_means={'intercept': 1.0})
        rng = np.random.default_rng(5)
        state = model.step(model.initial_state(rng), rng)
        assert state.beta.shape == (model.n_coef,)
        assert state.sigma > 0 and state.shrinkage > 0
