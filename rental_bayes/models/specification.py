"""
Bayesian linear regression model specifications.

Both variants share the likelihood

    y_i ~ Normal(intercept + x_i . beta, sigma^2)      (homoscedastic)
    sigma ~ Uniform(lower, upper)

and differ in the coefficient prior:

- Model A (FlatPriorModel): beta_j ~ Normal(0, 1e4) independently
- Model B (ShrinkagePriorModel): beta_j ~ Normal(m_j, 1/lambda) with one
  shared precision lambda ~ Gamma(shape, rate). m_j is 0 except for the
  coefficients given informative means.

A specification does not sample by itself; it exposes the target
density and one full Gibbs sweep (`step`) that the sampler calls. The
sampler never looks at coefficient names.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import linalg, stats

from rental_bayes.config import (
    FLAT_COEFFICIENT_VARIANCE,
    INVERSE_DISTANCE_PREFIX,
    SHRINKAGE_DISTANCE_MEAN,
    SHRINKAGE_INTERCEPT_MEAN,
    SHRINKAGE_PRIOR_MEANS,
    SHRINKAGE_RATE,
    SHRINKAGE_SHAPE,
    SIGMA_LOWER,
    SIGMA_UPPER,
)
from rental_bayes.exceptions import ConfigError, DataError

logger = logging.getLogger(__name__)

INTERCEPT = 'intercept'
SIGMA = 'sigma'
SHRINKAGE_PRECISION = 'shrinkage_precision'


# =============================================================================
# PRIORS
# =============================================================================

@dataclass(frozen=True)
class NormalPrior:
    mean: float
    variance: float

    def logpdf(self, x):
        return stats.norm.logpdf(x, loc=self.mean, scale=np.sqrt(self.variance))


@dataclass(frozen=True)
class UniformPrior:
    lower: float
    upper: float

    def logpdf(self, x):
        return stats.uniform.logpdf(x, loc=self.lower, scale=self.upper - self.lower)


@dataclass(frozen=True)
class GammaPrior:
    """Gamma(shape, rate); mean = shape / rate."""
    shape: float
    rate: float

    def logpdf(self, x):
        return stats.gamma.logpdf(x, a=self.shape, scale=1.0 / self.rate)


@dataclass
class ChainState:
    """Current position of one Markov chain."""
    beta: np.ndarray
    sigma: float
    shrinkage: Optional[float] = None


# =============================================================================
# MODEL BASE CLASS
# =============================================================================

class BayesianLinearModel(ABC):
    """
    Gaussian linear regression with an intercept and a bounded uniform prior on sigma.

    Subclasses define the coefficient prior and the Gibbs sweep.
    """

    variant: str = ''

    def __init__(
        self,
        X: np.ndarray,
        y: np.ndarray,
        feature_names: Sequence[str],
        sigma_prior: UniformPrior = UniformPrior(SIGMA_LOWER, SIGMA_UPPER),
    ):
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        if X.ndim != 2 or y.ndim != 1 or X.shape[0] != y.shape[0]:
            raise DataError(f"Design shape {X.shape} does not match target shape {y.shape}")
        if X.shape[1] != len(feature_names):
            raise DataError(f"{X.shape[1]} columns but {len(feature_names)} feature names")
        if X.shape[0] < 2:
            raise DataError("At least two observations are required")
        if not (np.all(np.isfinite(X)) and np.all(np.isfinite(y))):
            raise DataError("Design matrix and target must be finite")
        if not 0 <= sigma_prior.lower < sigma_prior.upper:
            raise ConfigError(f"Invalid sigma prior bounds: {sigma_prior}")

        self.X = np.column_stack([np.ones(X.shape[0]), X])
        self.y = y
        self.coefficient_names: List[str] = [INTERCEPT] + list(feature_names)
        self.sigma_prior = sigma_prior

        self.n_obs, self.n_coef = self.X.shape
        self.XtX = self.X.T @ self.X
        self.Xty = self.X.T @ self.y

    @classmethod
    def from_table(cls, table, **kwargs) -> 'BayesianLinearModel':
        """Build from a FeatureTable."""
        X, y, names = table.design_matrix()
        return cls(X, y, names, **kwargs)

    # ------------------------------------------------------------------
    # Interface used by the sampler
    # ------------------------------------------------------------------

    @property
    def parameter_names(self) -> List[str]:
        return self.coefficient_names + [SIGMA]

    @abstractmethod
    def initial_state(self, rng: np.random.Generator) -> ChainState:
        """Overdispersed starting point drawn from the chain's own stream."""

    @abstractmethod
    def step(self, state: ChainState, rng: np.random.Generator) -> ChainState:
        """One full Gibbs sweep."""

    def as_vector(self, state: ChainState) -> np.ndarray:
        return np.concatenate([state.beta, [state.sigma]])

    # ------------------------------------------------------------------
    # Densities
    # ------------------------------------------------------------------

    @abstractmethod
    def coefficient_prior(self, state: ChainState) -> Tuple[np.ndarray, np.ndarray]:
        """(prior means, prior variances) of the coefficients given the state."""

    def log_likelihood(self, state: ChainState) -> float:
        mu = self.X @ state.beta
        return float(np.sum(stats.norm.logpdf(self.y, loc=mu, scale=state.sigma)))

    def log_prior(self, state: ChainState) -> float:
        means, variances = self.coefficient_prior(state)
        lp = np.sum(stats.norm.logpdf(state.beta, loc=means, scale=np.sqrt(variances)))
        return float(lp + self.sigma_prior.logpdf(state.sigma))

    def log_posterior(self, state: ChainState) -> float:
        """Unnormalized log posterior."""
        return self.log_prior(state) + self.log_likelihood(state)

    # ------------------------------------------------------------------
    # Full conditionals
    # ------------------------------------------------------------------

    def draw_coefficients(
        self,
        sigma: float,
        prior_means: np.ndarray,
        prior_variances: np.ndarray,
        rng: np.random.Generator,
    ) -> np.ndarray:
        """
        beta | sigma, y ~ Normal(P^-1 b, P^-1) with
        P = X'X / sigma^2 + diag(1 / v),  b = X'y / sigma^2 + m / v.
        """
        prior_precision = 1.0 / prior_variances
        tau = 1.0 / sigma**2
        precision = tau * self.XtX + np.diag(prior_precision)
        rhs = tau * self.Xty + prior_precision * prior_means

        L = np.linalg.cholesky(precision)
        mean = linalg.cho_solve((L, True), rhs)
        z = rng.standard_normal(self.n_coef)
        return mean + linalg.solve_triangular(L, z, lower=True, trans='T')

    def draw_sigma(self, beta: np.ndarray, rng: np.random.Generator) -> float:
        """
        sigma | beta, y under sigma ~ Uniform(lower, upper).

        The noise precision tau = 1/sigma^2 is Gamma((n - 1)/2, SSR/2)
        truncated to [1/upper^2, 1/lower^2]; drawn by inverse CDF.
        """
        resid = self.y - self.X @ beta
        ssr = max(float(resid @ resid), 1e-300)
        dist = stats.gamma(a=(self.n_obs - 1) / 2.0, scale=2.0 / ssr)

        tau_lo = 1.0 / self.sigma_prior.upper**2
        tau_hi = np.inf if self.sigma_prior.lower == 0 else 1.0 / self.sigma_prior.lower**2
        cdf_lo = dist.cdf(tau_lo)
        cdf_hi = dist.cdf(tau_hi)

        if cdf_hi - cdf_lo <= 0:
            # All conditional mass sits beyond a bound
            tau = tau_lo if cdf_lo >= 1.0 else tau_hi
        else:
            tau = float(dist.ppf(rng.uniform(cdf_lo, cdf_hi)))
            tau = min(max(tau, tau_lo), tau_hi)
        return float(1.0 / np.sqrt(tau))

    def _initial_sigma(self, rng: np.random.Generator) -> float:
        spread = float(np.std(self.y)) or 1.0
        lo = max(self.sigma_prior.lower, 1e-3 * spread)
        hi = min(self.sigma_prior.upper, 2.0 * spread)
        return float(rng.uniform(lo, max(hi, lo * 1.01)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(variant={self.variant!r}, n_obs={self.n_obs}, n_coef={self.n_coef})"


# =============================================================================
# MODEL A: FLAT PRIOR
# =============================================================================

class FlatPriorModel(BayesianLinearModel):
    """Model A: independent weak Normal(0, 1e4) priors on every coefficient."""

    variant = 'A'

    def __init__(
        self,
        X,
        y,
        feature_names,
        coefficient_variance: float = FLAT_COEFFICIENT_VARIANCE,
        sigma_prior: UniformPrior = UniformPrior(SIGMA_LOWER, SIGMA_UPPER),
    ):
        super().__init__(X, y, feature_names, sigma_prior=sigma_prior)
        if coefficient_variance <= 0:
            raise ConfigError("coefficient_variance must be positive")
        self.prior = NormalPrior(0.0, float(coefficient_variance))
        self._prior_means = np.full(self.n_coef, self.prior.mean)
        self._prior_variances = np.full(self.n_coef, self.prior.variance)

    def coefficient_prior(self, state):
        return self._prior_means, self._prior_variances

    def log_prior(self, state):
        lp = np.sum(self.prior.logpdf(state.beta))
        return float(lp + self.sigma_prior.logpdf(state.sigma))

    def initial_state(self, rng):
        beta = rng.normal(0.0, 2.0, self.n_coef)
        return ChainState(beta=beta, sigma=self._initial_sigma(rng))

    def step(self, state, rng):
        beta = self.draw_coefficients(state.sigma, self._prior_means, self._prior_variances, rng)
        sigma = self.draw_sigma(beta, rng)
        return ChainState(beta=beta, sigma=sigma)


# =============================================================================
# MODEL B: HIERARCHICAL SHRINKAGE
# =============================================================================

class ShrinkagePriorModel(BayesianLinearModel):
    """
    Model B: coefficients share one unknown precision (ridge with a learned penalty).

    Args:
        prior_means: Informative prior means by coefficient name; the rest are 0.
        shrinkage_prior: Gamma prior on the shared precision lambda.
    """

    variant = 'B'

    def __init__(
        self,
        X,
        y,
        feature_names,
        prior_means: Optional[Dict[str, float]] = None,
        shrinkage_prior: GammaPrior = GammaPrior(SHRINKAGE_SHAPE, SHRINKAGE_RATE),
        sigma_prior: UniformPrior = UniformPrior(SIGMA_LOWER, SIGMA_UPPER),
    ):
        super().__init__(X, y, feature_names, sigma_prior=sigma_prior)
        if shrinkage_prior.shape <= 0 or shrinkage_prior.rate <= 0:
            raise ConfigError(f"Invalid shrinkage prior: {shrinkage_prior}")

        prior_means = dict(SHRINKAGE_PRIOR_MEANS if prior_means is None else prior_means)
        unknown = [k for k in prior_means if k not in self.coefficient_names]
        if unknown:
            raise ConfigError(f"Prior means given for unknown coefficients: {unknown}")

        self.prior_means = prior_means
        self.shrinkage_prior = shrinkage_prior
        self._prior_means = np.array([prior_means.get(name, 0.0) for name in self.coefficient_names])

    @property
    def parameter_names(self):
        return super().parameter_names + [SHRINKAGE_PRECISION]

    def as_vector(self, state):
        return np.concatenate([state.beta, [state.sigma, state.shrinkage]])

    def coefficient_prior(self, state):
        return self._prior_means, np.full(self.n_coef, 1.0 / state.shrinkage)

    def log_prior(self, state):
        return super().log_prior(state) + float(self.shrinkage_prior.logpdf(state.shrinkage))

    def draw_shrinkage(self, beta: np.ndarray, rng: np.random.Generator) -> float:
        """lambda | beta ~ Gamma(shape + p/2, rate + sum((beta - m)^2)/2)."""
        dev = beta - self._prior_means
        shape = self.shrinkage_prior.shape + 0.5 * self.n_coef
        rate = self.shrinkage_prior.rate + 0.5 * float(dev @ dev)
        return float(rng.gamma(shape, 1.0 / rate))

    def initial_state(self, rng):
        beta = self._prior_means + rng.normal(0.0, 2.0, self.n_coef)
        shrinkage = float(rng.gamma(self.shrinkage_prior.shape, 1.0 / self.shrinkage_prior.rate))
        return ChainState(beta=beta, sigma=self._initial_sigma(rng), shrinkage=max(shrinkage, 1e-6))

    def step(self, state, rng):
        variances = np.full(self.n_coef, 1.0 / state.shrinkage)
        beta = self.draw_coefficients(state.sigma, self._prior_means, variances, rng)
        sigma = self.draw_sigma(beta, rng)
        shrinkage = self.draw_shrinkage(beta, rng)
        return ChainState(beta=beta, sigma=sigma, shrinkage=shrinkage)


# =============================================================================
# FACTORY
# =============================================================================

MODEL_CLASSES = {
    'A': FlatPriorModel,
    'B': ShrinkagePriorModel,
}


def default_prior_means(feature_names: Sequence[str]) -> Dict[str, float]:
    """
    Model B informative means for a given predictor set.

    The intercept always gets one. The distance mean goes to the configured
    default POI column when present, otherwise to the first inverse-distance
    predictor (the table's first POI).
    """
    distance_cols = [n for n in feature_names if n.startswith(INVERSE_DISTANCE_PREFIX)]
    means = {INTERCEPT: SHRINKAGE_INTERCEPT_MEAN}
    configured = [k for k in SHRINKAGE_PRIOR_MEANS if k in distance_cols]

    if configured:
        means.update({k: SHRINKAGE_PRIOR_MEANS[k] for k in configured})
    elif distance_cols:
        logger.info(f"Model B distance prior mean {SHRINKAGE_DISTANCE_MEAN} placed on {distance_cols[0]}")
        means[distance_cols[0]] = SHRINKAGE_DISTANCE_MEAN
    else:
        logger.warning("No inverse-distance predictor; Model B keeps only the intercept prior mean")
    return means


def build_model(variant: str, table, **kwargs) -> BayesianLinearModel:
    """
    Specify model A or B over a FeatureTable.

    The sigma upper bound defaults to the larger of SIGMA_UPPER and ten
    standard deviations of the target, so raw-price targets stay inside it.
    """
    variant = str(variant).upper()
    if variant not in MODEL_CLASSES:
        raise ConfigError(f"Unknown model variant {variant!r}; expected one of {sorted(MODEL_CLASSES)}")

    X, y, names = table.design_matrix()
    if 'sigma_prior' not in kwargs:
        upper = max(SIGMA_UPPER, 10.0 * float(np.std(y)))
        kwargs['sigma_prior'] = UniformPrior(SIGMA_LOWER, upper)
    if variant == 'B' and 'prior_means' not in kwargs:
        kwargs['prior_means'] = default_prior_means(names)
    return MODEL_CLASSES[variant](X, y, names, **kwargs)
