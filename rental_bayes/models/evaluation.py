"""
Prediction and evaluation.

Point predictions use posterior-mean coefficients. RMSE is always
reported on the original price scale: when the target was log-transformed
the linear predictor is exponentiated first. The same policy applies to
both Bayesian variants and the OLS baseline so their RMSEs compare.
"""

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_squared_error
from sklearn.model_selection import train_test_split

from rental_bayes.config import RANDOM_STATE, TARGET_COLUMN, TEST_SIZE
from rental_bayes.models.sampler import MarkovChainTrace
from rental_bayes.models.specification import INTERCEPT


@dataclass
class EvaluationResult:
    """RMSE of one model on one set of listings (price scale)."""
    model: str
    rmse: float
    n_obs: int
    coefficients: pd.Series


def posterior_means(traces: Sequence[MarkovChainTrace]) -> pd.Series:
    """Mean of every parameter over all chains' stored draws."""
    pooled = np.vstack([t.samples for t in traces])
    return pd.Series(pooled.mean(axis=0), index=traces[0].parameter_names)


def predict(X: np.ndarray, coefficients: pd.Series, feature_names: Sequence[str]) -> np.ndarray:
    """Linear predictor intercept + X . beta (same scale as the model target)."""
    beta = coefficients.reindex(list(feature_names)).to_numpy(dtype=float)
    if np.isnan(beta).any():
        missing = [f for f, b in zip(feature_names, beta) if np.isnan(b)]
        raise KeyError(f"No coefficient for features: {missing}")
    return float(coefficients[INTERCEPT]) + np.asarray(X, dtype=float) @ beta


def rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def to_price_scale(prediction: np.ndarray, log_target: bool) -> np.ndarray:
    return np.exp(prediction) if log_target else prediction


def evaluate_coefficients(model_name: str, coefficients: pd.Series, table) -> EvaluationResult:
    """Score fixed coefficients against a FeatureTable's observed prices."""
    X, _, names = table.design_matrix()
    pred = to_price_scale(predict(X, coefficients, names), table.log_target)
    actual = table.frame[TARGET_COLUMN].to_numpy(dtype=float)
    return EvaluationResult(
        model=model_name,
        rmse=rmse(actual, pred),
        n_obs=len(actual),
        coefficients=coefficients,
    )


def evaluate_posterior(model_name: str, traces: Sequence[MarkovChainTrace], table) -> EvaluationResult:
    """Posterior-mean point predictions scored on a FeatureTable."""
    return evaluate_coefficients(model_name, posterior_means(traces), table)


def fit_ols(table) -> pd.Series:
    """Ordinary least squares on the same design (comparison baseline)."""
    X, y, names = table.design_matrix()
    ols = LinearRegression().fit(X, y)
    return pd.Series(np.concatenate([[ols.intercept_], ols.coef_]), index=[INTERCEPT] + names)


def evaluate_ols(train_table, test_table) -> EvaluationResult:
    return evaluate_coefficients('OLS', fit_ols(train_table), test_table)


def split_table(
    table,
    test_size: float = TEST_SIZE,
    random_state: int = RANDOM_STATE,
) -> Tuple[object, object]:
    """Random listing-level train/held-out split of a FeatureTable."""
    idx = np.arange(len(table))
    train_idx, test_idx = train_test_split(idx, test_size=test_size, random_state=random_state)
    return table.subset(np.sort(train_idx)), table.subset(np.sort(test_idx))


def rmse_table(results: Dict[str, EvaluationResult]) -> pd.DataFrame:
    return pd.DataFrame(
        [{'model': name, 'rmse': r.rmse, 'n_obs': r.n_obs} for name, r in results.items()]
    ).set_index('model')
