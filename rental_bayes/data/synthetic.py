"""
Reproducible synthetic inputs.

- make_synthetic_listings: raw listing rows in the file format
  (currency and percentage strings), for exercising the feature pipeline
- make_regression_data: numeric design with known coefficients and
  Gaussian noise, for checking the sampler recovers the truth
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from rental_bayes.config import DEFAULT_POINTS_OF_INTEREST, RANDOM_STATE

ROOM_TYPES = ['Entire home/apt', 'Private room', 'Shared room', 'Hotel room']
PROPERTY_TYPES = ['Entire rental unit', 'Private room in home', 'Entire condo', 'Entire house']
NEIGHBOURHOODS = ['Belltown', 'Capitol Hill', 'Fremont', 'Ballard', 'University District']


def make_synthetic_listings(
    n: int = 200,
    random_state: int = RANDOM_STATE,
    pois=DEFAULT_POINTS_OF_INTEREST,
) -> pd.DataFrame:
    """
    Generate raw listing rows shaped like the public listings file.

    Price rises with capacity and proximity to the first point of interest,
    so the fitted coefficients have a sensible sign.
    """
    rng = np.random.default_rng(random_state)
    center = pois[0]

    lat = center.latitude + rng.normal(0, 0.04, n)
    lon = center.longitude + rng.normal(0, 0.05, n)
    accommodates = rng.integers(1, 11, n)
    beds = np.clip(np.round(accommodates / 2 + rng.normal(0, 0.7, n)), 0, 8).astype(int)
    dist = np.hypot((lat - center.latitude) * 111.0, (lon - center.longitude) * 75.0)

    log_price = 4.2 + 0.12 * accommodates - 0.08 * dist + rng.normal(0, 0.25, n)
    price = np.exp(log_price)

    df = pd.DataFrame({
        'price': [f"${p:,.2f}" for p in price],
        'host_response_rate': [f"{r}%" for r in rng.integers(50, 101, n)],
        'host_acceptance_rate': [f"{r}%" for r in rng.integers(30, 101, n)],
        'latitude': [f"{v:.6f}" for v in lat],
        'longitude': [f"{v:.6f}" for v in lon],
        'accommodates': accommodates.astype(str),
        'beds': beds.astype(str),
        'availability_365': rng.integers(0, 366, n).astype(str),
        'number_of_reviews': rng.poisson(25, n).astype(str),
        'review_scores_cleanliness': [f"{v:.2f}" for v in rng.uniform(3.5, 5.0, n)],
        'review_scores_communication': [f"{v:.2f}" for v in rng.uniform(3.5, 5.0, n)],
        'review_scores_location': [f"{v:.2f}" for v in rng.uniform(3.5, 5.0, n)],
        'room_type': rng.choice(ROOM_TYPES, n),
        'neighbourhood_cleansed': rng.choice(NEIGHBOURHOODS, n),
        'property_type': rng.choice(PROPERTY_TYPES, n),
    })
    return df


def make_regression_data(
    n: int = 200,
    coefficients: Optional[Dict[str, float]] = None,
    intercept: float = 1.0,
    noise_sd: float = 0.1,
    random_state: int = RANDOM_STATE,
) -> Tuple[np.ndarray, np.ndarray, Sequence[str], np.ndarray]:
    """
    Linear-Gaussian data with known ground truth.

    Returns:
        (X, y, feature_names, true_beta) where true_beta includes the intercept first
    """
    if coefficients is None:
        coefficients = {'x1': 0.8, 'x2': -0.5, 'x3': 0.3, 'x4': 0.0}
    rng = np.random.default_rng(random_state)
    names = list(coefficients)
    X = rng.uniform(0, 1, size=(n, len(names)))
    beta = np.array([coefficients[k] for k in names])
    y = intercept + X @ beta + rng.normal(0, noise_sd, n)
    return X, y, names, np.concatenate([[intercept], beta])
