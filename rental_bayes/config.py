"""
Configuration for the rental price analysis.

Contains the listing schema, points of interest, feature thresholds,
prior hyperparameters, sampler defaults and convergence thresholds.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Tuple


# =============================================================================
# POINTS OF INTEREST
# =============================================================================

@dataclass(frozen=True)
class PointOfInterest:
    """A named landmark used for distance features."""
    name: str
    latitude: float
    longitude: float

    @property
    def slug(self) -> str:
        """Column-safe identifier, e.g. 'Space Needle' -> 'space_needle'."""
        return re.sub(r'[^a-z0-9]+', '_', self.name.lower()).strip('_')


DEFAULT_POINTS_OF_INTEREST: Tuple[PointOfInterest, ...] = (
    PointOfInterest('Space Needle', 47.6205, -122.3493),
    PointOfInterest('Pike Place Market', 47.6097, -122.3422),
    PointOfInterest('SeaTac Airport', 47.4502, -122.3088),
    PointOfInterest('University of Washington', 47.6553, -122.3035),
)


# =============================================================================
# LISTING SCHEMA
# =============================================================================

# Columns read from the listings file (all loaded as strings)
LISTING_COLUMNS: List[str] = [
    'price',
    'host_response_rate',
    'host_acceptance_rate',
    'latitude',
    'longitude',
    'accommodates',
    'beds',
    'availability_365',
    'number_of_reviews',
    'review_scores_cleanliness',
    'review_scores_communication',
    'review_scores_location',
    'room_type',
    'neighbourhood_cleansed',
    'property_type',
]

CURRENCY_COLUMNS = ['price']
PERCENTAGE_COLUMNS = ['host_response_rate', 'host_acceptance_rate']
NUMERIC_COLUMNS = [
    'latitude', 'longitude', 'accommodates', 'beds', 'availability_365',
    'number_of_reviews', 'review_scores_cleanliness',
    'review_scores_communication', 'review_scores_location',
]
CATEGORICAL_COLUMNS = ['room_type', 'neighbourhood_cleansed', 'property_type']

# Min-max normalized after filtering
NORMALIZED_COLUMNS = [
    'availability_365',
    'review_scores_cleanliness',
    'review_scores_communication',
    'review_scores_location',
]

TARGET_COLUMN = 'price'


# =============================================================================
# FEATURE THRESHOLDS
# =============================================================================

# Reciprocal distance floor (km); a listing closer than 10 m counts as 10 m
DISTANCE_FLOOR_KM = 0.01

# Value assigned to every row when a normalized column has max == min
CONSTANT_NORMALIZED_VALUE = 0.0

# Beds: 0 is treated as unknown and imputed to 1; > MAX_BEDS is an outlier
MAX_BEDS = 6

# Accommodates indicator ranges (inclusive)
ACCOMMODATES_BINS: Dict[str, Tuple[int, int]] = {
    'accommodates_1_2': (1, 2),
    'accommodates_3_6': (3, 6),
    'accommodates_7_15': (7, 15),
}
MIN_ACCOMMODATES = 1
MAX_ACCOMMODATES = 15


INVERSE_DISTANCE_PREFIX = 'inv_dist_'


def inverse_distance_column(poi: PointOfInterest) -> str:
    return f'{INVERSE_DISTANCE_PREFIX}{poi.slug}'


def predictor_columns(pois=DEFAULT_POINTS_OF_INTEREST) -> List[str]:
    """Ordered model predictors for a given POI set."""
    return (
        ['host_acceptance_rate']
        + list(ACCOMMODATES_BINS)
        + ['beds_1_2', 'review_scores_location']
        + [inverse_distance_column(p) for p in pois]
    )


# =============================================================================
# PRIORS
# =============================================================================

# Model A: independent N(0, 1e4) coefficients (precision 1e-4)
FLAT_COEFFICIENT_VARIANCE = 1.0e4

# Noise standard deviation ~ Uniform(0, 100), both variants
SIGMA_LOWER = 0.0
SIGMA_UPPER = 100.0

# Model B: shared coefficient precision lambda ~ Gamma(shape, rate)
SHRINKAGE_SHAPE = 1.0
SHRINKAGE_RATE = 0.1

# Model B informative prior means (everything else centered at 0).
# Intercept ~ log of a typical nightly rate; proximity to the first POI positive.
SHRINKAGE_INTERCEPT_MEAN = 4.5
SHRINKAGE_DISTANCE_MEAN = 0.5
SHRINKAGE_PRIOR_MEANS: Dict[str, float] = {
    'intercept': SHRINKAGE_INTERCEPT_MEAN,
    inverse_distance_column(DEFAULT_POINTS_OF_INTEREST[0]): SHRINKAGE_DISTANCE_MEAN,
}


# =============================================================================
# SAMPLER DEFAULTS
# =============================================================================

DEFAULT_CHAINS = 3
DEFAULT_ITERATIONS = 5000
DEFAULT_BURN_IN = 1000
DEFAULT_THINNING = 5
RANDOM_STATE = 42

MODEL_VARIANTS = ('A', 'B')


# =============================================================================
# CONVERGENCE THRESHOLDS
# =============================================================================

GEWEKE_FIRST = 0.1
GEWEKE_LAST = 0.5
GEWEKE_Z_THRESHOLD = 1.96

HEIDELBERGER_PVALUE = 0.05
HEIDELBERGER_EPS = 0.1

GELMAN_RUBIN_THRESHOLD = 1.1
GELMAN_RUBIN_CONFIDENCE = 0.95

HPD_MASS = 0.95
ACF_MAX_LAG = 50

# Held-out fraction for RMSE
TEST_SIZE = 0.2
