"""Feature engineering for listing price regression."""
from .engineering import (
    FeatureConfig,
    FeatureTable,
    MinMaxBounds,

    # Parsing
    parse_currency,
    parse_percentage,
    parse_listings,

    # Transforms
    binarize_beds,
    add_accommodates_flags,
    log_reviews,
    fit_minmax_bounds,
    apply_minmax,

    # Main feature engineering
    engineer_features,
)
from .geo import (
    EARTH_RADIUS_KM,
    haversine_distance,
    reciprocal_distance,
    add_poi_distances,
)
