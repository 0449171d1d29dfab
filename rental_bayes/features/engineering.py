"""
Feature engineering for listing price regression.

Turns raw listing rows (strings) into a fully numeric, model-ready table:
- Parsing: currency price, percentage host rates, numeric counts/coordinates
- Geographic: haversine distance to each point of interest, reciprocal transform
- Binarization: beds (1-2 beds), accommodates (1-2 / 3-6 / 7-15 guests)
- Log transform: number_of_reviews -> log(1 + n), price -> log(price)
- Completeness filter (see data.validator), then min-max normalization
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from rental_bayes.config import (
    ACCOMMODATES_BINS,
    CATEGORICAL_COLUMNS,
    CONSTANT_NORMALIZED_VALUE,
    CURRENCY_COLUMNS,
    DEFAULT_POINTS_OF_INTEREST,
    DISTANCE_FLOOR_KM,
    NORMALIZED_COLUMNS,
    NUMERIC_COLUMNS,
    PERCENTAGE_COLUMNS,
    PointOfInterest,
    TARGET_COLUMN,
    predictor_columns,
)
from rental_bayes.data.loader import validate_schema
from rental_bayes.data.validator import CleaningConfig, ListingCleaner
from rental_bayes.features.geo import add_poi_distances

logger = logging.getLogger(__name__)


# =============================================================================
# PARSING
# =============================================================================

def _as_text(values: pd.Series) -> pd.Series:
    """Object series of stripped strings, NaN where missing."""
    return values.map(lambda v: str(v).strip() if pd.notna(v) else np.nan)


def parse_currency(values: pd.Series) -> pd.Series:
    """
    Parse currency strings ("$1,200.00") to floats.

    Currency symbols, thousands separators and whitespace are stripped.
    Anything unparseable becomes NaN.
    """
    if pd.api.types.is_numeric_dtype(values):
        return values.astype(float)
    cleaned = _as_text(values).str.replace(r'[$€£,\s]', '', regex=True)
    return pd.to_numeric(cleaned, errors='coerce').astype(float)


def parse_percentage(values: pd.Series) -> pd.Series:
    """
    Parse percentage strings ("95%") to the range [0, 1].

    Values outside 0-100% and unparseable strings ("N/A") become NaN.
    """
    if pd.api.types.is_numeric_dtype(values):
        pct = values.astype(float)
    else:
        cleaned = _as_text(values).str.rstrip('%').str.strip()
        pct = pd.to_numeric(cleaned, errors='coerce').astype(float)
    pct = pct.where((pct >= 0) & (pct <= 100))
    return pct / 100.0


def parse_numeric(values: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(values):
        return values.astype(float)
    return pd.to_numeric(_as_text(values), errors='coerce').astype(float)


def _integer_or_nan(values: pd.Series) -> pd.Series:
    """Counts must be whole, non-negative numbers."""
    return values.where((values >= 0) & (values == np.floor(values)))


# =============================================================================
# BINARIZATION / TRANSFORMS
# =============================================================================

def binarize_beds(beds: pd.Series) -> pd.Series:
    """
    1.0 for listings with 1 or 2 beds, else 0.0 (NaN stays NaN).

    Zero beds is a data-entry gap and is imputed to one bed first.
    """
    beds = beds.where(beds != 0, 1.0)
    flag = ((beds >= 1) & (beds <= 2)).astype(float)
    return flag.where(beds.notna())


def add_accommodates_flags(df: pd.DataFrame) -> pd.DataFrame:
    """
    Expand accommodates into mutually exclusive range indicators.

    Listings outside [1, 15] get all-zero flags here and are removed by
    the completeness filter.
    """
    df = df.copy()
    acc = df['accommodates']
    for col, (lo, hi) in ACCOMMODATES_BINS.items():
        df[col] = ((acc >= lo) & (acc <= hi)).astype(float).where(acc.notna())
    return df


def log_reviews(number_of_reviews: pd.Series) -> pd.Series:
    """log(1 + n); keeps zero-review listings at 0."""
    return np.log1p(number_of_reviews.where(number_of_reviews >= 0))


def log_price(price: pd.Series) -> pd.Series:
    return np.log(price.where(price > 0))


# =============================================================================
# MIN-MAX NORMALIZATION
# =============================================================================

@dataclass(frozen=True)
class MinMaxBounds:
    """Observed range of a column, retained for consistent out-of-sample scaling."""
    minimum: float
    maximum: float

    @property
    def is_constant(self) -> bool:
        return self.maximum == self.minimum

    def transform(self, values) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        if self.is_constant:
            return np.full_like(values, CONSTANT_NORMALIZED_VALUE)
        return (values - self.minimum) / (self.maximum - self.minimum)


def fit_minmax_bounds(df: pd.DataFrame, columns: Sequence[str]) -> Dict[str, MinMaxBounds]:
    """Min/max over the filtered table. Requires every row to be present (global reduction)."""
    return {
        col: MinMaxBounds(float(df[col].min()), float(df[col].max()))
        for col in columns
    }


def apply_minmax(df: pd.DataFrame, bounds: Dict[str, MinMaxBounds]) -> pd.DataFrame:
    df = df.copy()
    for col, b in bounds.items():
        if b.is_constant:
            logger.warning(f"{col} is constant ({b.minimum}); normalized to {CONSTANT_NORMALIZED_VALUE}")
        df[col] = b.transform(df[col].to_numpy())
    return df


# =============================================================================
# FEATURE TABLE
# =============================================================================

@dataclass
class FeatureConfig:
    """Configuration for the feature pipeline."""
    points_of_interest: Tuple[PointOfInterest, ...] = DEFAULT_POINTS_OF_INTEREST
    log_target: bool = True
    distance_floor_km: float = DISTANCE_FLOOR_KM
    cleaning: CleaningConfig = field(default_factory=CleaningConfig)


@dataclass
class FeatureTable:
    """
    Model-ready listings.

    frame holds row_id, the retained categorical/coordinate fields, the raw
    parsed price and every engineered column. predictor_cols is the fixed,
    ordered design used by the regression models.
    """
    frame: pd.DataFrame
    target_col: str
    predictor_cols: List[str]
    log_target: bool
    bounds: Dict[str, MinMaxBounds]
    dropped: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.frame)

    def design_matrix(self) -> Tuple[np.ndarray, np.ndarray, List[str]]:
        """(X, y, predictor names); X has no intercept column."""
        X = self.frame[self.predictor_cols].to_numpy(dtype=float)
        y = self.frame[self.target_col].to_numpy(dtype=float)
        return X, y, list(self.predictor_cols)

    def subset(self, index) -> 'FeatureTable':
        """Rows at the given positional index, sharing bounds and column roles."""
        return FeatureTable(
            frame=self.frame.iloc[index].reset_index(drop=True),
            target_col=self.target_col,
            predictor_cols=list(self.predictor_cols),
            log_target=self.log_target,
            bounds=dict(self.bounds),
            dropped=dict(self.dropped),
        )


def parse_listings(raw: pd.DataFrame) -> pd.DataFrame:
    """Schema check plus string -> number parsing. Failures become NaN."""
    df = validate_schema(raw)

    for col in CURRENCY_COLUMNS:
        df[col] = parse_currency(df[col])
    for col in PERCENTAGE_COLUMNS:
        df[col] = parse_percentage(df[col])
    for col in NUMERIC_COLUMNS:
        df[col] = parse_numeric(df[col])
    for col in CATEGORICAL_COLUMNS:
        text = _as_text(df[col])
        df[col] = text.where(text.notna() & (text != ''), None).astype(object)

    for col in ['accommodates', 'beds', 'number_of_reviews']:
        df[col] = _integer_or_nan(df[col])
    df['availability_365'] = df['availability_365'].where(
        (df['availability_365'] >= 0) & (df['availability_365'] <= 365)
    )
    df['latitude'] = df['latitude'].where(df['latitude'].between(-90, 90))
    df['longitude'] = df['longitude'].where(df['longitude'].between(-180, 180))
    return df


def engineer_features(
    raw: pd.DataFrame,
    config: Optional[FeatureConfig] = None,
    bounds: Optional[Dict[str, MinMaxBounds]] = None,
) -> FeatureTable:
    """
    Full feature pipeline: parse, derive, filter, normalize.

    Args:
        raw: Listing rows with LISTING_COLUMNS (strings or numbers)
        config: Feature pipeline configuration
        bounds: Min-max bounds from an earlier run. When given they are
            re-applied instead of refit (values may leave [0, 1]).

    Returns:
        FeatureTable with the model predictors and retained context fields
    """
    config = config or FeatureConfig()
    pois = tuple(config.points_of_interest)

    df = parse_listings(raw)
    df = add_poi_distances(df, pois, floor_km=config.distance_floor_km)

    df['beds_1_2'] = binarize_beds(df['beds'])
    df = add_accommodates_flags(df)
    df['log_number_of_reviews'] = log_reviews(df['number_of_reviews'])
    df['log_price'] = log_price(df[TARGET_COLUMN])

    numeric_cols = [c for c in df.columns if c != 'row_id' and c not in CATEGORICAL_COLUMNS]
    cleaner = ListingCleaner(config.cleaning)
    df = cleaner.clean(df, numeric_cols, CATEGORICAL_COLUMNS)

    # Normalization needs the whole filtered table
    if bounds is None:
        bounds = fit_minmax_bounds(df, NORMALIZED_COLUMNS)
    df = apply_minmax(df, bounds)

    target_col = 'log_price' if config.log_target else TARGET_COLUMN
    predictors = predictor_columns(pois)

    logger.info(f"Engineered {len(predictors)} predictors for {len(df):,} listings")
    return FeatureTable(
        frame=df,
        target_col=target_col,
        predictor_cols=predictors,
        log_target=config.log_target,
        bounds=bounds,
        dropped=dict(cleaner.stats),
    )
