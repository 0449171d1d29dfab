"""
Geodistance features.

- Great-circle distance (haversine) from each listing to each point of interest
- Reciprocal transform so that proximity yields a larger feature value
"""

from typing import Sequence

import numpy as np
import pandas as pd

from rental_bayes.config import (
    DISTANCE_FLOOR_KM,
    PointOfInterest,
    inverse_distance_column,
)
from rental_bayes.exceptions import NumericError

# Mean Earth radius (km)
EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1, lon1, lat2, lon2) -> np.ndarray:
    """
    Great-circle distance in km between coordinate pairs (degrees).

    Vectorized; scalars and arrays broadcast. NaN coordinates give NaN.
    """
    lat1 = np.asarray(lat1, dtype=float)
    lon1 = np.asarray(lon1, dtype=float)
    lat2 = np.asarray(lat2, dtype=float)
    lon2 = np.asarray(lon2, dtype=float)

    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(lat2 - lat1)
    dlon = np.radians(lon2 - lon1)

    a = np.sin(dlat / 2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2)**2
    # Rounding can push a a hair past 1 for antipodal points
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def reciprocal_distance(distance_km, floor_km: float = DISTANCE_FLOOR_KM) -> np.ndarray:
    """
    1 / max(distance, floor).

    The floor keeps a listing sitting on a landmark finite. NaN stays NaN.
    """
    if not floor_km > 0:
        raise NumericError(f"Distance floor must be positive, got {floor_km}")
    d = np.asarray(distance_km, dtype=float)
    return 1.0 / np.fmax(d, floor_km)


def distance_column(poi: PointOfInterest) -> str:
    return f'dist_km_{poi.slug}'


def add_poi_distances(
    df: pd.DataFrame,
    pois: Sequence[PointOfInterest],
    floor_km: float = DISTANCE_FLOOR_KM,
) -> pd.DataFrame:
    """
    Add raw and reciprocal distance columns for every point of interest.

    Args:
        df: DataFrame with numeric 'latitude' and 'longitude' columns
        pois: Non-empty sequence of points of interest
        floor_km: Minimum distance used by the reciprocal transform

    Returns:
        Copy of df with dist_km_<poi> and inv_dist_<poi> columns
    """
    if len(pois) == 0:
        raise NumericError("At least one point of interest is required for distance features")

    df = df.copy()
    lat = df['latitude'].to_numpy(dtype=float)
    lon = df['longitude'].to_numpy(dtype=float)

    for poi in pois:
        dist = haversine_distance(lat, lon, poi.latitude, poi.longitude)
        df[distance_column(poi)] = dist
        df[inverse_distance_column(poi)] = reciprocal_distance(dist, floor_km)

    return df
