"""
Listing ingestion.

Reads the listings file through DuckDB with every column kept as a
string; parsing into numbers is left to the feature pipeline so that
malformed values become missing instead of failing the load.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import duckdb
import numpy as np
import pandas as pd

from rental_bayes.config import LISTING_COLUMNS
from rental_bayes.exceptions import DataError

logger = logging.getLogger(__name__)


def validate_schema(df: pd.DataFrame) -> pd.DataFrame:
    """
    Check that every listing column is present and return them in schema order.

    Adds a ``row_id`` column (file order) used to keep row order stable
    through filtering.

    Raises:
        DataError: If any required column is missing.
    """
    missing = [c for c in LISTING_COLUMNS if c not in df.columns]
    if missing:
        raise DataError(f"Listings are missing required columns: {missing}")

    out = df[LISTING_COLUMNS].copy()
    if 'row_id' in df.columns:
        out.insert(0, 'row_id', df['row_id'].to_numpy())
    else:
        out.insert(0, 'row_id', np.arange(len(out), dtype=np.int64))
    return out


def load_listings(
    path: Union[str, Path],
    con: Optional[duckdb.DuckDBPyConnection] = None,
) -> pd.DataFrame:
    """
    Load raw listing rows from a delimited file.

    Args:
        path: CSV (or other delimited) file with at least LISTING_COLUMNS
        con: Optional DuckDB connection; an in-memory one is used by default

    Returns:
        DataFrame of strings (NULL fields as None) with a leading row_id column
    """
    path = Path(path)
    if not path.exists():
        raise DataError(f"Listings file not found: {path}")

    if con is None:
        con = duckdb.connect(":memory:")

    file_path = str(path).replace("'", "''")
    df = con.execute(f"""
        SELECT * FROM read_csv_auto('{file_path}', all_varchar=True, header=True)
    """).fetchdf()

    df = validate_schema(df)
    logger.info(f"Loaded {len(df):,} listings from {path.name}")
    return df
