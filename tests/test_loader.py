"""
Tests for listing ingestion through DuckDB.
"""

import duckdb
import numpy as np
import pytest

from rental_bayes.config import LISTING_COLUMNS
from rental_bayes.data.loader import load_listings, validate_schema
from rental_bayes.exceptions import DataError
from rental_bayes.features.engineering import engineer_features


@pytest.fixture
def listings_csv(tmp_path, raw_listings):
    path = tmp_path / 'listings.csv'
    df = raw_listings.copy()
    df['listing_url'] = 'https://example.com'
    df.to_csv(path, index=False)
    return path


class TestLoadListings:
    """Test reading a listings file through DuckDB."""

    def test_loads_all_rows_as_strings(self, listings_csv, raw_listings):
        """Test that every row is loaded with its original string values."""
        df = load_listings(listings_csv)
        assert len(df) == len(raw_listings)
        assert list(df.columns) == ['row_id'] + LISTING_COLUMNS
        assert df['row_id'].tolist() == list(range(len(raw_listings)))
        assert df.loc[0, 'price'] == raw_listings.loc[0, 'price']

    def test_extra_columns_dropped(self, listings_csv):
        """Test that columns outside the schema are dropped."""
        assert 'listing_url' not in load_listings(listings_csv).columns

    def test_uses_given_connection(self, listings_csv):
        """Test that a caller-supplied DuckDB connection is used."""
        con = duckdb.connect(":memory:")
        df = load_listings(listings_csv, con=con)
        assert len(df) > 0
        con.close()

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises DataError."""
        with pytest.raises(DataError):
            load_listings(tmp_path / 'nope.csv')

    def test_missing_column(self, tmp_path, raw_listings):
        """Test that a missing required column is named in the error."""
        path = tmp_path / 'short.csv'
        raw_listings.drop(columns=['price']).to_csv(path, index=False)
        with pytest.raises(DataError, match='price'):
            load_listings(path)

    def test_loaded_file_matches_in_memory_features(self, listings_csv, raw_listings):
        """Test that features from the file match features from the same rows in memory."""
        from_file = engineer_features(load_listings(listings_csv))
        in_memory = engineer_features(raw_listings)
        X_file, y_file, _ = from_file.design_matrix()
        X_mem, y_mem, _ = in_memory.design_matrix()
        assert np.allclose(X_file, X_mem)
        assert np.allclose(y_file, y_mem)


class TestValidateSchema:
    """Test schema checks on an in-memory frame."""

    def test_keeps_existing_row_id(self, raw_listings):
        """Test that an existing row_id is kept."""
        raw = raw_listings.copy()
        raw['row_id'] = np.arange(100, 100 + len(raw))
        out = validate_schema(raw)
        assert out['row_id'].iloc[0] == 100

    def test_schema_order(self, raw_listings):
        """Test that columns come back in schema order."""
        out = validate_schema(raw_listings[LISTING_COLUMNS[::-1]])
        assert list(out.columns) == ['row_id'] + LISTING_COLUMNS
