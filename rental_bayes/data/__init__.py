"""Data loading, synthetic inputs and completeness filtering."""
from .loader import load_listings, validate_schema
from .synthetic import make_regression_data, make_synthetic_listings
from .validator import CleaningConfig, ListingCleaner, Rule
