"""
Completeness filtering using a Rule-based architecture.

Every deletion follows the same Rule format with a check_query (how many
rows are affected?) and an action_query (remove them). Rules run against
the engineered listing table loaded into an in-memory DuckDB connection,
before min-max normalization so dropped outliers never set the bounds.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

import duckdb
import pandas as pd

from rental_bayes.config import MAX_ACCOMMODATES, MAX_BEDS, MIN_ACCOMMODATES
from rental_bayes.exceptions import DataError

logger = logging.getLogger(__name__)


# ============================================================================
# 1. RULE DATACLASS
# ============================================================================

@dataclass
class Rule:
    """
    Single data quality rule.

    1. Check query: How many rows are affected?
    2. Action query: Remove them
    """
    name: str
    check_query: str
    action_query: str
    enabled: bool = True


# ============================================================================
# 2. CLEANING CONFIG
# ============================================================================

@dataclass
class CleaningConfig:
    """
    Configuration for the completeness filter.

    Each field enables/disables a specific rule. Field names describe what they do.
    """
    remove_missing_values: bool = True        # NULL / NaN / inf in any required column
    remove_non_positive_prices: bool = True   # price <= 0 cannot be log-transformed
    remove_bed_outliers: bool = True          # beds > MAX_BEDS
    remove_unbinned_accommodates: bool = True # accommodates outside [1, 15]

    verbose: bool = False


# ============================================================================
# 3. LISTING CLEANER
# ============================================================================

class ListingCleaner:
    """
    Applies completeness rules to an engineered listing table.

    Usage:
        cleaner = ListingCleaner(CleaningConfig(verbose=True))
        clean_df = cleaner.clean(df, numeric_columns, categorical_columns)
        cleaner.stats  # {'Missing Values': 12, 'Bed Outlier (>6)': 3}
    """

    TABLE = 'listings'

    def __init__(self, config: CleaningConfig = None):
        self.config = config or CleaningConfig()
        self.stats: Dict[str, int] = {}

    def _build_rules(
        self,
        numeric_columns: Sequence[str],
        categorical_columns: Sequence[str],
    ) -> List[Rule]:
        """Build list of rules based on config and the columns present."""
        rules = []
        t = self.TABLE

        if self.config.remove_missing_values:
            conditions = [f'"{c}" IS NULL OR NOT isfinite("{c}")' for c in numeric_columns]
            conditions += [f'"{c}" IS NULL' for c in categorical_columns]
            where = ' OR '.join(f'({c})' for c in conditions) or 'FALSE'
            rules.append(Rule(
                "Missing Values",
                f"SELECT COUNT(*) FROM {t} WHERE {where}",
                f"DELETE FROM {t} WHERE {where}",
            ))

        if self.config.remove_non_positive_prices:
            rules.append(Rule(
                "Non-positive Price",
                f"SELECT COUNT(*) FROM {t} WHERE price <= 0",
                f"DELETE FROM {t} WHERE price <= 0",
            ))

        if self.config.remove_bed_outliers:
            rules.append(Rule(
                f"Bed Outlier (>{MAX_BEDS})",
                f"SELECT COUNT(*) FROM {t} WHERE beds > {MAX_BEDS}",
                f"DELETE FROM {t} WHERE beds > {MAX_BEDS}",
            ))

        if self.config.remove_unbinned_accommodates:
            where = f"accommodates < {MIN_ACCOMMODATES} OR accommodates > {MAX_ACCOMMODATES}"
            rules.append(Rule(
                f"Accommodates Outside [{MIN_ACCOMMODATES}, {MAX_ACCOMMODATES}]",
                f"SELECT COUNT(*) FROM {t} WHERE {where}",
                f"DELETE FROM {t} WHERE {where}",
            ))

        return rules

    def clean(
        self,
        df: pd.DataFrame,
        numeric_columns: Sequence[str],
        categorical_columns: Sequence[str] = (),
    ) -> pd.DataFrame:
        """
        Apply all enabled rules and return the surviving rows in row_id order.

        Raises:
            DataError: If no rows survive.
        """
        self.stats = {}
        rules = self._build_rules(numeric_columns, categorical_columns)
        if self.config.verbose:
            logger.info(f"Applying {len(rules)} completeness rules to {len(df):,} listings...")

        con = duckdb.connect(":memory:")
        try:
            con.register('listings_input', df)
            con.execute(f"CREATE TABLE {self.TABLE} AS SELECT * FROM listings_input")
            con.unregister('listings_input')

            for rule in rules:
                if not rule.enabled:
                    continue
                affected = con.execute(rule.check_query).fetchone()[0]
                if affected > 0:
                    con.execute(rule.action_query)
                    self.stats[rule.name] = affected
                    if self.config.verbose:
                        logger.info(f"  ✓ {rule.name}: {affected:,} rows")
                elif self.config.verbose:
                    logger.info(f"  - {rule.name}: 0 rows")

            out = con.execute(f"SELECT * FROM {self.TABLE} ORDER BY row_id").fetchdf()
        finally:
            con.close()

        dropped = len(df) - len(out)
        logger.info(f"Completeness filter kept {len(out):,} of {len(df):,} listings ({dropped:,} dropped)")
        if out.empty:
            raise DataError("No listings left after completeness filtering")
        return out.reset_index(drop=True)
