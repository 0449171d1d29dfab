#!/usr/bin/env python
"""
Fit the Bayesian rental price models and write the summary tables.

Usage:
    python entrypoint/fit.py --data data/listings.csv
    python entrypoint/fit.py --data data/listings.csv --model B --chains 4 --plots
    python entrypoint/fit.py --synthetic 500  # no input file needed
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import argparse
import logging

import pandas as pd

from rental_bayes.config import (
    DEFAULT_BURN_IN,
    DEFAULT_CHAINS,
    DEFAULT_ITERATIONS,
    DEFAULT_THINNING,
    MODEL_VARIANTS,
    RANDOM_STATE,
)
from rental_bayes.data.synthetic import make_synthetic_listings
from rental_bayes.exceptions import ConfigError, DataError, SamplingError
from rental_bayes.models.sampler import SamplerConfig
from rental_bayes.pipeline import AnalysisConfig, run_analysis


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Bayesian regression of nightly rental prices')
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--data', type=str, help='Listings CSV file')
    source.add_argument('--synthetic', type=int, metavar='N', help='Use N synthetic listings instead of a file')

    parser.add_argument('--model', choices=['A', 'B', 'both'], default='both', help='Model variant(s) to fit')
    parser.add_argument('--chains', type=int, default=DEFAULT_CHAINS)
    parser.add_argument('--iterations', type=int, default=DEFAULT_ITERATIONS)
    parser.add_argument('--burn-in', type=int, default=DEFAULT_BURN_IN)
    parser.add_argument('--thin', type=int, default=DEFAULT_THINNING)
    parser.add_argument('--seed', type=int, default=RANDOM_STATE)
    parser.add_argument('--n-jobs', type=int, default=-1, help='Parallel chain workers (-1 = all cores, 1 = serial)')
    parser.add_argument('--max-seconds', type=float, default=None, help='Wall-clock cap per chain')
    parser.add_argument('--output-dir', type=str, default='outputs/bayes')
    parser.add_argument('--plots', action='store_true', help='Save trace/ACF/running-mean plots')
    return parser


def config_from_args(args) -> AnalysisConfig:
    variants = MODEL_VARIANTS if args.model == 'both' else (args.model,)
    sampler = SamplerConfig(
        n_chains=args.chains,
        n_iterations=args.iterations,
        burn_in=args.burn_in,
        thinning=args.thin,
        random_state=args.seed,
        n_jobs=args.n_jobs,
        max_seconds=args.max_seconds,
    )
    return AnalysisConfig(
        variants=variants,
        sampler=sampler,
        output_dir=Path(args.output_dir),
        make_plots=args.plots,
    ).validate()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(message)s')

    print("=" * 70)
    print("BAYESIAN RENTAL PRICE MODEL")
    print("=" * 70)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"\nConfiguration error: {e}")
        return 2

    if args.synthetic is not None:
        print(f"\n1. Generating {args.synthetic:,} synthetic listings...")
        listings = make_synthetic_listings(args.synthetic, random_state=args.seed)
        listings_path = None
    else:
        print(f"\n1. Loading listings from {args.data}...")
        listings = None
        listings_path = Path(args.data)

    print("\n2. Engineering features, sampling and diagnosing...")
    try:
        result = run_analysis(config, listings=listings, listings_path=listings_path)
    except DataError as e:
        print(f"\nData error: {e}")
        return 1
    except SamplingError as e:
        print(f"\nSampling error: {e}")
        return 1

    with pd.option_context('display.width', 160, 'display.max_columns', 20):
        for name, report in result.reports.items():
            print("\n" + "=" * 70)
            print(f"{name.upper()} - POSTERIOR SUMMARY")
            print("=" * 70)
            print(report.summary_table().round(4).to_string())
            if report.convergence_issues:
                print(f"\n  WARNING: {len(report.convergence_issues)} convergence issue(s):")
                for issue in report.convergence_issues:
                    chain = f" chain {issue.chain}" if issue.chain is not None else ''
                    print(f"    - {issue.parameter}: {issue.diagnostic}{chain} ({issue.detail})")

        print("\n" + "=" * 70)
        print("HELD-OUT RMSE (price scale)")
        print("=" * 70)
        print(result.rmse().round(2).to_string())

    print(f"\nListings used: {len(result.features):,} (dropped: {result.features.dropped})")
    for name, path in result.output_paths.items():
        print(f"  - {name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
