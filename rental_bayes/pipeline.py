"""
End-to-end rental price analysis.

Logic:
1. Load listings (or take a DataFrame) and engineer features
2. Split listings into training and held-out rows
3. For each model variant: specify, sample chains, diagnose
4. Score posterior-mean predictions (and an OLS baseline) on held-out rows
5. Write the summary tables (and optionally diagnostic plots)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd

from rental_bayes.config import MODEL_VARIANTS, RANDOM_STATE, TEST_SIZE
from rental_bayes.data.loader import load_listings
from rental_bayes.exceptions import ConfigError
from rental_bayes.features.engineering import FeatureConfig, FeatureTable, engineer_features
from rental_bayes.models.diagnostics import DiagnosticReport, diagnose
from rental_bayes.models.evaluation import (
    EvaluationResult,
    evaluate_ols,
    evaluate_posterior,
    rmse_table,
    split_table,
)
from rental_bayes.models.sampler import MarkovChainTrace, MCMCSampler, SamplerConfig
from rental_bayes.models.specification import build_model
from rental_bayes.report import build_summary_table, write_summary

logger = logging.getLogger(__name__)


@dataclass
class AnalysisConfig:
    """Configuration for one analysis run."""
    variants: Sequence[str] = MODEL_VARIANTS
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    features: FeatureConfig = field(default_factory=FeatureConfig)
    test_size: float = TEST_SIZE
    split_random_state: int = RANDOM_STATE
    include_ols: bool = True
    output_dir: Optional[Path] = None
    make_plots: bool = False

    def validate(self) -> 'AnalysisConfig':
        self.variants = [str(v).upper() for v in self.variants]
        unknown = [v for v in self.variants if v not in MODEL_VARIANTS]
        if unknown or not self.variants:
            raise ConfigError(f"Model variants must be drawn from {MODEL_VARIANTS}, got {list(self.variants)}")
        if not 0 < self.test_size < 1:
            raise ConfigError(f"test_size must be in (0, 1), got {self.test_size}")
        self.sampler.validate()
        return self


@dataclass
class ModelRun:
    """Everything produced for one model variant."""
    variant: str
    traces: List[MarkovChainTrace]
    report: DiagnosticReport
    evaluation: EvaluationResult


@dataclass
class AnalysisResult:
    features: FeatureTable
    train: FeatureTable
    test: FeatureTable
    runs: Dict[str, ModelRun]
    baseline: Optional[EvaluationResult]
    output_paths: Dict[str, Path] = field(default_factory=dict)

    @property
    def reports(self) -> Dict[str, DiagnosticReport]:
        return {f'Model {v}': run.report for v, run in self.runs.items()}

    def rmse(self) -> pd.DataFrame:
        results = {f'Model {v}': run.evaluation for v, run in self.runs.items()}
        if self.baseline is not None:
            results['OLS'] = self.baseline
        return rmse_table(results)

    def summary(self) -> pd.DataFrame:
        return pd.concat(
            [build_summary_table(r, name) for name, r in self.reports.items()], ignore_index=True
        )


def fit_variant(variant: str, train: FeatureTable, test: FeatureTable, sampler_config: SamplerConfig) -> ModelRun:
    model = build_model(variant, train)
    traces = MCMCSampler(sampler_config).sample(model)
    report = diagnose(traces)
    evaluation = evaluate_posterior(f'Model {variant}', traces, test)
    logger.info(
        f"Model {variant}: held-out RMSE {evaluation.rmse:.2f}, "
        f"{len(report.convergence_issues)} convergence issue(s)"
    )
    return ModelRun(variant=variant, traces=traces, report=report, evaluation=evaluation)


def _save_plots(runs: Dict[str, ModelRun], output_dir: Path) -> Dict[str, Path]:
    from rental_bayes.visualization import (
        plot_autocorrelation,
        plot_posterior_intervals,
        plot_running_means,
        plot_traces,
    )

    paths = {}
    for variant, run in runs.items():
        plots = {
            f'traces_{variant}': lambda p: plot_traces(run.traces, title=f'Model {variant} traces', output_path=p),
            f'acf_{variant}': lambda p: plot_autocorrelation(run.report, title=f'Model {variant} ACF', output_path=p),
            f'running_mean_{variant}': lambda p: plot_running_means(run.report, output_path=p),
            f'intervals_{variant}': lambda p: plot_posterior_intervals(run.report, output_path=p),
        }
        for name, render in plots.items():
            path = output_dir / f'{name}.png'
            plt.close(render(path))
            paths[name] = path
    return paths


def run_analysis(
    config: Optional[AnalysisConfig] = None,
    listings: Optional[pd.DataFrame] = None,
    listings_path: Optional[Path] = None,
) -> AnalysisResult:
    """
    Run the full analysis.

    Args:
        config: Analysis configuration (validated before any work starts)
        listings: Raw listing rows; takes precedence over listings_path
        listings_path: Delimited listings file

    Returns:
        AnalysisResult with feature tables, per-variant runs and RMSEs
    """
    config = (config or AnalysisConfig()).validate()
    if listings is None:
        if listings_path is None:
            raise ConfigError("Either listings or listings_path is required")
        listings = load_listings(listings_path)

    table = engineer_features(listings, config.features)
    train, test = split_table(table, config.test_size, config.split_random_state)
    logger.info(f"Split {len(table):,} listings into {len(train):,} train / {len(test):,} held-out")

    runs = {v: fit_variant(v, train, test, config.sampler) for v in config.variants}
    baseline = evaluate_ols(train, test) if config.include_ols else None

    result = AnalysisResult(features=table, train=train, test=test, runs=runs, baseline=baseline)

    if config.output_dir is not None:
        output_dir = Path(config.output_dir)
        result.output_paths = write_summary(result.reports, result.rmse(), output_dir)
        if config.make_plots:
            result.output_paths.update(_save_plots(runs, output_dir))
        logger.info(f"Wrote outputs to {output_dir}")

    return result
