"""
End-to-end tests: posterior recovery on known data, the full listing
pipeline and the command-line entrypoint.
"""

import importlib.util
import warnings
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from rental_bayes.data.synthetic import make_regression_data, make_synthetic_listings
from rental_bayes.exceptions import ConfigError, ConvergenceWarning
from rental_bayes.models.diagnostics import diagnose, gelman_rubin, hpd_interval
from rental_bayes.models.sampler import MCMCSampler, SamplerConfig, pooled_samples
from rental_bayes.models.specification import FlatPriorModel, ShrinkagePriorModel
from rental_bayes.pipeline import AnalysisConfig, run_analysis

ENTRYPOINT = Path(__file__).parent.parent / 'entrypoint' / 'fit.py'


def load_entrypoint():
    spec = importlib.util.spec_from_file_location('fit_entrypoint', ENTRYPOINT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def fast_sampler():
    return SamplerConfig(n_chains=2, n_iterations=400, burn_in=100, thinning=1, random_state=5)


@pytest.mark.integration
class TestPosteriorRecovery:
    """The sampler should find coefficients it was given."""

    @pytest.mark.slow
    def test_hpd_coverage_of_true_coefficients(self):
        """Test that 95% HPD intervals cover the true coefficients in at least 90% of repeated fits."""
        config = SamplerConfig(n_chains=3, n_iterations=5000, burn_in=1000, thinning=5)
        covered = []
        for seed in range(12):
            X, y, names, true_beta = make_regression_data(n=200, random_state=seed)
            model = FlatPriorModel(X, y, names)
            traces = MCMCSampler(config).sample(model)

            for name in model.parameter_names:
                point, _ = gelman_rubin([t[name] for t in traces])
                assert point < 1.1, f"seed {seed}: {name} R-hat {point:.3f}"
            for name, truth in zip(model.coefficient_names, true_beta):
                lo, hi = hpd_interval(pooled_samples(traces, name), 0.95)
                covered.append(lo <= truth <= hi)

        assert np.mean(covered) >= 0.9

    def test_default_run_converges(self):
        """Test that the default run converges and recovers the coefficients."""
        X, y, names, true_beta = make_regression_data(n=200, random_state=1)
        model = FlatPriorModel(X, y, names)
        traces = MCMCSampler(SamplerConfig(n_chains=3, n_iterations=5000, burn_in=1000, thinning=5)).sample(model)
        assert [len(t) for t in traces] == [800, 800, 800]

        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            report = diagnose(traces)

        for name in model.parameter_names:
            assert report[name].rhat < 1.1
        means = np.array([report[n].mean for n in model.coefficient_names])
        assert np.allclose(means, true_beta, atol=0.1)
        assert report['sigma'].mean == pytest.approx(0.1, rel=0.25)

    def test_shrinkage_model_recovers_signal(self):
        """Test that Model B recovers the coefficients with positive precision draws."""
        X, y, names, true_beta = make_regression_data(n=200, random_state=2)
        model = ShrinkagePriorModel(X, y, names, prior_means={'intercept': 1.0})
        traces = MCMCSampler(SamplerConfig(n_chains=2, n_iterations=2000, burn_in=500, thinning=2)).sample(model)

        means = np.array([pooled_samples(traces, n).mean() for n in model.coefficient_names])
        assert np.allclose(means, true_beta, atol=0.1)
        assert pooled_samples(traces, 'shrinkage_precision').min() > 0


@pytest.mark.integration
class TestRunAnalysis:
    """Test the end-to-end analysis run."""

    def test_full_pipeline(self, fast_sampler, tmp_path):
        """Test both models, the OLS baseline and every output file."""
        listings = make_synthetic_listings(300, random_state=3)
        config = AnalysisConfig(sampler=fast_sampler, output_dir=tmp_path, make_plots=True)

        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            result = run_analysis(config, listings=listings)

        assert set(result.runs) == {'A', 'B'}
        assert len(result.train) + len(result.test) == len(result.features)

        rmse = result.rmse()
        assert list(rmse.index) == ['Model A', 'Model B', 'OLS']
        assert np.isfinite(rmse['rmse']).all()
        # A flat-prior posterior mean predicts like least squares
        assert rmse.loc['Model A', 'rmse'] == pytest.approx(rmse.loc['OLS', 'rmse'], rel=0.1)

        summary = result.summary()
        assert set(summary['model']) == {'Model A', 'Model B'}
        assert 'shrinkage_precision' in summary.loc[summary['model'] == 'Model B', 'parameter'].tolist()

        for key in ('summary', 'rmse', 'issues', 'traces_A', 'acf_B', 'running_mean_A', 'intervals_B'):
            assert result.output_paths[key].exists()

    def test_from_file(self, fast_sampler, tmp_path):
        """Test a single-variant run from a listings file."""
        path = tmp_path / 'listings.csv'
        make_synthetic_listings(200, random_state=4).to_csv(path, index=False)
        config = AnalysisConfig(variants=['a'], sampler=fast_sampler, include_ols=False)

        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            result = run_analysis(config, listings_path=path)

        assert list(result.rmse().index) == ['Model A']
        assert result.output_paths == {}

    def test_invalid_config_rejected_before_sampling(self):
        """Test that invalid configuration fails before any sampling."""
        with pytest.raises(ConfigError):
            run_analysis(AnalysisConfig(variants=['C']), listings=make_synthetic_listings(50))
        with pytest.raises(ConfigError):
            run_analysis(AnalysisConfig(sampler=SamplerConfig(n_iterations=10, burn_in=10)),
                         listings=make_synthetic_listings(50))

    def test_requires_input(self):
        """Test that a run without listings is rejected."""
        with pytest.raises(ConfigError):
            run_analysis(AnalysisConfig())


@pytest.mark.integration
class TestEntrypoint:
    """Test the fit command line."""

    def test_synthetic_run(self, tmp_path, capsys):
        """Test a synthetic run end to end."""
        fit = load_entrypoint()
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            code = fit.main([
                '--synthetic', '150', '--model', 'A', '--chains', '2',
                '--iterations', '300', '--burn-in', '100', '--thin', '1',
                '--output-dir', str(tmp_path),
            ])

        assert code == 0
        assert 'HELD-OUT RMSE' in capsys.readouterr().out
        rmse = pd.read_csv(tmp_path / 'rmse.csv', index_col='model')
        assert list(rmse.index) == ['Model A', 'OLS']

    def test_bad_config_exits_early(self, tmp_path, capsys):
        """Test that bad configuration exits with code 2 before writing."""
        fit = load_entrypoint()
        code = fit.main([
            '--synthetic', '50', '--iterations', '100', '--burn-in', '200',
            '--output-dir', str(tmp_path),
        ])
        assert code == 2
        assert 'Configuration error' in capsys.readouterr().out
        assert not (tmp_path / 'rmse.csv').exists()

    def test_sampling_cap_exits_with_error(self, tmp_path, capsys):
        """Test that a cap hit during burn-in exits with code 1 before writing."""
        fit = load_entrypoint()
        code = fit.main([
            '--synthetic', '150', '--model', 'A', '--chains', '2',
            '--iterations', '300', '--burn-in', '100', '--thin', '1',
            '--n-jobs', '1', '--max-seconds', '1e-9', '--output-dir', str(tmp_path),
        ])
        assert code == 1
        assert 'Sampling error' in capsys.readouterr().out
        assert not (tmp_path / 'rmse.csv').exists()
