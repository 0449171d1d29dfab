"""
MCMC sampler orchestration.

Runs independent Markov chains of a model's Gibbs sweep, discards
burn-in, thins, and hands back one read-only trace per chain.

Chains get independent random streams spawned from one seed
(SeedSequence.spawn), so results do not depend on how many workers
run them. Parallelism is joblib over chains; chains never communicate.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from rental_bayes.config import (
    DEFAULT_BURN_IN,
    DEFAULT_CHAINS,
    DEFAULT_ITERATIONS,
    DEFAULT_THINNING,
    RANDOM_STATE,
)
from rental_bayes.exceptions import ConfigError, SamplingError
from rental_bayes.models.specification import BayesianLinearModel

logger = logging.getLogger(__name__)


@dataclass
class SamplerConfig:
    """
    Sampler configuration.

    Stored draws per chain = (n_iterations - burn_in) // thinning.
    """
    n_chains: int = DEFAULT_CHAINS
    n_iterations: int = DEFAULT_ITERATIONS
    burn_in: int = DEFAULT_BURN_IN
    thinning: int = DEFAULT_THINNING
    random_state: int = RANDOM_STATE

    # Execution
    n_jobs: int = -1                      # joblib workers; -1 = all cores, 1 = serial
    max_seconds: Optional[float] = None   # wall-clock cap per chain
    log_every: int = 0                    # progress log interval (iterations), 0 = off

    def validate(self) -> 'SamplerConfig':
        """Raise ConfigError for any configuration that cannot be sampled."""
        if not isinstance(self.n_chains, (int, np.integer)) or self.n_chains < 1:
            raise ConfigError(f"n_chains must be >= 1, got {self.n_chains}")
        if not isinstance(self.n_iterations, (int, np.integer)) or self.n_iterations <= 0:
            raise ConfigError(f"n_iterations must be > 0, got {self.n_iterations}")
        if not isinstance(self.burn_in, (int, np.integer)) or not 0 <= self.burn_in < self.n_iterations:
            raise ConfigError(
                f"burn_in must be in [0, n_iterations), got burn_in={self.burn_in}, "
                f"n_iterations={self.n_iterations}"
            )
        if not isinstance(self.thinning, (int, np.integer)) or self.thinning < 1:
            raise ConfigError(f"thinning must be >= 1, got {self.thinning}")
        if self.n_saved == 0:
            raise ConfigError(
                f"thinning={self.thinning} keeps no draws from "
                f"{self.n_iterations - self.burn_in} post-burn-in iterations"
            )
        if self.max_seconds is not None and self.max_seconds <= 0:
            raise ConfigError(f"max_seconds must be positive, got {self.max_seconds}")
        if self.n_jobs == 0:
            raise ConfigError("n_jobs must be non-zero (-1 = all cores, 1 = serial)")
        return self

    @property
    def n_saved(self) -> int:
        return (self.n_iterations - self.burn_in) // self.thinning


@dataclass
class MarkovChainTrace:
    """Stored (post burn-in, thinned) draws of one chain. Read-only."""
    chain_id: int
    parameter_names: List[str]
    samples: np.ndarray
    truncated: bool = False

    def __post_init__(self):
        self.parameter_names = list(self.parameter_names)
        samples = np.array(self.samples, dtype=float).reshape(-1, len(self.parameter_names))
        samples.setflags(write=False)
        self.samples = samples

    def __len__(self) -> int:
        return self.samples.shape[0]

    def __getitem__(self, name: str) -> np.ndarray:
        """Stored draws of one parameter (read-only view)."""
        try:
            idx = self.parameter_names.index(name)
        except ValueError:
            raise KeyError(name) from None
        return self.samples[:, idx]

    def __iter__(self) -> Iterator[str]:
        return iter(self.parameter_names)

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.samples, columns=self.parameter_names)
        df.insert(0, 'chain', self.chain_id)
        return df


def run_chain(
    model: BayesianLinearModel,
    n_iterations: int,
    burn_in: int,
    thinning: int,
    seed: np.random.SeedSequence,
    chain_id: int = 0,
    max_seconds: Optional[float] = None,
    log_every: int = 0,
) -> MarkovChainTrace:
    """
    Run one chain to completion (or to the wall-clock cap).

    Iteration t (0-based) is stored when t >= burn_in and
    (t - burn_in + 1) is a multiple of thinning. Burn-in draws are never kept.
    """
    rng = np.random.default_rng(seed)
    n_saved = (n_iterations - burn_in) // thinning
    out = np.empty((n_saved, len(model.parameter_names)))

    state = model.initial_state(rng)
    saved = 0
    truncated = False
    start = time.monotonic()

    for t in range(n_iterations):
        state = model.step(state, rng)

        if t >= burn_in and (t - burn_in + 1) % thinning == 0:
            out[saved] = model.as_vector(state)
            saved += 1

        if log_every and (t + 1) % log_every == 0:
            logger.info(f"  chain {chain_id}: {t + 1:,}/{n_iterations:,} iterations")

        if max_seconds is not None and time.monotonic() - start > max_seconds:
            truncated = t + 1 < n_iterations
            if truncated:
                logger.warning(
                    f"Chain {chain_id} hit the {max_seconds:g}s cap after {t + 1:,} "
                    f"iterations; keeping {saved:,} stored draws"
                )
            break

    return MarkovChainTrace(
        chain_id=chain_id,
        parameter_names=model.parameter_names,
        samples=out[:saved],
        truncated=truncated,
    )


class MCMCSampler:
    """
    Multi-chain sampler for any BayesianLinearModel.

    Usage:
        sampler = MCMCSampler(SamplerConfig(n_chains=3, n_iterations=5000,
                                             burn_in=1000, thinning=5))
        traces = sampler.sample(model)
    """

    def __init__(self, config: Optional[SamplerConfig] = None):
        self.config = (config or SamplerConfig()).validate()

    def chain_seeds(self) -> List[np.random.SeedSequence]:
        return np.random.SeedSequence(self.config.random_state).spawn(self.config.n_chains)

    def sample(self, model: BayesianLinearModel) -> List[MarkovChainTrace]:
        cfg = self.config
        logger.info(
            f"Sampling model {model.variant}: {cfg.n_chains} chains x {cfg.n_iterations:,} iterations "
            f"(burn-in {cfg.burn_in:,}, thin {cfg.thinning}) -> {cfg.n_saved:,} draws/chain"
        )
        start = time.monotonic()

        traces = Parallel(n_jobs=cfg.n_jobs)(
            delayed(run_chain)(
                model,
                cfg.n_iterations,
                cfg.burn_in,
                cfg.thinning,
                seed,
                chain_id,
                cfg.max_seconds,
                cfg.log_every,
            )
            for chain_id, seed in enumerate(self.chain_seeds())
        )

        for trace in traces:
            if trace.truncated:
                logger.warning(f"Chain {trace.chain_id} was truncated ({len(trace):,} draws)")

        starved = [t.chain_id for t in traces if t.truncated and len(t) < 2]
        if starved:
            raise SamplingError(
                f"Chains {starved} stored fewer than 2 draws before the {cfg.max_seconds:g}s cap "
                f"(burn-in is {cfg.burn_in:,} iterations); raise max_seconds or lower burn_in"
            )
        logger.info(f"Sampling finished in {time.monotonic() - start:.1f}s")
        return list(traces)


def sample_posterior(
    model: BayesianLinearModel,
    config: Optional[SamplerConfig] = None,
) -> List[MarkovChainTrace]:
    """Convenience wrapper: MCMCSampler(config).sample(model)."""
    return MCMCSampler(config).sample(model)


def pooled_samples(traces: Sequence[MarkovChainTrace], name: str) -> np.ndarray:
    """All chains' stored draws of one parameter, concatenated."""
    return np.concatenate([t[name] for t in traces])
