"""Bayesian regression models, MCMC sampling, diagnostics and evaluation."""
from .specification import (
    BayesianLinearModel,
    FlatPriorModel,
    ShrinkagePriorModel,
    ChainState,
    NormalPrior,
    UniformPrior,
    GammaPrior,
    build_model,
    default_prior_means,
)
from .sampler import MCMCSampler, MarkovChainTrace, SamplerConfig, sample_posterior
from .diagnostics import (
    DiagnosticReport,
    ParameterDiagnostics,
    ConvergenceIssue,
    diagnose,
    autocorrelation,
    running_mean,
    geweke,
    heidelberger_welch,
    gelman_rubin,
    hpd_interval,
    effective_sample_size,
    mcse,
    posterior_variance,
)
from .evaluation import (
    EvaluationResult,
    posterior_means,
    predict,
    rmse,
    evaluate_posterior,
    evaluate_ols,
    split_table,
)
