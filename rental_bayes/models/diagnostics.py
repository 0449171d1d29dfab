"""
Convergence and quality diagnostics for MCMC traces.

Pure functions over stored (post burn-in, thinned) draws:
- autocorrelation, running mean
- spectral density at zero from an AR fit (Yule-Walker, AIC order)
- effective sample size, Monte Carlo standard error, posterior variance
- Geweke Z-scores, Heidelberger-Welch stationarity and halfwidth tests
- Gelman-Rubin potential scale reduction (point estimate and upper bound)
- highest posterior density intervals

`diagnose` bundles everything into a DiagnosticReport. Failed checks
become ConvergenceIssue records in the report; they are never raised.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import special, stats

from rental_bayes.config import (
    ACF_MAX_LAG,
    GELMAN_RUBIN_CONFIDENCE,
    GELMAN_RUBIN_THRESHOLD,
    GEWEKE_FIRST,
    GEWEKE_LAST,
    GEWEKE_Z_THRESHOLD,
    HEIDELBERGER_EPS,
    HEIDELBERGER_PVALUE,
    HPD_MASS,
)
from rental_bayes.exceptions import ConvergenceWarning, DataError
from rental_bayes.models.sampler import MarkovChainTrace

logger = logging.getLogger(__name__)

# Detrended standard deviation below which a sequence counts as constant
_CONSTANT_TOL = 1.5e-8


# =============================================================================
# SINGLE-SEQUENCE STATISTICS
# =============================================================================

def autocorrelation(x, max_lag: int = ACF_MAX_LAG) -> np.ndarray:
    """
    Sample autocorrelation r_0..r_K, K = min(max_lag, n - 1).

    r_k = sum_t (x_t - m)(x_{t+k} - m) / sum_t (x_t - m)^2.
    A constant sequence gives 1 at lag 0 and 0 elsewhere.
    """
    x = np.asarray(x, dtype=float)
    n = len(x)
    if n == 0:
        return np.array([])
    K = int(min(max_lag, n - 1))
    xc = x - x.mean()
    denom = xc @ xc
    acf = np.zeros(K + 1)
    acf[0] = 1.0
    if denom == 0:
        return acf
    for k in range(1, K + 1):
        acf[k] = (xc[:n - k] @ xc[k:]) / denom
    return acf


def running_mean(x) -> np.ndarray:
    """Cumulative mean up to each index."""
    x = np.asarray(x, dtype=float)
    return np.cumsum(x) / np.arange(1, len(x) + 1)


def posterior_variance(x) -> float:
    x = np.asarray(x, dtype=float)
    return float(np.var(x, ddof=1)) if len(x) > 1 else np.nan


def ar_spectrum0(x) -> Tuple[float, int]:
    """
    Spectral density at frequency zero from an autoregressive fit.

    Yule-Walker equations are solved by Levinson-Durbin recursion for
    orders up to min(n - 1, 10 log10 n); the order with the lowest AIC is
    kept. S(0) = sigma^2_pred / (1 - sum(phi))^2.

    Returns:
        (S(0), AR order). S(0) is 0 for a sequence that is constant after
        removing a linear trend.
    """
    x = np.asarray(x, dtype=float)
    n = len(x)
    if n < 2:
        return np.nan, 0

    t = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(t, x, 1)
    if np.std(x - (slope * t + intercept)) < _CONSTANT_TOL:
        return 0.0, 0

    order_max = int(min(n - 1, np.floor(10 * np.log10(n))))
    xc = x - x.mean()
    acov = np.array([(xc[:n - k] @ xc[k:]) / n for k in range(order_max + 1)])

    var = acov[0]
    phi = np.zeros(0)
    best_aic = n * np.log(var)
    best = (phi, var, 0)

    for k in range(1, order_max + 1):
        kappa = (acov[k] - phi @ acov[k - 1:0:-1]) / var
        phi = np.concatenate([phi - kappa * phi[::-1], [kappa]])
        var = var * (1.0 - kappa**2)
        if var <= 0:
            break
        aic = n * np.log(var) + 2 * k
        if aic < best_aic:
            best_aic = aic
            best = (phi.copy(), var, k)

    phi, var, order = best
    var_pred = var * n / (n - (order + 1))
    return float(var_pred / (1.0 - phi.sum())**2), order


def effective_sample_size(x) -> float:
    """n * var(x) / S(0); 0 when S(0) is 0."""
    x = np.asarray(x, dtype=float)
    n = len(x)
    if n < 2:
        return float(n)
    s0, _ = ar_spectrum0(x)
    if s0 == 0:
        return 0.0
    return float(n * np.var(x, ddof=1) / s0)


def mcse(chains: Sequence) -> float:
    """
    Monte Carlo standard error of the posterior mean.

    Pooled standard deviation over sqrt(effective sample size), where the
    effective sample size is summed over chains.
    """
    chains = [np.asarray(c, dtype=float) for c in chains]
    pooled = np.concatenate(chains)
    sd = np.std(pooled, ddof=1) if len(pooled) > 1 else np.nan
    if sd == 0:
        return 0.0
    ess = sum(effective_sample_size(c) for c in chains)
    if ess <= 0:
        return np.inf
    return float(sd / np.sqrt(ess))


def hpd_interval(x, mass: float = HPD_MASS) -> Tuple[float, float]:
    """
    Narrowest interval containing `mass` of the draws.

    Slides a window of ceil(mass * n) sorted draws and keeps the narrowest.
    """
    if not 0 < mass <= 1:
        raise ValueError(f"mass must be in (0, 1], got {mass}")
    s = np.sort(np.asarray(x, dtype=float))
    n = len(s)
    if n == 0:
        return np.nan, np.nan
    k = int(min(n, max(1, np.ceil(mass * n))))
    widths = s[k - 1:] - s[:n - k + 1]
    i = int(np.argmin(widths))
    return float(s[i]), float(s[i + k - 1])


# =============================================================================
# GEWEKE
# =============================================================================

@dataclass
class GewekeResult:
    z: float
    passed: bool


def geweke(
    x,
    first: float = GEWEKE_FIRST,
    last: float = GEWEKE_LAST,
    threshold: float = GEWEKE_Z_THRESHOLD,
) -> GewekeResult:
    """
    Compare the mean of the first 10% with the last 50% of the draws.

    Z = (mean_a - mean_b) / sqrt(S_a(0)/n_a + S_b(0)/n_b); |Z| >= 1.96 fails.
    """
    if not (0 < first < 1 and 0 < last < 1 and first + last <= 1):
        raise ValueError(f"Invalid Geweke fractions first={first}, last={last}")
    x = np.asarray(x, dtype=float)
    n = len(x)
    n_a = int(np.ceil(first * n))
    n_b = int(np.ceil(last * n))
    if n_a < 2 or n_b < 2:
        return GewekeResult(z=np.nan, passed=False)

    a = x[:n_a]
    b = x[n - n_b:]
    var_a = ar_spectrum0(a)[0] / n_a
    var_b = ar_spectrum0(b)[0] / n_b
    diff = a.mean() - b.mean()
    denom = np.sqrt(var_a + var_b)

    if denom == 0:
        z = 0.0 if diff == 0 else np.copysign(np.inf, diff)
    else:
        z = float(diff / denom)
    return GewekeResult(z=z, passed=bool(abs(z) < threshold))


# =============================================================================
# HEIDELBERGER-WELCH
# =============================================================================

def pcramer(q, eps: float = 1e-5):
    """CDF of the limiting Cramér-von Mises distribution (series, first 4 terms)."""
    q = np.atleast_1d(np.asarray(q, dtype=float))
    total = np.zeros_like(q)
    log_eps = np.log(eps)
    positive = q > 0
    qp = np.where(positive, q, 1.0)

    for k in range(4):
        z = special.gamma(k + 0.5) * np.sqrt(4 * k + 1) / (special.gamma(k + 1) * np.pi**1.5 * np.sqrt(qp))
        u = (4 * k + 1)**2 / (16 * qp)
        with np.errstate(over='ignore', invalid='ignore'):
            term = z * np.exp(-u) * special.kv(0.25, u)
        total += np.where(u > -log_eps, 0.0, term)

    # The truncated series overshoots and then decays for q > 1, where the true CDF exceeds 0.999
    total = np.where(q > 1.0, 1.0, np.minimum(total, 1.0))
    total = np.where(positive, total, 0.0)
    return total if total.size > 1 else float(total[0])


@dataclass
class HeidelbergerResult:
    stationary: bool
    start_index: Optional[int]
    pvalue: float
    mean: float
    halfwidth: float
    halfwidth_passed: bool


def heidelberger_welch(
    x,
    eps: float = HEIDELBERGER_EPS,
    pvalue: float = HEIDELBERGER_PVALUE,
) -> HeidelbergerResult:
    """
    Heidelberger-Welch stationarity and halfwidth tests.

    Discards the leading 0%, 10%, ..., 40% of the draws in turn and
    applies a Cramér-von Mises test to the Brownian bridge of what is
    left, scaled by S(0) of the second half of the full sequence. The
    first accepted start point wins. On acceptance the halfwidth of the
    95% interval for the mean, 1.96 * sqrt(S(0)/n), must be within
    eps * |mean|.
    """
    x = np.asarray(x, dtype=float)
    n = len(x)
    failed = HeidelbergerResult(False, None, np.nan, np.nan, np.nan, False)
    if n < 10:
        return failed

    s0 = ar_spectrum0(x[n // 2:])[0]
    if not s0 > 0:
        return failed

    stationary = False
    p_stat = np.nan
    start = 0
    for k in range(5):
        start = int(round(k * n / 10))
        y = x[start:]
        m = len(y)
        bridge = np.cumsum(y) - y.mean() * np.arange(1, m + 1)
        stat = np.sum(bridge**2 / (m * s0)) / m
        cdf = pcramer(stat)
        p_stat = 1.0 - cdf
        if np.isfinite(stat) and cdf < 1 - pvalue:
            stationary = True
            break

    if not stationary:
        return HeidelbergerResult(False, None, float(p_stat), np.nan, np.nan, False)

    y = x[start:]
    ybar = float(y.mean())
    halfwidth = 1.96 * np.sqrt(ar_spectrum0(y)[0] / len(y))
    passed = bool(np.isfinite(halfwidth) and ybar != 0 and abs(halfwidth / ybar) <= eps)
    return HeidelbergerResult(True, start, float(p_stat), ybar, float(halfwidth), passed)


# =============================================================================
# GELMAN-RUBIN
# =============================================================================

def gelman_rubin(
    chains: Sequence,
    confidence: float = GELMAN_RUBIN_CONFIDENCE,
) -> Tuple[float, float]:
    """
    Potential scale reduction factor for one parameter.

    W = mean within-chain variance, B = n * variance of chain means,
    V = (n-1)/n W + (1 + 1/m) B/n; the point estimate is sqrt(V/W) with a
    degrees-of-freedom correction, and the upper bound uses the F quantile.
    Chains are cut to a common length. The point estimate is floored at 1.

    Returns:
        (point estimate, upper bound); NaN with fewer than 2 chains.
    """
    chains = [np.asarray(c, dtype=float) for c in chains]
    m = len(chains)
    if m < 2:
        return np.nan, np.nan
    n = min(len(c) for c in chains)
    if n < 2:
        return np.nan, np.nan

    xs = np.stack([c[:n] for c in chains])
    s2 = xs.var(axis=1, ddof=1)
    xbar = xs.mean(axis=1)
    W = s2.mean()
    B = n * xbar.var(ddof=1)
    if W == 0:
        return np.nan, np.nan

    muhat = xbar.mean()
    var_w = s2.var(ddof=1) / m
    var_b = 2 * B**2 / (m - 1)
    cov_wb = (n / m) * (
        np.cov(s2, xbar**2, ddof=1)[0, 1] - 2 * muhat * np.cov(s2, xbar, ddof=1)[0, 1]
    )

    V = (n - 1) * W / n + (1 + 1 / m) * B / n
    var_V = ((n - 1)**2 * var_w + (1 + 1 / m)**2 * var_b
             + 2 * (n - 1) * (1 + 1 / m) * cov_wb) / n**2
    df_V = 2 * V**2 / var_V if var_V > 0 else np.inf
    df_adj = (df_V + 3) / (df_V + 1) if np.isfinite(df_V) else 1.0

    B_df = m - 1
    W_df = 2 * W**2 / var_w if var_w > 0 else np.inf
    q = (1 + confidence) / 2
    if np.isfinite(W_df):
        f_quantile = stats.f.ppf(q, B_df, W_df)
    else:
        f_quantile = stats.chi2.ppf(q, B_df) / B_df

    R2_fixed = (n - 1) / n
    R2_random = (1 + 1 / m) * (1 / n) * (B / W)
    point = float(np.sqrt(df_adj * (R2_fixed + R2_random)))
    upper = float(np.sqrt(df_adj * (R2_fixed + f_quantile * R2_random)))

    point = max(1.0, point)
    return point, max(point, upper)


# =============================================================================
# REPORT
# =============================================================================

# Diagnostics whose failure means the chains have not converged
CONVERGENCE_DIAGNOSTICS = ('geweke', 'heidelberger_stationarity', 'gelman_rubin')


@dataclass
class ConvergenceIssue:
    parameter: str
    diagnostic: str
    detail: str
    chain: Optional[int] = None

    @property
    def is_convergence(self) -> bool:
        return self.diagnostic in CONVERGENCE_DIAGNOSTICS


@dataclass
class ParameterDiagnostics:
    """All diagnostics for one parameter across chains."""
    name: str
    mean: float
    sd: float
    variance: float
    hpd_lower: float
    hpd_upper: float
    hpd_mass: float
    ess: float
    mcse: float
    rhat: float
    rhat_upper: float
    geweke: List[GewekeResult] = field(default_factory=list)
    heidelberger: List[HeidelbergerResult] = field(default_factory=list)
    autocorrelation: List[np.ndarray] = field(default_factory=list)
    running_mean: List[np.ndarray] = field(default_factory=list)

    @property
    def geweke_max_abs_z(self) -> float:
        zs = [abs(g.z) for g in self.geweke if np.isfinite(g.z)]
        return max(zs) if zs else np.nan

    @property
    def heidelberger_passed(self) -> bool:
        return all(h.stationary for h in self.heidelberger)

    @property
    def halfwidth_passed(self) -> bool:
        return all(h.halfwidth_passed for h in self.heidelberger)

    @property
    def converged(self) -> bool:
        rhat_ok = np.isnan(self.rhat) or self.rhat < GELMAN_RUBIN_THRESHOLD
        return rhat_ok and self.heidelberger_passed and all(g.passed for g in self.geweke)


@dataclass
class DiagnosticReport:
    """Per-parameter diagnostics computed fresh from a set of traces."""
    parameters: Dict[str, ParameterDiagnostics]
    issues: List[ConvergenceIssue]
    n_chains: int
    n_draws: List[int]

    def __getitem__(self, name: str) -> ParameterDiagnostics:
        return self.parameters[name]

    @property
    def convergence_issues(self) -> List[ConvergenceIssue]:
        return [i for i in self.issues if i.is_convergence]

    @property
    def converged(self) -> bool:
        return not self.convergence_issues

    def summary_table(self) -> pd.DataFrame:
        rows = []
        for p in self.parameters.values():
            rows.append({
                'parameter': p.name,
                'mean': p.mean,
                'sd': p.sd,
                'hpd_lower': p.hpd_lower,
                'hpd_upper': p.hpd_upper,
                'rhat': p.rhat,
                'rhat_upper': p.rhat_upper,
                'ess': p.ess,
                'mcse': p.mcse,
                'geweke_max_abs_z': p.geweke_max_abs_z,
                'heidelberger_passed': p.heidelberger_passed,
                'halfwidth_passed': p.halfwidth_passed,
                'converged': p.converged,
            })
        return pd.DataFrame(rows).set_index('parameter')


def _check_traces(traces: Sequence[MarkovChainTrace]) -> List[str]:
    if not traces:
        raise DataError("No traces to diagnose")
    names = list(traces[0].parameter_names)
    for t in traces[1:]:
        if list(t.parameter_names) != names:
            raise DataError(f"Chain {t.chain_id} has different parameters from chain {traces[0].chain_id}")
    short = [t.chain_id for t in traces if len(t) < 2]
    if short:
        raise DataError(f"Chains {short} hold fewer than 2 stored draws")
    return names


def diagnose(
    traces: Sequence[MarkovChainTrace],
    hpd_mass: float = HPD_MASS,
    max_lag: int = ACF_MAX_LAG,
    emit_warnings: bool = True,
) -> DiagnosticReport:
    """
    Compute every diagnostic for every parameter.

    Args:
        traces: One MarkovChainTrace per chain (same parameter names)
        hpd_mass: Probability mass of the HPD interval
        max_lag: Largest ACF lag kept in the report
        emit_warnings: Emit one ConvergenceWarning when any chain fails a
            convergence diagnostic

    Returns:
        DiagnosticReport
    """
    names = _check_traces(traces)
    parameters = {}
    issues: List[ConvergenceIssue] = []

    for name in names:
        chains = [t[name] for t in traces]
        pooled = np.concatenate(chains)

        gew = [geweke(c) for c in chains]
        hw = [heidelberger_welch(c) for c in chains]
        rhat, rhat_upper = gelman_rubin(chains)
        lo, hi = hpd_interval(pooled, hpd_mass)

        diag = ParameterDiagnostics(
            name=name,
            mean=float(pooled.mean()),
            sd=float(np.std(pooled, ddof=1)),
            variance=posterior_variance(pooled),
            hpd_lower=lo,
            hpd_upper=hi,
            hpd_mass=hpd_mass,
            ess=float(sum(effective_sample_size(c) for c in chains)),
            mcse=mcse(chains),
            rhat=rhat,
            rhat_upper=rhat_upper,
            geweke=gew,
            heidelberger=hw,
            autocorrelation=[autocorrelation(c, max_lag) for c in chains],
            running_mean=[running_mean(c) for c in chains],
        )
        parameters[name] = diag

        for trace, g, h in zip(traces, gew, hw):
            if not g.passed:
                issues.append(ConvergenceIssue(name, 'geweke', f"|Z| = {abs(g.z):.2f}", trace.chain_id))
            if not h.stationary:
                issues.append(ConvergenceIssue(
                    name, 'heidelberger_stationarity', f"p = {h.pvalue:.3f}", trace.chain_id))
            elif not h.halfwidth_passed:
                issues.append(ConvergenceIssue(
                    name, 'heidelberger_halfwidth',
                    f"halfwidth {h.halfwidth:.3g} vs mean {h.mean:.3g}", trace.chain_id))
        if np.isfinite(rhat) and rhat >= GELMAN_RUBIN_THRESHOLD:
            issues.append(ConvergenceIssue(
                name, 'gelman_rubin', f"R-hat = {rhat:.3f} (upper {rhat_upper:.3f})"))

    report = DiagnosticReport(
        parameters=parameters,
        issues=issues,
        n_chains=len(traces),
        n_draws=[len(t) for t in traces],
    )

    for issue in report.convergence_issues:
        chain = f" (chain {issue.chain})" if issue.chain is not None else ''
        logger.warning(f"  ! {issue.parameter}: {issue.diagnostic}{chain} {issue.detail}")
    if emit_warnings and report.convergence_issues:
        flagged = sorted({i.parameter for i in report.convergence_issues})
        warnings.warn(
            f"Convergence diagnostics flagged {len(flagged)} parameter(s): {', '.join(flagged)}",
            ConvergenceWarning,
            stacklevel=2,
        )
    return report
