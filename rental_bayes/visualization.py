"""
Diagnostic plots for MCMC traces.

Trace plots, autocorrelation bars and running means, rendered from
read-only traces and DiagnosticReport values.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from rental_bayes.models.diagnostics import DiagnosticReport
from rental_bayes.models.sampler import MarkovChainTrace

PathLike = Union[str, Path]


def _grid(n_params: int, n_cols: int = 3):
    n_rows = int(np.ceil(n_params / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(5 * n_cols, 2.8 * n_rows), squeeze=False)
    for ax in axes.flat[n_params:]:
        ax.axis('off')
    return fig, axes.flat


def _save(fig, output_path: Optional[PathLike]):
    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
    return fig


def plot_traces(
    traces: Sequence[MarkovChainTrace],
    parameters: Optional[List[str]] = None,
    title: str = 'Trace plots',
    output_path: Optional[PathLike] = None,
):
    """One panel per parameter, one line per chain."""
    parameters = parameters or list(traces[0].parameter_names)
    palette = sns.color_palette('deep', len(traces))
    fig, axes = _grid(len(parameters))

    for ax, name in zip(axes, parameters):
        for color, trace in zip(palette, traces):
            ax.plot(trace[name], lw=0.6, alpha=0.8, color=color, label=f'chain {trace.chain_id}')
        ax.set_title(name)
        ax.set_xlabel('Stored draw')
    axes[0].legend(fontsize=7)
    fig.suptitle(title, fontsize=14, fontweight='bold')
    fig.tight_layout()
    return _save(fig, output_path)


def plot_autocorrelation(
    report: DiagnosticReport,
    parameters: Optional[List[str]] = None,
    title: str = 'Autocorrelation',
    output_path: Optional[PathLike] = None,
):
    """ACF of the first chain per parameter, with the other chains overlaid as points."""
    parameters = parameters or list(report.parameters)
    fig, axes = _grid(len(parameters))

    for ax, name in zip(axes, parameters):
        acfs = report[name].autocorrelation
        lags = np.arange(len(acfs[0]))
        ax.bar(lags, acfs[0], width=0.6, color='steelblue')
        for acf in acfs[1:]:
            ax.plot(np.arange(len(acf)), acf, '.', ms=3, color='coral')
        ax.axhline(0, color='black', lw=0.8)
        ax.set_ylim(-1, 1)
        ax.set_title(name)
        ax.set_xlabel('Lag')
    fig.suptitle(title, fontsize=14, fontweight='bold')
    fig.tight_layout()
    return _save(fig, output_path)


def plot_running_means(
    report: DiagnosticReport,
    parameters: Optional[List[str]] = None,
    title: str = 'Running means',
    output_path: Optional[PathLike] = None,
):
    """Cumulative mean per chain against the pooled posterior mean."""
    parameters = parameters or list(report.parameters)
    fig, axes = _grid(len(parameters))

    for ax, name in zip(axes, parameters):
        diag = report[name]
        for i, rm in enumerate(diag.running_mean):
            ax.plot(rm, lw=0.8, label=f'chain {i}')
        ax.axhline(diag.mean, color='red', linestyle='--', lw=1)
        ax.set_title(name)
        ax.set_xlabel('Stored draw')
    fig.suptitle(title, fontsize=14, fontweight='bold')
    fig.tight_layout()
    return _save(fig, output_path)


def plot_posterior_intervals(
    report: DiagnosticReport,
    parameters: Optional[List[str]] = None,
    title: str = 'Posterior means and HPD intervals',
    output_path: Optional[PathLike] = None,
):
    """Forest plot of posterior means with HPD intervals."""
    parameters = parameters or list(report.parameters)
    diags = [report[p] for p in parameters]
    y = np.arange(len(diags))[::-1]

    fig, ax = plt.subplots(figsize=(8, 0.45 * len(diags) + 1.5))
    ax.hlines(y, [d.hpd_lower for d in diags], [d.hpd_upper for d in diags], color='steelblue', lw=2)
    ax.plot([d.mean for d in diags], y, 'o', color='navy')
    ax.axvline(0, color='gray', linestyle='--', lw=1)
    ax.set_yticks(y)
    ax.set_yticklabels(parameters)
    ax.set_title(title, fontweight='bold')
    fig.tight_layout()
    return _save(fig, output_path)
