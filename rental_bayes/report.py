"""
Summary tables for human consumption.

The per-parameter summary (all model variants), the RMSE comparison
and the list of convergence issues are the only artifacts written to disk.
"""

from pathlib import Path
from typing import Dict, Union

import pandas as pd

from rental_bayes.models.diagnostics import DiagnosticReport

SUMMARY_FILE = 'parameter_summary.csv'
RMSE_FILE = 'rmse.csv'
ISSUES_FILE = 'convergence_issues.csv'


def build_summary_table(report: DiagnosticReport, model_name: str) -> pd.DataFrame:
    """Per-parameter summary with a leading model column."""
    table = report.summary_table().reset_index()
    table.insert(0, 'model', model_name)
    return table


def issues_table(report: DiagnosticReport, model_name: str) -> pd.DataFrame:
    columns = ['model', 'parameter', 'diagnostic', 'chain', 'detail', 'is_convergence']
    rows = [
        {
            'model': model_name,
            'parameter': i.parameter,
            'diagnostic': i.diagnostic,
            'chain': i.chain,
            'detail': i.detail,
            'is_convergence': i.is_convergence,
        }
        for i in report.issues
    ]
    return pd.DataFrame(rows, columns=columns)


def write_summary(
    reports: Dict[str, DiagnosticReport],
    rmse: pd.DataFrame,
    output_dir: Union[str, Path],
) -> Dict[str, Path]:
    """
    Write summary, RMSE and issue tables as CSV.

    Returns:
        Mapping of table name to written path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    summary = pd.concat(
        [build_summary_table(r, name) for name, r in reports.items()], ignore_index=True
    )
    issues = pd.concat(
        [issues_table(r, name) for name, r in reports.items()], ignore_index=True
    )

    paths = {
        'summary': output_dir / SUMMARY_FILE,
        'rmse': output_dir / RMSE_FILE,
        'issues': output_dir / ISSUES_FILE,
    }
    summary.to_csv(paths['summary'], index=False)
    rmse.to_csv(paths['rmse'])
    issues.to_csv(paths['issues'], index=False)
    return paths
