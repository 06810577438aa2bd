"""Formatted ASCII summary for column-wise regression results.

The table mirrors the statsmodels summary style: run metadata in the
top panel, then the most significant columns with their slope,
standard error, z-score, p-value and how each estimate was obtained.
"""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from ._results import LogisticRegressionResult


def _fmt_p(p: float) -> str:
    """Format a p-value for display: scientific notation if tiny, 4 dp otherwise."""
    if np.isnan(p):
        return "N/A"
    if p < 0.0001:
        return f"{p:.2e}"
    return f"{p:.4f}"


def _fmt_num(val: float, spec: str = ">10.4f") -> str:
    if np.isnan(val):
        return f"{'N/A':>10}"
    return f"{val:{spec}}"


def print_regression_table(
    result: LogisticRegressionResult,
    *,
    top: int = 10,
    title: str = "Column-wise Logistic Regression",
) -> None:
    """Print a summary of *result*, most significant columns first.

    Args:
        result: Object returned by
            :func:`~blockstats.univariate_logistic`.
        top: Number of columns to list (NaN p-values sort last).
        title: Title for the output table.
    """
    print("=" * 80)
    for line in textwrap.wrap(title, width=78):
        print(f"{line:^80}")
    print("=" * 80)

    col1, col2 = 40, 38
    rows = [
        ("No. Observations:", result.n_observations, "No. Columns:", len(result)),
        ("Covariates:", result.n_covariates, "IRLS converged:", result.n_irls),
        ("Tolerance:", f"{result.tol:g}", "GLM fallback:", result.n_fallback),
        ("Max. Iterations:", result.maxiter, "Unresolved:", result.n_unresolved),
    ]
    for ll, lv, rl, rv in rows:
        print(f"{ll:<18}{str(lv):<{col1 - 18}}{rl:>{col2 - 11}} {str(rv):>10}")
    print(f"{'Execution:':<18}{result.strategy}")
    print("-" * 80)

    print(
        f"{'Column':<10}{'Estimate':>10}{'Std.Err':>10}{'z':>10}"
        f"{'P>|z|':>12}{'Iter':>8}{'Fit':>14}"
    )
    print("-" * 80)

    # NaN p-values go to the end.
    order = np.argsort(np.where(np.isnan(result.p_value), np.inf, result.p_value), kind="stable")
    for k in order[:top]:
        niter = "-" if np.isnan(result.n_iter[k]) else str(int(result.n_iter[k]))
        print(
            f"{int(result.columns[k]):<10}"
            f"{_fmt_num(result.estimate[k])}"
            f"{_fmt_num(result.std_error[k])}"
            f"{_fmt_num(result.z_score[k], '>10.3f')}"
            f"{_fmt_p(result.p_value[k]):>12}"
            f"{niter:>8}"
            f"{result.status[k].value:>14}"
        )
    if len(result) > top:
        print(f"... {len(result) - top} more column(s)")
    print("=" * 80)


__all__ = ["print_regression_table"]
