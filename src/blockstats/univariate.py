"""Column-wise logistic regression over a (possibly file-backed) matrix.

:func:`univariate_logistic` fits, for every addressed column ``x_j``,

    logit P(y01 = 1) = β_j·x_j + α₀ + α'·covariates

and reports β_j with its standard error, the number of IRLS iterations,
the Wald z-score and its two-sided normal p-value.

Pipeline::

    validate arguments                      (nothing read yet)
    null_model_start(y01, covariates)       (once, shared by all columns)
    PartitionDispatcher.run(_fit_partition) (one task per partition)
      ├─ irls_columns(...)                  stage 1: fast IRLS, blockwise
      └─ resolve_exhausted(...)             stage 2: statsmodels GLM
    concatenate in partition order
    z = β / se,  p = 2·Φ(−|z|)

The per-column :class:`~.fallback.FitStatus` records which stage
produced each estimate.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from functools import partial
from typing import Any

import numpy as np
from scipy import stats

from ._config import Options, resolve_options
from ._results import LogisticRegressionResult
from ._typing import ArrayLike, IndexLike
from ._validation import (
    check_binary_response,
    check_covariates,
    check_ncores,
    normalize_index,
)
from .blocks import block_size as _budget_block_size
from .dispatch import PartitionDispatcher, concat_in_order
from .fallback import FALLBACK_MAXITER, FitStatus, resolve_exhausted, status_array
from .irls import IRLSStart, irls_columns, null_model_start
from .matrix import BlockReader, as_reader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartitionFit:
    """Two-stage results for one partition, aligned with its columns."""

    estimate: np.ndarray
    std_error: np.ndarray
    n_iter: np.ndarray
    status: np.ndarray


def _fit_partition(
    part: range,
    *,
    reader: BlockReader,
    rows: np.ndarray | None,
    cols: np.ndarray,
    start: IRLSStart,
    tol: float,
    maxiter: int,
    width: int,
) -> PartitionFit:
    sub = cols[part.start:part.stop]
    batch = irls_columns(reader, sub, rows, start, tol=tol, maxiter=maxiter, block_width=width)

    estimate = batch.estimate.copy()
    std_error = batch.std_error.copy()
    n_iter = batch.n_iter.astype(np.float64)
    status = status_array([FitStatus.IRLS] * len(sub))

    exhausted = np.flatnonzero(~batch.converged)
    fits = resolve_exhausted(
        sub[exhausted],
        lambda j: reader.read_block([j], rows)[:, 0],
        start.y,
        start.covariates,
        tol=tol,
        maxiter=FALLBACK_MAXITER,
    )
    for k, fit in zip(exhausted, fits, strict=True):
        estimate[k] = fit.estimate
        std_error[k] = fit.std_error
        n_iter[k] = np.nan
        status[k] = fit.status
    return PartitionFit(estimate, std_error, n_iter, status)


def wald_test(estimate: np.ndarray, std_error: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Wald z-scores and two-sided normal p-values; NaN in, NaN out."""
    with np.errstate(divide="ignore", invalid="ignore"):
        z = np.asarray(estimate, dtype=np.float64) / np.asarray(std_error, dtype=np.float64)
    return z, 2.0 * stats.norm.sf(np.abs(z))


def univariate_logistic(
    X: Any,
    y01: ArrayLike,
    ind_row: IndexLike = None,
    ind_col: IndexLike = None,
    covariates: ArrayLike | None = None,
    *,
    ncores: int = 1,
    tol: float = 1e-8,
    maxiter: int = 20,
    prefer: str = "threads",
    block_size: int | None = None,
    options: Options | None = None,
) -> LogisticRegressionResult:
    """Slopes of column-wise logistic regressions, with covariates.

    Args:
        X: Matrix source (:class:`~.matrix.FileBackedMatrix`, any
            :class:`~.matrix.BlockReader`, ``.npy`` path, array or
            DataFrame).
        y01: Binary response with one value per selected row.
        ind_row: 0-based rows to use; ``None`` for all.
        ind_col: 0-based columns to fit; ``None`` for all.
        covariates: Optional ``(len(ind_row), k)`` covariates adjusted
            for in every fit.  An intercept is always included.
        ncores: Number of partitions / workers.
        tol: Relative tolerance on the slope for IRLS convergence.
        maxiter: IRLS iteration budget.  Columns that reach it are
            refitted with the statsmodels GLM (``n_iter`` is then NaN).
        prefer: ``"threads"`` or ``"processes"`` when ``ncores > 1``.
        block_size: Columns read per block; ``None`` derives it from
            the memory budget.
        options: Per-call options.

    Returns:
        :class:`~blockstats.LogisticRegressionResult` with one entry per
        addressed column, in column order.

    Raises:
        ValueError: Non-binary response, mismatched lengths, bad
            ``tol`` / ``maxiter`` / ``ncores``.
        IndexError: Negative or out-of-range indices.
        PartitionError: A worker failed.
    """
    opts = resolve_options(options)
    reader = as_reader(X)
    n, m = reader.shape
    rows = normalize_index(ind_row, n, name="ind_row")
    cols = normalize_index(ind_col, m, name="ind_col")
    y = check_binary_response(y01, len(rows), opts)
    cov = check_covariates(covariates, len(rows), opts)
    ncores = check_ncores(ncores, opts)
    if not tol > 0:
        raise ValueError(f"'tol' must be positive, got {tol!r}.")
    if isinstance(maxiter, bool) or int(maxiter) != maxiter or maxiter < 1:
        raise ValueError(f"'maxiter' must be a positive integer, got {maxiter!r}.")
    if block_size is not None and block_size < 1:
        raise ValueError(f"'block_size' must be a positive integer, got {block_size!r}.")
    width = (
        int(block_size)
        if block_size is not None
        else _budget_block_size(len(rows), ncores, options=opts)
    )

    dispatcher = PartitionDispatcher(ncores, prefer)

    start = null_model_start(y, cov)
    task = partial(
        _fit_partition,
        reader=reader,
        rows=None if ind_row is None else rows,
        cols=cols,
        start=start,
        tol=float(tol),
        maxiter=int(maxiter),
        width=width,
    )
    parts = dispatcher.run(task, len(cols))

    estimate = concat_in_order([p.estimate for p in parts])
    std_error = concat_in_order([p.std_error for p in parts])
    n_iter = concat_in_order([p.n_iter for p in parts])
    status = status_array([s for p in parts for s in p.status])

    n_unresolved = int(sum(s is FitStatus.UNRESOLVED for s in status))
    if n_unresolved:
        warnings.warn(
            f"For {n_unresolved} column(s), GLM has not converged either; "
            "their estimates are NaN.",
            UserWarning,
            stacklevel=2,
        )

    z_score, p_value = wald_test(estimate, std_error)
    return LogisticRegressionResult(
        columns=cols.copy(),
        estimate=estimate,
        std_error=std_error,
        n_iter=n_iter,
        z_score=z_score,
        p_value=p_value,
        status=status,
        n_observations=len(rows),
        n_covariates=cov.shape[1],
        tol=float(tol),
        maxiter=int(maxiter),
        ncores=ncores,
        strategy=dispatcher.strategy.name,
    )


__all__ = ["PartitionFit", "univariate_logistic", "wald_test"]
