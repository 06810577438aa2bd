"""Column-wise logistic IRLS with a shared covariate start.

For every column ``x`` of the matrix the model

    logit P(y = 1) = β₀·x + α₀ + α'·covariates

is fitted and only the slope β₀ (with its standard error) is kept.

Shared start
~~~~~~~~~~~~
All columns share the same covariates, so the iterations start from the
covariate-only fit rather than from scratch.  :func:`null_model_start`
fits ``y ~ 1 + covariates`` once (statsmodels GLM) and derives

    p₀ = fitted probabilities
    w₀ = p₀ (1 − p₀)                    (working weights)
    z₀ = logit(p₀) + (y − p₀) / w₀      (working response)

These are the exact IRLS quantities at β₀ = 0, so the first update for
a column is the Newton step away from the null model.  The design keeps
a *slot* in its first column which each column's data overwrites; the
remaining columns (constant, then covariates) never change.

Per-column iteration
~~~~~~~~~~~~~~~~~~~~
Each iteration solves the weighted normal equations for the full
design ``D = [x, 1, covariates]``

    β = (Dᵀ W D)⁻¹ Dᵀ W z

then recomputes η = Dβ, p, w and z.  Convergence is judged on the
slope only, by the symmetric relative change

    2 |β₀ − β₀_old| / (|β₀| + |β₀_old|) < tol

(defined as 0 when both are exactly 0), starting from β₀_old = 0.
A column converges only if that happens before the iteration count
reaches ``maxiter``; a count of ``maxiter`` means exhausted, and the
caller hands the column to :mod:`.fallback`.

A zero weight, a non-finite working response, a singular or
numerically singular normal matrix (condition number above
``1 / eps``), or a non-finite standard error ends the column as exhausted
rather than propagating NaN/Inf into the estimate.
"""

from __future__ import annotations

import enum
import warnings
from dataclasses import dataclass

import numpy as np
import statsmodels.api as sm
from scipy.special import expit
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning as SmConvergenceWarning,
)
from statsmodels.tools.sm_exceptions import (
    PerfectSeparationWarning,
)

from .blocks import plan_blocks
from .matrix import BlockReader

_MAX_COND = 1.0 / np.finfo(np.float64).eps


class IRLSStatus(enum.Enum):
    """Terminal states of the per-column iteration."""

    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class IRLSStart:
    """Quantities shared by every column's iteration.

    Attributes:
        design: ``(n, 2 + k)`` design; column 0 is the slot for the
            column under test, column 1 the constant.
        y: Binary response ``(n,)``.
        z0: Working response of the covariate-only fit.
        w0: Working weights of the covariate-only fit.
    """

    design: np.ndarray
    y: np.ndarray
    z0: np.ndarray
    w0: np.ndarray

    @property
    def covariates(self) -> np.ndarray:
        """User covariates ``(n, k)`` (design without slot and constant)."""
        return self.design[:, 2:]


@dataclass(frozen=True)
class IRLSColumnFit:
    """Outcome of :func:`irls_column`."""

    status: IRLSStatus
    n_iter: int
    estimate: float = float("nan")
    std_error: float = float("nan")


@dataclass(frozen=True)
class IRLSBatch:
    """Per-column results for one partition, in column order."""

    estimate: np.ndarray
    std_error: np.ndarray
    n_iter: np.ndarray
    converged: np.ndarray


def null_model_start(y: np.ndarray, covariates: np.ndarray) -> IRLSStart:
    """Fit ``y ~ 1 + covariates`` and build the shared IRLS start.

    Args:
        y: Binary response ``(n,)`` as float.
        covariates: ``(n, k)`` covariate matrix (``k`` may be 0).

    Returns:
        :class:`IRLSStart` with the slot column zeroed.
    """
    n = y.shape[0]
    design = np.column_stack([np.zeros(n), np.ones(n), covariates])
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=SmConvergenceWarning)
        warnings.filterwarnings("ignore", category=PerfectSeparationWarning)
        null_fit = sm.GLM(y, design[:, 1:], family=sm.families.Binomial()).fit()
    p0 = np.asarray(null_fit.mu, dtype=np.float64)
    w0 = p0 * (1.0 - p0)
    if not np.all(w0 > 0):
        raise ValueError(
            "The covariate-only logistic fit has fitted probabilities of exactly "
            "0 or 1; the covariates separate the response."
        )
    z0 = np.log(p0 / (1.0 - p0)) + (y - p0) / w0
    return IRLSStart(design=design, y=y, z0=z0, w0=w0)


def _relative_change(new: float, old: float) -> float:
    denom = abs(new) + abs(old)
    if denom == 0.0:
        return 0.0
    return 2.0 * abs(new - old) / denom


def irls_column(
    x: np.ndarray,
    start: IRLSStart,
    tol: float = 1e-8,
    maxiter: int = 20,
) -> IRLSColumnFit:
    """Fit the slope of one column.

    Args:
        x: Column data ``(n,)`` restricted to the row selection.
        start: Shared start from :func:`null_model_start`.
        tol: Relative-change tolerance on the slope.
        maxiter: Iteration budget; reaching it means exhausted.

    Returns:
        :class:`IRLSColumnFit`.  When exhausted, ``n_iter == maxiter``
        and the estimate and standard error are NaN.
    """
    exhausted = IRLSColumnFit(IRLSStatus.EXHAUSTED, maxiter)
    D = start.design.copy()
    D[:, 0] = x
    y = start.y
    z, w = start.z0, start.w0

    beta_old = 0.0
    change = np.inf
    n_iter = 0
    xtwx = None
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        while n_iter < maxiter:
            n_iter += 1
            if not (np.all(w > 0) and np.all(np.isfinite(z))):
                return exhausted
            DtW = D.T * w
            xtwx = DtW @ D
            # Column collinear with the constant or a covariate.
            if np.linalg.cond(xtwx) > _MAX_COND:
                return exhausted
            try:
                beta = np.linalg.solve(xtwx, DtW @ z)
            except np.linalg.LinAlgError:
                return exhausted
            eta = D @ beta
            p = expit(eta)
            w = p * (1.0 - p)
            z = eta + (y - p) / w

            change = _relative_change(float(beta[0]), beta_old)
            beta_old = float(beta[0])
            if change < tol:
                break

    if not (change < tol and n_iter < maxiter):
        return exhausted
    try:
        var = np.linalg.inv(xtwx)[0, 0]
    except np.linalg.LinAlgError:
        return exhausted
    if not (np.isfinite(beta_old) and np.isfinite(var) and var > 0):
        return exhausted
    return IRLSColumnFit(IRLSStatus.CONVERGED, n_iter, beta_old, float(np.sqrt(var)))


def irls_columns(
    reader: BlockReader,
    cols: np.ndarray,
    rows: np.ndarray | None,
    start: IRLSStart,
    tol: float,
    maxiter: int,
    block_width: int,
) -> IRLSBatch:
    """Run :func:`irls_column` over *cols*, streaming them in blocks.

    Args:
        reader: Matrix source.
        cols: Matrix column indices to fit, in output order.
        rows: Row selection (length ``n``), or ``None`` for all rows.
        start: Shared start.
        tol: Relative-change tolerance.
        maxiter: Iteration budget.
        block_width: Maximum number of columns read at once.

    Returns:
        :class:`IRLSBatch` aligned with *cols*.
    """
    m = len(cols)
    estimate = np.full(m, np.nan)
    std_error = np.full(m, np.nan)
    n_iter = np.full(m, maxiter, dtype=np.int64)
    converged = np.zeros(m, dtype=bool)

    for blk in plan_blocks(m, block_width):
        block = reader.read_block(cols[blk.slice], rows)
        for offset in range(blk.width):
            k = blk.start + offset
            fit = irls_column(block[:, offset], start, tol=tol, maxiter=maxiter)
            n_iter[k] = fit.n_iter
            if fit.status is IRLSStatus.CONVERGED:
                estimate[k] = fit.estimate
                std_error[k] = fit.std_error
                converged[k] = True
    return IRLSBatch(estimate, std_error, n_iter, converged)


__all__ = [
    "IRLSBatch",
    "IRLSColumnFit",
    "IRLSStart",
    "IRLSStatus",
    "irls_column",
    "irls_columns",
    "null_model_start",
]
