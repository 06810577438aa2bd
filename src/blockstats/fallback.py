"""Second-stage fits for columns the fast IRLS path could not resolve.

The column-wise IRLS in :mod:`.irls` stops after ``maxiter`` iterations.
Columns that reach the budget are refitted here with the full logistic
GLM from statsmodels (IRLS over the whole design, its own tolerance,
and a larger iteration budget).  The outcome of the two-stage pipeline
is recorded per column as a :class:`FitStatus`:

* ``IRLS`` — converged on the fast path; ``n_iter`` is reported.
* ``GLM`` — resolved by the statsmodels fit; ``n_iter`` is missing.
* ``UNRESOLVED`` — the statsmodels fit did not converge either;
  estimate and standard error are NaN.

Nothing here raises for numerical reasons.  A degenerate column (e.g.
perfectly separating, constant, or collinear with a covariate) degrades
to ``UNRESOLVED`` and the caller reports an aggregate count.
"""

from __future__ import annotations

import enum
import logging
import warnings
from dataclasses import dataclass

import numpy as np
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning as SmConvergenceWarning,
)
from statsmodels.tools.sm_exceptions import (
    HessianInversionWarning,
    PerfectSeparationWarning,
)

logger = logging.getLogger(__name__)

FALLBACK_MAXITER = 100


class FitStatus(str, enum.Enum):
    """How a column's estimate was obtained."""

    IRLS = "irls"
    GLM = "glm"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class GLMFit:
    """Slope estimate from the statsmodels logistic GLM."""

    converged: bool
    estimate: float = float("nan")
    std_error: float = float("nan")

    @property
    def status(self) -> FitStatus:
        return FitStatus.GLM if self.converged else FitStatus.UNRESOLVED


_NOT_CONVERGED = GLMFit(converged=False)


def status_array(statuses: list[FitStatus]) -> np.ndarray:
    """Object array holding the :class:`FitStatus` members themselves.

    Filled item by item: NumPy coerces a ``str`` enum passed as a fill
    value or sequence to a plain (truncated) string.
    """
    out = np.empty(len(statuses), dtype=object)
    for k, status in enumerate(statuses):
        out[k] = status
    return out


def fit_glm(
    y01: np.ndarray,
    x: np.ndarray,
    covariates: np.ndarray,
    tol: float = 1e-8,
    maxiter: int = FALLBACK_MAXITER,
) -> GLMFit:
    """Fit ``y01 ~ 1 + x + covariates`` and return the slope on *x*.

    Args:
        y01: Binary response ``(n,)``.
        x: Column under test ``(n,)``.
        covariates: User covariates ``(n, k)``; ``k`` may be 0.  The
            intercept is added here.
        tol: Convergence tolerance passed to statsmodels IRLS.
        maxiter: Iteration budget for statsmodels IRLS.

    Returns:
        :class:`GLMFit`; ``converged=False`` with NaN values when the
        fit fails or does not converge.
    """
    n = y01.shape[0]
    exog = np.column_stack([x, np.ones(n), covariates])
    # statsmodels falls back to a pseudo-inverse on a rank-deficient design
    # and reports convergence; the slope is not identified there.
    if np.linalg.matrix_rank(exog) < exog.shape[1]:
        logger.debug("GLM fallback skipped: column is collinear with the design")
        return _NOT_CONVERGED
    try:
        with warnings.catch_warnings():
            # Separation and non-convergence are reported through the
            # returned status, not as per-column warnings.
            warnings.filterwarnings("ignore", category=SmConvergenceWarning)
            warnings.filterwarnings("ignore", category=PerfectSeparationWarning)
            warnings.filterwarnings("ignore", category=HessianInversionWarning)
            warnings.filterwarnings("ignore", category=RuntimeWarning)
            res = sm.GLM(y01, exog, family=sm.families.Binomial()).fit(
                maxiter=maxiter, tol=tol
            )
    except Exception as exc:  # noqa: BLE001
        # Singular or separated designs can make statsmodels raise
        # instead of returning; treat those exactly like non-convergence.
        logger.debug("GLM fallback failed: %s", exc)
        return _NOT_CONVERGED

    if not bool(getattr(res, "converged", False)):
        return _NOT_CONVERGED
    estimate = float(np.asarray(res.params)[0])
    std_error = float(np.asarray(res.bse)[0])
    if not (np.isfinite(estimate) and np.isfinite(std_error)):
        return _NOT_CONVERGED
    return GLMFit(converged=True, estimate=estimate, std_error=std_error)


def resolve_exhausted(
    columns: np.ndarray,
    read_column,
    y01: np.ndarray,
    covariates: np.ndarray,
    tol: float,
    maxiter: int = FALLBACK_MAXITER,
) -> list[GLMFit]:
    """Refit every column in *columns* with :func:`fit_glm`.

    Args:
        columns: Matrix column indices left exhausted by IRLS.
        read_column: Callable mapping a column index to its ``(n,)``
            data restricted to the row selection.
        y01: Binary response.
        covariates: User covariates ``(n, k)``.
        tol: Convergence tolerance.
        maxiter: Iteration budget.

    Returns:
        One :class:`GLMFit` per entry of *columns*, in order.
    """
    if len(columns) == 0:
        return []
    logger.info(
        "For %d column(s), IRLS has not converged; using GLM for those instead.",
        len(columns),
    )
    fits = [
        fit_glm(y01, read_column(int(j)), covariates, tol=tol, maxiter=maxiter)
        for j in columns
    ]
    n_failed = sum(not f.converged for f in fits)
    if n_failed:
        logger.info("GLM did not converge for %d of those column(s).", n_failed)
    return fits


__all__ = [
    "FALLBACK_MAXITER",
    "FitStatus",
    "GLMFit",
    "fit_glm",
    "resolve_exhausted",
    "status_array",
]
