"""Typed result object for column-wise logistic regression.

A frozen dataclass that provides:

* **Attribute access** — ``result.estimate``, ``result.p_value``, etc.
* **Dict-like access** — ``result["estimate"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy types converted to native Python.
* **Tabular view** — ``.to_frame()`` returns one row per column as a
  pandas DataFrame.

The result is frozen to communicate that it is a snapshot of a
completed computation.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar

import numpy as np
import pandas as pd

from .fallback import FitStatus

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy scalars/arrays to Python-native types.

    NaN stays a float NaN; callers that need strict JSON should map it
    to ``None`` themselves.
    """
    if isinstance(obj, np.ndarray):
        if obj.dtype == object:
            return [_numpy_to_python(v) for v in obj.tolist()]
        return obj.tolist()
    if isinstance(obj, FitStatus):
        return obj.value
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test
    """

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary of Python-native values."""
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            result[f.name] = _numpy_to_python(getattr(self, f.name))
        return result


# ------------------------------------------------------------------ #
# LogisticRegressionResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class LogisticRegressionResult(_DictAccessMixin):
    """Per-column slopes of logistic regressions of ``y01`` on each column.

    Returned by :func:`~blockstats.univariate_logistic`.  Every array
    has one entry per addressed column, in the order of ``ind_col``.
    """

    # ---- Per-column values -----------------------------------------
    columns: np.ndarray
    """Matrix column indices (0-based) the rows refer to."""

    estimate: np.ndarray
    """Slope estimates; NaN when unresolved."""

    std_error: np.ndarray
    """Standard errors of the slopes; NaN when unresolved."""

    n_iter: np.ndarray
    """IRLS iterations as float; NaN when the fast path did not
    produce the estimate."""

    z_score: np.ndarray
    """``estimate / std_error``."""

    p_value: np.ndarray
    """Two-sided normal p-values of the z-scores."""

    status: np.ndarray
    """:class:`~blockstats.FitStatus` per column (object array)."""

    # ---- Run metadata ----------------------------------------------
    n_observations: int
    """Number of rows used (``len(ind_row)``)."""

    n_covariates: int
    """Number of user covariates (intercept excluded)."""

    tol: float
    """Relative tolerance on the slope."""

    maxiter: int
    """IRLS iteration budget."""

    ncores: int
    """Number of partitions."""

    strategy: str
    """Execution strategy name."""

    def __len__(self) -> int:
        return len(self.columns)

    @property
    def n_irls(self) -> int:
        """Columns resolved by the fast IRLS path."""
        return int(sum(s is FitStatus.IRLS for s in self.status))

    @property
    def n_fallback(self) -> int:
        """Columns that needed the GLM fallback (resolved or not)."""
        return len(self) - self.n_irls

    @property
    def n_unresolved(self) -> int:
        """Columns whose GLM fallback did not converge either."""
        return int(sum(s is FitStatus.UNRESOLVED for s in self.status))

    def to_frame(self) -> pd.DataFrame:
        """One row per column.

        Columns are ``estim``, ``std_err``, ``niter`` (nullable
        ``Int64``), ``z_score``, ``p_value`` and ``status``; the index
        holds the matrix column indices.
        """
        niter = pd.array(
            [pd.NA if np.isnan(v) else int(v) for v in self.n_iter], dtype="Int64"
        )
        return pd.DataFrame(
            {
                "estim": self.estimate,
                "std_err": self.std_error,
                "niter": niter,
                "z_score": self.z_score,
                "p_value": self.p_value,
                "status": [s.value for s in self.status],
            },
            index=pd.Index(self.columns, name="column"),
        )


__all__ = ["LogisticRegressionResult"]
