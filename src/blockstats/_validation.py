"""Argument checks shared by the public entry points.

Every check here runs before the first block read or worker spawn, so
a malformed call fails without touching storage.

Index checks always run: a negative position would otherwise be
silently reinterpreted by NumPy as counting from the end.  Value checks
that cost a pass over the data (binary response, finite covariates,
core count) are gated by ``Options.check_args``.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from ._config import Options
from ._typing import ArrayLike, IndexLike


def normalize_index(ind: IndexLike, size: int, *, name: str) -> np.ndarray:
    """Convert a row/column selection to a validated ``intp`` array.

    Args:
        ind: 0-based positions, or ``None`` for ``range(size)``.
        size: Extent of the indexed axis.
        name: Argument name used in error messages.

    Returns:
        1-D ``np.intp`` array of positions.

    Raises:
        TypeError: Boolean masks or non-integer positions.
        ValueError: Empty or multi-dimensional selections.
        IndexError: Negative or out-of-range positions.
    """
    if ind is None:
        return np.arange(size, dtype=np.intp)

    arr = np.asarray(ind)
    if arr.ndim != 1:
        raise ValueError(f"'{name}' must be one-dimensional, got shape {arr.shape}.")
    if arr.dtype == np.bool_:
        raise TypeError(
            f"'{name}' must hold integer positions, not a boolean mask. "
            "Use np.flatnonzero(mask) to convert."
        )
    if arr.size == 0:
        raise ValueError(f"'{name}' must select at least one position.")
    if not np.issubdtype(arr.dtype, np.integer):
        raise TypeError(f"'{name}' must hold integer positions, got dtype {arr.dtype}.")

    lo, hi = int(arr.min()), int(arr.max())
    if lo < 0:
        raise IndexError(
            f"'{name}' contains negative position {lo}; negative indexing "
            "is not supported."
        )
    if hi >= size:
        raise IndexError(
            f"'{name}' contains position {hi}, out of range for an axis of size {size}."
        )
    return arr.astype(np.intp, copy=False)


def as_2d_float(A: ArrayLike, *, name: str) -> np.ndarray:
    """Return *A* as a C-contiguous 2-D ``float64`` array."""
    arr = A.to_numpy() if isinstance(A, (pd.DataFrame, pd.Series)) else np.asarray(A)
    if arr.ndim == 1:
        arr = arr[:, np.newaxis]
    if arr.ndim != 2:
        raise ValueError(f"'{name}' must be a 2-D matrix, got {arr.ndim} dimensions.")
    try:
        return np.ascontiguousarray(arr, dtype=np.float64)
    except (TypeError, ValueError):
        raise TypeError(f"'{name}' must be numeric, got dtype {arr.dtype}.") from None


def check_rows_match(n_expected: int, n_actual: int, *, what: str) -> None:
    """Raise ``ValueError`` when a row count disagrees with the row selection."""
    if n_expected != n_actual:
        raise ValueError(
            f"{what} has {n_actual} rows but the row selection addresses "
            f"{n_expected} rows."
        )


def check_ncores(ncores: int, options: Options) -> int:
    """Validate a requested core count against ``options.ncores_max``."""
    if isinstance(ncores, bool) or int(ncores) != ncores:
        raise TypeError(f"'ncores' must be an integer, got {ncores!r}.")
    ncores = int(ncores)
    if ncores < 1:
        raise ValueError(f"'ncores' must be at least 1, got {ncores}.")
    if options.check_args and ncores > options.ncores_max:
        raise ValueError(
            f"'ncores' ({ncores}) exceeds the configured maximum "
            f"({options.ncores_max}). Raise it with set_options(ncores_max=...)."
        )
    return ncores


def check_binary_response(y01: ArrayLike, n: int, options: Options) -> np.ndarray:
    """Return *y01* as a ``float64`` vector of 0/1 values.

    Raises:
        ValueError: Wrong length, values outside {0, 1}, or only one
            class present (checked when ``options.check_args``).
    """
    y = np.ravel(y01.to_numpy() if isinstance(y01, (pd.DataFrame, pd.Series)) else y01)
    if y.shape[0] != n:
        raise ValueError(
            f"'y01' has {y.shape[0]} values but the row selection addresses {n} rows."
        )
    y = y.astype(np.float64)
    if options.check_args:
        observed = np.unique(y)
        if not (observed.size == 2 and np.array_equal(observed, [0.0, 1.0])):
            raise ValueError(
                "'y01' must contain only 0 and 1, with both classes present; "
                f"found values {observed[:5].tolist()}."
            )
    return y


def check_covariates(covariates: ArrayLike | None, n: int, options: Options) -> np.ndarray:
    """Return covariates as an ``(n, k)`` float matrix (``k`` may be 0)."""
    if covariates is None:
        return np.empty((n, 0), dtype=np.float64)
    cov = as_2d_float(covariates, name="covariates")
    check_rows_match(n, cov.shape[0], what="'covariates'")
    if options.check_args and not np.all(np.isfinite(cov)):
        raise ValueError("'covariates' must not contain NaN or infinite values.")
    return cov


__all__ = [
    "as_2d_float",
    "check_binary_response",
    "check_covariates",
    "check_ncores",
    "check_rows_match",
    "normalize_index",
]
