"""Blockwise matrix products over a :class:`~.matrix.BlockReader`.

All products stream column blocks of the selected submatrix
``X_sub = X[ind_row][:, ind_col]`` so that only one block per worker
is materialised at a time:

* :func:`cprod` — ``X_subᵀ A``.  Each block ``B`` (columns
  ``ind_col[start:stop]``) contributes the rows ``start:stop`` of the
  result as ``Bᵀ A``.  Blocks write disjoint rows, so their order does
  not matter.
* :func:`cprod_vec` — ``X_subᵀ y`` for a vector ``y``.
* :func:`prod_mat` — ``X_sub A``.  Each block contributes
  ``B A[start:stop]`` to every row of the result; partials are summed.
* :func:`crossprod_self` — ``X_subᵀ X_sub``.  Only block pairs on or
  above the diagonal are computed; the lower triangle is mirrored.

With ``ncores > 1`` the addressed columns are first cut into contiguous
partitions and each partition's block loop runs on a
:class:`~.dispatch.PartitionDispatcher` worker.  The block width then
shrinks by the same factor so concurrent workers stay within the
memory budget.

Every argument check happens before the first block is read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any

import numpy as np

from ._config import Options, resolve_options
from ._typing import ArrayLike, IndexLike
from ._validation import as_2d_float, check_ncores, check_rows_match, normalize_index
from .blocks import block_size as _budget_block_size
from .blocks import plan_blocks
from .dispatch import PartitionDispatcher, concat_in_order
from .matrix import BlockReader, as_reader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Selection:
    """Validated inputs shared by every product."""

    reader: BlockReader
    rows: np.ndarray | None
    cols: np.ndarray
    n_rows: int
    width: int
    ncores: int


def _select(
    X: Any,
    ind_row: IndexLike,
    ind_col: IndexLike,
    block_size: int | None,
    ncores: int,
    options: Options | None,
    blocks_held: int = 1,
) -> _Selection:
    opts = resolve_options(options)
    reader = as_reader(X)
    n, m = reader.shape
    rows = normalize_index(ind_row, n, name="ind_row")
    cols = normalize_index(ind_col, m, name="ind_col")
    ncores = check_ncores(ncores, opts)
    if block_size is None:
        width = _budget_block_size(len(rows), ncores * blocks_held, options=opts)
    elif isinstance(block_size, bool) or int(block_size) != block_size or block_size < 1:
        raise ValueError(f"'block_size' must be a positive integer, got {block_size!r}.")
    else:
        width = int(block_size)
    return _Selection(
        reader=reader,
        # All rows in order: let the reader skip the row gather.
        rows=None if ind_row is None else rows,
        cols=cols,
        n_rows=len(rows),
        width=width,
        ncores=ncores,
    )


def _dispatch(sel: _Selection, task, prefer: str) -> list[Any]:
    m = len(sel.cols)
    logger.debug(
        "Blockwise product over %d x %d selection, block width %d, %d core(s)",
        sel.n_rows, m, sel.width, sel.ncores,
    )
    return PartitionDispatcher(sel.ncores, prefer).run(task, m)


# ------------------------------------------------------------------ #
# Per-partition kernels (module level so process pools can pickle them)
# ------------------------------------------------------------------ #


def _cprod_part(
    part: range,
    *,
    reader: BlockReader,
    A: np.ndarray,
    rows: np.ndarray | None,
    cols: np.ndarray,
    width: int,
) -> np.ndarray:
    sub = cols[part.start:part.stop]
    out = np.empty((len(sub), A.shape[1]))
    for blk in plan_blocks(len(sub), width):
        block = reader.read_block(sub[blk.slice], rows)
        out[blk.slice] = block.T @ A
    return out


def _prod_part(
    part: range,
    *,
    reader: BlockReader,
    A: np.ndarray,
    rows: np.ndarray | None,
    cols: np.ndarray,
    width: int,
    n_rows: int,
) -> np.ndarray:
    sub = cols[part.start:part.stop]
    A_sub = A[part.start:part.stop]
    out = np.zeros((n_rows, A.shape[1]))
    for blk in plan_blocks(len(sub), width):
        block = reader.read_block(sub[blk.slice], rows)
        out += block @ A_sub[blk.slice]
    return out


def _self_part(
    part: range,
    *,
    reader: BlockReader,
    rows: np.ndarray | None,
    cols: np.ndarray,
    width: int,
) -> np.ndarray:
    # Rows part.start:part.stop of the upper triangle, columns part.start:m.
    m = len(cols)
    out = np.zeros((len(part), m - part.start))
    for bi in plan_blocks(len(part), width):
        i0, i1 = part.start + bi.start, part.start + bi.stop
        left = reader.read_block(cols[i0:i1], rows)
        out[bi.slice, i0 - part.start:i1 - part.start] = left.T @ left
        if i1 == m:
            continue
        for bj in plan_blocks(m - i1, width):
            j0, j1 = i1 + bj.start, i1 + bj.stop
            right = reader.read_block(cols[j0:j1], rows)
            out[bi.slice, j0 - part.start:j1 - part.start] = left.T @ right
    return out


# ------------------------------------------------------------------ #
# Public API
# ------------------------------------------------------------------ #


def cprod(
    X: Any,
    A: ArrayLike,
    ind_row: IndexLike = None,
    ind_col: IndexLike = None,
    *,
    block_size: int | None = None,
    ncores: int = 1,
    prefer: str = "threads",
    options: Options | None = None,
) -> np.ndarray:
    """Cross-product ``X[ind_row][:, ind_col]ᵀ A`` computed blockwise.

    Args:
        X: Matrix source (:class:`~.matrix.FileBackedMatrix`, any
            :class:`~.matrix.BlockReader`, ``.npy`` path, array or
            DataFrame).
        A: Dense right-hand matrix with ``len(ind_row)`` rows.  A 1-D
            array is treated as a single column.
        ind_row: 0-based rows to use; ``None`` for all.
        ind_col: 0-based columns to use; ``None`` for all.
        block_size: Columns per block; ``None`` derives it from the
            memory budget in *options*.
        ncores: Number of workers.
        prefer: ``"threads"`` or ``"processes"`` when ``ncores > 1``.
        options: Per-call options.

    Returns:
        ``(len(ind_col), A.shape[1])`` ``float64`` array.

    Raises:
        ValueError: ``A`` has the wrong number of rows.
        IndexError: A row or column index is negative or out of range.
    """
    sel = _select(X, ind_row, ind_col, block_size, ncores, options)
    A_arr = as_2d_float(A, name="A")
    check_rows_match(sel.n_rows, A_arr.shape[0], what="'A'")
    task = partial(
        _cprod_part, reader=sel.reader, A=A_arr, rows=sel.rows, cols=sel.cols,
        width=sel.width,
    )
    return concat_in_order(_dispatch(sel, task, prefer), axis=0)


def cprod_vec(
    X: Any,
    y: ArrayLike,
    ind_row: IndexLike = None,
    ind_col: IndexLike = None,
    **kwargs: Any,
) -> np.ndarray:
    """Cross-product with a vector: ``X[ind_row][:, ind_col]ᵀ y``.

    Accepts the same keyword arguments as :func:`cprod`.

    Returns:
        1-D array of length ``len(ind_col)``.
    """
    y_arr = np.ravel(np.asarray(y, dtype=np.float64))
    return cprod(X, y_arr[:, np.newaxis], ind_row, ind_col, **kwargs)[:, 0]


def prod_mat(
    X: Any,
    A: ArrayLike,
    ind_row: IndexLike = None,
    ind_col: IndexLike = None,
    *,
    block_size: int | None = None,
    ncores: int = 1,
    prefer: str = "threads",
    options: Options | None = None,
) -> np.ndarray:
    """Product ``X[ind_row][:, ind_col] A`` computed blockwise.

    Args:
        A: Dense matrix with ``len(ind_col)`` rows.

    Other arguments are as in :func:`cprod`.

    Returns:
        ``(len(ind_row), A.shape[1])`` ``float64`` array.
    """
    sel = _select(X, ind_row, ind_col, block_size, ncores, options)
    A_arr = as_2d_float(A, name="A")
    if A_arr.shape[0] != len(sel.cols):
        raise ValueError(
            f"'A' has {A_arr.shape[0]} rows but the column selection addresses "
            f"{len(sel.cols)} columns."
        )
    task = partial(
        _prod_part, reader=sel.reader, A=A_arr, rows=sel.rows, cols=sel.cols,
        width=sel.width, n_rows=sel.n_rows,
    )
    partials = _dispatch(sel, task, prefer)
    # Summed in partition order so the result does not depend on scheduling.
    out = np.zeros((sel.n_rows, A_arr.shape[1]))
    for chunk in partials:
        out += chunk
    return out


def crossprod_self(
    X: Any,
    ind_row: IndexLike = None,
    ind_col: IndexLike = None,
    *,
    block_size: int | None = None,
    ncores: int = 1,
    prefer: str = "threads",
    options: Options | None = None,
) -> np.ndarray:
    """Self cross-product ``X_subᵀ X_sub`` computed blockwise.

    Two blocks are held at once, so the budget-derived block width is
    halved.  Arguments are as in :func:`cprod`.

    Returns:
        Symmetric ``(len(ind_col), len(ind_col))`` ``float64`` array.
    """
    sel = _select(X, ind_row, ind_col, block_size, ncores, options, blocks_held=2)
    m = len(sel.cols)
    task = partial(_self_part, reader=sel.reader, rows=sel.rows, cols=sel.cols, width=sel.width)
    parts = PartitionDispatcher(sel.ncores, prefer).partitions(m)
    chunks = _dispatch(sel, task, prefer)

    upper = np.zeros((m, m))
    for part, chunk in zip(parts, chunks, strict=True):
        upper[part.start:part.stop, part.start:] = chunk
    upper = np.triu(upper)
    return upper + np.triu(upper, k=1).T


__all__ = ["cprod", "cprod_vec", "crossprod_self", "prod_mat"]
