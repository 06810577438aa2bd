"""Block readers: column-block access to matrices that may not fit in memory.

Every blockwise computation in this package talks to storage through
the :class:`BlockReader` protocol — a ``shape`` and a single
``read_block(cols, rows)`` primitive returning a dense ``float64``
block.  Two implementations ship:

* :class:`FileBackedMatrix` — a column-major ``.npy`` file opened with
  ``mmap_mode="r"``.  Column-major layout means a block of adjacent
  columns is one contiguous region of the file, so reading a block
  touches only the pages it needs.  Pickling a matrix pickles only its
  path; a process worker re-attaches its own read-only view on unpickle.
* :class:`ArrayMatrix` — an adapter over an in-memory array or
  DataFrame, for data that already fits in RAM and for tests.

:func:`as_reader` converts user input (array, DataFrame, path or an
existing reader) at the API boundary so the engines only ever see a
:class:`BlockReader`.
"""

from __future__ import annotations

import logging
import os
import warnings
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd

from ._config import Options, resolve_options
from ._typing import ArrayLike, IndexLike
from ._validation import normalize_index
from .blocks import block_size, plan_blocks

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# BlockReader protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class BlockReader(Protocol):
    """Interface every matrix source must implement.

    Attributes:
        shape: ``(n_rows, n_cols)`` of the full matrix.
    """

    @property
    def shape(self) -> tuple[int, int]: ...

    def read_block(self, cols: IndexLike, rows: IndexLike = None) -> np.ndarray:
        """Return ``X[rows][:, cols]`` as a dense ``float64`` array.

        Args:
            cols: 0-based column positions (array, range or sequence).
            rows: 0-based row positions, or ``None`` for all rows.

        Returns:
            Array of shape ``(len(rows), len(cols))``.

        Raises:
            IndexError: If any position is negative or out of bounds.
        """
        ...


def _as_column_slice(cols: np.ndarray) -> slice | None:
    """Return an equivalent slice when *cols* is a run of adjacent columns."""
    start = int(cols[0])
    if cols.size == 1 or (
        int(cols[-1]) - start + 1 == cols.size and np.all(np.diff(cols) == 1)
    ):
        return slice(start, start + cols.size)
    return None


def _read(data: Any, cols: IndexLike, rows: IndexLike) -> np.ndarray:
    """Shared block extraction for array-like storage."""
    n_rows, n_cols = data.shape
    cols_arr = normalize_index(cols, n_cols, name="cols")
    col_slice = _as_column_slice(cols_arr)
    if rows is None:
        block = data[:, col_slice] if col_slice is not None else data[:, cols_arr]
    else:
        rows_arr = normalize_index(rows, n_rows, name="rows")
        if col_slice is not None:
            # Slicing first keeps the fancy row gather inside the block.
            block = data[:, col_slice][rows_arr]
        else:
            block = data[np.ix_(rows_arr, cols_arr)]
    return np.array(block, dtype=np.float64, order="F")


# ------------------------------------------------------------------ #
# In-memory adapter
# ------------------------------------------------------------------ #


class ArrayMatrix:
    """:class:`BlockReader` over an in-memory 2-D array."""

    def __init__(self, data: ArrayLike) -> None:
        arr = data.to_numpy() if isinstance(data, (pd.DataFrame, pd.Series)) else np.asarray(data)
        if arr.ndim == 1:
            arr = arr[:, np.newaxis]
        if arr.ndim != 2:
            raise ValueError(f"ArrayMatrix needs a 2-D array, got {arr.ndim} dimensions.")
        if not (np.issubdtype(arr.dtype, np.number) or arr.dtype == np.bool_):
            raise TypeError(f"ArrayMatrix needs numeric data, got dtype {arr.dtype}.")
        self._data = arr

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape  # type: ignore[return-value]

    def read_block(self, cols: IndexLike, rows: IndexLike = None) -> np.ndarray:
        return _read(self._data, cols, rows)

    def __repr__(self) -> str:
        return f"ArrayMatrix(shape={self.shape}, dtype={self._data.dtype.name})"


# ------------------------------------------------------------------ #
# File-backed matrix
# ------------------------------------------------------------------ #


class FileBackedMatrix:
    """Read-only, column-major matrix stored in a ``.npy`` file.

    Open an existing file with ``FileBackedMatrix(path)`` (or the
    :meth:`attach` alias); build one with :meth:`create` or
    :meth:`from_array`.

    Attributes:
        path: Location of the backing ``.npy`` file.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        data = np.load(self.path, mmap_mode="r")
        if data.ndim != 2:
            raise ValueError(
                f"{self.path} holds a {data.ndim}-D array; a 2-D matrix is required."
            )
        if not data.flags.f_contiguous:
            warnings.warn(
                f"{self.path} is stored row-major; column blocks will be read "
                "with strided access. Rewrite it with FileBackedMatrix.from_array "
                "for column-major storage.",
                UserWarning,
                stacklevel=2,
            )
        self._data = data

    @classmethod
    def attach(cls, path: str | os.PathLike[str]) -> FileBackedMatrix:
        """Open an existing backing file read-only."""
        return cls(path)

    @classmethod
    def create(
        cls,
        path: str | os.PathLike[str],
        n_rows: int,
        n_cols: int,
        dtype: Any = "float64",
        init: float | None = None,
    ) -> FileBackedMatrix:
        """Allocate a new column-major backing file.

        Args:
            path: Destination ``.npy`` path (overwritten if present).
            n_rows: Number of rows.
            n_cols: Number of columns.
            dtype: Storage dtype.
            init: Optional value written to every cell; otherwise the
                file is zero-initialised by the filesystem.

        Returns:
            The new matrix, attached read-only.
        """
        if n_rows <= 0 or n_cols <= 0:
            raise ValueError(
                f"A file-backed matrix needs positive dimensions, got ({n_rows}, {n_cols})."
            )
        mm = np.lib.format.open_memmap(
            path, mode="w+", dtype=np.dtype(dtype), shape=(n_rows, n_cols),
            fortran_order=True,
        )
        if init is not None:
            mm[...] = init
        mm.flush()
        del mm
        return cls(path)

    @classmethod
    def from_array(
        cls,
        array: ArrayLike,
        path: str | os.PathLike[str],
        dtype: Any = None,
        *,
        options: Options | None = None,
    ) -> FileBackedMatrix:
        """Write *array* to a new backing file, one column block at a time.

        Args:
            array: Source matrix ``(n, m)``.
            path: Destination ``.npy`` path.
            dtype: Storage dtype; defaults to the source dtype.
            options: Per-call options (``block_size_gb`` sets the write
                granularity, ``typecast_warning`` enables the lossy-cast
                warning).

        Returns:
            The new matrix, attached read-only.
        """
        opts = resolve_options(options)
        src = array.to_numpy() if isinstance(array, (pd.DataFrame, pd.Series)) else np.asarray(array)
        if src.ndim == 1:
            src = src[:, np.newaxis]
        if src.ndim != 2:
            raise ValueError(f"'array' must be 2-D, got {src.ndim} dimensions.")
        target = np.dtype(dtype) if dtype is not None else src.dtype
        n_rows, n_cols = src.shape

        mm = np.lib.format.open_memmap(
            path, mode="w+", dtype=target, shape=(n_rows, n_cols), fortran_order=True,
        )
        lossy = False
        for blk in plan_blocks(n_cols, block_size(n_rows, options=opts)):
            chunk = src[:, blk.start:blk.stop]
            cast = chunk.astype(target)
            if opts.typecast_warning and not lossy and target != chunk.dtype:
                lossy = not np.array_equal(
                    cast.astype(np.float64), chunk.astype(np.float64), equal_nan=True
                )
            mm[:, blk.start:blk.stop] = cast
        mm.flush()
        del mm

        if lossy:
            warnings.warn(
                f"Casting from {src.dtype} to {target} changed some values "
                f"while writing {path}.",
                UserWarning,
                stacklevel=2,
            )
        logger.debug("Wrote %d x %d %s matrix to %s", n_rows, n_cols, target, path)
        return cls(path)

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape  # type: ignore[return-value]

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def read_block(self, cols: IndexLike, rows: IndexLike = None) -> np.ndarray:
        return _read(self._data, cols, rows)

    def __reduce__(self) -> tuple[Any, tuple[str]]:
        # Workers re-attach from the path instead of pickling the mapping.
        return (type(self), (str(self.path),))

    def __repr__(self) -> str:
        return (
            f"FileBackedMatrix(path='{self.path}', shape={self.shape}, "
            f"dtype={self.dtype.name})"
        )


def as_reader(X: Any) -> BlockReader:
    """Return a :class:`BlockReader` for *X*.

    Accepted types:
        * any object implementing :class:`BlockReader` — returned as-is;
        * ``str`` / ``os.PathLike`` — attached as a :class:`FileBackedMatrix`;
        * ``numpy.ndarray`` / ``pandas.DataFrame`` — wrapped in
          :class:`ArrayMatrix`.

    Raises:
        TypeError: For any other type.
    """
    if isinstance(X, BlockReader):
        return X
    if isinstance(X, (str, os.PathLike)):
        return FileBackedMatrix(X)
    if isinstance(X, (np.ndarray, pd.DataFrame)):
        return ArrayMatrix(X)
    raise TypeError(
        "'X' must be a FileBackedMatrix, a BlockReader, a path to a .npy file, "
        f"a NumPy array or a pandas DataFrame, got {type(X).__name__}."
    )


__all__ = ["ArrayMatrix", "BlockReader", "FileBackedMatrix", "as_reader"]
