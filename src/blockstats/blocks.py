"""Block planning: split an addressed column set into memory-bounded ranges.

A *block* is a contiguous run of positions ``[start, stop)`` within the
addressed column subset (``ind_col``), not within the underlying
matrix.  Positions are mapped back to matrix columns by slicing
``ind_col[block.slice]``.

Block width is derived from the memory budget: one ``float64`` block of
``n_rows`` rows and ``w`` columns costs ``8 * n_rows * w`` bytes, so

    w = floor(budget_gb * 1024**3 / (8 * n_rows * ncores))

clamped below at 1.  Dividing by ``ncores`` keeps the blocks held by
concurrent workers within the same budget.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ._config import Options, resolve_options

_BYTES_PER_CELL = 8
_GIB = 1024**3


@dataclass(frozen=True)
class Block:
    """Half-open range ``[start, stop)`` of addressed column positions."""

    start: int
    stop: int

    @property
    def width(self) -> int:
        return self.stop - self.start

    @property
    def slice(self) -> slice:
        return slice(self.start, self.stop)


def block_size(
    n_rows: int,
    ncores: int = 1,
    *,
    options: Options | None = None,
) -> int:
    """Maximum block width that fits the configured memory budget.

    Args:
        n_rows: Rows per block (the size of the row selection).
        ncores: Number of workers that hold a block at the same time.
        options: Per-call options; ``block_size_gb`` is read from here.

    Returns:
        Block width, at least 1.
    """
    if n_rows <= 0:
        raise ValueError(f"'n_rows' must be positive, got {n_rows}.")
    if ncores <= 0:
        raise ValueError(f"'ncores' must be positive, got {ncores}.")
    opts = resolve_options(options)
    width = math.floor(opts.block_size_gb * _GIB / (_BYTES_PER_CELL * n_rows * ncores))
    return max(1, width)


def plan_blocks(m: int, size: int) -> list[Block]:
    """Cover positions ``0..m`` with consecutive blocks of width ``<= size``.

    Args:
        m: Number of addressed columns.
        size: Maximum block width.

    Returns:
        Ordered, gap-free, non-overlapping blocks; never empty.

    Raises:
        ValueError: If *m* or *size* is not positive.
    """
    if m <= 0:
        raise ValueError(f"Cannot plan blocks over {m} columns; need at least one.")
    if size <= 0:
        raise ValueError(f"Block size must be positive, got {size}.")
    return [Block(start, min(start + size, m)) for start in range(0, m, size)]


__all__ = ["Block", "block_size", "plan_blocks"]
