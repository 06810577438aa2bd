"""Partition dispatch: run one task per contiguous column partition.

The addressed columns are cut into ``ncores`` contiguous partitions
(:func:`cut_by_size`) and a task function is applied to each partition
through an *execution strategy* chosen once per call
(:func:`select_strategy`):

* :class:`SequentialStrategy` — tasks run one after another on the
  calling thread.  Used when ``ncores == 1``; no pool is created.
* :class:`PoolStrategy` — tasks are submitted to a ``joblib.Parallel``
  pool with one worker per partition.  ``prefer="threads"`` (the
  default) shares the reader and covariates without copying; NumPy's
  LAPACK/BLAS calls release the GIL, so threads overlap on multi-core
  hardware.  ``prefer="processes"`` runs loky workers; file-backed
  matrices re-attach from their path on unpickle, so each worker reads
  through its own read-only view.

Nested parallelism
~~~~~~~~~~~~~~~~~~
BLAS/OpenMP thread pools are limited to one thread with
``threadpoolctl.threadpool_limits`` while partitions run, then
restored.  Thread pools share one set of BLAS pools, so the limit wraps
the whole pool run; process workers each apply it around their task.
Without the limit, ``ncores`` workers each spawning ``ncores`` BLAS
threads oversubscribe the host quadratically.

Ordering and failure
~~~~~~~~~~~~~~~~~~~~
Results come back in partition order regardless of completion order.
A task that raises aborts the whole dispatch with
:class:`PartitionError`, chained to the original exception: results
from the sibling partitions are discarded because a partial table is
not a meaningful answer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import numpy as np
from joblib import Parallel, delayed
from threadpoolctl import threadpool_limits

logger = logging.getLogger(__name__)

T = TypeVar("T")

_VALID_PREFER = ("threads", "processes")


class PartitionError(RuntimeError):
    """A partition task failed; the whole dispatch is abandoned.

    Attributes:
        partition: Index of the failed partition.
        columns: The ``range`` of addressed positions it covered.
    """

    def __init__(self, partition: int, columns: range, message: str) -> None:
        super().__init__(partition, columns, message)
        self.partition = partition
        self.columns = columns
        self.message = message

    def __str__(self) -> str:
        return (
            f"Partition {self.partition} (positions {self.columns.start}.."
            f"{self.columns.stop - 1}) failed: {self.message}"
        )


def cut_by_size(m: int, nb: int) -> list[range]:
    """Split ``range(m)`` into *nb* contiguous parts of near-equal size.

    Part ``i`` ends at ``round((i + 1) * m / nb)``.  *nb* is clamped to
    *m* so that no part is empty.

    Args:
        m: Number of positions to split.
        nb: Requested number of parts.

    Returns:
        Ordered list of ``range`` objects covering ``0..m`` exactly.
    """
    if m <= 0:
        raise ValueError(f"Cannot partition {m} columns; need at least one.")
    if nb <= 0:
        raise ValueError(f"Number of partitions must be positive, got {nb}.")
    nb = min(nb, m)
    upper = np.round(np.arange(1, nb + 1) * (m / nb)).astype(int)
    upper[-1] = m
    lower = np.concatenate([[0], upper[:-1]])
    return [range(int(lo), int(hi)) for lo, hi in zip(lower, upper, strict=True)]


def _run_task(
    fn: Callable[[range], T],
    index: int,
    part: range,
    limit_threads: bool,
) -> T:
    """Execute one partition task, translating failures to PartitionError."""
    try:
        if limit_threads:
            with threadpool_limits(limits=1):
                return fn(part)
        return fn(part)
    except PartitionError:
        raise
    except Exception as exc:
        raise PartitionError(index, part, f"{type(exc).__name__}: {exc}") from exc


class ExecutionStrategy(Protocol):
    """How partition tasks are executed."""

    @property
    def name(self) -> str: ...

    def map(self, fn: Callable[[range], T], parts: Sequence[range]) -> list[T]:
        """Apply *fn* to every partition; results in partition order."""
        ...


@dataclass(frozen=True)
class SequentialStrategy:
    """Run every partition on the calling thread."""

    @property
    def name(self) -> str:
        return "sequential"

    def map(self, fn: Callable[[range], T], parts: Sequence[range]) -> list[T]:
        return [_run_task(fn, i, part, limit_threads=False) for i, part in enumerate(parts)]


@dataclass(frozen=True)
class PoolStrategy:
    """Run partitions on a joblib worker pool, one worker per partition.

    Attributes:
        n_jobs: Pool size.
        prefer: ``"threads"`` or ``"processes"``.
    """

    n_jobs: int
    prefer: str = "threads"

    def __post_init__(self) -> None:
        if self.prefer not in _VALID_PREFER:
            raise ValueError(
                f"Unknown execution preference {self.prefer!r}. "
                f"Choose from: {list(_VALID_PREFER)}"
            )

    @property
    def name(self) -> str:
        return f"pool[{self.prefer}, n_jobs={self.n_jobs}]"

    def map(self, fn: Callable[[range], T], parts: Sequence[range]) -> list[T]:
        if self.prefer == "threads":
            # Thread workers share the process-wide BLAS pools; limit once
            # around the whole pool.
            with threadpool_limits(limits=1):
                return self._map(fn, parts, limit_in_worker=False)
        return self._map(fn, parts, limit_in_worker=True)

    def _map(
        self, fn: Callable[[range], T], parts: Sequence[range], limit_in_worker: bool
    ) -> list[T]:
        # Context-managed so the workers are released before returning.
        with Parallel(n_jobs=self.n_jobs, prefer=self.prefer) as parallel:
            results = parallel(
                delayed(_run_task)(fn, i, part, limit_in_worker)
                for i, part in enumerate(parts)
            )
        return list(results)


def select_strategy(ncores: int, prefer: str = "threads") -> ExecutionStrategy:
    """Pick the execution strategy for a call.

    Args:
        ncores: Number of partitions / workers.
        prefer: Pool flavour when ``ncores > 1``.

    Returns:
        :class:`SequentialStrategy` for one core, otherwise a
        :class:`PoolStrategy` of size *ncores*.
    """
    if prefer not in _VALID_PREFER:
        raise ValueError(
            f"Unknown execution preference {prefer!r}. Choose from: {list(_VALID_PREFER)}"
        )
    if ncores == 1:
        return SequentialStrategy()
    return PoolStrategy(n_jobs=ncores, prefer=prefer)


class PartitionDispatcher:
    """Partition ``m`` addressed columns and run a task on each part.

    Attributes:
        ncores: Requested number of partitions.
        strategy: The execution strategy used by :meth:`run`.
    """

    def __init__(self, ncores: int = 1, prefer: str = "threads") -> None:
        self.ncores = ncores
        self.strategy: ExecutionStrategy = select_strategy(ncores, prefer)

    def partitions(self, m: int) -> list[range]:
        return cut_by_size(m, self.ncores)

    def run(self, fn: Callable[[range], T], m: int) -> list[T]:
        """Apply *fn* to each partition of ``range(m)``.

        Args:
            fn: Task taking a ``range`` of addressed positions.  Must be
                picklable for process pools (a module-level function or
                a ``functools.partial`` of one).
            m: Number of addressed columns.

        Returns:
            Per-partition results, in partition order.

        Raises:
            PartitionError: If any task raised.
        """
        parts = self.partitions(m)
        logger.debug(
            "Dispatching %d columns as %d partition(s) via %s",
            m, len(parts), self.strategy.name,
        )
        return self.strategy.map(fn, parts)


def concat_in_order(chunks: Sequence[Any], axis: int = 0) -> np.ndarray:
    """Concatenate per-partition arrays in partition order."""
    return np.concatenate([np.asarray(c) for c in chunks], axis=axis)


__all__ = [
    "ExecutionStrategy",
    "PartitionDispatcher",
    "PartitionError",
    "PoolStrategy",
    "SequentialStrategy",
    "concat_in_order",
    "cut_by_size",
    "select_strategy",
]
