"""blockstats — Out-of-core cross-products and column-wise regression.

Computes matrix cross-products and per-column logistic regressions on
matrices too large for memory.  The matrix is stored column-major on
disk and streamed in memory-bounded column blocks; column partitions
can be processed on a pool of worker threads or processes.

Public API:
    .. autosummary::
        cprod
        cprod_vec
        prod_mat
        crossprod_self
        univariate_logistic
        print_regression_table
        FileBackedMatrix
        ArrayMatrix
        BlockReader
        as_reader
        Block
        block_size
        plan_blocks
        PartitionDispatcher
        PartitionError
        cut_by_size
        FitStatus
        LogisticRegressionResult
        Options
        get_options
        set_options
        reset_options
        options_context
"""

from ._config import Options, get_options, options_context, reset_options, set_options
from ._results import LogisticRegressionResult
from .blocks import Block, block_size, plan_blocks
from .crossprod import cprod, cprod_vec, crossprod_self, prod_mat
from .dispatch import PartitionDispatcher, PartitionError, cut_by_size
from .display import print_regression_table
from .fallback import FitStatus
from .matrix import ArrayMatrix, BlockReader, FileBackedMatrix, as_reader
from .univariate import univariate_logistic

__all__ = [
    "ArrayMatrix",
    "Block",
    "BlockReader",
    "FileBackedMatrix",
    "FitStatus",
    "LogisticRegressionResult",
    "Options",
    "PartitionDispatcher",
    "PartitionError",
    "as_reader",
    "block_size",
    "cprod",
    "cprod_vec",
    "crossprod_self",
    "cut_by_size",
    "get_options",
    "options_context",
    "plan_blocks",
    "print_regression_table",
    "prod_mat",
    "reset_options",
    "set_options",
    "univariate_logistic",
]

__version__ = "0.1.0"
