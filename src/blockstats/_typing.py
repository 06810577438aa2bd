"""Shared type aliases for the blockstats package."""

from collections.abc import Sequence

import numpy as np
import pandas as pd

# Array-like inputs accepted by the public API.
ArrayLike = np.ndarray | pd.DataFrame | pd.Series

# Row / column selections: 0-based positions, or None for "all".
IndexLike = np.ndarray | Sequence[int] | range | None
