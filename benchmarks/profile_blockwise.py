"""Blockwise engine benchmark — cprod, crossprod_self and univariate_logistic.

Measures wall time for the three blockwise operations on a file-backed
matrix across block widths and worker counts.

Key questions this benchmark answers
-------------------------------------
1. How much does a small memory budget (narrow blocks) cost relative to
   reading everything at once?
2. Do thread pools scale on the IRLS path, where LAPACK releases the GIL?
3. When do process pools pay for their start-up cost?

Usage::

    python benchmarks/profile_blockwise.py          # full suite
    python benchmarks/profile_blockwise.py --quick  # reduced

Outputs:
    benchmarks/results/blockwise_profile.csv
"""

from __future__ import annotations

import argparse
import platform
import sys
import tempfile
import time
from pathlib import Path

import numpy as np
import pandas as pd

# Ensure the package is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from blockstats import (  # noqa: E402
    FileBackedMatrix,
    Options,
    cprod,
    crossprod_self,
    univariate_logistic,
)

# ====================================================================== #
#  Scenario definitions                                                   #
# ====================================================================== #

SCENARIOS: list[dict] = [
    {"name": "n1k_m2k", "n": 1_000, "m": 2_000},
    {"name": "n5k_m2k", "n": 5_000, "m": 2_000},
    {"name": "n2k_m10k", "n": 2_000, "m": 10_000},
]

QUICK_SCENARIOS: list[dict] = [
    {"name": "n500_m500", "n": 500, "m": 500},
]

BLOCK_SIZES = [16, 256, None]
EXECUTION = [(1, "threads"), (2, "threads"), (4, "threads"), (2, "processes")]


def _timed(fn, *args, **kwargs) -> float:
    t0 = time.perf_counter()
    fn(*args, **kwargs)
    return time.perf_counter() - t0


def run(scenarios: list[dict], workdir: Path) -> pd.DataFrame:
    rows = []
    opts = Options(ncores_max=max(nc for nc, _ in EXECUTION))
    for sc in scenarios:
        rng = np.random.default_rng(0)
        X = rng.standard_normal((sc["n"], sc["m"]))
        y = rng.binomial(1, 1 / (1 + np.exp(-X[:, 0])))
        A = rng.standard_normal((sc["n"], 4))
        fbm = FileBackedMatrix.from_array(X, workdir / f"{sc['name']}.npy")
        del X

        for bs in BLOCK_SIZES:
            for ncores, prefer in EXECUTION:
                kw = dict(block_size=bs, ncores=ncores, prefer=prefer, options=opts)
                record = {
                    "scenario": sc["name"],
                    "n": sc["n"],
                    "m": sc["m"],
                    "block_size": bs if bs is not None else "auto",
                    "ncores": ncores,
                    "prefer": prefer,
                    "cprod_s": _timed(cprod, fbm, A, **kw),
                    "crossprod_self_s": _timed(
                        crossprod_self, fbm, ind_col=np.arange(min(sc["m"], 1_000)), **kw
                    ),
                    "univariate_logistic_s": _timed(univariate_logistic, fbm, y, **kw),
                }
                rows.append(record)
                print(
                    f"{sc['name']:<12} bs={record['block_size']!s:<5} "
                    f"{prefer[:3]}x{ncores}  cprod={record['cprod_s']:.3f}s  "
                    f"self={record['crossprod_self_s']:.3f}s  "
                    f"logit={record['univariate_logistic_s']:.3f}s"
                )
    return pd.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--quick", action="store_true", help="Run the reduced suite.")
    args = parser.parse_args()

    print(f"Python {platform.python_version()} on {platform.machine()}")
    scenarios = QUICK_SCENARIOS if args.quick else SCENARIOS
    with tempfile.TemporaryDirectory(prefix="blockstats-bench-") as tmp:
        df = run(scenarios, Path(tmp))

    out = Path(__file__).resolve().parent / "results" / "blockwise_profile.csv"
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)
    print(f"\nWrote {out}")


if __name__ == "__main__":
    main()
