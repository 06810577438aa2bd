"""Tests for the display module."""

import numpy as np

from blockstats._results import LogisticRegressionResult
from blockstats.display import _fmt_num, _fmt_p, print_regression_table
from blockstats.fallback import FitStatus, status_array


def _result(n=3):
    status = status_array([FitStatus.IRLS, FitStatus.GLM, FitStatus.UNRESOLVED][:n])
    return LogisticRegressionResult(
        columns=np.array([10, 20, 30][:n]),
        estimate=np.array([0.5, -1.25, np.nan][:n]),
        std_error=np.array([0.1, 0.2, np.nan][:n]),
        n_iter=np.array([4.0, np.nan, np.nan][:n]),
        z_score=np.array([5.0, -6.25, np.nan][:n]),
        p_value=np.array([5.7e-7, 4.1e-10, np.nan][:n]),
        status=status,
        n_observations=500,
        n_covariates=2,
        tol=1e-8,
        maxiter=20,
        ncores=1,
        strategy="sequential",
    )


class TestFormatting:
    def test_small_p_scientific(self):
        assert _fmt_p(1.5e-7) == "1.50e-07"

    def test_regular_p(self):
        assert _fmt_p(0.04321) == "0.0432"

    def test_nan(self):
        assert _fmt_p(float("nan")) == "N/A"
        assert _fmt_num(float("nan")).strip() == "N/A"


class TestPrintRegressionTable:
    def test_prints_header_and_rows(self, capsys):
        print_regression_table(_result())
        out = capsys.readouterr().out
        assert "Column-wise Logistic Regression" in out
        assert "No. Observations:" in out
        assert "500" in out
        assert "sequential" in out
        assert "unresolved" in out

    def test_sorted_by_p_value_nan_last(self, capsys):
        print_regression_table(_result())
        lines = capsys.readouterr().out.splitlines()
        body = [ln for ln in lines if ln[:2] in ("10", "20", "30")]
        assert [ln.split()[0] for ln in body] == ["20", "10", "30"]

    def test_missing_iterations_shown_as_dash(self, capsys):
        print_regression_table(_result(2))
        out = capsys.readouterr().out
        row = next(ln for ln in out.splitlines() if ln.startswith("20"))
        assert " - " in row
        assert row.rstrip().endswith("glm")

    def test_top_truncates(self, capsys):
        print_regression_table(_result(), top=1)
        out = capsys.readouterr().out
        assert "... 2 more column(s)" in out

    def test_custom_title(self, capsys):
        print_regression_table(_result(), title="Screening")
        assert "Screening" in capsys.readouterr().out
