"""Tests for the column-wise IRLS solver."""

from __future__ import annotations

import numpy as np
import pytest
import statsmodels.api as sm

from blockstats.irls import (
    IRLSStatus,
    irls_column,
    irls_columns,
    null_model_start,
)
from blockstats.matrix import ArrayMatrix

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_data(n=400, m=6, k=2, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.standard_normal((n, m))
    cov = rng.standard_normal((n, k))
    logits = 0.8 * X[:, 0] + 0.2
    if k:
        logits = logits - 0.5 * cov[:, 0]
    y = rng.binomial(1, 1 / (1 + np.exp(-logits))).astype(np.float64)
    return X, y, cov


def _statsmodels_slope(y, x, cov):
    exog = np.column_stack([x, np.ones(len(y)), cov])
    res = sm.GLM(y, exog, family=sm.families.Binomial()).fit()
    return res.params[0], res.bse[0]


class TestNullModelStart:
    def test_working_quantities(self):
        _, y, cov = _make_data()
        start = null_model_start(y, cov)
        assert start.design.shape == (len(y), 2 + cov.shape[1])
        np.testing.assert_array_equal(start.design[:, 0], 0.0)
        np.testing.assert_array_equal(start.design[:, 1], 1.0)
        np.testing.assert_array_equal(start.covariates, cov)
        assert np.all(start.w0 > 0) and np.all(start.w0 <= 0.25)

    def test_intercept_only_start(self):
        y = np.array([0, 1, 1, 0, 1, 1, 1, 0], dtype=float)
        start = null_model_start(y, np.empty((8, 0)))
        np.testing.assert_allclose(start.w0, 5 / 8 * 3 / 8)


class TestIRLSColumn:
    def test_matches_statsmodels(self):
        X, y, cov = _make_data()
        start = null_model_start(y, cov)
        for j in range(X.shape[1]):
            fit = irls_column(X[:, j], start)
            assert fit.status is IRLSStatus.CONVERGED
            est, se = _statsmodels_slope(y, X[:, j], cov)
            np.testing.assert_allclose(fit.estimate, est, rtol=1e-5, atol=1e-7)
            np.testing.assert_allclose(fit.std_error, se, rtol=1e-4)

    def test_without_covariates(self):
        X, y, _ = _make_data(k=0)
        start = null_model_start(y, np.empty((len(y), 0)))
        fit = irls_column(X[:, 0], start)
        est, _ = _statsmodels_slope(y, X[:, 0], np.empty((len(y), 0)))
        np.testing.assert_allclose(fit.estimate, est, rtol=1e-5)

    def test_reports_iteration_count(self):
        X, y, cov = _make_data()
        fit = irls_column(X[:, 0], null_model_start(y, cov))
        assert 1 <= fit.n_iter < 20

    def test_budget_reached_is_exhausted(self):
        X, y, cov = _make_data()
        fit = irls_column(X[:, 0], null_model_start(y, cov), maxiter=2)
        assert fit.status is IRLSStatus.EXHAUSTED
        assert fit.n_iter == 2
        assert np.isnan(fit.estimate) and np.isnan(fit.std_error)

    def test_constant_column_is_exhausted(self):
        _, y, cov = _make_data()
        # Collinear with the intercept: the normal matrix is singular.
        fit = irls_column(np.ones(len(y)), null_model_start(y, cov))
        assert fit.status is IRLSStatus.EXHAUSTED

    def test_separating_column_is_exhausted(self):
        _, y, cov = _make_data()
        x = np.where(y > 0, 1.0, -1.0)
        fit = irls_column(x, null_model_start(y, cov), maxiter=20)
        assert fit.status is IRLSStatus.EXHAUSTED
        assert np.isnan(fit.estimate)


class TestIRLSColumns:
    @pytest.mark.parametrize("width", [1, 4, 100])
    def test_blockwise_matches_single_column(self, width):
        X, y, cov = _make_data()
        start = null_model_start(y, cov)
        cols = np.array([5, 0, 3])
        batch = irls_columns(ArrayMatrix(X), cols, None, start, 1e-8, 20, width)
        for k, j in enumerate(cols):
            fit = irls_column(X[:, j], start)
            assert batch.estimate[k] == fit.estimate
            assert batch.n_iter[k] == fit.n_iter
        assert batch.converged.all()

    def test_row_selection(self):
        X, y, cov = _make_data()
        rows = np.arange(0, 400, 2)
        start = null_model_start(y[rows], cov[rows])
        batch = irls_columns(ArrayMatrix(X), np.array([1]), rows, start, 1e-8, 20, 8)
        fit = irls_column(X[rows, 1], start)
        assert batch.estimate[0] == fit.estimate

    def test_exhausted_marked_not_converged(self):
        X, y, cov = _make_data()
        start = null_model_start(y, cov)
        batch = irls_columns(ArrayMatrix(X), np.arange(3), None, start, 1e-8, 1, 2)
        assert not batch.converged.any()
        np.testing.assert_array_equal(batch.n_iter, 1)
        assert np.isnan(batch.estimate).all()
