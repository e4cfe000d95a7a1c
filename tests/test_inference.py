import numpy as np
import pytest
from scipy import stats

from data_fission.exceptions import NumericalFailure
from data_fission.inference import cr2_vcov, fission_infer, infer, ols_fit, resolve_clusters


@pytest.fixture
def regression(rng):
    n = 40
    X = rng.standard_normal((n, 3))
    Y = 1.0 + X @ np.array([2.0, 0.0, -1.0]) + rng.standard_normal(n) * (1 + np.abs(X[:, 0]))
    return X, Y


def test_empty_selection_returns_none(regression):
    X, Y = regression
    assert infer(X[:, []], Y) is None
    assert fission_infer(X[:, []], Y, sd=1.0) is None


def test_interval_shape_and_order(regression):
    X, Y = regression
    result = infer(X[:, [0, 2]], Y, level=0.9)
    assert result.ci.shape == (2, 2)
    assert np.all(result.ci_lower <= result.ci_upper)
    assert result.estimate.shape == (2,)


def test_ols_estimates_match_lstsq(regression):
    X, Y = regression
    coef, Z, resid, _ = ols_fit(X, Y)
    expected, *_ = np.linalg.lstsq(Z, Y, rcond=None)
    np.testing.assert_allclose(coef, expected)
    np.testing.assert_allclose(Z.T @ resid, 0.0, atol=1e-8)


def test_cr2_with_singleton_clusters_is_hc2(regression):
    X, Y = regression
    coef, Z, resid, bread = ols_fit(X, Y)
    h = np.einsum("ij,jk,ik->i", Z, bread, Z)
    meat = (Z * (resid ** 2 / (1 - h))[:, None]).T @ Z
    expected = bread @ meat @ bread

    vcov = cr2_vcov(Z, resid, np.arange(len(Y)), bread=bread)
    np.testing.assert_allclose(vcov, expected, rtol=1e-8)


def test_cr2_clustered_is_symmetric_psd(regression):
    X, Y = regression
    _, Z, resid, bread = ols_fit(X, Y)
    cluster = np.repeat(np.arange(10), 4)
    vcov = cr2_vcov(Z, resid, cluster, bread=bread)
    np.testing.assert_allclose(vcov, vcov.T, atol=1e-12)
    assert np.all(np.linalg.eigvalsh(vcov) >= -1e-10)


def test_normal_quantile_is_used(regression):
    X, Y = regression
    result = infer(X[:, [0]], Y, level=0.95)
    half_width = (result.ci_upper - result.ci_lower) / 2
    np.testing.assert_allclose(half_width / result.se, stats.norm.ppf(0.975))


def test_stale_clusters_are_redefined(regression):
    X, Y = regression
    stale = np.repeat(np.arange(10), 5)  # labels from a 50-row sample
    a = infer(X[:, [0, 1]], Y, cluster=stale)
    b = infer(X[:, [0, 1]], Y, cluster=None)
    np.testing.assert_allclose(a.ci, b.ci)
    np.testing.assert_array_equal(resolve_clusters(stale, 40), np.arange(40))


def test_rank_deficient_design_raises(regression):
    X, Y = regression
    collinear = np.column_stack([X[:, 0], 2 * X[:, 0]])
    with pytest.raises(NumericalFailure):
        infer(collinear, Y)


def test_more_parameters_than_rows_raises(rng):
    X = rng.standard_normal((2, 3))
    with pytest.raises(NumericalFailure):
        infer(X, rng.standard_normal(2))


@pytest.mark.parametrize("n_rows, k", [(2, 1), (3, 2)])
def test_saturated_fit_raises(rng, n_rows, k):
    # As many rows as parameters: zero residuals, zero-width intervals
    X = rng.standard_normal((n_rows, k))
    Y = rng.standard_normal(n_rows)
    with pytest.raises(NumericalFailure, match="residual degrees of freedom"):
        infer(X, Y)


def test_zero_cr2_variance_raises(monkeypatch, regression):
    import data_fission.inference as inference_module

    X, Y = regression
    monkeypatch.setattr(inference_module, "cr2_vcov", lambda Z, *a, **k: np.zeros((Z.shape[1],) * 2))
    with pytest.raises(NumericalFailure, match="zero"):
        infer(X[:, [0]], Y)


def test_saturated_fission_fit_keeps_known_variance(rng):
    X = rng.standard_normal((2, 1))
    result = fission_infer(X, rng.standard_normal(2), sd=1.0)
    assert np.all(result.ci_length > 0)


@pytest.mark.parametrize("tau", [0.5, 1.0, 2.0])
def test_fission_variance_formula(regression, tau):
    X, Y = regression
    sd = 1.5
    result = fission_infer(X[:, [0, 2]], Y, sd=sd, tau=tau, level=0.9)
    Z = np.column_stack([np.ones(len(Y)), X[:, [0, 2]]])
    expected_var = (1 + tau ** -2) * sd ** 2 * np.diag(np.linalg.inv(Z.T @ Z))[1:]
    np.testing.assert_allclose(result.se ** 2, expected_var)
    assert result.method == "fission"


def test_fission_general_noise_covariance_matches_scaled_identity(regression):
    X, Y = regression
    a = fission_infer(X[:, [1]], Y, sd=2.0)
    b = fission_infer(X[:, [1]], Y, sd=0.0, noise_cov=4.0 * np.eye(len(Y)))
    np.testing.assert_allclose(a.ci, b.ci)


def test_covers(regression):
    X, Y = regression
    result = infer(X[:, [0]], Y)
    mid = result.estimate
    far = result.ci_upper + 1.0
    assert result.covers(mid).all()
    assert not result.covers(far).any()
