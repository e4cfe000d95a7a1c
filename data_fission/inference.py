"""
Post-Selection Inference for the Selected Linear Model.

Two interval constructions are provided for the OLS fit of a response on
the selected columns X_M (with intercept).

Cluster-Robust (CR2) Intervals
------------------------------
The Bell–McCaffrey bias-reduced sandwich
    V̂ = B (Σ_g Z_gᵀ A_g ê_g ê_gᵀ A_g Z_g) B,    B = (ZᵀZ)⁻¹
    A_g = (I − H_gg)^{-1/2},                   H_gg = Z_g B Z_gᵀ

corrects the leverage-driven downward bias of the plain sandwich. It is
used for every arm without an explicit fission noise scale.

Data Fission Intervals
----------------------
With f(Y) = Y + τZ used for selection and g(Y) = Y − Z/τ for inference,
Z ~ N(0, Σ), the estimator β̂(M) = (X_MᵀX_M)⁻¹X_Mᵀ g(Y) satisfies
    β̂(M) ~ N(β*(M), (1 + τ⁻²)(X_MᵀX_M)⁻¹ X_MᵀΣX_M (X_MᵀX_M)⁻¹)

Both constructions use the Normal quantile: β̂_k ± z_{α/2} √V̂_kk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from data_fission.config import ALPHA
from data_fission.exceptions import NumericalFailure


EIG_TOL: float = 1e-10


# =============================================================================
# RESULT CONTAINER
# =============================================================================

@dataclass(frozen=True, eq=False)
class InferenceResult:
    """
    Coefficient estimates and intervals for the selected columns.

    The intercept is fitted but not reported; row k of every array refers
    to column k of the restricted design.
    """
    estimate: NDArray
    se: NDArray
    ci: NDArray
    level: float
    method: str

    @property
    def ci_lower(self) -> NDArray:
        """Lower interval bounds."""
        return self.ci[:, 0]

    @property
    def ci_upper(self) -> NDArray:
        """Upper interval bounds."""
        return self.ci[:, 1]

    @property
    def ci_length(self) -> NDArray:
        """Length of each interval."""
        return self.ci[:, 1] - self.ci[:, 0]

    def covers(self, target: NDArray) -> NDArray:
        """Boolean array: does interval k contain target[k]?"""
        target = np.asarray(target, dtype=float)
        return (self.ci[:, 0] <= target) & (target <= self.ci[:, 1])


# =============================================================================
# OLS AND SANDWICH PIECES
# =============================================================================

def _with_intercept(X: NDArray) -> NDArray:
    return np.column_stack([np.ones(X.shape[0]), X])


def ols_fit(X_restricted: NDArray, Y: NDArray) -> Tuple[NDArray, NDArray, NDArray, NDArray]:
    """
    OLS of Y on [1, X_restricted].

    Returns
    -------
    coef : ndarray of shape (k + 1,)
        Intercept first.
    Z : ndarray of shape (n, k + 1)
        Design with intercept.
    resid : ndarray of shape (n,)
    bread : ndarray of shape (k + 1, k + 1)
        (ZᵀZ)⁻¹.

    Raises
    ------
    NumericalFailure
        If the design is rank deficient (collinear columns or fewer rows
        than parameters).
    """
    Z = _with_intercept(np.asarray(X_restricted, dtype=float))
    Y = np.asarray(Y, dtype=float).ravel()
    if Z.shape[0] < Z.shape[1] or np.linalg.matrix_rank(Z) < Z.shape[1]:
        raise NumericalFailure(
            f"Design with {Z.shape[1]} parameters is rank deficient on {Z.shape[0]} rows"
        )
    try:
        bread = np.linalg.inv(Z.T @ Z)
    except np.linalg.LinAlgError as exc:
        raise NumericalFailure("Z'Z is singular") from exc
    coef = bread @ (Z.T @ Y)
    resid = Y - Z @ coef
    return coef, Z, resid, bread


def _inv_sqrt_psd(M: NDArray) -> NDArray:
    """Symmetric (pseudo-)inverse square root; null directions map to zero."""
    vals, vecs = np.linalg.eigh((M + M.T) / 2)
    inv_sqrt = np.zeros_like(vals)
    keep = vals > EIG_TOL
    inv_sqrt[keep] = 1.0 / np.sqrt(vals[keep])
    return (vecs * inv_sqrt) @ vecs.T


def resolve_clusters(cluster: Optional[NDArray], n_rows: int) -> NDArray:
    """
    Cluster labels valid for `n_rows` observations.

    Labels carried over from a larger sample are replaced by one cluster
    per row.
    """
    if cluster is None:
        return np.arange(n_rows)
    cluster = np.asarray(cluster).ravel()
    if cluster.shape[0] != n_rows:
        return np.arange(n_rows)
    return cluster


def cr2_vcov(
    Z: NDArray,
    resid: NDArray,
    cluster: NDArray,
    bread: Optional[NDArray] = None,
) -> NDArray:
    """
    Bell–McCaffrey (CR2) cluster-robust covariance of the OLS coefficients.

    Parameters
    ----------
    Z : ndarray of shape (n, q)
        Full design including the intercept column.
    resid : ndarray of shape (n,)
        OLS residuals.
    cluster : ndarray of shape (n,)
        Cluster labels.
    bread : ndarray of shape (q, q), optional
        (ZᵀZ)⁻¹ if already computed.

    Returns
    -------
    ndarray of shape (q, q)
    """
    if bread is None:
        bread = np.linalg.inv(Z.T @ Z)
    q = Z.shape[1]
    meat = np.zeros((q, q))

    for g in np.unique(cluster):
        rows = cluster == g
        Z_g = Z[rows]
        H_gg = Z_g @ bread @ Z_g.T
        A_g = _inv_sqrt_psd(np.eye(Z_g.shape[0]) - H_gg)
        u_g = Z_g.T @ (A_g @ resid[rows])
        meat += np.outer(u_g, u_g)

    return bread @ meat @ bread


def _normal_intervals(
    estimate: NDArray,
    vcov: NDArray,
    level: float,
) -> Tuple[NDArray, NDArray]:
    variances = np.diag(vcov)
    if np.any(~np.isfinite(variances)):
        raise NumericalFailure("Non-finite coefficient variance")
    se = np.sqrt(np.clip(variances, 0.0, None))
    z = stats.norm.ppf(1 - (1 - level) / 2)
    ci = np.column_stack([estimate - z * se, estimate + z * se])
    return se, ci


# =============================================================================
# INFERENCE PROCEDURES
# =============================================================================

def infer(
    X_restricted: NDArray,
    Y: NDArray,
    cluster: Optional[NDArray] = None,
    level: float = 1 - ALPHA,
) -> Optional[InferenceResult]:
    """
    OLS on the selected columns with CR2 cluster-robust Normal intervals.

    Parameters
    ----------
    X_restricted : ndarray of shape (n, k)
        Design restricted to the selected columns.
    Y : ndarray of shape (n,)
        Response used for inference.
    cluster : ndarray of shape (n,), optional
        Cluster labels; one cluster per row if None or stale.
    level : float, default 0.9
        Confidence level 1 - α.

    Returns
    -------
    InferenceResult or None
        None when no column is selected.

    Raises
    ------
    NumericalFailure
        If the restricted design is rank deficient, leaves no residual
        degrees of freedom, or yields a zero variance.
    """
    X_restricted = np.asarray(X_restricted, dtype=float)
    if X_restricted.ndim == 1:
        X_restricted = X_restricted.reshape(-1, 1)
    if X_restricted.shape[1] == 0:
        return None

    coef, Z, resid, bread = ols_fit(X_restricted, Y)
    if Z.shape[0] <= Z.shape[1]:
        # Saturated fit: residuals vanish and the sandwich collapses to 0
        raise NumericalFailure(
            f"No residual degrees of freedom: {Z.shape[1]} parameters on {Z.shape[0]} rows"
        )
    cluster = resolve_clusters(cluster, Z.shape[0])
    vcov = cr2_vcov(Z, resid, cluster, bread=bread)
    if not np.any(np.diag(vcov)[1:] > 0):
        raise NumericalFailure("CR2 variance is zero for every coefficient")

    estimate = coef[1:]
    se, ci = _normal_intervals(estimate, vcov[1:, 1:], level)
    return InferenceResult(estimate=estimate, se=se, ci=ci, level=level, method="cr2")


def fission_infer(
    X_restricted: NDArray,
    gY: NDArray,
    sd: float,
    tau: float = 1.0,
    level: float = 1 - ALPHA,
    noise_cov: Optional[NDArray] = None,
) -> Optional[InferenceResult]:
    """
    Closed-form data fission intervals for the inference copy g(Y).

    Parameters
    ----------
    X_restricted : ndarray of shape (n, k)
        Design restricted to the selected columns.
    gY : ndarray of shape (n,)
        Inference copy Y − Z/τ.
    sd : float
        Noise standard deviation σ of the original response.
    tau : float, default 1.0
        Fission noise scale.
    level : float, default 0.9
        Confidence level 1 - α.
    noise_cov : ndarray of shape (n, n), optional
        Noise covariance Σ of Y; σ²·I if None.

    Returns
    -------
    InferenceResult or None
        None when no column is selected.
    """
    X_restricted = np.asarray(X_restricted, dtype=float)
    if X_restricted.ndim == 1:
        X_restricted = X_restricted.reshape(-1, 1)
    if X_restricted.shape[1] == 0:
        return None

    coef, Z, _, bread = ols_fit(X_restricted, gY)
    if noise_cov is None:
        sandwich = sd ** 2 * bread
    else:
        sandwich = bread @ Z.T @ noise_cov @ Z @ bread
    vcov = (1 + tau ** -2) * sandwich

    estimate = coef[1:]
    se, ci = _normal_intervals(estimate, vcov[1:, 1:], level)
    return InferenceResult(estimate=estimate, se=se, ci=ci, level=level, method="fission")


__all__ = [
    "InferenceResult",
    "ols_fit",
    "cr2_vcov",
    "resolve_clusters",
    "infer",
    "fission_infer",
]
