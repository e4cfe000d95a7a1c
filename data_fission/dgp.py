"""
Data Generating Process for the Data Fission Simulations.

Theoretical Foundation
----------------------
The regression model is the Gaussian linear model
    Y = Xβ + ε,    ε ~ N(0, σ²I),    X_i ~ N(0, Σ_X)

with Σ_X = I_p in the calibration design. On top of the n base rows, one
extra row is appended for every multiplier γ:
    x_lev = γ · (max_i |X_{i1}|, ..., max_i |X_{ip}|)

so that the row sits outside the bulk of the design in every coordinate and
its leverage is controlled by γ alone once the base rows are drawn.

Projection Target
-----------------
When the selected model M omits active features the inferential target is
the population projection
    β*(M) = β_M + Σ_{M,M}⁻¹ Σ_{M,Mᶜ} β_{Mᶜ}
which reduces to β_M whenever the covariates are independent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from data_fission.config import SIGMA_SQ, make_beta
from data_fission.exceptions import InvalidConfiguration, NumericalFailure


# =============================================================================
# DATASET CONTAINER
# =============================================================================

@dataclass(frozen=True, eq=False)
class Dataset:
    """
    One synthetic draw shared by all arms of a trial.

    Attributes
    ----------
    X : ndarray of shape (n_true, p)
        Design matrix; the last `len(leverage)` rows are the leverage rows.
    Y : ndarray of shape (n_true,)
        Response.
    cluster : ndarray of shape (n_true,)
        Cluster labels, one cluster per observation.
    Sigma : ndarray of shape (p, p)
        Covariance descriptor used for the projection target.
    sd : float
        Noise standard deviation σ.
    n_base : int
        Number of randomly drawn rows before the leverage rows.
    leverage : tuple of float
        Multipliers γ used to build the appended rows.
    """
    X: NDArray
    Y: NDArray
    cluster: NDArray
    Sigma: NDArray
    sd: float
    n_base: int
    leverage: Tuple[float, ...] = field(default=())

    @property
    def n_true(self) -> int:
        """Total number of rows including leverage rows."""
        return self.X.shape[0]

    @property
    def p(self) -> int:
        """Number of covariates."""
        return self.X.shape[1]


# =============================================================================
# GENERATOR
# =============================================================================

def leverage_rows(X_base: NDArray, leverage: Sequence[float]) -> NDArray:
    """
    Rows γ · max_i |X_i| (coordinatewise) for every γ in `leverage`.

    Returns an array of shape (len(leverage), p).
    """
    col_max = np.max(np.abs(X_base), axis=0)
    return np.array([g * col_max for g in leverage]).reshape(len(leverage), X_base.shape[1])


def generate_data(
    n: int,
    p: int,
    beta: NDArray,
    leverage: Sequence[float] = (),
    sd: float = np.sqrt(SIGMA_SQ),
    rng: Optional[np.random.Generator] = None,
    Sigma: Optional[NDArray] = None,
    X_cov: Optional[NDArray] = None,
) -> Dataset:
    """
    Generate one Dataset with optional high-leverage rows.

    Parameters
    ----------
    n : int
        Number of base rows.
    p : int
        Number of covariates.
    beta : ndarray of shape (p,)
        True coefficients.
    leverage : sequence of float, default ()
        One appended row per multiplier γ.
    sd : float, default 1.0
        Noise standard deviation σ.
    rng : numpy Generator, optional
        Source of randomness. A fresh unseeded generator if None.
    Sigma : ndarray of shape (p, p), optional
        Covariance descriptor stored on the Dataset. Defaults to σ²·I_p.
    X_cov : ndarray of shape (p, p), optional
        Covariance of the base rows. Standard Gaussian rows if None.

    Returns
    -------
    Dataset
    """
    beta = np.asarray(beta, dtype=float)
    if n < 1:
        raise InvalidConfiguration(f"n must be positive, got {n}")
    if beta.shape != (p,):
        raise InvalidConfiguration(f"beta must have shape ({p},), got {beta.shape}")
    if rng is None:
        rng = np.random.default_rng()

    if X_cov is None:
        X_base = rng.standard_normal((n, p))
    else:
        X_base = rng.multivariate_normal(np.zeros(p), X_cov, size=n)

    leverage = tuple(float(g) for g in leverage)
    X = np.vstack([X_base, leverage_rows(X_base, leverage)])
    n_true = X.shape[0]

    eps = rng.normal(0.0, sd, size=n_true)
    Y = X @ beta + eps

    if Sigma is None:
        Sigma = sd ** 2 * np.eye(p)

    return Dataset(
        X=X,
        Y=Y,
        cluster=np.arange(n_true),
        Sigma=np.asarray(Sigma, dtype=float),
        sd=float(sd),
        n_base=n,
        leverage=leverage,
    )


# =============================================================================
# POPULATION QUANTITIES
# =============================================================================

def projected_target(
    beta: NDArray,
    Sigma: NDArray,
    selected: Sequence[int],
) -> NDArray:
    """
    Projection coefficients β*(M) = β_M + Σ_{M,M}⁻¹ Σ_{M,Mᶜ} β_{Mᶜ}.

    Parameters
    ----------
    beta : ndarray of shape (p,)
        True coefficients.
    Sigma : ndarray of shape (p, p)
        Covariate covariance descriptor.
    selected : sequence of int
        Selected feature indices M, in the order the result should follow.

    Returns
    -------
    ndarray of shape (|M|,)
    """
    beta = np.asarray(beta, dtype=float)
    M = np.asarray(selected, dtype=int)
    if M.size == 0:
        return np.empty(0)
    Mc = np.setdiff1d(np.arange(beta.size), M)

    S_MM = Sigma[np.ix_(M, M)]
    S_MMc = Sigma[np.ix_(M, Mc)]
    try:
        adjustment = np.linalg.solve(S_MM, S_MMc @ beta[Mc])
    except np.linalg.LinAlgError as exc:
        raise NumericalFailure(f"Sigma restricted to {M.tolist()} is singular") from exc
    return beta[M] + adjustment


def leverage_scores(X: NDArray) -> NDArray:
    """
    Diagonal of the hat matrix of X with an intercept column.

    Uses the pseudo-inverse so it is defined when p ≥ n as well.
    """
    Z = np.column_stack([np.ones(X.shape[0]), X])
    H = Z @ np.linalg.pinv(Z)
    return np.clip(np.diag(H), 0.0, 1.0)


__all__ = [
    "Dataset",
    "generate_data",
    "leverage_rows",
    "projected_target",
    "leverage_scores",
    "make_beta",
]
