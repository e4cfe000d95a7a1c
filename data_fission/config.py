"""
Simulation Configuration
========================

Process-wide constants for the data fission Monte Carlo study and the
immutable `SimulationConfig` shared read-only by every trial.

Calibration Design
------------------
    n = 15 base rows, p = 20 Gaussian covariates, σ² = 1
    β nonzero on {0, 15, 16, 17} with values (1, 1, -1, 1)
    one artificially high-leverage row per configuration, γ ∈ LEVERAGE_GRID

The design is deliberately high-dimensional (p > n): selection happens on
a sample that cannot support OLS on all features.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from data_fission.exceptions import InvalidConfiguration


# =============================================================================
# CONSTANTS
# =============================================================================

N_DEFAULT: int = 15                  # Base sample size n
P_DEFAULT: int = 20                  # Covariate dimension p
SIGMA_SQ: float = 1.0                # Noise variance σ²
ALPHA: float = 0.1                   # CI miscoverage level α
K_FOLDS: int = 5                     # Cross-validation folds for the lasso
N_ALPHAS: int = 100                  # Length of the lasso penalty grid
ALPHA_EPS: float = 1e-3              # alpha_min / alpha_max on the grid
HOLDOUT_K: int = 2                   # Rows held out by the leave-k-out arm
TAU: float = 1.0                     # Fission noise scale τ
B_DEFAULT: int = 500                 # Monte Carlo repetitions per configuration
DEFAULT_SEED: int = 2024             # Batch seed

SIGNAL_INDICES: Tuple[int, ...] = (0, 15, 16, 17)
SIGNAL_VALUES: Tuple[float, ...] = (1.0, 1.0, -1.0, 1.0)

# Five leverage configurations; [] means no influential row
LEVERAGE_GRID: Tuple[List[float], ...] = ([], [2.0], [4.0], [6.0], [8.0])

ARMS: Tuple[str, ...] = ("masking", "full", "split", "mysplit", "loocv")


def make_beta(
    p: int = P_DEFAULT,
    indices: Sequence[int] = SIGNAL_INDICES,
    values: Sequence[float] = SIGNAL_VALUES,
) -> NDArray:
    """
    Sparse coefficient vector with `values` placed at `indices`.

    Raises
    ------
    InvalidConfiguration
        If the index/value lists differ in length or an index is out of range.
    """
    if len(indices) != len(values):
        raise InvalidConfiguration(
            f"indices and values must match in length, got {len(indices)} and {len(values)}"
        )
    beta = np.zeros(p)
    for j, v in zip(indices, values):
        if not 0 <= j < p:
            raise InvalidConfiguration(f"Signal index {j} out of range for p={p}")
        beta[j] = v
    return beta


def leverage_label(leverage: Sequence[float]) -> float:
    """Scalar key for a leverage configuration (0.0 when no row is added)."""
    return float(max(leverage)) if len(leverage) > 0 else 0.0


# =============================================================================
# SIMULATION CONFIGURATION
# =============================================================================

@dataclass(frozen=True, eq=False)
class SimulationConfig:
    """
    Immutable configuration for one experiment batch.

    Parameters
    ----------
    n : int, default 15
        Base sample size (before leverage rows are appended).
    p : int, default 20
        Number of covariates.
    beta : ndarray of shape (p,), optional
        True coefficients. Defaults to `make_beta(p)`.
    sigma_sq : float, default 1.0
        Noise variance σ².
    alpha : float, default 0.1
        Miscoverage level; intervals have level 1 - α.
    fold_count : int, default 5
        Folds for the cross-validated lasso.
    tau : float, default 1.0
        Fission noise scale: selection sees Y + τZ, inference Y - Z/τ.
    holdout_k : int, default 2
        Rows reserved for inference by the leave-k-out arm.
    n_alphas : int, default 100
        Number of penalty values on the lasso grid.
    fission_variance : {"known", "cr2"}, default "known"
        Variance used by the masking arm: the closed-form data fission
        variance with the known σ², or the CR2 sandwich.
    """
    n: int = N_DEFAULT
    p: int = P_DEFAULT
    beta: Optional[NDArray] = field(default=None, repr=False)
    sigma_sq: float = SIGMA_SQ
    alpha: float = ALPHA
    fold_count: int = K_FOLDS
    tau: float = TAU
    holdout_k: int = HOLDOUT_K
    n_alphas: int = N_ALPHAS
    fission_variance: str = "known"

    def __post_init__(self) -> None:
        if self.n < 1 or self.p < 1:
            raise InvalidConfiguration(f"n and p must be positive, got n={self.n}, p={self.p}")
        if self.beta is None:
            object.__setattr__(self, "beta", make_beta(self.p))
        beta = np.asarray(self.beta, dtype=float).copy()
        if beta.shape != (self.p,):
            raise InvalidConfiguration(f"beta must have shape ({self.p},), got {beta.shape}")
        beta.setflags(write=False)
        object.__setattr__(self, "beta", beta)

        if self.sigma_sq <= 0:
            raise InvalidConfiguration(f"sigma_sq must be positive, got {self.sigma_sq}")
        if not 0 < self.alpha < 1:
            raise InvalidConfiguration(f"alpha must be in (0, 1), got {self.alpha}")
        if self.fold_count < 2:
            raise InvalidConfiguration(f"fold_count must be at least 2, got {self.fold_count}")
        if self.tau <= 0:
            raise InvalidConfiguration(f"tau must be positive, got {self.tau}")
        if self.holdout_k < 1:
            raise InvalidConfiguration(f"holdout_k must be at least 1, got {self.holdout_k}")
        if self.fission_variance not in ("known", "cr2"):
            raise InvalidConfiguration(
                f"Unknown fission_variance: '{self.fission_variance}'. Choose from: known, cr2"
            )

    @property
    def sd(self) -> float:
        """Noise standard deviation σ."""
        return float(np.sqrt(self.sigma_sq))

    @property
    def true_support(self) -> frozenset:
        """Indices of the nonzero coefficients."""
        return frozenset(int(j) for j in np.flatnonzero(self.beta))

    @property
    def Sigma(self) -> NDArray:
        """Covariance descriptor σ²·I_p attached to every Dataset."""
        return self.sigma_sq * np.eye(self.p)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary for serialization."""
        return {
            "n": self.n,
            "p": self.p,
            "beta": self.beta.tolist(),
            "sigma_sq": self.sigma_sq,
            "alpha": self.alpha,
            "fold_count": self.fold_count,
            "tau": self.tau,
            "holdout_k": self.holdout_k,
            "n_alphas": self.n_alphas,
            "fission_variance": self.fission_variance,
        }


__all__ = [
    "N_DEFAULT",
    "P_DEFAULT",
    "SIGMA_SQ",
    "ALPHA",
    "K_FOLDS",
    "N_ALPHAS",
    "ALPHA_EPS",
    "HOLDOUT_K",
    "TAU",
    "B_DEFAULT",
    "DEFAULT_SEED",
    "SIGNAL_INDICES",
    "SIGNAL_VALUES",
    "LEVERAGE_GRID",
    "ARMS",
    "make_beta",
    "leverage_label",
    "SimulationConfig",
]
