"""
Lasso Feature Selection with the One-Standard-Error Rule.

Algorithm
---------
1. Build a geometric penalty grid from alpha_max = max_j |X̃_jᵀỹ| / n
   (centered data, the smallest penalty at which every coefficient is zero)
   down to alpha_max · eps.
2. Run K-fold cross-validation over the grid (sklearn `LassoCV`).
3. Let CV(α) be the mean held-out MSE and SE(α) the standard error of the
   fold MSEs. With α_min = argmin CV(α), pick
       α_1se = max{α : CV(α) ≤ CV(α_min) + SE(α_min)}
   i.e. the sparsest model whose error is within one standard error.
4. Refit the lasso at α_1se on all rows and return the nonzero coefficients.

An empty selection is a legitimate outcome and is returned as an empty
tuple; callers decide how to treat it.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso, LassoCV
from sklearn.model_selection import KFold

from data_fission.config import ALPHA_EPS, K_FOLDS, N_ALPHAS
from data_fission.exceptions import InvalidConfiguration


MAX_ITER: int = 10000


# =============================================================================
# SELECTION PATH CONTAINER
# =============================================================================

@dataclass(frozen=True, eq=False)
class SelectionPath:
    """
    Cross-validation summary behind one selection.

    Attributes
    ----------
    alphas : ndarray
        Penalty grid, largest (sparsest) first.
    cv_mean, cv_se : ndarray
        Mean and standard error of the fold MSEs at each penalty.
    alpha_min : float
        Penalty with the smallest mean CV error.
    alpha_1se : float
        Penalty chosen by the one-standard-error rule.
    selected : tuple of int
        Indices of the nonzero coefficients of the refit at alpha_1se.
    """
    alphas: NDArray
    cv_mean: NDArray
    cv_se: NDArray
    alpha_min: float
    alpha_1se: float
    selected: Tuple[int, ...]


# =============================================================================
# ONE-STANDARD-ERROR RULE
# =============================================================================

def alpha_grid(
    X: NDArray,
    Y: NDArray,
    n_alphas: int = N_ALPHAS,
    eps: float = ALPHA_EPS,
) -> NDArray:
    """Geometric penalty grid from alpha_max down to eps · alpha_max."""
    Xc = X - X.mean(axis=0)
    yc = Y - Y.mean()
    alpha_max = np.max(np.abs(Xc.T @ yc)) / X.shape[0]
    if alpha_max <= 0:
        return np.empty(0)
    return np.geomspace(alpha_max, alpha_max * eps, num=n_alphas)


def one_se_alpha(alphas: NDArray, mse_path: NDArray) -> Tuple[float, float]:
    """
    Apply the one-standard-error rule to a cross-validation error path.

    Parameters
    ----------
    alphas : ndarray of shape (n_alphas,)
        Penalty values (any order).
    mse_path : ndarray of shape (n_alphas, n_folds)
        Held-out MSE for each penalty and fold.

    Returns
    -------
    alpha_1se : float
        Largest penalty whose mean error is within one SE of the minimum.
    alpha_min : float
        Penalty with the smallest mean error.
    """
    alphas = np.asarray(alphas, dtype=float)
    mse_path = np.asarray(mse_path, dtype=float)
    order = np.argsort(alphas)[::-1]
    alphas = alphas[order]
    mse_path = mse_path[order]

    n_folds = mse_path.shape[1]
    cv_mean = mse_path.mean(axis=1)
    i_min = int(np.argmin(cv_mean))
    se_min = mse_path[i_min].std(ddof=1) / np.sqrt(n_folds)

    # Searched from the largest penalty; i_min itself always qualifies
    within = np.flatnonzero(cv_mean <= cv_mean[i_min] + se_min)
    i_1se = int(within[0])
    return float(alphas[i_1se]), float(alphas[i_min])


# =============================================================================
# SELECTION PROCEDURE
# =============================================================================

def lasso_one_se_path(
    X: NDArray,
    Y: NDArray,
    fold_count: int = K_FOLDS,
    rng: Optional[np.random.Generator] = None,
    n_alphas: int = N_ALPHAS,
) -> SelectionPath:
    """
    Cross-validated lasso with the one-standard-error rule.

    Parameters
    ----------
    X : ndarray of shape (n, p)
        Design matrix.
    Y : ndarray of shape (n,)
        Response used for selection.
    fold_count : int, default 5
        Number of CV folds; must satisfy 2 ≤ fold_count ≤ n.
    rng : numpy Generator, optional
        Controls the fold shuffle.
    n_alphas : int, default 100
        Length of the penalty grid.

    Returns
    -------
    SelectionPath

    Raises
    ------
    InvalidConfiguration
        If fold_count is below 2 or exceeds the number of rows.
    """
    X = np.asarray(X, dtype=float)
    Y = np.asarray(Y, dtype=float).ravel()
    n = X.shape[0]

    if fold_count < 2 or fold_count > n:
        raise InvalidConfiguration(
            f"fold_count={fold_count} is not valid for {n} rows"
        )
    if Y.shape[0] != n:
        raise InvalidConfiguration("X and Y must have the same number of rows")

    alphas = alpha_grid(X, Y, n_alphas=n_alphas)
    if alphas.size == 0:
        # Constant response: every penalty gives the null model
        return SelectionPath(
            alphas=alphas,
            cv_mean=np.empty(0),
            cv_se=np.empty(0),
            alpha_min=np.nan,
            alpha_1se=np.nan,
            selected=(),
        )

    if rng is None:
        rng = np.random.default_rng()
    folds = KFold(
        n_splits=fold_count,
        shuffle=True,
        random_state=int(rng.integers(2**31 - 1)),
    )

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        cv_model = LassoCV(alphas=alphas, cv=folds, max_iter=MAX_ITER)
        cv_model.fit(X, Y)

        alpha_1se, alpha_min = one_se_alpha(cv_model.alphas_, cv_model.mse_path_)

        model = Lasso(alpha=alpha_1se, max_iter=MAX_ITER)
        model.fit(X, Y)

    order = np.argsort(cv_model.alphas_)[::-1]
    mse_path = cv_model.mse_path_[order]
    selected = tuple(int(j) for j in np.flatnonzero(model.coef_))

    return SelectionPath(
        alphas=np.asarray(cv_model.alphas_)[order],
        cv_mean=mse_path.mean(axis=1),
        cv_se=mse_path.std(axis=1, ddof=1) / np.sqrt(fold_count),
        alpha_min=alpha_min,
        alpha_1se=alpha_1se,
        selected=selected,
    )


def select_features(
    X: NDArray,
    Y: NDArray,
    fold_count: int = K_FOLDS,
    rng: Optional[np.random.Generator] = None,
    n_alphas: int = N_ALPHAS,
) -> Tuple[int, ...]:
    """
    Indices selected by the one-SE cross-validated lasso.

    Returns an empty tuple when every coefficient is zero.
    See `lasso_one_se_path` for parameters.
    """
    return lasso_one_se_path(X, Y, fold_count=fold_count, rng=rng, n_alphas=n_alphas).selected


__all__ = [
    "SelectionPath",
    "alpha_grid",
    "one_se_alpha",
    "lasso_one_se_path",
    "select_features",
]
