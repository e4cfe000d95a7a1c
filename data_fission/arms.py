"""
Selection + Inference Arms.

Every arm runs the same two stages, lasso selection followed by OLS
intervals on the selected columns, but feeds them different views of a
single Dataset:

    masking   select on (X, Y + τZ),         infer on (X_M, Y − Z/τ)
    full      select on (X, Y),              infer on (X_M, Y)
    split     select on rows with mask,      infer on rows without it
    mysplit   as split, roles swapped when the selection half is the
              smaller one (|mask| < n/2)
    loocv     select on all but k rows,      infer on the k held-out rows

Z, the split mask and the held-out rows are drawn once per trial
(`draw_shared`) so that all arms see the same realization.

Arm results are a tagged variant: `Present` carries the selection and its
intervals, `Absent` carries the reason nothing could be reported. An empty
selection is an `Absent` with reason "empty_selection", never a numeric
placeholder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from data_fission.config import SimulationConfig
from data_fission.dgp import Dataset, projected_target
from data_fission.exceptions import InvalidConfiguration, NumericalFailure
from data_fission.inference import InferenceResult, fission_infer, infer
from data_fission.selection import select_features

logger = logging.getLogger(__name__)


EMPTY_SELECTION = "empty_selection"
INVALID_CONFIGURATION = "invalid_configuration"
NUMERICAL_FAILURE = "numerical_failure"
TRIAL_ERROR = "error"


# =============================================================================
# ARM RESULT VARIANT
# =============================================================================

@dataclass(frozen=True, eq=False)
class Present:
    """
    Selected features with intervals and projection targets.

    Attributes
    ----------
    selected : tuple of int
        Selected feature indices M (sorted).
    ci : ndarray of shape (|M|, 2)
        Lower/upper bounds aligned with `selected`.
    estimate : ndarray of shape (|M|,)
        OLS point estimates.
    projected : ndarray of shape (|M|,)
        Projection targets β*(M).
    """
    selected: Tuple[int, ...]
    ci: NDArray
    estimate: NDArray
    projected: NDArray

    present = True

    @property
    def ci_length(self) -> NDArray:
        return self.ci[:, 1] - self.ci[:, 0]

    @property
    def n_miscovered(self) -> int:
        """Number of intervals that exclude their projection target."""
        covered = (self.ci[:, 0] <= self.projected) & (self.projected <= self.ci[:, 1])
        return int(np.sum(~covered))


@dataclass(frozen=True)
class Absent:
    """
    No result for this arm and trial.

    `reason` is one of "empty_selection", "invalid_configuration",
    "numerical_failure" or "error"; `detail` holds the exception text.
    """
    reason: str
    detail: str = ""

    present = False

    @property
    def is_failure(self) -> bool:
        """True for anything other than a legitimately empty selection."""
        return self.reason != EMPTY_SELECTION


ArmResult = Union[Present, Absent]


# =============================================================================
# SHARED RANDOMNESS
# =============================================================================

@dataclass(frozen=True, eq=False)
class SharedDraws:
    """Per-trial random inputs shared across arms."""
    noise: NDArray
    mask: NDArray
    holdout: NDArray


def draw_shared(
    data: Dataset,
    config: SimulationConfig,
    rng: np.random.Generator,
) -> SharedDraws:
    """
    Draw the fission noise, the Bernoulli(½) split and the held-out rows.

    The held-out set is empty when the dataset has no more than
    `holdout_k` rows; the leave-k-out arm then reports an invalid
    configuration.
    """
    n_true = data.n_true
    noise = rng.normal(0.0, data.sd, size=n_true)
    mask = rng.random(n_true) < 0.5
    if config.holdout_k < n_true:
        holdout = np.sort(rng.choice(n_true, size=config.holdout_k, replace=False))
    else:
        holdout = np.empty(0, dtype=int)
    return SharedDraws(noise=noise, mask=mask, holdout=holdout)


def complementary_mask(mask: NDArray) -> NDArray:
    """
    Selection mask for the `mysplit` arm.

    The realized split is flipped when fewer than half of the rows landed
    in the selection half, so selection gets the larger side.
    """
    mask = np.asarray(mask, dtype=bool)
    if mask.sum() < mask.size / 2:
        return ~mask
    return mask


# =============================================================================
# COMMON TWO-STAGE PROCEDURE
# =============================================================================

def _select_then_infer(
    X_sel: NDArray,
    Y_sel: NDArray,
    X_inf: NDArray,
    Y_inf: NDArray,
    cluster_inf: Optional[NDArray],
    data: Dataset,
    config: SimulationConfig,
    rng: np.random.Generator,
    interval: Optional[Callable[[NDArray, NDArray], Optional[InferenceResult]]] = None,
) -> ArmResult:
    level = 1 - config.alpha
    try:
        selected = select_features(
            X_sel, Y_sel, fold_count=config.fold_count, rng=rng, n_alphas=config.n_alphas
        )
        if len(selected) == 0:
            return Absent(EMPTY_SELECTION)

        cols = list(selected)
        if interval is None:
            result = infer(X_inf[:, cols], Y_inf, cluster=cluster_inf, level=level)
        else:
            result = interval(X_inf[:, cols], Y_inf)
        projected = projected_target(config.beta, data.Sigma, selected)
    except InvalidConfiguration as exc:
        logger.debug("Invalid configuration: %s", exc)
        return Absent(INVALID_CONFIGURATION, str(exc))
    except NumericalFailure as exc:
        logger.debug("Numerical failure: %s", exc)
        return Absent(NUMERICAL_FAILURE, str(exc))

    return Present(
        selected=selected,
        ci=result.ci,
        estimate=result.estimate,
        projected=projected,
    )


# =============================================================================
# ARMS
# =============================================================================

def masking_arm(
    data: Dataset,
    config: SimulationConfig,
    draws: SharedDraws,
    rng: np.random.Generator,
) -> ArmResult:
    """Data fission: select on Y + τZ, infer on Y − Z/τ."""
    tau = config.tau
    fY = data.Y + tau * draws.noise
    gY = data.Y - draws.noise / tau

    interval = None
    if config.fission_variance == "known":
        interval = partial(fission_infer, sd=data.sd, tau=tau, level=1 - config.alpha)

    return _select_then_infer(
        data.X, fY, data.X, gY, data.cluster, data, config, rng, interval=interval
    )


def full_arm(
    data: Dataset,
    config: SimulationConfig,
    draws: SharedDraws,
    rng: np.random.Generator,
) -> ArmResult:
    """Reuse all data for both stages (invalid baseline)."""
    return _select_then_infer(data.X, data.Y, data.X, data.Y, data.cluster, data, config, rng)


def _split_on(
    mask: NDArray,
    data: Dataset,
    config: SimulationConfig,
    rng: np.random.Generator,
) -> ArmResult:
    sel = np.flatnonzero(mask)
    inf = np.flatnonzero(~mask)
    return _select_then_infer(
        data.X[sel], data.Y[sel],
        data.X[inf], data.Y[inf],
        data.cluster[inf],
        data, config, rng,
    )


def split_arm(
    data: Dataset,
    config: SimulationConfig,
    draws: SharedDraws,
    rng: np.random.Generator,
) -> ArmResult:
    """Random half split: select on the masked rows, infer on the rest."""
    return _split_on(draws.mask, data, config, rng)


def mysplit_arm(
    data: Dataset,
    config: SimulationConfig,
    draws: SharedDraws,
    rng: np.random.Generator,
) -> ArmResult:
    """Same realized split as `split_arm`, flipped when the selection half is small."""
    return _split_on(complementary_mask(draws.mask), data, config, rng)


def loocv_arm(
    data: Dataset,
    config: SimulationConfig,
    draws: SharedDraws,
    rng: np.random.Generator,
) -> ArmResult:
    """
    Single leave-k-out holdout: select on n_true − k rows, infer on the k
    held-out rows. Not a cross-validation over all holdouts.
    """
    if draws.holdout.size == 0:
        return Absent(
            INVALID_CONFIGURATION,
            f"holdout_k={config.holdout_k} leaves no rows for selection out of {data.n_true}",
        )
    keep = np.setdiff1d(np.arange(data.n_true), draws.holdout)
    out = draws.holdout
    return _select_then_infer(
        data.X[keep], data.Y[keep],
        data.X[out], data.Y[out],
        data.cluster[out],
        data, config, rng,
    )


ARM_FUNCTIONS: Dict[str, Callable[..., ArmResult]] = {
    "masking": masking_arm,
    "full": full_arm,
    "split": split_arm,
    "mysplit": mysplit_arm,
    "loocv": loocv_arm,
}


__all__ = [
    "EMPTY_SELECTION",
    "INVALID_CONFIGURATION",
    "NUMERICAL_FAILURE",
    "TRIAL_ERROR",
    "Present",
    "Absent",
    "ArmResult",
    "SharedDraws",
    "draw_shared",
    "complementary_mask",
    "masking_arm",
    "full_arm",
    "split_arm",
    "mysplit_arm",
    "loocv_arm",
    "ARM_FUNCTIONS",
]
