"""
Monte Carlo Experiment Runner.

One trial draws a Dataset, the shared fission noise, split mask and
holdout, then runs all five arms on that single realization. Trials are
independent: each gets its own random stream spawned from one batch seed
(`numpy.random.SeedSequence`), so results do not depend on the number of
workers or on the order in which trials finish.

A trial that raises anything other than the errors handled inside the arms
is recorded with every arm `Absent("error")` and the batch carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.typing import NDArray

from data_fission import reporting
from data_fission.aggregate import summarize
from data_fission.arms import ARM_FUNCTIONS, Absent, ArmResult, TRIAL_ERROR, draw_shared
from data_fission.config import (
    ARMS,
    B_DEFAULT,
    DEFAULT_SEED,
    LEVERAGE_GRID,
    SimulationConfig,
    leverage_label,
)
from data_fission.dgp import generate_data

logger = logging.getLogger(__name__)


# =============================================================================
# TRIAL RESULT
# =============================================================================

@dataclass(frozen=True, eq=False)
class TrialResult:
    """
    Immutable record of one trial.

    Attributes
    ----------
    leverage : tuple of float
        Leverage multipliers used for this trial.
    replication : int
        Replication index within its leverage configuration.
    arms : mapping of str to ArmResult
        One result per arm name.
    """
    leverage: Tuple[float, ...]
    replication: int
    arms: Mapping[str, ArmResult]

    @property
    def leverage_value(self) -> float:
        return leverage_label(self.leverage)

    @property
    def failed(self) -> bool:
        """True if the whole trial raised and was isolated."""
        return all(
            isinstance(r, Absent) and r.reason == TRIAL_ERROR for r in self.arms.values()
        )


# =============================================================================
# SINGLE TRIAL
# =============================================================================

def run_trial(
    n: int,
    p: int,
    beta: NDArray,
    leverage: Sequence[float],
    alpha: float,
    rng: np.random.Generator,
    config: Optional[SimulationConfig] = None,
    replication: int = 0,
) -> TrialResult:
    """
    Generate one Dataset and run every arm on it.

    Parameters
    ----------
    n, p : int
        Base sample size and number of covariates.
    beta : ndarray of shape (p,)
        True coefficients.
    leverage : sequence of float
        Leverage multipliers for the appended rows.
    alpha : float
        Miscoverage level.
    rng : numpy Generator
        Random stream owned by this trial.
    config : SimulationConfig, optional
        Remaining settings (σ², folds, τ, k). Defaults are used for
        anything not given; n, p, beta and alpha always come from the
        explicit arguments.
    replication : int, default 0
        Index stored on the result.

    Returns
    -------
    TrialResult
    """
    base = config.to_dict() if config is not None else {}
    base.update(n=n, p=p, beta=np.asarray(beta, dtype=float), alpha=alpha)
    config = SimulationConfig(**base)

    data = generate_data(
        n=config.n,
        p=config.p,
        beta=config.beta,
        leverage=leverage,
        sd=config.sd,
        rng=rng,
        Sigma=config.Sigma,
    )
    draws = draw_shared(data, config, rng)

    # Independent streams per arm so results do not depend on arm order
    arm_seeds = rng.integers(2**32, size=len(ARMS))
    arms: Dict[str, ArmResult] = {}
    for name, arm_seed in zip(ARMS, arm_seeds):
        arm_rng = np.random.default_rng(int(arm_seed))
        arms[name] = ARM_FUNCTIONS[name](data, config, draws, arm_rng)

    return TrialResult(leverage=tuple(data.leverage), replication=replication, arms=arms)


def _run_isolated(
    config: SimulationConfig,
    leverage: Sequence[float],
    replication: int,
    seed: np.random.SeedSequence,
) -> TrialResult:
    rng = np.random.default_rng(seed)
    try:
        return run_trial(
            n=config.n,
            p=config.p,
            beta=config.beta,
            leverage=leverage,
            alpha=config.alpha,
            rng=rng,
            config=config,
            replication=replication,
        )
    except Exception as exc:
        logger.warning(
            "Trial %d (leverage=%s, entropy=%s, spawn_key=%s) failed: %r",
            replication, list(leverage), seed.entropy, seed.spawn_key, exc,
        )
        failure = Absent(TRIAL_ERROR, repr(exc))
        return TrialResult(
            leverage=tuple(float(g) for g in leverage),
            replication=replication,
            arms={name: failure for name in ARMS},
        )


# =============================================================================
# MONTE CARLO BATCH
# =============================================================================

def run_simulation(
    config: Optional[SimulationConfig] = None,
    leverage_grid: Sequence[Sequence[float]] = LEVERAGE_GRID,
    runs: int = B_DEFAULT,
    seed: int = DEFAULT_SEED,
    n_jobs: int = -1,
    verbose: bool = True,
) -> List[TrialResult]:
    """
    Run `runs` independent trials for every leverage configuration.

    Parameters
    ----------
    config : SimulationConfig, optional
        Batch configuration; the calibration design if None.
    leverage_grid : sequence of sequences of float
        One entry per configuration, e.g. ([], [2.0], [6.0]).
    runs : int, default 500
        Trials per configuration.
    seed : int, default 2024
        Batch seed. One child stream is spawned per trial.
    n_jobs : int, default -1
        joblib workers.
    verbose : bool, default True
        Print a banner and joblib progress.

    Returns
    -------
    list of TrialResult
        Ordered by configuration then replication.
    """
    if config is None:
        config = SimulationConfig()

    children = np.random.SeedSequence(seed).spawn(len(leverage_grid) * runs)

    if verbose:
        print("Data Fission Monte Carlo Study")
        print("=" * 50)
        print(f"Design: n = {config.n}, p = {config.p}, σ² = {config.sigma_sq}, α = {config.alpha}")
        print(f"Leverage configurations: {[list(lev) for lev in leverage_grid]}")
        print(f"Replications per configuration: {runs}")
        print(f"Total trials: {len(children):,}")
        print("=" * 50)

    tasks = []
    for cfg_idx, leverage in enumerate(leverage_grid):
        for rep in range(runs):
            tasks.append((list(leverage), rep, children[cfg_idx * runs + rep]))

    trials = Parallel(n_jobs=n_jobs, verbose=10 if verbose else 0)(
        delayed(_run_isolated)(config, leverage, rep, child)
        for leverage, rep, child in tasks
    )

    n_failed = sum(t.failed for t in trials)
    if n_failed:
        logger.warning("%d of %d trials failed and were recorded as absent", n_failed, len(trials))
    if verbose:
        print(f"\nSimulation complete. {len(trials)} trials, {n_failed} failed.")

    return list(trials)


def run_study(
    config: Optional[SimulationConfig] = None,
    leverage_grid: Sequence[Sequence[float]] = LEVERAGE_GRID,
    runs: int = B_DEFAULT,
    seed: int = DEFAULT_SEED,
    n_jobs: int = -1,
    save_results: bool = False,
    results_dir: str = "results",
    verbose: bool = True,
) -> Tuple[List[TrialResult], pd.DataFrame]:
    """
    Simulate, summarize and optionally save.

    Returns
    -------
    trials : list of TrialResult
        Raw per-trial records.
    summary : pd.DataFrame
        Metrics by leverage and arm (see `aggregate.summarize`).
    """
    if config is None:
        config = SimulationConfig()

    trials = run_simulation(
        config=config,
        leverage_grid=leverage_grid,
        runs=runs,
        seed=seed,
        n_jobs=n_jobs,
        verbose=verbose,
    )
    summary = summarize(trials, config.true_support)

    if verbose:
        print("\n" + "=" * 60)
        print("Summary by leverage and arm")
        print("=" * 60)
        print(summary.to_string(index=False))

    if save_results:
        reporting.save_results(summary, trials, results_dir)
        if verbose:
            print(f"\nResults saved to {results_dir}/")

    return trials, summary


__all__ = [
    "TrialResult",
    "run_trial",
    "run_simulation",
    "run_study",
]
