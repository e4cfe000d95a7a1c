"""
Aggregation of Trial Results into Selection and Coverage Metrics.

Per-trial metrics for one arm, with S the true support and M the selection:

    power      |M ∩ S| / |S|
    precision  |M ∩ S| / |M|
    fcr        #{k ∈ M : CI_k ∌ β*_k(M)} / max(|M|, 1)
    ci_length  Σ_k (upper_k − lower_k), pooled over coefficients

Conventions for absent results (empty selection or failure), applied to
every arm alike:

    power      counts as 0 and stays in the denominator
    precision  excluded
    fcr        excluded
    ci_length  excluded from numerator and denominator

Aggregation is a pure reduction: rows are put in a canonical order before
averaging, so the same multiset of trials always gives the same table.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

import numpy as np
import pandas as pd

from data_fission.arms import EMPTY_SELECTION, ArmResult, Present
from data_fission.config import ARMS


SUMMARY_COLUMNS: List[str] = [
    "leverage",
    "arm",
    "power",
    "precision",
    "fcr",
    "ci_length",
    "n_trials",
    "n_present",
    "n_empty",
    "n_failed",
]


def trial_metrics(result: ArmResult, true_support: Iterable[int]) -> Dict[str, Any]:
    """
    Selection and coverage metrics for one arm in one trial.

    Absent results get power 0 and NaN for the metrics they are
    excluded from.
    """
    support = set(int(j) for j in true_support)
    n_support = len(support)

    if not isinstance(result, Present):
        return {
            "present": False,
            "reason": result.reason,
            "n_selected": 0,
            "true_positives": 0,
            "power": 0.0 if n_support else np.nan,
            "precision": np.nan,
            "fcr": np.nan,
            "ci_length_sum": 0.0,
            "n_ci": 0,
        }

    selected = set(result.selected)
    tp = len(selected & support)
    k = len(result.selected)
    return {
        "present": True,
        "reason": "",
        "n_selected": k,
        "true_positives": tp,
        "power": tp / n_support if n_support else np.nan,
        "precision": tp / k if k else np.nan,
        "fcr": result.n_miscovered / max(k, 1),
        "ci_length_sum": float(np.sum(result.ci_length)),
        "n_ci": k,
    }


def trial_frame(trials: Iterable, true_support: Iterable[int]) -> pd.DataFrame:
    """Long table with one row per (trial, arm) of `trial_metrics`."""
    support = list(true_support)
    rows = []
    for trial in trials:
        for arm, result in trial.arms.items():
            row = {
                "leverage": trial.leverage_value,
                "arm": arm,
                "replication": trial.replication,
            }
            row.update(trial_metrics(result, support))
            rows.append(row)
    return pd.DataFrame(rows)


def _pooled_length(group: pd.DataFrame) -> float:
    n_ci = group["n_ci"].sum()
    if n_ci == 0:
        return np.nan
    return float(group["ci_length_sum"].sum() / n_ci)


def summarize(trials: Iterable, true_support: Iterable[int]) -> pd.DataFrame:
    """
    Metrics by leverage configuration and arm.

    Parameters
    ----------
    trials : iterable of TrialResult
        Per-trial records (any order).
    true_support : iterable of int
        Indices of the nonzero coefficients.

    Returns
    -------
    pd.DataFrame
        Columns: leverage, arm, power, precision, fcr, ci_length,
        n_trials, n_present, n_empty, n_failed. NaN marks a metric with no
        contributing trial.
    """
    df = trial_frame(trials, true_support)
    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    # Canonical order so the reduction depends only on the multiset
    df = df.sort_values(
        ["leverage", "arm", "replication", "power", "precision", "fcr", "ci_length_sum"],
        kind="mergesort",
        na_position="last",
    ).reset_index(drop=True)

    rows = []
    for (leverage, arm), group in df.groupby(["leverage", "arm"], sort=True):
        present = group[group["present"]]
        rows.append({
            "leverage": leverage,
            "arm": arm,
            "power": float(group["power"].mean()),
            "precision": float(present["precision"].mean()) if len(present) else np.nan,
            "fcr": float(present["fcr"].mean()) if len(present) else np.nan,
            "ci_length": _pooled_length(present),
            "n_trials": int(len(group)),
            "n_present": int(len(present)),
            "n_empty": int((group["reason"] == EMPTY_SELECTION).sum()),
            "n_failed": int(((~group["present"]) & (group["reason"] != EMPTY_SELECTION)).sum()),
        })

    summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    order = {name: i for i, name in enumerate(ARMS)}
    summary["_arm_order"] = summary["arm"].map(lambda a: order.get(a, len(order)))
    summary = summary.sort_values(["leverage", "_arm_order", "arm"], kind="mergesort")
    return summary.drop(columns="_arm_order").reset_index(drop=True)


def summarize_by_leverage(summary: pd.DataFrame) -> pd.DataFrame:
    """Wide view: one row per leverage, columns (metric, arm)."""
    metrics = ["power", "precision", "fcr", "ci_length"]
    return summary.pivot(index="leverage", columns="arm", values=metrics)


__all__ = [
    "SUMMARY_COLUMNS",
    "trial_metrics",
    "trial_frame",
    "summarize",
    "summarize_by_leverage",
]
