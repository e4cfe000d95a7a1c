"""
Flat tables of raw trial results and CSV output.
"""

from pathlib import Path
from typing import Iterable, Union

import numpy as np
import pandas as pd

from data_fission.arms import Present


def results_to_frame(trials: Iterable) -> pd.DataFrame:
    """
    Long-format table of raw results.

    One row per selected coefficient of every present arm result, and a
    single row with NaN bounds for every absent one.
    """
    rows = []
    for trial in trials:
        for arm, result in trial.arms.items():
            base = {
                "leverage": trial.leverage_value,
                "replication": trial.replication,
                "arm": arm,
            }
            if isinstance(result, Present):
                for j, (lo, hi), est, target in zip(
                    result.selected, result.ci, result.estimate, result.projected
                ):
                    rows.append({
                        **base,
                        "status": "present",
                        "feature": j,
                        "estimate": est,
                        "ci_lower": lo,
                        "ci_upper": hi,
                        "projected": target,
                        "covered": bool(lo <= target <= hi),
                    })
            else:
                rows.append({
                    **base,
                    "status": result.reason,
                    "feature": np.nan,
                    "estimate": np.nan,
                    "ci_lower": np.nan,
                    "ci_upper": np.nan,
                    "projected": np.nan,
                    "covered": np.nan,
                })
    return pd.DataFrame(rows)


def save_results(
    summary: pd.DataFrame,
    trials: Iterable,
    results_dir: Union[str, Path] = "results",
) -> None:
    """Write `summary.csv` and `raw_results.csv` to `results_dir`."""
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    summary.to_csv(results_dir / "summary.csv", index=False)
    results_to_frame(trials).to_csv(results_dir / "raw_results.csv", index=False)


__all__ = [
    "results_to_frame",
    "save_results",
]
