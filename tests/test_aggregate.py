import numpy as np
import pandas as pd
import pytest

from data_fission.aggregate import SUMMARY_COLUMNS, summarize, summarize_by_leverage, trial_metrics
from data_fission.arms import EMPTY_SELECTION, NUMERICAL_FAILURE, TRIAL_ERROR, Absent, Present
from data_fission.experiment import TrialResult

SUPPORT = {0, 15, 16, 17}


def present(selected, ci, projected):
    ci = np.asarray(ci, dtype=float)
    return Present(
        selected=tuple(selected),
        ci=ci,
        estimate=ci.mean(axis=1),
        projected=np.asarray(projected, dtype=float),
    )


def trial(arm_results, leverage=(2.0,), replication=0):
    return TrialResult(leverage=leverage, replication=replication, arms=arm_results)


def test_trial_metrics_present():
    result = present([0, 3], [[0.5, 1.5], [-1.0, 1.0]], [1.0, 2.0])
    m = trial_metrics(result, SUPPORT)
    assert m["power"] == pytest.approx(0.25)
    assert m["precision"] == pytest.approx(0.5)
    assert m["fcr"] == pytest.approx(0.5)
    assert m["ci_length_sum"] == pytest.approx(3.0)
    assert m["n_ci"] == 2


def test_trial_metrics_absent():
    m = trial_metrics(Absent(EMPTY_SELECTION), SUPPORT)
    assert m["power"] == 0.0
    assert np.isnan(m["precision"])
    assert np.isnan(m["fcr"])
    assert m["n_ci"] == 0


def test_empty_selection_counts_in_power_only():
    trials = [
        trial({"full": present([0, 15], [[0.0, 2.0], [0.0, 4.0]], [1.0, 1.0])}, replication=0),
        trial({"full": Absent(EMPTY_SELECTION)}, replication=1),
    ]
    row = summarize(trials, SUPPORT).iloc[0]

    assert row["power"] == pytest.approx((0.5 + 0.0) / 2)
    assert row["precision"] == pytest.approx(1.0)
    assert row["fcr"] == pytest.approx(0.0)
    assert row["ci_length"] == pytest.approx(3.0)
    assert row["n_trials"] == 2
    assert row["n_present"] == 1
    assert row["n_empty"] == 1
    assert row["n_failed"] == 0


def test_ci_length_is_pooled_over_coefficients():
    trials = [
        trial({"split": present([0], [[0.0, 1.0]], [0.5])}, replication=0),
        trial({"split": present([0, 15, 16], [[0.0, 4.0]] * 3, [1.0, 1.0, 1.0])}, replication=1),
    ]
    row = summarize(trials, SUPPORT).iloc[0]
    assert row["ci_length"] == pytest.approx((1.0 + 12.0) / 4)


def test_failures_are_counted_separately():
    trials = [
        trial({"loocv": Absent(NUMERICAL_FAILURE, "singular")}, replication=0),
        trial({"loocv": Absent(TRIAL_ERROR, "boom")}, replication=1),
        trial({"loocv": Absent(EMPTY_SELECTION)}, replication=2),
    ]
    row = summarize(trials, SUPPORT).iloc[0]
    assert row["n_failed"] == 2
    assert row["n_empty"] == 1
    assert row["power"] == 0.0
    assert np.isnan(row["precision"])
    assert np.isnan(row["fcr"])
    assert np.isnan(row["ci_length"])


def test_fcr_bounded():
    trials = [
        trial({"masking": present([0, 15], [[5.0, 6.0], [5.0, 6.0]], [1.0, 1.0])}, replication=0),
        trial({"masking": present([0], [[0.0, 2.0]], [1.0])}, replication=1),
    ]
    row = summarize(trials, SUPPORT).iloc[0]
    assert 0.0 <= row["fcr"] <= 1.0
    assert row["fcr"] == pytest.approx(0.5)


def test_summary_keys_and_arm_order():
    arms = {
        "loocv": Absent(EMPTY_SELECTION),
        "masking": present([0], [[0.0, 2.0]], [1.0]),
        "full": present([0], [[0.0, 2.0]], [1.0]),
    }
    trials = [trial(arms, leverage=(6.0,)), trial(arms, leverage=())]
    summary = summarize(trials, SUPPORT)
    assert list(summary.columns) == SUMMARY_COLUMNS
    assert list(summary["leverage"]) == [0.0, 0.0, 0.0, 6.0, 6.0, 6.0]
    assert list(summary["arm"][:3]) == ["masking", "full", "loocv"]


def _mixed_trials():
    rng = np.random.default_rng(0)
    trials = []
    for rep in range(12):
        arms = {}
        for arm in ("masking", "full", "split"):
            if rng.random() < 0.3:
                arms[arm] = Absent(EMPTY_SELECTION)
            else:
                k = int(rng.integers(1, 4))
                selected = sorted(rng.choice(20, size=k, replace=False))
                lo = rng.normal(size=k)
                ci = np.column_stack([lo, lo + rng.gamma(2.0, size=k)])
                arms[arm] = present(selected, ci, rng.normal(size=k))
        trials.append(trial(arms, leverage=(float(rep % 2),), replication=rep))
    return trials


def test_summarize_is_idempotent():
    trials = _mixed_trials()
    pd.testing.assert_frame_equal(summarize(trials, SUPPORT), summarize(trials, SUPPORT))


def test_summarize_ignores_trial_order():
    trials = _mixed_trials()
    pd.testing.assert_frame_equal(summarize(trials, SUPPORT), summarize(trials[::-1], SUPPORT))


def test_empty_input():
    summary = summarize([], SUPPORT)
    assert summary.empty
    assert list(summary.columns) == SUMMARY_COLUMNS


def test_wide_view():
    summary = summarize(_mixed_trials(), SUPPORT)
    wide = summarize_by_leverage(summary)
    assert ("power", "masking") in wide.columns
    assert len(wide) == 2
