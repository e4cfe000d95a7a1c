#!/usr/bin/env python3
"""
================================================================================
MASTER SIMULATION SCRIPT
================================================================================

Runs the data fission Monte Carlo study: for every leverage configuration,
`--runs` independent trials of the five arms (masking, full, split,
mysplit, loocv), then prints the power / precision / FCR / CI length table.

Usage:
    python run_all.py
    python run_all.py --runs 100 --jobs 4 --leverage 0 2 6

Output:
    results/summary.csv       metrics by leverage and arm
    results/raw_results.csv   one row per selected coefficient per trial

Random Seeds:
    One batch seed (--seed, default 2024) fixes every trial; each trial
    draws from its own spawned stream.

================================================================================
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from data_fission import SimulationConfig, run_study
from data_fission.config import ALPHA, B_DEFAULT, DEFAULT_SEED, K_FOLDS, LEVERAGE_GRID


REPO_ROOT = Path(__file__).parent.absolute()
RESULTS_DIR = REPO_ROOT / "results"


def print_header(text: str, char: str = "=") -> None:
    """Print a formatted header."""
    width = 70
    print("\n" + char * width)
    print(text.center(width))
    print(char * width + "\n")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Data fission Monte Carlo study")
    parser.add_argument("--runs", type=int, default=B_DEFAULT, help="trials per leverage configuration")
    parser.add_argument("--jobs", type=int, default=-1, help="parallel workers (joblib n_jobs)")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="batch seed")
    parser.add_argument("--alpha", type=float, default=ALPHA, help="CI miscoverage level")
    parser.add_argument("--folds", type=int, default=K_FOLDS, help="lasso cross-validation folds")
    parser.add_argument(
        "--leverage",
        type=float,
        nargs="*",
        default=None,
        help="leverage multipliers, one configuration each (0 = no influential row)",
    )
    parser.add_argument(
        "--fission-variance",
        choices=["known", "cr2"],
        default="known",
        help="variance used by the masking arm",
    )
    parser.add_argument("--results-dir", type=Path, default=RESULTS_DIR, help="output directory")
    parser.add_argument("--quiet", action="store_true", help="suppress progress output")
    return parser.parse_args()


def main() -> int:
    """
    Main entry point.

    Returns exit code: 0 for success, 1 if every trial failed.
    """
    args = parse_args()
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.leverage is None:
        leverage_grid = LEVERAGE_GRID
    else:
        leverage_grid = tuple([g] if g > 0 else [] for g in args.leverage)

    config = SimulationConfig(
        alpha=args.alpha,
        fold_count=args.folds,
        fission_variance=args.fission_variance,
    )

    verbose = not args.quiet
    if verbose:
        print_header("DATA FISSION SIMULATION")
        print(f"Results will be saved to: {args.results_dir}")

    start = time.time()
    trials, summary = run_study(
        config=config,
        leverage_grid=leverage_grid,
        runs=args.runs,
        seed=args.seed,
        n_jobs=args.jobs,
        save_results=True,
        results_dir=str(args.results_dir),
        verbose=verbose,
    )
    elapsed = time.time() - start

    n_failed = sum(t.failed for t in trials)
    if verbose:
        print_header("SIMULATION COMPLETE")
        print(f"  Total time: {elapsed:.1f}s ({elapsed / 60:.1f} minutes)")
        print(f"  Trials: {len(trials)}, failed: {n_failed}")

    return 1 if trials and n_failed == len(trials) else 0


if __name__ == "__main__":
    sys.exit(main())
