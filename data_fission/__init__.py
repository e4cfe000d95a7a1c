"""
data_fission: Post-Selection Inference by Data Fission
======================================================

Monte Carlo harness comparing data fission ("masking") with full-data
reuse, sample splitting and leave-k-out holdouts for inference on
lasso-selected linear models, in designs with a controllable
high-leverage observation.

Quick Start
-----------
>>> from data_fission import SimulationConfig, run_study
>>>
>>> config = SimulationConfig(n=15, p=20)
>>> trials, summary = run_study(config, leverage_grid=([], [6.0]), runs=100)
>>> print(summary)

Theory
------
Split Y into f(Y) = Y + τZ and g(Y) = Y − Z/τ with Z ~ N(0, Σ). The two
copies are independent, so selecting M on f(Y) and fitting OLS of g(Y) on
X_M gives
    β̂(M) ~ N(β*(M), (1 + τ⁻²)(X_MᵀX_M)⁻¹ X_MᵀΣX_M (X_MᵀX_M)⁻¹)
around the projection target β*(M), without discarding any rows.
"""

from data_fission.aggregate import summarize, summarize_by_leverage, trial_metrics
from data_fission.arms import (
    ARM_FUNCTIONS,
    Absent,
    ArmResult,
    Present,
    complementary_mask,
    draw_shared,
)
from data_fission.config import (
    ARMS,
    LEVERAGE_GRID,
    SimulationConfig,
    make_beta,
)
from data_fission.dgp import Dataset, generate_data, projected_target
from data_fission.exceptions import (
    DataFissionError,
    InvalidConfiguration,
    NumericalFailure,
)
from data_fission.experiment import TrialResult, run_simulation, run_study, run_trial
from data_fission.inference import InferenceResult, cr2_vcov, fission_infer, infer
from data_fission.reporting import results_to_frame, save_results
from data_fission.selection import lasso_one_se_path, one_se_alpha, select_features

__version__ = "1.0.0"

__all__ = [
    # Configuration
    "SimulationConfig",
    "make_beta",
    "ARMS",
    "LEVERAGE_GRID",
    # Errors
    "DataFissionError",
    "InvalidConfiguration",
    "NumericalFailure",
    # Data
    "Dataset",
    "generate_data",
    "projected_target",
    # Selection
    "select_features",
    "lasso_one_se_path",
    "one_se_alpha",
    # Inference
    "InferenceResult",
    "infer",
    "fission_infer",
    "cr2_vcov",
    # Arms
    "Present",
    "Absent",
    "ArmResult",
    "ARM_FUNCTIONS",
    "draw_shared",
    "complementary_mask",
    # Experiment
    "TrialResult",
    "run_trial",
    "run_simulation",
    "run_study",
    # Aggregation
    "trial_metrics",
    "summarize",
    "summarize_by_leverage",
    # Reporting
    "results_to_frame",
    "save_results",
]
