"""Shared fixtures for the data fission test suite."""

import numpy as np
import pytest

from data_fission.config import SimulationConfig, make_beta
from data_fission.dgp import generate_data


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def calibration_config():
    """n = 15, p = 20, β = (1, 1, -1, 1) on {0, 15, 16, 17}, σ² = 1."""
    return SimulationConfig(n=15, p=20, beta=make_beta(20), sigma_sq=1.0)


@pytest.fixture
def strong_signal_data(rng):
    """Large, well-conditioned sample where the lasso finds the support."""
    p = 8
    beta = np.zeros(p)
    beta[[0, 1]] = [3.0, -3.0]
    return generate_data(n=120, p=p, beta=beta, leverage=(), sd=1.0, rng=rng)


@pytest.fixture
def strong_signal_config():
    p = 8
    beta = np.zeros(p)
    beta[[0, 1]] = [3.0, -3.0]
    return SimulationConfig(n=120, p=p, beta=beta, sigma_sq=1.0)
