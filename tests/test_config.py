import numpy as np
import pytest

from data_fission.config import LEVERAGE_GRID, SimulationConfig, leverage_label, make_beta
from data_fission.exceptions import InvalidConfiguration


def test_make_beta_places_signals():
    beta = make_beta(20)
    assert beta.shape == (20,)
    np.testing.assert_array_equal(np.flatnonzero(beta), [0, 15, 16, 17])
    np.testing.assert_array_equal(beta[[0, 15, 16, 17]], [1.0, 1.0, -1.0, 1.0])


def test_make_beta_rejects_out_of_range_index():
    with pytest.raises(InvalidConfiguration):
        make_beta(10, indices=(0, 15), values=(1.0, 1.0))


def test_config_defaults(calibration_config):
    assert calibration_config.true_support == frozenset({0, 15, 16, 17})
    assert calibration_config.sd == pytest.approx(1.0)
    np.testing.assert_array_equal(calibration_config.Sigma, np.eye(20))


def test_config_beta_is_read_only(calibration_config):
    with pytest.raises(ValueError):
        calibration_config.beta[0] = 5.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"alpha": 0.0},
        {"alpha": 1.5},
        {"sigma_sq": -1.0},
        {"fold_count": 1},
        {"tau": 0.0},
        {"holdout_k": 0},
        {"fission_variance": "bootstrap"},
        {"p": 5, "beta": np.ones(4)},
    ],
)
def test_config_validation(kwargs):
    with pytest.raises(InvalidConfiguration):
        SimulationConfig(**kwargs)


def test_config_to_dict_round_trips():
    config = SimulationConfig(n=10, p=20, alpha=0.05, tau=2.0)
    rebuilt = SimulationConfig(**config.to_dict())
    np.testing.assert_array_equal(rebuilt.beta, config.beta)
    assert rebuilt.alpha == 0.05
    assert rebuilt.tau == 2.0


def test_leverage_grid_has_five_configurations():
    assert len(LEVERAGE_GRID) == 5
    assert leverage_label([]) == 0.0
    assert leverage_label([2.0]) == 2.0
