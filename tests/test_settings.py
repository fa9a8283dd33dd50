import pytest

from errors import ConfigurationError
from settings import ShootingSettings


def test_defaults_are_valid():
    assert ShootingSettings().parameters_ok()


@pytest.mark.parametrize(
    "overrides",
    [
        dict(dt=0.0),
        dict(dt=-0.1),
        dict(dt_sim=0.0),
        dict(dt=0.01, dt_sim=0.02),
        dict(dt=0.1, dt_sim=0.03),
        dict(n_threads=0),
        dict(n_threads_blas=0),
        dict(epsilon=-1e-3),
        dict(max_iterations=0),
        dict(regularization="levenberg"),
        dict(convergence_tol=-1.0),
    ],
)
def test_malformed_parameters_rejected(overrides):
    assert not ShootingSettings(**overrides).parameters_ok()


def test_unknown_discretization_is_not_checked_here():
    assert ShootingSettings(discretization="bogus").parameters_ok()


def test_sim_steps_and_horizon():
    s = ShootingSettings(dt=0.1, dt_sim=0.025)
    assert s.n_sim_steps == 4
    assert s.compute_k(2.0) == 20
    with pytest.raises(ConfigurationError):
        s.compute_k(-1.0)


def test_stage_must_be_whole_number_of_micro_steps():
    assert ShootingSettings(dt=0.1, dt_sim=0.025).parameters_ok()
    assert ShootingSettings(dt=0.01, dt_sim=0.001).parameters_ok()
    assert not ShootingSettings(dt=0.1, dt_sim=0.04).parameters_ok()
