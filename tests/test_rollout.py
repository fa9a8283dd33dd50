import threading

import numpy as np
import pytest

from conftest import Fragile
from errors import ConfigurationError
from parallel import WorkerPool
from rollout import rollout_system
from settings import ShootingSettings
from systems import ScalarIntegrator


def _main_instances(system):
    pool = WorkerPool(1)
    pool.set_system(system)
    return pool.main


def test_open_loop_with_micro_steps():
    K = 8
    settings = ShootingSettings(dt=0.1, dt_sim=0.05, integrator="euler")
    ok, X, U, T = rollout_system(
        _main_instances(ScalarIntegrator()), settings,
        np.array([1.0]), np.ones((K, 1)), np.zeros((K, 1, 1)), np.zeros((K + 1, 1)),
    )
    assert ok
    assert X.shape == (K + 1, 1) and U.shape == (K, 1)
    np.testing.assert_allclose(X[:, 0], 1.0 + 0.1 * np.arange(K + 1))
    np.testing.assert_allclose(T, 0.1 * np.arange(K + 1))


def test_feedback_policy():
    K = 5
    settings = ShootingSettings(dt=0.1, dt_sim=0.1, integrator="euler")
    L = -np.ones((K, 1, 1))
    ok, X, U, _ = rollout_system(
        _main_instances(ScalarIntegrator()), settings,
        np.array([1.0]), np.zeros((K, 1)), L, np.zeros((K + 1, 1)),
    )
    assert ok
    np.testing.assert_allclose(X[:, 0], 0.9 ** np.arange(K + 1))
    np.testing.assert_allclose(U[:, 0], -X[:-1, 0])


def test_non_finite_state_fails():
    K = 10
    settings = ShootingSettings(dt=0.1, dt_sim=0.1, integrator="euler")
    ok, X, _, _ = rollout_system(
        _main_instances(Fragile(broken=True)), settings,
        np.array([1.0]), np.zeros((K, 1)), np.zeros((K, 1, 1)), np.zeros((K + 1, 1)),
    )
    assert not ok
    assert len(X) < K + 1


def test_non_finite_control_fails():
    K = 10
    settings = ShootingSettings(dt=0.1, dt_sim=0.1, integrator="euler")
    u_ff = np.zeros((K, 1))
    u_ff[3] = np.nan
    ok, X, U, _ = rollout_system(
        _main_instances(ScalarIntegrator()), settings,
        np.array([1.0]), u_ff, np.zeros((K, 1, 1)), np.zeros((K + 1, 1)),
    )
    assert ok is False
    assert len(U) <= K
    assert len(X) == 4
    assert np.isnan(U[-1, 0])


def test_cancelled_rollout_fails():
    K = 10
    flag = threading.Event()
    flag.set()
    settings = ShootingSettings(dt=0.1, dt_sim=0.1, integrator="euler")
    ok, X, U, _ = rollout_system(
        _main_instances(ScalarIntegrator()), settings,
        np.array([1.0]), np.zeros((K, 1)), np.zeros((K, 1, 1)), np.zeros((K + 1, 1)),
        termination_flag=flag,
    )
    assert not ok
    assert len(X) == 1 and len(U) == 0


def test_symplectic_integrator_on_plain_system_rejected():
    settings = ShootingSettings(dt=0.1, dt_sim=0.1, integrator="euler_sym")
    with pytest.raises(ConfigurationError):
        rollout_system(
            _main_instances(ScalarIntegrator()), settings,
            np.array([1.0]), np.zeros((3, 1)), np.zeros((3, 1, 1)), np.zeros((4, 1)),
        )
