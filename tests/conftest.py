import numpy as np
import pytest

from costs import QuadraticCost
from settings import ShootingSettings
from systems import ControlledSystem, ScalarIntegrator


class Fragile(ControlledSystem):
    """x' = u, or NaN once `broken` is set and t passes `t_break`."""

    state_dim = 1
    control_dim = 1

    def __init__(self, broken=False, t_break=0.25):
        self.broken = broken
        self.t_break = t_break

    def compute_dynamics(self, x, u, t):
        if self.broken and t >= self.t_break:
            return np.array([np.nan])
        return np.asarray(u, dtype=float).reshape(-1).copy()


@pytest.fixture
def scalar_settings():
    return ShootingSettings(dt=0.1, dt_sim=0.1, integrator="euler", epsilon=0.0, max_iterations=1)


@pytest.fixture
def scalar_cost():
    return QuadraticCost(Q=1.0, R=1.0, Q_final=1.0, x_ref=[0.0], u_ref=[0.0])


@pytest.fixture
def scalar_system():
    return ScalarIntegrator()


@pytest.fixture
def scalar_guess():
    K = 10
    return np.ones((K + 1, 1)), np.zeros((K, 1))
