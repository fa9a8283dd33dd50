# -*- coding: utf-8 -*-
"""Controlled systems (continuous time) and benchmark cases.

A system maps (x, u, t) to the state derivative. Every worker of the solver
owns its own clone, so systems may keep scratch state without locking.

Symplectic systems split the state into positions and velocities, x = [p, v],
and expose the two halves of the vector field separately so the symplectic
integrators can update them in a staggered fashion.

The benchmark cases are small, self-contained dynamics/cost definitions:
  - scalar integrator   (x' = u, the textbook LQ check)
  - double integrator   (symplectic)
  - pendulum swing-up   (symplectic, angle-wrapped cost)
  - cart-pole swing-up
"""

from __future__ import annotations

import copy
import math

import numpy as np

from costs import QuadraticCost
from settings import ShootingSettings, RK4, RK_SYM


# =============================================================================
# Interfaces
# =============================================================================

class ControlledSystem:
    """x' = f(x, u, t)."""

    state_dim: int = 0
    control_dim: int = 0

    @property
    def is_symplectic(self) -> bool:
        return False

    def compute_dynamics(self, x: np.ndarray, u: np.ndarray, t: float) -> np.ndarray:
        raise NotImplementedError

    def clone(self) -> "ControlledSystem":
        return copy.deepcopy(self)


class SymplecticSystem(ControlledSystem):
    """x = [p, v] with p' = fp(x, u, t) and v' = fv(x, u, t)."""

    position_dim: int = 0

    @property
    def is_symplectic(self) -> bool:
        return True

    def compute_pdynamics(self, x: np.ndarray, u: np.ndarray, t: float) -> np.ndarray:
        raise NotImplementedError

    def compute_vdynamics(self, x: np.ndarray, u: np.ndarray, t: float) -> np.ndarray:
        raise NotImplementedError

    def compute_dynamics(self, x, u, t):
        return np.concatenate([self.compute_pdynamics(x, u, t), self.compute_vdynamics(x, u, t)])


# =============================================================================
# 1) Scalar integrator
# =============================================================================

class ScalarIntegrator(ControlledSystem):
    """x' = u."""

    state_dim = 1
    control_dim = 1

    def compute_dynamics(self, x, u, t):
        return np.asarray(u, dtype=float).reshape(-1).copy()


# =============================================================================
# 2) Double integrator
# =============================================================================

class DoubleIntegrator(SymplecticSystem):
    """x=[pos, vel], u=[acc]."""

    state_dim = 2
    control_dim = 1
    position_dim = 1

    def compute_pdynamics(self, x, u, t):
        return np.array([x[1]], dtype=float)

    def compute_vdynamics(self, x, u, t):
        return np.array([float(np.asarray(u).reshape(-1)[0])], dtype=float)


# =============================================================================
# 3) Pendulum
# =============================================================================

class Pendulum(SymplecticSystem):
    """x=[theta, theta_dot], u=[torque]; theta=0 is *down*."""

    state_dim = 2
    control_dim = 1
    position_dim = 1

    def __init__(self, g: float = 9.81, length: float = 1.0, mass: float = 1.0, damping: float = 0.05):
        self.g = float(g)
        self.length = float(length)
        self.mass = float(mass)
        self.damping = float(damping)

    def compute_pdynamics(self, x, u, t):
        return np.array([x[1]], dtype=float)

    def compute_vdynamics(self, x, u, t):
        tau = float(np.asarray(u).reshape(-1)[0])
        ml2 = self.mass * self.length * self.length
        th_acc = -self.g / self.length * math.sin(x[0]) - self.damping * x[1] + tau / ml2
        return np.array([th_acc], dtype=float)


# =============================================================================
# 4) Cart-pole
# =============================================================================

class CartPole(ControlledSystem):
    """Cart-pole.

    State: [cart_pos, cart_vel, theta, theta_dot]
      - theta is stored so theta=0 is *down*, theta=pi is *upright*.
    Control: [force]
    """

    state_dim = 4
    control_dim = 1

    def __init__(self, g: float = 9.81, m_cart: float = 1.0, m_pole: float = 0.1, length: float = 0.5):
        self.g = float(g)
        self.m_cart = float(m_cart)
        self.m_pole = float(m_pole)
        self.length = float(length)  # half-length

    def compute_dynamics(self, x, u, t):
        x_pos, x_dot, th, th_dot = np.asarray(x, dtype=float)
        force = float(np.asarray(u).reshape(-1)[0])

        total_mass = self.m_cart + self.m_pole
        polemass_length = self.m_pole * self.length

        # shift angle so internal dynamics match standard form (theta=0 upright)
        th_u = th - math.pi
        costh = math.cos(th_u)
        sinth = math.sin(th_u)

        temp = (force + polemass_length * th_dot * th_dot * sinth) / total_mass
        denom = self.length * (4.0 / 3.0 - self.m_pole * costh * costh / total_mass)

        th_acc = (self.g * sinth - costh * temp) / denom
        x_acc = temp - polemass_length * th_acc * costh / total_mass
        return np.array([x_dot, x_acc, th_dot, th_acc], dtype=float)


# =============================================================================
# Benchmark cases
# =============================================================================

def make_scalar_integrator(dt: float = 0.1, K: int = 10):
    settings = ShootingSettings(dt=dt, dt_sim=dt, integrator="euler", epsilon=0.0, max_iterations=5)
    cost = QuadraticCost(Q=1.0, R=1.0, Q_final=1.0, x_ref=[0.0], u_ref=[0.0])
    return dict(system=ScalarIntegrator(), cost=cost, x0=np.array([1.0]), horizon=K, settings=settings)


def make_double_integrator(dt: float = 0.05, K: int = 60):
    settings = ShootingSettings(dt=dt, dt_sim=dt / 5.0, integrator=RK_SYM, max_iterations=10)
    cost = QuadraticCost(
        Q=np.diag([1.0, 0.1]),
        R=np.array([[1e-2]]),
        Q_final=50.0,
        x_ref=[2.0, 0.0],
        u_ref=[0.0],
    )
    return dict(system=DoubleIntegrator(), cost=cost, x0=np.array([1.0, 0.0]), horizon=K, settings=settings)


def make_pendulum_swingup(dt: float = 0.02, K: int = 150):
    settings = ShootingSettings(
        dt=dt, dt_sim=dt / 4.0, integrator=RK_SYM,
        regularization="eigenvalue", epsilon=1e-4, max_iterations=40,
    )
    cost = QuadraticCost(
        Q=np.diag([0.1, 0.01]),
        R=np.array([[0.05]]),
        Q_final=np.diag([200.0, 10.0]),
        x_ref=[math.pi, 0.0],
        u_ref=[0.0],
        wrap_idx=[0],
    )
    return dict(system=Pendulum(), cost=cost, x0=np.array([0.0, 0.0]), horizon=K, settings=settings)


def make_cartpole_swingup(dt: float = 0.02, K: int = 200):
    settings = ShootingSettings(
        dt=dt, dt_sim=dt / 4.0, integrator=RK4,
        regularization="eigenvalue", epsilon=1e-4, max_iterations=50,
    )
    cost = QuadraticCost(
        Q=np.diag([0.01, 0.2, 0.0, 0.2]),
        R=np.array([[0.02]]),
        Q_final=np.diag([5.0, 5.0, 800.0, 40.0]),
        x_ref=[0.0, 0.0, math.pi, 0.0],
        u_ref=[0.0],
        wrap_idx=[2],
    )
    return dict(system=CartPole(), cost=cost, x0=np.zeros(4), horizon=K, settings=settings)
