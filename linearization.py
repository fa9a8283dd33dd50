# -*- coding: utf-8 -*-
"""Jacobian providers + discretization of the linearized dynamics.

A linear system (Jacobian provider) returns the continuous-time Jacobians
J_x = df/dx and J_u = df/du at (x, u, t). `discretize` turns them into the
stage matrices (A_k, B_k) for a stage of length dt:

  forward Euler:   A = I + dt J_x,                      B = dt J_u
  backward Euler:  A = (I - dt J_x)^-1,                 B = A dt J_u
  Tustin:          A = (I - dt/2 J_x)^-1 (I + dt/2 J_x), B = (I - dt/2 J_x)^-1 dt J_u

The implicit schemes need (I - c dt J_x) to be invertible; a singular matrix
surfaces as `LinAlgError` from the solve.

`FiniteDiffLinearSystem` differentiates a `ControlledSystem` numerically with
*relative* step sizes,
  h_i = max(eps, rel * max(1, |x_i|))
per dimension. A constant tiny step can be too small for strongly nonlinear
systems and leads to noisy Jacobians.
"""

from __future__ import annotations

import copy

import numpy as np

from errors import ConfigurationError
from settings import FORWARD_EULER, BACKWARD_EULER, TUSTIN


# =============================================================================
# Jacobian providers
# =============================================================================

class LinearSystem:
    def get_derivative_state(self, x: np.ndarray, u: np.ndarray, t: float = 0.0) -> np.ndarray:
        raise NotImplementedError

    def get_derivative_control(self, x: np.ndarray, u: np.ndarray, t: float = 0.0) -> np.ndarray:
        raise NotImplementedError

    def clone(self) -> "LinearSystem":
        return copy.deepcopy(self)


class ConstantLinearSystem(LinearSystem):
    """x' = A x + B u (Jacobians independent of the operating point)."""

    def __init__(self, A, B):
        self.A = np.atleast_2d(np.asarray(A, dtype=float))
        self.B = np.atleast_2d(np.asarray(B, dtype=float))

    def get_derivative_state(self, x, u, t=0.0):
        return self.A.copy()

    def get_derivative_control(self, x, u, t=0.0):
        return self.B.copy()


class FiniteDiffLinearSystem(LinearSystem):
    def __init__(
        self,
        system,
        *,
        central: bool = True,
        epsx: float = 1e-5,
        epsu: float = 1e-5,
        relx: float = 1e-6,
        relu: float = 1e-6,
    ):
        self.system = system
        self.central = bool(central)
        self.epsx = float(epsx)
        self.epsu = float(epsu)
        self.relx = float(relx)
        self.relu = float(relu)

    def get_derivative_state(self, x, u, t=0.0):
        x = np.asarray(x, dtype=float).reshape(-1)
        u = np.asarray(u, dtype=float).reshape(-1)
        f = self.system.compute_dynamics
        n = x.size
        f0 = None if self.central else f(x, u, t)
        A = np.zeros((n, n), dtype=float)
        for i in range(n):
            hi = max(self.epsx, self.relx * max(1.0, abs(float(x[i]))))
            xp = x.copy()
            xp[i] += hi
            if self.central:
                xm = x.copy()
                xm[i] -= hi
                A[:, i] = (f(xp, u, t) - f(xm, u, t)) / (2.0 * hi)
            else:
                A[:, i] = (f(xp, u, t) - f0) / hi
        return A

    def get_derivative_control(self, x, u, t=0.0):
        x = np.asarray(x, dtype=float).reshape(-1)
        u = np.asarray(u, dtype=float).reshape(-1)
        f = self.system.compute_dynamics
        m = u.size
        f0 = f(x, u, t)
        B = np.zeros((f0.size, m), dtype=float)
        for j in range(m):
            hj = max(self.epsu, self.relu * max(1.0, abs(float(u[j]))))
            up = u.copy()
            up[j] += hj
            if self.central:
                um = u.copy()
                um[j] -= hj
                B[:, j] = (f(x, up, t) - f(x, um, t)) / (2.0 * hj)
            else:
                B[:, j] = (f(x, up, t) - f0) / hj
        return B


# =============================================================================
# Discretization
# =============================================================================

def discretize(scheme: str, dt: float, Jx: np.ndarray, Ju: np.ndarray):
    """Stage matrices (A, B) from continuous Jacobians."""
    Jx = np.atleast_2d(np.asarray(Jx, dtype=float))
    Ju = np.atleast_2d(np.asarray(Ju, dtype=float))
    I = np.eye(Jx.shape[0])
    dt = float(dt)

    if scheme == FORWARD_EULER:
        return I + dt * Jx, dt * Ju
    if scheme == BACKWARD_EULER:
        A = np.linalg.solve(I - dt * Jx, I)
        return A, A @ (dt * Ju)
    if scheme == TUSTIN:
        M = np.linalg.solve(I - 0.5 * dt * Jx, I)
        return M @ (I + 0.5 * dt * Jx), M @ (dt * Ju)
    raise ConfigurationError(f"Unknown discretization scheme: {scheme!r}")


def linearize_stage(linear_system, scheme: str, dt: float, x, u, t: float):
    Jx = linear_system.get_derivative_state(x, u, t)
    Ju = linear_system.get_derivative_control(x, u, t)
    return discretize(scheme, dt, Jx, Ju)
