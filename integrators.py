# -*- coding: utf-8 -*-
"""Fixed-step integrators.

Every integrator is bound to one system instance and advances a state vector
*in place*; the control is held constant (zero-order hold) over the call.

  - EulerIntegrator              explicit Euler
  - RK4Integrator                classical 4th-order Runge-Kutta
  - SymplecticEulerIntegrator    v first, then p with the new v
  - SymplecticRKIntegrator       Stoermer-Verlet (partitioned RK, 2nd order)

The symplectic variants require a `SymplecticSystem` (x = [p, v]).
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np

from errors import ConfigurationError
from settings import EULER, RK4, EULER_SYM, RK_SYM, INTEGRATORS

logger = logging.getLogger(__name__)


class Integrator:
    def __init__(self, system):
        self.system = system

    def step(self, x: np.ndarray, u: np.ndarray, t: float, dt: float) -> np.ndarray:
        raise NotImplementedError

    def integrate_n_steps(self, x: np.ndarray, u: np.ndarray, t0: float, n_steps: int, dt: float) -> np.ndarray:
        """Advance `x` by `n_steps` steps of size `dt` starting at `t0` (in place)."""
        t = float(t0)
        for _ in range(int(n_steps)):
            x[:] = self.step(x, u, t, dt)
            t += dt
        return x


class EulerIntegrator(Integrator):
    def step(self, x, u, t, dt):
        return x + dt * self.system.compute_dynamics(x, u, t)


class RK4Integrator(Integrator):
    def step(self, x, u, t, dt):
        f = self.system.compute_dynamics
        k1 = f(x, u, t)
        k2 = f(x + 0.5 * dt * k1, u, t + 0.5 * dt)
        k3 = f(x + 0.5 * dt * k2, u, t + 0.5 * dt)
        k4 = f(x + dt * k3, u, t + dt)
        return x + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


class SymplecticEulerIntegrator(Integrator):
    def step(self, x, u, t, dt):
        sys = self.system
        npos = sys.position_dim
        xn = np.array(x, dtype=float, copy=True)
        xn[npos:] = x[npos:] + dt * sys.compute_vdynamics(x, u, t)
        xn[:npos] = x[:npos] + dt * sys.compute_pdynamics(xn, u, t)
        return xn


class SymplecticRKIntegrator(Integrator):
    def step(self, x, u, t, dt):
        sys = self.system
        npos = sys.position_dim
        xn = np.array(x, dtype=float, copy=True)
        # half kick, drift, half kick
        xn[npos:] = x[npos:] + 0.5 * dt * sys.compute_vdynamics(x, u, t)
        xn[:npos] = x[:npos] + dt * sys.compute_pdynamics(xn, u, t + 0.5 * dt)
        xn[npos:] = xn[npos:] + 0.5 * dt * sys.compute_vdynamics(xn, u, t + dt)
        return xn


def make_integrators(system) -> Dict[str, Integrator]:
    """One integrator of every supported kind bound to `system`.

    The symplectic entries are only present for symplectic systems.
    """
    out = {
        EULER: EulerIntegrator(system),
        RK4: RK4Integrator(system),
    }
    if system.is_symplectic:
        out[EULER_SYM] = SymplecticEulerIntegrator(system)
        out[RK_SYM] = SymplecticRKIntegrator(system)
    return out


def select_integrator(integrators: Dict[str, Integrator], name: str) -> Integrator:
    if name not in INTEGRATORS:
        raise ConfigurationError(f"invalid integration mode selected: {name!r}")
    if name not in integrators:
        logger.warning("integrator %r requested for a non-symplectic system", name)
        raise ConfigurationError(f"integrator {name!r} requires a symplectic system")
    return integrators[name]
