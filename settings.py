# -*- coding: utf-8 -*-
"""Solver settings.

The selectors are plain strings. ``parameters_ok`` checks the numeric
parameters only; an unknown discretization is reported when the next
linearization runs, an unknown integrator when the next integration runs.
"""

from __future__ import annotations

from dataclasses import dataclass

from errors import ConfigurationError


FORWARD_EULER = "forward_euler"
BACKWARD_EULER = "backward_euler"
TUSTIN = "tustin"
DISCRETIZATIONS = (FORWARD_EULER, BACKWARD_EULER, TUSTIN)

EULER = "euler"
RK4 = "rk4"
EULER_SYM = "euler_sym"
RK_SYM = "rk_sym"
INTEGRATORS = (EULER, RK4, EULER_SYM, RK_SYM)
SYMPLECTIC_INTEGRATORS = (EULER_SYM, RK_SYM)

FIXED_CORRECTION = "fixed"
EIGENVALUE_CLIPPING = "eigenvalue"
REGULARIZATIONS = (FIXED_CORRECTION, EIGENVALUE_CLIPPING)

# below this value the fixed Hessian correction is skipped
EPSILON_FLOOR = 1e-10


@dataclass
class ShootingSettings:
    discretization: str = FORWARD_EULER
    integrator: str = RK4
    dt: float = 0.01
    dt_sim: float = 0.001
    n_threads: int = 1
    n_threads_blas: int = 1
    epsilon: float = 1e-5
    regularization: str = FIXED_CORRECTION
    record_smallest_eigenvalue: bool = False
    max_iterations: int = 100
    convergence_tol: float = 0.0
    rollout_on_reset: bool = True

    @property
    def n_sim_steps(self) -> int:
        """Integration micro-steps per stage."""
        return int(round(float(self.dt) / float(self.dt_sim)))

    def compute_k(self, tf: float) -> int:
        """Number of control stages for a horizon of ``tf`` seconds."""
        if tf < 0:
            raise ConfigurationError("negative time horizon specified")
        return int(round(float(tf) / float(self.dt)))

    def parameters_ok(self) -> bool:
        if not (self.dt > 0 and self.dt_sim > 0):
            return False
        if self.dt_sim > self.dt or self.n_sim_steps < 1:
            return False
        # a stage must be a whole number of micro-steps
        ratio = float(self.dt) / float(self.dt_sim)
        if abs(ratio - self.n_sim_steps) > 1e-6 * ratio:
            return False
        if int(self.n_threads) < 1 or int(self.n_threads_blas) < 1:
            return False
        if self.epsilon < 0:
            return False
        if int(self.max_iterations) < 1:
            return False
        if self.regularization not in REGULARIZATIONS:
            return False
        if self.convergence_tol < 0:
            return False
        return True
