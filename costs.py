# -*- coding: utf-8 -*-
"""Cost functions.

The solver talks to a cost through a small stateful interface: set the
current (x, u, t), then query the value and its first/second derivatives.
Intermediate quantities are *rates* (the solver multiplies them by dt);
terminal quantities are used as they are.

`QuadraticCost` is the tracking cost

    l(x, u)  = 0.5 e^T Q e + 0.5 du^T R du + w (+ extra_stage_cost(x, u))
    Phi(x_K) = 0.5 e_K^T Q_f e_K

with e = wrap(x - x_ref) and du = u - u_ref. `extra_stage_cost(x, u)` returns
(c, c_x, c_xx) and adds a second-order Taylor model of an additional running
state cost (e.g., obstacle penalties).
"""

from __future__ import annotations

import copy
from typing import List, Optional

import numpy as np

from utils import _sym, as_weight_matrix, wrap_error


class CostFunction:
    """Interface used by the solver."""

    def __init__(self):
        self.x = None
        self.u = None
        self.t = 0.0

    def set_current_state_and_control(self, x: np.ndarray, u: np.ndarray, t: float = 0.0):
        self.x = np.asarray(x, dtype=float).reshape(-1)
        self.u = np.asarray(u, dtype=float).reshape(-1)
        self.t = float(t)

    def evaluate_intermediate(self) -> float:
        raise NotImplementedError

    def state_derivative_intermediate(self) -> np.ndarray:
        raise NotImplementedError

    def state_second_derivative_intermediate(self) -> np.ndarray:
        raise NotImplementedError

    def state_control_derivative_intermediate(self) -> np.ndarray:
        raise NotImplementedError

    def control_derivative_intermediate(self) -> np.ndarray:
        raise NotImplementedError

    def control_second_derivative_intermediate(self) -> np.ndarray:
        raise NotImplementedError

    def evaluate_terminal(self) -> float:
        raise NotImplementedError

    def state_derivative_terminal(self) -> np.ndarray:
        raise NotImplementedError

    def state_second_derivative_terminal(self) -> np.ndarray:
        raise NotImplementedError

    def clone(self) -> "CostFunction":
        return copy.deepcopy(self)


class QuadraticCost(CostFunction):
    def __init__(
        self,
        Q,
        R,
        Q_final,
        x_ref,
        u_ref,
        *,
        w: float = 0.0,
        wrap_idx: Optional[List[int]] = None,
        extra_stage_cost=None,
    ):
        super().__init__()
        self.x_ref = np.asarray(x_ref, dtype=float).reshape(-1)
        self.u_ref = np.asarray(u_ref, dtype=float).reshape(-1)
        n, m = self.x_ref.size, self.u_ref.size
        self.Q = as_weight_matrix(Q, n, "Q")
        self.R = as_weight_matrix(R, m, "R")
        self.Q_final = as_weight_matrix(Q_final, n, "Q_final")
        self.w = float(w)
        self.wrap_idx = list(wrap_idx) if wrap_idx else []
        self.extra_stage_cost = extra_stage_cost

    # -- helpers --------------------------------------------------------------

    def _e(self) -> np.ndarray:
        return np.atleast_1d(wrap_error(self.x - self.x_ref, self.wrap_idx)).reshape(-1)

    def _du(self) -> np.ndarray:
        return np.atleast_1d(self.u - self.u_ref).reshape(-1)

    def _extra(self):
        if self.extra_stage_cost is None:
            n = self.x_ref.size
            return 0.0, np.zeros(n), np.zeros((n, n))
        c, cx, cxx = self.extra_stage_cost(self.x, self.u)
        return (
            float(c),
            np.asarray(cx, dtype=float).reshape(-1),
            _sym(np.asarray(cxx, dtype=float)),
        )

    # -- intermediate ---------------------------------------------------------

    def evaluate_intermediate(self):
        e, du = self._e(), self._du()
        c_extra, _, _ = self._extra()
        return 0.5 * float(e @ (self.Q @ e)) + 0.5 * float(du @ (self.R @ du)) + self.w + c_extra

    def state_derivative_intermediate(self):
        _, cx, _ = self._extra()
        return self.Q @ self._e() + cx

    def state_second_derivative_intermediate(self):
        _, _, cxx = self._extra()
        return self.Q + cxx

    def state_control_derivative_intermediate(self):
        return np.zeros((self.u_ref.size, self.x_ref.size))

    def control_derivative_intermediate(self):
        return self.R @ self._du()

    def control_second_derivative_intermediate(self):
        return self.R.copy()

    # -- terminal -------------------------------------------------------------

    def evaluate_terminal(self):
        e = self._e()
        return 0.5 * float(e @ (self.Q_final @ e))

    def state_derivative_terminal(self):
        return self.Q_final @ self._e()

    def state_second_derivative_terminal(self):
        return self.Q_final.copy()


def evaluate_trajectory_cost(cost, dt: float, X: np.ndarray, U: np.ndarray):
    """(intermediate, final) cost of a trajectory; intermediate is scaled by dt."""
    K = len(U)
    intermediate = 0.0
    for k in range(K):
        cost.set_current_state_and_control(X[k], U[k], dt * k)
        intermediate += cost.evaluate_intermediate()
    intermediate *= dt

    cost.set_current_state_and_control(X[K], np.zeros(np.asarray(U).shape[1]), dt * K)
    final = cost.evaluate_terminal()
    return float(intermediate), float(final)
