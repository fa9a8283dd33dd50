# -*- coding: utf-8 -*-
"""Stage-indexed storage for the shooting solver.

Arrays are numpy stacks indexed by stage k:

  length K+1 : x, x_shot, lx, d, q, qv, Q, sv, S, t
  length K   : u, u_ff, A, B, P, rv, R, gv, G, H, Hi, Hi_inverse, L, lv

`d` is stored with K+1 rows; the last row is the terminal defect and is
always zero.

Only `resize` changes the horizon. It reallocates everything with zeros and
keeps nothing but the initial state, so a new guess has to be supplied before
the next solve.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from errors import ConfigurationError, InputShapeError

logger = logging.getLogger(__name__)


class StageData:
    def __init__(self, state_dim: int, control_dim: int):
        self.n = int(state_dim)
        self.m = int(control_dim)
        self.K = 0
        self.x0 = np.zeros(self.n)
        self.initialized = False
        self.resize(0)

    # -------------------------------------------------------------------------
    # sizing
    # -------------------------------------------------------------------------

    def resize(self, K: int):
        K = int(K)
        if K < 0:
            raise ConfigurationError(f"negative horizon K={K}")
        n, m = self.n, self.m
        self.K = K

        self.x = np.zeros((K + 1, n))
        self.x_shot = np.zeros((K + 1, n))
        self.lx = np.zeros((K + 1, n))
        self.d = np.zeros((K + 1, n))
        self.t = np.zeros(K + 1)

        self.u = np.zeros((K, m))
        self.u_ff = np.zeros((K, m))

        self.A = np.zeros((K, n, n))
        self.B = np.zeros((K, n, m))

        self.q = np.zeros(K + 1)
        self.qv = np.zeros((K + 1, n))
        self.Q = np.zeros((K + 1, n, n))
        self.P = np.zeros((K, m, n))
        self.rv = np.zeros((K, m))
        self.R = np.zeros((K, m, m))

        self.sv = np.zeros((K + 1, n))
        self.S = np.zeros((K + 1, n, n))

        self.gv = np.zeros((K, m))
        self.G = np.zeros((K, m, n))
        self.H = np.zeros((K, m, m))
        self.Hi = np.zeros((K, m, m))
        self.Hi_inverse = np.zeros((K, m, m))
        self.L = np.zeros((K, m, n))
        self.lv = np.zeros((K, m))

        self.clear_best()

        self.x[0] = self.x0
        self.initialized = False

    # -------------------------------------------------------------------------
    # inputs
    # -------------------------------------------------------------------------

    def set_initial_state(self, x0):
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        if x0.size != self.n:
            raise InputShapeError(f"initial state has size {x0.size}, expected {self.n}")
        self.x0 = x0.copy()
        self.x[0] = self.x0

    def set_initial_guess(self, states, controls, feedback: Optional[np.ndarray] = None):
        """Seed states, feed-forward controls and (optionally) feedback gains.

        Longer inputs are truncated to the horizon; shorter ones are rejected.
        """
        states = np.asarray(states, dtype=float)
        controls = np.asarray(controls, dtype=float)
        if states.ndim == 1:
            states = states.reshape(-1, self.n)
        if controls.ndim == 1:
            controls = controls.reshape(-1, self.m)

        if controls.shape[0] != states.shape[0] - 1:
            raise InputShapeError(
                "state and control trajectories are not of matching length: control should be "
                f"one shorter than state, got {controls.shape[0]} controls and {states.shape[0]} states"
            )
        if controls.shape[0] < self.K:
            raise InputShapeError(
                f"initial control guess too short: received {controls.shape[0]}, expected {self.K}"
            )
        if controls.shape[0] > self.K:
            logger.warning(
                "initial control guess too long (%d > %d), will truncate", controls.shape[0], self.K
            )
        if states.shape[1] != self.n or controls.shape[1] != self.m:
            raise InputShapeError(
                f"guess dimensions ({states.shape[1]}, {controls.shape[1]}) do not match system ({self.n}, {self.m})"
            )

        self.x[:] = states[: self.K + 1]
        self.u_ff[:] = controls[: self.K]
        self.u[:] = self.u_ff
        self.x0 = self.x[0].copy()

        if feedback is not None:
            self.set_feedback(feedback)

        self.initialized = True

    def set_feedback(self, L):
        L = np.asarray(L, dtype=float)
        if L.ndim != 3 or L.shape[1:] != (self.m, self.n):
            raise InputShapeError(f"feedback gains must have shape (K, {self.m}, {self.n}), got {L.shape}")
        if L.shape[0] < self.K:
            raise InputShapeError(
                f"Provided initial feedback controller too short, should be at least {self.K} but is {L.shape[0]} long."
            )
        if L.shape[0] > self.K:
            logger.warning("feedback controller too long (%d > %d), will truncate", L.shape[0], self.K)
        self.L[:] = L[: self.K]

    # -------------------------------------------------------------------------
    # outputs
    # -------------------------------------------------------------------------

    def clear_best(self):
        """Drop the best trajectory together with its cost."""
        self.x_best = None
        self.u_best = None
        self.t_best = None
        self.lowest_cost = np.inf

    def commit_best(self, intermediate_cost: float, final_cost: float) -> bool:
        """Remember the current trajectory if it is the cheapest so far."""
        total = float(intermediate_cost) + float(final_cost)
        if not np.isfinite(total) or total >= self.lowest_cost:
            return False
        self.lowest_cost = total
        self.x_best = self.x.copy()
        self.u_best = self.u_ff.copy()
        self.t_best = self.t.copy()
        return True

    @property
    def best_states(self) -> Optional[np.ndarray]:
        return None if self.x_best is None else self.x_best.copy()

    @property
    def best_controls(self) -> Optional[np.ndarray]:
        return None if self.u_best is None else self.u_best.copy()

    @property
    def best_times(self) -> Optional[np.ndarray]:
        return None if self.t_best is None else self.t_best.copy()

    def as_dict(self) -> dict:
        keys = (
            "x", "u", "u_ff", "t", "x_shot", "lx", "d", "A", "B", "q", "qv", "Q", "P",
            "rv", "R", "sv", "S", "gv", "G", "H", "Hi", "Hi_inverse", "L", "lv",
        )
        return {k: getattr(self, k).copy() for k in keys}
