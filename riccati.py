# -*- coding: utf-8 -*-
"""Quadratic cost model + regularized backward Riccati recursion.

Notation per stage k (all intermediate terms already scaled by dt):

  q, qv, Q        cost value, state gradient, state Hessian
  rv, R, P        control gradient, control Hessian, control-state cross term
  S, sv           Hessian / gradient of the cost-to-go
  gv, G, H        control gradient, cross Hessian, control Hessian of the
                  stage Q-function
  Hi, Hi_inverse  regularized H and the *negative* of its inverse
  L, lv           feedback gain and feed-forward correction

Because `Hi_inverse` carries the minus sign, L = Hi_inverse G and
lv = Hi_inverse gv are the usual -Hi^-1 G and -Hi^-1 gv.

Cost-to-go update (lifted for multiple shooting, d_k = defect):

  S_k  = Q_k + A^T S_{k+1} A - L^T Hi L                      (symmetrized)
  sv_k = qv_k + A^T sv_{k+1} + A^T S_{k+1} d_k
         + L^T Hi lv + L^T gv + G^T lv
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from settings import EIGENVALUE_CLIPPING, EPSILON_FLOOR, FIXED_CORRECTION
from utils import _sym, lower_view, spd_inverse

logger = logging.getLogger(__name__)


@dataclass
class RiccatiDiagnostics:
    du_norm: float = 0.0
    smallest_eigenvalue: float = np.inf
    smallest_eigenvalue_iteration: float = np.inf

    def start_iteration(self):
        self.du_norm = 0.0
        self.smallest_eigenvalue_iteration = np.inf

    def record_eigenvalue(self, lam_min: float):
        self.smallest_eigenvalue = min(self.smallest_eigenvalue, float(lam_min))
        self.smallest_eigenvalue_iteration = min(self.smallest_eigenvalue_iteration, float(lam_min))


# =============================================================================
# Quadratic approximation of the cost
# =============================================================================

def compute_quadratic_costs(data, cost, dt: float, k: int):
    cost.set_current_state_and_control(data.x[k], data.u_ff[k], dt * k)
    data.q[k] = cost.evaluate_intermediate() * dt
    data.qv[k] = np.asarray(cost.state_derivative_intermediate(), dtype=float).reshape(-1) * dt
    data.Q[k] = np.asarray(cost.state_second_derivative_intermediate(), dtype=float) * dt
    data.P[k] = np.asarray(cost.state_control_derivative_intermediate(), dtype=float) * dt
    data.rv[k] = np.asarray(cost.control_derivative_intermediate(), dtype=float).reshape(-1) * dt
    data.R[k] = np.asarray(cost.control_second_derivative_intermediate(), dtype=float) * dt


def initialize_cost_to_go(data, cost, dt: float):
    """Seed S_K, sv_K with the terminal cost derivatives."""
    K = data.K
    cost.set_current_state_and_control(data.x[K], np.zeros(data.m), dt * K)
    data.q[K] = cost.evaluate_terminal()
    data.qv[K] = np.asarray(cost.state_derivative_terminal(), dtype=float).reshape(-1)
    data.Q[K] = np.asarray(cost.state_second_derivative_terminal(), dtype=float)
    data.S[K] = data.Q[K]
    data.sv[K] = data.qv[K]


# =============================================================================
# Regularization
# =============================================================================

def regularize_fixed(H: np.ndarray, epsilon: float):
    """Hi = H + eps I (skipped below the numerical floor), inverted by Cholesky."""
    H = lower_view(H)
    if epsilon > EPSILON_FLOOR:
        Hi = H + float(epsilon) * np.eye(H.shape[0])
    else:
        Hi = H
    return Hi, -spd_inverse(Hi)


def regularize_eigenvalue(H: np.ndarray, epsilon: float):
    """Clip the spectrum of H from below at eps.

    Returns (Hi, Hi_inverse, smallest raw eigenvalue).
    """
    lam, V = np.linalg.eigh(_sym(np.asarray(H, dtype=float)))
    D = np.maximum(lam, float(epsilon))
    if np.any(D <= 0.0):
        raise np.linalg.LinAlgError(
            f"regularized control Hessian is singular (smallest eigenvalue {lam.min():g}, epsilon {epsilon:g})"
        )
    Hi = _sym((V * D) @ V.T)
    Hi_inverse = _sym((V * (-1.0 / D)) @ V.T)
    return Hi, Hi_inverse, float(lam.min())


# =============================================================================
# Backward pass
# =============================================================================

def design_controller(data, k: int, settings, diag: RiccatiDiagnostics):
    A, B = data.A[k], data.B[k]
    S_next = lower_view(data.S[k + 1])

    data.gv[k] = data.rv[k] + B.T @ data.sv[k + 1]
    data.G[k] = data.P[k] + B.T @ S_next @ A
    data.H[k] = data.R[k] + B.T @ S_next @ B

    if settings.regularization == FIXED_CORRECTION:
        Hi, Hi_inverse = regularize_fixed(data.H[k], settings.epsilon)
        if settings.record_smallest_eigenvalue:
            diag.record_eigenvalue(np.linalg.eigvalsh(Hi).min())
    elif settings.regularization == EIGENVALUE_CLIPPING:
        Hi, Hi_inverse, lam_min = regularize_eigenvalue(data.H[k], settings.epsilon)
        if settings.record_smallest_eigenvalue:
            diag.record_eigenvalue(lam_min)
    else:
        raise ValueError(f"unknown regularization {settings.regularization!r}")

    data.Hi[k] = Hi
    data.Hi_inverse[k] = Hi_inverse

    data.L[k] = Hi_inverse @ data.G[k]
    data.lv[k] = Hi_inverse @ data.gv[k]
    diag.du_norm += float(np.linalg.norm(data.lv[k]))


def compute_cost_to_go(data, k: int):
    A, L, Hi, lv = data.A[k], data.L[k], data.Hi[k], data.lv[k]
    S_next = data.S[k + 1]

    S = data.Q[k] + A.T @ S_next @ A - L.T @ Hi @ L
    data.S[k] = _sym(S)

    data.sv[k] = (
        data.qv[k]
        + A.T @ data.sv[k + 1]
        + A.T @ S_next @ data.d[k]  # lifted term
        + L.T @ Hi @ lv
        + L.T @ data.gv[k]
        + data.G[k].T @ lv
    )


def backward_pass(data, settings, diag: RiccatiDiagnostics):
    """Run k = K-1 .. 0. S_K, sv_K must already be seeded."""
    for k in reversed(range(data.K)):
        design_controller(data, k, settings, diag)
        compute_cost_to_go(data, k)
    logger.debug("backward pass done, du_norm=%.6g", diag.du_norm)
