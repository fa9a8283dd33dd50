# -*- coding: utf-8 -*-
"""Multiple-shooting bookkeeping.

Every stage k owns a *shot*: the state reached by integrating one stage
duration from its own stored x_k under u_k. The gap to the stored successor,

    d_k = x_shot_k - x_{k+1},      d_K = 0,

is the defect. Shots are integrated once after a reset; afterwards they are
moved with the local sensitivities instead of being re-integrated,

    x_shot_k += A_k lx_k + B_k lv_k,

where lx is the forward-propagated state correction

    lx_0 = 0,    lx_{k+1} = A_k lx_k + B_k lv_k + d_k.
"""

from __future__ import annotations

import numpy as np

from integrators import select_integrator


def initialize_single_shot(instances, data, settings, k: int):
    if k >= data.K:
        data.x_shot[k] = data.x[k]
        return
    dt, dt_sim = float(settings.dt), float(settings.dt_sim)
    integrator = select_integrator(instances.integrators, settings.integrator)
    x = np.array(data.x[k], dtype=float, copy=True)
    for j in range(settings.n_sim_steps):
        integrator.integrate_n_steps(x, data.u_ff[k], k * dt + j * dt_sim, 1, dt_sim)
    data.x_shot[k] = x


def update_single_shot(data, k: int):
    if k >= data.K:
        return
    data.x_shot[k] += data.A[k] @ data.lx[k] + data.B[k] @ data.lv[k]


def compute_single_defect(data, k: int):
    if k < data.K:
        data.d[k] = data.x_shot[k] - data.x[k + 1]
    else:
        data.d[data.K] = 0.0


def design_state_update(data, k: int):
    data.lx[k + 1] = data.A[k] @ data.lx[k] + data.B[k] @ data.lv[k] + data.d[k]


def compute_state_and_control_updates(data):
    """Forward sweep applying the new policy to the stored trajectory.

    The feedback part is folded into lv so that lv_k is the full control
    correction used by the next shot update. Returns (dx_norm, d_norm).
    """
    data.lx[0] = 0.0
    for k in range(data.K):
        data.lv[k] = data.lv[k] + data.L[k] @ data.lx[k]
        design_state_update(data, k)

    data.x += data.lx
    data.u_ff += data.lv
    data.u[:] = data.u_ff

    dx_norm = float(np.sum(np.linalg.norm(data.lx, axis=1)))
    d_norm = float(np.sum(np.linalg.norm(data.d, axis=1)))
    return dx_norm, d_norm
