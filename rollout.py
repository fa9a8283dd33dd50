# -*- coding: utf-8 -*-
"""Forward simulation under a time-varying affine feedback policy.

    u_k = u_ff_k + L_k (x_k - x_ref_k)

The control is held over the stage and the state is advanced with
`settings.n_sim_steps` micro-steps of the selected integrator.

Failures come in two kinds:
  - numerical (non-finite state or control, or cancellation): the rollout
    returns ok=False and nothing it produced should be used;
  - structural (unknown integrator, wrong output length): ConfigurationError.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple

import numpy as np

from errors import ConfigurationError
from integrators import select_integrator
from utils import is_finite

logger = logging.getLogger(__name__)


def rollout_system(
    instances,
    settings,
    x0: np.ndarray,
    u_ff: np.ndarray,
    L: np.ndarray,
    x_ref: np.ndarray,
    *,
    K: Optional[int] = None,
    termination_flag: Optional[threading.Event] = None,
) -> Tuple[bool, np.ndarray, np.ndarray, np.ndarray]:
    """Roll out from x0 with the worker's own system/integrator.

    Returns (ok, X, U, T) with X of shape (K+1, n), U of shape (K, m) and T the
    stage time grid. On failure the arrays are partially filled and must be
    discarded.
    """
    K = int(len(u_ff) if K is None else K)
    dt = float(settings.dt)
    dt_sim = float(settings.dt_sim)
    steps = settings.n_sim_steps
    integrator = select_integrator(instances.integrators, settings.integrator)

    x = np.array(x0, dtype=float, copy=True).reshape(-1)
    n = x.size
    m = np.asarray(u_ff).shape[1]

    X = [x.copy()]
    U = []
    T = [0.0]

    for i in range(K):
        if termination_flag is not None and termination_flag.is_set():
            logger.debug("rollout cancelled at stage %d", i)
            return False, _stack(X, (0, n)), _stack(U, (0, m)), np.asarray(T)

        u = u_ff[i] + L[i] @ (x - x_ref[i])
        U.append(u)
        if not is_finite(u):
            logger.warning("control unstable at stage %d", i)
            return False, _stack(X, (0, n)), _stack(U, (0, m)), np.asarray(T)

        for j in range(steps):
            integrator.integrate_n_steps(x, u, i * dt + j * dt_sim, 1, dt_sim)

        X.append(x.copy())
        T.append((i + 1) * dt)

        if not is_finite(x):
            logger.warning("system unstable at stage %d", i + 1)
            return False, _stack(X, (0, n)), _stack(U, (0, m)), np.asarray(T)

    if len(X) != K + 1:
        raise ConfigurationError(
            f"Rollout did not provide the correct amount of states: expected {K + 1}, got {len(X)}"
        )
    if len(U) != K:
        raise ConfigurationError(
            f"Rollout did not provide the correct amount of controls: expected {K}, got {len(U)}"
        )

    return True, np.vstack(X), _stack(U, (0, m)), np.asarray(T)


def _stack(rows, empty_shape):
    if not rows:
        return np.zeros(empty_shape)
    return np.vstack(rows)
