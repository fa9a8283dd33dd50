# -*- coding: utf-8 -*-
"""Multiple-shooting Gauss-Newton trajectory optimizer.

One iteration of `ShootingSolver.run_iteration`:

  0) after a reset only: rollout from x0 under the current policy and
     integrate one shot per stage
  1) linearize the dynamics at every stage                  (parallel)
  2) quadratic cost model at every stage                    (parallel)
  3) seed the cost-to-go with the terminal cost
  4) move the shots with the local sensitivities            (parallel)
  5) defects d_k = x_shot_k - x_{k+1}                       (parallel)
  6) regularized backward Riccati pass                      (sequential)
  7) line search (always accepts the full step)
  8) forward state/control update, cost of the new trajectory

The phases never overlap: every parallel phase finishes before the next one
starts.

Errors
------
Caller errors (`ConfigurationError`, `InputShapeError`) always propagate.
Anything else raised during an iteration is logged and `solve` returns False;
the last committed trajectory stays available.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from costs import evaluate_trajectory_cost
from errors import ConfigurationError, InputShapeError
from linearization import FiniteDiffLinearSystem, linearize_stage
from parallel import WorkerPool
from riccati import (
    RiccatiDiagnostics,
    backward_pass,
    compute_quadratic_costs,
    initialize_cost_to_go,
)
from rollout import rollout_system
from settings import ShootingSettings
from shooting import (
    compute_single_defect,
    compute_state_and_control_updates,
    initialize_single_shot,
    update_single_shot,
)
from trajectory import StageData

logger = logging.getLogger(__name__)


class ShootingSolver:
    def __init__(
        self,
        system,
        cost,
        settings: Optional[ShootingSettings] = None,
        *,
        linear_system=None,
        horizon: Optional[int] = None,
        x0: Optional[np.ndarray] = None,
    ):
        settings = ShootingSettings() if settings is None else settings
        if not settings.parameters_ok():
            raise ConfigurationError("ShootingSettings are incorrect. Aborting.")
        if system is None:
            raise ConfigurationError("system dynamics are None")

        self.settings = settings
        self.pool = WorkerPool(settings.n_threads)
        self.data = StageData(system.state_dim, system.control_dim)
        self.diag = RiccatiDiagnostics()

        self.iteration = 0
        self.history: List[Dict[str, Any]] = []
        self.initial_cost = np.inf
        self.intermediate_cost = np.inf
        self.final_cost = np.inf
        self.last_rollout_ok = True
        self.configured = False
        self._fresh = True
        self._auto_linear = linear_system is None

        self.change_nonlinear_system(system)
        if linear_system is not None:
            self.change_linear_system(linear_system)
        self.change_cost_function(cost)
        self.configure(settings)

        if x0 is not None:
            self.change_initial_state(x0)
        if horizon is not None:
            self.change_time_horizon(horizon)

    # =========================================================================
    # configuration surface
    # =========================================================================

    def configure(self, settings: ShootingSettings):
        if not settings.parameters_ok():
            raise ConfigurationError("ShootingSettings are incorrect. Aborting.")
        if int(settings.n_threads) != self.pool.n_threads:
            raise ConfigurationError("Number of threads cannot be changed after the solver has been created.")
        self.settings = settings
        self.reset()
        self.configured = True

    def reset(self):
        """Forget per-stage results and the best trajectory; the next iteration starts with a rollout."""
        self._fresh = True
        self.iteration = 0
        self.data.clear_best()
        self.diag = RiccatiDiagnostics()

    def change_time_horizon(self, K: int):
        K = int(K)
        if K <= 0:
            raise ConfigurationError(f"Time horizon too small resulting in {K} stages")
        if K == self.data.K:
            return
        self.data.resize(K)
        self.reset()

    def change_time_horizon_seconds(self, tf: float):
        self.change_time_horizon(self.settings.compute_k(tf))

    def change_initial_state(self, x0):
        self.data.set_initial_state(x0)
        self.reset()

    def change_cost_function(self, cost):
        if cost is None:
            raise ConfigurationError("cost function is None")
        self.pool.set_cost(cost)
        self.reset()

    def change_nonlinear_system(self, system):
        if system is None:
            raise ConfigurationError("system dynamics are None")
        if (system.state_dim, system.control_dim) != (self.data.n, self.data.m):
            raise ConfigurationError(
                f"system dimensions ({system.state_dim}, {system.control_dim}) do not match "
                f"solver dimensions ({self.data.n}, {self.data.m})"
            )
        self.pool.set_system(system)
        if self._auto_linear:
            self.pool.set_linear_system(FiniteDiffLinearSystem(system))
        self.reset()

    def change_linear_system(self, linear_system):
        """Swap the Jacobian provider. Linearizations are redone every iteration, so no reset."""
        if linear_system is None:
            raise ConfigurationError("linear system is None")
        self._auto_linear = False
        self.pool.set_linear_system(linear_system)

    def set_initial_guess(self, states, controls, feedback=None):
        self.data.set_initial_guess(states, controls, feedback)
        self.reset()

    def check_problem(self):
        data = self.data
        if data.K == 0:
            raise ConfigurationError("Time horizon too small resulting in 0 stages")
        if int(self.settings.n_threads) != self.pool.n_threads:
            raise ConfigurationError("Number of threads cannot be changed after the solver has been created.")
        if not self.settings.parameters_ok():
            raise ConfigurationError("ShootingSettings are incorrect. Aborting.")
        if data.L.shape[0] < data.K:
            raise InputShapeError(
                f"Provided initial feedback controller too short, should be at least {data.K} but is {data.L.shape[0]} long."
            )
        if data.u_ff.shape[0] < data.K:
            raise InputShapeError(
                f"Provided initial feed forward controller too short, should be at least {data.K} but is {data.u_ff.shape[0]} long."
            )

    # =========================================================================
    # stage-parallel phases
    # =========================================================================

    def _run_stages(self, fn, stages):
        self.pool.run_stages(fn, stages, blas_threads=self.settings.n_threads_blas)

    def linearize_dynamics(self):
        data, s = self.data, self.settings
        dt = float(s.dt)

        def work(worker_id, k):
            lin = self.pool.instances[worker_id].linear_system
            data.A[k], data.B[k] = linearize_stage(lin, s.discretization, dt, data.x[k], data.u_ff[k], k * dt)

        self._run_stages(work, range(data.K))

    def compute_quadratic_costs(self):
        data, dt = self.data, float(self.settings.dt)

        def work(worker_id, k):
            compute_quadratic_costs(data, self.pool.instances[worker_id].cost, dt, k)

        self._run_stages(work, range(data.K))
        initialize_cost_to_go(data, self.pool.main.cost, dt)

    def initialize_shots(self):
        data, s = self.data, self.settings

        def work(worker_id, k):
            initialize_single_shot(self.pool.instances[worker_id], data, s, k)

        self._run_stages(work, range(data.K + 1))

    def update_shots(self):
        data = self.data
        self._run_stages(lambda worker_id, k: update_single_shot(data, k), range(data.K + 1))

    def compute_defects(self):
        data = self.data
        self._run_stages(lambda worker_id, k: compute_single_defect(data, k), range(data.K + 1))

    # =========================================================================
    # rollout / cost
    # =========================================================================

    def rollout(self, termination_flag: Optional[threading.Event] = None) -> bool:
        """Simulate from x0 under the current policy and commit on success."""
        data = self.data
        ok, X, U, T = rollout_system(
            self.pool.main,
            self.settings,
            data.x0,
            data.u_ff,
            data.L,
            data.x,
            K=data.K,
            termination_flag=termination_flag,
        )
        self.last_rollout_ok = ok
        if not ok:
            logger.warning("rollout failed, keeping the previous trajectory")
            return False
        data.x[:] = X
        data.u[:] = U
        data.u_ff[:] = U
        data.t[:] = T
        return True

    def compute_costs_of_trajectory(self, X=None, U=None):
        data = self.data
        X = data.x if X is None else X
        U = data.u_ff if U is None else U
        return evaluate_trajectory_cost(self.pool.main.cost, float(self.settings.dt), X, U)

    def line_search(self) -> bool:
        """Step acceptance hook; the full Gauss-Newton step is always taken."""
        return True

    # =========================================================================
    # iteration control
    # =========================================================================

    def run_iteration(self, termination_flag: Optional[threading.Event] = None) -> bool:
        """One Gauss-Newton iteration. Returns True if another one should follow."""
        if not self.data.initialized:
            raise ConfigurationError("solver is not initialized, provide an initial guess first")
        if not self.configured:
            raise ConfigurationError("solver is not configured")

        self.check_problem()
        self.diag.start_iteration()
        data, s = self.data, self.settings
        timers: Dict[str, float] = {}

        if termination_flag is not None and termination_flag.is_set():
            self.last_rollout_ok = False
            return False

        if self._fresh:
            t0 = time.perf_counter()
            if s.rollout_on_reset:
                if not self.rollout(termination_flag):
                    logger.warning("system became unstable, aborting iteration")
                    return False
            else:
                data.t[:] = np.arange(data.K + 1) * float(s.dt)
                data.u[:] = data.u_ff
            self.initial_cost = sum(self.compute_costs_of_trajectory())
            self.initialize_shots()
            timers["t_rollout"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        self.linearize_dynamics()
        timers["t_linearize"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        self.compute_quadratic_costs()
        timers["t_cost"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        if not self._fresh:
            self.update_shots()
        self._fresh = False
        timers["t_shots"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        self.compute_defects()
        timers["t_defects"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        backward_pass(data, s, self.diag)
        timers["t_backward"] = time.perf_counter() - t0

        found_better = self.line_search()

        t0 = time.perf_counter()
        dx_norm, d_norm = compute_state_and_control_updates(data)
        self.intermediate_cost, self.final_cost = self.compute_costs_of_trajectory()
        data.commit_best(self.intermediate_cost, self.final_cost)
        timers["t_update"] = time.perf_counter() - t0

        self.history.append({
            "iteration": self.iteration,
            "intermediate_cost": self.intermediate_cost,
            "final_cost": self.final_cost,
            "total_cost": self.intermediate_cost + self.final_cost,
            "d_norm": d_norm,
            "dx_norm": dx_norm,
            "du_norm": self.diag.du_norm,
            "smallest_eigenvalue_iteration": self.diag.smallest_eigenvalue_iteration,
            "smallest_eigenvalue": self.diag.smallest_eigenvalue,
            **timers,
        })
        self._debug_print(self.history[-1])

        self.iteration += 1

        converged = self.diag.du_norm <= s.convergence_tol and d_norm <= s.convergence_tol
        return bool(found_better and not converged)

    def solve(self, termination_flag: Optional[threading.Event] = None) -> bool:
        """Iterate until no improvement or `max_iterations`.

        Returns False if an iteration raised a numerical error, or if the
        rollout diverged or was cancelled.
        """
        found_better = True
        n_iter = 0
        self.last_rollout_ok = True
        try:
            while found_better and n_iter < int(self.settings.max_iterations):
                logger.debug("running iteration %d", n_iter + 1)
                found_better = self.run_iteration(termination_flag)
                n_iter += 1
        except (ConfigurationError, InputShapeError):
            raise
        except Exception as e:
            logger.error("solve() did not succeed due to: %r", e)
            return False
        return bool(self.last_rollout_ok)

    def _debug_print(self, rec: Dict[str, Any]):
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            "iteration %d: intermediate %.10g, final %.10g, total %.10g, "
            "defect norm %.6g, state update norm %.6g, control update norm %.6g",
            rec["iteration"], rec["intermediate_cost"], rec["final_cost"], rec["total_cost"],
            rec["d_norm"], rec["dx_norm"], rec["du_norm"],
        )
        if self.settings.record_smallest_eigenvalue:
            logger.debug(
                "smallest eigenvalue this iteration %.6g, overall %.6g",
                rec["smallest_eigenvalue_iteration"], rec["smallest_eigenvalue"],
            )

    # =========================================================================
    # outputs
    # =========================================================================

    def get_solution(self):
        """Current (states, feed-forward controls, feedback gains)."""
        data = self.data
        return data.x.copy(), data.u_ff.copy(), data.L.copy()

    def get_control_trajectory(self):
        """(time stamps, controls) of the best trajectory; one shorter than the states."""
        data = self.data
        U = data.best_controls
        if U is None:
            return data.t[:-1].copy(), data.u_ff.copy()
        return data.best_times[:-1], U

    def get_state_trajectory(self):
        data = self.data
        X = data.best_states
        if X is None:
            return data.t.copy(), data.x.copy()
        return data.best_times, X

    def get_cost(self) -> float:
        return float(self.data.lowest_cost)

    def get_feedback_gains(self) -> np.ndarray:
        return self.data.L.copy()

    def retrieve_last_linearized_model(self):
        return [A.copy() for A in self.data.A], [B.copy() for B in self.data.B]

    def history_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.history)

    def export_log(self, path: str):
        """Dump every stage-indexed array of the last iteration to an .npz file."""
        np.savez(path, iteration=self.iteration, K=self.data.K, **self.data.as_dict())

    # =========================================================================
    # lifetime
    # =========================================================================

    def close(self):
        self.pool.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
