# -*- coding: utf-8 -*-
"""Benchmark runner (per-case summaries + tqdm progress).

This script runs a fixed number of randomized trials per case, for a set of
solver variants (regularization policy x discretization scheme):
  - fixed        fixed Hessian correction, forward Euler
  - eigen        eigenvalue clipping,      forward Euler
  - eigen-tustin eigenvalue clipping,      Tustin

Outputs:
  <outdir>/
    summary_all.csv                      # all cases concatenated
    summary_agg.csv                      # aggregated per (case, variant)
    <CaseName>/summary_all.csv
    <CaseName>/summary_agg.csv
    <CaseName>/history_<variant>.csv     # per-iteration diagnostics, trial 0
    <CaseName>/trajectory_<variant>.csv  # best trajectory, trial 0

Usage (from this folder):
  python run_suite.py
  python run_suite.py --trials 5 --max-iter 10 --threads 4 --outdir shooting_results_test
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import time
from typing import Callable, Dict, List, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from solver import ShootingSolver
from systems import (
    make_scalar_integrator,
    make_double_integrator,
    make_pendulum_swingup,
    make_cartpole_swingup,
)
from utils import wrap_error

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Trial sampling
# -----------------------------------------------------------------------------

def _rng(seed: int) -> np.random.Generator:
    return np.random.default_rng(int(seed))


def sample_x(base: np.ndarray, sigma: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    base = np.asarray(base, dtype=float).reshape(-1)
    sigma = np.asarray(sigma, dtype=float).reshape(-1)
    if sigma.size == 1:
        sigma = np.full_like(base, float(sigma[0]))
    return base + sigma * rng.standard_normal(base.shape)


# -----------------------------------------------------------------------------
# Case / variant registry
# -----------------------------------------------------------------------------

CaseMaker = Callable[[], Dict]

CASES: List[Tuple[str, CaseMaker, np.ndarray]] = [
    ("ScalarIntegrator", make_scalar_integrator, np.array([0.3])),
    ("DoubleIntegrator", make_double_integrator, np.array([0.2, 0.2])),
    ("Pendulum_SwingUp", make_pendulum_swingup, np.array([0.1, 0.1])),
    ("Cartpole_SwingUp", make_cartpole_swingup, np.array([0.0, 0.0, 0.0, 0.0])),
]

VARIANTS: Dict[str, Dict] = {
    "fixed": dict(regularization="fixed", discretization="forward_euler"),
    "eigen": dict(regularization="eigenvalue", discretization="forward_euler"),
    "eigen-tustin": dict(regularization="eigenvalue", discretization="tustin"),
}


def trajectory_frame(t: np.ndarray, X: np.ndarray, U: np.ndarray) -> pd.DataFrame:
    df = pd.DataFrame({"t": t})
    for i in range(X.shape[1]):
        df[f"x{i}"] = X[:, i]
    for j in range(U.shape[1]):
        df[f"u{j}"] = np.append(U[:, j], np.nan)
    return df


# -----------------------------------------------------------------------------
# Main runner
# -----------------------------------------------------------------------------

def run_trial(case: Dict, x0: np.ndarray, overrides: Dict, *, max_iter: int, threads: int):
    settings = dataclasses.replace(case["settings"], max_iterations=int(max_iter), n_threads=int(threads), **overrides)
    K = int(case["horizon"])
    m = case["system"].control_dim

    with ShootingSolver(case["system"], case["cost"], settings, horizon=K, x0=x0) as solver:
        states = np.tile(x0, (K + 1, 1))
        solver.set_initial_guess(states, np.zeros((K, m)))
        ok = solver.solve()
        t_x, X = solver.get_state_trajectory()
        _, U = solver.get_control_trajectory()
        return ok, solver.get_cost(), solver.initial_cost, t_x, X, U, solver.history_frame()


def run_case(
    case_name: str,
    maker: CaseMaker,
    sigma_x0: np.ndarray,
    *,
    outdir: str,
    trials: int,
    seed: int,
    variants: List[str],
    max_iter: int,
    threads: int,
    success_tol: float,
) -> pd.DataFrame:
    case = maker()
    cost = case["cost"]

    case_dir = os.path.join(outdir, case_name)
    os.makedirs(case_dir, exist_ok=True)

    rng = _rng(seed + sum(map(ord, case_name)) % 10_000)

    rows = []
    p = tqdm(range(int(trials)), desc=f"[{case_name}] trials", leave=False)
    for trial in p:
        if trial == 0:
            x0 = np.asarray(case["x0"], dtype=float).reshape(-1)
        else:
            x0 = sample_x(case["x0"], sigma_x0, rng)

        for variant in variants:
            t0 = time.perf_counter()
            solver_error = None
            try:
                ok, J_star, J_init, t_x, X, U, hist = run_trial(
                    case, x0, VARIANTS[variant], max_iter=max_iter, threads=threads
                )
            except Exception as e:
                ok, J_star, J_init, X, hist = False, float("nan"), float("nan"), None, None
                solver_error = repr(e)
            t1 = time.perf_counter()

            final_err = float("nan")
            if X is not None:
                eT = wrap_error(X[-1] - cost.x_ref, cost.wrap_idx)
                final_err = float(np.linalg.norm(np.asarray(eT, dtype=float).reshape(-1)))

            success = bool(ok and np.isfinite(J_star) and np.isfinite(final_err) and final_err <= float(success_tol))
            rows.append({
                "case": case_name,
                "trial": int(trial),
                "variant": variant,
                "status": "ok" if success else ("crash" if solver_error else "fail"),
                "J_init": float(J_init),
                "J_star": float(J_star),
                "total_time": float(t1 - t0),
                "final_err": final_err,
                "success": success,
                "n_iter": 0 if hist is None else int(len(hist)),
                "solver_error": solver_error,
            })

            if trial == 0 and hist is not None:
                hist.to_csv(os.path.join(case_dir, f"history_{variant}.csv"), index=False)
                trajectory_frame(t_x, X, U).to_csv(os.path.join(case_dir, f"trajectory_{variant}.csv"), index=False)

            p.set_postfix(variant=variant, ok=int(success), J=f"{J_star:.3g}")

    df = pd.DataFrame(rows)

    # enrich: best_J per (case,trial)
    df["best_J"] = df.groupby(["case", "trial"])["J_star"].transform("min")
    df["cost_ratio_best"] = df["J_star"] / df["best_J"]
    df["cost_reduction"] = 1.0 - df["J_star"] / df["J_init"]

    df.to_csv(os.path.join(case_dir, "summary_all.csv"), index=False)
    aggregate(df).to_csv(os.path.join(case_dir, "summary_agg.csv"), index=False)
    return df


def aggregate(df: pd.DataFrame) -> pd.DataFrame:
    return (
        df.groupby(["case", "variant"])
          .agg(
              n=("trial", "count"),
              success_rate=("success", "mean"),
              J_median=("J_star", "median"),
              reduction_median=("cost_reduction", "median"),
              time_median=("total_time", "median"),
              iter_median=("n_iter", "median"),
              ratio_cost_median=("cost_ratio_best", "median"),
          )
          .reset_index()
    )


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--outdir", type=str, default="shooting_results", help="output directory")
    ap.add_argument("--trials", type=int, default=10, help="trials per case (same for all cases)")
    ap.add_argument("--seed", type=int, default=0, help="random seed")
    ap.add_argument("--max-iter", type=int, default=20, help="max iterations per run")
    ap.add_argument("--threads", type=int, default=1, help="worker threads per solver")
    ap.add_argument("--success-tol", type=float, default=0.5, help="terminal error norm threshold for success")
    ap.add_argument("--variants", type=str, default=",".join(VARIANTS), help="comma-separated subset")
    ap.add_argument("--cases", type=str, default="", help="comma-separated case names (default: all)")
    ap.add_argument("--log-level", type=str, default="WARNING", help="logging level")

    args = ap.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    outdir = args.outdir
    os.makedirs(outdir, exist_ok=True)

    variants = [s.strip() for s in args.variants.split(",") if s.strip()]
    for s in variants:
        if s not in VARIANTS:
            raise ValueError(f"Unknown variant: {s}. Options: {list(VARIANTS)}")

    if args.cases.strip():
        wanted = set([c.strip() for c in args.cases.split(",") if c.strip()])
        cases = [c for c in CASES if c[0] in wanted]
        if not cases:
            raise ValueError(f"No matching cases in {wanted}. Available: {[c[0] for c in CASES]}")
    else:
        cases = CASES

    all_rows = []
    outer = tqdm(cases, desc="Cases")
    for case_name, maker, sigma_x0 in outer:
        all_rows.append(run_case(
            case_name, maker, sigma_x0,
            outdir=outdir,
            trials=args.trials,
            seed=args.seed,
            variants=variants,
            max_iter=args.max_iter,
            threads=args.threads,
            success_tol=args.success_tol,
        ))

    df_all = pd.concat(all_rows, ignore_index=True)
    df_all.to_csv(os.path.join(outdir, "summary_all.csv"), index=False)
    aggregate(df_all).to_csv(os.path.join(outdir, "summary_agg.csv"), index=False)

    print("\nSaved:")
    print(" ", os.path.join(outdir, "summary_all.csv"))
    print(" ", os.path.join(outdir, "summary_agg.csv"))
    for case_name, _, _ in cases:
        print(" ", os.path.join(outdir, case_name, "summary_all.csv"))


if __name__ == "__main__":
    main()
