#!/usr/bin/env python3
"""Figures for the shooting benchmark.

Reads the directory written by run_suite.py and saves to <outdir>/plots/:
  box_<metric>.png            one panel per case, one box per variant
  convergence_<case>.png      cost / defect norm / control update per iteration
  timing_<case>.png           mean time per solver phase and variant
  trajectory_<case>_<v>.png   best states and controls of trial 0
"""
import os
import argparse
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt


VARIANT_LABELS = {
    "fixed": "Fixed correction",
    "eigen": "Eigenvalue clipping",
    "eigen-tustin": "Eigenvalue clipping (Tustin)",
}

PHASES = ["t_rollout", "t_linearize", "t_cost", "t_shots", "t_defects", "t_backward", "t_update"]

# (column, ylabel, title, file, success only, log scale)
SUMMARY_METRICS = [
    ("cost_ratio_best", "J / best", "Cost ratio vs best-achieved (success only)", "box_cost_ratio_best.png", True, False),
    ("total_time", "time [s]", "Runtime per solve", "box_runtime.png", False, True),
    ("cost_reduction", "1 - J*/J0", "Relative cost reduction (success only)", "box_cost_reduction.png", True, False),
]


def _label(variant):
    return VARIANT_LABELS.get(variant, str(variant))


def _finite(series):
    s = pd.to_numeric(series, errors="coerce")
    return s[np.isfinite(s)]


def _save(fig, path):
    fig.tight_layout()
    fig.savefig(path, dpi=220, bbox_inches="tight")
    plt.close(fig)
    print("Saved:", path)


def _read_optional(path):
    return pd.read_csv(path) if os.path.exists(path) else None


# -----------------------------
# Summary boxplots
# -----------------------------
def plot_summary(df, plots_dir, cases, variants):
    ok = df[df["success"].astype(bool)] if "success" in df.columns else df
    for metric, ylabel, title, fname, success_only, ylog in SUMMARY_METRICS:
        if metric not in df.columns:
            continue
        src = ok if success_only else df
        fig, axes = plt.subplots(1, len(cases), figsize=(4.0 * len(cases), 3.4), squeeze=False)
        for ax, case in zip(axes[0], cases):
            sub = src[src["case"] == case]
            groups = [_finite(sub[sub["variant"] == v][metric]).values for v in variants]
            ax.boxplot(groups, tick_labels=[_label(v) for v in variants], showfliers=False, widths=0.6)
            ax.set_title(case.replace("_", " "))
            ax.grid(True, axis="y", alpha=0.25)
            ax.tick_params(axis="x", rotation=20)
            if ylog:
                ax.set_yscale("log")
        axes[0][0].set_ylabel(ylabel)
        fig.suptitle(title, y=1.03)
        _save(fig, os.path.join(plots_dir, fname))


# -----------------------------
# Per-case figures
# -----------------------------
def plot_convergence(histories, plots_dir, case):
    fig, axes = plt.subplots(1, 3, figsize=(13.0, 3.6))
    panels = [("total_cost", "total cost"), ("d_norm", "defect norm"), ("du_norm", "control update norm")]
    for variant, h in histories.items():
        for ax, (col, _) in zip(axes, panels):
            # defects and updates can hit exactly zero on linear problems
            ax.semilogy(h["iteration"], h[col] + 1e-16, "o-", ms=3, label=_label(variant))
    for ax, (_, ylabel) in zip(axes, panels):
        ax.set_xlabel("iteration")
        ax.set_ylabel(ylabel)
        ax.grid(True, alpha=0.25)
    axes[0].legend(frameon=False)
    fig.suptitle(case.replace("_", " "))
    _save(fig, os.path.join(plots_dir, f"convergence_{case}.png"))


def plot_timing(histories, plots_dir, case):
    fig, ax = plt.subplots(figsize=(7.0, 3.6))
    width = 0.8 / max(len(histories), 1)
    x = np.arange(len(PHASES))
    for i, (variant, h) in enumerate(histories.items()):
        means = [h[p].mean() if p in h.columns else 0.0 for p in PHASES]
        ax.bar(x + i * width, means, width, label=_label(variant))
    ax.set_xticks(x + 0.4 - width / 2)
    ax.set_xticklabels([p[2:] for p in PHASES], rotation=20)
    ax.set_ylabel("mean time per iteration [s]")
    ax.set_yscale("log")
    ax.grid(True, axis="y", alpha=0.25)
    ax.legend(frameon=False)
    ax.set_title(case.replace("_", " "))
    _save(fig, os.path.join(plots_dir, f"timing_{case}.png"))


def plot_trajectory(tr, plots_dir, case, variant):
    xcols = [c for c in tr.columns if c.startswith("x")]
    ucols = [c for c in tr.columns if c.startswith("u")]

    fig, axes = plt.subplots(2, 1, figsize=(7.0, 5.0), sharex=True)
    for c in xcols:
        axes[0].plot(tr["t"], tr[c], label=c)
    for c in ucols:
        axes[1].step(tr["t"], tr[c], where="post", label=c)
    axes[0].set_ylabel("state")
    axes[1].set_ylabel("control")
    axes[1].set_xlabel("t [s]")
    for ax in axes:
        ax.grid(True, alpha=0.25)
        ax.legend(frameon=False, ncol=4)
    fig.suptitle(f"{case.replace('_', ' ')} ({_label(variant)})")
    _save(fig, os.path.join(plots_dir, f"trajectory_{case}_{variant}.png"))


# -----------------------------
# Main
# -----------------------------
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--outdir", type=str, default="shooting_results",
                        help="Directory written by run_suite.py. Plots saved to <outdir>/plots/")
    parser.add_argument("--cases", type=str, default="",
                        help="Comma-separated cases. Default: all.")
    parser.add_argument("--variants", type=str, default="fixed,eigen,eigen-tustin",
                        help="Comma-separated variant order.")
    args = parser.parse_args()

    outdir = os.path.abspath(args.outdir)
    plots_dir = os.path.join(outdir, "plots")
    os.makedirs(plots_dir, exist_ok=True)

    csv_path = os.path.join(outdir, "summary_all.csv")
    if not os.path.exists(csv_path):
        raise FileNotFoundError(f"Cannot find CSV: {csv_path}")
    df = pd.read_csv(csv_path)

    missing = sorted({"case", "variant", "J_star", "total_time"} - set(df.columns))
    if missing:
        raise ValueError(f"CSV missing columns: {missing}")

    wanted = [c.strip() for c in args.cases.split(",") if c.strip()]
    if wanted:
        df = df[df["case"].isin(wanted)].copy()

    present = set(df["variant"].astype(str))
    variants = [v.strip() for v in args.variants.split(",") if v.strip() in present]
    variants += sorted(present - set(variants))
    cases = sorted(df["case"].unique().tolist())

    plot_summary(df, plots_dir, cases, variants)
    for case in cases:
        case_dir = os.path.join(outdir, case)
        histories = {}
        for v in variants:
            h = _read_optional(os.path.join(case_dir, f"history_{v}.csv"))
            if h is not None:
                histories[v] = h
        if histories:
            plot_convergence(histories, plots_dir, case)
            plot_timing(histories, plots_dir, case)
        if variants:
            tr = _read_optional(os.path.join(case_dir, f"trajectory_{variants[0]}.csv"))
            if tr is not None:
                plot_trajectory(tr, plots_dir, case, variants[0])

    print("\nDone. Plots saved in:", plots_dir)


if __name__ == "__main__":
    main()
