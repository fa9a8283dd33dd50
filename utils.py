# -*- coding: utf-8 -*-
"""Shared numerics: symmetric solves, weight matrices, angle wrapping.

Symmetric solves
----------------
The backward pass only ever fills and trusts the lower triangle of the
regularized control Hessian. `lower_view` rebuilds a symmetric matrix from
that triangle, and `spd_inverse` inverts it through a plain Cholesky
factorization. There is no jitter and no SVD fallback: a matrix that is not
positive definite raises `LinAlgError` so the solve loop can report a failed
iteration instead of silently altering the regularization.
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np


# =============================================================================
# Small helpers
# =============================================================================

def _sym(A: np.ndarray) -> np.ndarray:
    """Symmetrize a matrix."""
    return 0.5 * (A + A.T)


def _assert_finite(name: str, X: np.ndarray):
    if not np.all(np.isfinite(X)):
        raise FloatingPointError(f"Non-finite values in {name}")


def is_finite(x) -> bool:
    return bool(np.all(np.isfinite(x)))


# =============================================================================
# Weight helpers
# =============================================================================

def as_weight_matrix(alpha, n: int, name: str = "weight") -> np.ndarray:
    """Convert scalar/diag/vector/matrix weight into an (n,n) matrix."""
    A = np.asarray(alpha, dtype=float)
    if A.ndim == 0:
        return float(A) * np.eye(n)
    if A.ndim == 1:
        if A.shape[0] != n:
            raise ValueError(f"{name} vector has shape {A.shape}, expected ({n},)")
        return np.diag(A)
    if A.ndim == 2:
        if A.shape != (n, n):
            raise ValueError(f"{name} matrix has shape {A.shape}, expected ({n},{n})")
        return _sym(A)
    raise ValueError(f"unsupported {name} ndim={A.ndim}")


# =============================================================================
# Cholesky-based linear algebra
# =============================================================================

def lower_view(A: np.ndarray) -> np.ndarray:
    """Symmetric matrix assembled from the lower triangle of A."""
    A = np.asarray(A, dtype=float)
    return np.tril(A) + np.tril(A, -1).T


def spd_inverse(A: np.ndarray) -> np.ndarray:
    """Inverse of the symmetric lower view of A via Cholesky.

    Raises `LinAlgError` if the matrix is not positive definite.
    """
    A = lower_view(A)
    _assert_finite("spd_inverse(A)", A)
    n = A.shape[0]
    I = np.eye(n)
    L = np.linalg.cholesky(A)
    Y = np.linalg.solve(L, I)
    return _sym(np.linalg.solve(L.T, Y))


# =============================================================================
# Angle wrapping
# =============================================================================

def angle_normalize(a: float) -> float:
    return (a + np.pi) % (2.0 * np.pi) - np.pi


def wrap_error(e: np.ndarray, wrap_idx: Optional[List[int]] = None) -> np.ndarray:
    if not wrap_idx:
        return e
    e = np.asarray(e, dtype=float).copy()
    for i in wrap_idx:
        e[i] = angle_normalize(float(e[i]))
    return e
