import numpy as np
import pytest

from riccati import (
    RiccatiDiagnostics,
    backward_pass,
    regularize_eigenvalue,
    regularize_fixed,
)
from settings import ShootingSettings
from trajectory import StageData


def _random_spd(rng, n, shift=0.5):
    M = rng.standard_normal((n, n))
    S = M @ M.T + shift * np.eye(n)
    return 0.5 * (S + S.T)


def _random_problem(seed=0, n=3, m=2, K=6, with_defects=False):
    rng = np.random.default_rng(seed)
    data = StageData(n, m)
    data.resize(K)
    data.A[:] = np.eye(n) + 0.1 * rng.standard_normal((K, n, n))
    data.B[:] = 0.1 * rng.standard_normal((K, n, m))
    for k in range(K):
        data.Q[k] = _random_spd(rng, n)
        data.R[k] = _random_spd(rng, m)
        data.qv[k] = rng.standard_normal(n)
        data.rv[k] = rng.standard_normal(m)
    data.S[K] = _random_spd(rng, n)
    data.sv[K] = rng.standard_normal(n)
    if with_defects:
        data.d[:K] = 0.05 * rng.standard_normal((K, n))
    return data


# -----------------------------------------------------------------------------
# regularization
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("eps", [1e-3, 0.5, 2.0])
def test_eigenvalue_clipping_floors_spectrum(eps):
    rng = np.random.default_rng(1)
    V, _ = np.linalg.qr(rng.standard_normal((4, 4)))
    H = (V * np.array([-3.0, -0.1, 0.2, 5.0])) @ V.T

    Hi, Hi_inverse, lam_min = regularize_eigenvalue(H, eps)

    assert np.linalg.eigvalsh(Hi).min() >= eps - 1e-10
    np.testing.assert_allclose(Hi_inverse @ Hi, -np.eye(4), atol=1e-9)
    assert lam_min == pytest.approx(-3.0)


def test_eigenvalue_clipping_keeps_large_eigenvalues():
    H = np.diag([3.0, 0.01])
    Hi, _, _ = regularize_eigenvalue(H, 0.1)
    np.testing.assert_allclose(Hi, np.diag([3.0, 0.1]), atol=1e-12)


def test_eigenvalue_clipping_without_floor_fails_on_indefinite():
    with pytest.raises(np.linalg.LinAlgError):
        regularize_eigenvalue(np.diag([1.0, -1.0]), 0.0)


def test_fixed_correction_adds_identity():
    H = np.array([[2.0, 0.3], [0.3, 1.0]])
    Hi, Hi_inverse = regularize_fixed(H, 0.1)
    np.testing.assert_allclose(Hi, H + 0.1 * np.eye(2))
    np.testing.assert_allclose(Hi_inverse, -np.linalg.inv(Hi), atol=1e-12)


def test_fixed_correction_skipped_below_floor():
    H = np.array([[2.0, 0.3], [0.3, 1.0]])
    Hi, _ = regularize_fixed(H, 1e-12)
    np.testing.assert_allclose(Hi, H)


def test_fixed_correction_reads_lower_triangle():
    H = np.array([[2.0, 99.0], [0.3, 1.0]])
    Hi, _ = regularize_fixed(H, 0.0)
    np.testing.assert_allclose(Hi, [[2.0, 0.3], [0.3, 1.0]])


def test_fixed_correction_fails_on_indefinite():
    with pytest.raises(np.linalg.LinAlgError):
        regularize_fixed(np.diag([1.0, -1.0]), 1e-3)


# -----------------------------------------------------------------------------
# backward pass
# -----------------------------------------------------------------------------

@pytest.mark.parametrize("regularization", ["fixed", "eigenvalue"])
def test_cost_to_go_hessian_symmetric(regularization):
    data = _random_problem(with_defects=True)
    settings = ShootingSettings(regularization=regularization, epsilon=1e-6)
    backward_pass(data, settings, RiccatiDiagnostics())
    for k in range(data.K + 1):
        np.testing.assert_allclose(data.S[k], data.S[k].T, atol=0.0)


def test_matches_textbook_riccati_without_defects():
    data = _random_problem(seed=3)
    settings = ShootingSettings(regularization="fixed", epsilon=0.0)
    backward_pass(data, settings, RiccatiDiagnostics())

    for k in range(data.K):
        A, B = data.A[k], data.B[k]
        S1, s1 = data.S[k + 1], data.sv[k + 1]
        H = data.R[k] + B.T @ S1 @ B
        G = B.T @ S1 @ A
        g = data.rv[k] + B.T @ s1
        np.testing.assert_allclose(data.L[k], -np.linalg.solve(H, G), atol=1e-10)
        np.testing.assert_allclose(data.lv[k], -np.linalg.solve(H, g), atol=1e-10)
        S_ref = data.Q[k] + A.T @ S1 @ A - G.T @ np.linalg.solve(H, G)
        np.testing.assert_allclose(data.S[k], S_ref, atol=1e-10)


def test_defect_enters_gradient_through_lifted_term():
    base = _random_problem(seed=5)
    lifted = _random_problem(seed=5)
    lifted.d[base.K - 1] = [0.3, -0.2, 0.1]
    settings = ShootingSettings(regularization="fixed", epsilon=0.0)
    backward_pass(base, settings, RiccatiDiagnostics())
    backward_pass(lifted, settings, RiccatiDiagnostics())

    k = base.K - 1
    expected = base.A[k].T @ base.S[k + 1] @ lifted.d[k]
    np.testing.assert_allclose(lifted.sv[k] - base.sv[k], expected, atol=1e-12)
    np.testing.assert_allclose(lifted.S[k], base.S[k])


def test_diagnostics_record_smallest_eigenvalue():
    data = _random_problem(seed=7)
    settings = ShootingSettings(regularization="eigenvalue", epsilon=1e-6, record_smallest_eigenvalue=True)
    diag = RiccatiDiagnostics()
    diag.start_iteration()
    backward_pass(data, settings, diag)

    lam = min(np.linalg.eigvalsh(0.5 * (H + H.T)).min() for H in data.H)
    assert diag.smallest_eigenvalue_iteration == pytest.approx(lam)
    assert diag.smallest_eigenvalue == pytest.approx(lam)
    assert diag.du_norm == pytest.approx(sum(np.linalg.norm(lv) for lv in data.lv))
