import numpy as np

from parallel import WorkerPool
from settings import ShootingSettings
from shooting import (
    compute_single_defect,
    compute_state_and_control_updates,
    initialize_single_shot,
    update_single_shot,
)
from systems import DoubleIntegrator
from trajectory import StageData

DT = 0.1


def _double_integrator_data(K=4):
    data = StageData(2, 1)
    data.resize(K)
    states = np.column_stack([np.linspace(0.0, 1.0, K + 1), np.full(K + 1, 0.5)])
    data.set_initial_guess(states, np.full((K, 1), 0.2))
    return data


def _instances():
    pool = WorkerPool(1)
    pool.set_system(DoubleIntegrator())
    return pool.main


def test_shot_integrates_one_stage():
    data = _double_integrator_data()
    settings = ShootingSettings(dt=DT, dt_sim=DT / 5, integrator="rk_sym")
    inst = _instances()
    for k in range(data.K + 1):
        initialize_single_shot(inst, data, settings, k)

    for k in range(data.K):
        p, v = data.x[k]
        a = data.u_ff[k, 0]
        np.testing.assert_allclose(data.x_shot[k], [p + v * DT + 0.5 * a * DT ** 2, v + a * DT], atol=1e-12)
    np.testing.assert_allclose(data.x_shot[data.K], data.x[data.K])


def test_defects_and_zero_terminal_defect():
    data = _double_integrator_data()
    data.x_shot[:] = data.x + 1.0
    data.d[data.K] = 7.0
    for k in range(data.K + 1):
        compute_single_defect(data, k)

    for k in range(data.K):
        np.testing.assert_allclose(data.d[k], data.x_shot[k] - data.x[k + 1])
    assert np.all(data.d[data.K] == 0.0)


def test_shot_update_uses_sensitivities():
    data = _double_integrator_data()
    data.A[:] = [[1.0, DT], [0.0, 1.0]]
    data.B[:] = [[0.0], [DT]]
    data.lx[:] = [0.1, -0.2]
    data.lv[:] = [0.5]
    before = data.x_shot.copy()
    for k in range(data.K + 1):
        update_single_shot(data, k)

    step = data.A[0] @ data.lx[0] + data.B[0] @ data.lv[0]
    np.testing.assert_allclose(data.x_shot[:-1], before[:-1] + step)
    np.testing.assert_allclose(data.x_shot[-1], before[-1])


def test_forward_update_closes_defects_of_linear_model():
    K = 5
    data = _double_integrator_data(K)
    A = np.array([[1.0, DT], [0.0, 1.0]])
    B = np.array([[0.0], [DT]])
    data.A[:] = A
    data.B[:] = B
    rng = np.random.default_rng(0)
    data.d[:K] = 0.1 * rng.standard_normal((K, 2))
    data.lv[:] = rng.standard_normal((K, 1))
    data.L[:] = -0.3 * rng.standard_normal((K, 1, 2))
    data.x_shot[:K] = data.x[1:] + data.d[:K]

    x_old, u_old = data.x.copy(), data.u_ff.copy()
    dx_norm, d_norm = compute_state_and_control_updates(data)

    assert np.all(data.lx[0] == 0.0)
    assert np.all(data.x[0] == x_old[0])
    np.testing.assert_allclose(data.x, x_old + data.lx)
    np.testing.assert_allclose(data.u_ff, u_old + data.lv)
    assert d_norm == np.sum(np.linalg.norm(data.d, axis=1))
    assert dx_norm >= 0.0

    for k in range(K):
        shot = data.x_shot[k] + A @ data.lx[k] + B @ data.lv[k]
        np.testing.assert_allclose(shot, data.x[k + 1], atol=1e-12)
