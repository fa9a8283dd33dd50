import logging

import numpy as np
import pytest

from errors import ConfigurationError, InputShapeError
from trajectory import StageData


@pytest.mark.parametrize("K", [1, 5, 17])
def test_resize_allocates_every_stage_container(K):
    data = StageData(3, 2)
    data.set_initial_state([1.0, 2.0, 3.0])
    data.resize(K)

    for name in ("x", "x_shot", "lx", "d", "t", "q", "qv", "Q", "sv", "S"):
        assert len(getattr(data, name)) == K + 1, name
    for name in ("u", "u_ff", "A", "B", "P", "rv", "R", "gv", "G", "H", "Hi", "Hi_inverse", "L", "lv"):
        assert len(getattr(data, name)) == K, name

    assert data.L.shape == (K, 2, 3)
    assert not data.initialized
    assert data.x_best is None
    np.testing.assert_allclose(data.x[0], [1.0, 2.0, 3.0])


def test_resize_clears_previous_guess():
    data = StageData(1, 1)
    data.resize(4)
    data.set_initial_guess(np.ones((5, 1)), np.ones((4, 1)))
    assert data.initialized

    data.resize(6)
    assert not data.initialized
    assert np.all(data.u_ff == 0.0)


def test_negative_horizon_rejected():
    with pytest.raises(ConfigurationError):
        StageData(1, 1).resize(-1)


def test_guess_with_equal_lengths_rejected():
    data = StageData(1, 1)
    data.resize(10)
    with pytest.raises(InputShapeError):
        data.set_initial_guess(np.zeros((11, 1)), np.zeros((11, 1)))


def test_short_guess_rejected():
    data = StageData(1, 1)
    data.resize(10)
    with pytest.raises(InputShapeError):
        data.set_initial_guess(np.zeros((8, 1)), np.zeros((7, 1)))
    assert not data.initialized


def test_long_guess_truncated_with_warning(caplog):
    data = StageData(1, 1)
    data.resize(10)
    states = np.arange(13.0).reshape(-1, 1)
    controls = np.arange(12.0).reshape(-1, 1)

    with caplog.at_level(logging.WARNING, logger="trajectory"):
        data.set_initial_guess(states, controls)

    assert "truncate" in caplog.text
    assert data.u_ff.shape == (10, 1)
    np.testing.assert_allclose(data.x[:, 0], np.arange(11.0))
    np.testing.assert_allclose(data.u_ff[:, 0], np.arange(10.0))
    assert data.initialized


def test_guess_dimension_mismatch_rejected():
    data = StageData(2, 1)
    data.resize(3)
    with pytest.raises(InputShapeError):
        data.set_initial_guess(np.zeros((4, 3)), np.zeros((3, 1)))


def test_short_feedback_rejected():
    data = StageData(2, 1)
    data.resize(5)
    with pytest.raises(InputShapeError):
        data.set_initial_guess(np.zeros((6, 2)), np.zeros((5, 1)), feedback=np.zeros((3, 1, 2)))


def test_commit_best_keeps_cheapest():
    data = StageData(1, 1)
    data.resize(2)
    data.set_initial_guess(np.ones((3, 1)), np.zeros((2, 1)))

    assert data.commit_best(1.0, 1.0)
    data.x[:] = 5.0
    assert not data.commit_best(2.0, 1.0)
    assert not data.commit_best(np.nan, 0.0)

    assert data.lowest_cost == pytest.approx(2.0)
    np.testing.assert_allclose(data.best_states, np.ones((3, 1)))

    data.clear_best()
    assert data.lowest_cost == np.inf
    assert data.best_states is None and data.best_controls is None and data.best_times is None
