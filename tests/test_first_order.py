"""Tests for the first-order state-space form."""

from __future__ import annotations

import numpy as np
import pytest

from dsgeval.evaluation import FirstOrderData, first_order, is_first_order
from dsgeval.exceptions import ModelSpecError
from dsgeval.model import ModelBuilder


def _state_vectors(data: FirstOrderData, model, point):
    """x[t], x[t+1] and z[t] read off an evaluation point."""
    col = {name: i for i, name in enumerate(model.all_variable_names)}

    def val(name, k):
        return point[model.maxlag + k, col[name]]

    x_now = [val(v, k - 1) for v, k in data.bck_vars] + [val(v, k) for v, k in data.fwd_vars]
    x_next = [val(v, k) for v, k in data.bck_vars] + [val(v, k + 1) for v, k in data.fwd_vars]
    z = [val(v, k) for v, k in data.ex_vars]
    return np.array(x_now), np.array(x_next), np.array(z)


class TestE1:
    def test_states(self, e1_model):
        data = FirstOrderData(e1_model)
        assert data.bck_vars == [("y", 0)]
        assert data.fwd_vars == [("y", 0)]
        assert data.ex_vars == [("y_shk", 0)]
        assert data.row_names == ["y", "link_y_bf"]

    def test_matrices(self, e1_model):
        data = FirstOrderData(e1_model)
        np.testing.assert_allclose(data.FWD, [[1.0, -0.5], [1.0, 0.0]])
        np.testing.assert_allclose(data.BCK, [[-0.5, 0.0], [0.0, -1.0]])
        np.testing.assert_allclose(data.EX, [[-1.0], [0.0]])

    def test_to_frames(self, e1_model):
        frames = FirstOrderData(e1_model).to_frames()
        assert set(frames) == {"FWD", "BCK", "EX"}
        fwd = frames["FWD"]
        assert list(fwd.index) == ["y", "link_y_bf"]
        assert list(fwd.columns) == [("bck", "y", 0), ("fwd", "y", 0)]
        assert fwd.loc["y", ("fwd", "y", 0)] == pytest.approx(-0.5)
        assert list(frames["EX"].columns) == [("ex", "y_shk", 0)]


class TestDeepModel:
    def test_states(self, deep_model):
        data = FirstOrderData(deep_model)
        assert data.bck_vars == [("y", 0), ("y", -1), ("c", 0)]
        assert data.fwd_vars == [("y", 0), ("y", 1), ("w", 0)]
        assert data.ex_vars == [("g", -1), ("g", 0), ("e", 0)]
        assert (data.nbck, data.nfwd, data.nex) == (3, 3, 3)
        assert data.FWD.shape == (6, 6)
        assert data.EX.shape == (6, 3)

    def test_indices(self, deep_model):
        data = FirstOrderData(deep_model)
        assert data.bck_inds == {("y", 0): 0, ("y", -1): 1, ("c", 0): 2}
        assert data.fwd_inds == {("y", 0): 3, ("y", 1): 4, ("w", 0): 5}

    def test_links(self, deep_model):
        data = FirstOrderData(deep_model)
        assert data.row_names[3:] == ["link_y_bf", "link_y_f1", "link_y_b1"]

    def test_reproduces_linear_residual(self, deep_model, rng):
        data = FirstOrderData(deep_model)
        sspt = deep_model.steady_state_point()
        point = sspt + rng.standard_normal(sspt.shape)
        x_now, x_next, z = _state_vectors(data, deep_model, point)

        lhs = data.FWD @ x_next + data.BCK @ x_now + data.EX @ z
        resid = data.evaluate_residual(point) - data.evaluate_residual(sspt)
        neq = deep_model.n_equations
        np.testing.assert_allclose(lhs[:neq], resid, atol=1e-12)
        np.testing.assert_allclose(lhs[neq:], 0.0, atol=1e-12)


class TestErrors:
    def test_too_many_rows(self):
        model = (
            ModelBuilder("over")
            .var("x")
            .equation("x[t] = 0.5 * x[t-1]", name="a")
            .equation("x[t] = 0.2 * x[t-1]", name="b")
            .steady_state(x=0.0)
            .build()
        )
        with pytest.raises(ModelSpecError, match="needs 2 rows"):
            FirstOrderData(model)


class TestInstall:
    def test_first_order_sets_variant(self, e1_model):
        first_order(e1_model)
        assert e1_model.options.variant == "firstorder"
        assert is_first_order(e1_model)

    def test_variant_option_builds_first_order(self, e1_model):
        e1_model.update(variant="firstorder")
        assert isinstance(e1_model.evaldata, FirstOrderData)

    def test_evaluation_delegates_to_linearization(self, e1_model):
        first_order(e1_model)
        point = np.ones((3, 2))
        res, J = e1_model.evaluate_residual_and_jacobian(point)
        np.testing.assert_allclose(res, [-1.0])
        np.testing.assert_allclose(J.toarray(), [[-0.5, 1.0, -0.5, 0.0, -1.0, 0.0]])
