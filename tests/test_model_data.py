"""Tests for model-level residual and sparse Jacobian evaluation."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from dsgeval.evaluation import ModelEvaluationData, refresh_evaluation_data
from dsgeval.exceptions import EvaluationError, WindowError
from dsgeval.model import ModelBuilder


class TestE1:
    def test_window(self, e1_model):
        med = ModelEvaluationData(e1_model)
        assert med.shape == (3, 2)
        assert med.J.shape == (1, 6)

    def test_jacobian_values(self, e1_model, rng):
        med = ModelEvaluationData(e1_model)
        point = rng.standard_normal((3, 2))
        res, J = med.evaluate_residual_and_jacobian(point)
        np.testing.assert_allclose(J.toarray()[0], [-0.5, 1.0, -0.5, 0.0, -1.0, 0.0])
        expected = point[1, 0] - 0.5 * point[0, 0] - 0.5 * point[2, 0] - point[1, 1]
        assert res[0] == pytest.approx(expected)

    def test_residual_matches_jacobian_call(self, e1_model, rng):
        med = ModelEvaluationData(e1_model)
        point = rng.standard_normal((3, 2))
        res = med.evaluate_residual(point)
        res2, _ = med.evaluate_residual_and_jacobian(point)
        np.testing.assert_allclose(res, res2)

    def test_residual_into_buffer(self, e1_model):
        med = ModelEvaluationData(e1_model)
        out = np.full(1, np.nan)
        res = med.evaluate_residual(np.ones((3, 2)), out=out)
        assert res is out
        assert out[0] == pytest.approx(-1.0)

    def test_point_not_modified(self, e1_model, rng):
        med = ModelEvaluationData(e1_model)
        point = rng.standard_normal((3, 2))
        before = point.copy()
        med.evaluate_residual_and_jacobian(point)
        med.evaluate_residual(point)
        np.testing.assert_array_equal(point, before)

    def test_wrong_point_shape(self, e1_model):
        med = ModelEvaluationData(e1_model)
        with pytest.raises(EvaluationError, match="shape"):
            med.evaluate_residual(np.zeros((2, 2)))
        with pytest.raises(EvaluationError):
            med.evaluate_residual_and_jacobian(np.zeros((3, 3)))

    def test_model_delegates_to_active_data(self, e1_model):
        res, J = e1_model.evaluate_residual_and_jacobian(np.ones((3, 2)))
        assert isinstance(e1_model.evaldata, ModelEvaluationData)
        assert res[0] == pytest.approx(-1.0)
        np.testing.assert_allclose(e1_model.evaluate_residual(np.ones((3, 2))), res)


class TestSparsePattern:
    def test_pattern_stable_across_calls(self, deep_model, rng):
        med = ModelEvaluationData(deep_model)
        _, J = med.evaluate_residual_and_jacobian(rng.standard_normal(med.shape))
        indices, indptr, nnz = J.indices.copy(), J.indptr.copy(), J.nnz
        values = J.data.copy()
        _, J2 = med.evaluate_residual_and_jacobian(rng.standard_normal(med.shape) * 10)
        assert J2 is J
        assert J2.nnz == nnz
        np.testing.assert_array_equal(J2.indices, indices)
        np.testing.assert_array_equal(J2.indptr, indptr)
        np.testing.assert_allclose(J2.data, values)

    def test_pattern_is_union_of_references(self, deep_model):
        med = ModelEvaluationData(deep_model)
        assert med.J.nnz == sum(len(eqn.tsrefs) for eqn in deep_model.equations)

    def test_zero_values_stay_in_pattern(self):
        model = (
            ModelBuilder("zero")
            .var("x")
            .param("a", 0.0)
            .equation("x[t] = a * x[t-1]")
            .build()
        )
        med = ModelEvaluationData(model)
        _, J = med.evaluate_residual_and_jacobian(np.ones(med.shape))
        assert J.nnz == 2
        np.testing.assert_allclose(J.toarray()[0], [0.0, 1.0])

    def test_column_layout(self, deep_model):
        med = ModelEvaluationData(deep_model)
        labels = med.column_labels()
        assert len(labels) == med.J.shape[1]
        names = deep_model.all_variable_names
        for name, offset in [("y", -2), ("c", 0), ("e", 0), ("g", -1)]:
            col = names.index(name) * med.ntimes + offset + med.maxlag
            assert labels[col] == (name, offset)

    def test_clone_has_independent_values(self, e1_model):
        med = ModelEvaluationData(e1_model)
        twin = med.clone()
        _, J = med.evaluate_residual_and_jacobian(np.ones(med.shape))
        assert twin.J is not med.J
        assert np.all(twin.J.data == 0.0)
        np.testing.assert_array_equal(twin.J.indices, J.indices)
        _, J2 = twin.evaluate_residual_and_jacobian(np.ones(med.shape))
        np.testing.assert_allclose(J2.toarray(), J.toarray())

    def test_reference_outside_window(self, e1_model):
        e1_model.lead_lag.max_lead = 0
        with pytest.raises(WindowError, match="outside the window"):
            ModelEvaluationData(e1_model)


class TestParameters:
    def test_parameter_change_updates_jacobian(self, e1_model):
        med = ModelEvaluationData(e1_model)
        _, J = med.evaluate_residual_and_jacobian(np.zeros(med.shape))
        assert J[0, 0] == pytest.approx(-0.5)
        e1_model.set_parameters(alpha=0.7)
        _, J = med.evaluate_residual_and_jacobian(np.zeros(med.shape))
        assert J[0, 0] == pytest.approx(-0.7)

    def test_unset_parameter(self):
        model = ModelBuilder("p").var("x").param("a").equation("x[t] = a").build()
        with pytest.raises(EvaluationError, match="'a'"):
            model.evaluate_residual(np.zeros((1, 1)))

    def test_vector_parameter(self):
        model = (
            ModelBuilder("w")
            .var("x")
            .var("y")
            .param("p", [0.5, 0.3, 0.2])
            .equation("y[t] = movsumw(x[t], 3, p)")
            .build()
        )
        med = ModelEvaluationData(model)
        point = np.zeros(med.shape)
        point[:, 0] = [1.0, 2.0, 4.0]
        res = med.evaluate_residual(point)
        assert res[0] == pytest.approx(-(0.5 * 4.0 + 0.3 * 2.0 + 0.2 * 1.0))


class TestSteadyStateReferences:
    @pytest.fixture
    def ss_model(self):
        return (
            ModelBuilder("ss")
            .var("y")
            .equation("y[t] = 0.5 * y[t-1] + 0.5 * sstate(y)")
            .steady_state(y=2.0)
            .build()
        )

    def test_values_bound_and_gradient_truncated(self, ss_model):
        med = ModelEvaluationData(ss_model)
        res, J = med.evaluate_residual_and_jacobian(np.full(med.shape, 2.0))
        assert res[0] == pytest.approx(0.0)
        np.testing.assert_allclose(J.toarray()[0], [-0.5, 1.0])

    def test_steady_state_change_needs_refresh(self, ss_model):
        point = np.full((2, 1), 4.0)
        ss_model.evaluate_residual(point)
        ss_model.set_steady_state("y", 4.0)
        assert ss_model.evaluate_residual(point)[0] == pytest.approx(1.0)
        refresh_evaluation_data(ss_model)
        assert ss_model.evaluate_residual(point)[0] == pytest.approx(0.0)

    def test_unsolved_steady_state_warns(self, caplog):
        model = (
            ModelBuilder("unsolved")
            .var("y")
            .equation("y[t] = sstate(y)")
            .build()
        )
        with caplog.at_level(logging.WARNING):
            ModelEvaluationData(model)
        assert "Steady state not solved" in caplog.text

    def test_non_zero_slope_warns(self, ss_model, caplog):
        ss_model.set_steady_state("y", 2.0, slope=0.1)
        with caplog.at_level(logging.WARNING):
            med = ModelEvaluationData(ss_model)
        assert "@sstate used with non-zero slope" in caplog.text
        res = med.evaluate_residual(np.full(med.shape, 2.0))
        assert res[0] == pytest.approx(0.0)

    def test_dynamic_model_does_not_warn(self, e1_model, caplog):
        with caplog.at_level(logging.WARNING):
            ModelEvaluationData(e1_model)
        assert caplog.records == []


class TestDomainEdges:
    """Residual and Jacobian evaluation agree outside a function's domain."""

    @staticmethod
    def _model(equation: str):
        return (
            ModelBuilder("edge")
            .vars("x", "y")
            .param("a", 0.3)
            .equation(equation)
            .build()
        )

    @pytest.mark.parametrize(
        "equation, x, expected_residual, expected_dx",
        [
            ("y[t] = x[t] ** a", -0.5, np.nan, np.nan),
            ("y[t] = 1 / x[t]", 0.0, -np.inf, np.inf),
            ("y[t] = log(x[t])", 0.0, np.inf, -np.inf),
            ("y[t] = sqrt(x[t])", -1.0, np.nan, np.nan),
        ],
    )
    def test_residual_and_jacobian_agree(self, equation, x, expected_residual, expected_dx):
        med = ModelEvaluationData(self._model(equation))
        point = np.array([[x, 0.0]])
        res = med.evaluate_residual(point)
        res_j, J = med.evaluate_residual_and_jacobian(point)
        np.testing.assert_array_equal(res, [expected_residual])
        np.testing.assert_array_equal(res_j, res)
        np.testing.assert_array_equal(J[0, 0], expected_dx)

    def test_failed_evaluation_keeps_jacobian(self):
        model = (
            ModelBuilder("partial")
            .vars("x", "y")
            .param("w", [1.0, 2.0, 3.0])
            .equation("x[t] = x[t-1] ** 2", name="a")
            .equation("y[t] = w[2] * x[t]", name="b")
            .build()
        )
        med = ModelEvaluationData(model)
        _, J = med.evaluate_residual_and_jacobian(np.array([[2.0, 0.0], [1.0, 0.0]]))
        before = J.data.copy()

        model.set_parameters(w=[1.0, 2.0])
        with pytest.raises(IndexError):
            med.evaluate_residual_and_jacobian(np.array([[3.0, 0.0], [1.0, 0.0]]))
        np.testing.assert_array_equal(med.J.data, before)


class TestDebugSummary:
    def test_reports_cache_hits(self, caplog):
        model = (
            ModelBuilder("twins")
            .vars("x", "y")
            .equation("x[t] = 0.5 * x[t-1]", name="a")
            .equation("x[t] = 0.5 * x[t-1]", name="b")
            .build()
        )
        with caplog.at_level(logging.DEBUG, logger="dsgeval"):
            ModelEvaluationData(model)
        assert "1 compiled evaluators, 1 cache hits" in caplog.text
