"""Tests for dual numbers, forward gradients and the equation compiler."""

from __future__ import annotations

import math

import numpy as np
import pytest

from dsgeval.derivatives import Dual, ForwardGradient, chunk_size_for
from dsgeval.derivatives.dual import FUNCTIONS
from dsgeval.evaluation.compiler import EvaluatorRegistry
from dsgeval.exceptions import EvaluationError
from dsgeval.model import ModelBuilder
from dsgeval.model.calibration import Calibration
from dsgeval.model.equations import KNOWN_FUNCTIONS, call, param, sstate, var
from dsgeval.model.symbols import TimedVariable

X = TimedVariable("x")
Y = TimedVariable("y")


# =========================================================================
# Dual numbers
# =========================================================================


class TestDual:
    def test_functions_cover_known_names(self):
        assert set(FUNCTIONS) == set(KNOWN_FUNCTIONS)

    def test_product_rule(self):
        a = Dual(2.0, np.array([1.0, 0.0]))
        b = Dual(3.0, np.array([0.0, 1.0]))
        out = a * b + a / b
        assert out.value == pytest.approx(6.0 + 2.0 / 3.0)
        np.testing.assert_allclose(out.partials, [3.0 + 1.0 / 3.0, 2.0 - 2.0 / 9.0])

    def test_numpy_scalar_on_the_left(self):
        out = np.float64(2.0) * Dual(3.0, np.array([1.0]))
        assert isinstance(out, Dual)
        np.testing.assert_allclose(out.partials, [2.0])

    @pytest.mark.parametrize(
        "name,x,dfdx",
        [
            ("log", 2.0, 0.5),
            ("exp", 1.0, math.e),
            ("sqrt", 4.0, 0.25),
            ("sin", 0.0, 1.0),
            ("cos", 0.0, 0.0),
            ("tan", 0.0, 1.0),
            ("abs", -3.0, -1.0),
        ],
    )
    def test_unary_derivatives(self, name, x, dfdx):
        out = FUNCTIONS[name](Dual(x, np.array([1.0])))
        np.testing.assert_allclose(out.partials, [dfdx], atol=1e-14)

    def test_floats_pass_through(self):
        assert FUNCTIONS["log"](1.0) == 0.0
        assert FUNCTIONS["max"](1.0, 2.0) == 2.0

    def test_power_with_dual_exponent(self):
        base = Dual(2.0, np.array([1.0, 0.0]))
        exponent = Dual(3.0, np.array([0.0, 1.0]))
        out = base**exponent
        assert out.value == pytest.approx(8.0)
        np.testing.assert_allclose(out.partials, [12.0, 8.0 * math.log(2.0)])


class TestForwardGradient:
    @pytest.mark.parametrize("chunk", [1, 2, 4, 6])
    def test_chunk_sizes_agree(self, chunk):
        def fn(x):
            return x[0] * x[1] + x[2] ** 2 - 3 * x[3] + x[4] / x[5]

        grad = ForwardGradient(fn, 6, chunk)
        value, g = grad(np.array([1.0, 2.0, 3.0, 4.0, 5.0, 2.0]))
        assert value == pytest.approx(2.0 + 9.0 - 12.0 + 2.5)
        np.testing.assert_allclose(g, [2.0, 1.0, 6.0, -3.0, 0.5, -1.25])

    def test_workspace_reused_result_copied(self):
        grad = ForwardGradient(lambda x: x[0] * x[1], 2, 2)
        _, g1 = grad([1.0, 2.0])
        _, g2 = grad([3.0, 5.0])
        np.testing.assert_allclose(g1, [2.0, 1.0])
        np.testing.assert_allclose(g2, [5.0, 3.0])

    def test_wrong_input_size(self):
        grad = ForwardGradient(lambda x: x[0], 1, 1)
        with pytest.raises(ValueError):
            grad([1.0, 2.0])

    def test_constant_function(self):
        grad = ForwardGradient(lambda x: 5.0, 2, 2)
        value, g = grad([1.0, 1.0])
        assert value == 5.0
        np.testing.assert_allclose(g, [0.0, 0.0])

    def test_chunk_size_bound(self):
        assert chunk_size_for(2) == 2
        assert chunk_size_for(10) == 4
        assert chunk_size_for(10, 8) == 8


# =========================================================================
# Compiled evaluators
# =========================================================================


class TestEvaluators:
    def test_linear_expression(self):
        registry = EvaluatorRegistry()
        resid, rj = registry.compile("lin", var("x") + 3 * var("y"), [X, Y], [], [])
        assert resid([1.1, 2.3]) == pytest.approx(8.0)
        value, grad = rj(np.array([1.1, 2.3]))
        assert value == pytest.approx(8.0)
        np.testing.assert_allclose(grad, [1.0, 3.0])

    def test_steady_state_inputs_follow_time_series(self):
        registry = EvaluatorRegistry()
        expr = var("x") - 2 * sstate("x")
        resid, rj = registry.compile("ss", expr, [X], ["x"], [])
        assert resid([5.0, 2.0]) == pytest.approx(1.0)
        _, grad = rj([5.0, 2.0])
        np.testing.assert_allclose(grad, [1.0, -2.0])

    def test_parameters_bound_from_calibration(self):
        registry = EvaluatorRegistry()
        cal = Calibration({"a": 2.0, "w": [1.0, 10.0]})
        expr = param("a") * var("x") + param("w", 1) * var("y")
        resid, rj = registry.compile("p", expr, [X, Y], [], ["a", "w"])
        assert resid.update_parameters(cal)
        assert not resid.update_parameters(cal)
        assert resid([1.0, 1.0]) == pytest.approx(12.0)
        _, grad = rj([1.0, 1.0])
        np.testing.assert_allclose(grad, [2.0, 10.0])

    def test_refresh_after_revision_change(self):
        registry = EvaluatorRegistry()
        cal = Calibration({"a": 2.0})
        resid, _ = registry.compile("p", param("a") * var("x"), [X], [], ["a"])
        resid.update_parameters(cal)
        cal.set_parameter("a", 5.0)
        assert resid([1.0]) == pytest.approx(2.0)
        assert resid.update_parameters(cal)
        assert resid([1.0]) == pytest.approx(5.0)

    def test_unbound_parameters(self):
        registry = EvaluatorRegistry()
        resid, rj = registry.compile("p", param("a") * var("x"), [X], [], ["a"])
        with pytest.raises(EvaluationError):
            resid([1.0])
        with pytest.raises(EvaluationError):
            rj([1.0])

    def test_missing_parameter_value(self):
        registry = EvaluatorRegistry()
        resid, _ = registry.compile("p", param("a") * var("x"), [X], [], ["a"])
        with pytest.raises(EvaluationError, match="'a'"):
            resid.update_parameters(Calibration({"a": None}))

    def test_function_calls(self):
        registry = EvaluatorRegistry()
        expr = call("log", var("x")) + call("max", var("x"), var("y")) - call("pow", var("y"), 2)
        resid, rj = registry.compile("f", expr, [X, Y], [], [])
        value, grad = rj([1.0, 3.0])
        assert value == pytest.approx(0.0 + 3.0 - 9.0)
        np.testing.assert_allclose(grad, [1.0, 1.0 - 6.0])
        assert resid([1.0, 3.0]) == pytest.approx(value)

    def test_many_inputs_use_chunks(self):
        registry = EvaluatorRegistry(max_chunk_size=4)
        refs = [TimedVariable("x", -k) for k in range(6)]
        expr = var("x")
        for k in range(1, 6):
            expr = expr + (k + 1) * var("x", -k)
        _, rj = registry.compile("sum", expr, refs, [], [])
        assert rj.chunk == 4
        _, grad = rj(np.ones(6))
        np.testing.assert_allclose(grad, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])


# =========================================================================
# Registry
# =========================================================================


class TestRegistry:
    def test_identical_keys_share_instances(self):
        registry = EvaluatorRegistry()
        a = registry.compile("a", var("x") * 2, [X], [], [])
        b = registry.compile("b", var("x") * 2, [X], [], [])
        assert a[0] is b[0]
        assert a[1] is b[1]
        assert len(registry) == 1
        assert registry.hits == 1

    @pytest.mark.parametrize(
        "expr,tsrefs,ssrefs,params",
        [
            (var("x") * 3, [X], [], []),
            (var("x") * 2, [X, Y], [], []),
            (var("x") * 2, [X], ["x"], []),
            (var("x") * 2, [X], [], ["a"]),
        ],
    )
    def test_any_difference_gives_new_instances(self, expr, tsrefs, ssrefs, params):
        registry = EvaluatorRegistry()
        base = registry.compile("a", var("x") * 2, [X], [], [])
        other = registry.compile("b", expr, tsrefs, ssrefs, params)
        assert other[0] is not base[0]
        assert len(registry) == 2

    def test_key_membership(self):
        registry = EvaluatorRegistry()
        registry.compile("a", var("x") * 2, [X], [], [])
        assert (var("x") * 2, (X,), (), ()) in registry
        assert (var("x") * 3, (X,), (), ()) not in registry

    def test_equations_of_a_model_share_evaluators(self):
        model = (
            ModelBuilder("share")
            .vars("x", "y")
            .equation("x[t] = 0.5 * x[t-1]", name="a")
            .equation("x[t] = 0.5 * x[t-1]", name="b")
            .equation("y[t] = 0.5 * y[t-1]", name="c")
            .build()
        )
        a, b, c = model.equations
        assert a.eval_resid is b.eval_resid
        assert a.eval_RJ is b.eval_RJ
        assert a.eval_resid is not c.eval_resid
        assert len(model.registry) == 2
