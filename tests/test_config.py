"""Tests for model options."""

from __future__ import annotations

import numpy as np
import pytest

from dsgeval.config import VARIANTS, Options
from dsgeval.exceptions import ConfigError


class TestOptions:
    def test_defaults(self):
        opts = Options()
        assert opts.tol == 1e-12
        assert opts.variant == "default"
        assert opts.max_chunk_size == 4
        assert opts.variant in VARIANTS

    def test_coercion(self):
        opts = Options(tol="1e-8", max_chunk_size=2.0)
        assert opts.tol == 1e-8
        assert opts.max_chunk_size == 2

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"tol": -1.0}, "tol"),
            ({"variant": "cubic"}, "Unknown variant"),
            ({"max_chunk_size": 0}, "max_chunk_size"),
        ],
    )
    def test_invalid(self, kwargs, message):
        with pytest.raises(ConfigError, match=message):
            Options(**kwargs)

    def test_from_dict_rejects_unknown(self):
        with pytest.raises(ConfigError, match="Unknown option"):
            Options.from_dict({"tolerance": 1e-6})

    def test_copy_overrides(self):
        opts = Options()
        other = opts.copy(variant="linearize")
        assert other.variant == "linearize"
        assert opts.variant == "default"
        assert other.to_dict() == {"tol": 1e-12, "variant": "linearize", "max_chunk_size": 4}


class TestYaml:
    def test_load(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text("tol: 1.0e-9\nvariant: selective_linearize\n", encoding="utf-8")
        opts = Options.from_yaml(path)
        assert opts.tol == 1e-9
        assert opts.variant == "selective_linearize"
        assert opts.max_chunk_size == 4

    def test_empty_file(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text("", encoding="utf-8")
        assert Options.from_yaml(path) == Options()

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            Options.from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Options.from_yaml(tmp_path / "nope.yaml")


class TestModelOptions:
    def test_update_resets_evaluation_data(self, e1_model):
        first = e1_model.evaldata
        e1_model.update(tol=1e-6)
        assert e1_model.options.tol == 1e-6
        assert e1_model.evaldata is not first

    def test_update_chunk_size(self, e1_model):
        old_registry = e1_model.registry
        e1_model.update({"max_chunk_size": 1})
        assert e1_model.registry is not old_registry
        assert e1_model.registry.max_chunk_size == 1
        assert all(eqn.eval_RJ.chunk == 1 for eqn in e1_model.equations)

        res, J = e1_model.evaluate_residual_and_jacobian(np.ones((3, 2)))
        np.testing.assert_allclose(J.toarray()[0], [-0.5, 1.0, -0.5, 0.0, -1.0, 0.0])
        assert res[0] == pytest.approx(-1.0)

    def test_same_chunk_size_keeps_evaluators(self, e1_model):
        registry = e1_model.registry
        e1_model.update(max_chunk_size=4)
        assert e1_model.registry is registry

    def test_builder_options(self):
        from dsgeval.model import ModelBuilder

        model = ModelBuilder("m").var("y").options(variant="linearize").build()
        assert model.options.variant == "linearize"

    def test_builder_rejects_bad_options(self):
        from dsgeval.model import ModelBuilder

        with pytest.raises(ConfigError):
            ModelBuilder("m").options(variant="bogus").build()
