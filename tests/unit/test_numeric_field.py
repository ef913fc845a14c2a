"""Tests for scalar-or-distribution numeric fields."""

import math

import pytest

from seqforge.errors import ConfigurationError, SchemaError
from seqforge.sampling.numeric_field import (
    Distribution,
    Scalar,
    compute_moments,
    is_numeric_field_spec,
    parse_numeric_field,
    representative_value,
    support,
    validate_numeric_field,
)


class TestParsing:
    """Raw documents become Scalar | Distribution."""

    def test_bare_number_is_scalar(self):
        assert parse_numeric_field(5) == Scalar(5.0)

    def test_value_mapping_is_scalar(self):
        assert parse_numeric_field({"value": 3}) == Scalar(3.0)

    def test_uniform_distribution(self):
        field = parse_numeric_field(
            {"kind": "uniform", "min": 400, "max": 600, "scope": "per_trial"}
        )
        assert isinstance(field, Distribution)
        assert field.kind == "uniform"
        assert field.scope == "per_trial"
        assert field.params == {"min": 400.0, "max": 600.0}

    def test_dist_key_is_accepted(self):
        field = parse_numeric_field({"dist": "normal", "mean": 0, "std": 1, "scope": "per_block"})
        assert field.kind == "normal"
        assert field.scope == "per_block"

    def test_categorical_lists_become_tuples(self):
        field = parse_numeric_field(
            {
                "dist": "categorical",
                "categories": [300, 600],
                "probabilities": [0.5, 0.5],
                "scope": "per_trial",
            }
        )
        assert field.params["categories"] == (300.0, 600.0)

    def test_parsed_fields_pass_through(self):
        field = Scalar(1.0)
        assert parse_numeric_field(field) is field

    def test_to_dict_round_trip(self):
        raw = {"kind": "loguniform", "min": 1, "max": 100, "scope": "per_session"}
        field = parse_numeric_field(raw)
        assert parse_numeric_field(field.to_dict()) == field


class TestValidation:
    """Validation reports every problem with its path."""

    def test_missing_scope(self):
        errors = validate_numeric_field({"dist": "uniform", "min": 0, "max": 1}, "iti_ms")
        assert [(e.path, e.kind) for e in errors] == [("iti_ms.scope", "required_field")]

    def test_unknown_scope(self):
        errors = validate_numeric_field(
            {"dist": "uniform", "min": 0, "max": 1, "scope": "per_run"}, "x"
        )
        assert errors[0].kind == "enum_mismatch"

    def test_uniform_min_not_below_max(self):
        errors = validate_numeric_field(
            {"dist": "uniform", "min": 5, "max": 5, "scope": "per_trial"}
        )
        assert [e.kind for e in errors] == ["constraint_violation"]

    def test_normal_std_must_be_positive(self):
        errors = validate_numeric_field(
            {"dist": "normal", "mean": 0, "std": 0, "scope": "per_trial"}, "jitter"
        )
        assert errors[0].kind == "range_violation"
        assert errors[0].path == "jitter.std"

    def test_normal_clip_bounds_ordered(self):
        errors = validate_numeric_field(
            {"dist": "normal", "mean": 0, "std": 1, "clip_min": 2, "clip_max": 1,
             "scope": "per_trial"}
        )
        assert [e.kind for e in errors] == ["constraint_violation"]

    def test_loguniform_bounds_positive(self):
        errors = validate_numeric_field(
            {"dist": "loguniform", "min": 0, "max": 10, "scope": "per_trial"}
        )
        assert errors[0].kind == "range_violation"

    def test_categorical_probability_sum(self):
        errors = validate_numeric_field(
            {"dist": "categorical", "categories": [1, 2], "probabilities": [0.5, 0.4],
             "scope": "per_trial"}
        )
        assert [e.kind for e in errors] == ["probability_sum"]

    def test_categorical_sum_within_tolerance(self):
        errors = validate_numeric_field(
            {"dist": "categorical", "categories": [1, 2], "probabilities": [0.5, 0.4995],
             "scope": "per_trial"}
        )
        assert errors == []

    def test_categorical_length_mismatch(self):
        errors = validate_numeric_field(
            {"dist": "categorical", "categories": [1, 2, 3], "probabilities": [0.5, 0.5],
             "scope": "per_trial"}
        )
        assert "array_size" in [e.kind for e in errors]

    def test_unknown_kind(self):
        errors = validate_numeric_field({"dist": "poisson", "scope": "per_trial"})
        assert errors[0].kind == "enum_mismatch"

    def test_collects_all_errors(self):
        errors = validate_numeric_field({"dist": "uniform", "min": "a"}, "f")
        assert sorted(e.path for e in errors) == ["f.max", "f.min", "f.scope"]

    def test_boolean_is_not_a_number(self):
        errors = validate_numeric_field(True, "flag")
        assert errors[0].kind == "type_mismatch"

    def test_non_finite_scalar(self):
        assert validate_numeric_field(math.inf)[0].kind == "invalid_value"

    def test_parse_raises_schema_error_for_structure(self):
        with pytest.raises(SchemaError, match="scope"):
            parse_numeric_field({"dist": "uniform", "min": 0, "max": 1})

    def test_parse_raises_configuration_error_for_values(self):
        with pytest.raises(ConfigurationError) as excinfo:
            parse_numeric_field({"dist": "uniform", "min": 2, "max": 1, "scope": "per_trial"})
        assert excinfo.value.errors[0].kind == "constraint_violation"


class TestMoments:
    def test_scalar(self):
        assert compute_moments(Scalar(4.0)) == (4.0, 0.0)

    def test_uniform(self):
        mean, var = compute_moments(parse_numeric_field(
            {"dist": "uniform", "min": 0, "max": 10, "scope": "per_trial"}))
        assert mean == pytest.approx(5.0)
        assert var == pytest.approx(100.0 / 12.0)

    def test_categorical(self):
        mean, var = compute_moments(parse_numeric_field(
            {"dist": "categorical", "categories": [1, 3], "probabilities": [0.5, 0.5],
             "scope": "per_trial"}))
        assert mean == pytest.approx(2.0)
        assert var == pytest.approx(1.0)

    def test_loguniform_mean(self):
        field = parse_numeric_field({"dist": "loguniform", "min": 1, "max": math.e,
                                     "scope": "per_trial"})
        assert representative_value(field) == pytest.approx(math.e - 1.0)

    def test_support_of_clipped_normal(self):
        field = parse_numeric_field({"dist": "normal", "mean": 0, "std": 1, "clip_min": -2,
                                     "clip_max": 2, "scope": "per_trial"})
        assert support(field) == (-2.0, 2.0)


def test_is_numeric_field_spec():
    assert is_numeric_field_spec(3)
    assert is_numeric_field_spec({"value": 3})
    assert is_numeric_field_spec({"dist": "uniform"})
    assert not is_numeric_field_spec({"frequency_hz": 1000})
    assert not is_numeric_field_spec("fast")
