"""Tests for the schema validator and the built-in schemas."""

import copy

import pytest

from seqforge.errors import SchemaDefinitionError, ValidationError
from seqforge.validation import validate_experiment, validate_paradigm
from seqforge.validation.validator import SchemaValidator


TRIAL_SCHEMA = {
    "type": "object",
    "required": ["name", "n_trials"],
    "additionalProperties": False,
    "properties": {
        "name": {"type": "string", "pattern": "^[a-z]+$"},
        "n_trials": {"type": "integer", "minimum": 1},
        "gain": {"type": "number", "maximum": 1, "default": 0.5},
        "mode": {"type": "string", "enum": ["fast", "slow"]},
        "codes": {"type": "array", "minItems": 1, "items": {"type": "integer"}},
        "iti_ms": {"$ref": "numeric_field"},
    },
}


class TestSchemaValidator:
    """Structural validation."""

    def test_valid_document(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc", "n_trials": 3})
        assert result.valid
        assert result.errors == []

    def test_defaults_are_filled(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc", "n_trials": 3})
        assert result.normalized["gain"] == 0.5

    def test_input_is_not_mutated(self):
        document = {"name": "abc", "n_trials": 3}
        SchemaValidator(TRIAL_SCHEMA).validate(document)
        assert "gain" not in document

    def test_integer_widened_to_number(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc", "n_trials": 3, "gain": 1})
        assert isinstance(result.normalized["gain"], float)

    def test_integral_float_narrowed_to_integer(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc", "n_trials": 3.0})
        assert result.valid
        assert result.normalized["n_trials"] == 3
        assert isinstance(result.normalized["n_trials"], int)

    def test_fractional_float_is_not_integer(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc", "n_trials": 2.5})
        assert [e.kind for e in result.errors] == ["type_mismatch"]

    def test_boolean_is_not_a_number(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc", "n_trials": True})
        assert result.errors[0].kind == "type_mismatch"

    def test_collects_every_error(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate(
            {"name": "ABC", "gain": 2, "mode": "medium", "codes": [], "extra": 1}
        )
        found = {(e.path, e.kind) for e in result.errors}
        assert found == {
            ("n_trials", "required_field"),
            ("name", "pattern_mismatch"),
            ("gain", "range_violation"),
            ("mode", "enum_mismatch"),
            ("codes", "array_size"),
            ("extra", "unknown_field"),
        }

    def test_array_item_paths(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate(
            {"name": "abc", "n_trials": 1, "codes": [1, "x", 3]}
        )
        assert [(e.path, e.kind) for e in result.errors] == [("codes[1]", "type_mismatch")]

    def test_numeric_field_ref(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate(
            {"name": "abc", "n_trials": 1, "iti_ms": {"dist": "uniform", "min": 1, "max": 2}}
        )
        assert [(e.path, e.kind) for e in result.errors] == [("iti_ms.scope", "required_field")]

    def test_path_prefix(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({"name": "abc"}, path="block")
        assert result.errors[0].path == "block.n_trials"

    def test_one_of(self):
        schema = {"oneOf": [{"type": "string"}, {"type": "integer", "minimum": 0}]}
        validator = SchemaValidator(schema)
        assert validator.validate("standard").valid
        assert validator.validate(2).valid
        assert validator.validate(-1).errors[0].kind == "one_of_none_valid"

    def test_one_of_multiple_matches(self):
        validator = SchemaValidator({"oneOf": [{"type": "number"}, {"type": "integer"}]})
        assert validator.validate(3).errors[0].kind == "one_of_multiple_valid"

    def test_pattern_properties(self):
        schema = {
            "type": "object",
            "additionalProperties": False,
            "patternProperties": {"^max_.+": {"type": "integer", "minimum": 1}},
        }
        result = SchemaValidator(schema).validate({"max_a": 0, "other": 1})
        assert {(e.path, e.kind) for e in result.errors} == {
            ("max_a", "range_violation"),
            ("other", "unknown_field"),
        }

    def test_additional_properties_schema(self):
        schema = {"type": "object", "additionalProperties": {"type": "integer"}}
        result = SchemaValidator(schema).validate({"a": 1, "b": "two"})
        assert [(e.path, e.kind) for e in result.errors] == [("b", "type_mismatch")]

    def test_custom_validator(self):
        def even(node, path, root):
            if node % 2:
                return [ValidationError(path, "invalid_value", "must be even", value=node)]
            return []

        schema = {
            "type": "object",
            "properties": {"n": {"type": "integer", "x-validators": ["even"]}},
        }
        validator = SchemaValidator(schema, custom_validators={"even": even})
        assert validator.validate({"n": 4}).valid
        assert validator.validate({"n": 3}).errors[0].kind == "invalid_value"

    def test_report_and_raise(self):
        result = SchemaValidator(TRIAL_SCHEMA).validate({})
        assert result.report().startswith("Found 2 validation error(s):")
        with pytest.raises(Exception, match="n_trials"):
            result.raise_for_errors()


class TestMalformedSchema:
    """A broken schema fails when the validator is built."""

    @pytest.mark.parametrize(
        "schema, message",
        [
            ({"type": "strng"}, "unknown type"),
            ({"type": "object", "requird": ["a"]}, "unknown keyword"),
            ({"$ref": "duration"}, "unknown \\$ref"),
            ({"type": "string", "pattern": "("}, "invalid pattern"),
            ({"type": "object", "x-validators": ["nope"]}, "unknown custom validator"),
            ({"type": "number", "minimum": "0"}, "must be a number"),
            ({"oneOf": []}, "non-empty list"),
            ({"type": "object", "properties": {"a": {"type": "vector"}}}, "properties/a"),
        ],
    )
    def test_rejected(self, schema, message):
        with pytest.raises(SchemaDefinitionError, match=message):
            SchemaValidator(schema)

    def test_lists_every_problem(self):
        with pytest.raises(SchemaDefinitionError) as excinfo:
            SchemaValidator({"type": "strng", "maxItems": "3"})
        assert "unknown type" in str(excinfo.value)
        assert "maxItems" in str(excinfo.value)


class TestParadigmSchemas:
    """Built-in paradigm schemas and their cross-field rules."""

    def test_oddball_valid(self, oddball_paradigm):
        result = validate_paradigm(oddball_paradigm)
        assert result.valid, result.report()
        assert result.normalized["refractory_ms"] == 0.0
        assert result.normalized["iti_ms"] == 200

    def test_constraint_defaults(self, oddball_paradigm):
        oddball_paradigm["constraints"] = {"max_consecutive": {"deviant": 1}}
        result = validate_paradigm(oddball_paradigm)
        assert result.normalized["constraints"] == {
            "max_consecutive": {"deviant": 1},
            "max_attempts": 1000,
            "on_failure": "warn",
        }

    def test_unknown_paradigm(self):
        result = validate_paradigm({"paradigm": "roving"})
        assert result.errors[0].kind == "enum_mismatch"

    def test_probabilities_must_sum_to_one(self, oddball_paradigm):
        oddball_paradigm["tokens"][1]["base_probability"] = 0.1
        result = validate_paradigm(oddball_paradigm, "paradigm")
        assert [(e.path, e.kind) for e in result.errors] == [("paradigm.tokens", "probability_sum")]

    def test_duplicate_labels(self, oddball_paradigm):
        oddball_paradigm["tokens"][1]["label"] = "standard"
        result = validate_paradigm(oddball_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("tokens[1].label", "duplicate_labels")
        ]

    def test_token_code_range(self, oddball_paradigm):
        oddball_paradigm["tokens"][0]["code"] = 70000
        result = validate_paradigm(oddball_paradigm)
        assert result.errors[0].path == "tokens[0].code"
        assert result.errors[0].kind == "range_violation"

    def test_csv_preset_needs_sequence(self, oddball_paradigm):
        oddball_paradigm["selection"] = {"mode": "csv_preset"}
        result = validate_paradigm(oddball_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("selection.sequence", "required_field")
        ]

    def test_csv_preset_entries_resolve(self, oddball_paradigm):
        oddball_paradigm["selection"] = {
            "mode": "csv_preset",
            "sequence": ["standard", "target", 1, 2],
        }
        result = validate_paradigm(oddball_paradigm)
        assert [e.path for e in result.errors] == [
            "selection.sequence[1]",
            "selection.sequence[3]",
        ]
        assert {e.kind for e in result.errors} == {"invalid_reference"}

    def test_constraint_labels_resolve(self, oddball_paradigm):
        oddball_paradigm["constraints"] = {
            "max_consecutive": {"deviant": 1, "target": 2},
            "max_consecutive_novel": 1,
        }
        result = validate_paradigm(oddball_paradigm)
        assert sorted(e.path for e in result.errors) == [
            "constraints.max_consecutive.target",
            "constraints.max_consecutive_novel",
        ]

    def test_local_global_valid(self, local_global_paradigm):
        assert validate_paradigm(local_global_paradigm).valid

    def test_undeclared_symbol(self, local_global_paradigm):
        local_global_paradigm["patterns"][0]["sequence"] = "AAAC"
        result = validate_paradigm(local_global_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("patterns[0].sequence", "invalid_reference")
        ]

    def test_multi_character_symbol(self, local_global_paradigm):
        local_global_paradigm["symbols"]["AB"] = {"stimulus_ref": "std_tone"}
        result = validate_paradigm(local_global_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [("symbols.AB", "invalid_value")]

    def test_local_global_requires_ioi(self, local_global_paradigm):
        del local_global_paradigm["ioi_ms"]
        result = validate_paradigm(local_global_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [("ioi_ms", "required_field")]

    def test_foreperiod_valid(self, foreperiod_paradigm):
        result = validate_paradigm(foreperiod_paradigm)
        assert result.valid, result.report()
        assert result.normalized["outcomes"][0]["base_probability"] == 1.0

    def test_omission_probability_below_one(self, foreperiod_paradigm):
        foreperiod_paradigm["omission_probability"] = 1.0
        result = validate_paradigm(foreperiod_paradigm)
        assert result.errors[0].kind == "range_violation"

    def test_omission_is_a_constraint_label(self, foreperiod_paradigm):
        foreperiod_paradigm["constraints"] = {"max_consecutive": {"omission": 1}}
        assert validate_paradigm(foreperiod_paradigm).valid

    def test_omission_is_not_a_constraint_label_for_oddball(self, oddball_paradigm):
        oddball_paradigm["constraints"] = {"max_consecutive": {"omission": 1}}
        result = validate_paradigm(oddball_paradigm)
        assert [e.kind for e in result.errors] == ["invalid_reference"]

    @pytest.mark.parametrize("entry", ["cue", "outcome"])
    def test_omission_label_is_reserved(self, foreperiod_paradigm, entry):
        if entry == "cue":
            foreperiod_paradigm["cue"]["label"] = "omission"
            expected_path = "cue.label"
        else:
            foreperiod_paradigm["outcomes"][0]["label"] = "omission"
            expected_path = "outcomes[0].label"
        result = validate_paradigm(foreperiod_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [(expected_path, "reserved_label")]


class TestTimingSupport:
    """Timing fields must stay usable for every value they can take."""

    def test_unclipped_normal_foreperiod_rejected(self, foreperiod_paradigm):
        foreperiod_paradigm["foreperiod_ms"] = {
            "dist": "normal", "mean": 100, "std": 100, "scope": "per_trial",
        }
        result = validate_paradigm(foreperiod_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("foreperiod_ms", "support_violation")
        ]
        assert result.errors[0].value == float("-inf")

    def test_clipped_normal_foreperiod_accepted(self, foreperiod_paradigm):
        foreperiod_paradigm["foreperiod_ms"] = {
            "dist": "normal", "mean": 100, "std": 100, "clip_min": 0, "scope": "per_trial",
        }
        assert validate_paradigm(foreperiod_paradigm).valid

    def test_negative_iti_range(self, oddball_paradigm):
        oddball_paradigm["iti_ms"] = {"dist": "uniform", "min": -50, "max": 50, "scope": "per_trial"}
        result = validate_paradigm(oddball_paradigm, "paradigm")
        assert [(e.path, e.kind) for e in result.errors] == [
            ("paradigm.iti_ms", "support_violation")
        ]

    def test_zero_iti_allowed(self, oddball_paradigm):
        oddball_paradigm["iti_ms"] = 0
        assert validate_paradigm(oddball_paradigm).valid

    def test_duration_must_be_positive(self, oddball_paradigm):
        oddball_paradigm["tokens"][0]["duration_ms"] = {
            "dist": "categorical", "categories": [0, 50], "probabilities": [0.5, 0.5],
            "scope": "per_trial",
        }
        result = validate_paradigm(oddball_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("tokens[0].duration_ms", "support_violation")
        ]

    def test_negative_ioi(self, local_global_paradigm):
        local_global_paradigm["ioi_ms"] = -10
        result = validate_paradigm(local_global_paradigm)
        assert [(e.path, e.kind) for e in result.errors] == [("ioi_ms", "support_violation")]

    def test_malformed_field_reported_once(self, foreperiod_paradigm):
        foreperiod_paradigm["foreperiod_ms"] = {"dist": "normal", "mean": 100, "std": 10}
        result = validate_paradigm(foreperiod_paradigm)
        assert [e.kind for e in result.errors] == ["required_field"]


class TestExperimentSchema:
    """Whole-document validation."""

    def test_valid(self, experiment_document):
        result = validate_experiment(experiment_document)
        assert result.valid, result.report()
        assert result.normalized["compiler"]["ttl_pulse_samples"] == 10
        assert result.normalized["schema_version"] == "1.0"

    def test_envelope_and_paradigm_errors_reported_together(self, experiment_document):
        document = copy.deepcopy(experiment_document)
        document["n_trials"] = 0
        document["paradigm"]["tokens"][0]["base_probability"] = 0.5
        document["compiler"]["timing_check"] = "strict"
        result = validate_experiment(document)
        assert {(e.path, e.kind) for e in result.errors} == {
            ("n_trials", "range_violation"),
            ("compiler.timing_check", "enum_mismatch"),
            ("paradigm.tokens", "probability_sum"),
        }

    def test_unresolved_stimulus_ref(self, experiment_document):
        experiment_document["paradigm"]["tokens"][1]["stimulus_ref"] = "missing"
        result = validate_experiment(experiment_document)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("paradigm.tokens[1].stimulus_ref", "invalid_reference")
        ]

    def test_unregistered_generator(self, experiment_document):
        experiment_document["stimuli"]["std_tone"]["type"] = "theremin"
        result = validate_experiment(experiment_document)
        assert [(e.path, e.kind) for e in result.errors] == [
            ("stimuli.std_tone.type", "invalid_reference")
        ]

    def test_routing_must_be_channel_indices(self, experiment_document):
        experiment_document["stimuli"]["std_tone"]["routing"] = [-1]
        result = validate_experiment(experiment_document)
        assert result.errors[0].path == "stimuli.std_tone.routing[0]"

    def test_missing_required_fields(self):
        result = validate_experiment({})
        assert sorted(e.path for e in result.errors) == ["n_trials", "paradigm", "stimuli"]
