"""Built-in schemas for experiment documents.

The experiment schema validates the document envelope; the paradigm node is
then validated against the schema registered for its ``paradigm`` value
(see :func:`seqforge.validation.validate_experiment`), so errors inside a
paradigm are reported field by field rather than as a failed ``oneOf``.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence

SCHEMA_VERSION = "1.0"

NUMERIC_FIELD = {"$ref": "numeric_field"}
# Timing fields: every value the field can take must be usable on the clock.
INTERVAL_FIELD = {"$ref": "numeric_field", "x-validators": ["non_negative_support"]}
DURATION_FIELD = {"$ref": "numeric_field", "x-validators": ["positive_support"]}
LABEL = {"type": "string", "pattern": r"^[A-Za-z0-9_.\-]+$"}


def token_schema(require_label: bool = True, require_probability: bool = False) -> Dict[str, Any]:
    """Schema for a token (a selectable stimulus with a trigger code)."""
    required = ["stimulus_ref"]
    if require_label:
        required.insert(0, "label")
    if require_probability:
        required.append("base_probability")
    probability: Dict[str, Any] = {"type": "number", "minimum": 0, "maximum": 1}
    if not require_probability:
        probability["default"] = 1.0
    return {
        "type": "object",
        "required": required,
        "additionalProperties": False,
        "properties": {
            "label": LABEL,
            "stimulus_ref": {"type": "string", "pattern": r"\S"},
            "base_probability": probability,
            "code": {"type": "integer", "minimum": 1, "maximum": 65535},
            "duration_ms": dict(DURATION_FIELD, default=150.0),
        },
    }


def selection_schema(modes: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "default": {"mode": "iid"},
        "properties": {
            "mode": {"type": "string", "enum": list(modes), "default": "iid"},
            "seed": {"type": "integer", "minimum": 0},
            "sequence": {
                "type": "array",
                "items": {"oneOf": [{"type": "string"}, {"type": "integer", "minimum": 0}]},
            },
        },
    }


CONSTRAINTS_SCHEMA = {
    "type": "object",
    "default": {},
    "additionalProperties": False,
    "properties": {
        "max_consecutive": {
            "type": "object",
            "additionalProperties": {"type": "integer", "minimum": 1},
        },
        "max_attempts": {"type": "integer", "minimum": 1, "default": 1000},
        "on_failure": {"type": "string", "enum": ["warn", "error"], "default": "warn"},
    },
    "patternProperties": {
        r"^max_consecutive_.+": {"type": "integer", "minimum": 1},
    },
}

_COMMON_TIMING = {
    "iti_ms": dict(INTERVAL_FIELD, default=500.0),
    "refractory_ms": {"type": "number", "minimum": 0, "default": 0.0},
    "block_size": {"type": "integer", "minimum": 1},
}

ODDBALL_SCHEMA = {
    "type": "object",
    "required": ["paradigm", "tokens"],
    "additionalProperties": False,
    "properties": {
        "paradigm": {"type": "string", "enum": ["oddball"]},
        "tokens": {
            "type": "array",
            "minItems": 2,
            "items": token_schema(require_probability=True),
            "x-validators": ["unique_labels", "probabilities_sum"],
        },
        "selection": selection_schema(["iid", "balanced_shuffle", "csv_preset"]),
        "constraints": CONSTRAINTS_SCHEMA,
        **_COMMON_TIMING,
    },
    "x-validators": ["selection_sequence_resolves", "constraint_labels_resolve"],
}

LOCAL_GLOBAL_SCHEMA = {
    "type": "object",
    "required": ["paradigm", "symbols", "patterns", "ioi_ms"],
    "additionalProperties": False,
    "properties": {
        "paradigm": {"type": "string", "enum": ["local_global"]},
        "symbols": {
            "type": "object",
            "additionalProperties": token_schema(require_label=False),
        },
        "patterns": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["label", "sequence", "base_probability"],
                "additionalProperties": False,
                "properties": {
                    "label": LABEL,
                    "sequence": {"type": "string", "pattern": r"^\S+$"},
                    "base_probability": {"type": "number", "minimum": 0, "maximum": 1},
                },
            },
            "x-validators": ["unique_labels", "probabilities_sum"],
        },
        "ioi_ms": INTERVAL_FIELD,
        "selection": selection_schema(["iid", "balanced_shuffle"]),
        "constraints": CONSTRAINTS_SCHEMA,
        **_COMMON_TIMING,
    },
    "x-validators": ["symbols_resolve", "constraint_labels_resolve"],
}

FOREPERIOD_SCHEMA = {
    "type": "object",
    "required": ["paradigm", "cue", "outcomes", "foreperiod_ms"],
    "additionalProperties": False,
    "properties": {
        "paradigm": {"type": "string", "enum": ["foreperiod"]},
        "cue": token_schema(),
        "outcomes": {
            "type": "array",
            "minItems": 1,
            "items": token_schema(),
            "x-validators": ["unique_labels", "probabilities_sum"],
        },
        "foreperiod_ms": INTERVAL_FIELD,
        "omission_probability": {
            "type": "number",
            "minimum": 0,
            "exclusiveMaximum": 1,
            "default": 0.0,
        },
        "selection": selection_schema(["iid", "balanced_shuffle"]),
        "constraints": CONSTRAINTS_SCHEMA,
        **_COMMON_TIMING,
    },
    "x-validators": ["reserved_labels", "constraint_labels_resolve"],
}

PARADIGM_SCHEMAS = {
    "oddball": ODDBALL_SCHEMA,
    "local_global": LOCAL_GLOBAL_SCHEMA,
    "foreperiod": FOREPERIOD_SCHEMA,
}

STIMULUS_SCHEMA = {
    "type": "object",
    "required": ["type"],
    "additionalProperties": False,
    "properties": {
        "type": {"type": "string"},
        "params": {"type": "object", "default": {}},
        "routing": {
            "type": "array",
            "minItems": 1,
            "items": {"type": "integer", "minimum": 0},
        },
        "description": {"type": "string"},
    },
}

COMPILER_SCHEMA = {
    "type": "object",
    "default": {},
    "additionalProperties": False,
    "properties": {
        "ttl_pulse_samples": {"type": "integer", "minimum": 1, "default": 10},
        "tail_padding_ms": {"type": "number", "minimum": 0, "default": 0.0},
        "max_workers": {"type": "integer", "minimum": 1, "default": 1},
        "generator_timeout_s": {"type": "number", "exclusiveMinimum": 0, "default": 5.0},
        "timing_check": {"type": "string", "enum": ["off", "warn", "error"], "default": "warn"},
        "max_samples": {"type": "integer", "minimum": 1},
        "progress": {"type": "boolean", "default": False},
        "debug": {"type": "boolean", "default": False},
    },
}

EXPERIMENT_SCHEMA = {
    "type": "object",
    "required": ["paradigm", "n_trials", "stimuli"],
    "additionalProperties": False,
    "properties": {
        "schema_version": {"type": "string", "enum": [SCHEMA_VERSION], "default": SCHEMA_VERSION},
        "metadata": {"type": "object", "default": {}},
        "seed": {"type": "integer", "minimum": 0},
        "sample_rate_hz": {"type": "number", "exclusiveMinimum": 0, "default": 48000.0},
        "n_trials": {"type": "integer", "minimum": 1},
        "paradigm": {
            "type": "object",
            "required": ["paradigm"],
            "properties": {
                "paradigm": {"type": "string", "enum": sorted(PARADIGM_SCHEMAS)},
            },
        },
        "stimuli": {
            "type": "object",
            "additionalProperties": STIMULUS_SCHEMA,
            "x-validators": ["generators_registered"],
        },
        "compiler": COMPILER_SCHEMA,
    },
    "x-validators": ["stimulus_refs_resolve"],
}
