"""Declarative schema validation with exhaustive error collection.

Schemas are plain dicts written in a subset of JSON Schema:

* ``type`` (``object``, ``array``, ``string``, ``number``, ``integer``,
  ``boolean``, ``null``, or a list of these)
* ``properties``, ``required``, ``additionalProperties``,
  ``patternProperties``
* ``items``, ``minItems``, ``maxItems``
* ``enum``, ``minimum``, ``maximum``, ``exclusiveMinimum``,
  ``exclusiveMaximum``, ``pattern``
* ``default`` (filled into the normalized document)
* ``oneOf``
* ``$ref: numeric_field`` (scalar-or-distribution numeric fields)
* ``x-validators``: names of cross-field rules run on the normalized node

A :class:`SchemaValidator` never stops at the first problem: every finding
is collected and returned together with a normalized copy of the input
(defaults filled in, integers widened to floats where a ``number`` is
expected, integral floats narrowed where an ``integer`` is expected).

Example:
    >>> validator = SchemaValidator({
    ...     "type": "object",
    ...     "required": ["n_trials"],
    ...     "properties": {"n_trials": {"type": "integer", "minimum": 1}},
    ... })
    >>> result = validator.validate({"n_trials": 0})
    >>> result.valid
    False
    >>> result.errors[0].kind
    'range_violation'
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from seqforge.errors import (
    SchemaDefinitionError,
    ValidationError,
    format_errors,
    raise_for_errors,
)
from seqforge.sampling.numeric_field import validate_numeric_field

CustomValidator = Callable[[Any, str, Any], List[ValidationError]]

KNOWN_KEYWORDS = frozenset(
    {
        "type",
        "properties",
        "required",
        "additionalProperties",
        "patternProperties",
        "items",
        "minItems",
        "maxItems",
        "enum",
        "minimum",
        "maximum",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "pattern",
        "default",
        "oneOf",
        "$ref",
        "x-validators",
        "title",
        "description",
    }
)
KNOWN_TYPES = frozenset({"object", "array", "string", "number", "integer", "boolean", "null"})
KNOWN_REFS = frozenset({"numeric_field"})
_NUMERIC_KEYWORDS = ("minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum")


@dataclass
class ValidationResult:
    """Outcome of :meth:`SchemaValidator.validate`.

    Attributes:
        valid: True when no errors were found.
        errors: Every finding, in document order.
        normalized: Input copy with defaults and coercions applied.
    """

    valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    normalized: Any = None

    def raise_for_errors(self) -> None:
        """Raise ``SchemaError``/``ConfigurationError`` carrying all errors."""
        raise_for_errors(self.errors)

    def report(self) -> str:
        return format_errors(self.errors)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else str(key)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class SchemaValidator:
    """Validate documents against a schema dict.

    Args:
        schema: Schema document (see module docstring).
        custom_validators: Extra named cross-field rules. Merged over the
            built-in rules from :mod:`seqforge.validation.custom`.

    Raises:
        SchemaDefinitionError: If the schema uses unknown keywords, types,
            references or custom validators, or is otherwise malformed.
    """

    def __init__(
        self,
        schema: Mapping[str, Any],
        custom_validators: Optional[Mapping[str, CustomValidator]] = None,
    ):
        from seqforge.validation.custom import CUSTOM_VALIDATORS

        self.schema = schema
        self.custom_validators: Dict[str, CustomValidator] = dict(CUSTOM_VALIDATORS)
        if custom_validators:
            self.custom_validators.update(custom_validators)
        problems = self.check_schema(schema)
        if problems:
            raise SchemaDefinitionError(
                "Malformed schema:\n" + "\n".join(f"  - {p}" for p in problems)
            )

    # ------------------------------------------------------------------
    # Schema self-check
    # ------------------------------------------------------------------
    def check_schema(self, schema: Any, path: str = "#") -> List[str]:
        """Return a list of problems with a schema document (empty if sound)."""
        if not isinstance(schema, Mapping):
            return [f"{path}: schema node must be a mapping, got {type(schema).__name__}"]
        problems: List[str] = []
        for keyword in schema:
            if keyword not in KNOWN_KEYWORDS:
                problems.append(f"{path}: unknown keyword '{keyword}'")

        types = schema.get("type")
        if types is not None:
            type_list = types if isinstance(types, list) else [types]
            for name in type_list:
                if name not in KNOWN_TYPES:
                    problems.append(f"{path}: unknown type '{name}'")

        ref = schema.get("$ref")
        if ref is not None and ref not in KNOWN_REFS:
            problems.append(f"{path}: unknown $ref '{ref}'")

        required = schema.get("required")
        if required is not None and (
            not isinstance(required, list) or not all(isinstance(r, str) for r in required)
        ):
            problems.append(f"{path}: 'required' must be a list of strings")

        properties = schema.get("properties")
        if properties is not None:
            if not isinstance(properties, Mapping):
                problems.append(f"{path}: 'properties' must be a mapping")
            else:
                for name, sub in properties.items():
                    problems.extend(self.check_schema(sub, f"{path}/properties/{name}"))

        pattern_props = schema.get("patternProperties")
        if pattern_props is not None:
            if not isinstance(pattern_props, Mapping):
                problems.append(f"{path}: 'patternProperties' must be a mapping")
            else:
                for pattern, sub in pattern_props.items():
                    problems.extend(self._check_regex(pattern, path))
                    problems.extend(self.check_schema(sub, f"{path}/patternProperties/{pattern}"))

        additional = schema.get("additionalProperties")
        if additional is not None and not isinstance(additional, bool):
            problems.extend(self.check_schema(additional, f"{path}/additionalProperties"))

        if "items" in schema:
            problems.extend(self.check_schema(schema["items"], f"{path}/items"))

        one_of = schema.get("oneOf")
        if one_of is not None:
            if not isinstance(one_of, list) or not one_of:
                problems.append(f"{path}: 'oneOf' must be a non-empty list")
            else:
                for idx, sub in enumerate(one_of):
                    problems.extend(self.check_schema(sub, f"{path}/oneOf/{idx}"))

        if "enum" in schema and not isinstance(schema["enum"], list):
            problems.append(f"{path}: 'enum' must be a list")
        for keyword in _NUMERIC_KEYWORDS:
            if keyword in schema and not _is_number(schema[keyword]):
                problems.append(f"{path}: '{keyword}' must be a number")
        for keyword in ("minItems", "maxItems"):
            if keyword in schema and (
                not isinstance(schema[keyword], int) or isinstance(schema[keyword], bool)
            ):
                problems.append(f"{path}: '{keyword}' must be an integer")
        if "pattern" in schema:
            problems.extend(self._check_regex(schema["pattern"], path))

        names = schema.get("x-validators")
        if names is not None:
            if not isinstance(names, list):
                problems.append(f"{path}: 'x-validators' must be a list")
            else:
                for name in names:
                    if name not in self.custom_validators:
                        problems.append(f"{path}: unknown custom validator '{name}'")
        return problems

    @staticmethod
    def _check_regex(pattern: Any, path: str) -> List[str]:
        if not isinstance(pattern, str):
            return [f"{path}: pattern must be a string"]
        try:
            re.compile(pattern)
        except re.error as exc:
            return [f"{path}: invalid pattern {pattern!r} ({exc})"]
        return []

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self, document: Any, path: str = "") -> ValidationResult:
        """Validate ``document`` and return every finding.

        Args:
            document: Configuration document (typically a dict from YAML).
            path: Path prefix for error records, for validating sub-documents.

        Returns:
            :class:`ValidationResult` with the normalized document.
        """
        errors: List[ValidationError] = []
        pending: List[Tuple[str, str, Any]] = []
        normalized = self._validate_node(document, self.schema, path, errors, pending)
        for name, node_path, node in pending:
            errors.extend(self.custom_validators[name](node, node_path, normalized))
        return ValidationResult(valid=not errors, errors=errors, normalized=normalized)

    def _validate_node(
        self,
        value: Any,
        schema: Mapping[str, Any],
        path: str,
        errors: List[ValidationError],
        pending: List[Tuple[str, str, Any]],
    ) -> Any:
        if "$ref" in schema:
            errors.extend(validate_numeric_field(value, path))
            normalized = copy.deepcopy(value)
            self._queue_custom(schema, path, normalized, pending)
            return normalized

        if "oneOf" in schema:
            return self._validate_one_of(value, schema, path, errors, pending)

        if "type" in schema:
            ok, value = self._coerce(value, schema["type"])
            if not ok:
                errors.append(
                    ValidationError(
                        path,
                        "type_mismatch",
                        f"expected {schema['type']}",
                        value=value,
                        expected=schema["type"],
                    )
                )
                return value

        if "enum" in schema and value not in schema["enum"]:
            errors.append(
                ValidationError(
                    path, "enum_mismatch", "value not allowed", value=value, expected=schema["enum"]
                )
            )

        if _is_number(value):
            self._check_bounds(value, schema, path, errors)

        if isinstance(value, str) and "pattern" in schema:
            if re.search(schema["pattern"], value) is None:
                errors.append(
                    ValidationError(
                        path,
                        "pattern_mismatch",
                        "value does not match pattern",
                        value=value,
                        expected=schema["pattern"],
                    )
                )

        if isinstance(value, list):
            value = self._validate_array(value, schema, path, errors, pending)
        elif isinstance(value, Mapping):
            value = self._validate_object(value, schema, path, errors, pending)

        self._queue_custom(schema, path, value, pending)
        return value

    @staticmethod
    def _queue_custom(schema, path, value, pending) -> None:
        for name in schema.get("x-validators", []):
            pending.append((name, path, value))

    def _validate_one_of(self, value, schema, path, errors, pending) -> Any:
        matches = []
        for sub in schema["oneOf"]:
            sub_errors: List[ValidationError] = []
            sub_pending: List[Tuple[str, str, Any]] = []
            normalized = self._validate_node(value, sub, path, sub_errors, sub_pending)
            if not sub_errors:
                matches.append((normalized, sub_pending))
        if len(matches) == 1:
            normalized, sub_pending = matches[0]
            pending.extend(sub_pending)
            self._queue_custom(schema, path, normalized, pending)
            return normalized
        if not matches:
            errors.append(
                ValidationError(
                    path,
                    "one_of_none_valid",
                    "value matches none of the allowed forms",
                    value=value,
                )
            )
        else:
            errors.append(
                ValidationError(
                    path,
                    "one_of_multiple_valid",
                    f"value matches {len(matches)} allowed forms, expected exactly one",
                    value=value,
                )
            )
        return copy.deepcopy(value)

    @staticmethod
    def _coerce(value: Any, types: Any) -> Tuple[bool, Any]:
        for name in types if isinstance(types, list) else [types]:
            if name == "object" and isinstance(value, Mapping):
                return True, value
            if name == "array" and isinstance(value, (list, tuple)):
                return True, list(value)
            if name == "string" and isinstance(value, str):
                return True, value
            if name == "boolean" and isinstance(value, bool):
                return True, value
            if name == "null" and value is None:
                return True, value
            if name == "integer" and _is_number(value):
                if isinstance(value, int):
                    return True, value
                if float(value).is_integer():
                    return True, int(value)
            if name == "number" and _is_number(value):
                return True, float(value)
        return False, value

    @staticmethod
    def _check_bounds(value, schema, path, errors) -> None:
        checks = (
            ("minimum", lambda v, b: v >= b, ">="),
            ("maximum", lambda v, b: v <= b, "<="),
            ("exclusiveMinimum", lambda v, b: v > b, ">"),
            ("exclusiveMaximum", lambda v, b: v < b, "<"),
        )
        for keyword, test, symbol in checks:
            if keyword in schema and not test(value, schema[keyword]):
                errors.append(
                    ValidationError(
                        path,
                        "range_violation",
                        f"value must be {symbol} {schema[keyword]}",
                        value=value,
                        expected=f"{symbol} {schema[keyword]}",
                    )
                )

    def _validate_array(self, value, schema, path, errors, pending) -> List[Any]:
        if "minItems" in schema and len(value) < schema["minItems"]:
            errors.append(
                ValidationError(
                    path,
                    "array_size",
                    f"needs at least {schema['minItems']} item(s)",
                    value=len(value),
                    expected=f">= {schema['minItems']}",
                )
            )
        if "maxItems" in schema and len(value) > schema["maxItems"]:
            errors.append(
                ValidationError(
                    path,
                    "array_size",
                    f"allows at most {schema['maxItems']} item(s)",
                    value=len(value),
                    expected=f"<= {schema['maxItems']}",
                )
            )
        item_schema = schema.get("items")
        if item_schema is None:
            return copy.deepcopy(value)
        return [
            self._validate_node(item, item_schema, f"{path}[{idx}]", errors, pending)
            for idx, item in enumerate(value)
        ]

    def _validate_object(self, value, schema, path, errors, pending) -> Dict[str, Any]:
        properties = schema.get("properties", {})
        pattern_props = schema.get("patternProperties", {})
        additional = schema.get("additionalProperties", True)
        normalized: Dict[str, Any] = {}

        for name in schema.get("required", []):
            if name not in value:
                errors.append(
                    ValidationError(_join(path, name), "required_field", f"'{name}' is required")
                )

        for name, sub in properties.items():
            if name in value:
                normalized[name] = self._validate_node(
                    value[name], sub, _join(path, name), errors, pending
                )
            elif "default" in sub:
                normalized[name] = copy.deepcopy(sub["default"])

        for name, item in value.items():
            if name in properties:
                continue
            child_path = _join(path, name)
            matched = [sub for pat, sub in pattern_props.items() if re.search(pat, str(name))]
            if matched:
                for sub in matched:
                    normalized[name] = self._validate_node(item, sub, child_path, errors, pending)
            elif additional is False:
                errors.append(
                    ValidationError(
                        child_path,
                        "unknown_field",
                        f"unexpected field '{name}'",
                        expected=sorted(properties),
                    )
                )
            elif isinstance(additional, Mapping):
                normalized[name] = self._validate_node(item, additional, child_path, errors, pending)
            else:
                normalized[name] = copy.deepcopy(item)
        return normalized
