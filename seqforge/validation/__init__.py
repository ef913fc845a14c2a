"""Schema-driven validation of experiment documents.

Example:
    >>> from seqforge.validation import validate_experiment
    >>> result = validate_experiment(config_dict)
    >>> if not result.valid:
    ...     print(result.report())
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping

from seqforge.errors import ValidationError
from seqforge.validation.schemas import (
    EXPERIMENT_SCHEMA,
    PARADIGM_SCHEMAS,
    SCHEMA_VERSION,
)
from seqforge.validation.validator import SchemaValidator, ValidationResult


@lru_cache(maxsize=None)
def get_validator(name: str) -> SchemaValidator:
    """Return the shared validator for a built-in schema.

    Args:
        name: ``"experiment"`` or a paradigm name.

    Raises:
        KeyError: If no built-in schema has that name.
    """
    if name == "experiment":
        return SchemaValidator(EXPERIMENT_SCHEMA)
    if name not in PARADIGM_SCHEMAS:
        raise KeyError(
            f"No schema for '{name}'. Available: experiment, {', '.join(sorted(PARADIGM_SCHEMAS))}"
        )
    return SchemaValidator(PARADIGM_SCHEMAS[name])


def validate_paradigm(config: Any, path: str = "") -> ValidationResult:
    """Validate a paradigm document against the schema for its ``paradigm``."""
    name = config.get("paradigm") if isinstance(config, Mapping) else None
    if name not in PARADIGM_SCHEMAS:
        error = ValidationError(
            f"{path}.paradigm" if path else "paradigm",
            "enum_mismatch" if name is not None else "required_field",
            "unknown or missing paradigm",
            value=name,
            expected=sorted(PARADIGM_SCHEMAS),
        )
        return ValidationResult(valid=False, errors=[error], normalized=config)
    return get_validator(name).validate(config, path)


def validate_experiment(config: Any) -> ValidationResult:
    """Validate a complete experiment document.

    The envelope is checked first; the paradigm node is then checked against
    its own schema. All findings from both passes are returned together.
    """
    result = get_validator("experiment").validate(config)
    normalized = result.normalized
    errors = list(result.errors)
    paradigm = normalized.get("paradigm") if isinstance(normalized, Mapping) else None
    if isinstance(paradigm, Mapping) and paradigm.get("paradigm") in PARADIGM_SCHEMAS:
        sub = validate_paradigm(paradigm, "paradigm")
        errors.extend(sub.errors)
        normalized = dict(normalized)
        normalized["paradigm"] = sub.normalized
    return ValidationResult(valid=not errors, errors=errors, normalized=normalized)


__all__ = [
    "SCHEMA_VERSION",
    "SchemaValidator",
    "ValidationResult",
    "get_validator",
    "validate_experiment",
    "validate_paradigm",
]
