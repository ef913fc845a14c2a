"""Scalar-or-distribution numeric fields.

Any numeric parameter in a configuration (durations, inter-trial intervals,
tone frequencies ...) may be written either as a plain number or as a
distribution specification::

    iti_ms: 500                                    # scalar
    iti_ms: {value: 500}                           # scalar, explicit form
    iti_ms: {dist: uniform, min: 400, max: 600, scope: per_trial}
    foreperiod_ms:
      dist: categorical
      categories: [300, 600, 900]
      probabilities: [0.5, 0.25, 0.25]
      scope: per_trial

Raw documents are checked with :func:`validate_numeric_field` and turned
into the two-variant sum type ``Scalar | Distribution`` by
:func:`parse_numeric_field`. Code downstream of parsing only ever sees the
typed variants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Any, Dict, List, Mapping, Tuple, Union

from seqforge.errors import ValidationError, raise_for_errors

SCOPES = ("per_trial", "per_block", "per_session")
DISTRIBUTION_KINDS = ("uniform", "normal", "loguniform", "categorical")
PROBABILITY_TOLERANCE = 1e-3

# Keys that mark a mapping as a distribution spec. ``kind`` is canonical,
# ``dist`` is accepted for documents written against the v1 format.
_KIND_KEYS = ("kind", "dist")


@dataclass(frozen=True)
class Scalar:
    """A fixed numeric value."""

    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value}


@dataclass(frozen=True)
class Distribution:
    """A distribution sampled once per scope unit.

    Attributes:
        kind: One of ``uniform``, ``normal``, ``loguniform``, ``categorical``.
        params: Kind-specific parameters (``min``/``max``, ``mean``/``std``
            with optional ``clip_min``/``clip_max``, ``categories``/
            ``probabilities``).
        scope: ``per_trial``, ``per_block`` or ``per_session``.
    """

    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)
    scope: str = "per_trial"

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"kind": self.kind}
        for key, value in self.params.items():
            result[key] = list(value) if isinstance(value, tuple) else value
        result["scope"] = self.scope
        return result


NumericField = Union[Scalar, Distribution]


def is_distribution_spec(raw: Any) -> bool:
    """Return True if ``raw`` is a mapping written as a distribution spec."""
    return isinstance(raw, Mapping) and any(key in raw for key in _KIND_KEYS)


def is_numeric_field_spec(raw: Any) -> bool:
    """Return True if ``raw`` looks like any numeric field form."""
    if isinstance(raw, (Scalar, Distribution)):
        return True
    if _is_number(raw):
        return True
    if isinstance(raw, Mapping):
        return is_distribution_spec(raw) or set(raw.keys()) == {"value"}
    return False


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_number(
    raw: Mapping[str, Any],
    key: str,
    path: str,
    errors: List[ValidationError],
    required: bool = True,
) -> bool:
    sub_path = f"{path}.{key}" if path else key
    if key not in raw:
        if required:
            errors.append(
                ValidationError(sub_path, "required_field", f"'{key}' is required")
            )
        return False
    value = raw[key]
    if not _is_number(value):
        errors.append(
            ValidationError(
                sub_path, "type_mismatch", "must be a number", value=value, expected="number"
            )
        )
        return False
    if not math.isfinite(value):
        errors.append(ValidationError(sub_path, "invalid_value", "must be finite", value=value))
        return False
    return True


def validate_numeric_field(raw: Any, path: str = "") -> List[ValidationError]:
    """Validate a raw numeric field document.

    Args:
        raw: Number, ``{value: x}`` mapping, distribution mapping, or an
            already-parsed :class:`Scalar` / :class:`Distribution`.
        path: Field path used in error records.

    Returns:
        List of errors; empty when valid.
    """
    if isinstance(raw, (Scalar, Distribution)):
        return []
    if _is_number(raw):
        if not math.isfinite(raw):
            return [ValidationError(path, "invalid_value", "must be finite", value=raw)]
        return []
    if not isinstance(raw, Mapping):
        return [
            ValidationError(
                path,
                "type_mismatch",
                "numeric field must be a number or a mapping",
                value=raw,
                expected="number | {value} | {dist, ..., scope}",
            )
        ]

    errors: List[ValidationError] = []
    if not is_distribution_spec(raw):
        _check_number(raw, "value", path, errors)
        return errors

    kind_key = "kind" if "kind" in raw else "dist"
    kind = raw[kind_key]
    kind_path = f"{path}.{kind_key}" if path else kind_key
    if kind not in DISTRIBUTION_KINDS:
        errors.append(
            ValidationError(
                kind_path,
                "enum_mismatch",
                "unknown distribution kind",
                value=kind,
                expected=list(DISTRIBUTION_KINDS),
            )
        )

    scope_path = f"{path}.scope" if path else "scope"
    if "scope" not in raw:
        errors.append(
            ValidationError(scope_path, "required_field", "distributions must declare a scope")
        )
    elif raw["scope"] not in SCOPES:
        errors.append(
            ValidationError(
                scope_path, "enum_mismatch", "unknown scope", value=raw["scope"], expected=list(SCOPES)
            )
        )

    if kind == "uniform":
        ok = _check_number(raw, "min", path, errors) & _check_number(raw, "max", path, errors)
        if ok and raw["min"] >= raw["max"]:
            errors.append(
                ValidationError(
                    path, "constraint_violation", "uniform requires min < max",
                    value=(raw["min"], raw["max"]),
                )
            )
    elif kind == "normal":
        _check_number(raw, "mean", path, errors)
        if _check_number(raw, "std", path, errors) and raw["std"] <= 0:
            errors.append(
                ValidationError(
                    f"{path}.std" if path else "std", "range_violation",
                    "std must be > 0", value=raw["std"], expected="> 0",
                )
            )
        lo_ok = _check_number(raw, "clip_min", path, errors, required=False)
        hi_ok = _check_number(raw, "clip_max", path, errors, required=False)
        if lo_ok and hi_ok and raw["clip_min"] >= raw["clip_max"]:
            errors.append(
                ValidationError(
                    path, "constraint_violation", "clip_min must be < clip_max",
                    value=(raw["clip_min"], raw["clip_max"]),
                )
            )
    elif kind == "loguniform":
        ok = True
        for key in ("min", "max"):
            if _check_number(raw, key, path, errors):
                if raw[key] <= 0:
                    ok = False
                    errors.append(
                        ValidationError(
                            f"{path}.{key}" if path else key, "range_violation",
                            "loguniform bounds must be > 0", value=raw[key], expected="> 0",
                        )
                    )
            else:
                ok = False
        if ok and raw["min"] >= raw["max"]:
            errors.append(
                ValidationError(
                    path, "constraint_violation", "loguniform requires min < max",
                    value=(raw["min"], raw["max"]),
                )
            )
    elif kind == "categorical":
        errors.extend(_validate_categorical(raw, path))
    return errors


def _validate_categorical(raw: Mapping[str, Any], path: str) -> List[ValidationError]:
    errors: List[ValidationError] = []
    cat_path = f"{path}.categories" if path else "categories"
    prob_path = f"{path}.probabilities" if path else "probabilities"
    categories = raw.get("categories")
    probabilities = raw.get("probabilities")

    if categories is None:
        errors.append(ValidationError(cat_path, "required_field", "'categories' is required"))
    elif not isinstance(categories, (list, tuple)) or len(categories) < 2:
        errors.append(
            ValidationError(
                cat_path, "array_size", "categorical needs at least 2 categories",
                value=categories, expected=">= 2 items",
            )
        )
    else:
        for idx, value in enumerate(categories):
            if not _is_number(value):
                errors.append(
                    ValidationError(
                        f"{cat_path}[{idx}]", "type_mismatch", "categories must be numbers",
                        value=value, expected="number",
                    )
                )

    if probabilities is None:
        errors.append(ValidationError(prob_path, "required_field", "'probabilities' is required"))
        return errors
    if not isinstance(probabilities, (list, tuple)):
        errors.append(
            ValidationError(prob_path, "type_mismatch", "must be a list", value=probabilities)
        )
        return errors
    if isinstance(categories, (list, tuple)) and len(categories) != len(probabilities):
        errors.append(
            ValidationError(
                prob_path, "array_size", "probabilities must match categories in length",
                value=len(probabilities), expected=len(categories),
            )
        )
    numeric = True
    for idx, p in enumerate(probabilities):
        if not _is_number(p):
            numeric = False
            errors.append(
                ValidationError(
                    f"{prob_path}[{idx}]", "type_mismatch", "must be a number", value=p
                )
            )
        elif p < 0 or p > 1:
            errors.append(
                ValidationError(
                    f"{prob_path}[{idx}]", "probability_range",
                    "probability must lie in [0, 1]", value=p, expected="[0, 1]",
                )
            )
    if numeric and abs(sum(probabilities) - 1.0) > PROBABILITY_TOLERANCE:
        errors.append(
            ValidationError(
                prob_path, "probability_sum", "probabilities must sum to 1",
                value=round(sum(probabilities), 6), expected=f"1 ± {PROBABILITY_TOLERANCE}",
            )
        )
    return errors


def parse_numeric_field(raw: Any, path: str = "") -> NumericField:
    """Validate and convert a raw document into ``Scalar | Distribution``.

    Raises:
        SchemaError: On structural problems (missing keys, wrong types).
        ConfigurationError: On inconsistent values (e.g. ``min >= max``).
    """
    if isinstance(raw, (Scalar, Distribution)):
        return raw
    raise_for_errors(validate_numeric_field(raw, path))
    if _is_number(raw):
        return Scalar(float(raw))
    if not is_distribution_spec(raw):
        return Scalar(float(raw["value"]))

    kind = raw["kind"] if "kind" in raw else raw["dist"]
    params: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _KIND_KEYS or key == "scope":
            continue
        if isinstance(value, list):
            value = tuple(float(v) for v in value)
        elif _is_number(value):
            value = float(value)
        params[key] = value
    return Distribution(kind=kind, params=params, scope=raw["scope"])


def compute_moments(numeric_field: NumericField) -> Tuple[float, float]:
    """Return the ``(mean, variance)`` of a numeric field.

    Clipping of ``normal`` fields is ignored; the moments describe the
    unclipped distribution.
    """
    if isinstance(numeric_field, Scalar):
        return numeric_field.value, 0.0
    p = numeric_field.params
    kind = numeric_field.kind
    if kind == "uniform":
        lo, hi = p["min"], p["max"]
        return (lo + hi) / 2.0, (hi - lo) ** 2 / 12.0
    if kind == "normal":
        return float(p["mean"]), float(p["std"]) ** 2
    if kind == "loguniform":
        lo, hi = p["min"], p["max"]
        log_ratio = math.log(hi / lo)
        mean = (hi - lo) / log_ratio
        second = (hi ** 2 - lo ** 2) / (2.0 * log_ratio)
        return mean, second - mean ** 2
    if kind == "categorical":
        cats = p["categories"]
        total = float(sum(p["probabilities"]))
        probs = [q / total for q in p["probabilities"]]
        mean = sum(c * q for c, q in zip(cats, probs))
        var = sum(q * (c - mean) ** 2 for c, q in zip(cats, probs))
        return mean, var
    raise ValueError(f"Unknown distribution kind '{kind}'")


def representative_value(numeric_field: NumericField) -> float:
    """Expected value of a field, used for summaries and planning."""
    return compute_moments(numeric_field)[0]


def support(numeric_field: NumericField) -> Tuple[float, float]:
    """Smallest and largest value a field can take (may be infinite)."""
    if isinstance(numeric_field, Scalar):
        return numeric_field.value, numeric_field.value
    p = numeric_field.params
    if numeric_field.kind in ("uniform", "loguniform"):
        return p["min"], p["max"]
    if numeric_field.kind == "normal":
        return p.get("clip_min", -math.inf), p.get("clip_max", math.inf)
    return min(p["categories"]), max(p["categories"])
