"""Error taxonomy for SeqForge.

Validation never raises one problem at a time: validators collect
:class:`ValidationError` records and return them as a list. Only the
boundary layers (adapters, the pipeline) turn a non-empty list into a single
exception carrying every record.

Example:
    >>> from seqforge.errors import ValidationError, format_errors
    >>> err = ValidationError("tokens[0].base_probability", "range_violation",
    ...                       "value must be >= 0", value=-0.1, expected=">= 0")
    >>> print(format_errors([err]))
    Found 1 validation error(s):
      1. [range_violation] tokens[0].base_probability: value must be >= 0 (got: -0.1) (expected: >= 0)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence


# Error kinds that stem from the shape of a document rather than from
# relationships between its fields.
SCHEMA_ERROR_KINDS = frozenset(
    {
        "required_field",
        "unknown_field",
        "type_mismatch",
        "enum_mismatch",
        "range_violation",
        "pattern_mismatch",
        "array_size",
        "one_of_none_valid",
        "one_of_multiple_valid",
        "invalid_value",
    }
)


@dataclass(frozen=True)
class ValidationError:
    """A single structured validation finding.

    Attributes:
        path: Dotted field path with 0-based list indices, e.g.
            ``paradigm.tokens[1].duration_ms``.
        kind: Machine-readable category (``required_field``,
            ``probability_sum``, ``invalid_reference`` ...).
        message: Human-readable explanation.
        value: Offending value, if any.
        expected: Description of the accepted values, if any.
    """

    path: str
    kind: str
    message: str
    value: Any = None
    expected: Any = None

    def __str__(self) -> str:
        text = f"[{self.kind}] {self.path or '<root>'}: {self.message}"
        if self.value is not None:
            text += f" (got: {_preview(self.value)})"
        if self.expected is not None:
            text += f" (expected: {_preview(self.expected)})"
        return text

    def to_dict(self) -> dict:
        """Convert to plain dict (e.g. for JSON reports)."""
        return {
            "path": self.path,
            "kind": self.kind,
            "message": self.message,
            "value": self.value,
            "expected": self.expected,
        }

    @property
    def is_schema_error(self) -> bool:
        return self.kind in SCHEMA_ERROR_KINDS


def _preview(value: Any, limit: int = 60) -> str:
    text = str(value)
    if len(text) > limit:
        text = text[: limit - 1] + "…"
    return text


def format_errors(errors: Sequence[ValidationError]) -> str:
    """Render a numbered, human-readable error report.

    Args:
        errors: Validation errors to render.

    Returns:
        Multi-line report, or ``"No validation errors."`` for an empty list.
    """
    if not errors:
        return "No validation errors."
    lines = [f"Found {len(errors)} validation error(s):"]
    for idx, err in enumerate(errors, start=1):
        lines.append(f"  {idx}. {err}")
    return "\n".join(lines)


class SeqForgeError(Exception):
    """Base class for all SeqForge errors."""


class SchemaDefinitionError(SeqForgeError):
    """A schema document itself is malformed.

    Raised when a :class:`~seqforge.validation.validator.SchemaValidator` is
    constructed, so a broken schema fails at startup instead of on first use.
    """


class ValidationFailed(SeqForgeError):
    """Base for errors that carry a complete list of validation findings."""

    def __init__(self, errors: Sequence[ValidationError], message: Optional[str] = None):
        self.errors: List[ValidationError] = list(errors)
        super().__init__(message or format_errors(self.errors))


class SchemaError(ValidationFailed):
    """The configuration does not match the declared schema."""


class ConfigurationError(ValidationFailed):
    """The configuration is well-formed but internally inconsistent."""


class TimingInfeasible(ValidationFailed):
    """Scheduled elements cannot be realised with the requested timing."""


class ConstraintUnsatisfiable(SeqForgeError):
    """Ordering constraints could not be met within the repair budget."""

    def __init__(self, message: str, report: Optional[dict] = None):
        self.report = dict(report or {})
        super().__init__(message)


class ConstraintUnsatisfiableWarning(UserWarning):
    """Emitted when constraint repair gives up and keeps its best attempt."""


class TimingWarning(UserWarning):
    """Emitted by the timing check when running in ``warn`` mode."""


class GenerationError(SeqForgeError):
    """A stimulus could not be generated; the compile is aborted."""

    def __init__(
        self,
        message: str,
        stimulus_ref: Optional[str] = None,
        trial_index: Optional[int] = None,
        element_index: Optional[int] = None,
    ):
        self.stimulus_ref = stimulus_ref
        self.trial_index = trial_index
        self.element_index = element_index
        location = []
        if stimulus_ref is not None:
            location.append(f"stimulus_ref={stimulus_ref!r}")
        if trial_index is not None:
            location.append(f"trial={trial_index}")
        if element_index is not None:
            location.append(f"element={element_index}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


def raise_for_errors(errors: Sequence[ValidationError]) -> None:
    """Raise :class:`SchemaError` or :class:`ConfigurationError` if needed.

    Any structural finding makes the whole report a :class:`SchemaError`;
    otherwise a non-empty list becomes a :class:`ConfigurationError`.
    Both carry every error.
    """
    if not errors:
        return
    if any(err.is_schema_error for err in errors):
        raise SchemaError(errors)
    raise ConfigurationError(errors)
