"""Named cross-field validation rules.

Rules are referenced from schemas through ``x-validators`` and run after the
structural pass on the normalized node. Each rule receives
``(node, path, root)`` and returns a list of
:class:`~seqforge.errors.ValidationError`. Rules must tolerate malformed
input, since structural errors elsewhere do not stop them from running.

Example:
    >>> from seqforge.validation.custom import register_validator
    >>> @register_validator("even_trials")
    ... def even_trials(node, path, root):
    ...     if node % 2:
    ...         return [ValidationError(path, "invalid_value", "must be even", value=node)]
    ...     return []
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Callable, Dict, Iterator, List, Mapping, Tuple

from seqforge.errors import ValidationError
from seqforge.sampling.numeric_field import (
    PROBABILITY_TOLERANCE,
    parse_numeric_field,
    support,
    validate_numeric_field,
)

# Trial label of foreperiod trials whose outcome is withheld.
OMISSION_LABEL = "omission"

CUSTOM_VALIDATORS: Dict[str, Callable[[Any, str, Any], List[ValidationError]]] = {}


def register_validator(name: str):
    """Decorator registering a rule under ``name``."""

    def decorator(func):
        CUSTOM_VALIDATORS[name] = func
        return func

    return decorator


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _dict_items(node: Any) -> List[Tuple[int, Mapping[str, Any]]]:
    if not isinstance(node, list):
        return []
    return [(idx, item) for idx, item in enumerate(node) if isinstance(item, Mapping)]


def iter_paradigm_tokens(paradigm: Any, path: str = "") -> Iterator[Tuple[str, Mapping[str, Any]]]:
    """Yield ``(path, token)`` for every token declared by a paradigm node."""
    if not isinstance(paradigm, Mapping):
        return
    for idx, token in _dict_items(paradigm.get("tokens")):
        yield f"{_join(path, 'tokens')}[{idx}]", token
    symbols = paradigm.get("symbols")
    if isinstance(symbols, Mapping):
        for symbol, token in symbols.items():
            if isinstance(token, Mapping):
                yield _join(_join(path, "symbols"), str(symbol)), token
    cue = paradigm.get("cue")
    if isinstance(cue, Mapping):
        yield _join(path, "cue"), cue
    for idx, token in _dict_items(paradigm.get("outcomes")):
        yield f"{_join(path, 'outcomes')}[{idx}]", token


@register_validator("probabilities_sum")
def validate_probabilities_sum(node: Any, path: str, root: Any) -> List[ValidationError]:
    """``base_probability`` values of a list of entries must sum to 1."""
    items = _dict_items(node)
    probs = [item.get("base_probability") for _, item in items]
    if not probs or not all(
        isinstance(p, (int, float)) and not isinstance(p, bool) for p in probs
    ):
        return []
    total = float(sum(probs))
    if abs(total - 1.0) > PROBABILITY_TOLERANCE:
        return [
            ValidationError(
                path,
                "probability_sum",
                "base probabilities must sum to 1",
                value=round(total, 6),
                expected=f"1 ± {PROBABILITY_TOLERANCE}",
            )
        ]
    return []


@register_validator("unique_labels")
def validate_unique_labels(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Labels within a list of entries must be unique."""
    labels = [(idx, item.get("label")) for idx, item in _dict_items(node)]
    counts = Counter(label for _, label in labels if label is not None)
    errors = []
    seen = set()
    for idx, label in labels:
        if label is None or counts[label] < 2:
            continue
        if label in seen:
            errors.append(
                ValidationError(
                    f"{path}[{idx}].label",
                    "duplicate_labels",
                    f"label '{label}' is declared {counts[label]} times",
                    value=label,
                )
            )
        seen.add(label)
    return errors


@register_validator("symbols_resolve")
def validate_symbols_resolve(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Every character of every pattern must be a declared symbol."""
    if not isinstance(node, Mapping):
        return []
    symbols = node.get("symbols")
    if not isinstance(symbols, Mapping):
        return []
    errors = []
    for symbol in symbols:
        if not isinstance(symbol, str) or len(symbol) != 1:
            errors.append(
                ValidationError(
                    _join(_join(path, "symbols"), str(symbol)),
                    "invalid_value",
                    "symbols must be single characters",
                    value=symbol,
                )
            )
    for idx, pattern in _dict_items(node.get("patterns")):
        sequence = pattern.get("sequence")
        if not isinstance(sequence, str):
            continue
        unknown = sorted({ch for ch in sequence if ch not in symbols})
        if unknown:
            errors.append(
                ValidationError(
                    f"{_join(path, 'patterns')}[{idx}].sequence",
                    "invalid_reference",
                    f"undeclared symbol(s) {', '.join(unknown)}",
                    value=sequence,
                    expected=sorted(str(s) for s in symbols),
                )
            )
    return errors


@register_validator("selection_sequence_resolves")
def validate_selection_sequence(node: Any, path: str, root: Any) -> List[ValidationError]:
    """A ``csv_preset`` sequence must exist and name declared tokens."""
    if not isinstance(node, Mapping):
        return []
    selection = node.get("selection")
    if not isinstance(selection, Mapping) or selection.get("mode") != "csv_preset":
        return []
    seq_path = _join(_join(path, "selection"), "sequence")
    sequence = selection.get("sequence")
    if not sequence:
        return [
            ValidationError(
                seq_path, "required_field", "csv_preset mode needs a non-empty sequence"
            )
        ]
    labels = [item.get("label") for _, item in _dict_items(node.get("tokens"))]
    errors = []
    for idx, entry in enumerate(sequence):
        if isinstance(entry, bool):
            ok = False
        elif isinstance(entry, int):
            ok = 0 <= entry < len(labels)
        else:
            ok = entry in labels
        if not ok:
            errors.append(
                ValidationError(
                    f"{seq_path}[{idx}]",
                    "invalid_reference",
                    "entry is neither a token label nor a valid 0-based token index",
                    value=entry,
                    expected=labels,
                )
            )
    return errors


@register_validator("constraint_labels_resolve")
def validate_constraint_labels(node: Any, path: str, root: Any) -> List[ValidationError]:
    """``max_consecutive`` limits must refer to selectable labels."""
    if not isinstance(node, Mapping):
        return []
    constraints = node.get("constraints")
    if not isinstance(constraints, Mapping):
        return []
    selectable = {item.get("label") for _, item in _dict_items(node.get("tokens"))}
    selectable |= {item.get("label") for _, item in _dict_items(node.get("patterns"))}
    selectable |= {item.get("label") for _, item in _dict_items(node.get("outcomes"))}
    if "outcomes" in node:
        selectable.add(OMISSION_LABEL)
    selectable.discard(None)

    limits = {}
    explicit = constraints.get("max_consecutive")
    if isinstance(explicit, Mapping):
        for label in explicit:
            limits[label] = _join(_join(_join(path, "constraints"), "max_consecutive"), str(label))
    for key in constraints:
        if isinstance(key, str) and key.startswith("max_consecutive_"):
            limits[key[len("max_consecutive_"):]] = _join(_join(path, "constraints"), key)

    return [
        ValidationError(
            label_path,
            "invalid_reference",
            f"constraint refers to unknown label '{label}'",
            value=label,
            expected=sorted(str(s) for s in selectable),
        )
        for label, label_path in limits.items()
        if label not in selectable
    ]


@register_validator("reserved_labels")
def validate_reserved_labels(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Foreperiod cue and outcome labels must not collide with ``omission``."""
    if not isinstance(node, Mapping):
        return []
    entries = [(_join(path, "cue"), node.get("cue"))]
    entries += [
        (f"{_join(path, 'outcomes')}[{idx}]", item) for idx, item in _dict_items(node.get("outcomes"))
    ]
    return [
        ValidationError(
            _join(entry_path, "label"),
            "reserved_label",
            f"'{OMISSION_LABEL}' is reserved for trials without an outcome",
            value=OMISSION_LABEL,
        )
        for entry_path, entry in entries
        if isinstance(entry, Mapping) and entry.get("label") == OMISSION_LABEL
    ]


def _check_support(node: Any, path: str, allow_zero: bool) -> List[ValidationError]:
    # Malformed fields are already reported by the structural pass.
    if validate_numeric_field(node, path):
        return []
    low, _ = support(parse_numeric_field(node, path))
    if low > 0 or (allow_zero and low == 0):
        return []
    bound = ">= 0" if allow_zero else "> 0"
    return [
        ValidationError(
            path,
            "support_violation",
            f"every possible value must be {bound}, but the field can go as low as {low}",
            value=low,
            expected=f"{bound} (set clip_min on normal distributions)",
        )
    ]


@register_validator("non_negative_support")
def validate_non_negative_support(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Intervals (ITI, IOI, foreperiod) can never be negative."""
    return _check_support(node, path, allow_zero=True)


@register_validator("positive_support")
def validate_positive_support(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Element durations are always strictly positive."""
    return _check_support(node, path, allow_zero=False)


@register_validator("stimulus_refs_resolve")
def validate_stimulus_refs(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Every token's ``stimulus_ref`` must name an entry of ``stimuli``."""
    if not isinstance(node, Mapping):
        return []
    library = node.get("stimuli")
    if not isinstance(library, Mapping):
        return []
    errors = []
    for token_path, token in iter_paradigm_tokens(node.get("paradigm"), _join(path, "paradigm")):
        ref = token.get("stimulus_ref")
        if isinstance(ref, str) and ref not in library:
            errors.append(
                ValidationError(
                    _join(token_path, "stimulus_ref"),
                    "invalid_reference",
                    f"stimulus '{ref}' is not defined in the stimulus library",
                    value=ref,
                    expected=sorted(library),
                )
            )
    return errors


@register_validator("generators_registered")
def validate_generators_registered(node: Any, path: str, root: Any) -> List[ValidationError]:
    """Every stimulus definition must name a registered generator."""
    from seqforge.register_components import register_all
    from seqforge.registry import GENERATOR_REGISTRY

    if not isinstance(node, Mapping):
        return []
    register_all()
    errors = []
    for name, definition in node.items():
        if not isinstance(definition, Mapping):
            continue
        kind = definition.get("type")
        if isinstance(kind, str) and not GENERATOR_REGISTRY.is_registered(kind):
            errors.append(
                ValidationError(
                    _join(_join(path, str(name)), "type"),
                    "invalid_reference",
                    f"no generator registered as '{kind}'",
                    value=kind,
                    expected=GENERATOR_REGISTRY.list_registered(),
                )
            )
    return errors
