"""Pre-compile timing feasibility check.

Finds schedules that compile but do not play as written:

* elements of one trial overlapping in time (e.g. a tone longer than the
  local-global inter-onset interval),
* envelope ramps longer than the element they shape,
* trigger pulses that would be overwritten by the next element's pulse.

The compiler runs the check according to ``CompilerSettings.timing_check``:
``off`` skips it, ``warn`` emits a :class:`~seqforge.errors.TimingWarning`,
``error`` raises :class:`~seqforge.errors.TimingInfeasible`.
"""

from __future__ import annotations

import math
from typing import Any, List, Mapping
import warnings

from seqforge.compilation.pattern_builder import ElementTable
from seqforge.errors import TimingInfeasible, TimingWarning, ValidationError, format_errors
from seqforge.sampling.numeric_field import (
    is_numeric_field_spec,
    parse_numeric_field,
    representative_value,
)

TIMING_MODES = ("off", "warn", "error")


def _nominal(value: Any) -> float:
    if value is None or not is_numeric_field_spec(value):
        return 0.0
    return representative_value(parse_numeric_field(value))


def check_timing_feasibility(
    table: ElementTable,
    stimulus_library: Mapping[str, Any],
    sample_rate_hz: float,
    ttl_pulse_samples: int,
) -> List[ValidationError]:
    """Return every timing problem of ``table``; an empty list means feasible.

    Args:
        table: Element table to check.
        stimulus_library: Mapping of name to stimulus definition (objects
            with a ``params`` attribute or raw dicts).
        sample_rate_hz: Output sample rate.
        ttl_pulse_samples: Trigger pulse width in samples.
    """
    errors: List[ValidationError] = []
    rows = table.rows

    for prev, row in zip(rows, rows[1:]):
        if row.trial_index == prev.trial_index and row.absolute_onset_ms < prev.end_ms:
            errors.append(
                ValidationError(
                    f"trials[{row.trial_index}].elements[{row.element_index}]",
                    "timing_infeasible",
                    f"starts {prev.end_ms - row.absolute_onset_ms:.3f} ms before element "
                    f"{prev.element_index} ends",
                    value=row.absolute_onset_ms,
                    expected=f">= {prev.end_ms}",
                )
            )
        gap = math.floor(row.absolute_onset_ms * sample_rate_hz / 1000.0 + 0.5) - math.floor(
            prev.absolute_onset_ms * sample_rate_hz / 1000.0 + 0.5
        )
        if gap < ttl_pulse_samples:
            errors.append(
                ValidationError(
                    f"trials[{row.trial_index}].elements[{row.element_index}]",
                    "timing_infeasible",
                    f"trigger follows the previous one by {gap} sample(s); "
                    f"the {ttl_pulse_samples}-sample pulse would be cut short",
                    value=gap,
                    expected=f">= {ttl_pulse_samples}",
                )
            )

    for row in rows:
        definition = stimulus_library.get(row.stimulus_ref)
        if definition is None:
            continue
        params = definition.get("params", {}) if isinstance(definition, Mapping) else definition.params
        envelope = params.get("envelope") or {}
        if not isinstance(envelope, Mapping):
            continue
        ramps = _nominal(envelope.get("attack_ms")) + _nominal(envelope.get("release_ms"))
        if ramps > row.duration_ms:
            errors.append(
                ValidationError(
                    f"trials[{row.trial_index}].elements[{row.element_index}]",
                    "timing_infeasible",
                    f"envelope ramps of '{row.stimulus_ref}' ({ramps} ms) exceed the "
                    f"element duration",
                    value=row.duration_ms,
                    expected=f">= {ramps}",
                )
            )
    return errors


def enforce_timing(errors: List[ValidationError], mode: str) -> None:
    """Act on timing findings according to ``mode``."""
    if mode not in TIMING_MODES:
        raise ValueError(f"timing_check must be one of {TIMING_MODES}, got {mode!r}")
    if not errors or mode == "off":
        return
    if mode == "error":
        raise TimingInfeasible(errors)
    warnings.warn(format_errors(errors), TimingWarning, stacklevel=3)
