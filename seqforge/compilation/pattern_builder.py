"""Expansion of trial plans into absolute-time element tables.

The :class:`PatternBuilder` walks the plan with a time cursor starting at
0 ms. Each element of a trial is placed at ``cursor + scheduled_onset_ms``;
the cursor then advances by the trial duration (the latest element end,
or 0 for an omission trial), the refractory period and the inter-trial
interval.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple

from seqforge.paradigms.plan import TrialPlan


@dataclass(frozen=True)
class ElementRow:
    """One scheduled element in absolute time."""

    COLUMNS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("trial_index", "int"),
        ("element_index", "int"),
        ("block_index", "int"),
        ("stimulus_ref", "str"),
        ("absolute_onset_ms", "float"),
        ("duration_ms", "float"),
        ("label", "optional_str"),
        ("role", "optional_str"),
        ("symbol", "optional_str"),
        ("ttl_code", "int"),
    )

    trial_index: int
    element_index: int
    block_index: int
    stimulus_ref: str
    absolute_onset_ms: float
    duration_ms: float
    label: Optional[str]
    role: Optional[str]
    symbol: Optional[str]
    ttl_code: int

    @property
    def end_ms(self) -> float:
        return self.absolute_onset_ms + self.duration_ms


@dataclass(frozen=True)
class TrialWindow:
    """Placement of a whole trial; omission trials have ``n_elements == 0``."""

    COLUMNS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("trial_index", "int"),
        ("label", "str"),
        ("block_index", "int"),
        ("onset_ms", "float"),
        ("duration_ms", "float"),
        ("n_elements", "int"),
    )

    trial_index: int
    label: str
    block_index: int
    onset_ms: float
    duration_ms: float
    n_elements: int


@dataclass(frozen=True)
class ElementTable:
    """Element rows sorted by onset, plus one window per trial."""

    rows: Tuple[ElementRow, ...]
    trials: Tuple[TrialWindow, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ElementRow]:
        return iter(self.rows)

    @property
    def end_ms(self) -> float:
        """Latest element end (0 for an empty table)."""
        return max((row.end_ms for row in self.rows), default=0.0)

    def onsets(self) -> List[float]:
        return [row.absolute_onset_ms for row in self.rows]

    def columns(self) -> Dict[str, List[Any]]:
        """Column-oriented view, e.g. for building a data frame."""
        return {
            name: [getattr(row, name) for row in self.rows]
            for name, _ in ElementRow.COLUMNS
        }


class PatternBuilder:
    """Expand a :class:`TrialPlan` into an :class:`ElementTable`.

    The builder holds no state; :meth:`build` is a pure function of the plan.

    Example:
        >>> table = PatternBuilder().build(plan)
        >>> table.onsets()[:4]
        [0.0, 100.0, 200.0, 300.0]
    """

    def build(self, plan: TrialPlan) -> ElementTable:
        """Assign absolute onsets to every element of ``plan``.

        Raises:
            ValueError: Negative ITI/refractory/onset, non-positive duration,
                or elements listed out of onset order within a trial.
            RuntimeError: If the produced onsets are not monotonic.
        """
        _require_non_negative(plan.iti_ms, "plan.iti_ms")
        _require_non_negative(plan.refractory_ms, "plan.refractory_ms")

        rows: List[ElementRow] = []
        windows: List[TrialWindow] = []
        cursor = 0.0
        for trial in plan.trials:
            iti_ms = plan.iti_ms if trial.iti_ms is None else trial.iti_ms
            _require_non_negative(iti_ms, f"trials[{trial.trial_index}].iti_ms")

            trial_duration = 0.0
            previous_onset = 0.0
            for element_index, element in enumerate(trial.elements):
                where = f"trials[{trial.trial_index}].elements[{element_index}]"
                _require_non_negative(element.scheduled_onset_ms, f"{where}.scheduled_onset_ms")
                if not element.duration_ms > 0:
                    raise ValueError(f"{where}.duration_ms must be > 0, got {element.duration_ms}")
                if element.scheduled_onset_ms < previous_onset:
                    raise ValueError(
                        f"{where} starts at {element.scheduled_onset_ms} ms, before the "
                        f"previous element ({previous_onset} ms)"
                    )
                previous_onset = element.scheduled_onset_ms
                rows.append(
                    ElementRow(
                        trial_index=trial.trial_index,
                        element_index=element_index,
                        block_index=trial.block_index,
                        stimulus_ref=element.stimulus_ref,
                        absolute_onset_ms=cursor + element.scheduled_onset_ms,
                        duration_ms=float(element.duration_ms),
                        label=element.label,
                        role=element.role,
                        symbol=element.symbol,
                        ttl_code=int(element.code),
                    )
                )
                trial_duration = max(
                    trial_duration, element.scheduled_onset_ms + element.duration_ms
                )

            windows.append(
                TrialWindow(
                    trial_index=trial.trial_index,
                    label=trial.label,
                    block_index=trial.block_index,
                    onset_ms=cursor,
                    duration_ms=trial_duration,
                    n_elements=len(trial.elements),
                )
            )
            cursor += trial_duration + plan.refractory_ms + iti_ms

        _assert_monotonic(rows)
        return ElementTable(rows=tuple(rows), trials=tuple(windows))


def _require_non_negative(value: float, name: str) -> None:
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


def _assert_monotonic(rows: Sequence[ElementRow]) -> None:
    for prev, row in zip(rows, rows[1:]):
        if row.absolute_onset_ms < prev.absolute_onset_ms:
            raise RuntimeError(
                "Element onsets are not monotonic: trial "
                f"{row.trial_index} element {row.element_index} at {row.absolute_onset_ms} ms "
                f"follows {prev.absolute_onset_ms} ms"
            )


def build_element_table(plan: TrialPlan) -> ElementTable:
    """Functional form of :meth:`PatternBuilder.build`."""
    return PatternBuilder().build(plan)
