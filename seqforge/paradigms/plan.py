"""Trial plans produced by paradigm adapters.

A :class:`TrialPlan` lists trials in presentation order. Element onsets are
relative to their trial; absolute times are assigned later by the
:class:`~seqforge.compilation.pattern_builder.PatternBuilder`.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Element:
    """One stimulus occurrence inside a trial.

    Attributes:
        stimulus_ref: Key into the stimulus library.
        scheduled_onset_ms: Onset relative to the trial start.
        duration_ms: Element duration.
        code: Trigger code written at the element onset.
        label: Token label the element was drawn from.
        role: Role within the trial (``stimulus``, ``item``, ``cue``,
            ``outcome``).
        symbol: Pattern symbol (local-global paradigms).
    """

    stimulus_ref: str
    scheduled_onset_ms: float
    duration_ms: float
    code: int = 1
    label: Optional[str] = None
    role: Optional[str] = None
    symbol: Optional[str] = None


@dataclass(frozen=True)
class Trial:
    """A trial; zero elements marks an omission trial."""

    trial_index: int
    label: str
    elements: Tuple[Element, ...] = ()
    block_index: int = 0
    iti_ms: Optional[float] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_omission(self) -> bool:
        return not self.elements


@dataclass(frozen=True)
class TrialPlan:
    """Ordered trials plus plan-wide timing.

    Attributes:
        n_trials: Number of trials; equals ``len(trials)``.
        iti_ms: Default inter-trial interval. Trials with their own
            ``iti_ms`` override it.
        trials: Trials in presentation order.
        refractory_ms: Gap added after every trial before the ITI.
        metadata: Paradigm, selection mode, seeds, label counts and the
            constraint report.
    """

    n_trials: int
    iti_ms: float
    trials: Tuple[Trial, ...]
    refractory_ms: float = 0.0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.n_trials != len(self.trials):
            raise ValueError(
                f"n_trials={self.n_trials} but plan holds {len(self.trials)} trials"
            )

    def labels(self) -> List[str]:
        return [trial.label for trial in self.trials]

    def label_counts(self) -> Dict[str, int]:
        return dict(Counter(self.labels()))
