"""Base class and shared selection machinery for paradigm adapters.

Adapters turn trial statistics (tokens, probabilities, ordering
constraints) into a :class:`~seqforge.paradigms.plan.TrialPlan`. All
randomness comes from named streams of a
:class:`~seqforge.sampling.rng.RNGStreamManager` seeded with
``selection.seed``, so a plan is fully determined by its configuration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import math
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple
import warnings

import numpy as np

from seqforge.config.schema import (
    ConstraintPolicy,
    ParadigmConfig,
    SelectionConfig,
    Token,
    parse_paradigm_config,
)
from seqforge.errors import (
    ConfigurationError,
    ConstraintUnsatisfiable,
    ConstraintUnsatisfiableWarning,
    ValidationError,
)
from seqforge.paradigms.plan import Element, Trial, TrialPlan
from seqforge.sampling.numeric_field import representative_value
from seqforge.sampling.rng import RNGStreamManager
from seqforge.sampling.sampler import Sampler, ScopeKey


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def balanced_counts(probabilities: Sequence[float], n: int) -> List[int]:
    """Exact per-label counts for ``n`` trials.

    Each count is ``round_half_up(p * n)``; the difference to ``n`` is
    given to the highest-probability label (first on ties). If that label
    cannot absorb a deficit, the remaining deficit is taken from the next
    most probable labels.

    Example:
        >>> balanced_counts([0.8, 0.2], 100)
        [80, 20]
        >>> balanced_counts([1/3, 1/3, 1/3], 10)
        [4, 3, 3]
    """
    counts = [round_half_up(p * n) for p in probabilities]
    order = sorted(range(len(probabilities)), key=lambda i: (-probabilities[i], i))
    counts[order[0]] += n - sum(counts)
    if counts[order[0]] < 0:
        deficit = -counts[order[0]]
        counts[order[0]] = 0
        for idx in order[1:]:
            take = min(deficit, counts[idx])
            counts[idx] -= take
            deficit -= take
            if deficit == 0:
                break
    return counts


def max_runs(sequence: Sequence[str]) -> Dict[str, int]:
    """Longest run length of each label in ``sequence``."""
    longest: Dict[str, int] = {}
    run = 0
    for idx, label in enumerate(sequence):
        run = run + 1 if idx and sequence[idx - 1] == label else 1
        longest[label] = max(longest.get(label, 0), run)
    return longest


def constraint_excess(sequence: Sequence[str], limits: Dict[str, int]) -> int:
    """Total number of trials by which runs exceed their ``max_consecutive``.

    Zero means every constraint holds.
    """
    excess = 0
    run = 0
    for idx, label in enumerate(sequence):
        run = run + 1 if idx and sequence[idx - 1] == label else 1
        limit = limits.get(label)
        if limit is not None and run > limit:
            excess += 1
    return excess


def repair_sequence(
    sequence: List[str],
    policy: ConstraintPolicy,
    rng: np.random.Generator,
) -> Tuple[List[str], Dict[str, Any]]:
    """Re-shuffle ``sequence`` until ``policy`` holds or the budget runs out.

    Label counts are preserved. When the budget is exhausted the attempt
    with the smallest violation is kept and, depending on
    ``policy.on_failure``, a :class:`ConstraintUnsatisfiableWarning` is
    emitted or :class:`ConstraintUnsatisfiable` is raised.

    Returns:
        The (possibly repaired) sequence and a report dict.
    """
    if not policy.is_active:
        return sequence, {"active": False, "satisfied": True, "attempts": 0, "violations": 0}

    best = list(sequence)
    best_score = constraint_excess(best, policy.max_consecutive)
    attempts = 0
    while best_score > 0 and attempts < policy.max_attempts:
        attempts += 1
        candidate = [sequence[i] for i in rng.permutation(len(sequence))]
        score = constraint_excess(candidate, policy.max_consecutive)
        if score < best_score:
            best, best_score = candidate, score

    report = {
        "active": True,
        "satisfied": best_score == 0,
        "attempts": attempts,
        "violations": best_score,
        "max_consecutive": dict(policy.max_consecutive),
        "max_runs": max_runs(best),
    }
    if best_score > 0:
        message = (
            f"max_consecutive constraints {policy.max_consecutive} not satisfied after "
            f"{attempts} re-shuffles; keeping best attempt with {best_score} violating trial(s)"
        )
        if policy.on_failure == "error":
            raise ConstraintUnsatisfiable(message, report)
        warnings.warn(message, ConstraintUnsatisfiableWarning, stacklevel=3)
    return best, report


def select_labels(
    labels: Sequence[str],
    probabilities: Sequence[float],
    n_trials: int,
    selection: SelectionConfig,
    policy: ConstraintPolicy,
    rng: RNGStreamManager,
) -> Tuple[List[str], Dict[str, Any]]:
    """Draw a label per trial (``iid`` or ``balanced_shuffle``) and repair it."""
    probs = np.asarray(probabilities, dtype=np.float64)
    if selection.mode == "iid":
        draws = rng.derive_stream("selection/iid").choice(
            len(labels), size=n_trials, p=probs / probs.sum()
        )
        sequence = [labels[int(i)] for i in draws]
    elif selection.mode == "balanced_shuffle":
        counts = balanced_counts(list(probabilities), n_trials)
        pool = [label for label, count in zip(labels, counts) for _ in range(count)]
        order = rng.derive_stream("selection/balanced").permutation(len(pool))
        sequence = [pool[i] for i in order]
    else:
        raise ValueError(f"Unsupported selection mode '{selection.mode}'")
    return repair_sequence(sequence, policy, rng.derive_stream("selection/repair"))


def assign_codes(tokens: Sequence[Token]) -> List[int]:
    """Trigger code per token: its own ``code`` or its 1-based position."""
    return [t.code if t.code is not None else idx for idx, t in enumerate(tokens, start=1)]


class BaseParadigmAdapter(ABC):
    """Abstract base for paradigm adapters.

    Subclasses set :attr:`name` and :attr:`config_class` and implement
    :meth:`_build_plan`.

    Example:
        >>> adapter = OddballAdapter()
        >>> plan = adapter.generate_trial_plan(config_dict, n_trials=100)
        >>> plan.label_counts()
        {'standard': 80, 'deviant': 20}
    """

    name: ClassVar[str] = ""
    config_class: ClassVar[type] = object

    def generate_trial_plan(self, config: Any, n_trials: int) -> TrialPlan:
        """Validate ``config`` and produce a plan of ``n_trials`` trials.

        Args:
            config: Paradigm dict or typed paradigm config.
            n_trials: Number of trials (>= 1).

        Returns:
            Deterministic plan for the configured ``selection.seed``.

        Raises:
            SchemaError: Structural problems in ``config``.
            ConfigurationError: Cross-field problems, or a config of another
                paradigm.
            ConstraintUnsatisfiable: Constraints failed under an ``error``
                policy.
        """
        if isinstance(n_trials, bool) or not isinstance(n_trials, int) or n_trials < 1:
            raise ValueError(f"n_trials must be a positive integer, got {n_trials!r}")
        cfg = parse_paradigm_config(config)
        if not isinstance(cfg, self.config_class):
            raise ConfigurationError(
                [
                    ValidationError(
                        "paradigm",
                        "invalid_value",
                        f"{type(self).__name__} cannot plan a '{cfg.paradigm}' paradigm",
                        value=cfg.paradigm,
                        expected=self.name,
                    )
                ]
            )
        rng = RNGStreamManager(cfg.selection.seed)
        return self._build_plan(cfg, n_trials, rng, Sampler(rng))

    @abstractmethod
    def _build_plan(
        self,
        cfg: ParadigmConfig,
        n_trials: int,
        rng: RNGStreamManager,
        sampler: Sampler,
    ) -> TrialPlan:
        ...

    def _element(
        self,
        token: Token,
        code: int,
        onset_ms: float,
        sampler: Sampler,
        stream_id: str,
        key: ScopeKey,
        role: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> Element:
        return Element(
            stimulus_ref=token.stimulus_ref,
            scheduled_onset_ms=float(onset_ms),
            duration_ms=sampler.sample(token.duration_ms, stream_id, key),
            code=code,
            label=token.label,
            role=role,
            symbol=symbol,
        )

    def _finish_plan(
        self,
        cfg: ParadigmConfig,
        trials: List[Trial],
        rng: RNGStreamManager,
        report: Dict[str, Any],
        **extra: Any,
    ) -> TrialPlan:
        counts: Dict[str, int] = {}
        for trial in trials:
            counts[trial.label] = counts.get(trial.label, 0) + 1
        metadata = {
            "paradigm": self.name,
            "selection_mode": cfg.selection.mode,
            "selection_seed": rng.master_seed,
            "counts": counts,
            "constraint_report": report,
        }
        metadata.update(extra)
        return TrialPlan(
            n_trials=len(trials),
            iti_ms=representative_value(cfg.iti_ms),
            trials=tuple(trials),
            refractory_ms=cfg.refractory_ms,
            metadata=metadata,
        )

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "BaseParadigmAdapter":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {"paradigm": self.name}
