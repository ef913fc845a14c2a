"""Oddball paradigm adapter.

Each trial presents a single token drawn by probability. Selection modes:

* ``iid``: independent weighted draw per trial.
* ``balanced_shuffle``: exact counts ``round(p * N)`` (remainder to the most
  probable token), then shuffled.
* ``csv_preset``: an explicit sequence of labels or 0-based token indices,
  repeated when shorter than ``N``.

``max_consecutive`` constraints are enforced by bounded re-shuffling for the
random modes; preset sequences are used as given and only reported on.
"""

from __future__ import annotations

from typing import List
import warnings

from seqforge.config.schema import OddballConfig
from seqforge.paradigms.base import (
    BaseParadigmAdapter,
    assign_codes,
    constraint_excess,
    max_runs,
    select_labels,
)
from seqforge.paradigms.plan import Trial, TrialPlan
from seqforge.sampling.rng import RNGStreamManager
from seqforge.sampling.sampler import Sampler, ScopeKey


class OddballAdapter(BaseParadigmAdapter):
    """Plan oddball trials (one element per trial)."""

    name = "oddball"
    config_class = OddballConfig

    def _build_plan(
        self,
        cfg: OddballConfig,
        n_trials: int,
        rng: RNGStreamManager,
        sampler: Sampler,
    ) -> TrialPlan:
        labels = [t.label for t in cfg.tokens]
        tokens = {t.label: t for t in cfg.tokens}
        codes = dict(zip(labels, assign_codes(cfg.tokens)))

        if cfg.selection.mode == "csv_preset":
            sequence = self._preset_sequence(cfg, n_trials)
            limits = cfg.constraints.max_consecutive
            violations = constraint_excess(sequence, limits)
            report = {
                "active": bool(limits),
                "satisfied": violations == 0,
                "attempts": 0,
                "violations": violations,
                "max_consecutive": dict(limits),
                "max_runs": max_runs(sequence),
            }
        else:
            sequence, report = select_labels(
                labels,
                [t.base_probability for t in cfg.tokens],
                n_trials,
                cfg.selection,
                cfg.constraints,
                rng,
            )

        trials = []
        for idx, label in enumerate(sequence):
            key = ScopeKey.for_trial(idx, cfg.block_size)
            element = self._element(
                tokens[label],
                codes[label],
                0.0,
                sampler,
                f"tokens.{label}.duration_ms",
                key,
                role="stimulus",
            )
            trials.append(
                Trial(
                    trial_index=idx,
                    label=label,
                    elements=(element,),
                    block_index=key.block_index,
                    iti_ms=sampler.sample(cfg.iti_ms, "iti_ms", key),
                )
            )
        return self._finish_plan(cfg, trials, rng, report)

    @staticmethod
    def _preset_sequence(cfg: OddballConfig, n_trials: int) -> List[str]:
        labels = [t.label for t in cfg.tokens]
        preset = [labels[entry] if isinstance(entry, int) else entry for entry in cfg.selection.sequence]
        if len(preset) < n_trials:
            warnings.warn(
                f"csv_preset sequence has {len(preset)} entries for {n_trials} trials; "
                "repeating it",
                UserWarning,
                stacklevel=4,
            )
            repeats = -(-n_trials // len(preset))
            preset = preset * repeats
        return preset[:n_trials]
