"""Foreperiod paradigm adapter.

Every trial starts with a cue at 0 ms. The outcome follows at
``cue_duration + foreperiod``, where the foreperiod is a numeric field
(categorical distributions express a discrete set of foreperiods). With
probability ``omission_probability`` the outcome is withheld; such trials
are labelled ``omission`` and contain only the cue.

Omission and outcome selection form one categorical draw over
``outcomes + [omission]`` with weights ``(1 - p) * q_i`` and ``p``, so the
selection modes and ordering constraints apply to omissions as well.
"""

from __future__ import annotations

from seqforge.config.schema import ForeperiodConfig
from seqforge.paradigms.base import BaseParadigmAdapter, assign_codes, select_labels
from seqforge.paradigms.plan import Trial, TrialPlan
from seqforge.sampling.rng import RNGStreamManager
from seqforge.sampling.sampler import Sampler, ScopeKey
from seqforge.validation.custom import OMISSION_LABEL


class ForeperiodAdapter(BaseParadigmAdapter):
    """Plan cue-outcome trials with sampled foreperiods and omissions."""

    name = "foreperiod"
    config_class = ForeperiodConfig

    def _build_plan(
        self,
        cfg: ForeperiodConfig,
        n_trials: int,
        rng: RNGStreamManager,
        sampler: Sampler,
    ) -> TrialPlan:
        # The cue takes code 1 unless given one; outcomes follow.
        codes = assign_codes([cfg.cue] + list(cfg.outcomes))
        cue_code = codes[0]
        outcomes = {t.label: (t, code) for t, code in zip(cfg.outcomes, codes[1:])}

        p_omit = cfg.omission_probability
        labels = [t.label for t in cfg.outcomes]
        weights = [(1.0 - p_omit) * t.base_probability for t in cfg.outcomes]
        if p_omit > 0:
            labels.append(OMISSION_LABEL)
            weights.append(p_omit)
        sequence, report = select_labels(
            labels, weights, n_trials, cfg.selection, cfg.constraints, rng
        )

        trials = []
        for idx, label in enumerate(sequence):
            key = ScopeKey.for_trial(idx, cfg.block_size)
            cue = self._element(
                cfg.cue, cue_code, 0.0, sampler, "cue.duration_ms", key, role="cue"
            )
            foreperiod_ms = sampler.sample(cfg.foreperiod_ms, "foreperiod_ms", key)
            elements = [cue]
            if label != OMISSION_LABEL:
                token, code = outcomes[label]
                elements.append(
                    self._element(
                        token,
                        code,
                        cue.duration_ms + foreperiod_ms,
                        sampler,
                        f"outcomes.{label}.duration_ms",
                        key,
                        role="outcome",
                    )
                )
            trials.append(
                Trial(
                    trial_index=idx,
                    label=label,
                    elements=tuple(elements),
                    block_index=key.block_index,
                    iti_ms=sampler.sample(cfg.iti_ms, "iti_ms", key),
                    attributes={
                        "foreperiod_ms": foreperiod_ms,
                        "omission": label == OMISSION_LABEL,
                    },
                )
            )
        return self._finish_plan(cfg, trials, rng, report, omission_probability=p_omit)
