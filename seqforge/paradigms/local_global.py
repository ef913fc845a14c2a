"""Local-global paradigm adapter.

Trials are symbol patterns such as ``"AAAB"``. Each symbol resolves through
the symbol table to a token, and element ``k`` of a trial starts at
``k * ioi_ms``. The IOI may be a distribution; it is sampled per its scope,
so a ``per_trial`` IOI is constant within a trial and varies across trials.
"""

from __future__ import annotations

from seqforge.config.schema import LocalGlobalConfig
from seqforge.paradigms.base import BaseParadigmAdapter, assign_codes, select_labels
from seqforge.paradigms.plan import Trial, TrialPlan
from seqforge.sampling.rng import RNGStreamManager
from seqforge.sampling.sampler import Sampler, ScopeKey


class LocalGlobalAdapter(BaseParadigmAdapter):
    """Plan local-global trials (one element per pattern symbol)."""

    name = "local_global"
    config_class = LocalGlobalConfig

    def _build_plan(
        self,
        cfg: LocalGlobalConfig,
        n_trials: int,
        rng: RNGStreamManager,
        sampler: Sampler,
    ) -> TrialPlan:
        patterns = {p.label: p for p in cfg.patterns}
        codes = dict(zip(cfg.symbols, assign_codes(list(cfg.symbols.values()))))
        sequence, report = select_labels(
            [p.label for p in cfg.patterns],
            [p.base_probability for p in cfg.patterns],
            n_trials,
            cfg.selection,
            cfg.constraints,
            rng,
        )

        trials = []
        for idx, label in enumerate(sequence):
            key = ScopeKey.for_trial(idx, cfg.block_size)
            pattern = patterns[label]
            ioi_ms = sampler.sample(cfg.ioi_ms, "ioi_ms", key)
            elements = tuple(
                self._element(
                    cfg.symbols[symbol],
                    codes[symbol],
                    position * ioi_ms,
                    sampler,
                    f"symbols.{symbol}.duration_ms",
                    key,
                    role="item",
                    symbol=symbol,
                )
                for position, symbol in enumerate(pattern.sequence)
            )
            trials.append(
                Trial(
                    trial_index=idx,
                    label=label,
                    elements=elements,
                    block_index=key.block_index,
                    iti_ms=sampler.sample(cfg.iti_ms, "iti_ms", key),
                    attributes={"pattern": pattern.sequence, "ioi_ms": ioi_ms},
                )
            )
        return self._finish_plan(
            cfg,
            trials,
            rng,
            report,
            patterns={p.label: p.sequence for p in cfg.patterns},
        )
