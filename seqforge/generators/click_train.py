"""Click-train and silence generators."""

from __future__ import annotations

import math
from typing import Any, Mapping

import torch

from seqforge.generators.base import BaseAudioGenerator, GeneratorContext, level_gain


class ClickTrainGenerator(BaseAudioGenerator):
    """Periodic rectangular clicks.

    Params:
        duration_ms: Set by the compiler from the element.
        rate_hz: Clicks per second (default 40).
        click_ms: Width of each click (at least one sample, default 0.1).
        level, level_unit: Click amplitude.
        polarity: ``1`` (condensation) or ``-1`` (rarefaction).
    """

    name = "click_train"

    def forward(self, params: Mapping[str, Any], context: GeneratorContext) -> torch.Tensor:
        n = self.n_samples(params, context)
        rate = float(params.get("rate_hz", 40.0))
        if rate <= 0:
            raise ValueError(f"rate_hz must be > 0, got {rate}")
        width = max(context.ms_to_samples(float(params.get("click_ms", 0.1))), 1)
        polarity = float(params.get("polarity", 1))
        if polarity not in (1.0, -1.0):
            raise ValueError(f"polarity must be 1 or -1, got {polarity}")
        gain = level_gain(float(params.get("level", 0.5)), params.get("level_unit", "linear"))

        signal = torch.zeros(n, dtype=torch.float64)
        period = context.sample_rate_hz / rate
        for k in range(int(math.ceil(n / period))):
            start = int(math.floor(k * period + 0.5))
            if start >= n:
                break
            signal[start:start + width] = polarity * gain
        return signal.unsqueeze(1)


class SilenceGenerator(BaseAudioGenerator):
    """All-zero element; useful as a placeholder with a trigger code."""

    name = "silence"

    def forward(self, params: Mapping[str, Any], context: GeneratorContext) -> torch.Tensor:
        return torch.zeros(self.n_samples(params, context), 1, dtype=torch.float64)
