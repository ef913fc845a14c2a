"""Pure-tone generator."""

from __future__ import annotations

import math
from typing import Any, Mapping
import warnings

import torch

from seqforge.generators.base import (
    BaseAudioGenerator,
    GeneratorContext,
    apply_level_and_envelope,
)


class ToneGenerator(BaseAudioGenerator):
    """Sinusoid with level and onset/offset ramps.

    Params:
        frequency_hz: Tone frequency, below the Nyquist frequency.
        duration_ms: Set by the compiler from the element.
        level: Amplitude (default 0.5).
        level_unit: ``linear`` or ``dBFS``.
        phase_deg: Starting phase.
        envelope: ``{attack_ms, release_ms, shape}``.

    Example:
        >>> tone = ToneGenerator()
        >>> x = tone({"frequency_hz": 1000, "duration_ms": 50}, GeneratorContext(48000))
        >>> tuple(x.shape)
        (2400, 1)
    """

    name = "tone"

    def forward(self, params: Mapping[str, Any], context: GeneratorContext) -> torch.Tensor:
        n = self.n_samples(params, context)
        frequency = float(params.get("frequency_hz", 1000.0))
        nyquist = context.sample_rate_hz / 2.0
        if not 0 < frequency < nyquist:
            raise ValueError(
                f"frequency_hz must lie in (0, {nyquist}) at {context.sample_rate_hz} Hz, "
                f"got {frequency}"
            )
        phase = math.radians(float(params.get("phase_deg", 0.0)))
        t = torch.arange(n, dtype=torch.float64) / context.sample_rate_hz
        signal = torch.sin(2.0 * math.pi * frequency * t + phase)
        signal = apply_level_and_envelope(signal, params, context)

        peak = float(signal.abs().max())
        if peak > 1.0:
            warnings.warn(
                f"tone at {frequency} Hz peaks at {peak:.3f}; clipping to ±1",
                UserWarning,
            )
            signal = signal.clamp(-1.0, 1.0)
        return signal.unsqueeze(1)
