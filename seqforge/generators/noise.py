"""Seeded white and band-limited noise generator."""

from __future__ import annotations

from typing import Any, Mapping

import numpy as np
from scipy import signal as sp_signal
import torch

from seqforge.generators.base import (
    BaseAudioGenerator,
    GeneratorContext,
    apply_level_and_envelope,
)


class NoiseGenerator(BaseAudioGenerator):
    """Gaussian noise, optionally band-pass, high-pass or low-pass filtered.

    Samples come from a ``torch.Generator`` seeded with the element seed, so
    every element gets its own noise token. Setting ``noise_seed`` freezes
    the token across elements.

    Params:
        duration_ms: Set by the compiler from the element.
        low_hz: Lower cutoff (high-pass edge). Optional.
        high_hz: Upper cutoff (low-pass edge). Optional.
        order: Butterworth order (default 4).
        noise_seed: Fixed seed overriding the element seed. Optional.
        level, level_unit, envelope: As for the tone generator. The filtered
            noise is peak-normalised before the level is applied.
    """

    name = "noise"

    def forward(self, params: Mapping[str, Any], context: GeneratorContext) -> torch.Tensor:
        n = self.n_samples(params, context)
        seed = params.get("noise_seed")
        generator = context.torch_generator(None if seed is None else int(seed))
        noise = torch.randn(n, generator=generator, dtype=torch.float64)

        sos = self._design_filter(params, context.sample_rate_hz)
        if sos is not None and n > 1:
            padlen = min(3 * (2 * len(sos) + 1), n - 1)
            filtered = sp_signal.sosfiltfilt(sos, noise.numpy(), padlen=padlen)
            noise = torch.from_numpy(np.ascontiguousarray(filtered))

        peak = float(noise.abs().max())
        if peak > 0:
            noise = noise / peak
        return apply_level_and_envelope(noise, params, context).unsqueeze(1)

    @staticmethod
    def _design_filter(params: Mapping[str, Any], sample_rate_hz: float):
        low = params.get("low_hz")
        high = params.get("high_hz")
        if low is None and high is None:
            return None
        nyquist = sample_rate_hz / 2.0
        for name, value in (("low_hz", low), ("high_hz", high)):
            if value is not None and not 0 < float(value) < nyquist:
                raise ValueError(f"{name} must lie in (0, {nyquist}), got {value}")
        order = int(params.get("order", 4))
        if low is not None and high is not None:
            if float(low) >= float(high):
                raise ValueError(f"low_hz ({low}) must be below high_hz ({high})")
            return sp_signal.butter(
                order, [float(low), float(high)], btype="bandpass", fs=sample_rate_hz, output="sos"
            )
        if low is not None:
            return sp_signal.butter(order, float(low), btype="highpass", fs=sample_rate_hz, output="sos")
        return sp_signal.butter(order, float(high), btype="lowpass", fs=sample_rate_hz, output="sos")
