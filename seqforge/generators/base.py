"""Abstract base class and shared helpers for audio generators.

The compiler calls every generator through one contract::

    generator(params, context) -> array-like [samples, channels]

``params`` is the stimulus definition's parameter dict with all numeric
fields already resolved to numbers and ``duration_ms`` set from the element
being rendered. ``context`` is a :class:`GeneratorContext` carrying the
sample rate and a per-element seed. Generators must be pure: the same
``params`` and ``context`` give the same samples.

Any callable honouring the contract can be registered; the bundled
generators subclass :class:`BaseAudioGenerator`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import math
from typing import Any, Dict, Mapping, Optional

import torch
import torch.nn as nn

ENVELOPE_SHAPES = ("linear", "cosine", "exponential")
LEVEL_UNITS = ("linear", "dBFS")


@dataclass(frozen=True)
class GeneratorContext:
    """Per-element rendering context.

    Attributes:
        sample_rate_hz: Output sample rate.
        seed: 32-bit seed derived for this element.
    """

    sample_rate_hz: float
    seed: int = 0

    def ms_to_samples(self, duration_ms: float) -> int:
        return int(math.floor(duration_ms * self.sample_rate_hz / 1000.0 + 0.5))

    def samples_to_ms(self, n_samples: int) -> float:
        return n_samples * 1000.0 / self.sample_rate_hz

    def torch_generator(self, seed: Optional[int] = None) -> torch.Generator:
        """A CPU ``torch.Generator`` seeded with ``seed`` or the element seed."""
        generator = torch.Generator()
        generator.manual_seed(int(self.seed if seed is None else seed))
        return generator


class BaseAudioGenerator(nn.Module, ABC):
    """Abstract base class for stimulus generators.

    All generators must:
    1. Inherit from ``nn.Module`` (for PyTorch compatibility)
    2. Implement ``forward(params, context)`` returning ``[samples, channels]``
    3. Provide ``from_config()`` for registry instantiation
    4. Provide ``to_dict()`` for serialization

    Example:
        >>> class DCGenerator(BaseAudioGenerator):
        ...     def forward(self, params, context):
        ...         n = self.n_samples(params, context)
        ...         return torch.full((n, 1), float(params.get("level", 0.1)))
    """

    name = "base"

    def __init__(self) -> None:
        super().__init__()

    @abstractmethod
    def forward(self, params: Mapping[str, Any], context: GeneratorContext) -> torch.Tensor:
        """Render one element.

        Args:
            params: Resolved stimulus parameters, including ``duration_ms``.
            context: Sample rate and element seed.

        Returns:
            Float tensor of shape ``[samples, channels]``.
        """
        ...

    @staticmethod
    def n_samples(params: Mapping[str, Any], context: GeneratorContext) -> int:
        """Sample count for ``params['duration_ms']``.

        Raises:
            ValueError: If ``duration_ms`` is missing or not positive.
        """
        if "duration_ms" not in params:
            raise ValueError("generator params need 'duration_ms'")
        duration_ms = float(params["duration_ms"])
        if duration_ms <= 0:
            raise ValueError(f"duration_ms must be > 0, got {duration_ms}")
        return max(context.ms_to_samples(duration_ms), 1)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "BaseAudioGenerator":
        return cls(**(config or {}))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.name}


def level_gain(level: float, unit: str = "linear") -> float:
    """Convert a level to a linear gain.

    Args:
        level: Amplitude in ``unit``.
        unit: ``linear`` (0..1 of full scale) or ``dBFS``.

    Raises:
        ValueError: Unknown unit or negative linear level.
    """
    if unit == "linear":
        if level < 0:
            raise ValueError(f"linear level must be >= 0, got {level}")
        return float(level)
    if unit == "dBFS":
        return float(10.0 ** (level / 20.0))
    raise ValueError(f"Unknown level unit '{unit}'. Available: {', '.join(LEVEL_UNITS)}")


def envelope(
    n_samples: int,
    sample_rate_hz: float,
    attack_ms: float = 0.0,
    release_ms: float = 0.0,
    shape: str = "cosine",
) -> torch.Tensor:
    """Onset/offset gain ramp of length ``n_samples``.

    Ramps longer than half the signal are shortened to half of it.

    Returns:
        Float64 tensor of shape ``[n_samples]`` with values in ``[0, 1]``.
    """
    if shape not in ENVELOPE_SHAPES:
        raise ValueError(f"Unknown envelope shape '{shape}'. Available: {', '.join(ENVELOPE_SHAPES)}")
    gain = torch.ones(n_samples, dtype=torch.float64)
    half = n_samples // 2
    n_attack = min(int(round(attack_ms * sample_rate_hz / 1000.0)), half)
    n_release = min(int(round(release_ms * sample_rate_hz / 1000.0)), half)
    if n_attack > 0:
        gain[:n_attack] = _ramp(n_attack, shape)
    if n_release > 0:
        gain[n_samples - n_release:] = torch.flip(_ramp(n_release, shape), dims=[0])
    return gain


def _ramp(n: int, shape: str) -> torch.Tensor:
    x = torch.linspace(0.0, 1.0, n, dtype=torch.float64)
    if shape == "linear":
        return x
    if shape == "cosine":
        return 0.5 * (1.0 - torch.cos(math.pi * x))
    # exponential: rises by ~40 dB over the ramp
    k = math.log(100.0)
    return (torch.exp(k * x) - 1.0) / (math.exp(k) - 1.0)


def apply_level_and_envelope(
    signal: torch.Tensor,
    params: Mapping[str, Any],
    context: GeneratorContext,
) -> torch.Tensor:
    """Scale ``signal`` by ``level``/``level_unit`` and shape it with ``envelope``."""
    gain = level_gain(float(params.get("level", 0.5)), params.get("level_unit", "linear"))
    env = params.get("envelope") or {}
    ramp = envelope(
        signal.shape[0],
        context.sample_rate_hz,
        float(env.get("attack_ms", 0.0)),
        float(env.get("release_ms", 0.0)),
        env.get("shape", "cosine"),
    )
    return signal * gain * ramp
