"""Reference stimulus generators.

Classes:
    GeneratorContext: sample rate and per-element seed
    BaseAudioGenerator: nn.Module base for generators
    ToneGenerator: pure tone with ramps
    NoiseGenerator: seeded white / band-limited noise
    ClickTrainGenerator: periodic rectangular clicks
    SilenceGenerator: zeros
"""

from seqforge.generators.base import (
    BaseAudioGenerator,
    GeneratorContext,
    envelope,
    level_gain,
)
from seqforge.generators.tone import ToneGenerator
from seqforge.generators.noise import NoiseGenerator
from seqforge.generators.click_train import ClickTrainGenerator, SilenceGenerator

__all__ = [
    "BaseAudioGenerator",
    "GeneratorContext",
    "envelope",
    "level_gain",
    "ToneGenerator",
    "NoiseGenerator",
    "ClickTrainGenerator",
    "SilenceGenerator",
]
