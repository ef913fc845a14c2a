"""Auto-registration of all SeqForge components.

Example:
    >>> from seqforge.register_components import register_all
    >>> register_all()
    >>> from seqforge.registry import GENERATOR_REGISTRY
    >>> tone = GENERATOR_REGISTRY.create("tone")
"""

from seqforge.registry import GENERATOR_REGISTRY, PARADIGM_REGISTRY

from seqforge.generators.tone import ToneGenerator
from seqforge.generators.noise import NoiseGenerator
from seqforge.generators.click_train import ClickTrainGenerator, SilenceGenerator

from seqforge.paradigms.oddball import OddballAdapter
from seqforge.paradigms.local_global import LocalGlobalAdapter
from seqforge.paradigms.foreperiod import ForeperiodAdapter


def register_all() -> None:
    """Register all bundled generators and paradigm adapters.

    Safe to call repeatedly.
    """
    GENERATOR_REGISTRY.register("tone", ToneGenerator)
    GENERATOR_REGISTRY.register("noise", NoiseGenerator)
    GENERATOR_REGISTRY.register("noise.bandpass", NoiseGenerator)  # Alias
    GENERATOR_REGISTRY.register("click_train", ClickTrainGenerator)
    GENERATOR_REGISTRY.register("silence", SilenceGenerator)

    PARADIGM_REGISTRY.register("oddball", OddballAdapter)
    PARADIGM_REGISTRY.register("local_global", LocalGlobalAdapter)
    PARADIGM_REGISTRY.register("foreperiod", ForeperiodAdapter)
