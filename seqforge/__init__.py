"""SeqForge: compile declarative auditory paradigms into sample-accurate sequences.

SeqForge turns an experiment document (tokens, probabilities, timing rules)
into a reproducible multi-channel audio buffer, a TTL trigger track, event
and trial tables, and a manifest with a content hash.

Key Components:
    - sampling: scalar-or-distribution numeric fields, named RNG streams
    - validation: exhaustive schema validation with cross-field rules
    - paradigms: oddball, local-global and foreperiod adapters
    - compilation: pattern builder, compiler, sequence artifact
    - generators: reference tone, noise, click-train and silence generators
    - io: HDF5 artifact container

Example:
    >>> from seqforge import compile_experiment
    >>> artifact = compile_experiment("oddball.yaml", output_path="oddball.h5")
    >>> artifact.manifest["audio_sha256"]
"""

__version__ = "0.1.0"
__author__ = "SeqForge Contributors"
__license__ = "MIT"

from seqforge.config.schema import ExperimentConfig
from seqforge.compilation.artifact import SequenceArtifact
from seqforge.compilation.compiler import CompileContext, SequenceCompiler
from seqforge.compilation.pattern_builder import PatternBuilder
from seqforge.paradigms import ForeperiodAdapter, LocalGlobalAdapter, OddballAdapter
from seqforge.pipeline import ExperimentPipeline, compile_experiment
from seqforge.sampling import RNGStreamManager, Sampler

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "ExperimentConfig",
    "SequenceArtifact",
    "CompileContext",
    "SequenceCompiler",
    "PatternBuilder",
    "OddballAdapter",
    "LocalGlobalAdapter",
    "ForeperiodAdapter",
    "ExperimentPipeline",
    "compile_experiment",
    "RNGStreamManager",
    "Sampler",
]
