"""Plan expansion, rendering and the sequence artifact.

Modules:
    pattern_builder: TrialPlan → absolute-time ElementTable
    timing: pre-compile timing feasibility check
    compiler: ElementTable → SequenceArtifact
    artifact: immutable SequenceArtifact and hashing
"""

from seqforge.compilation.pattern_builder import (
    ElementRow,
    ElementTable,
    PatternBuilder,
    TrialWindow,
    build_element_table,
)
from seqforge.compilation.artifact import EventRow, SequenceArtifact
from seqforge.compilation.timing import check_timing_feasibility
from seqforge.compilation.compiler import (
    TTL_PULSE_SAMPLES,
    CompileContext,
    SequenceCompiler,
    compile_table,
)

__all__ = [
    "ElementRow",
    "ElementTable",
    "PatternBuilder",
    "TrialWindow",
    "build_element_table",
    "EventRow",
    "SequenceArtifact",
    "check_timing_feasibility",
    "TTL_PULSE_SAMPLES",
    "CompileContext",
    "SequenceCompiler",
    "compile_table",
]
