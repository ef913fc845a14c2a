"""Paradigm adapters: trial statistics in, trial plans out.

Classes:
    OddballAdapter: one token per trial, by probability
    LocalGlobalAdapter: symbol patterns at a fixed inter-onset interval
    ForeperiodAdapter: cue, variable foreperiod, outcome or omission
"""

from seqforge.paradigms.plan import Element, Trial, TrialPlan
from seqforge.paradigms.base import BaseParadigmAdapter, balanced_counts, repair_sequence
from seqforge.paradigms.oddball import OddballAdapter
from seqforge.paradigms.local_global import LocalGlobalAdapter
from seqforge.paradigms.foreperiod import ForeperiodAdapter

__all__ = [
    "Element",
    "Trial",
    "TrialPlan",
    "BaseParadigmAdapter",
    "balanced_counts",
    "repair_sequence",
    "OddballAdapter",
    "LocalGlobalAdapter",
    "ForeperiodAdapter",
]
