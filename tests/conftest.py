"""
Test configuration and fixtures for SeqForge.
"""
import copy
import os
import sys
from pathlib import Path

import numpy as np
import pytest
import torch

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("OMP_NUM_THREADS", "1")
os.environ.setdefault("MKL_NUM_THREADS", "1")
os.environ.setdefault("NUMEXPR_NUM_THREADS", "1")

try:
    torch.set_num_threads(1)
except RuntimeError:  # pragma: no cover - backend may refuse after init
    pass

from seqforge.registry import ComponentRegistry  # noqa: E402


class ConstantGenerator:
    """Test generator: a constant ``level`` for ``duration_ms`` (times ``stretch``)."""

    def __call__(self, params, context):
        n = context.ms_to_samples(params["duration_ms"] * params.get("stretch", 1.0))
        return np.full((max(n, 1), 1), float(params.get("level", 0.25)), dtype=np.float32)


class FailingGenerator:
    def __call__(self, params, context):
        raise RuntimeError("synthesis exploded")


@pytest.fixture
def test_registry():
    """Generator registry with deterministic test generators."""
    from seqforge.generators import NoiseGenerator, ToneGenerator

    registry = ComponentRegistry("TEST_REGISTRY")
    registry.register("constant", ConstantGenerator)
    registry.register("failing", FailingGenerator)
    registry.register("tone", ToneGenerator)
    registry.register("noise", NoiseGenerator)
    return registry


@pytest.fixture
def stimulus_library():
    """Small library of bundled generators."""
    return {
        "std_tone": {"type": "tone", "params": {"frequency_hz": 1000, "level": 0.3}},
        "dev_tone": {"type": "tone", "params": {"frequency_hz": 1500, "level": 0.3}},
        "noise_burst": {
            "type": "noise",
            "params": {"low_hz": 500, "high_hz": 2000, "level": 0.2},
        },
    }


@pytest.fixture
def oddball_paradigm():
    return {
        "paradigm": "oddball",
        "tokens": [
            {"label": "standard", "stimulus_ref": "std_tone", "base_probability": 0.8,
             "code": 1, "duration_ms": 50},
            {"label": "deviant", "stimulus_ref": "dev_tone", "base_probability": 0.2,
             "code": 2, "duration_ms": 50},
        ],
        "selection": {"mode": "balanced_shuffle", "seed": 42},
        "iti_ms": 200,
    }


@pytest.fixture
def local_global_paradigm():
    return {
        "paradigm": "local_global",
        "symbols": {
            "A": {"stimulus_ref": "std_tone", "duration_ms": 50},
            "B": {"stimulus_ref": "dev_tone", "duration_ms": 50},
        },
        "patterns": [
            {"label": "xxxY", "sequence": "AAAB", "base_probability": 0.5},
            {"label": "xxxX", "sequence": "AAAA", "base_probability": 0.5},
        ],
        "ioi_ms": 100,
        "iti_ms": 500,
        "selection": {"mode": "balanced_shuffle", "seed": 7},
    }


@pytest.fixture
def foreperiod_paradigm():
    return {
        "paradigm": "foreperiod",
        "cue": {"label": "cue", "stimulus_ref": "std_tone", "duration_ms": 50},
        "outcomes": [{"label": "target", "stimulus_ref": "noise_burst", "duration_ms": 100}],
        "foreperiod_ms": 300,
        "omission_probability": 0.2,
        "iti_ms": 400,
        "selection": {"mode": "balanced_shuffle", "seed": 3},
    }


@pytest.fixture
def experiment_document(oddball_paradigm, stimulus_library):
    """Complete oddball experiment document."""
    return {
        "metadata": {"name": "oddball-test"},
        "seed": 42,
        "sample_rate_hz": 8000,
        "n_trials": 100,
        "paradigm": copy.deepcopy(oddball_paradigm),
        "stimuli": copy.deepcopy(stimulus_library),
        "compiler": {"timing_check": "error"},
    }
