"""Pure distribution draws.

Each function takes the distribution parameters and an explicit
``numpy.random.Generator``; none of them touch global random state.
"""

from __future__ import annotations

import math

import numpy as np

from seqforge.sampling.numeric_field import Distribution, NumericField, Scalar


def draw_uniform(rng: np.random.Generator, low: float, high: float) -> float:
    return float(rng.uniform(low, high))


def draw_normal(
    rng: np.random.Generator,
    mean: float,
    std: float,
    clip_min: float = -math.inf,
    clip_max: float = math.inf,
) -> float:
    value = float(rng.normal(mean, std))
    return min(max(value, clip_min), clip_max)


def draw_loguniform(rng: np.random.Generator, low: float, high: float) -> float:
    return float(math.exp(rng.uniform(math.log(low), math.log(high))))


def draw_categorical(rng: np.random.Generator, categories, probabilities) -> float:
    probs = np.asarray(probabilities, dtype=np.float64)
    # Renormalise; validation allows a 1e-3 slack on the sum.
    probs = probs / probs.sum()
    idx = int(rng.choice(len(probs), p=probs))
    return float(categories[idx])


def draw(numeric_field: NumericField, rng: np.random.Generator) -> float:
    """Draw one value from a parsed numeric field.

    Args:
        numeric_field: :class:`Scalar` or :class:`Distribution`.
        rng: Generator to draw from. Unused for scalars.

    Returns:
        The drawn value as a Python float.
    """
    if isinstance(numeric_field, Scalar):
        return float(numeric_field.value)
    if not isinstance(numeric_field, Distribution):
        raise TypeError(f"Expected Scalar or Distribution, got {type(numeric_field).__name__}")
    p = numeric_field.params
    kind = numeric_field.kind
    if kind == "uniform":
        return draw_uniform(rng, p["min"], p["max"])
    if kind == "normal":
        return draw_normal(
            rng,
            p["mean"],
            p["std"],
            p.get("clip_min", -math.inf),
            p.get("clip_max", math.inf),
        )
    if kind == "loguniform":
        return draw_loguniform(rng, p["min"], p["max"])
    if kind == "categorical":
        return draw_categorical(rng, p["categories"], p["probabilities"])
    raise ValueError(f"Unknown distribution kind '{kind}'")
