"""Deterministic sampling of scalar-or-distribution numeric fields.

Modules:
    numeric_field: ``Scalar | Distribution`` types, validation and parsing
    distributions: Pure draw functions over explicit generators
    rng: Named, order-independent random streams
    sampler: Scope-aware sampling with per-unit caching
"""

from seqforge.sampling.numeric_field import (
    Scalar,
    Distribution,
    NumericField,
    SCOPES,
    DISTRIBUTION_KINDS,
    validate_numeric_field,
    parse_numeric_field,
    compute_moments,
    representative_value,
)
from seqforge.sampling.rng import RNGStreamManager
from seqforge.sampling.sampler import Sampler, ScopeKey

__all__ = [
    "Scalar",
    "Distribution",
    "NumericField",
    "SCOPES",
    "DISTRIBUTION_KINDS",
    "validate_numeric_field",
    "parse_numeric_field",
    "compute_moments",
    "representative_value",
    "RNGStreamManager",
    "Sampler",
    "ScopeKey",
]
