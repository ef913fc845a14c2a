"""Scope-aware sampling of numeric fields.

A :class:`Sampler` resolves ``Scalar | Distribution`` fields to concrete
numbers. Distribution draws are cached per ``(stream_id, scope, unit)``,
where the unit is the trial index for ``per_trial`` fields, the block index
for ``per_block`` fields and ``0`` for ``per_session`` fields. Reading the
same field twice inside one unit therefore yields the same number, whichever
call site asks first.

The first draw for a unit comes from the stream
``param/<stream_id>/<scope>/<unit>``, so a value never depends on which
other fields or units were sampled before it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from seqforge.sampling.distributions import draw
from seqforge.sampling.numeric_field import (
    Distribution,
    Scalar,
    is_numeric_field_spec,
    parse_numeric_field,
)
from seqforge.sampling.rng import RNGStreamManager


@dataclass(frozen=True)
class ScopeKey:
    """Identifies the trial and block a sample is drawn for."""

    trial_index: int = 0
    block_index: int = 0

    @classmethod
    def for_trial(cls, trial_index: int, block_size: Optional[int] = None) -> "ScopeKey":
        """Build a key, deriving the block from a fixed block size."""
        block_index = trial_index // block_size if block_size else 0
        return cls(trial_index=trial_index, block_index=block_index)

    def unit_for(self, scope: str) -> int:
        if scope == "per_trial":
            return self.trial_index
        if scope == "per_block":
            return self.block_index
        if scope == "per_session":
            return 0
        raise ValueError(f"Unknown scope '{scope}'")


class Sampler:
    """Draw numeric fields with scope caching.

    Args:
        rng: Stream manager providing the named streams.

    Example:
        >>> sampler = Sampler(RNGStreamManager(7))
        >>> field = parse_numeric_field(
        ...     {"dist": "uniform", "min": 0, "max": 1, "scope": "per_block"})
        >>> a = sampler.sample(field, "jitter", ScopeKey(trial_index=0, block_index=0))
        >>> b = sampler.sample(field, "jitter", ScopeKey(trial_index=5, block_index=0))
        >>> a == b
        True
    """

    def __init__(self, rng: RNGStreamManager):
        self.rng = rng
        self._cache: Dict[Tuple[str, str, int], float] = {}

    def sample(
        self,
        numeric_field: Any,
        stream_id: str,
        scope_key: Optional[ScopeKey] = None,
    ) -> float:
        """Resolve a numeric field to a number.

        Args:
            numeric_field: Parsed field, or a raw document that will be
                parsed first.
            stream_id: Identity of the parameter (e.g. ``"paradigm.iti_ms"``).
            scope_key: Trial/block the value is for. Required for
                ``per_trial`` and ``per_block`` distributions.

        Returns:
            The sampled (or cached) value.

        Raises:
            ValueError: If a trial- or block-scoped field is sampled without
                a scope key.
        """
        numeric_field = parse_numeric_field(numeric_field, stream_id)
        if isinstance(numeric_field, Scalar):
            return numeric_field.value

        scope = numeric_field.scope
        if scope_key is None:
            if scope != "per_session":
                raise ValueError(
                    f"Field '{stream_id}' has scope '{scope}' and needs a scope key"
                )
            scope_key = ScopeKey()
        unit = scope_key.unit_for(scope)
        key = (stream_id, scope, unit)
        if key not in self._cache:
            stream = self.rng.derive_stream(f"param/{stream_id}/{scope}/{unit}")
            self._cache[key] = draw(numeric_field, stream)
        return self._cache[key]

    def sample_struct(
        self,
        params: Mapping[str, Any],
        stream_prefix: str,
        scope_key: Optional[ScopeKey] = None,
    ) -> Dict[str, Any]:
        """Resolve every distribution nested in a parameter mapping.

        Plain values are copied through; mappings written as distribution
        specs (and parsed :class:`Distribution` objects) are sampled with the
        stream id ``<stream_prefix>.<key path>``.
        """
        return {
            key: self._resolve(value, f"{stream_prefix}.{key}" if stream_prefix else str(key), scope_key)
            for key, value in params.items()
        }

    def _resolve(self, value: Any, stream_id: str, scope_key: Optional[ScopeKey]) -> Any:
        if isinstance(value, (Scalar, Distribution)) or (
            isinstance(value, Mapping) and is_numeric_field_spec(value)
        ):
            return self.sample(value, stream_id, scope_key)
        if isinstance(value, Mapping):
            return self.sample_struct(value, stream_id, scope_key)
        if isinstance(value, (list, tuple)):
            return [
                self._resolve(item, f"{stream_id}[{idx}]", scope_key)
                for idx, item in enumerate(value)
            ]
        return value

    def cached_values(self, scope: Optional[str] = None) -> Dict[Tuple[str, str, int], float]:
        """Copy of the scope cache, optionally filtered by scope."""
        return {
            key: value
            for key, value in self._cache.items()
            if scope is None or key[1] == scope
        }

    def clear(self) -> None:
        self._cache.clear()
