"""The compiled sequence artifact.

A :class:`SequenceArtifact` bundles the rendered audio, the TTL trigger
track, the event/trial/element tables and a JSON manifest. It is immutable:
arrays are read-only, tables are tuples of frozen rows and the manifest is
kept as canonical JSON text.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import json
from pathlib import Path
from typing import Any, ClassVar, Dict, Tuple, Union

import numpy as np

from seqforge.compilation.pattern_builder import ElementTable, TrialWindow


@dataclass(frozen=True)
class EventRow:
    """A trigger event at an element onset."""

    COLUMNS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("sample_index", "int"),
        ("time_ms", "float"),
        ("code", "int"),
        ("trial_index", "int"),
        ("element_index", "int"),
    )

    sample_index: int
    time_ms: float
    code: int
    trial_index: int
    element_index: int


def audio_sha256(audio: np.ndarray) -> str:
    """SHA-256 over the little-endian float32 bytes of ``audio``."""
    data = np.ascontiguousarray(audio, dtype="<f4")
    return hashlib.sha256(data.tobytes()).hexdigest()


def ttl_sha256(ttl: np.ndarray) -> str:
    data = np.ascontiguousarray(ttl, dtype=ttl.dtype.newbyteorder("<"))
    return hashlib.sha256(data.tobytes()).hexdigest()


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass(frozen=True, eq=False)
class SequenceArtifact:
    """Immutable compile result.

    Attributes:
        audio: float32 ``[samples, channels]``.
        ttl: uint8 (or uint16 for codes > 255) ``[samples]``.
        events: One row per element onset.
        trial_table: One window per trial, omission trials included.
        element_table: The element table the artifact was rendered from.
        manifest_json: Canonical JSON of the manifest.
    """

    audio: np.ndarray
    ttl: np.ndarray
    events: Tuple[EventRow, ...]
    trial_table: Tuple[TrialWindow, ...]
    element_table: ElementTable
    manifest_json: str

    def __post_init__(self) -> None:
        audio = np.array(self.audio, dtype=np.float32, copy=True)
        if audio.ndim != 2:
            raise ValueError(f"audio must be [samples, channels], got shape {audio.shape}")
        ttl = np.array(self.ttl, copy=True)
        if ttl.dtype not in (np.uint8, np.uint16):
            raise ValueError(f"ttl must be uint8 or uint16, got {ttl.dtype}")
        if ttl.shape != (audio.shape[0],):
            raise ValueError(
                f"ttl has shape {ttl.shape}, expected ({audio.shape[0]},) to match audio"
            )
        audio.flags.writeable = False
        ttl.flags.writeable = False
        object.__setattr__(self, "audio", audio)
        object.__setattr__(self, "ttl", ttl)
        object.__setattr__(self, "events", tuple(self.events))
        object.__setattr__(self, "trial_table", tuple(self.trial_table))

    @property
    def manifest(self) -> Dict[str, Any]:
        """A fresh copy of the manifest."""
        return json.loads(self.manifest_json)

    @property
    def sample_rate_hz(self) -> float:
        return float(self.manifest["sample_rate_hz"])

    @property
    def n_samples(self) -> int:
        return int(self.audio.shape[0])

    @property
    def n_channels(self) -> int:
        return int(self.audio.shape[1])

    @property
    def duration_ms(self) -> float:
        return self.n_samples * 1000.0 / self.sample_rate_hz

    def content_hash(self) -> str:
        return audio_sha256(self.audio)

    def verify(self) -> bool:
        """True if the audio and TTL still match the hashes in the manifest."""
        manifest = self.manifest
        return (
            manifest.get("audio_sha256") == audio_sha256(self.audio)
            and manifest.get("ttl_sha256") == ttl_sha256(self.ttl)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SequenceArtifact):
            return NotImplemented
        return (
            self.audio.shape == other.audio.shape
            and self.ttl.dtype == other.ttl.dtype
            and np.array_equal(self.audio, other.audio)
            and np.array_equal(self.ttl, other.ttl)
            and self.events == other.events
            and self.trial_table == other.trial_table
            and self.element_table == other.element_table
            and self.manifest_json == other.manifest_json
        )

    __hash__ = None  # type: ignore[assignment]

    def write_hdf5(self, path: Union[str, Path]) -> Path:
        """Write to an HDF5 container (see :mod:`seqforge.io.hdf5`)."""
        from seqforge.io.hdf5 import write_artifact

        return write_artifact(self, path)

    @classmethod
    def read_hdf5(cls, path: Union[str, Path]) -> "SequenceArtifact":
        from seqforge.io.hdf5 import read_artifact

        return read_artifact(path)
