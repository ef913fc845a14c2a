"""Rendering of element tables into sequence artifacts.

The :class:`SequenceCompiler` turns an
:class:`~seqforge.compilation.pattern_builder.ElementTable` into a
:class:`~seqforge.compilation.artifact.SequenceArtifact`:

1. every ``stimulus_ref`` is resolved against the stimulus library before
   anything is generated,
2. each element's parameters are resolved (numeric fields sampled for the
   element's trial/block) and its generator is called with a per-element
   seed,
3. snippets are mixed additively at ``round(onset * fs / 1000)``,
   truncated at the end of the buffer,
4. a fixed-width trigger pulse carrying the element's code is written to
   the TTL track (a later element overwrites an earlier one),
5. the audio is hashed and a manifest records everything needed to
   reproduce the result.

Generators may run on a thread pool; parameter resolution and mixing
always happen on the calling thread in table order, so the output does not
depend on the worker count. Any generator failure or timeout aborts the
compile and no artifact is produced.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
import math
import os
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import warnings

import numpy as np
import torch
from tqdm import tqdm

import seqforge
from seqforge.compilation.artifact import (
    EventRow,
    SequenceArtifact,
    audio_sha256,
    canonical_json,
    ttl_sha256,
)
from seqforge.compilation.pattern_builder import ElementRow, ElementTable
from seqforge.compilation.timing import check_timing_feasibility, enforce_timing
from seqforge.config.schema import CompilerSettings, StimulusDefinition
from seqforge.errors import ConfigurationError, GenerationError, ValidationError
from seqforge.generators.base import GeneratorContext
from seqforge.registry import GENERATOR_REGISTRY, ComponentRegistry
from seqforge.sampling.rng import RNGStreamManager
from seqforge.sampling.sampler import Sampler, ScopeKey
from seqforge.validation.schemas import SCHEMA_VERSION

TTL_PULSE_SAMPLES = 10
DEFAULT_CHANNELS = 2
UINT8_MAX_CODE = 255
UINT16_MAX_CODE = 65535


@dataclass
class CompileContext:
    """Randomness and provenance for one compile.

    Attributes:
        rng: Stream manager; per-element seeds and parameter draws derive
            from it.
        sampler: Sampler for distribution-valued stimulus parameters.
            Created from ``rng`` when omitted.
        params: Free-form provenance (experiment config, plan metadata)
            copied into the manifest.
        schema_version: Version of the configuration format.
    """

    rng: RNGStreamManager
    sampler: Optional[Sampler] = None
    params: Dict[str, Any] = field(default_factory=dict)
    schema_version: str = SCHEMA_VERSION

    def __post_init__(self) -> None:
        if self.sampler is None:
            self.sampler = Sampler(self.rng)

    @classmethod
    def from_seed(cls, seed: Optional[int] = None, **kwargs: Any) -> "CompileContext":
        return cls(rng=RNGStreamManager(seed), **kwargs)


def samples_at(time_ms: float, sample_rate_hz: float) -> int:
    """Sample index for a time, rounding halves up."""
    return int(math.floor(time_ms * sample_rate_hz / 1000.0 + 0.5))


class SequenceCompiler:
    """Compile element tables into audio, triggers, tables and a manifest.

    Args:
        settings: Compiler settings; defaults apply when omitted.
        registry: Generator registry used to resolve stimulus ``type``.
        debug: Print debug lines. Also enabled by the environment variable
            ``SEQFORGE_COMPILER_DEBUG``.

    Example:
        >>> compiler = SequenceCompiler(CompilerSettings(max_workers=4))
        >>> artifact = compiler.compile(table, library, 48000, CompileContext.from_seed(42))
        >>> artifact.manifest["audio_sha256"]
        '3f1c...'
    """

    def __init__(
        self,
        settings: Optional[CompilerSettings] = None,
        registry: ComponentRegistry = GENERATOR_REGISTRY,
        debug: bool = False,
    ) -> None:
        self.settings = settings or CompilerSettings()
        self.registry = registry
        env_flag = os.getenv("SEQFORGE_COMPILER_DEBUG", "")
        env_debug = str(env_flag).strip().lower() in {"1", "true", "yes", "on"}
        self._debug_enabled = bool(debug) or self.settings.debug or env_debug

    # ------------------------------------------------------------------
    # Debug helpers
    # ------------------------------------------------------------------
    def _debug(self, message: str, **fields: object) -> None:
        if not self._debug_enabled:
            return
        timestamp = datetime.now().strftime("%H:%M:%S")
        details = " ".join(f"{key}={value}" for key, value in fields.items())
        if details:
            print(f"[SeqCompiler {timestamp}] {message} | {details}", flush=True)
        else:
            print(f"[SeqCompiler {timestamp}] {message}", flush=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def compile(
        self,
        element_table: ElementTable,
        stimulus_library: Mapping[str, Any],
        sample_rate_hz: float,
        context: Union[CompileContext, int, None] = None,
    ) -> SequenceArtifact:
        """Render ``element_table`` into a :class:`SequenceArtifact`.

        Args:
            element_table: Output of the pattern builder.
            stimulus_library: Name → :class:`StimulusDefinition` (or raw dict).
            sample_rate_hz: Output sample rate.
            context: :class:`CompileContext`, or a master seed to build one.

        Returns:
            The immutable artifact.

        Raises:
            GenerationError: Unknown ``stimulus_ref`` or generator type, a
                generator failure, malformed generator output, or a timeout.
            ConfigurationError: Buffer exceeds ``max_samples``.
            TimingInfeasible: Timing check failed under ``timing_check: error``.
        """
        if not sample_rate_hz > 0:
            raise ValueError(f"sample_rate_hz must be > 0, got {sample_rate_hz}")
        if not isinstance(context, CompileContext):
            context = CompileContext.from_seed(context)
        settings = self.settings
        library = _normalize_library(stimulus_library)
        rows = element_table.rows

        generators = self._resolve_references(rows, library)
        enforce_timing(
            check_timing_feasibility(element_table, library, sample_rate_hz, settings.ttl_pulse_samples),
            settings.timing_check,
        )

        n_channels = _channel_count(library)
        n_samples = int(
            math.ceil((element_table.end_ms + settings.tail_padding_ms) * sample_rate_hz / 1000.0)
        )
        if settings.max_samples is not None and n_samples > settings.max_samples:
            raise ConfigurationError(
                [
                    ValidationError(
                        "compiler.max_samples",
                        "budget_exceeded",
                        "sequence is longer than the sample budget",
                        value=n_samples,
                        expected=f"<= {settings.max_samples}",
                    )
                ]
            )
        ttl_dtype = _ttl_dtype(rows)
        self._debug(
            "Compile started",
            elements=len(rows),
            samples=n_samples,
            channels=n_channels,
            fs=sample_rate_hz,
            workers=settings.max_workers,
        )

        audio = np.zeros((n_samples, n_channels), dtype=np.float32)
        ttl = np.zeros(n_samples, dtype=ttl_dtype)
        events: List[EventRow] = []

        jobs = [
            self._prepare(row, library[row.stimulus_ref], generators, sample_rate_hz, context)
            for row in rows
        ]
        executor = ThreadPoolExecutor(max_workers=settings.max_workers)
        futures: List[Future] = []
        try:
            futures = [executor.submit(generator, params, gen_ctx) for generator, params, gen_ctx in jobs]
            progress = tqdm(
                zip(rows, futures),
                total=len(rows),
                desc="Rendering elements",
                disable=not settings.progress,
            )
            for row, future in progress:
                snippet = self._collect(row, future)
                start = samples_at(row.absolute_onset_ms, sample_rate_hz)
                self._mix(audio, snippet, start, library[row.stimulus_ref].routing, row)
                ttl[start:start + settings.ttl_pulse_samples] = row.ttl_code
                events.append(
                    EventRow(
                        sample_index=start,
                        time_ms=row.absolute_onset_ms,
                        code=row.ttl_code,
                        trial_index=row.trial_index,
                        element_index=row.element_index,
                    )
                )
        except BaseException:
            for future in futures:
                future.cancel()
            executor.shutdown(wait=False)
            raise
        executor.shutdown(wait=True)

        peak = float(np.abs(audio).max()) if audio.size else 0.0
        if peak > 1.0:
            warnings.warn(
                f"mixed audio peaks at {peak:.3f} (> full scale); overlapping elements add up",
                UserWarning,
            )

        manifest = self._manifest(
            audio, ttl, element_table, sample_rate_hz, context, n_channels
        )
        self._debug("Compile finished", audio_sha256=manifest["audio_sha256"][:12], peak=round(peak, 4))
        return SequenceArtifact(
            audio=audio,
            ttl=ttl,
            events=tuple(events),
            trial_table=element_table.trials,
            element_table=element_table,
            manifest_json=canonical_json(manifest),
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _resolve_references(
        self, rows: Sequence[ElementRow], library: Dict[str, StimulusDefinition]
    ) -> Dict[str, Callable]:
        """Check every reference and build one generator per stimulus type for this compile."""
        missing = sorted({row.stimulus_ref for row in rows if row.stimulus_ref not in library})
        if missing:
            raise GenerationError(
                f"Unresolved stimulus_ref(s): {', '.join(missing)}. "
                f"Library has: {', '.join(sorted(library)) or '<empty>'}",
                stimulus_ref=missing[0],
            )
        generators: Dict[str, Callable] = {}
        for name in sorted({row.stimulus_ref for row in rows}):
            definition = library[name]
            if definition.type not in generators:
                try:
                    generators[definition.type] = self.registry.create(definition.type)
                except KeyError as exc:
                    raise GenerationError(str(exc), stimulus_ref=name) from exc
        return generators

    def _prepare(
        self,
        row: ElementRow,
        definition: StimulusDefinition,
        generators: Mapping[str, Callable],
        sample_rate_hz: float,
        context: CompileContext,
    ) -> Tuple[Callable, Dict[str, Any], GeneratorContext]:
        key = ScopeKey(trial_index=row.trial_index, block_index=row.block_index)
        try:
            params = context.sampler.sample_struct(definition.params, f"stimuli.{definition.name}", key)
        except (ValueError, KeyError) as exc:
            raise GenerationError(
                f"Could not resolve parameters: {exc}",
                stimulus_ref=row.stimulus_ref,
                trial_index=row.trial_index,
                element_index=row.element_index,
            ) from exc
        params["duration_ms"] = row.duration_ms
        seed = context.rng.derive_seed(f"element/{row.trial_index}/{row.element_index}")
        return generators[definition.type], params, GeneratorContext(sample_rate_hz, seed)

    def _collect(self, row: ElementRow, future: Future) -> np.ndarray:
        where = dict(
            stimulus_ref=row.stimulus_ref,
            trial_index=row.trial_index,
            element_index=row.element_index,
        )
        try:
            result = future.result(timeout=self.settings.generator_timeout_s)
        except FuturesTimeoutError as exc:
            raise GenerationError(
                f"Generator timed out after {self.settings.generator_timeout_s} s", **where
            ) from exc
        except Exception as exc:
            raise GenerationError(f"Generator failed: {exc}", **where) from exc

        if isinstance(result, torch.Tensor):
            result = result.detach().cpu().numpy()
        snippet = np.asarray(result, dtype=np.float32)
        if snippet.ndim == 1:
            snippet = snippet[:, None]
        if snippet.ndim != 2:
            raise GenerationError(
                f"Generator returned an array of shape {snippet.shape}; expected [samples, channels]",
                **where,
            )
        if not np.all(np.isfinite(snippet)):
            raise GenerationError("Generator returned non-finite samples", **where)
        return snippet

    @staticmethod
    def _mix(
        audio: np.ndarray,
        snippet: np.ndarray,
        start: int,
        routing: Optional[List[int]],
        row: ElementRow,
    ) -> None:
        n_samples, n_channels = audio.shape
        channels = list(routing) if routing is not None else list(range(n_channels))
        if snippet.shape[1] not in (1, len(channels)):
            raise GenerationError(
                f"Generator returned {snippet.shape[1]} channel(s) for routing {channels}",
                stimulus_ref=row.stimulus_ref,
                trial_index=row.trial_index,
                element_index=row.element_index,
            )
        end = min(start + snippet.shape[0], n_samples)
        if end <= start:
            return
        length = end - start
        for col, channel in enumerate(channels):
            source = snippet[:length, 0 if snippet.shape[1] == 1 else col]
            audio[start:end, channel] += source

    def _manifest(
        self,
        audio: np.ndarray,
        ttl: np.ndarray,
        table: ElementTable,
        sample_rate_hz: float,
        context: CompileContext,
        n_channels: int,
    ) -> Dict[str, Any]:
        record = context.rng.seed_record()
        streams = record["streams"]
        element_streams = [name for name in streams if name.startswith("element/")]
        settings = self.settings.to_dict()
        settings.pop("progress", None)
        settings.pop("debug", None)
        return {
            "format": "seqforge-sequence",
            "seqforge_version": seqforge.__version__,
            "schema_version": context.schema_version,
            "sample_rate_hz": float(sample_rate_hz),
            "master_seed": context.rng.master_seed,
            "n_samples": int(audio.shape[0]),
            "n_channels": int(n_channels),
            "duration_ms": audio.shape[0] * 1000.0 / sample_rate_hz,
            "n_trials": len(table.trials),
            "n_elements": len(table.rows),
            "audio_dtype": "float32",
            "ttl_dtype": str(ttl.dtype),
            "audio_sha256": audio_sha256(audio),
            "ttl_sha256": ttl_sha256(ttl),
            "compiler": settings,
            "streams": {k: v for k, v in streams.items() if not k.startswith("element/")},
            "n_element_seeds": len(element_streams),
            "params": context.params,
        }


def _normalize_library(library: Mapping[str, Any]) -> Dict[str, StimulusDefinition]:
    normalized = {}
    for name, entry in library.items():
        if isinstance(entry, StimulusDefinition):
            normalized[name] = entry
        elif isinstance(entry, Mapping):
            normalized[name] = StimulusDefinition.from_dict(name, entry)
        else:
            raise TypeError(
                f"Stimulus '{name}' must be a StimulusDefinition or mapping, got {type(entry).__name__}"
            )
    return normalized


def _channel_count(library: Mapping[str, StimulusDefinition]) -> int:
    routed = [ch for definition in library.values() for ch in (definition.routing or [])]
    return max(routed) + 1 if routed else DEFAULT_CHANNELS


def _ttl_dtype(rows: Sequence[ElementRow]) -> np.dtype:
    max_code = max((row.ttl_code for row in rows), default=0)
    if max_code > UINT16_MAX_CODE or min((row.ttl_code for row in rows), default=0) < 0:
        raise ValueError(f"TTL codes must lie in [0, {UINT16_MAX_CODE}], got max {max_code}")
    return np.dtype(np.uint8) if max_code <= UINT8_MAX_CODE else np.dtype(np.uint16)


def compile_table(
    element_table: ElementTable,
    stimulus_library: Mapping[str, Any],
    sample_rate_hz: float,
    seed: Optional[int] = None,
    settings: Optional[CompilerSettings] = None,
) -> SequenceArtifact:
    """One-shot compile with a fresh context seeded by ``seed``."""
    return SequenceCompiler(settings).compile(
        element_table, stimulus_library, sample_rate_hz, CompileContext.from_seed(seed)
    )
